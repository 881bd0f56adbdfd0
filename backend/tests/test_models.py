from daychain.db import Base, DailyPlan, TimeBlock


def test_metadata_contains_core_tables() -> None:
    table_names = set(Base.metadata.tables.keys())
    expected = {
        "users",
        "user_preferences",
        "calendar_events",
        "tasks",
        "routines",
        "daily_plans",
        "time_blocks",
        "exit_times",
        "agent_actions_log",
    }

    assert expected.issubset(table_names)


def test_daily_plan_is_unique_per_user_and_day() -> None:
    constraints = {constraint.name for constraint in Base.metadata.tables["daily_plans"].constraints}

    assert "uq_daily_plans_user_date" in constraints


def test_plan_rows_are_versioned_and_blocks_cascade() -> None:
    assert DailyPlan.__mapper__.version_id_col is DailyPlan.__table__.c.version
    [fk] = TimeBlock.__table__.c.plan_id.foreign_keys
    assert fk.ondelete == "CASCADE"
