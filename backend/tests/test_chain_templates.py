"""Tests for chain templates and user customization."""
from __future__ import annotations

from datetime import datetime, timezone

from daychain.services.chains.customization import (
    CustomStep,
    ReflowItem,
    StepOverride,
    apply_chain_step_overrides,
    coerce_duration,
    parse_step_preferences,
    reflow_steps_backward,
    resolve_template,
)
from daychain.services.chains.templates import (
    calculate_minimum_duration,
    calculate_template_duration,
    find_step,
    get_chain_template,
    get_optional_steps,
    get_required_steps,
    get_skippable_steps,
)
from daychain.services.chains.types import AnchorType, EXIT_GATE_STEP_ID


def _ids(template):
    return [step.id for step in template.steps]


def test_class_template_shape_and_durations() -> None:
    template = get_chain_template(AnchorType.CLASS)

    assert _ids(template) == [
        "feed-cat",
        "bathroom",
        "hygiene",
        "shower",
        "dress",
        "pack-bag",
        EXIT_GATE_STEP_ID,
        "leave",
    ]
    assert calculate_template_duration(template) == 57
    assert calculate_minimum_duration(template) == 42
    assert [step.id for step in get_optional_steps(template)] == ["shower"]
    assert [step.id for step in get_skippable_steps(template)] == ["shower"]
    assert len(get_required_steps(template)) == 7
    assert find_step(template, "leave").duration_estimate == 0
    assert find_step(template, EXIT_GATE_STEP_ID).gate_tags


def test_seminar_template_adds_review_step() -> None:
    template = get_chain_template("seminar")
    review = find_step(template, "review-materials")

    assert review is not None
    assert review.name == "Review seminar materials"
    assert review.can_skip_when_late is True


def test_unknown_type_falls_back_to_other() -> None:
    assert get_chain_template("karaoke").anchor_type == AnchorType.OTHER
    assert get_chain_template(None).anchor_type == AnchorType.OTHER


def test_coerce_duration_rounds_half_up_and_clamps() -> None:
    assert coerce_duration(7.5, 3) == 8
    assert coerce_duration("12", 3) == 12
    assert coerce_duration(-4, 3) == 0
    assert coerce_duration("soon", 3) == 3
    assert coerce_duration(None, 3) == 3
    assert coerce_duration(True, 3) == 3


def test_overrides_rename_retime_and_disable() -> None:
    template = get_chain_template(AnchorType.CLASS)
    customized = apply_chain_step_overrides(
        template,
        {
            "dress": StepOverride(name="Outfit", duration_estimate=20),
            "feed-cat": StepOverride(disabled=True),
        },
    )

    assert "feed-cat" not in _ids(customized)
    dress = find_step(customized, "dress")
    assert dress.name == "Outfit"
    assert dress.duration_estimate == 20
    # The stock template is untouched.
    assert find_step(template, "dress").name == "Get dressed"


def test_custom_steps_keep_insertion_order_after_same_step() -> None:
    template = get_chain_template(AnchorType.CLASS)
    customized = apply_chain_step_overrides(
        template,
        custom_steps=[
            CustomStep(id="water-plants", name="Water plants", duration_estimate=5, insert_after_id="dress"),
            CustomStep(id="make-tea", name="Make tea", duration_estimate=5, insert_after_id="dress"),
        ],
    )

    ids = _ids(customized)
    assert ids[ids.index("dress") + 1 : ids.index("dress") + 3] == ["water-plants", "make-tea"]


def test_custom_step_without_target_goes_before_exit_gate() -> None:
    template = get_chain_template(AnchorType.APPOINTMENT)
    customized = apply_chain_step_overrides(
        template,
        custom_steps=[CustomStep(id="print-forms", name="Print forms", duration_estimate=5)],
    )

    ids = _ids(customized)
    assert ids.index("print-forms") == ids.index(EXIT_GATE_STEP_ID) - 1


def test_custom_step_scoped_to_other_anchor_type_is_ignored() -> None:
    template = get_chain_template(AnchorType.CLASS)
    customized = apply_chain_step_overrides(
        template,
        custom_steps=[CustomStep(id="scrubs", name="Pack scrubs", duration_estimate=5, anchor_type="workshop")],
    )

    assert "scrubs" not in _ids(customized)


def test_parse_step_preferences_skips_malformed_entries() -> None:
    overrides, custom = parse_step_preferences(
        {
            "chain_step_overrides": {"dress": {"name": "  ", "duration_estimate": "15"}, "bad": "x"},
            "chain_custom_steps": [{"id": "a", "name": "A"}, {"name": "no id"}, "junk"],
        }
    )

    assert set(overrides) == {"dress"}
    assert overrides["dress"].name is None
    assert [step.id for step in custom] == ["a"]
    assert custom[0].duration_estimate == 5
    assert custom[0].is_required is False


def test_resolve_template_without_preferences_returns_base() -> None:
    base = get_chain_template(AnchorType.CLASS)
    assert resolve_template(AnchorType.CLASS, base, {}) is base


def test_reflow_backward_ends_on_deadline() -> None:
    deadline = datetime(2025, 3, 3, 8, 45, tzinfo=timezone.utc)
    timed = reflow_steps_backward(
        [ReflowItem("a", 10), ReflowItem("b", 5), ReflowItem("c", 0)],
        deadline,
    )

    assert [item.id for item in timed] == ["a", "b", "c"]
    assert timed[-1].end == deadline
    assert timed[-1].start == deadline
    assert timed[0].start == datetime(2025, 3, 3, 8, 30, tzinfo=timezone.utc)
    for earlier, later in zip(timed, timed[1:]):
        assert earlier.end == later.start


def test_reflow_is_idempotent() -> None:
    deadline = datetime(2025, 3, 3, 8, 45, tzinfo=timezone.utc)
    items = [ReflowItem("a", 10), ReflowItem("b", 7)]
    first = reflow_steps_backward(items, deadline)
    second = reflow_steps_backward([ReflowItem(t.id, t.duration_minutes) for t in first], deadline)

    assert first == second
