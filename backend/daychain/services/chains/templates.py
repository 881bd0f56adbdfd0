"""Static chain templates, one per anchor type."""
from __future__ import annotations

from typing import Dict, List, Optional, Union

from daychain.services.chains.types import AnchorType, ChainStep, ChainTemplate, EXIT_GATE_STEP_ID

EXIT_GATE_TAGS = ("keys", "phone", "water", "meds", "cat-fed", "bag-packed")

FEED_CAT = ChainStep("feed-cat", "Feed cat", 5)
BATHROOM = ChainStep("bathroom", "Bathroom", 10)
HYGIENE = ChainStep("hygiene", "Hygiene (brush teeth)", 5)
SHOWER = ChainStep("shower", "Shower", 15, is_required=False, can_skip_when_late=True)
DRESS = ChainStep("dress", "Get dressed", 10)
PACK_BAG = ChainStep("pack-bag", "Pack bag", 10)
EXIT_GATE = ChainStep(EXIT_GATE_STEP_ID, "Exit Readiness Check", 2, gate_tags=EXIT_GATE_TAGS)
LEAVE = ChainStep("leave", "Leave house", 0)


def _review_step(label: str) -> ChainStep:
    return ChainStep(
        "review-materials",
        f"Review {label} materials",
        15,
        is_required=False,
        can_skip_when_late=True,
    )


_CLASS_STEPS = (FEED_CAT, BATHROOM, HYGIENE, SHOWER, DRESS, PACK_BAG, EXIT_GATE, LEAVE)

CHAIN_TEMPLATES: Dict[AnchorType, ChainTemplate] = {
    AnchorType.CLASS: ChainTemplate(AnchorType.CLASS, _CLASS_STEPS),
    AnchorType.SEMINAR: ChainTemplate(
        AnchorType.SEMINAR,
        (FEED_CAT, BATHROOM, HYGIENE, SHOWER, DRESS, _review_step("seminar"), PACK_BAG, EXIT_GATE, LEAVE),
    ),
    AnchorType.WORKSHOP: ChainTemplate(
        AnchorType.WORKSHOP,
        (FEED_CAT, BATHROOM, HYGIENE, SHOWER, DRESS, _review_step("workshop"), PACK_BAG, EXIT_GATE, LEAVE),
    ),
    AnchorType.APPOINTMENT: ChainTemplate(
        AnchorType.APPOINTMENT,
        (BATHROOM, HYGIENE, DRESS, PACK_BAG, EXIT_GATE, LEAVE),
    ),
    AnchorType.OTHER: ChainTemplate(AnchorType.OTHER, _CLASS_STEPS),
}


def get_chain_template(anchor_type: Union[AnchorType, str, None]) -> ChainTemplate:
    """Look up the template for an anchor type, falling back to `other`."""
    try:
        key = AnchorType(anchor_type) if anchor_type is not None else AnchorType.OTHER
    except ValueError:
        key = AnchorType.OTHER
    return CHAIN_TEMPLATES[key]


def calculate_template_duration(template: ChainTemplate) -> int:
    return sum(step.duration_estimate for step in template.steps)


def calculate_minimum_duration(template: ChainTemplate) -> int:
    """Duration when every step that may be skipped when late is dropped."""
    return sum(step.duration_estimate for step in template.steps if not step.can_skip_when_late)


def get_required_steps(template: ChainTemplate) -> List[ChainStep]:
    return [step for step in template.steps if step.is_required]


def get_optional_steps(template: ChainTemplate) -> List[ChainStep]:
    return [step for step in template.steps if not step.is_required]


def get_skippable_steps(template: ChainTemplate) -> List[ChainStep]:
    return [step for step in template.steps if step.can_skip_when_late]


def find_step(template: ChainTemplate, step_id: str) -> Optional[ChainStep]:
    return next((step for step in template.steps if step.id == step_id), None)
