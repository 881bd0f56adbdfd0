"""Turn calendar commitments into typed anchors."""
from __future__ import annotations

import re
from typing import List, Optional, Sequence, Tuple

from daychain.services.chains.types import Anchor, AnchorType
from daychain.services.sources import CommitmentRecord


# Checked in this order; the first match wins.
_KEYWORDS: Tuple[Tuple[AnchorType, Tuple[str, ...]], ...] = (
    (AnchorType.WORKSHOP, ("workshop", "lab", "practical")),
    (AnchorType.CLASS, ("lecture", "class", "tutorial", "lesson")),
    (AnchorType.SEMINAR, ("seminar", "discussion")),
    (AnchorType.APPOINTMENT, ("appointment", "meeting", "doctor", "dentist", "interview", "gp")),
)
_PATTERNS = [
    (anchor_type, re.compile(r"\b(?:" + "|".join(words) + r")(?:s|es)?\b", re.IGNORECASE))
    for anchor_type, words in _KEYWORDS
]


def classify_anchor_type(title: str, description: Optional[str] = None) -> AnchorType:
    text = f"{title or ''} {description or ''}"
    for anchor_type, pattern in _PATTERNS:
        if pattern.search(text):
            return anchor_type
    return AnchorType.OTHER


def build_anchors(commitments: Sequence[CommitmentRecord]) -> List[Anchor]:
    anchors = [
        Anchor(
            id=f"anchor-{commitment.id}",
            title=commitment.title,
            start=commitment.start,
            end=commitment.end,
            anchor_type=classify_anchor_type(commitment.title, commitment.description),
            location=commitment.location,
            must_attend=bool(commitment.location and commitment.location.strip()),
            calendar_event_id=commitment.id,
        )
        for commitment in commitments
        if commitment.event_type != "task" and commitment.end > commitment.start
    ]
    anchors.sort(key=lambda anchor: (anchor.start, anchor.end, anchor.id))
    return anchors
