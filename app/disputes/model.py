# app/disputes/model.py
from __future__ import annotations

from enum import Enum


class DisputeStatus(str, Enum):
    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED_ORGANIZER_FAVOR = "RESOLVED_ORGANIZER_FAVOR"
    RESOLVED_TALENT_FAVOR = "RESOLVED_TALENT_FAVOR"
    RESOLVED_PARTIAL = "RESOLVED_PARTIAL"


class ResolutionType(str, Enum):
    ORGANIZER_FAVOR = "organizer_favor"
    TALENT_FAVOR = "talent_favor"
    PARTIAL_RESOLUTION = "partial_resolution"


RESOLVED_STATUS = {
    ResolutionType.ORGANIZER_FAVOR: DisputeStatus.RESOLVED_ORGANIZER_FAVOR,
    ResolutionType.TALENT_FAVOR: DisputeStatus.RESOLVED_TALENT_FAVOR,
    ResolutionType.PARTIAL_RESOLUTION: DisputeStatus.RESOLVED_PARTIAL,
}

OPEN_STATUSES = (DisputeStatus.OPEN.value, DisputeStatus.UNDER_REVIEW.value)
