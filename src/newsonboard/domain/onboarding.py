"""Onboarding domain value objects."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from newsonboard.domain.errors import ValidationError

BATCH_TTL = timedelta(hours=24)
DEFAULT_ASSIGNMENT_COUNT = 7
DEFAULT_CANDIDATE_LIMIT = 30
DEFAULT_TOPICS_PER_BATCH = 3
NEWS_TOPICS = (
    "general",
    "business",
    "entertainment",
    "health",
    "science",
    "sports",
    "technology",
)


class AssignmentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not AssignmentStatus.PENDING


DECISIONS = frozenset({AssignmentStatus.ACCEPTED, AssignmentStatus.REJECTED})


def parse_decision(value) -> AssignmentStatus:
    """Coerce user input into a terminal status, rejecting anything else."""
    if isinstance(value, AssignmentStatus):
        status = value
    else:
        raw = str(value or "").strip().lower()
        try:
            status = AssignmentStatus(raw)
        except ValueError:
            raise ValidationError(f"invalid decision: {value!r}") from None
    if status not in DECISIONS:
        raise ValidationError(f"invalid decision: {value!r}")
    return status


def interest_delta(status: AssignmentStatus) -> int:
    if status is AssignmentStatus.ACCEPTED:
        return 1
    if status is AssignmentStatus.REJECTED:
        return -1
    return 0


def normalize_topic(value: Optional[str]) -> Optional[str]:
    topic = str(value or "").strip().lower()
    return topic or None


@dataclass(frozen=True)
class CandidateArticle:
    """A content item returned by a candidate source, keyed by its URL."""

    url: str
    title: str = ""
    description: str = ""
    image_url: Optional[str] = None
    source_name: Optional[str] = None
    author: Optional[str] = None
    content: Optional[str] = None
    topic: Optional[str] = None
    published_at: Optional[datetime] = None
