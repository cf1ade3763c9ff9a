from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import update

from newsonboard.domain.onboarding import normalize_topic
from newsonboard.infrastructure.stores.models import UserInterestModel
from newsonboard.infrastructure.stores.onboarding_store import as_utc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InterestAggregator:
    """Incremental per-user, per-topic interest score."""

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utcnow

    def apply(self, session, *, user_id: str, topic: Optional[str], delta: int) -> bool:
        """Add `delta` to (user_id, topic) inside the caller's transaction.

        Returns False when nothing was written (zero delta or no topic). A
        concurrent first insert raises IntegrityError at flush; the caller
        rolls back and retries.
        """
        topic = normalize_topic(topic)
        if not delta or not topic:
            return False

        now = as_utc(self._clock())
        result = session.execute(
            update(UserInterestModel)
            .where(UserInterestModel.user_id == user_id, UserInterestModel.topic == topic)
            .values(score=UserInterestModel.score + int(delta), updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return True

        session.add(
            UserInterestModel(
                user_id=user_id,
                topic=topic,
                score=int(delta),
                created_at=now,
                updated_at=now,
            )
        )
        session.flush()
        return True
