from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import select, update

from newsonboard.domain.onboarding import AssignmentStatus
from newsonboard.infrastructure.stores.models import UserOnboardingStateModel
from newsonboard.infrastructure.stores.onboarding_store import as_utc, count_assignments


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CompletionDetector:
    """
    Latches a user's onboarding as complete.

    Complete means at least one assignment was ever created and none is
    pending. The latch is one-way: no code path sets `completed` back to False.
    """

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utcnow

    @staticmethod
    def is_complete(session, user_id: str) -> bool:
        total = count_assignments(session, user_id)
        if total == 0:
            return False
        return count_assignments(session, user_id, status=AssignmentStatus.PENDING) == 0

    def check(self, session, user_id: str) -> bool:
        """Latch completion if the predicate holds. Returns True if the latch is set."""
        if not self.is_complete(session, user_id):
            return False
        self.mark_complete(session, user_id)
        return True

    def mark_complete(self, session, user_id: str) -> bool:
        """Set the latch. Returns False if it was already set."""
        now = as_utc(self._clock())
        result = session.execute(
            update(UserOnboardingStateModel)
            .where(
                UserOnboardingStateModel.user_id == user_id,
                UserOnboardingStateModel.completed.is_(False),
            )
            .values(completed=True, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return True

        existing = session.execute(
            select(UserOnboardingStateModel.user_id).where(
                UserOnboardingStateModel.user_id == user_id
            )
        ).first()
        if existing is not None:
            return False

        session.add(UserOnboardingStateModel(user_id=user_id, completed=True, completed_at=now))
        session.flush()
        return True
