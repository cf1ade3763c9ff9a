from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from newsonboard.application.services.completion_detector import CompletionDetector
from newsonboard.application.services.interest_aggregator import InterestAggregator
from newsonboard.domain.errors import AuthorizationError, DecisionConflictError, NotFoundError
from newsonboard.domain.onboarding import AssignmentStatus, interest_delta, parse_decision
from newsonboard.infrastructure.stores.models import ArticleModel, OnboardingAssignmentModel
from newsonboard.infrastructure.stores.onboarding_store import (
    OnboardingStore,
    as_utc,
    assignment_to_dict,
)
from newsonboard.infrastructure.stores.sqlalchemy_db import SessionProvider
from newsonboard.utils.logging_config import LogFiles, Logger

_MAX_ATTEMPTS = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OnboardingResponseService:
    """Records a user's decision on one assignment, then scores and checks completion."""

    def __init__(
        self,
        store: OnboardingStore,
        *,
        aggregator: Optional[InterestAggregator] = None,
        detector: Optional[CompletionDetector] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._provider = SessionProvider(store.db_url)
        self._clock = clock or _utcnow
        self._aggregator = aggregator or InterestAggregator(clock=self._clock)
        self._detector = detector or CompletionDetector(clock=self._clock)

    def record_response(self, user_id: str, assignment_id: str, decision) -> Dict[str, Any]:
        status = parse_decision(decision)
        last_error: Optional[IntegrityError] = None
        for attempt in range(_MAX_ATTEMPTS):
            try:
                return self._record_once(str(user_id), str(assignment_id), status)
            except IntegrityError as exc:
                # Lost a race creating the first interest/state row; redo the transaction.
                last_error = exc
                Logger.warning(
                    f"Response write conflict for assignment={assignment_id} "
                    f"on attempt {attempt + 1}, retrying",
                    file=LogFiles.ONBOARDING,
                )
        raise last_error  # type: ignore[misc]

    def _record_once(
        self, user_id: str, assignment_id: str, status: AssignmentStatus
    ) -> Dict[str, Any]:
        with self._provider.session() as session:
            row = session.execute(
                select(OnboardingAssignmentModel).where(
                    OnboardingAssignmentModel.assignment_id == assignment_id
                )
            ).scalar_one_or_none()
            if row is None:
                raise NotFoundError(f"assignment not found: {assignment_id}")
            if row.user_id != user_id:
                Logger.warning(
                    f"User {user_id} tried to answer assignment {assignment_id} "
                    f"owned by another user",
                    file=LogFiles.ONBOARDING,
                )
                raise AuthorizationError(f"assignment {assignment_id} belongs to another user")

            now = as_utc(self._clock())
            # Compare-and-swap: only a pending assignment can take a decision.
            result = session.execute(
                update(OnboardingAssignmentModel)
                .where(
                    OnboardingAssignmentModel.assignment_id == assignment_id,
                    OnboardingAssignmentModel.status == AssignmentStatus.PENDING.value,
                )
                .values(status=status.value, decided_at=now)
                .execution_options(synchronize_session=False)
            )

            if not result.rowcount:
                session.rollback()
                current = self._load(session, assignment_id)
                if current["status"] == status.value:
                    return current
                raise DecisionConflictError(
                    f"assignment {assignment_id} already {current['status']}, "
                    f"cannot change to {status.value}"
                )

            try:
                self._aggregator.apply(
                    session, user_id=user_id, topic=row.topic, delta=interest_delta(status)
                )
                completed = self._detector.check(session, user_id)
                session.commit()
            except IntegrityError:
                session.rollback()
                raise

            Logger.info(
                f"Recorded {status.value} for assignment={assignment_id} user={user_id} "
                f"topic={row.topic} completed={completed}",
                file=LogFiles.ONBOARDING,
            )
            return self._load(session, assignment_id)

    def complete_onboarding(self, user_id: str) -> Dict[str, Any]:
        """Set the completion latch regardless of pending assignments."""
        last_error: Optional[IntegrityError] = None
        for _ in range(_MAX_ATTEMPTS):
            with self._provider.session() as session:
                try:
                    changed = self._detector.mark_complete(session, user_id)
                    session.commit()
                except IntegrityError as exc:
                    session.rollback()
                    last_error = exc
                    continue
            Logger.info(
                f"Manual onboarding completion for user={user_id} changed={changed}",
                file=LogFiles.ONBOARDING,
            )
            return self._store.get_onboarding_state(user_id) or {}
        raise last_error  # type: ignore[misc]

    @staticmethod
    def _load(session, assignment_id: str) -> Dict[str, Any]:
        row, article = session.execute(
            select(OnboardingAssignmentModel, ArticleModel)
            .join(ArticleModel, ArticleModel.id == OnboardingAssignmentModel.article_id)
            .where(OnboardingAssignmentModel.assignment_id == assignment_id)
            .execution_options(populate_existing=True)
        ).one()
        return assignment_to_dict(row, article)
