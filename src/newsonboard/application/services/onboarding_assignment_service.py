from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from newsonboard.application.services.onboarding_batch_service import OnboardingBatchService
from newsonboard.domain.errors import ValidationError
from newsonboard.domain.onboarding import DEFAULT_ASSIGNMENT_COUNT
from newsonboard.infrastructure.stores.onboarding_store import OnboardingStore
from newsonboard.utils.logging_config import LogFiles, Logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OnboardingAssignmentService:
    """Tops up a user's non-repeating assignments within one batch."""

    def __init__(
        self,
        store: OnboardingStore,
        batches: OnboardingBatchService,
        *,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._batches = batches
        self._rng = rng or random.Random()
        self._clock = clock or _utcnow

    def assign_items(
        self,
        user_id: str,
        desired_count: int = DEFAULT_ASSIGNMENT_COUNT,
        *,
        batch: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Guarantee up to `desired_count` assignments for the user in one batch.

        The batch is resolved once (the given one, else the active one) and every
        read and write below is bound to its id. Returns assignments oldest first;
        fewer than requested when the batch has run out of unassigned articles.
        """
        user_id = str(user_id or "").strip()
        if not user_id:
            raise ValidationError("user_id is required")
        if int(desired_count) < 1:
            raise ValidationError(f"desired_count must be positive, got {desired_count}")

        bound = batch if batch is not None else self._batches.ensure_active_batch()
        batch_id = int(bound["id"])

        existing = self._store.list_assignments(user_id, batch_id=batch_id)
        shortfall = int(desired_count) - len(existing)
        if shortfall <= 0:
            return existing

        articles = bound.get("articles")
        if articles is None:
            articles = (self._store.get_batch(batch_id) or {}).get("articles", [])

        assigned = {a["article_id"] for a in existing}
        pool = [a for a in articles if a["id"] not in assigned]
        self._rng.shuffle(pool)

        # The store recounts under the user's lock; `pool` is only a preference order.
        created = self._store.allocate_assignments(
            user_id=user_id,
            batch_id=batch_id,
            articles=pool,
            desired_count=int(desired_count),
            created_at=self._clock(),
        )

        Logger.info(
            f"Assigned {created}/{shortfall} articles to user={user_id} batch={batch_id} "
            f"(pool={len(pool)})",
            file=LogFiles.ONBOARDING,
        )
        return self._store.list_assignments(user_id, batch_id=batch_id)

    def list_assignments(self, user_id: str) -> List[Dict[str, Any]]:
        """All of the user's assignments across batches, oldest first."""
        return self._store.list_assignments(user_id)
