from __future__ import annotations

import random
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from newsonboard.application.config import OnboardingConfig
from newsonboard.application.ports.candidate_source import CandidateSource
from newsonboard.application.services.onboarding_assignment_service import (
    OnboardingAssignmentService,
)
from newsonboard.application.services.onboarding_batch_service import OnboardingBatchService
from newsonboard.application.services.onboarding_response_service import (
    OnboardingResponseService,
)
from newsonboard.domain.errors import GenerationError
from newsonboard.domain.onboarding import AssignmentStatus
from newsonboard.infrastructure.connectors.newsapi_connector import NewsApiConnector
from newsonboard.infrastructure.stores.onboarding_store import OnboardingStore
from newsonboard.utils.logging_config import LogFiles, Logger


class OnboardingService:
    """Entry points consumed by the API layer and the periodic trigger."""

    def __init__(
        self,
        *,
        store: OnboardingStore,
        batches: OnboardingBatchService,
        assignments: OnboardingAssignmentService,
        responses: OnboardingResponseService,
        default_count: Optional[int] = None,
    ):
        self.store = store
        self.batches = batches
        self.assignments = assignments
        self.responses = responses
        self.default_count = default_count

    @classmethod
    def from_config(
        cls,
        config: OnboardingConfig,
        *,
        source: Optional[CandidateSource] = None,
        store: Optional[OnboardingStore] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "OnboardingService":
        store = store or OnboardingStore(db_url=config.db_url or None)
        source = source or NewsApiConnector(
            api_key=config.news_api_key,
            base_url=config.news_api_base_url,
            language=config.language,
            timeout_s=config.fetch_timeout_s,
        )
        rng = rng or random.Random()
        batches = OnboardingBatchService(store, source, config=config, rng=rng, clock=clock)
        return cls(
            store=store,
            batches=batches,
            assignments=OnboardingAssignmentService(store, batches, rng=rng, clock=clock),
            responses=OnboardingResponseService(store, clock=clock),
            default_count=config.assignment_count,
        )

    def get_assignments(
        self, user_id: str, desired_count: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Assignments for the user, generating a batch on demand.

        Pending assignments left in an earlier batch are served as they are,
        with no new allocation, since completion waits on every one of them.
        A completed user gets their existing assignments back unchanged.
        When a fresh batch cannot be built the most recent one is served
        regardless of expiry, so users still get something to review.
        """
        count = desired_count or self.default_count or 7
        existing = self.assignments.list_assignments(user_id)
        if existing:
            state = self.store.get_onboarding_state(user_id) or {}
            if state.get("completed"):
                return existing
            pending = [a for a in existing if a["status"] == AssignmentStatus.PENDING.value]
            active = self.batches.get_active_batch() if pending else None
            if pending and (active is None or any(a["batch_id"] != active["id"] for a in pending)):
                Logger.info(
                    f"Serving {len(pending)} pending assignments from earlier batches "
                    f"to user={user_id}",
                    file=LogFiles.ONBOARDING,
                )
                return pending
        try:
            batch = self.batches.ensure_active_batch()
        except GenerationError as exc:
            batch = self.batches.get_latest_batch()
            if batch is None:
                raise
            Logger.warning(
                f"Batch generation failed ({exc}); falling back to batch id={batch['id']}",
                file=LogFiles.ONBOARDING,
            )
        return self.assignments.assign_items(user_id, count, batch=batch)

    def submit_response(self, user_id: str, assignment_id: str, decision) -> Dict[str, Any]:
        return self.responses.record_response(user_id, assignment_id, decision)

    def run_batch_refresh(self, force: bool = False) -> Dict[str, Any]:
        created, batch = self.batches.generate_batch(force=force)
        Logger.info(
            f"{'Created new' if created else 'Reused active'} batch id={batch['id']} "
            f"expires_at={batch['expires_at']}",
            file=LogFiles.BATCH,
        )
        return {
            "created": created,
            "batch": {k: v for k, v in batch.items() if k != "articles"},
        }

    def complete_onboarding(self, user_id: str) -> Dict[str, Any]:
        return self.responses.complete_onboarding(user_id)

    def get_status(self, user_id: str) -> Dict[str, Any]:
        state = self.store.get_onboarding_state(user_id) or {}
        return {
            "user_id": user_id,
            "completed": bool(state.get("completed")),
            "completed_at": state.get("completed_at"),
            "pending": self.store.count_assignments(user_id, status=AssignmentStatus.PENDING),
            "total": self.store.count_assignments(user_id),
        }
