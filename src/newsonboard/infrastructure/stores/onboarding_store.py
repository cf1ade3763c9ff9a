from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from newsonboard.domain.onboarding import AssignmentStatus, CandidateArticle, normalize_topic
from newsonboard.infrastructure.stores.models import (
    ArticleModel,
    Base,
    OnboardingAllocationLockModel,
    OnboardingAssignmentModel,
    OnboardingBatchArticleModel,
    OnboardingBatchModel,
    UserInterestModel,
    UserOnboardingStateModel,
)
from newsonboard.infrastructure.stores.sqlalchemy_db import SessionProvider, get_db_url
from newsonboard.utils.logging_config import LogFiles, Logger
from newsonboard.utils.url_utils import canonicalize_url

_MAX_WRITE_ATTEMPTS = 3


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


class OnboardingStore:
    """Persistence for onboarding batches, candidate articles and assignments."""

    def __init__(self, db_url: Optional[str] = None, *, auto_create_schema: bool = True):
        self.db_url = db_url or get_db_url()
        self._provider = SessionProvider(self.db_url)
        if auto_create_schema:
            Base.metadata.create_all(self._provider.engine)

    # --- batches ---

    def get_active_batch(
        self, now: datetime, *, include_articles: bool = True
    ) -> Optional[Dict[str, Any]]:
        with self._provider.session() as session:
            row = (
                session.execute(
                    select(OnboardingBatchModel)
                    .where(OnboardingBatchModel.expires_at > as_utc(now))
                    .order_by(
                        OnboardingBatchModel.generated_at.desc(), OnboardingBatchModel.id.desc()
                    )
                    .limit(1)
                )
                .scalars()
                .first()
            )
            if row is None:
                return None
            return self._batch_to_dict(session, row, include_articles=include_articles)

    def get_latest_batch(self, *, include_articles: bool = True) -> Optional[Dict[str, Any]]:
        with self._provider.session() as session:
            row = (
                session.execute(
                    select(OnboardingBatchModel)
                    .order_by(
                        OnboardingBatchModel.generated_at.desc(), OnboardingBatchModel.id.desc()
                    )
                    .limit(1)
                )
                .scalars()
                .first()
            )
            if row is None:
                return None
            return self._batch_to_dict(session, row, include_articles=include_articles)

    def get_batch(self, batch_id: int, *, include_articles: bool = True) -> Optional[Dict[str, Any]]:
        with self._provider.session() as session:
            row = session.get(OnboardingBatchModel, int(batch_id))
            if row is None:
                return None
            return self._batch_to_dict(session, row, include_articles=include_articles)

    def count_batches(self) -> int:
        with self._provider.session() as session:
            return int(
                session.execute(select(func.count()).select_from(OnboardingBatchModel)).scalar_one()
            )

    def create_batch(
        self,
        *,
        articles: Sequence[CandidateArticle],
        topics: Sequence[str],
        generated_at: datetime,
        expires_at: datetime,
    ) -> Dict[str, Any]:
        """Upsert the articles and create a batch referencing them, all in one transaction.

        A concurrent writer inserting the same article URL first surfaces as an
        IntegrityError; the whole transaction is retried so the upsert takes the
        update path.
        """
        generated_at = as_utc(generated_at)
        expires_at = as_utc(expires_at)
        last_error: Optional[IntegrityError] = None
        for attempt in range(_MAX_WRITE_ATTEMPTS):
            with self._provider.session() as session:
                try:
                    batch = OnboardingBatchModel(
                        generated_at=generated_at,
                        expires_at=expires_at,
                        topics_json=json.dumps(list(topics), ensure_ascii=False),
                    )
                    session.add(batch)
                    session.flush()

                    seen_ids: set[int] = set()
                    for candidate in articles:
                        row = self._upsert_article_row(session, candidate, now=generated_at)
                        if row is None or row.id in seen_ids:
                            continue
                        seen_ids.add(row.id)
                        session.add(
                            OnboardingBatchArticleModel(
                                batch_id=batch.id,
                                article_id=row.id,
                                position=len(seen_ids) - 1,
                                topic=normalize_topic(candidate.topic) or row.topic,
                            )
                        )
                    session.commit()
                except IntegrityError as exc:
                    session.rollback()
                    last_error = exc
                    Logger.warning(
                        f"Batch write conflict on attempt {attempt + 1}, retrying",
                        file=LogFiles.BATCH,
                    )
                    continue
                return self._batch_to_dict(session, batch, include_articles=True)
        raise last_error  # type: ignore[misc]

    @staticmethod
    def _upsert_article_row(
        session, candidate: CandidateArticle, *, now: datetime
    ) -> Optional[ArticleModel]:
        url = canonicalize_url(candidate.url)
        if not url:
            return None

        row = session.execute(
            select(ArticleModel).where(ArticleModel.url == url)
        ).scalar_one_or_none()
        if row is None:
            row = ArticleModel(url=url, created_at=now)
            session.add(row)

        row.title = (candidate.title or "").strip() or url
        row.description = candidate.description or ""
        row.image_url = candidate.image_url or row.image_url
        row.source_name = candidate.source_name or row.source_name or "Unknown"
        row.author = candidate.author or row.author
        row.content = candidate.content or row.content
        row.topic = normalize_topic(candidate.topic) or row.topic
        row.published_at = as_utc(candidate.published_at) or row.published_at or now
        row.updated_at = now
        session.flush()
        return row

    # --- assignments ---

    def allocate_assignments(
        self,
        *,
        user_id: str,
        batch_id: int,
        articles: Sequence[Dict[str, Any]],
        desired_count: int,
        created_at: datetime,
    ) -> int:
        """Top up the user's assignments in one batch to `desired_count`.

        The user's lock row is written before anything is counted, so
        concurrent top-ups for the same user run one after another and never
        overshoot. `articles` are taken in the order given, skipping ones the
        user already holds. Returns the number of assignments created.
        """
        created_at = as_utc(created_at)
        last_error: Optional[IntegrityError] = None
        for attempt in range(_MAX_WRITE_ATTEMPTS):
            with self._provider.session() as session:
                try:
                    self._lock_user(session, user_id, now=created_at)
                    assigned = set(
                        session.execute(
                            select(OnboardingAssignmentModel.article_id).where(
                                OnboardingAssignmentModel.user_id == user_id,
                                OnboardingAssignmentModel.batch_id == int(batch_id),
                            )
                        ).scalars()
                    )
                    shortfall = int(desired_count) - len(assigned)
                    created = 0
                    for article in articles:
                        if created >= shortfall:
                            break
                        article_id = int(article["id"])
                        if article_id in assigned:
                            continue
                        assigned.add(article_id)
                        session.add(
                            OnboardingAssignmentModel(
                                assignment_id=uuid4().hex,
                                user_id=user_id,
                                batch_id=int(batch_id),
                                article_id=article_id,
                                topic=normalize_topic(article.get("topic")),
                                status=AssignmentStatus.PENDING.value,
                                created_at=created_at,
                            )
                        )
                        created += 1
                    session.commit()
                except IntegrityError as exc:
                    # First lock row for this user raced with another writer.
                    session.rollback()
                    last_error = exc
                    Logger.warning(
                        f"Allocation conflict for user={user_id} on attempt {attempt + 1}, retrying",
                        file=LogFiles.ONBOARDING,
                    )
                    continue
                return created
        raise last_error  # type: ignore[misc]

    @staticmethod
    def _lock_user(session, user_id: str, *, now: datetime) -> None:
        result = session.execute(
            update(OnboardingAllocationLockModel)
            .where(OnboardingAllocationLockModel.user_id == user_id)
            .values(locked_at=now)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            session.add(OnboardingAllocationLockModel(user_id=user_id, locked_at=now))
            session.flush()

    def list_assignments(
        self, user_id: str, *, batch_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        with self._provider.session() as session:
            stmt = (
                select(OnboardingAssignmentModel, ArticleModel)
                .join(ArticleModel, ArticleModel.id == OnboardingAssignmentModel.article_id)
                .where(OnboardingAssignmentModel.user_id == user_id)
            )
            if batch_id is not None:
                stmt = stmt.where(OnboardingAssignmentModel.batch_id == int(batch_id))
            stmt = stmt.order_by(
                OnboardingAssignmentModel.created_at.asc(), OnboardingAssignmentModel.id.asc()
            )
            return [assignment_to_dict(a, art) for a, art in session.execute(stmt).all()]

    def get_assignment(self, assignment_id: str) -> Optional[Dict[str, Any]]:
        with self._provider.session() as session:
            result = session.execute(
                select(OnboardingAssignmentModel, ArticleModel)
                .join(ArticleModel, ArticleModel.id == OnboardingAssignmentModel.article_id)
                .where(OnboardingAssignmentModel.assignment_id == str(assignment_id))
            ).first()
            if result is None:
                return None
            return assignment_to_dict(result[0], result[1])

    def count_assignments(self, user_id: str, *, status: Optional[AssignmentStatus] = None) -> int:
        with self._provider.session() as session:
            return count_assignments(session, user_id, status=status)

    # --- per-user outcome ---

    def get_onboarding_state(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._provider.session() as session:
            row = session.get(UserOnboardingStateModel, user_id)
            return onboarding_state_to_dict(row) if row else None

    def list_interest_scores(self, user_id: str) -> Dict[str, int]:
        with self._provider.session() as session:
            rows = session.execute(
                select(UserInterestModel).where(UserInterestModel.user_id == user_id)
            ).scalars().all()
            return {r.topic: int(r.score) for r in rows}

    def close(self) -> None:
        try:
            self._provider.engine.dispose()
        except Exception:
            pass

    @staticmethod
    def _batch_to_dict(
        session, row: OnboardingBatchModel, *, include_articles: bool
    ) -> Dict[str, Any]:
        members = session.execute(
            select(OnboardingBatchArticleModel, ArticleModel)
            .join(ArticleModel, ArticleModel.id == OnboardingBatchArticleModel.article_id)
            .where(OnboardingBatchArticleModel.batch_id == row.id)
            .order_by(OnboardingBatchArticleModel.position.asc(), OnboardingBatchArticleModel.id.asc())
        ).all()
        payload: Dict[str, Any] = {
            "id": row.id,
            "generated_at": _iso(row.generated_at),
            "expires_at": _iso(row.expires_at),
            "topics": row.get_topics(),
            "article_count": len(members),
        }
        if include_articles:
            articles = []
            for member, article in members:
                item = article_to_dict(article)
                item["topic"] = member.topic
                articles.append(item)
            payload["articles"] = articles
        return payload


def count_assignments(session, user_id: str, *, status: Optional[AssignmentStatus] = None) -> int:
    stmt = (
        select(func.count())
        .select_from(OnboardingAssignmentModel)
        .where(OnboardingAssignmentModel.user_id == user_id)
    )
    if status is not None:
        stmt = stmt.where(OnboardingAssignmentModel.status == status.value)
    return int(session.execute(stmt).scalar_one())


def article_to_dict(row: ArticleModel) -> Dict[str, Any]:
    return {
        "id": row.id,
        "url": row.url,
        "title": row.title,
        "description": row.description,
        "image_url": row.image_url,
        "source_name": row.source_name,
        "author": row.author,
        "topic": row.topic,
        "published_at": _iso(row.published_at),
    }


def assignment_to_dict(row: OnboardingAssignmentModel, article: ArticleModel) -> Dict[str, Any]:
    return {
        "id": row.assignment_id,
        "user_id": row.user_id,
        "batch_id": row.batch_id,
        "article_id": row.article_id,
        "topic": row.topic,
        "status": row.status,
        "created_at": _iso(row.created_at),
        "decided_at": _iso(row.decided_at),
        "article": article_to_dict(article),
    }


def onboarding_state_to_dict(row: UserOnboardingStateModel) -> Dict[str, Any]:
    return {
        "user_id": row.user_id,
        "completed": bool(row.completed),
        "completed_at": _iso(row.completed_at),
    }
