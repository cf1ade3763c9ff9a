from __future__ import annotations

import json
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class ArticleModel(Base):
    """Candidate content item, unique by canonical URL."""

    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String(1024), unique=True, index=True)

    title: Mapped[str] = mapped_column(Text, default="")
    description: Mapped[str] = mapped_column(Text, default="")
    image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    source_name: Mapped[str] = mapped_column(String(256), default="Unknown")
    author: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    topic: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class OnboardingBatchModel(Base):
    """
    Time-boxed shared pool of candidate articles.

    Active/expired is derived from expires_at at read time; rows are never deleted.
    """

    __tablename__ = "onboarding_batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    topics_json: Mapped[str] = mapped_column(Text, default="[]")

    articles = relationship(
        "OnboardingBatchArticleModel",
        back_populates="batch",
        order_by="OnboardingBatchArticleModel.position",
    )

    def get_topics(self) -> List[str]:
        try:
            data = json.loads(self.topics_json or "[]")
            return [str(x) for x in data] if isinstance(data, list) else []
        except Exception:
            return []


class OnboardingBatchArticleModel(Base):
    __tablename__ = "onboarding_batch_articles"
    __table_args__ = (
        UniqueConstraint("batch_id", "article_id", name="uq_onboarding_batch_articles_batch_article"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[int] = mapped_column(Integer, ForeignKey("onboarding_batches.id"), index=True)
    article_id: Mapped[int] = mapped_column(Integer, ForeignKey("articles.id"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    # Normalized once when the batch is written.
    topic: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    batch = relationship("OnboardingBatchModel", back_populates="articles")
    article = relationship("ArticleModel")


class OnboardingAssignmentModel(Base):
    __tablename__ = "onboarding_assignments"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "batch_id",
            "article_id",
            name="uq_onboarding_assignments_user_batch_article",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assignment_id: Mapped[str] = mapped_column(String(32), unique=True, index=True)

    user_id: Mapped[str] = mapped_column(String(64), index=True)
    batch_id: Mapped[int] = mapped_column(Integer, ForeignKey("onboarding_batches.id"), index=True)
    article_id: Mapped[int] = mapped_column(Integer, ForeignKey("articles.id"), index=True)
    topic: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    article = relationship("ArticleModel")


class UserInterestModel(Base):
    __tablename__ = "user_interests"
    __table_args__ = (UniqueConstraint("user_id", "topic", name="uq_user_interests_user_topic"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    topic: Mapped[str] = mapped_column(String(64))
    score: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class UserOnboardingStateModel(Base):
    """Per-user completion latch; once completed it is never reset."""

    __tablename__ = "user_onboarding_states"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class OnboardingAllocationLockModel(Base):
    """Per-user row written first in every allocation transaction.

    Writing it serializes concurrent top-ups for the same user, so each one
    counts the rows the previous one committed.
    """

    __tablename__ = "onboarding_allocation_locks"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    locked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
