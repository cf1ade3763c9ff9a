"""add onboarding tables

Revision ID: 0001_onboarding_tables
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import context, op


revision = "0001_onboarding_tables"
down_revision = None
branch_labels = None
depends_on = None


def _is_offline() -> bool:
    try:
        return bool(context.is_offline_mode())
    except Exception:
        return False


def _inspector():
    return sa.inspect(op.get_bind())


def _has_table(name: str) -> bool:
    if _is_offline():
        return False
    return bool(_inspector().has_table(name))


def _has_index(table: str, index_name: str) -> bool:
    if _is_offline() or not _has_table(table):
        return False
    names = {str(i.get("name") or "") for i in _inspector().get_indexes(table)}
    return index_name in names


def _create_index(name: str, table: str, cols: list[str], *, unique: bool = False) -> None:
    if _is_offline() or not _has_index(table, name):
        op.create_index(name, table, cols, unique=unique)


_INDEXES = [
    ("ix_articles_url", "articles", ["url"], True),
    ("ix_articles_topic", "articles", ["topic"], False),
    ("ix_onboarding_batches_generated_at", "onboarding_batches", ["generated_at"], False),
    ("ix_onboarding_batches_expires_at", "onboarding_batches", ["expires_at"], False),
    ("ix_onboarding_batch_articles_batch_id", "onboarding_batch_articles", ["batch_id"], False),
    ("ix_onboarding_batch_articles_article_id", "onboarding_batch_articles", ["article_id"], False),
    ("ix_onboarding_assignments_assignment_id", "onboarding_assignments", ["assignment_id"], True),
    ("ix_onboarding_assignments_user_id", "onboarding_assignments", ["user_id"], False),
    ("ix_onboarding_assignments_batch_id", "onboarding_assignments", ["batch_id"], False),
    ("ix_onboarding_assignments_article_id", "onboarding_assignments", ["article_id"], False),
    ("ix_onboarding_assignments_status", "onboarding_assignments", ["status"], False),
    ("ix_onboarding_assignments_created_at", "onboarding_assignments", ["created_at"], False),
    ("ix_user_interests_user_id", "user_interests", ["user_id"], False),
]


def upgrade() -> None:
    if not _has_table("articles"):
        op.create_table(
            "articles",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("url", sa.String(length=1024), nullable=False),
            sa.Column("title", sa.Text(), nullable=False, server_default=""),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("image_url", sa.String(length=1024), nullable=True),
            sa.Column("source_name", sa.String(length=256), nullable=False, server_default="Unknown"),
            sa.Column("author", sa.String(length=256), nullable=True),
            sa.Column("content", sa.Text(), nullable=True),
            sa.Column("topic", sa.String(length=64), nullable=True),
            sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )

    if not _has_table("onboarding_batches"):
        op.create_table(
            "onboarding_batches",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("topics_json", sa.Text(), nullable=False, server_default="[]"),
        )

    if not _has_table("onboarding_batch_articles"):
        op.create_table(
            "onboarding_batch_articles",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column(
                "batch_id", sa.Integer(), sa.ForeignKey("onboarding_batches.id"), nullable=False
            ),
            sa.Column("article_id", sa.Integer(), sa.ForeignKey("articles.id"), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("topic", sa.String(length=64), nullable=True),
            sa.UniqueConstraint(
                "batch_id", "article_id", name="uq_onboarding_batch_articles_batch_article"
            ),
        )

    if not _has_table("onboarding_assignments"):
        op.create_table(
            "onboarding_assignments",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("assignment_id", sa.String(length=32), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column(
                "batch_id", sa.Integer(), sa.ForeignKey("onboarding_batches.id"), nullable=False
            ),
            sa.Column("article_id", sa.Integer(), sa.ForeignKey("articles.id"), nullable=False),
            sa.Column("topic", sa.String(length=64), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint(
                "user_id",
                "batch_id",
                "article_id",
                name="uq_onboarding_assignments_user_batch_article",
            ),
        )

    if not _has_table("user_interests"):
        op.create_table(
            "user_interests",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("topic", sa.String(length=64), nullable=False),
            sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("user_id", "topic", name="uq_user_interests_user_topic"),
        )

    if not _has_table("onboarding_allocation_locks"):
        op.create_table(
            "onboarding_allocation_locks",
            sa.Column("user_id", sa.String(length=64), primary_key=True),
            sa.Column("locked_at", sa.DateTime(timezone=True), nullable=False),
        )

    if not _has_table("user_onboarding_states"):
        op.create_table(
            "user_onboarding_states",
            sa.Column("user_id", sa.String(length=64), primary_key=True),
            sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        )

    for name, table, cols, unique in _INDEXES:
        _create_index(name, table, cols, unique=unique)


def downgrade() -> None:
    for name, table, _, _ in reversed(_INDEXES):
        if _has_index(table, name):
            op.drop_index(name, table_name=table)

    for table in [
        "onboarding_allocation_locks",
        "user_onboarding_states",
        "user_interests",
        "onboarding_assignments",
        "onboarding_batch_articles",
        "onboarding_batches",
        "articles",
    ]:
        if _has_table(table):
            op.drop_table(table)
