from __future__ import annotations

import random
from datetime import timedelta

import pytest

from conftest import FakeSource
from newsonboard.application.config import OnboardingConfig
from newsonboard.application.services.onboarding_assignment_service import (
    OnboardingAssignmentService,
)
from newsonboard.application.services.onboarding_batch_service import OnboardingBatchService
from newsonboard.application.services.onboarding_response_service import (
    OnboardingResponseService,
)
from newsonboard.domain.errors import (
    AuthorizationError,
    DecisionConflictError,
    NotFoundError,
    ValidationError,
)
from newsonboard.domain.onboarding import AssignmentStatus, CandidateArticle
from newsonboard.infrastructure.stores.onboarding_store import OnboardingStore

ARTICLES = [
    CandidateArticle(url="https://news.example.com/a", title="A", topic="technology"),
    CandidateArticle(url="https://news.example.com/b", title="B", topic="technology"),
    CandidateArticle(url="https://news.example.com/c", title="C", topic="sports"),
]


@pytest.fixture()
def env(db_url, clock):
    store = OnboardingStore(db_url=db_url)
    batches = OnboardingBatchService(
        store, FakeSource(), config=OnboardingConfig(), rng=random.Random(1), clock=clock
    )
    now = clock()
    batch = store.create_batch(
        articles=ARTICLES,
        topics=["technology", "sports"],
        generated_at=now,
        expires_at=now + timedelta(hours=24),
    )
    assignments = OnboardingAssignmentService(store, batches, rng=random.Random(1), clock=clock)
    responses = OnboardingResponseService(store, clock=clock)
    return store, batch, assignments, responses


def _by_title(rows):
    return {r["article"]["title"]: r for r in rows}


def test_decisions_score_topics_and_latch_completion(env):
    store, batch, assignments, responses = env
    rows = _by_title(assignments.assign_items("u1", 3, batch=batch))

    responses.record_response("u1", rows["A"]["id"], "accepted")
    responses.record_response("u1", rows["B"]["id"], "accepted")
    assert store.get_onboarding_state("u1") is None

    responses.record_response("u1", rows["C"]["id"], "rejected")

    assert store.list_interest_scores("u1") == {"technology": 2, "sports": -1}
    state = store.get_onboarding_state("u1")
    assert state["completed"] is True
    assert state["completed_at"] is not None


def test_resubmitting_same_decision_is_a_no_op(env):
    store, batch, assignments, responses = env
    row = _by_title(assignments.assign_items("u1", 3, batch=batch))["A"]

    first = responses.record_response("u1", row["id"], "accepted")
    again = responses.record_response("u1", row["id"], "ACCEPTED")

    assert first["status"] == again["status"] == "accepted"
    assert again["decided_at"] == first["decided_at"]
    assert store.list_interest_scores("u1") == {"technology": 1}


def test_conflicting_decision_is_rejected(env):
    store, batch, assignments, responses = env
    row = _by_title(assignments.assign_items("u1", 3, batch=batch))["C"]
    responses.record_response("u1", row["id"], "rejected")

    with pytest.raises(DecisionConflictError):
        responses.record_response("u1", row["id"], "accepted")
    assert store.get_assignment(row["id"])["status"] == "rejected"
    assert store.list_interest_scores("u1") == {"sports": -1}


def test_unknown_assignment_is_not_found(env):
    _, _, _, responses = env
    with pytest.raises(NotFoundError):
        responses.record_response("u1", "does-not-exist", "accepted")


def test_foreign_assignment_is_unauthorized(env):
    store, batch, assignments, responses = env
    row = assignments.assign_items("owner", 1, batch=batch)[0]

    with pytest.raises(AuthorizationError):
        responses.record_response("intruder", row["id"], "accepted")
    assert store.get_assignment(row["id"])["status"] == "pending"


@pytest.mark.parametrize("decision", ["pending", "maybe", None])
def test_invalid_decision_is_validation_error(env, decision):
    _, batch, assignments, responses = env
    row = assignments.assign_items("u1", 1, batch=batch)[0]
    with pytest.raises(ValidationError):
        responses.record_response("u1", row["id"], decision)


def test_untagged_article_counts_toward_completion_without_score(db_url, clock):
    store = OnboardingStore(db_url=db_url)
    batches = OnboardingBatchService(store, FakeSource(), clock=clock)
    now = clock()
    batch = store.create_batch(
        articles=[CandidateArticle(url="https://news.example.com/untagged", title="U")],
        topics=[],
        generated_at=now,
        expires_at=now + timedelta(hours=24),
    )
    row = OnboardingAssignmentService(store, batches, clock=clock).assign_items(
        "u1", 1, batch=batch
    )[0]

    OnboardingResponseService(store, clock=clock).record_response("u1", row["id"], "accepted")

    assert store.list_interest_scores("u1") == {}
    assert store.get_onboarding_state("u1")["completed"] is True


def test_completion_waits_for_pending_in_every_batch(env, clock):
    store, batch, assignments, responses = env
    first = assignments.assign_items("u1", 1, batch=batch)[0]

    now = clock()
    other = store.create_batch(
        articles=[CandidateArticle(url="https://news.example.com/d", topic="health")],
        topics=["health"],
        generated_at=now,
        expires_at=now + timedelta(hours=24),
    )
    second = assignments.assign_items("u1", 1, batch=other)[0]

    responses.record_response("u1", first["id"], "accepted")
    assert store.get_onboarding_state("u1") is None

    responses.record_response("u1", second["id"], "rejected")
    assert store.get_onboarding_state("u1")["completed"] is True


def test_manual_completion_and_latch_is_never_reset(env):
    store, batch, assignments, responses = env
    assignments.assign_items("u1", 1, batch=batch)

    state = responses.complete_onboarding("u1")
    assert state["completed"] is True
    completed_at = state["completed_at"]

    assignments.assign_items("u1", 3, batch=batch)
    again = responses.complete_onboarding("u1")
    assert again["completed"] is True
    assert again["completed_at"] == completed_at
    assert store.get_onboarding_state("u1")["completed"] is True


def test_accept_reject_accept_sequence_and_late_resubmission(env):
    store, batch, assignments, responses = env
    rows = _by_title(assignments.assign_items("u1", 3, batch=batch))

    def pending():
        return store.count_assignments("u1", status=AssignmentStatus.PENDING)

    responses.record_response("u1", rows["A"]["id"], "accepted")
    assert store.list_interest_scores("u1") == {"technology": 1}
    assert pending() == 2
    assert store.get_onboarding_state("u1") is None

    responses.record_response("u1", rows["B"]["id"], "rejected")
    assert store.list_interest_scores("u1") == {"technology": 0}
    assert pending() == 1

    responses.record_response("u1", rows["C"]["id"], "accepted")
    assert store.list_interest_scores("u1") == {"technology": 0, "sports": 1}
    assert pending() == 0
    state = store.get_onboarding_state("u1")
    assert state["completed"] is True
    assert state["completed_at"] is not None

    responses.record_response("u1", rows["A"]["id"], "accepted")
    assert store.list_interest_scores("u1") == {"technology": 0, "sports": 1}
