from __future__ import annotations

import random
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import FakeSource, make_articles
from newsonboard.application.config import OnboardingConfig
from newsonboard.application.services.onboarding_service import OnboardingService
from newsonboard.domain.errors import GenerationError


def _service(db_url, clock, source):
    return OnboardingService.from_config(
        OnboardingConfig(db_url=db_url), source=source, rng=random.Random(5), clock=clock
    )


def test_full_onboarding_flow(db_url, clock):
    source = FakeSource(make_articles(5, topic="technology") + make_articles(5, topic="sports", prefix="match"))
    service = _service(db_url, clock, source)

    rows = service.get_assignments("u1")
    assert len(rows) == 7
    assert service.get_status("u1")["pending"] == 7

    for row in rows:
        decision = "accepted" if row["topic"] == "technology" else "rejected"
        service.submit_response("u1", row["id"], decision)

    scores = service.store.list_interest_scores("u1")
    tech = sum(1 for r in rows if r["topic"] == "technology")
    sports = len(rows) - tech
    assert scores.get("technology", 0) == tech
    assert scores.get("sports", 0) == -sports

    status = service.get_status("u1")
    assert status == {
        "user_id": "u1",
        "completed": True,
        "completed_at": status["completed_at"],
        "pending": 0,
        "total": 7,
    }
    assert status["completed_at"] is not None


def test_refresh_reuses_then_forces(db_url, clock):
    service = _service(db_url, clock, FakeSource(make_articles(10)))

    first = service.run_batch_refresh()
    second = service.run_batch_refresh()
    clock.advance(seconds=1)
    forced = service.run_batch_refresh(force=True)

    assert first["created"] is True
    assert second["created"] is False
    assert second["batch"]["id"] == first["batch"]["id"]
    assert forced["created"] is True
    assert "articles" not in forced["batch"]


def test_get_assignments_falls_back_to_latest_batch(db_url, clock):
    source = FakeSource(make_articles(10))
    service = _service(db_url, clock, source)
    stale = service.run_batch_refresh()["batch"]

    clock.advance(hours=30)
    source.articles = make_articles(3, prefix="thin")

    rows = service.get_assignments("u1", 4)
    assert len(rows) == 4
    assert {r["batch_id"] for r in rows} == {stale["id"]}


def test_get_assignments_without_any_batch_raises(db_url, clock):
    service = _service(db_url, clock, FakeSource(make_articles(2)))
    with pytest.raises(GenerationError):
        service.get_assignments("u1")


def test_concurrent_assign_items_stays_at_desired_count(db_url, clock):
    service = _service(db_url, clock, FakeSource(make_articles(20)))
    service.run_batch_refresh()
    barrier = threading.Barrier(4)

    def _assign(_):
        barrier.wait()
        return service.get_assignments("u1", 7)

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(_assign, range(4)))

    rows = service.assignments.list_assignments("u1")
    article_ids = [r["article_id"] for r in rows]
    assert len(article_ids) == len(set(article_ids))
    assert len(rows) == 7


def test_concurrent_duplicate_responses_score_once(db_url, clock):
    service = _service(db_url, clock, FakeSource(make_articles(10)))
    target = service.get_assignments("u1", 2)[0]
    barrier = threading.Barrier(5)

    def _respond(_):
        barrier.wait()
        return service.submit_response("u1", target["id"], "accepted")

    with ThreadPoolExecutor(max_workers=5) as pool:
        results = list(pool.map(_respond, range(5)))

    assert {r["status"] for r in results} == {"accepted"}
    assert service.store.list_interest_scores("u1") == {"technology": 1}
    assert service.get_status("u1")["pending"] == 1


def test_pending_from_expired_batch_is_served_until_completion(db_url, clock):
    source = FakeSource(make_articles(10))
    service = _service(db_url, clock, source)

    first = service.get_assignments("u1")
    service.submit_response("u1", first[0]["id"], "accepted")

    clock.advance(hours=25)
    source.articles = make_articles(10, topic="sports", prefix="fresh")

    leftover = service.get_assignments("u1")
    assert [r["id"] for r in leftover] == [r["id"] for r in first[1:]]
    assert {r["batch_id"] for r in leftover} == {first[0]["batch_id"]}
    assert service.store.count_batches() == 1

    for row in leftover:
        service.submit_response("u1", row["id"], "rejected")

    status = service.get_status("u1")
    assert status["completed"] is True
    assert status["pending"] == 0
    assert status["total"] == 7

    again = service.get_assignments("u1")
    assert len(again) == 7
    assert service.get_status("u1")["total"] == 7


def test_pending_in_current_batch_still_tops_up(db_url, clock):
    service = _service(db_url, clock, FakeSource(make_articles(10)))

    assert len(service.get_assignments("u1", 3)) == 3
    rows = service.get_assignments("u1", 7)

    assert len(rows) == 7
    assert len({r["batch_id"] for r in rows}) == 1
