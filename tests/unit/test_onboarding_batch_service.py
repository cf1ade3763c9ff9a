from __future__ import annotations

import random
from datetime import datetime, timedelta

import pytest

from conftest import FakeSource, make_articles
from newsonboard.application.config import OnboardingConfig
from newsonboard.application.services.onboarding_batch_service import (
    OnboardingBatchService,
    dedupe_candidates,
)
from newsonboard.domain.errors import GenerationError, RetrievalError
from newsonboard.domain.onboarding import CandidateArticle
from newsonboard.infrastructure.stores.onboarding_store import OnboardingStore


def _service(db_url, source, clock, **config):
    store = OnboardingStore(db_url=db_url)
    service = OnboardingBatchService(
        store,
        source,
        config=OnboardingConfig(**config),
        rng=random.Random(7),
        clock=clock,
    )
    return store, service


def test_generate_batch_sets_24h_ttl_and_topics(db_url, clock):
    source = FakeSource(make_articles(10))
    _, service = _service(db_url, source, clock)

    created, batch = service.generate_batch()

    assert created is True
    assert batch["article_count"] == 10
    generated = datetime.fromisoformat(batch["generated_at"])
    expires = datetime.fromisoformat(batch["expires_at"])
    assert expires - generated == timedelta(hours=24)

    topics, limit = source.calls[0]
    assert limit == 30
    assert len(topics) == 3
    assert len(set(topics)) == 3
    assert batch["topics"] == topics


def test_generate_batch_reuses_active_unless_forced(db_url, clock):
    source = FakeSource(make_articles(10))
    store, service = _service(db_url, source, clock)

    _, first = service.generate_batch()
    created, again = service.generate_batch(force=False)
    assert created is False
    assert again["id"] == first["id"]
    assert len(source.calls) == 1

    clock.advance(minutes=1)
    created, forced = service.generate_batch(force=True)
    assert created is True
    assert forced["id"] != first["id"]
    assert service.get_active_batch()["id"] == forced["id"]
    assert store.count_batches() == 2


def test_expired_batch_triggers_regeneration(db_url, clock):
    source = FakeSource(make_articles(10))
    _, service = _service(db_url, source, clock)
    _, first = service.generate_batch()

    clock.advance(hours=25)
    assert service.get_active_batch() is None
    fresh = service.ensure_active_batch()

    assert fresh["id"] != first["id"]
    assert service.get_latest_batch()["id"] == fresh["id"]


def test_generate_batch_rejects_short_candidate_sets(db_url, clock):
    store, service = _service(db_url, FakeSource(make_articles(4)), clock)

    with pytest.raises(GenerationError):
        service.generate_batch(force=True)
    assert store.count_batches() == 0


def test_source_failure_is_retrieval_error_and_persists_nothing(db_url, clock):
    store, service = _service(db_url, FakeSource(error=RuntimeError("boom")), clock)
    with pytest.raises(RetrievalError):
        service.generate_batch()

    _, service2 = _service(db_url, FakeSource(error=RetrievalError("down")), clock)
    with pytest.raises(RetrievalError, match="down"):
        service2.generate_batch()
    assert store.count_batches() == 0


def test_source_timeout_is_retrieval_error(db_url, clock):
    source = FakeSource(make_articles(10), delay_s=1.0)
    store, service = _service(db_url, source, clock, fetch_timeout_s=0.05)

    with pytest.raises(RetrievalError, match="timed out"):
        service.generate_batch()
    assert store.count_batches() == 0


def test_duplicate_urls_count_once_toward_minimum(db_url, clock):
    articles = make_articles(6) + [
        CandidateArticle(url="https://news.example.com/story-0?utm_source=x", topic="sports"),
        CandidateArticle(url="https://NEWS.example.com/story-1/", topic="sports"),
    ]
    store, service = _service(db_url, FakeSource(articles), clock)

    with pytest.raises(GenerationError):
        service.generate_batch()
    assert store.count_batches() == 0


def test_dedupe_candidates_keeps_first_and_respects_limit():
    articles = [
        CandidateArticle(url="https://a.example/x", title="first"),
        CandidateArticle(url="https://a.example/x#frag", title="dup"),
        CandidateArticle(url="", title="no url"),
        CandidateArticle(url="https://a.example/y"),
        CandidateArticle(url="https://a.example/z"),
    ]
    unique = dedupe_candidates(articles, limit=2)
    assert [a.title for a in unique] == ["first", ""]


def test_topic_selection_is_reproducible_with_seeded_rng(tmp_path, clock):
    picks = []
    for name in ("a", "b"):
        source = FakeSource(make_articles(10))
        _, service = _service(f"sqlite:///{tmp_path / name}.db", source, clock)
        service.generate_batch()
        picks.append(source.calls[0][0])
    assert picks[0] == picks[1]
