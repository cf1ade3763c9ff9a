from __future__ import annotations

import random
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from newsonboard.application.config import OnboardingConfig
from newsonboard.application.ports.candidate_source import CandidateSource
from newsonboard.domain.errors import GenerationError, RetrievalError
from newsonboard.domain.onboarding import BATCH_TTL, CandidateArticle
from newsonboard.infrastructure.stores.onboarding_store import OnboardingStore
from newsonboard.utils.logging_config import LogFiles, Logger
from newsonboard.utils.url_utils import canonicalize_url


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def dedupe_candidates(articles: Sequence[CandidateArticle], limit: int) -> List[CandidateArticle]:
    """Keep the first article per canonical URL, in source order, up to `limit`."""
    seen: set[str] = set()
    unique: List[CandidateArticle] = []
    for article in articles:
        key = canonicalize_url(getattr(article, "url", "") or "")
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(article)
        if len(unique) >= limit:
            break
    return unique


class OnboardingBatchService:
    """Owns the lifecycle of the shared onboarding batch.

    The active batch is always resolved from the store at read time; nothing
    is cached in process, so concurrent generators and multiple instances all
    converge on the newest unexpired row.
    """

    def __init__(
        self,
        store: OnboardingStore,
        source: CandidateSource,
        *,
        config: Optional[OnboardingConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._source = source
        self._config = config or OnboardingConfig()
        self._rng = rng or random.Random()
        self._clock = clock or _utcnow

    def get_active_batch(self) -> Optional[Dict[str, Any]]:
        return self._store.get_active_batch(self._clock())

    def get_latest_batch(self) -> Optional[Dict[str, Any]]:
        """Most recent batch regardless of expiry; the degraded-mode fallback."""
        return self._store.get_latest_batch()

    def ensure_active_batch(self) -> Dict[str, Any]:
        current = self.get_active_batch()
        if current is not None:
            return current
        _, batch = self.generate_batch(force=True)
        return batch

    def generate_batch(self, force: bool = False) -> Tuple[bool, Dict[str, Any]]:
        """Return (created, batch). Reuses the active batch unless `force`."""
        if not force:
            current = self.get_active_batch()
            if current is not None:
                return False, current

        topics = self._pick_topics()
        Logger.info(f"Generating onboarding batch for topics={topics}", file=LogFiles.BATCH)

        fetched = self._fetch_candidates(topics)
        candidates = dedupe_candidates(fetched, self._config.candidate_limit)
        if len(candidates) < self._config.min_batch_size:
            Logger.error(
                f"Only {len(candidates)} distinct candidates fetched, "
                f"need {self._config.min_batch_size}",
                file=LogFiles.BATCH,
            )
            raise GenerationError(
                f"Not enough articles to build onboarding batch: "
                f"{len(candidates)} < {self._config.min_batch_size}"
            )

        generated_at = self._clock()
        batch = self._store.create_batch(
            articles=candidates,
            topics=topics,
            generated_at=generated_at,
            expires_at=generated_at + BATCH_TTL,
        )
        Logger.info(
            f"Created onboarding batch id={batch['id']} articles={batch['article_count']} "
            f"expires_at={batch['expires_at']}",
            file=LogFiles.BATCH,
        )
        return True, batch

    def _pick_topics(self) -> List[str]:
        pool = list(dict.fromkeys(self._config.topics))
        count = min(max(int(self._config.topics_per_batch), 1), len(pool))
        return self._rng.sample(pool, count)

    def _fetch_candidates(self, topics: Sequence[str]) -> List[CandidateArticle]:
        """Single attempt under a hard deadline.

        On timeout the worker thread is abandoned, not cancelled. It is not a
        daemon thread, so interpreter exit still joins it: a source that never
        returns keeps a CLI process alive after the RetrievalError. Sources
        must bound their own I/O; NewsApiConnector passes `timeout_s` to
        every request.
        """
        timeout_s = self._config.fetch_timeout_s
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="candidate-fetch")
        future = executor.submit(self._source.fetch, list(topics), self._config.candidate_limit)
        try:
            return list(future.result(timeout=timeout_s) or [])
        except FutureTimeoutError as exc:
            Logger.error(f"Candidate source timed out after {timeout_s}s", file=LogFiles.ERROR)
            raise RetrievalError(f"candidate source timed out after {timeout_s}s") from exc
        except RetrievalError as exc:
            Logger.error(f"Candidate source failed: {exc}", file=LogFiles.ERROR)
            raise
        except Exception as exc:
            Logger.error(f"Candidate source failed: {exc}", file=LogFiles.ERROR)
            raise RetrievalError(f"candidate source failed: {exc}") from exc
        finally:
            executor.shutdown(wait=False)
