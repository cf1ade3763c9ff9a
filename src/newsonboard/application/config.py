from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List

from newsonboard.domain.onboarding import (
    DEFAULT_ASSIGNMENT_COUNT,
    DEFAULT_CANDIDATE_LIMIT,
    DEFAULT_TOPICS_PER_BATCH,
    NEWS_TOPICS,
)
from newsonboard.infrastructure.stores.sqlalchemy_db import get_db_url


def _env_list(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


@dataclass
class OnboardingConfig:
    db_url: str = ""

    # candidate source
    news_api_key: str = ""
    news_api_base_url: str = "https://newsapi.org"
    language: str = "en"
    fetch_timeout_s: float = 20.0

    # batch shape
    topics: List[str] = field(default_factory=lambda: list(NEWS_TOPICS))
    topics_per_batch: int = DEFAULT_TOPICS_PER_BATCH
    candidate_limit: int = DEFAULT_CANDIDATE_LIMIT
    assignment_count: int = DEFAULT_ASSIGNMENT_COUNT

    @property
    def min_batch_size(self) -> int:
        return self.assignment_count

    @classmethod
    def from_env(cls) -> "OnboardingConfig":
        return cls(
            db_url=get_db_url(),
            news_api_key=(
                os.getenv("NEWS_API_KEY") or os.getenv("NEXT_PUBLIC_NEWS_API_KEY") or ""
            ).strip(),
            news_api_base_url=os.getenv("NEWSONBOARD_NEWS_API_BASE_URL", "https://newsapi.org").strip()
            or "https://newsapi.org",
            language=os.getenv("NEWSONBOARD_LANGUAGE", "en").strip() or "en",
            fetch_timeout_s=float(os.getenv("NEWSONBOARD_FETCH_TIMEOUT_SECONDS", "20")),
            topics=_env_list("NEWSONBOARD_TOPICS", ",".join(NEWS_TOPICS)) or list(NEWS_TOPICS),
            topics_per_batch=int(
                os.getenv("NEWSONBOARD_TOPICS_PER_BATCH", str(DEFAULT_TOPICS_PER_BATCH))
            ),
            candidate_limit=int(
                os.getenv("NEWSONBOARD_CANDIDATE_LIMIT", str(DEFAULT_CANDIDATE_LIMIT))
            ),
            assignment_count=int(
                os.getenv("NEWSONBOARD_ASSIGNMENT_COUNT", str(DEFAULT_ASSIGNMENT_COUNT))
            ),
        )
