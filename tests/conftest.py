# tests/conftest.py
"""
Pytest configuration and fixtures.
Adds src/ to sys.path so `import newsonboard` works without installing.
"""

import os
import sys
import tempfile
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

project_root = Path(__file__).parent.parent
src_root = project_root / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

# Keep file logs out of the working tree.
os.environ.setdefault("NEWSONBOARD_LOG_DIR", tempfile.mkdtemp(prefix="newsonboard-logs-"))

from newsonboard.domain.onboarding import CandidateArticle  # noqa: E402


class FixedClock:
    """Deterministic clock; advance it explicitly."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def advance(self, **kwargs) -> None:
        with self._lock:
            self.now = self.now + timedelta(**kwargs)


class FakeSource:
    """Candidate source returning a fixed list, recording every call."""

    def __init__(
        self,
        articles: Sequence[CandidateArticle] = (),
        *,
        error: Optional[Exception] = None,
        delay_s: float = 0.0,
    ):
        self.articles = list(articles)
        self.error = error
        self.delay_s = delay_s
        self.calls: List[tuple] = []

    def fetch(self, topics, limit):
        self.calls.append((list(topics), limit))
        if self.delay_s:
            time.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return self.articles[:limit]


def make_articles(count: int, *, topic: Optional[str] = "technology", prefix: str = "story"):
    return [
        CandidateArticle(
            url=f"https://news.example.com/{prefix}-{i}",
            title=f"{prefix.title()} {i}",
            description=f"Description {i}",
            source_name="Example News",
            topic=topic,
        )
        for i in range(count)
    ]


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'onboarding.db'}"


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()
