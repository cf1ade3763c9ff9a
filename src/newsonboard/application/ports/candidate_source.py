"""CandidateSource: supplies unique candidate articles for a set of topics."""

from __future__ import annotations

from typing import List, Protocol, Sequence, runtime_checkable

from newsonboard.domain.onboarding import CandidateArticle


@runtime_checkable
class CandidateSource(Protocol):
    """Abstract interface for candidate article providers.

    A call is a single attempt: implementations raise RetrievalError on any
    transport or upstream failure and never retry internally.
    """

    def fetch(self, topics: Sequence[str], limit: int) -> List[CandidateArticle]:
        """
        Fetch up to `limit` articles spread over the distinct `topics`.

        Args:
            topics: Distinct topic names to draw from
            limit: Combined maximum number of articles

        Returns:
            Articles unique by URL, each tagged with the topic it was fetched for
        """
        ...


class StaticCandidateSource:
    """Serves a fixed article list regardless of topic; used for offline runs."""

    def __init__(self, articles: Sequence[CandidateArticle]):
        self._articles = list(articles)

    def fetch(self, topics: Sequence[str], limit: int) -> List[CandidateArticle]:
        return self._articles[: max(int(limit), 0)]
