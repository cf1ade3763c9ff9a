from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import requests

from newsonboard.domain.errors import RetrievalError
from newsonboard.domain.onboarding import CandidateArticle, normalize_topic

logger = logging.getLogger(__name__)


def _parse_published_at(raw: Any) -> Optional[datetime]:
    text = str(raw or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class NewsApiConnector:
    """CandidateSource backed by the NewsAPI top-headlines endpoint.

    One request per topic; any failure aborts the whole fetch.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://newsapi.org",
        language: str = "en",
        timeout_s: float = 20.0,
    ):
        self.api_key = (api_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self.language = language
        self.timeout_s = timeout_s
        self._headers = {"User-Agent": "NewsOnboard/0.1"}

    def fetch(self, topics: Sequence[str], limit: int) -> List[CandidateArticle]:
        if not self.api_key:
            raise RetrievalError("News API key missing. Set NEWS_API_KEY.")

        categories = [t for t in dict.fromkeys(normalize_topic(t) for t in topics) if t]
        if not categories or limit <= 0:
            return []

        page_size = max(1, math.ceil(limit / len(categories)))
        results: List[CandidateArticle] = []
        seen: set[str] = set()

        for category in categories:
            for raw in self.fetch_top_headlines(category=category, page_size=page_size):
                article = self._parse_article(raw, category)
                if article is None or article.url in seen:
                    continue
                seen.add(article.url)
                results.append(article)

        logger.info(f"NewsAPI returned {len(results)} unique articles for {categories}")
        return results[:limit]

    def fetch_top_headlines(self, *, category: str, page_size: int) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/v2/top-headlines"
        params = {
            "category": category,
            "language": self.language,
            "pageSize": min(max(int(page_size), 1), 100),
        }
        headers = dict(self._headers, **{"X-Api-Key": self.api_key})
        try:
            resp = requests.get(url, params=params, headers=headers, timeout=self.timeout_s)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            logger.warning(f"NewsAPI request failed for category={category}: {exc}")
            raise RetrievalError(f"NewsAPI request failed for {category}: {exc}") from exc
        except ValueError as exc:
            raise RetrievalError(f"NewsAPI returned invalid JSON for {category}") from exc

        if not isinstance(payload, dict):
            return []
        if payload.get("status") == "error":
            raise RetrievalError(
                f"NewsAPI error for {category}: {payload.get('code')}: {payload.get('message')}"
            )
        articles = payload.get("articles")
        return articles if isinstance(articles, list) else []

    @staticmethod
    def _parse_article(raw: Dict[str, Any], category: str) -> Optional[CandidateArticle]:
        if not isinstance(raw, dict):
            return None
        url = str(raw.get("url") or "").strip()
        if not url:
            return None
        source = raw.get("source") or {}
        return CandidateArticle(
            url=url,
            title=str(raw.get("title") or "").strip() or url,
            description=str(raw.get("description") or ""),
            image_url=raw.get("urlToImage") or None,
            source_name=(source.get("name") if isinstance(source, dict) else None) or "Unknown",
            author=raw.get("author") or None,
            content=raw.get("content") or None,
            topic=category,
            published_at=_parse_published_at(raw.get("publishedAt")),
        )
