"""
CLI entry point.

Operational commands for the onboarding flow: batch refresh (the manual
counterpart of the worker cron), assignment, responses and status.
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from dotenv import find_dotenv, load_dotenv

from newsonboard.application.config import OnboardingConfig
from newsonboard.application.ports.candidate_source import StaticCandidateSource
from newsonboard.application.services.onboarding_service import OnboardingService
from newsonboard.domain.errors import OnboardingError
from newsonboard.domain.onboarding import CandidateArticle
from newsonboard.utils.logging_config import set_trace_id

load_dotenv(find_dotenv(usecwd=True), override=False)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="newsonboard",
        description="NewsOnboard - onboarding batches, assignments and interest scoring",
    )
    parser.add_argument("--db-url", default=None, help="Database URL (default: NEWSONBOARD_DB_URL)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    refresh_parser = subparsers.add_parser("refresh-batch", help="Generate the onboarding batch")
    refresh_parser.add_argument(
        "--force", action="store_true", help="Generate even if an active batch exists"
    )
    refresh_parser.add_argument(
        "--from-json",
        default=None,
        help="Read candidate articles from a JSON file instead of NewsAPI",
    )

    assign_parser = subparsers.add_parser("assign", help="Assign onboarding articles to a user")
    assign_parser.add_argument("--user", "-u", required=True, help="User ID")
    assign_parser.add_argument("--count", "-n", type=int, default=None, help="Desired count")

    respond_parser = subparsers.add_parser("respond", help="Record a decision on an assignment")
    respond_parser.add_argument("--user", "-u", required=True, help="User ID")
    respond_parser.add_argument("--assignment", "-a", required=True, help="Assignment ID")
    respond_parser.add_argument(
        "--decision", "-d", required=True, choices=["accepted", "rejected"], help="Decision"
    )

    complete_parser = subparsers.add_parser("complete", help="Mark onboarding complete")
    complete_parser.add_argument("--user", "-u", required=True, help="User ID")

    status_parser = subparsers.add_parser("status", help="Show onboarding status")
    status_parser.add_argument("--user", "-u", required=True, help="User ID")

    return parser


def load_candidates_json(path: str) -> List[CandidateArticle]:
    rows = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(rows, dict):
        rows = rows.get("articles") or []
    articles: List[CandidateArticle] = []
    for raw in rows:
        if not isinstance(raw, dict) or not raw.get("url"):
            continue
        published = raw.get("published_at") or raw.get("publishedAt")
        articles.append(
            CandidateArticle(
                url=str(raw["url"]),
                title=str(raw.get("title") or ""),
                description=str(raw.get("description") or ""),
                image_url=raw.get("image_url") or raw.get("urlToImage"),
                source_name=raw.get("source_name"),
                author=raw.get("author"),
                content=raw.get("content"),
                topic=raw.get("topic") or raw.get("category"),
                published_at=datetime.fromisoformat(published) if published else None,
            )
        )
    return articles


def _build_service(args: argparse.Namespace) -> OnboardingService:
    config = OnboardingConfig.from_env()
    if args.db_url:
        config.db_url = args.db_url
    source = None
    if getattr(args, "from_json", None):
        source = StaticCandidateSource(load_candidates_json(args.from_json))
    return OnboardingService.from_config(config, source=source)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def run(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    set_trace_id()
    service = _build_service(args)
    try:
        if args.command == "refresh-batch":
            _emit(service.run_batch_refresh(force=args.force))
        elif args.command == "assign":
            _emit({"assignments": service.get_assignments(args.user, args.count)})
        elif args.command == "respond":
            _emit({"assignment": service.submit_response(args.user, args.assignment, args.decision)})
        elif args.command == "complete":
            _emit(service.complete_onboarding(args.user))
        elif args.command == "status":
            _emit(service.get_status(args.user))
    except OnboardingError as exc:
        _emit({"error": str(exc), "error_type": type(exc).__name__})
        return 1
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
