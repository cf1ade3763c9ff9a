from __future__ import annotations

import asyncio
import os
from typing import Any, Dict

from arq import cron
from arq.connections import RedisSettings
from dotenv import find_dotenv, load_dotenv

from newsonboard.application.config import OnboardingConfig
from newsonboard.application.services.onboarding_service import OnboardingService
from newsonboard.domain.errors import OnboardingError
from newsonboard.utils.logging_config import LogFiles, Logger, set_trace_id

load_dotenv(find_dotenv(usecwd=True), override=False)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y")


def _redis_settings() -> RedisSettings:
    return RedisSettings(
        host=os.getenv("NEWSONBOARD_REDIS_HOST", "127.0.0.1"),
        port=int(os.getenv("NEWSONBOARD_REDIS_PORT", "6379")),
        database=int(os.getenv("NEWSONBOARD_REDIS_DB", "0")),
        password=os.getenv("NEWSONBOARD_REDIS_PASSWORD") or None,
    )


def _onboarding_service() -> OnboardingService:
    return OnboardingService.from_config(OnboardingConfig.from_env())


async def refresh_onboarding_batch_job(ctx, *, force: bool = False) -> Dict[str, Any]:
    """
    Regenerate the onboarding batch if none is active (or always, with `force`).

    Single attempt: failures are reported in the result and the next cron
    cycle is the retry.
    """
    trace_id = set_trace_id()
    Logger.info(f"Onboarding batch refresh started force={force}", file=LogFiles.WORKER)

    service = ctx.get("onboarding_service") or _onboarding_service()
    try:
        summary = await asyncio.to_thread(service.run_batch_refresh, force)
    except OnboardingError as exc:
        Logger.error(
            f"Onboarding batch refresh failed: {type(exc).__name__}: {exc}", file=LogFiles.WORKER
        )
        return {
            "trace_id": trace_id,
            "status": "error",
            "error_type": type(exc).__name__,
            "error": str(exc),
        }

    Logger.info(
        f"Onboarding batch refresh finished created={summary['created']} "
        f"batch={summary['batch']['id']}",
        file=LogFiles.WORKER,
    )
    return {"trace_id": trace_id, "status": "ok", **summary}


async def cron_refresh_onboarding_batch(ctx) -> Dict[str, Any]:
    """Cron entrypoint: refresh without forcing, reusing an active batch."""
    return await refresh_onboarding_batch_job(ctx, force=False)


def _build_batch_refresh_cron_jobs():
    if not _env_bool("NEWSONBOARD_BATCH_CRON_ENABLED", True):
        return []

    minute = int(os.getenv("NEWSONBOARD_BATCH_CRON_MINUTE", "0"))
    hour = int(os.getenv("NEWSONBOARD_BATCH_CRON_HOUR", "6"))
    run_at_startup = _env_bool("NEWSONBOARD_BATCH_CRON_RUN_AT_STARTUP", False)
    return [
        cron(
            cron_refresh_onboarding_batch,
            minute=minute,
            hour=hour,
            run_at_startup=run_at_startup,
        )
    ]


class WorkerSettings:
    functions = [refresh_onboarding_batch_job]
    redis_settings = _redis_settings()

    cron_jobs = _build_batch_refresh_cron_jobs()
