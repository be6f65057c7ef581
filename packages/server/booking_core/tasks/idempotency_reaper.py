"""
ARQ background task: purge idempotency records past their retention window.

Scheduled every 10 minutes. Deletes in batches so a large backlog never holds
a long write transaction.
"""

from __future__ import annotations

import structlog
from arq import cron
from arq.connections import RedisSettings

from booking_core.core.config import get_settings
from booking_core.core.database import get_session_context
from booking_core.core.logging_config import configure_logging
from booking_core.services.idempotency import purge_expired

log = structlog.get_logger()
settings = get_settings()

MAX_BATCHES_PER_RUN = 20


async def purge_expired_idempotency_records(ctx: dict) -> int:
    """Delete expired records. Returns the number removed."""
    batch_size = settings.idempotency_reaper_batch_size
    total = 0
    for _ in range(MAX_BATCHES_PER_RUN):
        async with get_session_context() as session:
            removed = await purge_expired(session, limit=batch_size)
        total += removed
        if removed < batch_size:
            break

    if total:
        log.info("idempotency_reaper.purged", count=total)
    return total


async def startup(ctx: dict) -> None:
    configure_logging(settings.log_level, settings.log_format)
    log.info("idempotency_reaper.started")


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [purge_expired_idempotency_records]
    cron_jobs = [
        cron(purge_expired_idempotency_records, minute=set(range(0, 60, 10)), run_at_startup=True),
    ]
    on_startup = startup
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
