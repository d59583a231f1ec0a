"""ARQ worker for the bridge's periodic jobs.

Schedules member sync, attendance pull and queue retry via ARQ cron jobs
backed by Redis. Cron jobs are unique, so a job never overlaps itself.
Run with: arq services.bridge_service.worker.WorkerSettings
"""

from arq import cron
from libs.common.arq_config import every_n_minutes, get_redis_settings
from libs.common.config import get_settings
from libs.common.logging import configure_logging, get_logger

logger = get_logger(__name__)

settings = get_settings()


async def startup(ctx: dict):
    """Build the bridge components once per worker process."""
    from services.bridge_service.dependencies import (
        get_attendance_ingestor,
        get_delivery_retrier,
        get_sync_orchestrator,
    )

    configure_logging()
    ctx["orchestrator"] = get_sync_orchestrator()
    ctx["ingestor"] = get_attendance_ingestor()
    ctx["retrier"] = get_delivery_retrier()
    logger.info(f"Bridge worker started for site {settings.SITE_ID}")


# ── Wrapper functions (ARQ requires top-level async callables) ──


async def task_sync_members(ctx: dict):
    """Reconcile all site members onto the device."""
    from services.bridge_service.tasks import sync_members

    logger.info("Running: sync_members")
    await sync_members(ctx["orchestrator"])


async def task_pull_attendance(ctx: dict):
    """Pull recent access events from the device."""
    from services.bridge_service.tasks import pull_attendance

    logger.info("Running: pull_attendance")
    await pull_attendance(ctx["ingestor"])


async def task_retry_queue(ctx: dict):
    """Retry delivery of queued attendance events."""
    from services.bridge_service.tasks import retry_queue

    await retry_queue(ctx["retrier"])


# ── Worker configuration ──


class WorkerSettings:
    """ARQ worker settings with cron job schedules."""

    redis_settings = get_redis_settings()
    on_startup = startup

    functions = [
        task_sync_members,
        task_pull_attendance,
        task_retry_queue,
    ]

    cron_jobs = [
        cron(
            task_sync_members,
            minute=every_n_minutes(settings.MEMBER_SYNC_INTERVAL),
            run_at_startup=True,
            unique=True,
        ),
        cron(
            task_pull_attendance,
            minute=every_n_minutes(settings.ATTENDANCE_PULL_INTERVAL),
            run_at_startup=False,
            unique=True,
        ),
        cron(
            task_retry_queue,
            minute=every_n_minutes(settings.QUEUE_RETRY_INTERVAL),
            run_at_startup=True,
            unique=True,
        ),
    ]
