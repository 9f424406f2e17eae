from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from subscription_engine.core.database import SessionLocal
from subscription_engine.core.settings import settings
from subscription_engine.services.messaging import get_transport
from subscription_engine.services.reminders import SweepReport, run_reminder_sweep


logger = logging.getLogger(__name__)

REMINDER_JOB_ID = "subscription_reminder_sweep"

_scheduler: BackgroundScheduler | None = None


def run_scheduled_sweep() -> SweepReport | None:
    db = SessionLocal()
    try:
        report = run_reminder_sweep(db, get_transport())
        return report
    except Exception:
        db.rollback()
        logger.exception("scheduler.sweep.error")
        return None
    finally:
        db.close()


def build_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler(
        job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 3600},
        timezone="UTC",
    )
    hour = min(23, max(0, int(settings.reminder_sweep_hour_utc)))
    scheduler.add_job(
        run_scheduled_sweep,
        trigger=CronTrigger(hour=hour, minute=0, timezone="UTC"),
        id=REMINDER_JOB_ID,
        name="Subscription expiry reminders",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


def start_scheduler() -> BackgroundScheduler | None:
    global _scheduler
    if not settings.reminder_scheduler_enabled:
        logger.info("scheduler.disabled")
        return None
    if _scheduler is not None and _scheduler.running:
        return _scheduler
    _scheduler = build_scheduler()
    _scheduler.start()
    logger.info("scheduler.started job=%s hour_utc=%s", REMINDER_JOB_ID, settings.reminder_sweep_hour_utc)
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is None:
        return
    if _scheduler.running:
        _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("scheduler.stopped")
