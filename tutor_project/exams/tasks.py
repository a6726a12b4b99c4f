import logging
import os
from datetime import datetime, timezone as dtz

from apscheduler.schedulers.background import BackgroundScheduler
from django.conf import settings
from django.core.management import call_command

logger = logging.getLogger(__name__)

# Single scheduler per Python process
_scheduler = None


def _get_sweep_interval_minutes() -> int:
    """
    Minutes between overdue-attempt sweeps.
      settings.EXAM_SWEEP_INTERVAL_MIN = 2
      # or env: EXAM_SWEEP_INTERVAL_MIN=2
    Falls back to 1 for missing or invalid values.
    """
    val = getattr(settings, "EXAM_SWEEP_INTERVAL_MIN", None)
    if val is None:
        val = os.environ.get("EXAM_SWEEP_INTERVAL_MIN")
    try:
        return max(1, int(val)) if val else 1
    except (TypeError, ValueError):
        return 1


# ---- Job wrapper with logging ----
def run_complete_overdue_attempts():
    logger.info("[Scheduler] Running complete_overdue_attempts...")
    try:
        call_command("complete_overdue_attempts", quiet=True)
        logger.info("[Scheduler] Finished complete_overdue_attempts.")
    except Exception:
        logger.exception("[Scheduler] complete_overdue_attempts FAILED")


def start():
    """
    Start APScheduler once per process.
    - Adds a 'kickoff' sweep immediately on startup/wake, so attempts that ran
      out while the server was down are scored straight away.
    - Then sweeps every EXAM_SWEEP_INTERVAL_MIN minutes.
    Abandoned-attempt expiry is administrative and never scheduled here.
    """
    global _scheduler
    if _scheduler is not None:
        logger.info("[APScheduler] Already running in PID %s; skipping re-start.", os.getpid())
        return _scheduler

    scheduler = BackgroundScheduler(
        timezone="UTC",
        job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 300},
    )

    every = _get_sweep_interval_minutes()
    scheduler.add_job(
        run_complete_overdue_attempts,
        trigger="interval",
        minutes=every,
        id="complete_overdue_attempts_interval",
        replace_existing=True,
    )

    # Kickoff: run once immediately at startup/wake
    scheduler.add_job(
        run_complete_overdue_attempts,
        next_run_time=datetime.now(dtz.utc),
        id="complete_overdue_attempts_kick",
        replace_existing=True,
    )

    scheduler.start()
    _scheduler = scheduler
    logger.info("[APScheduler] Started in PID %s: overdue attempts every %s min (interval).", os.getpid(), every)
    return scheduler


def shutdown():
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
