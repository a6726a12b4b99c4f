import logging
from datetime import timedelta

from ..exceptions import ConcurrentUpdateError, InvalidStateError
from ..models import ExamAttempt
from . import lifecycle, timer

logger = logging.getLogger(__name__)


def complete_overdue_attempts(at=None) -> int:
    """
    Score and complete every in-progress attempt whose time has run out.
    Returns: count of attempts completed by this sweep (for logging).

    Attempts that a client completed in the meantime are skipped quietly;
    complete_attempt is idempotent, so overlapping sweeps are harmless.
    """
    at = at or timer.now()
    qs = (ExamAttempt.objects
          .filter(status=ExamAttempt.Status.IN_PROGRESS, started_at__lte=at)
          .select_related("exam")
          .order_by("started_at"))

    completed = 0
    for attempt in qs.iterator():
        if not timer.is_time_up(attempt.started_at, attempt.exam.duration, at):
            continue
        try:
            _, completed_now = lifecycle.finish_attempt(attempt.pk, at=at)
        except (InvalidStateError, ConcurrentUpdateError) as e:
            logger.warning("Sweep skipped attempt %s: %s", attempt.pk, e)
            continue
        if completed_now:
            completed += 1
    return completed


def expire_abandoned_attempts(older_than: timedelta, at=None) -> int:
    """
    Administrative cleanup: close in-progress attempts started more than
    `older_than` ago WITHOUT scoring them. Never scheduled automatically.
    """
    at = at or timer.now()
    cutoff = at - older_than
    ids = list(
        ExamAttempt.objects
        .filter(status=ExamAttempt.Status.IN_PROGRESS, started_at__lt=cutoff)
        .values_list("pk", flat=True)
    )

    expired = 0
    for pk in ids:
        try:
            lifecycle.expire_attempt(pk, at=at)
        except InvalidStateError as e:
            logger.warning("Expiry skipped attempt %s: %s", pk, e)
            continue
        expired += 1
    return expired
