# tutor_project/exams/signals.py
import logging

from django.dispatch import Signal, receiver

from .services.activities import log_test_completed

logger = logging.getLogger(__name__)

# Sent once per attempt, after the completion UPDATE has committed.
# kwargs: attempt (ExamAttempt), exam (Exam)
attempt_completed = Signal()


# ============================================================
#  ACTIVITY FEED
# ============================================================

@receiver(attempt_completed)
def _log_completion_activity(sender, attempt, exam, **kwargs):
    """
    Fire-and-forget: the attempt is already final, so a failure here is
    logged and never reaches the caller of complete_attempt().
    """
    try:
        log_test_completed(attempt, exam)
    except Exception:
        logger.exception("Activity log failed for attempt %s", attempt.pk)
