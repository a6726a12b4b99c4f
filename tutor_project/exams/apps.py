# tutor_project/exams/apps.py
import logging
import os

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class ExamsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "tutor_project.exams"
    verbose_name = "Exams"

    def ready(self):
        """
        Always wire up signal receivers. Optionally start the expiry sweep scheduler.
        """
        from . import signals  # noqa: F401  # import registers receivers

        from django.conf import settings
        if os.environ.get("EXAM_SCHEDULER_ENABLED", "true").lower() != "true":
            return
        if getattr(settings, "EXAM_SCHEDULER_ENABLED", True) is False:
            return

        try:
            from . import tasks
            tasks.start()  # idempotent per process
        except Exception:
            logger.exception("APScheduler failed to start")
