from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from ...services.expiry import expire_abandoned_attempts


class Command(BaseCommand):
    help = "Expire (without scoring) in-progress attempts started more than N hours ago."

    def add_arguments(self, parser):
        parser.add_argument(
            "--hours", type=int, default=None,
            help="Age threshold in hours (default: EXAM_ABANDONED_AFTER_HOURS)",
        )
        parser.add_argument("--quiet", action="store_true", help="Suppress output")

    def handle(self, *args, **opts):
        hours = opts.get("hours")
        if hours is None:
            hours = int(getattr(settings, "EXAM_ABANDONED_AFTER_HOURS", 24))
        if hours <= 0:
            raise CommandError("--hours must be a positive number of hours.")

        now = timezone.now()
        n_expired = expire_abandoned_attempts(timedelta(hours=hours), at=now)

        if not opts.get("quiet"):
            msg = f"[{now.isoformat()}] Expired {n_expired} attempts older than {hours}h."
            self.stdout.write(self.style.SUCCESS(msg))
