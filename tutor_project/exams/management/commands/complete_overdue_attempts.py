from django.core.management.base import BaseCommand
from django.utils import timezone

from ...models import ExamAttempt  # for debug-only queries
from ...services.expiry import complete_overdue_attempts


class Command(BaseCommand):
    help = "Score and complete in-progress exam attempts whose time has run out."

    def add_arguments(self, parser):
        parser.add_argument("--quiet", action="store_true", help="Suppress output")
        parser.add_argument("--debug", action="store_true", help="Print diagnostics")

    def handle(self, *args, **opts):
        now = timezone.now()

        if opts.get("debug"):
            pool = ExamAttempt.objects.filter(status=ExamAttempt.Status.IN_PROGRESS).count()
            self.stdout.write(f"Now UTC: {now.isoformat()}")
            self.stdout.write(f"In-progress attempts to inspect: {pool}")

        n_done = complete_overdue_attempts(at=now)

        if not opts.get("quiet"):
            msg = f"[{now.isoformat()}] Completed {n_done} overdue attempts."
            self.stdout.write(self.style.SUCCESS(msg))
