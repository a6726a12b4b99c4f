from unittest import mock

from django.test import SimpleTestCase, TestCase, override_settings

from .. import tasks
from ..models import ExamAttempt
from ..services import lifecycle
from .helpers import make_exam, make_user, rewind


class SweepIntervalTests(SimpleTestCase):
    @override_settings(EXAM_SWEEP_INTERVAL_MIN=5)
    def test_reads_setting(self):
        self.assertEqual(tasks._get_sweep_interval_minutes(), 5)

    @override_settings(EXAM_SWEEP_INTERVAL_MIN="junk")
    def test_invalid_value_falls_back(self):
        self.assertEqual(tasks._get_sweep_interval_minutes(), 1)

    @override_settings(EXAM_SWEEP_INTERVAL_MIN=0)
    def test_never_below_one_minute(self):
        self.assertEqual(tasks._get_sweep_interval_minutes(), 1)


class SchedulerStartTests(SimpleTestCase):
    def tearDown(self):
        tasks._scheduler = None

    def test_start_registers_interval_and_kickoff_once(self):
        with mock.patch.object(tasks, "BackgroundScheduler") as scheduler_cls:
            first = tasks.start()
            second = tasks.start()

        self.assertIs(first, second)
        scheduler_cls.assert_called_once()
        job_ids = [c.kwargs["id"] for c in first.add_job.call_args_list]
        self.assertEqual(job_ids, ["complete_overdue_attempts_interval", "complete_overdue_attempts_kick"])
        first.start.assert_called_once()

        tasks.shutdown()
        first.shutdown.assert_called_once_with(wait=False)
        self.assertIsNone(tasks._scheduler)


class SweepJobTests(TestCase):
    def test_job_runs_the_sweep_command(self):
        attempt = rewind(lifecycle.start_attempt(make_user(), make_exam().pk), 61)
        tasks.run_complete_overdue_attempts()
        self.assertEqual(ExamAttempt.objects.get(pk=attempt.pk).status, ExamAttempt.Status.COMPLETED)

    def test_job_failure_is_logged_not_raised(self):
        with mock.patch.object(tasks, "call_command", side_effect=RuntimeError("db gone")):
            with self.assertLogs("tutor_project.exams.tasks", level="ERROR"):
                tasks.run_complete_overdue_attempts()
