from datetime import timedelta
from unittest import mock

from django.db.models import F
from django.test import TestCase, override_settings
from django.utils import timezone

from ..exceptions import AnswerIndexError, ConcurrentUpdateError, InvalidStateError, NotFoundError
from ..models import Activity, Exam, ExamAttempt
from ..services import lifecycle
from ..services.answers import Answer
from .helpers import make_exam, make_user, rewind

Status = ExamAttempt.Status


class StartAttemptTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.student = make_user()
        cls.exam = make_exam()

    def test_first_start_creates_in_progress_attempt(self):
        before = timezone.now()
        attempt, created = lifecycle.get_or_start_attempt(self.student, self.exam.pk)
        self.assertTrue(created)
        self.assertEqual(attempt.status, Status.IN_PROGRESS)
        self.assertEqual(attempt.course_id, self.exam.course_id)
        self.assertEqual(attempt.answers, [])
        self.assertGreaterEqual(attempt.started_at, before)
        self.assertIsNone(attempt.score)

    def test_second_start_resumes_the_same_attempt(self):
        first = lifecycle.start_attempt(self.student, self.exam.pk)
        lifecycle.submit_answer(first.pk, 0, 1)
        second, created = lifecycle.get_or_start_attempt(self.student, self.exam.pk)
        self.assertFalse(created)
        self.assertEqual(second.pk, first.pk)
        self.assertEqual(second.started_at, first.started_at)
        self.assertEqual(ExamAttempt.objects.filter(student=self.student, exam=self.exam).count(), 1)

    def test_start_after_completion_opens_a_new_attempt(self):
        first = lifecycle.start_attempt(self.student, self.exam.pk)
        lifecycle.complete_attempt(first.pk)
        second, created = lifecycle.get_or_start_attempt(self.student, self.exam.pk)
        self.assertTrue(created)
        self.assertNotEqual(second.pk, first.pk)

    def test_students_do_not_share_attempts(self):
        other = make_user("other")
        a = lifecycle.start_attempt(self.student, self.exam.pk)
        b = lifecycle.start_attempt(other, self.exam.pk)
        self.assertNotEqual(a.pk, b.pk)

    def test_unknown_exam(self):
        with self.assertRaises(NotFoundError):
            lifecycle.start_attempt(self.student, 999999)

    def test_course_must_match_exam(self):
        with self.assertRaises(NotFoundError):
            lifecycle.start_attempt(self.student, self.exam.pk, course_id=self.exam.course_id + 100)
        attempt = lifecycle.start_attempt(self.student, self.exam.pk, course_id=self.exam.course_id)
        self.assertEqual(attempt.course_id, self.exam.course_id)

    def test_unpublished_exam_cannot_be_started(self):
        Exam.objects.filter(pk=self.exam.pk).update(is_published=False)
        with self.assertRaises(NotFoundError):
            lifecycle.start_attempt(self.student, self.exam.pk)
        self.assertFalse(ExamAttempt.objects.filter(exam=self.exam).exists())

    def test_unpublishing_keeps_open_attempt_resumable(self):
        first = lifecycle.start_attempt(self.student, self.exam.pk)
        Exam.objects.filter(pk=self.exam.pk).update(is_published=False)
        again, created = lifecycle.get_or_start_attempt(self.student, self.exam.pk)
        self.assertFalse(created)
        self.assertEqual(again.pk, first.pk)

    def test_racing_insert_falls_back_to_existing_row(self):
        existing = ExamAttempt.objects.create(student=self.student, exam=self.exam, course=self.exam.course)
        real_find = lifecycle._find_in_progress
        with mock.patch.object(lifecycle, "_find_in_progress", side_effect=[None, real_find(self.student.pk, self.exam.pk)]):
            attempt, created = lifecycle.get_or_start_attempt(self.student, self.exam.pk)
        self.assertFalse(created)
        self.assertEqual(attempt.pk, existing.pk)


class SubmitAnswerTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.student = make_user()
        cls.exam = make_exam()

    def setUp(self):
        self.attempt = lifecycle.start_attempt(self.student, self.exam.pk)

    def test_answer_is_stored(self):
        lifecycle.submit_answer(self.attempt.pk, 1, 2, True)
        self.assertEqual(lifecycle.get_answers(self.attempt.pk), [Answer(1, 2, True)])

    def test_resubmitting_replaces_previous_answer(self):
        lifecycle.submit_answer(self.attempt.pk, 0, 3)
        lifecycle.submit_answer(self.attempt.pk, 0, 1)
        self.assertEqual(lifecycle.get_answers(self.attempt.pk), [Answer(0, 1, False)])

    def test_every_write_bumps_the_version(self):
        lifecycle.submit_answer(self.attempt.pk, 0, 3)
        updated = lifecycle.submit_answer(self.attempt.pk, 1, 0)
        self.assertEqual(updated.version, 2)
        self.assertEqual(ExamAttempt.objects.get(pk=self.attempt.pk).version, 2)

    def test_flag_without_selection(self):
        lifecycle.submit_answer(self.attempt.pk, 2, -1, True)
        self.assertEqual(lifecycle.get_answers(self.attempt.pk), [Answer(2, -1, True)])

    def test_index_past_last_question(self):
        with self.assertRaises(AnswerIndexError):
            lifecycle.submit_answer(self.attempt.pk, 3, 0)
        self.assertEqual(lifecycle.get_answers(self.attempt.pk), [])

    def test_batch_merges_in_one_write(self):
        lifecycle.submit_answer(self.attempt.pk, 0, 0)
        updated = lifecycle.submit_answers_batch(self.attempt.pk, [(0, 1, False), (2, 0, True), [2, 3]])
        self.assertEqual(updated.version, 2)
        self.assertEqual(lifecycle.get_answers(self.attempt.pk), [Answer(0, 1), Answer(2, 3)])

    def test_batch_with_bad_index_writes_nothing(self):
        with self.assertRaises(AnswerIndexError):
            lifecycle.submit_answers_batch(self.attempt.pk, [(0, 1, False), (7, 0, False)])
        self.assertEqual(lifecycle.get_answers(self.attempt.pk), [])

    def test_rejected_after_completion_and_answers_unchanged(self):
        lifecycle.submit_answer(self.attempt.pk, 0, 1)
        lifecycle.complete_attempt(self.attempt.pk)
        with self.assertRaises(InvalidStateError):
            lifecycle.submit_answer(self.attempt.pk, 0, 2)
        self.assertEqual(lifecycle.get_answers(self.attempt.pk), [Answer(0, 1)])

    def test_rejected_after_time_is_up(self):
        rewind(self.attempt, 61)
        with self.assertRaises(InvalidStateError):
            lifecycle.submit_answer(self.attempt.pk, 0, 1)

    @override_settings(EXAM_LATE_ANSWER_GRACE_SECONDS=120)
    def test_grace_window_accepts_late_answer(self):
        rewind(self.attempt, 61)
        lifecycle.submit_answer(self.attempt.pk, 0, 1)
        self.assertEqual(lifecycle.get_answers(self.attempt.pk), [Answer(0, 1)])

    def test_unknown_attempt(self):
        with self.assertRaises(NotFoundError):
            lifecycle.submit_answer("00000000-0000-0000-0000-000000000000", 0, 1)
        with self.assertRaises(NotFoundError):
            lifecycle.submit_answer("not-a-uuid", 0, 1)

    def test_lost_version_race_is_retried(self):
        real_get = lifecycle.get_attempt
        raced = []

        def racing_get(pk):
            attempt = real_get(pk)
            if not raced:
                raced.append(pk)
                ExamAttempt.objects.filter(pk=pk).update(version=F("version") + 1)
            return attempt

        with mock.patch.object(lifecycle, "get_attempt", side_effect=racing_get):
            with self.assertLogs("tutor_project.exams.services.lifecycle", level="WARNING"):
                updated = lifecycle.submit_answer(self.attempt.pk, 0, 1)
        self.assertEqual(updated.version, 2)
        self.assertEqual(lifecycle.get_answers(self.attempt.pk), [Answer(0, 1)])

    @override_settings(EXAM_ANSWER_WRITE_RETRIES=2)
    def test_gives_up_after_configured_retries(self):
        real_get = lifecycle.get_attempt

        def always_stale(pk):
            attempt = real_get(pk)
            ExamAttempt.objects.filter(pk=pk).update(version=F("version") + 1)
            return attempt

        with mock.patch.object(lifecycle, "get_attempt", side_effect=always_stale):
            with self.assertLogs("tutor_project.exams.services.lifecycle", level="WARNING"):
                with self.assertRaises(ConcurrentUpdateError):
                    lifecycle.submit_answer(self.attempt.pk, 0, 1)
        self.assertEqual(lifecycle.get_answers(self.attempt.pk), [])


class CompleteAttemptTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.student = make_user()
        cls.exam = make_exam(correct_indexes=(1, 2, 0), passing_score=33)

    def setUp(self):
        self.attempt = lifecycle.start_attempt(self.student, self.exam.pk)
        lifecycle.submit_answers_batch(self.attempt.pk, [(0, 1, False), (1, 0, False)])

    def test_scores_and_finalises(self):
        done = lifecycle.complete_attempt(self.attempt.pk)
        self.assertEqual(done.status, Status.COMPLETED)
        self.assertEqual((done.score, done.percentage, done.passed), (1, 33, True))
        self.assertIsNotNone(done.completed_at)
        self.assertEqual(done.remaining_seconds(), 0)

    def test_threshold_one_above_fails(self):
        Exam.objects.filter(pk=self.exam.pk).update(passing_score=34)
        done = lifecycle.complete_attempt(self.attempt.pk)
        self.assertEqual(done.percentage, 33)
        self.assertFalse(done.passed)

    def test_completing_twice_changes_nothing(self):
        first = lifecycle.complete_attempt(self.attempt.pk)
        second = lifecycle.complete_attempt(self.attempt.pk, at=timezone.now() + timedelta(minutes=5))
        self.assertEqual(
            (second.score, second.percentage, second.passed, second.completed_at, second.version),
            (first.score, first.percentage, first.passed, first.completed_at, first.version),
        )

    def test_completion_logs_one_activity(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            lifecycle.complete_attempt(self.attempt.pk)
            lifecycle.complete_attempt(self.attempt.pk)
        self.assertEqual(len(callbacks), 1)
        activity = Activity.objects.get(user=self.student)
        self.assertEqual(activity.type, Activity.Type.TEST_COMPLETED)
        self.assertEqual(activity.title, "Completed: Safety basics")
        self.assertEqual(activity.subtitle, "Score: 33% - Passed")
        self.assertEqual(activity.metadata["attempt_id"], str(self.attempt.pk))
        self.assertEqual(activity.metadata["score"], 33)

    def test_activity_failure_does_not_undo_completion(self):
        with mock.patch("tutor_project.exams.signals.log_test_completed", side_effect=RuntimeError("feed down")):
            with self.assertLogs("tutor_project.exams.signals", level="ERROR"):
                with self.captureOnCommitCallbacks(execute=True):
                    done = lifecycle.complete_attempt(self.attempt.pk)
        self.assertEqual(done.status, Status.COMPLETED)
        self.assertEqual(ExamAttempt.objects.get(pk=self.attempt.pk).status, Status.COMPLETED)

    def test_expired_attempt_cannot_be_completed(self):
        lifecycle.expire_attempt(self.attempt.pk)
        with self.assertRaises(InvalidStateError):
            lifecycle.complete_attempt(self.attempt.pk)

    def test_answer_landing_mid_completion_is_scored(self):
        real_score = lifecycle.scoring.score
        raced = []

        def score_then_race(*args, **kwargs):
            if not raced:
                raced.append(1)
                # the third answer arrives after the first scoring pass read the record
                lifecycle.submit_answer(self.attempt.pk, 2, 0)
            return real_score(*args, **kwargs)

        with mock.patch.object(lifecycle.scoring, "score", side_effect=score_then_race):
            with self.assertLogs("tutor_project.exams.services.lifecycle", level="WARNING"):
                done = lifecycle.complete_attempt(self.attempt.pk)
        self.assertEqual(done.score, 2)
        self.assertEqual(done.percentage, 67)

    def test_relaunch_after_deadline_reports_zero_and_completes(self):
        rewind(self.attempt, 61)
        self.assertEqual(lifecycle.get_remaining_time(self.attempt.pk), 0)
        resumed, created = lifecycle.get_or_start_attempt(self.student, self.exam.pk)
        self.assertFalse(created)
        self.assertEqual(resumed.pk, self.attempt.pk)
        done = lifecycle.complete_attempt(resumed.pk)
        self.assertEqual(done.status, Status.COMPLETED)
        self.assertEqual(done.score, 1)

    def test_exam_without_questions(self):
        empty = make_exam(correct_indexes=(), title="Empty", passing_score=0)
        attempt = lifecycle.start_attempt(self.student, empty.pk)
        done = lifecycle.complete_attempt(attempt.pk)
        self.assertEqual((done.score, done.percentage, done.passed), (0, 0, False))

    def test_preview_does_not_write(self):
        result = lifecycle.preview_score(self.attempt.pk)
        self.assertEqual(result.percentage, 33)
        self.assertEqual(ExamAttempt.objects.get(pk=self.attempt.pk).status, Status.IN_PROGRESS)


class ExpireAttemptTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.student = make_user()
        cls.exam = make_exam()

    def setUp(self):
        self.attempt = lifecycle.start_attempt(self.student, self.exam.pk)
        lifecycle.submit_answer(self.attempt.pk, 0, 1)

    def test_expire_leaves_results_empty(self):
        expired = lifecycle.expire_attempt(self.attempt.pk)
        self.assertEqual(expired.status, Status.EXPIRED)
        self.assertIsNotNone(expired.completed_at)
        self.assertIsNone(expired.score)
        self.assertIsNone(expired.percentage)
        self.assertIsNone(expired.passed)
        self.assertEqual(lifecycle.get_remaining_time(self.attempt.pk), 0)

    def test_expire_is_not_repeatable(self):
        lifecycle.expire_attempt(self.attempt.pk)
        with self.assertRaises(InvalidStateError):
            lifecycle.expire_attempt(self.attempt.pk)

    def test_completed_attempt_cannot_be_expired(self):
        lifecycle.complete_attempt(self.attempt.pk)
        with self.assertRaises(InvalidStateError):
            lifecycle.expire_attempt(self.attempt.pk)

    def test_no_answers_after_expiry(self):
        lifecycle.expire_attempt(self.attempt.pk)
        with self.assertRaises(InvalidStateError):
            lifecycle.submit_answer(self.attempt.pk, 1, 1)
        self.assertEqual(lifecycle.get_answers(self.attempt.pk), [Answer(0, 1)])

    def test_expired_attempt_frees_the_slot(self):
        lifecycle.expire_attempt(self.attempt.pk)
        _, created = lifecycle.get_or_start_attempt(self.student, self.exam.pk)
        self.assertTrue(created)
