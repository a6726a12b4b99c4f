from datetime import timedelta

from django.contrib.auth import get_user_model

from ..models import Course, Exam, ExamAttempt, ExamQuestion


def make_user(username="student", **extra):
    return get_user_model().objects.create_user(username=username, password="pw", **extra)


def make_exam(correct_indexes=(1, 2, 0), title="Safety basics", duration_minutes=60, passing_score=70, course=None):
    """One question per entry in correct_indexes, each with four options."""
    course = course or Course.objects.create(title="Workplace safety")
    exam = Exam.objects.create(
        course=course, title=title, duration_minutes=duration_minutes, passing_score=passing_score,
    )
    for i, correct in enumerate(correct_indexes):
        ExamQuestion.objects.create(
            exam=exam, order=i + 1, text=f"Question {i + 1}",
            options=["A", "B", "C", "D"], correct_index=correct,
        )
    return exam


def rewind(attempt, minutes):
    """Move an attempt's start back in time, as if it had been running for `minutes`."""
    started = attempt.started_at - timedelta(minutes=minutes)
    ExamAttempt.objects.filter(pk=attempt.pk).update(started_at=started)
    attempt.started_at = started
    return attempt
