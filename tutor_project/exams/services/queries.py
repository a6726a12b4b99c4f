"""
Read-side helpers for dashboards and history screens.

Listings are paginated (limit/offset) and return a Page; single-record
lookups return the attempt or None.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from django.db.models import Avg, Count, Q

from ..models import ExamAttempt

DEFAULT_LIMIT = 25
MAX_LIMIT = 100

Status = ExamAttempt.Status


@dataclass
class Page:
    documents: List[ExamAttempt] = field(default_factory=list)
    total: int = 0
    has_more: bool = False


def _clamp(limit, offset):
    try:
        limit = int(limit) if limit is not None else DEFAULT_LIMIT
    except (TypeError, ValueError):
        limit = DEFAULT_LIMIT
    try:
        offset = int(offset or 0)
    except (TypeError, ValueError):
        offset = 0
    return max(1, min(limit, MAX_LIMIT)), max(0, offset)


def _page(qs, limit=None, offset=0) -> Page:
    limit, offset = _clamp(limit, offset)
    total = qs.count()
    documents = list(qs[offset:offset + limit])
    return Page(documents=documents, total=total, has_more=offset + len(documents) < total)


def attempts_for_student(student_id, limit=None, offset=0) -> Page:
    qs = ExamAttempt.objects.filter(student_id=student_id).select_related("exam").order_by("-started_at")
    return _page(qs, limit, offset)


def attempts_for_exam(exam_id, limit=None, offset=0) -> Page:
    qs = ExamAttempt.objects.filter(exam_id=exam_id).select_related("student").order_by("-started_at")
    return _page(qs, limit, offset)


def completed_attempts_for_exam(exam_id, limit=None, offset=0) -> Page:
    qs = (ExamAttempt.objects
          .filter(exam_id=exam_id, status=Status.COMPLETED)
          .select_related("student")
          .order_by("-completed_at"))
    return _page(qs, limit, offset)


def student_exam_history(student_id, exam_id, limit=None, offset=0) -> Page:
    qs = ExamAttempt.objects.filter(student_id=student_id, exam_id=exam_id).order_by("-started_at")
    return _page(qs, limit, offset)


def in_progress_attempt(student_id, exam_id) -> Optional[ExamAttempt]:
    return (ExamAttempt.objects
            .filter(student_id=student_id, exam_id=exam_id, status=Status.IN_PROGRESS)
            .first())


def best_attempt(student_id, exam_id) -> Optional[ExamAttempt]:
    """Highest percentage among completed attempts; ties go to the earliest."""
    return (ExamAttempt.objects
            .filter(student_id=student_id, exam_id=exam_id, status=Status.COMPLETED)
            .order_by("-percentage", "completed_at")
            .first())


def exam_attempt_stats(exam_id) -> dict:
    agg = ExamAttempt.objects.filter(exam_id=exam_id).aggregate(
        total=Count("id"),
        completed=Count("id", filter=Q(status=Status.COMPLETED)),
        passed=Count("id", filter=Q(status=Status.COMPLETED, passed=True)),
        avg=Avg("percentage", filter=Q(status=Status.COMPLETED)),
    )
    completed = agg["completed"] or 0
    return {
        "total_attempts": agg["total"] or 0,
        "completed_attempts": completed,
        "average_score": round(agg["avg"]) if agg["avg"] is not None else 0,
        "pass_rate": round(agg["passed"] * 100 / completed) if completed else 0,
    }
