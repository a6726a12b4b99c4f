from typing import List

from ..exceptions import NotFoundError
from ..models import Exam, ExamQuestion


def get_exam(exam_id) -> Exam:
    """Exam metadata (duration, passing score) or NotFoundError."""
    try:
        return Exam.objects.select_related("course").get(pk=exam_id)
    except (Exam.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Exam {exam_id} not found.")


def get_ordered_questions(exam_id) -> List[ExamQuestion]:
    """
    The full question list for an exam, sorted by (order, id).
    Position in this list is the question_index used by answers and scoring,
    so it is never paginated or truncated.
    """
    return list(ExamQuestion.objects.filter(exam_id=exam_id).order_by("order", "id"))


def question_count(exam_id) -> int:
    return ExamQuestion.objects.filter(exam_id=exam_id).count()
