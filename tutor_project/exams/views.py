import logging

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .services import lifecycle, queries
from .services.answers import decode_answers
from .services.catalog import get_exam
from .utils.guards import BadPayload, attempt_api, json_body, json_errors, staff_required_json

logger = logging.getLogger(__name__)


# ============================================================
#  SERIALISERS
# ============================================================

def _answer_json(answer):
    return {
        "question_index": answer.question_index,
        "selected_option": answer.selected_option,
        "marked_for_review": answer.marked_for_review,
    }


def _attempt_json(attempt, with_answers=False):
    data = {
        "id": str(attempt.pk),
        "exam_id": attempt.exam_id,
        "course_id": attempt.course_id,
        "student_id": attempt.student_id,
        "status": attempt.status,
        "started_at": attempt.started_at.isoformat(),
        "completed_at": attempt.completed_at.isoformat() if attempt.completed_at else None,
        "score": attempt.score,
        "percentage": attempt.percentage,
        "passed": attempt.passed,
        "remaining_seconds": attempt.remaining_seconds(),
    }
    if with_answers:
        data["answers"] = [_answer_json(a) for a in decode_answers(attempt.answers)]
    return data


def _page_json(page):
    return {
        "documents": [_attempt_json(a) for a in page.documents],
        "total": page.total,
        "has_more": page.has_more,
    }


# ============================================================
#  ATTEMPT LIFECYCLE
# ============================================================

@login_required
@require_POST
@json_errors
def attempt_start(request, exam_id):
    """
    POST /api/exams/<exam_id>/attempts/start/   body: {"course_id": optional}
    201 with a new attempt, 200 when an in-progress one is resumed.
    A resumed attempt whose time already ran out is completed before returning.
    """
    body = json_body(request)
    attempt, created = lifecycle.get_or_start_attempt(request.user, exam_id, body.get("course_id"))
    if not created and attempt.remaining_seconds() <= 0:
        attempt = lifecycle.complete_attempt(attempt.pk)
    return JsonResponse(_attempt_json(attempt, with_answers=True), status=201 if created else 200)


@login_required
@require_GET
@attempt_api()
def attempt_detail(request, attempt_id):
    return JsonResponse(_attempt_json(request.attempt, with_answers=True))


@login_required
@require_GET
@attempt_api()
def attempt_remaining(request, attempt_id):
    attempt = request.attempt
    return JsonResponse({"id": str(attempt.pk), "status": attempt.status,
                         "remaining_seconds": attempt.remaining_seconds()})


@login_required
@require_POST
@attempt_api()
def attempt_answer(request, attempt_id):
    """
    POST /api/attempts/<uuid>/answers/
      single: {"question_index": 3, "selected_option": 1, "marked_for_review": false}
      batch:  {"answers": [[3, 1, false], [4, -1, true]]}
    """
    body = json_body(request)
    attempt = request.attempt

    if "answers" in body:
        rows = body["answers"]
        if not isinstance(rows, list) or not all(isinstance(r, (list, tuple)) and 1 <= len(r) <= 3 for r in rows):
            raise BadPayload("answers must be a list of [question_index, selected_option, marked_for_review].")
        attempt = lifecycle.submit_answers_batch(attempt.pk, rows)
    else:
        if "question_index" not in body:
            raise BadPayload("question_index is required.")
        attempt = lifecycle.submit_answer(
            attempt.pk,
            body.get("question_index"),
            body.get("selected_option"),
            body.get("marked_for_review", False),
        )
    return JsonResponse(_attempt_json(attempt, with_answers=True))


@login_required
@require_POST
@attempt_api()
def attempt_complete(request, attempt_id):
    attempt = lifecycle.complete_attempt(request.attempt.pk)
    return JsonResponse(_attempt_json(attempt, with_answers=True))


@login_required
@require_POST
@attempt_api(staff_only=True)
def attempt_expire(request, attempt_id):
    attempt = lifecycle.expire_attempt(request.attempt.pk)
    logger.info("Attempt %s expired by %s", attempt.pk, request.user)
    return JsonResponse(_attempt_json(attempt))


# ============================================================
#  HISTORY / STATS
# ============================================================

@login_required
@require_GET
@json_errors
def my_attempts(request):
    """GET /api/me/attempts/?exam=<id>&limit=25&offset=0"""
    limit = request.GET.get("limit")
    offset = request.GET.get("offset")
    exam_id = (request.GET.get("exam") or "").strip()
    if exam_id:
        page = queries.student_exam_history(request.user.pk, exam_id, limit=limit, offset=offset)
    else:
        page = queries.attempts_for_student(request.user.pk, limit=limit, offset=offset)
    return JsonResponse(_page_json(page))


@login_required
@require_GET
@staff_required_json
@json_errors
def exam_stats(request, exam_id):
    exam = get_exam(exam_id)
    data = queries.exam_attempt_stats(exam.pk)
    data["exam_id"] = exam.pk
    data["passing_score"] = exam.passing_score
    return JsonResponse(data)
