"""
Attempt lifecycle: NONE -> in_progress -> {completed, expired}.

This module is the only writer of ExamAttempt.status and the result fields,
and (through _write_answers) of the answer payload. Every write is a single
conditional UPDATE, so a transition either lands completely or not at all:

- answers:  WHERE version = <read version> AND status = 'in_progress'
- complete: WHERE version = <scored version> AND status = 'in_progress'
- expire:   WHERE status = 'in_progress'

Storage errors propagate unchanged; nothing here retries I/O or buffers
failed writes. The only loop is the version compare-and-swap.
"""

import logging
from typing import Iterable, List, Tuple

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import F

from ..exceptions import AnswerIndexError, ConcurrentUpdateError, InvalidStateError, NotFoundError
from ..models import ExamAttempt
from ..signals import attempt_completed
from . import catalog, scoring, timer
from .answers import Answer, decode_answers, encode_answers, make_answer, merge_answers

logger = logging.getLogger(__name__)

Status = ExamAttempt.Status


def _retries() -> int:
    return max(1, int(getattr(settings, "EXAM_ANSWER_WRITE_RETRIES", 5) or 1))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_attempt(attempt_id) -> ExamAttempt:
    try:
        return ExamAttempt.objects.select_related("exam").get(pk=attempt_id)
    except (ExamAttempt.DoesNotExist, ValidationError, ValueError, TypeError):
        raise NotFoundError(f"Attempt {attempt_id} not found.")


def _find_in_progress(student_id, exam_id):
    return (
        ExamAttempt.objects.select_related("exam")
        .filter(student_id=student_id, exam_id=exam_id, status=Status.IN_PROGRESS)
        .first()
    )


def get_answers(attempt_id) -> List[Answer]:
    return decode_answers(get_attempt(attempt_id).answers)


def get_remaining_time(attempt_id, at=None) -> int:
    """Seconds left, recomputed from started_at + duration. Terminal attempts report 0."""
    return get_attempt(attempt_id).remaining_seconds(at or timer.now())


def preview_score(attempt_id) -> scoring.ScoreResult:
    """Score the current answers without touching the record."""
    attempt = get_attempt(attempt_id)
    exam = catalog.get_exam(attempt.exam_id)
    return scoring.score(
        decode_answers(attempt.answers),
        catalog.get_ordered_questions(exam.pk),
        exam.passing_score,
    )


# ---------------------------------------------------------------------------
# start / resume
# ---------------------------------------------------------------------------

def get_or_start_attempt(student, exam_id, course_id=None) -> Tuple[ExamAttempt, bool]:
    """
    Return (attempt, created).

    An in-progress attempt for (student, exam) is resumed unchanged, even if
    its time has run out; the caller's expiry check completes it. Otherwise a
    new row is created with started_at taken from the server clock. Unpublished
    exams cannot be started but their open attempts can still be resumed.
    """
    student_id = getattr(student, "pk", student)
    exam = catalog.get_exam(exam_id)
    if course_id is not None and str(course_id) != str(exam.course_id):
        raise NotFoundError(f"Exam {exam.pk} does not belong to course {course_id}.")

    existing = _find_in_progress(student_id, exam.pk)
    if existing:
        logger.info("Resuming attempt %s for student %s on exam %s", existing.pk, student_id, exam.pk)
        return existing, False

    if not exam.is_published:
        raise NotFoundError(f"Exam {exam.pk} is not published.")

    try:
        with transaction.atomic():
            attempt = ExamAttempt.objects.create(
                student_id=student_id,
                exam=exam,
                course_id=exam.course_id,
                started_at=timer.now(),
                status=Status.IN_PROGRESS,
                answers=[],
            )
    except IntegrityError:
        # lost the race against a concurrent start; the partial unique index kept one row
        existing = _find_in_progress(student_id, exam.pk)
        if existing is None:
            raise
        logger.info("Concurrent start for student %s on exam %s; resuming %s", student_id, exam.pk, existing.pk)
        return existing, False

    logger.info("Started attempt %s for student %s on exam %s", attempt.pk, student_id, exam.pk)
    return attempt, True


def start_attempt(student, exam_id, course_id=None) -> ExamAttempt:
    return get_or_start_attempt(student, exam_id, course_id)[0]


# ---------------------------------------------------------------------------
# answers
# ---------------------------------------------------------------------------

def _ensure_writable(attempt: ExamAttempt, at) -> None:
    if attempt.status != Status.IN_PROGRESS:
        raise InvalidStateError(f"Cannot submit answers to a {attempt.status} attempt.")
    if not timer.accepts_answers(attempt.started_at, attempt.exam.duration, at):
        raise InvalidStateError("Time is up for this attempt.")


def _write_answers(attempt_id, updates: List[Answer], at=None) -> ExamAttempt:
    question_total = None
    for attempt_no in range(1, _retries() + 1):
        attempt = get_attempt(attempt_id)
        _ensure_writable(attempt, at or timer.now())

        if question_total is None:
            question_total = catalog.question_count(attempt.exam_id)
            for answer in updates:
                if answer.question_index >= question_total:
                    raise AnswerIndexError(
                        f"Question index {answer.question_index} is out of range "
                        f"for an exam with {question_total} questions."
                    )
        if not updates:
            return attempt

        payload = encode_answers(merge_answers(decode_answers(attempt.answers), updates))
        updated = (
            ExamAttempt.objects
            .filter(pk=attempt.pk, version=attempt.version, status=Status.IN_PROGRESS)
            .update(answers=payload, version=F("version") + 1)
        )
        if updated:
            attempt.answers = payload
            attempt.version += 1
            return attempt

        logger.warning(
            "Answer write on attempt %s lost the version %s race (try %s of %s)",
            attempt.pk, attempt.version, attempt_no, _retries(),
        )

    raise ConcurrentUpdateError(f"Attempt {attempt_id} is being updated concurrently; retry.")


def submit_answer(attempt_id, question_index, selected_option, marked_for_review=False, at=None) -> ExamAttempt:
    """Insert or replace the answer for one question index."""
    return _write_answers(attempt_id, [make_answer(question_index, selected_option, marked_for_review)], at=at)


def submit_answers_batch(attempt_id, answers: Iterable, at=None) -> ExamAttempt:
    """
    Merge several answers in one write. Items may be Answer tuples or plain
    (index, option, flag) sequences; within the batch the last entry for an
    index wins.
    """
    updates = [a if isinstance(a, Answer) else make_answer(*a) for a in answers]
    return _write_answers(attempt_id, updates, at=at)


# ---------------------------------------------------------------------------
# terminal transitions
# ---------------------------------------------------------------------------

def complete_attempt(attempt_id, at=None) -> ExamAttempt:
    """
    Score and finalise. Idempotent for completed attempts: the stored record
    is returned untouched, so a user submit racing the timer is harmless.
    Expired attempts cannot be completed.
    """
    return finish_attempt(attempt_id, at=at)[0]


def finish_attempt(attempt_id, at=None) -> Tuple[ExamAttempt, bool]:
    """complete_attempt that also reports whether this call did the completing."""
    for attempt_no in range(1, _retries() + 1):
        attempt = get_attempt(attempt_id)
        if attempt.status == Status.COMPLETED:
            return attempt, False
        if attempt.status != Status.IN_PROGRESS:
            raise InvalidStateError(f"Cannot complete a {attempt.status} attempt.")

        exam = catalog.get_exam(attempt.exam_id)
        questions = catalog.get_ordered_questions(exam.pk)
        result = scoring.score(decode_answers(attempt.answers), questions, exam.passing_score)

        updated = (
            ExamAttempt.objects
            .filter(pk=attempt.pk, version=attempt.version, status=Status.IN_PROGRESS)
            .update(
                status=Status.COMPLETED,
                completed_at=at or timer.now(),
                score=result.correct_count,
                percentage=result.percentage,
                passed=result.passed,
                version=F("version") + 1,
            )
        )
        if updated:
            attempt = get_attempt(attempt.pk)
            logger.info(
                "Completed attempt %s: %s/%s correct, %s%% (%s)",
                attempt.pk, result.correct_count, len(questions), result.percentage,
                "pass" if result.passed else "fail",
            )
            transaction.on_commit(
                lambda: attempt_completed.send(sender=ExamAttempt, attempt=attempt, exam=exam)
            )
            return attempt, True

        logger.warning("Completion of attempt %s raced another write (try %s of %s)", attempt.pk, attempt_no, _retries())

    raise ConcurrentUpdateError(f"Attempt {attempt_id} is being updated concurrently; retry.")


def expire_attempt(attempt_id, at=None) -> ExamAttempt:
    """
    Administrative close-out without scoring: result fields stay null.
    Running out of time is not a reason to call this; use complete_attempt.
    """
    attempt = get_attempt(attempt_id)
    if attempt.status != Status.IN_PROGRESS:
        raise InvalidStateError(f"Cannot expire a {attempt.status} attempt.")

    updated = (
        ExamAttempt.objects
        .filter(pk=attempt.pk, status=Status.IN_PROGRESS)
        .update(status=Status.EXPIRED, completed_at=at or timer.now(), version=F("version") + 1)
    )
    attempt = get_attempt(attempt.pk)
    if not updated:
        raise InvalidStateError(f"Cannot expire a {attempt.status} attempt.")

    logger.info("Expired attempt %s (student %s, exam %s)", attempt.pk, attempt.student_id, attempt.exam_id)
    return attempt
