"""
Answer payload codec.

Each answer is stored on ExamAttempt.answers as its own JSON string,
"[question_index, selected_option, marked_for_review]", so one corrupt entry
never invalidates the rest. selected_option == -1 means "not answered yet"
(e.g. a question that was only flagged for review).
"""

import json
import logging
from typing import Any, Iterable, List, NamedTuple, Optional

from ..exceptions import AnswerIndexError

logger = logging.getLogger(__name__)

UNANSWERED = -1


class Answer(NamedTuple):
    question_index: int
    selected_option: int = UNANSWERED
    marked_for_review: bool = False

    @property
    def is_answered(self) -> bool:
        return self.selected_option >= 0


def _is_int(value) -> bool:
    # bool is an int subclass; True must not pass as question 1
    return isinstance(value, int) and not isinstance(value, bool)


def make_answer(question_index, selected_option=UNANSWERED, marked_for_review=False) -> Answer:
    """
    Validate raw values and build an Answer.
    A bad question index raises AnswerIndexError, other bad values ValueError.
    """
    if not _is_int(question_index) or question_index < 0:
        raise AnswerIndexError(f"question_index must be a non-negative integer, got {question_index!r}")
    if selected_option is None:
        selected_option = UNANSWERED
    if not _is_int(selected_option) or selected_option < UNANSWERED:
        raise ValueError(f"selected_option must be an integer >= -1, got {selected_option!r}")
    if not isinstance(marked_for_review, bool):
        raise ValueError(f"marked_for_review must be a boolean, got {marked_for_review!r}")
    return Answer(question_index, selected_option, marked_for_review)


def encode_answer(answer: Answer) -> str:
    return json.dumps([answer.question_index, answer.selected_option, answer.marked_for_review])


def decode_answer(raw: Any) -> Optional[Answer]:
    """
    Decode one stored entry. Accepts the JSON string form or an already
    decoded list. Returns None for anything that does not describe an answer.
    Missing trailing fields fall back to "unanswered" / "not flagged".
    """
    value = raw
    if isinstance(raw, (str, bytes)):
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            return None
    if not isinstance(value, (list, tuple)) or not 1 <= len(value) <= 3:
        return None

    question_index = value[0]
    selected_option = value[1] if len(value) > 1 else UNANSWERED
    marked = value[2] if len(value) > 2 else False
    try:
        return make_answer(question_index, selected_option, marked)
    except ValueError:
        return None


def decode_answers(payload: Any) -> List[Answer]:
    """
    Decode a stored payload into answers sorted by question_index.
    Undecodable entries are skipped (and logged), never raised; if the same
    index appears twice the later entry wins.
    """
    if not isinstance(payload, (list, tuple)):
        if payload not in (None, ""):
            logger.warning("Ignoring answer payload of type %s", type(payload).__name__)
        return []

    by_index = {}
    for position, raw in enumerate(payload):
        answer = decode_answer(raw)
        if answer is None:
            logger.warning("Skipping undecodable answer entry #%s: %r", position, raw)
            continue
        by_index[answer.question_index] = answer
    return [by_index[i] for i in sorted(by_index)]


def encode_answers(answers: Iterable[Answer]) -> List[str]:
    return [encode_answer(a) for a in sorted(answers, key=lambda a: a.question_index)]


def merge_answers(existing: Iterable[Answer], updates: Iterable[Answer]) -> List[Answer]:
    """Replace-by-index merge; updates are applied in order, so the last one for an index wins."""
    by_index = {a.question_index: a for a in existing}
    for answer in updates:
        by_index[answer.question_index] = answer
    return [by_index[i] for i in sorted(by_index)]
