from dataclasses import dataclass
from typing import Iterable, Sequence

from .answers import Answer


@dataclass(frozen=True)
class ScoreResult:
    correct_count: int
    percentage: int
    passed: bool


def round_half_up_percent(part: int, whole: int) -> int:
    """round(part / whole * 100) with .5 rounding up, in integer arithmetic."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def score(answers: Iterable[Answer], questions: Sequence, passing_score: int) -> ScoreResult:
    """
    Score a snapshot of answers against the ordered question list.

    - questions[i] is question_index i; each item needs a ``correct_index``.
    - An answer counts only when its index exists and its option matches;
      unanswered (-1) and out-of-range entries never count.
    - passed is inclusive: percentage == passing_score passes.
    - No questions means 0% and not passed.
    """
    total = len(questions)
    if total == 0:
        return ScoreResult(correct_count=0, percentage=0, passed=False)

    correct = 0
    seen = set()
    for answer in answers:
        idx = answer.question_index
        if idx in seen or not 0 <= idx < total:
            continue
        seen.add(idx)
        if answer.selected_option >= 0 and answer.selected_option == questions[idx].correct_index:
            correct += 1

    percentage = round_half_up_percent(correct, total)
    return ScoreResult(correct_count=correct, percentage=percentage, passed=percentage >= int(passing_score))
