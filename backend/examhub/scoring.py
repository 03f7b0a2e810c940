"""Score computation for completed exam sessions.

Scoring is a pure function of the exam's questions and the answers a
session submitted, so it can be reused by every results view and tested
without a database.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from . import models


@dataclass
class QuestionOutcome:
    question_id: int
    question_text: str
    selected_option_id: Optional[int]
    correct_option_id: Optional[int]
    is_correct: bool


@dataclass
class ScoreReport:
    score: float
    total_questions: int
    correct_answers: int
    outcomes: List[QuestionOutcome] = field(default_factory=list)

    @property
    def incorrect_answers(self) -> int:
        return self.total_questions - self.correct_answers


def percentage(correct: int, total: int) -> float:
    """Return `correct / total` as a percentage; an empty exam scores 0.0."""
    if total <= 0:
        return 0.0
    return 100.0 * correct / total


def score_answers(questions: Iterable[models.Question], answers: Iterable[models.ExamAnswer]) -> ScoreReport:
    """Score `answers` against `questions`.

    A question counts as correct only when it is sealed and the selected
    option is exactly its correct option. Unanswered questions count as
    incorrect. If a question was answered more than once the last answer
    wins.
    """
    selected: Dict[int, int] = {}
    for a in answers:
        selected[a.question_id] = a.selected_option_id
    outcomes = []
    correct = 0
    for q in questions:
        choice = selected.get(q.id)
        is_correct = bool(q.sealed and q.correct_option_id is not None and choice == q.correct_option_id)
        if is_correct:
            correct += 1
        outcomes.append(QuestionOutcome(
            question_id=q.id,
            question_text=q.text,
            selected_option_id=choice,
            correct_option_id=q.correct_option_id,
            is_correct=is_correct,
        ))
    return ScoreReport(
        score=percentage(correct, len(outcomes)),
        total_questions=len(outcomes),
        correct_answers=correct,
        outcomes=outcomes,
    )
