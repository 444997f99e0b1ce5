import uuid
from dataclasses import dataclass
from typing import Any

from .comparator import Verdict, compare
from .models import ExamQuestion


@dataclass(frozen=True)
class QuestionResult:
    question_id: uuid.UUID
    verdict: Verdict
    marks_awarded: int
    max_marks: int

    @property
    def is_correct(self) -> bool | None:
        return self.verdict.is_correct


def grade(question: ExamQuestion, given: Any) -> QuestionResult:
    """
    Grade one answer. Full marks only for a correct verdict; wrong and
    needs-review answers both score 0 (no partial credit).
    """
    verdict = compare(question.question_type, question.correct_answer, given)
    marks = int(question.marks or 0)
    return QuestionResult(
        question_id=question.id,
        verdict=verdict,
        marks_awarded=marks if verdict is Verdict.CORRECT else 0,
        max_marks=marks,
    )
