import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class OptionOut(BaseModel):
    id: str
    text: str


class QuestionOut(BaseModel):
    # correct_answer is never exposed to learners
    id: uuid.UUID
    question_text: str
    question_type: str
    options: list[OptionOut] | None = None
    marks: int
    position: int


class ExamOut(BaseModel):
    id: uuid.UUID
    title: str
    description: str | None = None
    duration_minutes: int | None = None
    total_marks: int | None = None
    passing_marks: int | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    is_published: bool
    questions: list[QuestionOut]


class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    exam_id: uuid.UUID
    started_at: datetime
    finished_at: datetime | None = None
    status: str
    score: int | None = None


class AnswerIn(BaseModel):
    given_answer: Any = Field(
        default=None,
        description='{"id": "a"} for single_choice, ["a", "c"] for multi_choice, {"text": "..."} for free_text',
    )


class AnswerOut(BaseModel):
    attempt_id: uuid.UUID
    question_id: uuid.UUID
    given_answer: Any = None
    answered_at: datetime | None = None


class QuestionResultOut(BaseModel):
    question_id: uuid.UUID
    verdict: str  # correct | incorrect | needs_review
    is_correct: bool | None
    marks_awarded: int
    max_marks: int


class GradingOut(BaseModel):
    attempt_id: uuid.UUID
    total_score: int
    max_score: int
    passed: bool | None
    needs_review: int
    per_question: list[QuestionResultOut]
