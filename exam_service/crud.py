import uuid
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from .comparator import MultiChoice, SingleChoice, parse_correct, question_type_of
from .errors import NotFoundError, ValidationError
from .models import Exam, ExamQuestion, QuestionType


def get_exam_by_title(db: Session, title: str) -> Exam | None:
    return db.query(Exam).filter(Exam.title == title).first()


def get_exam(db: Session, exam_id: uuid.UUID) -> Exam | None:
    return db.query(Exam).filter(Exam.id == exam_id).first()


def create_exam(
    db: Session,
    title: str,
    *,
    description: str | None = None,
    duration_minutes: int | None = None,
    total_marks: int | None = None,
    passing_marks: int | None = None,
    start_at: datetime | None = None,
    end_at: datetime | None = None,
) -> Exam:
    if total_marks is not None and passing_marks is not None and passing_marks > total_marks:
        raise ValidationError("passing_marks cannot exceed total_marks")
    if start_at is not None and end_at is not None and end_at <= start_at:
        raise ValidationError("end_at must be after start_at")

    exam = Exam(
        title=title,
        description=description,
        duration_minutes=duration_minutes,
        total_marks=total_marks,
        passing_marks=passing_marks,
        start_at=start_at,
        end_at=end_at,
        is_published=False,
    )
    db.add(exam)
    db.commit()
    db.refresh(exam)
    return exam


def _check_options(question_type: QuestionType, options: Any, correct: Any) -> None:
    if question_type is QuestionType.FREE_TEXT:
        return
    if not isinstance(options, list) or not options:
        raise ValidationError(f"{question_type.value} question needs a list of options")

    ids = []
    for opt in options:
        if not isinstance(opt, dict) or not isinstance(opt.get("id"), str) or not isinstance(opt.get("text"), str):
            raise ValidationError('Options must look like {"id": "a", "text": "..."}')
        ids.append(opt["id"])
    if len(set(ids)) != len(ids):
        raise ValidationError("Option ids must be unique within a question")

    if isinstance(correct, SingleChoice):
        named = {correct.id}
    elif isinstance(correct, MultiChoice):
        named = set(correct.ids)
    else:
        named = set()
    unknown = named - set(ids)
    if unknown:
        raise ValidationError(f"Correct answer names unknown options: {sorted(unknown)}")


def add_question(
    db: Session,
    exam_id: uuid.UUID,
    *,
    question_text: str,
    question_type: str,
    correct_answer: Any,
    options: list[dict] | None = None,
    marks: int = 1,
    position: int = 0,
) -> ExamQuestion:
    exam = get_exam(db, exam_id)
    if not exam:
        raise NotFoundError(f"Exam {exam_id} not found")
    if exam.is_published:
        raise ValidationError("Published exams cannot be edited")

    qt = question_type_of(question_type)
    correct = parse_correct(qt, correct_answer)
    _check_options(qt, options, correct)
    if marks <= 0:
        raise ValidationError("marks must be a positive integer")
    if any(q.position == position for q in exam.questions):
        raise ValidationError(f"Position {position} is already used in this exam")

    q = ExamQuestion(
        exam_id=exam_id,
        question_text=question_text,
        question_type=qt.value,
        options=options if qt is not QuestionType.FREE_TEXT else None,
        correct_answer=correct_answer,
        marks=marks,
        position=position,
    )
    exam.questions.append(q)
    db.commit()
    db.refresh(q)
    return q


def publish_exam(db: Session, exam_id: uuid.UUID) -> Exam:
    """
    Marks must add up before an exam goes live; scoring trusts this and
    never re-checks it.
    """
    exam = get_exam(db, exam_id)
    if not exam:
        raise NotFoundError(f"Exam {exam_id} not found")
    if not exam.questions:
        raise ValidationError("Exam has no questions")

    marks_sum = sum(q.marks for q in exam.questions)
    if exam.total_marks is None:
        exam.total_marks = marks_sum
    elif marks_sum != exam.total_marks:
        raise ValidationError(f"Question marks add up to {marks_sum}, exam total is {exam.total_marks}")
    if exam.passing_marks is not None and exam.passing_marks > exam.total_marks:
        raise ValidationError("passing_marks cannot exceed total_marks")

    exam.is_published = True
    db.commit()
    db.refresh(exam)
    return exam
