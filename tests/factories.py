from datetime import datetime, timezone

from exam_service.crud import add_question, create_exam, publish_exam

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def build_exam(db, questions, *, publish=True, **exam_kwargs):
    """questions: dicts accepted by crud.add_question, positions default to list order."""
    exam_kwargs.setdefault("total_marks", sum(q.get("marks", 1) for q in questions))
    exam = create_exam(db, exam_kwargs.pop("title", "Sample exam"), **exam_kwargs)
    for pos, q in enumerate(questions, start=1):
        q = dict(q)
        q.setdefault("position", pos)
        q.setdefault("question_text", f"Question {pos}")
        add_question(db, exam.id, **q)
    if publish:
        exam = publish_exam(db, exam.id)
    return exam


CHOICES = [{"id": "a", "text": "A"}, {"id": "b", "text": "B"}, {"id": "c", "text": "C"}, {"id": "d", "text": "D"}]


def single(correct="a", marks=2):
    return {"question_type": "single_choice", "options": CHOICES, "correct_answer": {"id": correct}, "marks": marks}


def multi(correct=("a", "c"), marks=3):
    return {"question_type": "multi_choice", "options": CHOICES, "correct_answer": list(correct), "marks": marks}


def free_text(expected=None, marks=5):
    spec = {"text": expected} if expected is not None else None
    return {"question_type": "free_text", "correct_answer": spec, "marks": marks}
