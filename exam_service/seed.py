"""
Idempotent demo data. Safe to run on every startup.

    python -m exam_service.seed
"""
import logging

from dotenv import load_dotenv
from sqlalchemy.orm import Session

from shared.database import init_db, make_engine, make_session_factory
from .crud import add_question, create_exam, get_exam_by_title, publish_exam
from .models import Exam

logger = logging.getLogger("exam-service.seed")

DEMO_EXAM_TITLE = "HTML Basics Exam"

DEMO_QUESTIONS = [
    {
        "position": 1,
        "question_text": "What does HTML stand for?",
        "question_type": "single_choice",
        "options": [
            {"id": "a", "text": "HyperText Markup Language"},
            {"id": "b", "text": "Home Tool Markup Language"},
            {"id": "c", "text": "Hyperlinks and Text Markup Language"},
        ],
        "correct_answer": {"id": "a"},
        "marks": 2,
    },
    {
        "position": 2,
        "question_text": "Select the inline elements:",
        "question_type": "multi_choice",
        "options": [
            {"id": "a", "text": "span"},
            {"id": "b", "text": "div"},
            {"id": "c", "text": "a"},
            {"id": "d", "text": "p"},
        ],
        "correct_answer": ["a", "c"],
        "marks": 3,
    },
    {
        "position": 3,
        "question_text": "Which tag creates a hyperlink?",
        "question_type": "free_text",
        "correct_answer": {"text": "a"},
        "marks": 5,
    },
]


def seed_demo_exam(db: Session) -> Exam:
    exam = get_exam_by_title(db, DEMO_EXAM_TITLE)
    if exam is None:
        exam = create_exam(
            db,
            DEMO_EXAM_TITLE,
            description="Short exam covering basic HTML concepts",
            duration_minutes=30,
            total_marks=10,
            passing_marks=6,
        )
        logger.info("Created demo exam %s", exam.id)

    if exam.is_published:
        return exam

    existing = {q.position for q in exam.questions}
    for q in DEMO_QUESTIONS:
        if q["position"] not in existing:
            add_question(db, exam.id, **q)

    return publish_exam(db, exam.id)


if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    engine = make_engine()
    init_db(engine)
    SessionLocal = make_session_factory(engine)
    with SessionLocal() as db:
        seed_demo_exam(db)
