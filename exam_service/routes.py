import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from shared.database import db_dependency
from .errors import ConflictError, ExamServiceError, NotFoundError, StateError, ValidationError
from .lifecycle import AttemptLifecycle, Clock, utc_now
from .repository import SqlAttemptRepository
from .schemas import (
    AnswerIn, AnswerOut, AttemptOut, ExamOut, GradingOut, OptionOut, QuestionOut, QuestionResultOut,
)
from .scoring import GradingOutcome, ScoringEngine

logger = logging.getLogger("exam-service.routes")

ERROR_STATUS = {
    ValidationError: 422,
    StateError: 409,
    ConflictError: 409,
    NotFoundError: 404,
}


def _http_error(e: ExamServiceError) -> HTTPException:
    code = ERROR_STATUS.get(type(e), 400)
    logger.info("Request rejected (%s): %s", code, e.message)
    return HTTPException(status_code=code, detail=e.message)


def _grading_out(outcome: GradingOutcome) -> GradingOut:
    return GradingOut(
        attempt_id=outcome.attempt_id,
        total_score=outcome.total_score,
        max_score=outcome.max_score,
        passed=outcome.passed,
        needs_review=outcome.needs_review,
        per_question=[
            QuestionResultOut(
                question_id=r.question_id,
                verdict=r.verdict.value,
                is_correct=r.is_correct,
                marks_awarded=r.marks_awarded,
                max_marks=r.max_marks,
            )
            for r in outcome.per_question
        ],
    )


def build_router(SessionLocal, clock: Clock = utc_now) -> APIRouter:
    router = APIRouter()
    get_db = db_dependency(SessionLocal)

    def current_user_id(request: Request) -> uuid.UUID:
        # set by api-gateway (request.state.user or forwarded X-User-ID)
        user = getattr(request.state, "user", None)
        raw = user.get("sub") if isinstance(user, dict) else request.headers.get("X-User-ID")
        try:
            return uuid.UUID(str(raw))
        except (TypeError, ValueError):
            raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing or invalid user id")

    @router.get("/exams/{exam_id}", response_model=ExamOut)
    def get_exam(exam_id: uuid.UUID, db: Session = Depends(get_db)):
        try:
            exam = SqlAttemptRepository(db).get_exam(exam_id)
        except ExamServiceError as e:
            raise _http_error(e)
        return ExamOut(
            id=exam.id,
            title=exam.title,
            description=exam.description,
            duration_minutes=exam.duration_minutes,
            total_marks=exam.total_marks,
            passing_marks=exam.passing_marks,
            start_at=exam.start_at,
            end_at=exam.end_at,
            is_published=exam.is_published,
            questions=[
                QuestionOut(
                    id=q.id,
                    question_text=q.question_text,
                    question_type=q.question_type,
                    options=[OptionOut(**o) for o in q.options] if q.options else None,
                    marks=q.marks,
                    position=q.position,
                )
                for q in sorted(exam.questions, key=lambda q: q.position)
            ],
        )

    @router.post("/exams/{exam_id}/attempts", response_model=AttemptOut, status_code=status.HTTP_201_CREATED)
    def start(exam_id: uuid.UUID, request: Request, db: Session = Depends(get_db)):
        uid = current_user_id(request)
        try:
            attempt = AttemptLifecycle(SqlAttemptRepository(db), clock).start_attempt(uid, exam_id)
        except ExamServiceError as e:
            raise _http_error(e)
        return AttemptOut.model_validate(attempt)

    @router.get("/attempts/{attempt_id}", response_model=AttemptOut)
    def get_attempt(attempt_id: uuid.UUID, db: Session = Depends(get_db)):
        try:
            attempt = SqlAttemptRepository(db).get_attempt(attempt_id)
        except ExamServiceError as e:
            raise _http_error(e)
        return AttemptOut.model_validate(attempt)

    @router.put("/attempts/{attempt_id}/answers/{question_id}", response_model=AnswerOut)
    def answer(attempt_id: uuid.UUID, question_id: uuid.UUID, payload: AnswerIn, db: Session = Depends(get_db)):
        try:
            a = AttemptLifecycle(SqlAttemptRepository(db), clock).record_answer(
                attempt_id, question_id, payload.given_answer
            )
        except ExamServiceError as e:
            raise _http_error(e)
        return AnswerOut(
            attempt_id=a.attempt_id,
            question_id=a.question_id,
            given_answer=a.given_answer,
            answered_at=a.answered_at,
        )

    @router.post("/attempts/{attempt_id}/submit", response_model=AttemptOut)
    def submit(attempt_id: uuid.UUID, db: Session = Depends(get_db)):
        try:
            attempt = AttemptLifecycle(SqlAttemptRepository(db), clock).submit_attempt(attempt_id)
        except ExamServiceError as e:
            raise _http_error(e)
        return AttemptOut.model_validate(attempt)

    @router.post("/attempts/{attempt_id}/grade", response_model=GradingOut)
    def grade(attempt_id: uuid.UUID, db: Session = Depends(get_db)):
        try:
            outcome = ScoringEngine(SqlAttemptRepository(db), clock).grade_attempt(attempt_id)
        except ExamServiceError as e:
            raise _http_error(e)
        return _grading_out(outcome)

    return router
