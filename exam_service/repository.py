import logging
import uuid
from datetime import datetime
from typing import Any, Iterable, Protocol

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.exc import StaleDataError

from .errors import ConflictError, NotFoundError
from .grader import QuestionResult
from .models import AttemptStatus, Exam, ExamAttempt, UserAnswer

logger = logging.getLogger("exam-service.repository")


class AttemptRepository(Protocol):
    """
    Storage boundary for the lifecycle and the scoring engine.

    Write methods take the attempt as it was read and are atomic. Each write
    first claims the attempt's version, so a write based on a stale read
    fails with ConflictError instead of overwriting a newer state.
    """

    def get_exam(self, exam_id: uuid.UUID) -> Exam: ...

    def get_attempt(self, attempt_id: uuid.UUID, for_update: bool = False) -> ExamAttempt: ...

    def get_answers(self, attempt_id: uuid.UUID) -> dict[uuid.UUID, UserAnswer]: ...

    def find_active_attempt(self, user_id: uuid.UUID, exam_id: uuid.UUID) -> ExamAttempt | None: ...

    def try_create_attempt(self, user_id: uuid.UUID, exam_id: uuid.UUID, started_at: datetime) -> ExamAttempt: ...

    def save_answer(
        self, attempt: ExamAttempt, question_id: uuid.UUID, given: Any, answered_at: datetime
    ) -> UserAnswer: ...

    def save_status(
        self, attempt: ExamAttempt, status: AttemptStatus, finished_at: datetime | None = None
    ) -> ExamAttempt: ...

    def save_grading_result(
        self,
        attempt: ExamAttempt,
        total_score: int,
        results: Iterable[QuestionResult],
        finished_at: datetime | None = None,
    ) -> ExamAttempt: ...

    def list_attempt_ids(self, exam_id: uuid.UUID, statuses: Iterable[AttemptStatus]) -> list[uuid.UUID]: ...

    def rollback(self) -> None: ...


class SqlAttemptRepository:
    def __init__(self, db: Session):
        self.db = db

    def rollback(self) -> None:
        # releases any row lock taken by get_attempt(for_update=True)
        self.db.rollback()

    def _commit(self, conflict_detail: str) -> None:
        try:
            self.db.commit()
        except (IntegrityError, StaleDataError) as e:
            self.db.rollback()
            logger.warning("Write rejected (%s): %s", conflict_detail, type(e).__name__)
            raise ConflictError(conflict_detail)
        except Exception:
            self.db.rollback()
            logger.exception("Write failed, rolled back")
            raise

    def _claim(self, attempt: ExamAttempt, conflict_detail: str) -> None:
        """Bump the attempt's version, but only if nobody else has since it was read."""
        expected = attempt.version
        result = self.db.execute(
            update(ExamAttempt)
            .where(ExamAttempt.id == attempt.id, ExamAttempt.version == expected)
            .values(version=expected + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            logger.warning("Stale write on attempt %s (%s)", attempt.id, conflict_detail)
            raise ConflictError(conflict_detail)
        set_committed_value(attempt, "version", expected + 1)

    # ---- reads ----

    def get_exam(self, exam_id: uuid.UUID) -> Exam:
        exam = self.db.query(Exam).filter(Exam.id == exam_id).first()
        if not exam:
            raise NotFoundError(f"Exam {exam_id} not found")
        return exam

    def get_attempt(self, attempt_id: uuid.UUID, for_update: bool = False) -> ExamAttempt:
        q = self.db.query(ExamAttempt).filter(ExamAttempt.id == attempt_id)
        if for_update:
            q = q.with_for_update().populate_existing()
        attempt = q.first()
        if not attempt:
            raise NotFoundError(f"Attempt {attempt_id} not found")
        return attempt

    def get_answers(self, attempt_id: uuid.UUID) -> dict[uuid.UUID, UserAnswer]:
        rows = self.db.query(UserAnswer).filter(UserAnswer.attempt_id == attempt_id).all()
        return {a.question_id: a for a in rows}

    def find_active_attempt(self, user_id: uuid.UUID, exam_id: uuid.UUID) -> ExamAttempt | None:
        return (
            self.db.query(ExamAttempt)
            .filter(
                ExamAttempt.user_id == user_id,
                ExamAttempt.exam_id == exam_id,
                ExamAttempt.status == AttemptStatus.IN_PROGRESS.value,
            )
            .first()
        )

    def list_attempt_ids(self, exam_id: uuid.UUID, statuses: Iterable[AttemptStatus]) -> list[uuid.UUID]:
        values = [AttemptStatus(s).value for s in statuses]
        rows = (
            self.db.query(ExamAttempt.id)
            .filter(ExamAttempt.exam_id == exam_id, ExamAttempt.status.in_(values))
            .order_by(ExamAttempt.started_at.asc())
            .all()
        )
        return [r.id for r in rows]

    # ---- writes ----

    def try_create_attempt(self, user_id: uuid.UUID, exam_id: uuid.UUID, started_at: datetime) -> ExamAttempt:
        if self.find_active_attempt(user_id, exam_id):
            raise ConflictError("An attempt for this exam is already in progress")

        attempt = ExamAttempt(
            user_id=user_id,
            exam_id=exam_id,
            started_at=started_at,
            status=AttemptStatus.IN_PROGRESS.value,
        )
        self.db.add(attempt)
        # the partial unique index catches a concurrent insert that passed the check above
        self._commit("An attempt for this exam is already in progress")
        self.db.refresh(attempt)
        return attempt

    def save_answer(
        self, attempt: ExamAttempt, question_id: uuid.UUID, given: Any, answered_at: datetime
    ) -> UserAnswer:
        self._claim(attempt, "Attempt changed while the answer was being saved, retry")

        answer = (
            self.db.query(UserAnswer)
            .filter(UserAnswer.attempt_id == attempt.id, UserAnswer.question_id == question_id)
            .first()
        )
        if answer is None:
            answer = UserAnswer(attempt_id=attempt.id, question_id=question_id)
            self.db.add(answer)

        # overwrite, never append
        answer.given_answer = given
        answer.answered_at = answered_at
        answer.is_correct = None
        answer.marks_awarded = 0

        self._commit("Answer was modified concurrently, retry")
        self.db.refresh(answer)
        return answer

    def save_status(
        self, attempt: ExamAttempt, status: AttemptStatus, finished_at: datetime | None = None
    ) -> ExamAttempt:
        self._claim(attempt, "Attempt was modified concurrently, retry")

        attempt.status = AttemptStatus(status).value
        if finished_at is not None:
            attempt.finished_at = finished_at

        self._commit("Attempt was modified concurrently, retry")
        self.db.refresh(attempt)
        return attempt

    def save_grading_result(
        self,
        attempt: ExamAttempt,
        total_score: int,
        results: Iterable[QuestionResult],
        finished_at: datetime | None = None,
    ) -> ExamAttempt:
        self._claim(attempt, "Attempt was graded concurrently, retry")
        answers = self.get_answers(attempt.id)

        for r in results:
            answer = answers.get(r.question_id)
            if answer is None:
                # unanswered question still gets a persisted result
                answer = UserAnswer(attempt_id=attempt.id, question_id=r.question_id, given_answer=None)
                self.db.add(answer)
            answer.is_correct = r.is_correct
            answer.marks_awarded = r.marks_awarded

        attempt.score = total_score
        attempt.status = AttemptStatus.GRADED.value
        if finished_at is not None and attempt.finished_at is None:
            attempt.finished_at = finished_at

        self._commit("Attempt was graded concurrently, retry")
        self.db.refresh(attempt)
        return attempt
