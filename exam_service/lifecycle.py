"""
Attempt lifecycle.

    CREATED -> IN_PROGRESS -> SUBMITTED -> GRADED
                    \\-> EXPIRED -/

Expiry is evaluated lazily whenever an attempt is touched; there is no
background timer. GRADED only moves to GRADED again (explicit re-grade).
"""
import enum
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from .comparator import parse_given
from .errors import ExamServiceError, NotFoundError, StateError, ValidationError
from .models import AttemptStatus, Exam, ExamAttempt, ExamQuestion, UserAnswer
from .repository import AttemptRepository

logger = logging.getLogger("exam-service.lifecycle")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AttemptState(str, enum.Enum):
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    EXPIRED = "expired"
    SUBMITTED = "submitted"
    GRADED = "graded"


_TRANSITIONS: dict[AttemptState, set[AttemptState]] = {
    AttemptState.CREATED: {AttemptState.IN_PROGRESS},
    AttemptState.IN_PROGRESS: {AttemptState.EXPIRED, AttemptState.SUBMITTED},
    AttemptState.EXPIRED: {AttemptState.SUBMITTED},
    AttemptState.SUBMITTED: {AttemptState.GRADED},
    AttemptState.GRADED: {AttemptState.GRADED},
}


def as_utc(value: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes for timezone-aware columns
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def ensure_transition(current: AttemptState, target: AttemptState) -> None:
    if target not in _TRANSITIONS[current]:
        raise StateError(f"Attempt cannot move from {current.value} to {target.value}")


def deadline_for(attempt: ExamAttempt, exam: Exam) -> datetime | None:
    """Earliest of started_at + duration and the exam window's end."""
    candidates = []
    if exam.duration_minutes:
        candidates.append(as_utc(attempt.started_at) + timedelta(minutes=exam.duration_minutes))
    if exam.end_at is not None:
        candidates.append(as_utc(exam.end_at))
    return min(candidates) if candidates else None


def is_expired(attempt: ExamAttempt, exam: Exam, now: datetime) -> bool:
    deadline = deadline_for(attempt, exam)
    return deadline is not None and now > deadline


def effective_state(attempt: ExamAttempt, exam: Exam, now: datetime) -> AttemptState:
    state = AttemptState(attempt.status)
    if state is AttemptState.IN_PROGRESS and is_expired(attempt, exam, now):
        return AttemptState.EXPIRED
    return state


def check_can_start(exam: Exam, now: datetime) -> None:
    if not exam.is_published:
        raise ValidationError("Exam is not published")
    start_at, end_at = as_utc(exam.start_at), as_utc(exam.end_at)
    if start_at is not None and now < start_at:
        raise ValidationError("Exam has not opened yet")
    if end_at is not None and now > end_at:
        raise ValidationError("Exam has closed")


def find_question(exam: Exam, question_id: uuid.UUID) -> ExamQuestion:
    for q in exam.questions:
        if q.id == question_id:
            return q
    raise NotFoundError(f"Question {question_id} is not part of exam {exam.id}")


class AttemptLifecycle:
    def __init__(self, repo: AttemptRepository, clock: Clock = utc_now):
        self.repo = repo
        self.clock = clock

    def start_attempt(self, user_id: uuid.UUID, exam_id: uuid.UUID) -> ExamAttempt:
        now = self.clock()
        exam = self.repo.get_exam(exam_id)
        check_can_start(exam, now)

        stale = self.repo.find_active_attempt(user_id, exam_id)
        if stale is not None and is_expired(stale, exam, now):
            # an expired attempt no longer occupies the in-progress slot
            self.repo.save_status(stale, AttemptStatus.EXPIRED)
            logger.info("Attempt %s expired before a new start", stale.id)

        attempt = self.repo.try_create_attempt(user_id, exam_id, started_at=now)
        logger.info("Started attempt %s (user=%s exam=%s)", attempt.id, user_id, exam_id)
        return attempt

    def record_answer(self, attempt_id: uuid.UUID, question_id: uuid.UUID, given: Any) -> UserAnswer:
        now = self.clock()
        attempt = self.repo.get_attempt(attempt_id, for_update=True)
        try:
            exam = self.repo.get_exam(attempt.exam_id)

            state = effective_state(attempt, exam, now)
            if state is AttemptState.EXPIRED:
                if attempt.status == AttemptStatus.IN_PROGRESS.value:
                    self.repo.save_status(attempt, AttemptStatus.EXPIRED)
                    logger.info("Attempt %s expired, answer rejected", attempt.id)
                raise StateError("Attempt time is over, answers can no longer be changed")
            if state is not AttemptState.IN_PROGRESS:
                raise StateError(f"Attempt is {state.value}, answers can no longer be changed")

            question = find_question(exam, question_id)
            # reject malformed shapes now rather than at grading time
            parse_given(question.question_type, given)
        except ExamServiceError:
            self.repo.rollback()
            raise

        return self.repo.save_answer(attempt, question.id, given, answered_at=now)

    def submit_attempt(self, attempt_id: uuid.UUID) -> ExamAttempt:
        """Idempotent: a submitted or graded attempt is returned unchanged."""
        now = self.clock()
        attempt = self.repo.get_attempt(attempt_id, for_update=True)
        try:
            exam = self.repo.get_exam(attempt.exam_id)

            state = effective_state(attempt, exam, now)
            if state in (AttemptState.SUBMITTED, AttemptState.GRADED):
                return attempt

            finished_at = now
            if state is AttemptState.EXPIRED:
                ensure_transition(AttemptState.IN_PROGRESS, AttemptState.EXPIRED)
                finished_at = deadline_for(attempt, exam) or now
                logger.info("Attempt %s submitted through expiry", attempt.id)

            ensure_transition(state, AttemptState.SUBMITTED)
        except ExamServiceError:
            self.repo.rollback()
            raise

        attempt = self.repo.save_status(attempt, AttemptStatus.SUBMITTED, finished_at=finished_at)
        logger.info("Attempt %s submitted", attempt.id)
        return attempt
