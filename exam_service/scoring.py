import logging
import uuid
from dataclasses import dataclass, field

from .errors import ExamServiceError, StateError
from .grader import QuestionResult, grade
from .lifecycle import AttemptState, Clock, deadline_for, effective_state, ensure_transition, utc_now
from .models import AttemptStatus
from .repository import AttemptRepository

logger = logging.getLogger("exam-service.scoring")


@dataclass
class GradingOutcome:
    attempt_id: uuid.UUID
    total_score: int
    max_score: int
    passed: bool | None  # None when the exam has no passing mark
    per_question: list[QuestionResult] = field(default_factory=list)

    @property
    def needs_review(self) -> int:
        return sum(1 for r in self.per_question if r.is_correct is None)


class ScoringEngine:
    """
    Grades whole attempts.

    Grading is a pure function of the stored answers and the exam's current
    questions, so grading the same attempt twice writes the same result.
    Re-grading a graded attempt is how corrected answer keys are applied.
    """

    def __init__(self, repo: AttemptRepository, clock: Clock = utc_now):
        self.repo = repo
        self.clock = clock

    def grade_attempt(self, attempt_id: uuid.UUID) -> GradingOutcome:
        now = self.clock()
        attempt = self.repo.get_attempt(attempt_id, for_update=True)
        try:
            exam = self.repo.get_exam(attempt.exam_id)

            state = effective_state(attempt, exam, now)
            finished_at = None
            if state is AttemptState.IN_PROGRESS:
                raise StateError("Attempt is still in progress, submit it before grading")
            if state is AttemptState.EXPIRED:
                # time ran out without an explicit submit
                ensure_transition(AttemptState.EXPIRED, AttemptState.SUBMITTED)
                finished_at = deadline_for(attempt, exam) or now
                state = AttemptState.SUBMITTED
            ensure_transition(state, AttemptState.GRADED)
        except ExamServiceError:
            self.repo.rollback()
            raise

        answers = self.repo.get_answers(attempt.id)
        results: list[QuestionResult] = []
        for question in sorted(exam.questions, key=lambda q: q.position):
            answer = answers.get(question.id)
            results.append(grade(question, answer.given_answer if answer else None))

        total = sum(r.marks_awarded for r in results)
        passed = total >= exam.passing_marks if exam.passing_marks is not None else None

        self.repo.save_grading_result(attempt, total, results, finished_at=finished_at)
        outcome = GradingOutcome(
            attempt_id=attempt.id,
            total_score=total,
            max_score=sum(r.max_marks for r in results),
            passed=passed,
            per_question=results,
        )
        logger.info(
            "Graded attempt %s: %s/%s passed=%s needs_review=%s",
            attempt.id, total, outcome.max_score, passed, outcome.needs_review,
        )
        return outcome

    def regrade_exam(self, exam_id: uuid.UUID) -> list[GradingOutcome]:
        self.repo.get_exam(exam_id)
        attempt_ids = self.repo.list_attempt_ids(exam_id, [AttemptStatus.SUBMITTED, AttemptStatus.GRADED])
        return [self.grade_attempt(attempt_id) for attempt_id in attempt_ids]
