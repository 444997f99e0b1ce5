import uuid

import pytest

from exam_service.comparator import Verdict
from exam_service.errors import ConflictError, NotFoundError
from exam_service.grader import QuestionResult
from exam_service.lifecycle import AttemptLifecycle
from exam_service.models import AttemptStatus, ExamAttempt
from exam_service.repository import SqlAttemptRepository
from shared.database import init_db, make_engine, make_session_factory
from tests.factories import T0, build_exam, single


@pytest.fixture
def file_sessions(tmp_path):
    # separate connections, so two sessions really race
    engine = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


def test_concurrent_writes_on_one_attempt_conflict(file_sessions, user_id):
    with file_sessions() as setup:
        exam = build_exam(setup, [single()])
        attempt = SqlAttemptRepository(setup).try_create_attempt(user_id, exam.id, started_at=T0)

    with file_sessions() as a, file_sessions() as b:
        repo_a, repo_b = SqlAttemptRepository(a), SqlAttemptRepository(b)
        seen_by_a = repo_a.get_attempt(attempt.id)
        seen_by_b = repo_b.get_attempt(attempt.id)

        repo_a.save_status(seen_by_a, AttemptStatus.SUBMITTED, finished_at=T0)
        with pytest.raises(ConflictError):
            repo_b.save_status(seen_by_b, AttemptStatus.EXPIRED)

    with file_sessions() as check:
        assert SqlAttemptRepository(check).get_attempt(attempt.id).status == AttemptStatus.SUBMITTED.value


def test_answer_after_concurrent_submit_conflicts(file_sessions, user_id, clock):
    with file_sessions() as setup:
        exam = build_exam(setup, [single()])
        question_id = exam.questions[0].id
        attempt = SqlAttemptRepository(setup).try_create_attempt(user_id, exam.id, started_at=T0)

    with file_sessions() as a, file_sessions() as b:
        repo_a = SqlAttemptRepository(a)
        # a passed its in-progress check before b submitted
        seen_by_a = repo_a.get_attempt(attempt.id, for_update=True)
        AttemptLifecycle(SqlAttemptRepository(b), clock).submit_attempt(attempt.id)

        with pytest.raises(ConflictError):
            repo_a.save_answer(seen_by_a, question_id, {"id": "a"}, answered_at=T0)

    with file_sessions() as check:
        repo = SqlAttemptRepository(check)
        assert repo.get_attempt(attempt.id).status == AttemptStatus.SUBMITTED.value
        assert repo.get_answers(attempt.id) == {}


def test_unique_index_backs_up_the_in_progress_check(db, user_id):
    exam = build_exam(db, [single()])
    repo = SqlAttemptRepository(db)
    repo.try_create_attempt(user_id, exam.id, started_at=T0)

    # simulate a racer that slipped past find_active_attempt
    db.add(ExamAttempt(user_id=user_id, exam_id=exam.id, started_at=T0, status=AttemptStatus.IN_PROGRESS.value))
    with pytest.raises(ConflictError):
        repo._commit("An attempt for this exam is already in progress")

    assert repo.find_active_attempt(user_id, exam.id) is not None


def test_grading_result_write_is_all_or_nothing(db, user_id):
    exam = build_exam(db, [single()])
    repo = SqlAttemptRepository(db)
    attempt = repo.try_create_attempt(user_id, exam.id, started_at=T0)
    attempt = repo.save_status(attempt, AttemptStatus.SUBMITTED, finished_at=T0)

    q = exam.questions[0]
    # the same unanswered question twice inserts two rows and trips the unique key
    result = QuestionResult(question_id=q.id, verdict=Verdict.INCORRECT, marks_awarded=0, max_marks=2)
    with pytest.raises(ConflictError):
        repo.save_grading_result(attempt, 0, [result, result])

    stored = repo.get_attempt(attempt.id)
    assert stored.status == AttemptStatus.SUBMITTED.value
    assert stored.score is None
    assert repo.get_answers(attempt.id) == {}


def test_missing_rows_raise_not_found(repo):
    with pytest.raises(NotFoundError):
        repo.get_attempt(uuid.uuid4())
    with pytest.raises(NotFoundError):
        repo.get_exam(uuid.uuid4())
