import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy.pool import StaticPool

from exam_service.lifecycle import AttemptLifecycle
from exam_service.repository import SqlAttemptRepository
from exam_service.scoring import ScoringEngine
from shared.database import init_db, make_engine, make_session_factory
from tests.factories import T0


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repo(db):
    return SqlAttemptRepository(db)


@pytest.fixture
def lifecycle(repo, clock):
    return AttemptLifecycle(repo, clock)


@pytest.fixture
def scoring(repo, clock):
    return ScoringEngine(repo, clock)


@pytest.fixture
def user_id():
    return uuid.uuid4()
