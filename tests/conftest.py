import asyncio
import os
from datetime import date, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from detailing.database import Base  # noqa: E402
from detailing.models.booking import Booking  # noqa: E402
from detailing.models.expense import Expense  # noqa: E402
from detailing.models.service import Service  # noqa: E402
from detailing.scheduling.policy import SchedulingPolicy  # noqa: E402


class FakeSource:
    def __init__(self, intervals=None, by_date=None, error=None, delay=0.0, timeout_seconds=1.0, name='fake'):
        self.intervals = list(intervals or [])
        self.by_date = by_date
        self.error = error
        self.delay = delay
        self.timeout_seconds = timeout_seconds
        self.name = name
        self.calls: list[str] = []

    async def fetch_for_date(self, date_str: str):
        self.calls.append(date_str)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.by_date is not None:
            return list(self.by_date.get(date_str, []))
        return list(self.intervals)


@pytest.fixture
def fake_source():
    return FakeSource


@pytest.fixture
def policy() -> SchedulingPolicy:
    return SchedulingPolicy(time_zone='America/Halifax')


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f'sqlite:///{tmp_path / "detailing.db"}',
        connect_args={'check_same_thread': False},
    )
    tables = [Booking.__table__, Service.__table__, Expense.__table__]
    Base.metadata.create_all(bind=engine, tables=tables)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine, tables=tables)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def future_wednesday() -> str:
    """An open weekday safely after today in any time zone."""
    candidate = date.today() + timedelta(days=7)
    while candidate.weekday() != 2:
        candidate += timedelta(days=1)
    return candidate.isoformat()
