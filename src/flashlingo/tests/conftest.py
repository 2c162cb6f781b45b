"""Test configuration."""
import os
from datetime import UTC, datetime, timedelta
from typing import Generator, Optional

import pytest
from faker import Faker

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["GEMINI_API_KEY"] = ""

# Import after environment setup
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from flashlingo.models.base import init_db
from flashlingo.models.card_models import CEFRLevel, Language, WordData, WordRecord
from flashlingo.services.session_service import SessionController
from flashlingo.services.storage_service import LearnerScope, StorageService
from flashlingo.services.user_service import UserService
from flashlingo.services.word_source import WordSource

fake = Faker()


class FakeClock:
    """Controllable clock for sessions and schedules."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeWordSource(WordSource):
    """Word source returning unique fake words.

    Set ``error`` to make calls fail, or ``gate`` to hold calls until the
    event is set.
    """

    def __init__(self):
        self.calls = []
        self.error: Optional[Exception] = None
        self.gate = None

    async def generate(self, language, cefr_level, exclude_words) -> WordData:
        self.calls.append((language, cefr_level, set(exclude_words)))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        word = fake.unique.word()
        return WordData(word=word, translation=f"{word} (en)", example_sentence=fake.sentence())


@pytest.fixture(autouse=True)
def unique_words() -> Generator[None, None, None]:
    """Keep generated words unique within a test only."""
    yield
    fake.unique.clear()


@pytest.fixture
def db(tmp_path) -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    db = sessionmaker(bind=engine)()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def storage(db: Session) -> StorageService:
    return StorageService(db)


@pytest.fixture
def user_service(db: Session) -> UserService:
    return UserService(db)


@pytest.fixture
def user_id() -> str:
    return str(fake.random_int(min=1000, max=99999))


@pytest.fixture
def scope(user_id: str) -> LearnerScope:
    return LearnerScope(user_id=user_id, language=Language.DUTCH)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 3, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def word_source() -> FakeWordSource:
    return FakeWordSource()


@pytest.fixture
def make_record(clock: FakeClock):
    """Factory for word records due relative to the test clock."""

    def factory(
        word: Optional[str] = None,
        srs_level: int = 1,
        due_in: timedelta = timedelta(hours=1),
        cefr_level: CEFRLevel = CEFRLevel.A1,
    ) -> WordRecord:
        word = word or fake.unique.word()
        translation = f"{word} (en)"
        next_review = clock.now + due_in
        return WordRecord(
            id=WordRecord.make_id(word, translation),
            word=word,
            translation=translation,
            example_sentence=fake.sentence(),
            cefr_level=cefr_level,
            srs_level=srs_level,
            last_reviewed=min(next_review, clock.now) - timedelta(hours=12),
            next_review=next_review,
        )

    return factory


@pytest.fixture
def controller(
    user_service: UserService, scope: LearnerScope, word_source: FakeWordSource, clock: FakeClock
) -> SessionController:
    """A started session for the test scope."""
    return user_service.open_session(scope.user_id, scope.language, word_source=word_source, clock=clock)
