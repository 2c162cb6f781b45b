"""User service for managing learner preferences and practice sessions."""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flashlingo.errors import ConfigurationMissingError, StoreCorruptionError
from flashlingo.models.card_models import (
    DEFAULT_CEFR_LEVEL,
    DEFAULT_LANGUAGE,
    CEFRLevel,
    Language,
)
from flashlingo.services.difficulty_service import DifficultyAdjuster
from flashlingo.services.session_service import SessionController, utc_now
from flashlingo.services.stats_service import StatsAggregator
from flashlingo.services.storage_service import LearnerScope, StorageService, api_key_key, user_key
from flashlingo.services.word_bank_service import WordRecordStore
from flashlingo.services.word_source import GeminiWordSource, WordSource, word_source_factory

logger = logging.getLogger(__name__)


def _decode_language(value) -> Language:
    try:
        return Language(value)
    except ValueError as e:
        raise StoreCorruptionError(f"Unknown language: {value!r}") from e


def _decode_level(value) -> CEFRLevel:
    try:
        return CEFRLevel(value)
    except ValueError as e:
        raise StoreCorruptionError(f"Unknown CEFR level: {value!r}") from e


def _decode_api_key(value) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        raise StoreCorruptionError("API key must be a string")
    return value


class UserService:
    """Service for managing learner preferences and opening sessions."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db
        self.storage = StorageService(db)

    def get_language(self, user_id: str) -> Language:
        return self.storage.load(user_key(user_id, "language"), DEFAULT_LANGUAGE, decode=_decode_language)

    def set_language(self, user_id: str, language: Language) -> None:
        self.storage.save(user_key(user_id, "language"), language.value)
        logger.info(f"User {user_id} switched language to {language.value}")

    def get_api_key(self, user_id: str) -> Optional[str]:
        return self.storage.load(api_key_key(user_id), None, decode=_decode_api_key)

    async def save_api_key(self, user_id: str, api_key: str) -> None:
        """Verify an API key and store it.

        Invalid keys are not stored and any previous key is removed.
        Raises ConfigurationMissingError when the key is rejected.
        """
        api_key = api_key.strip()
        try:
            if not api_key:
                raise ConfigurationMissingError("API key is empty.")
            await GeminiWordSource(api_key).verify()
        except ConfigurationMissingError:
            self.storage.delete(api_key_key(user_id))
            raise
        self.storage.save(api_key_key(user_id), api_key)
        logger.info(f"API key saved for user {user_id}")

    def logout(self, user_id: str) -> None:
        """Forget the user's API key."""
        self.storage.delete(api_key_key(user_id))
        logger.info(f"User {user_id} logged out")

    def get_level(self, scope: LearnerScope) -> CEFRLevel:
        return self.storage.load(scope.cefr_level_key, DEFAULT_CEFR_LEVEL, decode=_decode_level)

    def save_level(self, scope: LearnerScope, level: CEFRLevel) -> None:
        try:
            self.storage.save(scope.cefr_level_key, level.value)
        except SQLAlchemyError as e:
            logger.error(f"Error saving CEFR level for {scope.prefix}: {e}")
            self.db.rollback()

    def open_session(
        self,
        user_id: str,
        language: Optional[Language] = None,
        word_source: Optional[WordSource] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> SessionController:
        """Load the learner's scope and start a practice session.

        Without an explicit ``word_source`` one is built from the stored API
        key; with no key at all only due reviews can be practiced.
        """
        scope = LearnerScope(str(user_id), language or self.get_language(user_id))
        word_bank = WordRecordStore(self.storage, scope)
        adjuster = DifficultyAdjuster(
            self.get_level(scope),
            on_level_change=lambda level: self.save_level(scope, level),
        )
        stats = StatsAggregator(self.storage, scope, lambda: adjuster.level)
        if word_source is None:
            word_source = word_source_factory(self.get_api_key(user_id))

        controller = SessionController(
            scope,
            word_bank,
            adjuster,
            stats,
            word_source=word_source,
            clock=clock,
        )
        controller.start_new_session()
        return controller
