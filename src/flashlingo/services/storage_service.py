"""Scoped key/value persistence on top of the database."""
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.orm import Session

from flashlingo import monitoring
from flashlingo.errors import StoreCorruptionError
from flashlingo.models.card_models import Language
from flashlingo.models.models import StoredValue

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Data kinds stored independently per (user, language)
WORD_BANK = "word-bank"
CEFR_LEVEL = "cefr-level"
REVISION_STATS = "revision-stats"


def user_key(user_id: str, datum: str) -> str:
    """Key for a per-user value that is not tied to a language."""
    return f"user-{user_id}:{datum}"


def api_key_key(user_id: str) -> str:
    return f"user-{user_id}-api-key"


@dataclass(frozen=True)
class LearnerScope:
    """The (user, language) pair a word bank, level and stats belong to."""
    user_id: str
    language: Language

    @property
    def prefix(self) -> str:
        return f"user-{self.user_id}:{self.language.value}"

    def key(self, datum: str) -> str:
        return f"{self.prefix}:{datum}"

    @property
    def word_bank_key(self) -> str:
        return self.key(WORD_BANK)

    @property
    def cefr_level_key(self) -> str:
        return self.key(CEFR_LEVEL)

    @property
    def revision_stats_key(self) -> str:
        return self.key(REVISION_STATS)


class StorageService:
    """Service for loading and saving JSON values under scope keys."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def _get(self, key: str) -> Optional[StoredValue]:
        return self.db.query(StoredValue).filter(StoredValue.scope_key == key).first()

    def load(self, key: str, default: T, decode: Optional[Callable[[Any], T]] = None) -> T:
        """Load the value stored under ``key``.

        Missing keys yield ``default``. Values that fail to decode are
        deleted and ``default`` is returned instead.
        """
        entry = self._get(key)
        if entry is None:
            return default

        try:
            value = json.loads(entry.value)
            return decode(value) if decode else value
        except (json.JSONDecodeError, StoreCorruptionError) as e:
            logger.warning(f"Discarding corrupt value for key {key}: {e}")
            monitoring.store_corruptions.inc()
            self.db.delete(entry)
            self.db.commit()
            return default

    def save(self, key: str, value: T, encode: Optional[Callable[[T], Any]] = None) -> None:
        """Replace the value stored under ``key``."""
        text = json.dumps(encode(value) if encode else value, ensure_ascii=False)
        entry = self._get(key)
        if entry is None:
            entry = StoredValue(scope_key=key, value=text)
            self.db.add(entry)
        else:
            entry.value = text
        self.db.commit()
        logger.debug(f"Saved value for key {key}")

    def delete(self, key: str) -> bool:
        """Delete the value stored under ``key``."""
        entry = self._get(key)
        if entry is None:
            return False
        self.db.delete(entry)
        self.db.commit()
        return True
