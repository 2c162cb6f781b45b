"""Models for flashcards, word records and revision statistics."""
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from flashlingo.errors import StoreCorruptionError


class Language(Enum):
    """Languages a learner can practice."""
    DUTCH = "Dutch"
    ITALIAN = "Italian"
    FRENCH = "French"
    SPANISH = "Spanish"
    GERMAN = "German"

    @property
    def flag(self) -> str:
        return LANGUAGE_FLAGS[self]

    @property
    def code(self) -> str:
        """Two-letter code used for speech synthesis."""
        return LANGUAGE_CODES[self]


LANGUAGE_FLAGS = {
    Language.DUTCH: "🇳🇱",
    Language.ITALIAN: "🇮🇹",
    Language.FRENCH: "🇫🇷",
    Language.SPANISH: "🇪🇸",
    Language.GERMAN: "🇩🇪",
}

LANGUAGE_CODES = {
    Language.DUTCH: "nl",
    Language.ITALIAN: "it",
    Language.FRENCH: "fr",
    Language.SPANISH: "es",
    Language.GERMAN: "de",
}

DEFAULT_LANGUAGE = Language.DUTCH


class CEFRLevel(Enum):
    """Ordered language-proficiency scale, A1 lowest."""
    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"

    @property
    def index(self) -> int:
        return CEFR_ORDER.index(self)

    @property
    def description(self) -> str:
        return CEFR_DESCRIPTIONS[self]

    def next_level(self) -> "CEFRLevel":
        """Return the level above, staying at C2."""
        return CEFR_ORDER[min(self.index + 1, len(CEFR_ORDER) - 1)]

    def previous_level(self) -> "CEFRLevel":
        """Return the level below, staying at A1."""
        return CEFR_ORDER[max(self.index - 1, 0)]


CEFR_ORDER = list(CEFRLevel)

CEFR_DESCRIPTIONS = {
    CEFRLevel.A1: "Beginner",
    CEFRLevel.A2: "Elementary",
    CEFRLevel.B1: "Intermediate",
    CEFRLevel.B2: "Upper-Intermediate",
    CEFRLevel.C1: "Advanced",
    CEFRLevel.C2: "Proficient",
}

DEFAULT_CEFR_LEVEL = CEFRLevel.A1


class Verdict(Enum):
    """Learner responses to a presented card."""
    EASY = "easy"  # "I Know It"
    KNOWN = "known"  # "Remind Me Later"
    NEW = "new"  # "New Word", fresh cards only


def _parse_timestamp(value: str) -> datetime:
    timestamp = datetime.fromisoformat(value)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return timestamp


@dataclass(frozen=True)
class WordData:
    """A vocabulary item returned by the word source."""
    word: str
    translation: str
    example_sentence: str


@dataclass(frozen=True)
class WordRecord:
    """Repetition state of one word in a learner's bank.

    Records are replaced as a whole on every change; ``cefr_level`` is the
    level the word was first learned at and never changes.
    """
    id: str
    word: str
    translation: str
    example_sentence: str
    cefr_level: CEFRLevel
    srs_level: int
    last_reviewed: datetime
    next_review: datetime

    @staticmethod
    def make_id(word: str, translation: str) -> str:
        return f"{word}-{translation}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to serializable data for storage."""
        return {
            "id": self.id,
            "word": self.word,
            "translation": self.translation,
            "exampleSentence": self.example_sentence,
            "cefrLevel": self.cefr_level.value,
            "srsLevel": self.srs_level,
            "lastReviewed": self.last_reviewed.isoformat(),
            "nextReview": self.next_review.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WordRecord":
        """Create a WordRecord from stored data."""
        try:
            return cls(
                id=str(data["id"]),
                word=str(data["word"]),
                translation=str(data["translation"]),
                example_sentence=str(data["exampleSentence"]),
                cefr_level=CEFRLevel(data["cefrLevel"]),
                srs_level=int(data["srsLevel"]),
                last_reviewed=_parse_timestamp(data["lastReviewed"]),
                next_review=_parse_timestamp(data["nextReview"]),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise StoreCorruptionError(f"Invalid word record: {e}") from e


@dataclass(frozen=True)
class CandidateCard:
    """A card shown for one turn: a due review or a freshly generated word."""
    word: str
    translation: str
    example_sentence: str
    cefr_level: CEFRLevel
    record: Optional[WordRecord] = None

    @property
    def is_review(self) -> bool:
        return self.record is not None

    @classmethod
    def review(cls, record: WordRecord) -> "CandidateCard":
        return cls(
            word=record.word,
            translation=record.translation,
            example_sentence=record.example_sentence,
            cefr_level=record.cefr_level,
            record=record,
        )

    @classmethod
    def fresh(cls, data: WordData, cefr_level: CEFRLevel) -> "CandidateCard":
        return cls(
            word=data.word,
            translation=data.translation,
            example_sentence=data.example_sentence,
            cefr_level=cefr_level,
        )


@dataclass(frozen=True)
class RevisionStat:
    """Summary of the last finished practice session."""
    last_revised: datetime
    revision_length: str
    total_words: int
    new_words: int
    end_cefr_level: CEFRLevel

    def to_dict(self) -> Dict[str, Any]:
        """Convert to serializable data for storage."""
        return {
            "lastRevised": self.last_revised.isoformat(),
            "revisionLength": self.revision_length,
            "totalWords": self.total_words,
            "newWords": self.new_words,
            "endCEFRLevel": self.end_cefr_level.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RevisionStat":
        """Create a RevisionStat from stored data."""
        try:
            return cls(
                last_revised=_parse_timestamp(data["lastRevised"]),
                revision_length=str(data["revisionLength"]),
                total_words=int(data["totalWords"]),
                new_words=int(data["newWords"]),
                end_cefr_level=CEFRLevel(data["endCEFRLevel"]),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise StoreCorruptionError(f"Invalid revision stat: {e}") from e


@dataclass
class SessionSummary:
    """Words produced during the current session, in order."""
    new: List[WordRecord] = field(default_factory=list)
    repeated: List[WordRecord] = field(default_factory=list)

    @property
    def total_words(self) -> int:
        return len(self.new) + len(self.repeated)
