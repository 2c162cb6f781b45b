"""Practice session state machine."""
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Callable, Optional

from flashlingo import monitoring
from flashlingo.config import LearningSettings, settings
from flashlingo.errors import ConfigurationMissingError, FlashlingoError, GenerationError
from flashlingo.models.card_models import (
    CandidateCard,
    CEFRLevel,
    RevisionStat,
    SessionSummary,
    Verdict,
    WordRecord,
)
from flashlingo.services import review_scheduler
from flashlingo.services.difficulty_service import DifficultyAdjuster
from flashlingo.services.stats_service import StatsAggregator, format_duration
from flashlingo.services.storage_service import LearnerScope
from flashlingo.services.word_bank_service import WordRecordStore
from flashlingo.services.word_source import WordSource

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


class SessionState(Enum):
    """Practice session states."""
    PRACTICING = "practicing"
    SUMMARY = "summary"


@dataclass
class TurnResult:
    """Outcome of one processed verdict."""
    verdict: Verdict
    record: Optional[WordRecord] = None
    session_ended: bool = False
    stat: Optional[RevisionStat] = None


class SessionController:
    """Drives one learner's practice: picks cards, applies verdicts, ends sessions.

    Due reviews always take precedence over new words. New words come from
    the word source, at most one request at a time. Each session start bumps
    an epoch so a word requested for an earlier session is dropped when it
    arrives.
    """

    def __init__(
        self,
        scope: LearnerScope,
        word_bank: WordRecordStore,
        adjuster: DifficultyAdjuster,
        stats: StatsAggregator,
        word_source: Optional[WordSource] = None,
        clock: Callable[[], datetime] = utc_now,
        learning: Optional[LearningSettings] = None,
    ):
        self.scope = scope
        self.word_bank = word_bank
        self.adjuster = adjuster
        self.stats = stats
        self.word_source = word_source
        self.clock = clock
        self.learning = learning or settings.learning

        self.epoch = 0
        self.state = SessionState.PRACTICING
        self.current_card: Optional[CandidateCard] = None
        self.last_error: Optional[FlashlingoError] = None
        self.new_words_this_session = 0
        self.session_start_time: datetime = clock()
        self.summary = SessionSummary()
        self._in_flight = False

    @property
    def level(self) -> CEFRLevel:
        return self.adjuster.level

    @property
    def consecutive_new_word_clicks(self) -> int:
        return self.adjuster.consecutive_new_word_clicks

    @property
    def is_loading(self) -> bool:
        return self._in_flight

    @property
    def needs_configuration(self) -> bool:
        return isinstance(self.last_error, ConfigurationMissingError)

    @property
    def progress(self) -> float:
        """Share of the session's new-word goal reached so far."""
        return self.new_words_this_session / self.learning.new_words_per_session

    def start_new_session(self) -> None:
        """Reset all session-local state and start practicing."""
        self.epoch += 1
        self.state = SessionState.PRACTICING
        self.current_card = None
        self.last_error = None
        self.new_words_this_session = 0
        self.adjuster.reset_streak()
        self.summary = SessionSummary()
        self.session_start_time = self.clock()
        self._in_flight = False
        monitoring.sessions_started.labels(language=self.scope.language.value).inc()
        logger.info(f"Session {self.epoch} started for {self.scope.prefix} at level {self.level.value}")

    async def prepare_next_card(self) -> Optional[CandidateCard]:
        """Hold the next card to present, requesting one if needed.

        Returns the held card, or None while a request is in flight, after a
        failure, or outside practice.
        """
        if self.state is not SessionState.PRACTICING or self.current_card is not None or self._in_flight:
            return self.current_card

        due = self.word_bank.select_due(self.clock())
        if due is not None:
            self.last_error = None
            self.current_card = CandidateCard.review(due)
            logger.debug(f"Presenting review card {due.id}")
            return self.current_card

        if self.word_source is None:
            self.last_error = ConfigurationMissingError("API key is not set. Please provide it in the settings.")
            monitoring.generation_errors.labels(error_type="configuration_missing").inc()
            return None

        epoch = self.epoch
        level = self.level
        self._in_flight = True
        self.last_error = None
        try:
            data = await self.word_source.generate(self.scope.language, level, self.word_bank.known_words())
        except (GenerationError, ConfigurationMissingError) as e:
            if epoch != self.epoch:
                logger.info(f"Discarding failure from superseded session {epoch}: {e}")
                return None
            logger.warning(f"Word generation failed for {self.scope.prefix}: {e}")
            monitoring.generation_errors.labels(error_type=type(e).__name__).inc()
            self.last_error = e
            return None
        finally:
            if epoch == self.epoch:
                self._in_flight = False

        if epoch != self.epoch:
            logger.info(f"Discarding word '{data.word}' generated for superseded session {epoch}")
            return None

        self.current_card = CandidateCard.fresh(data, level)
        return self.current_card

    def handle_verdict(self, verdict: Verdict) -> Optional[TurnResult]:
        """Apply a learner verdict to the held card.

        Returns None when the verdict is ignored: no card is held, a request
        is in flight, the session is over, or "new" was given for a review.
        """
        card = self.current_card
        if self.state is not SessionState.PRACTICING or card is None or self._in_flight:
            logger.debug(f"Ignoring verdict {verdict.value}: no card to review")
            return None
        if verdict is Verdict.NEW and card.is_review:
            logger.warning(f"Ignoring 'new' verdict on review card {card.record.id}")
            return None

        now = self.clock()
        result = TurnResult(verdict=verdict)
        monitoring.verdicts.labels(
            verdict=verdict.value, card_type="review" if card.is_review else "fresh"
        ).inc()

        if verdict is Verdict.EASY:
            self.adjuster.apply(verdict, card.is_review)
            if card.is_review:
                result.record = review_scheduler.advance_on_easy(card.record, now)
                self.summary.repeated.append(result.record)
        elif verdict is Verdict.KNOWN:
            self.adjuster.apply(verdict, card.is_review)
            result.record = review_scheduler.advance_on_known(card, now)
            self.summary.repeated.append(result.record)
        elif verdict is Verdict.NEW:
            self.adjuster.apply(verdict, card.is_review)
            result.record = review_scheduler.create_on_new(card, now)
            self.summary.new.append(result.record)
            self.new_words_this_session += 1
            result.session_ended = self.new_words_this_session >= self.learning.new_words_per_session

        if result.record is not None and self.word_bank.upsert(result.record):
            monitoring.words_added.labels(language=self.scope.language.value).inc()

        self.current_card = None
        if result.session_ended:
            result.stat = self._finish_session(now)
        return result

    def _finish_session(self, now: datetime) -> RevisionStat:
        duration = (now - self.session_start_time).total_seconds()
        stat = self.stats.record(
            last_revised=now,
            revision_length=format_duration(duration),
            total_words=self.summary.total_words,
            new_words=len(self.summary.new),
        )
        self.state = SessionState.SUMMARY
        monitoring.sessions_completed.labels(language=self.scope.language.value).inc()
        monitoring.session_duration.labels(language=self.scope.language.value).observe(duration)
        return stat
