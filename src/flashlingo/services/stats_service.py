"""End-of-session statistics."""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from flashlingo.models.card_models import CEFRLevel, RevisionStat
from flashlingo.services.storage_service import LearnerScope, StorageService

logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    """Format a duration as minutes and seconds, e.g. ``3m 7s``."""
    total = round(seconds)
    minutes, seconds = divmod(total, 60)
    return f"{minutes}m {seconds}s"


class StatsAggregator:
    """Keeps the single revision summary of a scope."""

    def __init__(self, storage: StorageService, scope: LearnerScope, level_provider: Callable[[], CEFRLevel]):
        self.storage = storage
        self.scope = scope
        self.level_provider = level_provider

    def record(
        self,
        last_revised: datetime,
        revision_length: str,
        total_words: int,
        new_words: int,
    ) -> RevisionStat:
        """Stamp the current level and replace the stored summary."""
        stat = RevisionStat(
            last_revised=last_revised,
            revision_length=revision_length,
            total_words=total_words,
            new_words=new_words,
            end_cefr_level=self.level_provider(),
        )
        try:
            self.storage.save(self.scope.revision_stats_key, stat, encode=RevisionStat.to_dict)
        except SQLAlchemyError as e:
            logger.error(f"Error saving revision stats for {self.scope.prefix}: {e}")
            self.storage.db.rollback()
        logger.info(
            f"Session recorded for {self.scope.prefix}: {total_words} words, "
            f"{new_words} new, {revision_length}, level {stat.end_cefr_level.value}"
        )
        return stat

    def latest(self) -> Optional[RevisionStat]:
        return self.storage.load(self.scope.revision_stats_key, None, decode=RevisionStat.from_dict)
