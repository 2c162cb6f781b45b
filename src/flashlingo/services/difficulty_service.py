"""CEFR level adaptation from learner verdicts."""
import logging
from typing import Callable, Optional

from flashlingo import monitoring
from flashlingo.config import settings
from flashlingo.models.card_models import CEFRLevel, Verdict

logger = logging.getLogger(__name__)


class DifficultyAdjuster:
    """Tracks the learner's level and the streak of "new" verdicts.

    An "easy" verdict moves the level up. A run of "new" verdicts on fresh
    cards moves it down once the streak reaches the configured length, after
    which the streak starts over.
    """

    def __init__(
        self,
        level: CEFRLevel,
        on_level_change: Optional[Callable[[CEFRLevel], None]] = None,
        streak_to_level_down: Optional[int] = None,
    ):
        self.level = level
        self.consecutive_new_word_clicks = 0
        self.on_level_change = on_level_change
        self.streak_to_level_down = (
            settings.learning.new_word_streak_to_level_down if streak_to_level_down is None else streak_to_level_down
        )

    def reset_streak(self) -> None:
        self.consecutive_new_word_clicks = 0

    def apply(self, verdict: Verdict, is_review: bool) -> CEFRLevel:
        """Update the level and streak for a verdict and return the level."""
        if verdict is Verdict.EASY:
            self.reset_streak()
            self._set_level(self.level.next_level(), "up")
        elif verdict is Verdict.KNOWN:
            self.reset_streak()
        elif verdict is Verdict.NEW:
            if is_review:
                logger.warning("Ignoring 'new' verdict on a review card")
                return self.level
            self.consecutive_new_word_clicks += 1
            if self.consecutive_new_word_clicks >= self.streak_to_level_down:
                self._set_level(self.level.previous_level(), "down")
                self.reset_streak()
        return self.level

    def _set_level(self, level: CEFRLevel, direction: str) -> None:
        if level is self.level:
            return
        logger.info(f"CEFR level {direction}: {self.level.value} -> {level.value}")
        self.level = level
        monitoring.level_changes.labels(direction=direction).inc()
        if self.on_level_change:
            self.on_level_change(level)
