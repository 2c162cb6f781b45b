"""Spaced-repetition scheduling of word records.

Every function here is pure: the current time is passed in explicitly and
records are never mutated, only replaced.
"""
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, Optional

from flashlingo.config import settings
from flashlingo.models.card_models import CandidateCard, WordRecord


def is_due(record: WordRecord, now: datetime) -> bool:
    """Check whether the record's next review has passed."""
    return record.next_review <= now


def select_due(records: Iterable[WordRecord], now: datetime) -> Optional[WordRecord]:
    """Pick the most overdue record, ties broken by id."""
    due = [record for record in records if is_due(record, now)]
    if not due:
        return None
    return min(due, key=lambda record: (record.next_review, record.id))


def next_review_timestamp(srs_level: Optional[int], now: datetime) -> datetime:
    """Calculate the next review time for an SRS level.

    Levels outside the interval table use the longest interval.
    """
    intervals = settings.learning.srs_intervals_hours
    hours = intervals.get(srs_level, intervals[settings.learning.max_srs_level])
    return now + timedelta(hours=hours)


def _stamp(record: WordRecord, srs_level: int, now: datetime) -> WordRecord:
    return replace(
        record,
        srs_level=srs_level,
        last_reviewed=now,
        next_review=next_review_timestamp(srs_level, now),
    )


def advance_on_easy(record: WordRecord, now: datetime) -> WordRecord:
    """Move a reviewed record one SRS level up, capped at the top level."""
    return _stamp(record, min(record.srs_level + 1, settings.learning.max_srs_level), now)


def advance_on_known(card: CandidateCard, now: datetime) -> WordRecord:
    """Reschedule a card the learner wants to see again.

    Review cards keep their id and SRS level. Fresh cards enter the bank as
    brand-new records at level 1.
    """
    if card.record is not None:
        return _stamp(card.record, card.record.srs_level, now)
    return _mint(card, now)


def create_on_new(card: CandidateCard, now: datetime) -> WordRecord:
    """Create the record for a fresh card the learner marked as new."""
    if card.is_review:
        raise ValueError(f"Cannot create a new record from review card {card.record.id}")
    return _mint(card, now)


def _mint(card: CandidateCard, now: datetime) -> WordRecord:
    return WordRecord(
        id=WordRecord.make_id(card.word, card.translation),
        word=card.word,
        translation=card.translation,
        example_sentence=card.example_sentence,
        cefr_level=card.cefr_level,
        srs_level=1,
        last_reviewed=now,
        next_review=next_review_timestamp(1, now),
    )


def describe_next_review(record: WordRecord, now: datetime) -> str:
    """Human-readable time until the next review."""
    diff_seconds = (record.next_review - now).total_seconds()
    if diff_seconds <= 0:
        return "Due now"

    diff_minutes = round(diff_seconds / 60)
    if diff_minutes < 60:
        return f"in {diff_minutes} min"

    diff_hours = round(diff_minutes / 60)
    if diff_hours < 24:
        return f"in {diff_hours} hr"

    return f"in {round(diff_hours / 24)} days"
