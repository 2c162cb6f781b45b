"""Tests for the practice session controller."""
import asyncio
from datetime import timedelta

import pytest

from flashlingo.errors import ConfigurationMissingError, GenerationError
from flashlingo.models.card_models import CEFRLevel, Verdict
from flashlingo.services.session_service import SessionState
from flashlingo.services.word_bank_service import WordRecordStore


async def answer_new_words(controller, count: int) -> list:
    results = []
    for _ in range(count):
        card = await controller.prepare_next_card()
        assert card is not None and not card.is_review
        results.append(controller.handle_verdict(Verdict.NEW))
    return results


@pytest.mark.asyncio
async def test_fresh_card_requested_with_known_words_excluded(controller, word_source, make_record) -> None:
    """Test that a new word is requested when nothing is due."""
    record = make_record(due_in=timedelta(hours=5))
    controller.word_bank.upsert(record)

    card = await controller.prepare_next_card()

    assert card is not None
    assert not card.is_review
    assert card.cefr_level == CEFRLevel.A1
    language, level, excluded = word_source.calls[0]
    assert excluded == {record.word}
    assert level == CEFRLevel.A1


@pytest.mark.asyncio
async def test_due_review_takes_precedence(controller, word_source, make_record) -> None:
    """Test that the most overdue record is shown before new words."""
    later = make_record(due_in=-timedelta(hours=1))
    earliest = make_record(due_in=-timedelta(hours=2))
    controller.word_bank.upsert(later)
    controller.word_bank.upsert(earliest)

    card = await controller.prepare_next_card()

    assert card.is_review
    assert card.record == earliest
    assert word_source.calls == []


@pytest.mark.asyncio
async def test_prepare_keeps_held_card(controller, word_source) -> None:
    """Test that a held card is not replaced until answered."""
    first = await controller.prepare_next_card()
    second = await controller.prepare_next_card()

    assert first is second
    assert len(word_source.calls) == 1


@pytest.mark.asyncio
async def test_five_new_words_end_session(controller, clock, storage, scope) -> None:
    """Test that the fifth new word moves the session to the summary."""
    repeated = []
    for index in range(5):
        await controller.prepare_next_card()
        if index == 2:
            repeated.append(controller.handle_verdict(Verdict.KNOWN).record)
            await controller.prepare_next_card()
        clock.advance(seconds=30)
        result = controller.handle_verdict(Verdict.NEW)
        assert result.session_ended == (index == 4)

    assert controller.state is SessionState.SUMMARY
    assert controller.current_card is None
    assert len(controller.summary.new) == 5
    assert controller.summary.repeated == repeated
    assert controller.progress == 1

    stat = result.stat
    assert stat.total_words == 6
    assert stat.new_words == 5
    assert stat.revision_length == "2m 30s"
    assert stat.last_revised == clock.now
    assert controller.stats.latest() == stat


@pytest.mark.asyncio
async def test_verdicts_ignored_in_summary(controller) -> None:
    """Test that nothing happens after the session has ended."""
    await answer_new_words(controller, 5)

    assert await controller.prepare_next_card() is None
    assert controller.handle_verdict(Verdict.KNOWN) is None


@pytest.mark.asyncio
async def test_three_new_words_lower_level(user_service, scope, word_source, clock) -> None:
    """Test that three new words in a row drop the level once."""
    user_service.save_level(scope, CEFRLevel.B1)
    controller = user_service.open_session(scope.user_id, scope.language, word_source=word_source, clock=clock)

    await answer_new_words(controller, 3)

    assert controller.level == CEFRLevel.A2
    assert controller.consecutive_new_word_clicks == 0
    assert user_service.get_level(scope) == CEFRLevel.A2

    await answer_new_words(controller, 1)
    assert controller.level == CEFRLevel.A2


@pytest.mark.asyncio
async def test_new_word_streak_clamps_at_bottom(controller) -> None:
    """Test that the level never drops below A1."""
    await answer_new_words(controller, 3)

    assert controller.level == CEFRLevel.A1


@pytest.mark.asyncio
async def test_known_resets_new_word_streak(controller) -> None:
    """Test that any other verdict breaks the streak."""
    controller.adjuster.level = CEFRLevel.B2
    await answer_new_words(controller, 2)
    await controller.prepare_next_card()
    controller.handle_verdict(Verdict.KNOWN)
    await answer_new_words(controller, 2)

    assert controller.level == CEFRLevel.B2
    assert controller.consecutive_new_word_clicks == 2


@pytest.mark.asyncio
async def test_easy_review_at_top_level(controller, make_record, clock) -> None:
    """Test that easy on a review raises its SRS level but not past C2."""
    controller.adjuster.level = CEFRLevel.C2
    record = make_record(srs_level=3, due_in=-timedelta(minutes=5))
    controller.word_bank.upsert(record)

    await controller.prepare_next_card()
    result = controller.handle_verdict(Verdict.EASY)

    assert controller.level == CEFRLevel.C2
    assert result.record.id == record.id
    assert result.record.srs_level == 4
    assert result.record.last_reviewed == clock.now
    assert result.record.next_review == clock.now + timedelta(hours=240)
    assert controller.word_bank.get(record.id) == result.record
    assert controller.summary.repeated == [result.record]


@pytest.mark.asyncio
async def test_easy_review_caps_srs_level(controller, make_record) -> None:
    """Test that SRS level 8 stays at 8."""
    record = make_record(srs_level=8, due_in=-timedelta(minutes=5))
    controller.word_bank.upsert(record)

    await controller.prepare_next_card()
    result = controller.handle_verdict(Verdict.EASY)

    assert result.record.srs_level == 8


@pytest.mark.asyncio
async def test_easy_fresh_card_is_not_stored(controller) -> None:
    """Test that a fresh word rated easy is discarded and raises the level."""
    await controller.prepare_next_card()
    result = controller.handle_verdict(Verdict.EASY)

    assert result.record is None
    assert len(controller.word_bank) == 0
    assert controller.summary.repeated == []
    assert controller.level == CEFRLevel.A2
    assert controller.current_card is None


@pytest.mark.asyncio
async def test_known_fresh_card_enters_bank(controller, clock) -> None:
    """Test that a fresh word rated known is stored at level 1 but not counted as new."""
    card = await controller.prepare_next_card()
    result = controller.handle_verdict(Verdict.KNOWN)

    assert result.record.id == f"{card.word}-{card.translation}"
    assert result.record.srs_level == 1
    assert result.record.next_review == clock.now + timedelta(hours=12)
    assert controller.new_words_this_session == 0
    assert controller.summary.repeated == [result.record]
    assert controller.summary.new == []


@pytest.mark.asyncio
async def test_known_review_keeps_srs_level(controller, make_record, clock) -> None:
    """Test that remind-me-later keeps the review's level and reschedules it."""
    record = make_record(srs_level=5, due_in=-timedelta(days=1))
    controller.word_bank.upsert(record)

    await controller.prepare_next_card()
    result = controller.handle_verdict(Verdict.KNOWN)

    assert result.record.srs_level == 5
    assert result.record.next_review == clock.now + timedelta(hours=336)
    assert controller.level == CEFRLevel.A1


@pytest.mark.asyncio
async def test_new_verdict_on_review_is_ignored(controller, make_record) -> None:
    """Test that a review card cannot be marked as new."""
    record = make_record(due_in=-timedelta(minutes=1))
    controller.word_bank.upsert(record)
    card = await controller.prepare_next_card()

    assert controller.handle_verdict(Verdict.NEW) is None
    assert controller.current_card is card
    assert controller.new_words_this_session == 0
    assert controller.consecutive_new_word_clicks == 0
    assert controller.word_bank.get(record.id) == record


def test_verdict_without_card_is_ignored(controller) -> None:
    """Test that verdicts before a card is presented do nothing."""
    assert controller.handle_verdict(Verdict.EASY) is None
    assert controller.level == CEFRLevel.A1


@pytest.mark.asyncio
async def test_start_new_session_resets_state(controller) -> None:
    """Test that a new session starts from a clean slate."""
    await answer_new_words(controller, 5)
    epoch = controller.epoch

    controller.start_new_session()

    assert controller.state is SessionState.PRACTICING
    assert controller.new_words_this_session == 0
    assert controller.summary.new == []
    assert controller.summary.repeated == []
    assert controller.current_card is None
    assert controller.epoch == epoch + 1
    assert len(controller.word_bank) == 5


@pytest.mark.asyncio
async def test_review_without_configuration(user_service, scope, make_record, clock) -> None:
    """Test that due reviews work without an API key."""
    controller = user_service.open_session(scope.user_id, scope.language, clock=clock)
    assert controller.word_source is None
    record = make_record(due_in=-timedelta(hours=1))
    controller.word_bank.upsert(record)

    card = await controller.prepare_next_card()
    result = controller.handle_verdict(Verdict.KNOWN)

    assert card.is_review
    assert result.record.id == record.id

    assert await controller.prepare_next_card() is None
    assert controller.needs_configuration
    assert isinstance(controller.last_error, ConfigurationMissingError)


@pytest.mark.asyncio
async def test_generation_failure_is_retryable(controller, word_source) -> None:
    """Test that a failed request leaves no card and the next call retries."""
    word_source.error = GenerationError("Invalid data structure in response.")

    assert await controller.prepare_next_card() is None
    assert str(controller.last_error) == "Invalid data structure in response."
    assert not controller.is_loading
    assert controller.state is SessionState.PRACTICING

    word_source.error = None
    card = await controller.prepare_next_card()

    assert card is not None
    assert controller.last_error is None
    assert len(word_source.calls) == 2


@pytest.mark.asyncio
async def test_single_request_in_flight(controller, word_source) -> None:
    """Test that a second request waits for the first one."""
    word_source.gate = asyncio.Event()
    pending = asyncio.create_task(controller.prepare_next_card())
    await asyncio.sleep(0)

    assert controller.is_loading
    assert await controller.prepare_next_card() is None
    assert controller.handle_verdict(Verdict.NEW) is None

    word_source.gate.set()
    card = await pending

    assert card is controller.current_card
    assert len(word_source.calls) == 1
    assert not controller.is_loading


@pytest.mark.asyncio
async def test_stale_result_discarded_after_restart(controller, word_source) -> None:
    """Test that a word requested by an earlier session is dropped."""
    word_source.gate = asyncio.Event()
    pending = asyncio.create_task(controller.prepare_next_card())
    await asyncio.sleep(0)

    controller.start_new_session()
    word_source.gate.set()

    assert await pending is None
    assert controller.current_card is None
    assert not controller.is_loading

    card = await controller.prepare_next_card()
    assert card is not None
    assert len(word_source.calls) == 2


@pytest.mark.asyncio
async def test_records_persist_across_sessions(controller, storage, scope) -> None:
    """Test that upserted records reach the store."""
    await answer_new_words(controller, 2)

    reloaded = WordRecordStore(storage, scope)

    assert {record.id for record in reloaded.records()} == {record.id for record in controller.summary.new}
