"""Tests for Gemini word generation."""
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions

from flashlingo.errors import ConfigurationMissingError, GenerationError
from flashlingo.models.card_models import CEFRLevel, Language
from flashlingo.services.word_source import (
    GeminiWordSource,
    build_prompt,
    parse_word_response,
    word_source_factory,
)

WORD_JSON = json.dumps({"word": "gezellig", "translation": "cozy", "exampleSentence": "Het is hier gezellig."})


@pytest.fixture
def genai():
    """Patch the Gemini client with a model returning ``WORD_JSON``."""
    with patch("flashlingo.services.word_source.genai") as genai:
        model = genai.GenerativeModel.return_value
        model.generate_content_async = AsyncMock(return_value=MagicMock(text=WORD_JSON))
        yield genai


def test_build_prompt() -> None:
    prompt = build_prompt(Language.DUTCH, CEFRLevel.B1, {"kaas", "brood"})

    assert "Language: Dutch" in prompt
    assert "CEFR Level: B1" in prompt
    assert "Do not generate any of the following words: brood, kaas." in prompt
    assert "exampleSentence" in prompt


def test_build_prompt_without_exclusions() -> None:
    assert "Do not generate" not in build_prompt(Language.FRENCH, CEFRLevel.A1, [])


def test_parse_word_response() -> None:
    word = parse_word_response(WORD_JSON)

    assert word.word == "gezellig"
    assert word.translation == "cozy"
    assert word.example_sentence == "Het is hier gezellig."


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "[]",
        json.dumps({"word": "kat", "translation": "cat"}),
        json.dumps({"word": "", "translation": "cat", "exampleSentence": "De kat."}),
        json.dumps({"word": "kat", "translation": 3, "exampleSentence": "De kat."}),
    ],
)
def test_parse_invalid_response(text: str) -> None:
    with pytest.raises(GenerationError):
        parse_word_response(text)


def test_parse_rejects_excluded_word() -> None:
    with pytest.raises(GenerationError):
        parse_word_response(WORD_JSON, exclude_words={"Gezellig"})


@pytest.mark.asyncio
async def test_generate(genai) -> None:
    """Test a successful generation request."""
    source = GeminiWordSource("test-key", model_name="test-model", temperature=0.5)

    word = await source.generate(Language.DUTCH, CEFRLevel.B2, ["fiets"])

    assert word.word == "gezellig"
    genai.configure.assert_called_once_with(api_key="test-key")
    args, kwargs = genai.GenerativeModel.call_args
    assert args == ("test-model",)
    assert kwargs["generation_config"] == {"response_mime_type": "application/json", "temperature": 0.5}
    prompt = genai.GenerativeModel.return_value.generate_content_async.await_args.args[0]
    assert "CEFR Level: B2" in prompt
    assert "fiets" in prompt


@pytest.mark.asyncio
async def test_generate_api_error(genai) -> None:
    genai.GenerativeModel.return_value.generate_content_async.side_effect = google_exceptions.ServiceUnavailable("down")

    with pytest.raises(GenerationError):
        await GeminiWordSource("test-key").generate(Language.DUTCH, CEFRLevel.A1, [])


@pytest.mark.asyncio
async def test_generate_without_key(genai) -> None:
    with pytest.raises(ConfigurationMissingError):
        await GeminiWordSource("").generate(Language.DUTCH, CEFRLevel.A1, [])

    genai.configure.assert_not_called()


@pytest.mark.asyncio
async def test_verify(genai) -> None:
    await GeminiWordSource("test-key").verify()

    genai.GenerativeModel.return_value.generate_content_async.assert_awaited_once_with("hello")


@pytest.mark.asyncio
async def test_verify_invalid_key(genai) -> None:
    genai.GenerativeModel.return_value.generate_content_async.side_effect = google_exceptions.InvalidArgument(
        "API key not valid"
    )

    with pytest.raises(ConfigurationMissingError):
        await GeminiWordSource("bad-key").verify()


def test_word_source_factory() -> None:
    assert word_source_factory(None) is None
    assert word_source_factory("key").api_key == "key"
