"""Vocabulary generation with Gemini."""
import json
import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from flashlingo.config import settings
from flashlingo.errors import ConfigurationMissingError, GenerationError
from flashlingo.models.card_models import CEFRLevel, Language, WordData

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("word", "translation", "exampleSentence")


class WordSource(ABC):
    """Supplies new vocabulary items."""

    @abstractmethod
    async def generate(self, language: Language, cefr_level: CEFRLevel, exclude_words: Iterable[str]) -> WordData:
        """Return one word for the level that is not in ``exclude_words``.

        Raises GenerationError or ConfigurationMissingError.
        """


def build_prompt(language: Language, cefr_level: CEFRLevel, exclude_words: Iterable[str]) -> str:
    """Build the generation prompt for a single vocabulary word."""
    excluded = sorted(exclude_words)
    exclusion = f"Do not generate any of the following words: {', '.join(excluded)}." if excluded else ""
    return (
        "You are an expert linguist. Generate a single vocabulary word for a language learner.\n"
        f"Language: {language.value}\n"
        f"CEFR Level: {cefr_level.value}\n"
        f"{exclusion}\n"
        f"Provide the word, its English translation, and a simple example sentence in {language.value} "
        "using the word. Avoid common or overly simple words unless the level is A1.\n"
        'Respond with a JSON object with the keys "word", "translation" and "exampleSentence".'
    )


def parse_word_response(text: str, exclude_words: Iterable[str] = ()) -> WordData:
    """Validate a JSON generation response and turn it into WordData."""
    try:
        data = json.loads(text.strip())
    except json.JSONDecodeError as e:
        raise GenerationError(f"Response is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not all(isinstance(data.get(key), str) and data[key].strip() for key in REQUIRED_FIELDS):
        raise GenerationError("Invalid data structure in response.")

    word = data["word"].strip()
    if word.casefold() in {excluded.casefold() for excluded in exclude_words}:
        raise GenerationError(f"Generated word '{word}' is already in the word bank.")

    return WordData(
        word=word,
        translation=data["translation"].strip(),
        example_sentence=data["exampleSentence"].strip(),
    )


class GeminiWordSource(WordSource):
    """Word source backed by the Gemini API."""

    def __init__(self, api_key: str, model_name: Optional[str] = None, temperature: Optional[float] = None):
        self.api_key = api_key
        self.model_name = model_name or settings.generator.model_name
        self.temperature = settings.generator.temperature if temperature is None else temperature

    def _model(self) -> "genai.GenerativeModel":
        if not self.api_key:
            raise ConfigurationMissingError("API key is not set. Please provide it in the settings.")
        genai.configure(api_key=self.api_key)
        return genai.GenerativeModel(
            self.model_name,
            generation_config={
                "response_mime_type": "application/json",
                "temperature": self.temperature,
            },
        )

    async def generate(self, language: Language, cefr_level: CEFRLevel, exclude_words: Iterable[str]) -> WordData:
        exclude_words = set(exclude_words)
        prompt = build_prompt(language, cefr_level, exclude_words)
        model = self._model()
        logger.info(f"Generating {language.value} word at {cefr_level.value}, excluding {len(exclude_words)} words")

        try:
            response = await model.generate_content_async(prompt)
            text = response.text
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Gemini API error: {e}")
            raise GenerationError(f"Word generation failed: {e}") from e
        except ValueError as e:
            # Raised by response.text when the candidate has no parts
            logger.error(f"Empty Gemini response: {e}")
            raise GenerationError("The model returned an empty response.") from e

        word = parse_word_response(text, exclude_words)
        logger.info(f"Generated word: {word.word} ({word.translation})")
        return word

    async def verify(self) -> None:
        """Check the API key with a minimal request."""
        model = self._model()
        try:
            await model.generate_content_async("hello")
        except google_exceptions.GoogleAPIError as e:
            logger.warning(f"API key validation failed: {e}")
            raise ConfigurationMissingError("API key is not valid. Please check your key and try again.") from e


def word_source_factory(api_key: Optional[str]) -> Optional[WordSource]:
    """Create a word source for a key, or None when no key is configured."""
    api_key = api_key or settings.generator.api_key
    if not api_key:
        return None
    return GeminiWordSource(api_key)
