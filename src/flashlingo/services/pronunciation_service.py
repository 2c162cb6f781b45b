"""Text-to-speech for flashcards."""
import asyncio
import io
import logging
from typing import Awaitable, Callable, Optional

from gtts import gTTS
from gtts.tts import gTTSError

from flashlingo.models.card_models import Language

logger = logging.getLogger(__name__)

AudioDelivery = Callable[[bytes, str], Awaitable[None]]


class PronunciationService:
    """Speaks words aloud, one utterance at a time.

    Starting a new utterance cancels the one still being synthesized or
    delivered. Failures are logged and never reach the caller.
    """

    def __init__(self, deliver: AudioDelivery, slow: bool = False):
        self.deliver = deliver
        self.slow = slow
        self._task: Optional[asyncio.Task] = None

    @property
    def current_task(self) -> Optional[asyncio.Task]:
        return self._task

    def synthesize(self, text: str, language: Language) -> bytes:
        """Render ``text`` to MP3 bytes."""
        buffer = io.BytesIO()
        gTTS(text=text, lang=language.code, slow=self.slow).write_to_fp(buffer)
        return buffer.getvalue()

    def cancel(self) -> None:
        """Cancel the utterance in progress, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def speak(self, text: str, language: Language) -> None:
        """Start speaking ``text`` in the background."""
        self.cancel()
        self._task = asyncio.create_task(self._speak(text, language))

    async def _speak(self, text: str, language: Language) -> None:
        try:
            audio = await asyncio.to_thread(self.synthesize, text, language)
            await self.deliver(audio, text)
            logger.debug(f"Pronunciation delivered for: {text}")
        except (gTTSError, ValueError) as e:
            logger.error(f"Error generating pronunciation for: {text}, error: {e}")
        except Exception as e:
            logger.error(f"Error delivering pronunciation for: {text}, error: {e}")
