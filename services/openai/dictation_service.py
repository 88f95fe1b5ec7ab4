"""Speech-to-text for completed user utterances built on OpenAI transcription."""

import io
import logging

from openai import AsyncOpenAI

TRANSCRIBE_MODEL = "gpt-4o-transcribe"

LOGGER = logging.getLogger(__name__)


class DictationService:
    """Create text transcriptions from WAV-wrapped microphone audio."""

    def __init__(self, client: AsyncOpenAI, model: str = TRANSCRIBE_MODEL) -> None:
        """Initialize the service with a shared OpenAI client."""
        if client is None:
            raise ValueError("OpenAI client is required for dictation.")
        self.client = client
        self.model = model

    async def transcribe(self, audio_bytes: bytes, *, filename: str = "utterance.wav") -> str:
        """Transcribe WAV audio bytes into text.

        An empty string is returned when the model recognized nothing; the
        caller decides how to report that.
        """
        if not audio_bytes:
            raise ValueError("audio_bytes must contain data for transcription.")

        audio_file = io.BytesIO(audio_bytes)
        audio_file.name = filename

        try:
            response = await self.client.audio.transcriptions.create(
                model=self.model,
                file=audio_file,
            )
        except Exception as exc:
            LOGGER.error("OpenAI transcription request failed: %s", exc)
            raise

        transcript = getattr(response, "text", None)
        if transcript is None and isinstance(response, str):
            transcript = response
        return (transcript or "").strip()
