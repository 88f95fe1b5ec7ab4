"""Text-to-speech streaming built on OpenAI's speech endpoint."""

import logging
from typing import AsyncIterator

from openai import AsyncOpenAI

from utils.settings import DEFAULT_TTS_MODEL_ID, DEFAULT_VOICE_ID

LOGGER = logging.getLogger(__name__)

# 24 kHz mono 16-bit PCM: 4800 bytes is 100 ms of audio.
CHUNK_SIZE = 4800


class SpeechService:
    """Synthesize short utterances into raw PCM chunks."""

    def __init__(self, client: AsyncOpenAI, model: str = DEFAULT_TTS_MODEL_ID, chunk_size: int = CHUNK_SIZE) -> None:
        if client is None:
            raise ValueError("OpenAI client is required for speech synthesis.")
        self.client = client
        self.model = model
        self.chunk_size = chunk_size

    async def stream_speech(self, text: str, voice: str = DEFAULT_VOICE_ID) -> AsyncIterator[bytes]:
        """Yield PCM byte chunks for ``text`` spoken with ``voice``."""
        if not text or not text.strip():
            return
        async with self.client.audio.speech.with_streaming_response.create(
            model=self.model,
            voice=voice or DEFAULT_VOICE_ID,
            input=text,
            response_format="pcm",
        ) as response:
            async for chunk in response.iter_bytes(self.chunk_size):
                if chunk:
                    yield chunk
