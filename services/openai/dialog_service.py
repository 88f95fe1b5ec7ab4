"""Streaming dialog replies using the OpenAI Responses API."""

import logging
import time
from typing import AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from utils.settings import DEFAULT_LLM_MODEL_NAME, TEXT_CONFIG

LOGGER = logging.getLogger(__name__)

TEXT_DELTA_EVENT = "response.output_text.delta"


class DialogService:
    """Generate the agent's next reply token by token."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = DEFAULT_LLM_MODEL_NAME,
        generation_config: Optional[Dict[str, float]] = None,
    ) -> None:
        if client is None:
            raise ValueError("OpenAI AsyncOpenAI client is required.")
        self.client = client
        self.model = model
        self.generation_config = dict(generation_config or TEXT_CONFIG)

    @staticmethod
    def build_input(history: List[Dict[str, str]]) -> List[Dict[str, object]]:
        """Convert conversation history into Responses API input messages."""
        items: List[Dict[str, object]] = []
        for message in history:
            role = message.get("role") or "user"
            text = message.get("content") or ""
            if not text:
                continue
            content_type = "output_text" if role == "assistant" else "input_text"
            items.append(
                {
                    "type": "message",
                    "role": role,
                    "content": [{"type": content_type, "text": text}],
                }
            )
        return items

    async def stream_reply(self, history: List[Dict[str, str]]) -> AsyncIterator[str]:
        """Yield text deltas of the reply to ``history``.

        Errors from the API propagate to the caller unchanged.
        """
        start = time.time()
        stream = await self.client.responses.create(
            model=self.model,
            input=self.build_input(history),
            stream=True,
            **self.generation_config,
        )
        produced = 0
        async for event in stream:
            if getattr(event, "type", None) != TEXT_DELTA_EVENT:
                continue
            delta = getattr(event, "delta", "") or ""
            if delta:
                produced += len(delta)
                yield delta
        LOGGER.debug("Dialog reply streamed %d chars in %.3fs", produced, time.time() - start)
