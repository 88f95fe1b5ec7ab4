"""
Tests for the OpenAI-backed dialog, speech and dictation services.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from models.pipeline_results import StatusCode
from services.openai.dialog_service import DialogService
from services.openai.dictation_service import DictationService
from services.openai.response_utils import error_result_from_exception, status_for_exception
from services.openai.speech_service import SpeechService


class EventStream:
    def __init__(self, events):
        self.events = list(events)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self.events:
            yield event


def test_build_input_maps_roles():
    items = DialogService.build_input(
        [
            {"role": "system", "content": "Be an elf."},
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello!"},
            {"role": "user", "content": ""},
        ]
    )

    assert [item["role"] for item in items] == ["system", "user", "assistant"]
    assert items[1]["content"] == [{"type": "input_text", "text": "Hi"}]
    assert items[2]["content"] == [{"type": "output_text", "text": "Hello!"}]


@pytest.mark.asyncio
async def test_stream_reply_yields_text_deltas():
    client = MagicMock()
    client.responses.create = AsyncMock(
        return_value=EventStream(
            [
                SimpleNamespace(type="response.created"),
                SimpleNamespace(type="response.output_text.delta", delta="Ho "),
                SimpleNamespace(type="response.output_text.delta", delta="ho!"),
                SimpleNamespace(type="response.completed"),
            ]
        )
    )
    service = DialogService(client, model="gpt-4o-mini")

    deltas = [d async for d in service.stream_reply([{"role": "user", "content": "Hi"}])]

    assert deltas == ["Ho ", "ho!"]
    kwargs = client.responses.create.await_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["stream"] is True
    assert kwargs["max_output_tokens"] == 100


@pytest.mark.asyncio
async def test_stream_speech_requests_pcm():
    response = MagicMock()
    response.iter_bytes = lambda size: EventStream([b"\x00\x01", b"", b"\x02\x03"])
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    client = MagicMock()
    client.audio.speech.with_streaming_response.create = MagicMock(return_value=context)
    service = SpeechService(client, model="gpt-4o-mini-tts")

    chunks = [c async for c in service.stream_speech("Merry Christmas!", "alloy")]

    assert chunks == [b"\x00\x01", b"\x02\x03"]
    kwargs = client.audio.speech.with_streaming_response.create.call_args.kwargs
    assert kwargs["response_format"] == "pcm"
    assert kwargs["voice"] == "alloy"
    assert kwargs["input"] == "Merry Christmas!"


@pytest.mark.asyncio
async def test_stream_speech_skips_blank_text():
    client = MagicMock()
    service = SpeechService(client)

    assert [c async for c in service.stream_speech("   ")] == []
    client.audio.speech.with_streaming_response.create.assert_not_called()


@pytest.mark.asyncio
async def test_transcribe_strips_text():
    client = MagicMock()
    client.audio.transcriptions.create = AsyncMock(return_value=SimpleNamespace(text="  hello elf \n"))
    service = DictationService(client, model="gpt-4o-transcribe")

    assert await service.transcribe(b"RIFF....") == "hello elf"
    audio_file = client.audio.transcriptions.create.await_args.kwargs["file"]
    assert audio_file.name == "utterance.wav"


@pytest.mark.asyncio
async def test_transcribe_rejects_empty_audio():
    with pytest.raises(ValueError):
        await DictationService(MagicMock()).transcribe(b"")


def test_services_require_client():
    with pytest.raises(ValueError):
        DialogService(None)
    with pytest.raises(ValueError):
        SpeechService(None)
    with pytest.raises(ValueError):
        DictationService(None)


def test_exception_status_mapping():
    request = httpx.Request("POST", "https://api.openai.com/v1/audio/speech")

    assert status_for_exception(openai.APITimeoutError(request=request)) == StatusCode.DEADLINE_EXCEEDED
    assert status_for_exception(openai.APIConnectionError(request=request)) == StatusCode.UNAVAILABLE
    assert status_for_exception(ValueError("bad")) == StatusCode.INVALID_ARGUMENT
    assert status_for_exception(KeyError("x")) == StatusCode.UNKNOWN


def test_timeout_result_mentions_timed_out():
    result = error_result_from_exception(TimeoutError(), "i1")

    assert result.code == StatusCode.DEADLINE_EXCEEDED
    assert "timed out" in result.message.lower()
    assert result.interaction_id == "i1"
