"""
Tests for the generation pipeline and its manager.
"""

import asyncio

import httpx
import openai
import pytest
from openai import AsyncOpenAI

from models.pipeline_results import (
    AudioResult,
    ErrorResult,
    Interrupted,
    SpeechComplete,
    StateUpdate,
    StatusCode,
)
from services.realtime.errors import ConfigurationError, ErrorPolicy
from services.realtime.pipeline import (
    AUDIO_MODE,
    NO_TEXT_MESSAGE,
    NOT_RUNNING_MESSAGE,
    TEXT_MODE,
    AudioStreamInput,
    GenerationPipeline,
    PipelineManager,
    SpeechInput,
    TextInput,
)
from tests.fakes import (
    FakeDialog,
    FakeDictation,
    FakePipelineManager,
    FakeSpeech,
    collect,
    frames_of,
    make_settings,
    silence,
    tone,
)


def text_pipeline(settings, dialog=None, speech=None):
    return GenerationPipeline(
        pipeline_id="voice-agent-with-text-input",
        mode=TEXT_MODE,
        settings=settings,
        dialog=dialog or FakeDialog(),
        speech=speech or FakeSpeech(),
    )


def audio_pipeline(settings, dialog=None, speech=None, dictation=None):
    return GenerationPipeline(
        pipeline_id="voice-agent-with-audio-input-1",
        mode=AUDIO_MODE,
        unique_id=1,
        settings=settings,
        dialog=dialog or FakeDialog(),
        speech=speech or FakeSpeech(),
        dictation=dictation or FakeDictation(),
    )


async def flatten(stream):
    """Collect results, expanding audio results into their chunk texts."""
    items = []
    async for result in stream:
        if isinstance(result, AudioResult):
            chunks = [chunk async for chunk in result.chunks]
            items.append(("audio", result.interaction_id, [chunk.text for chunk in chunks]))
        else:
            items.append(result)
    return items


async def slow_frames(*frames, delay=0.01):
    for frame in frames:
        await asyncio.sleep(delay)
        yield frame


@pytest.mark.asyncio
async def test_text_turn_yields_user_update_audio_and_reply(settings, conversation):
    dialog, speech = FakeDialog(), FakeSpeech()
    pipeline = text_pipeline(settings, dialog, speech)

    stream = await pipeline.start(TextInput("session-1", "Hi elf", "turn-1"), conversation)
    items = await flatten(stream)

    assert isinstance(items[0], StateUpdate)
    assert items[0].interaction_id == "turn-1"
    assert items[0].last_message.role == "user"
    assert items[0].last_message.content == "Hi elf"
    assert items[1:3] == [
        ("audio", "turn-1", ["Hello there.", ""]),
        ("audio", "turn-1", ["Merry Christmas!", ""]),
    ]
    assert isinstance(items[3], StateUpdate)
    assert items[3].last_message.role == "assistant"
    assert items[3].last_message.content == "Hello there. Merry Christmas!"

    assert [m.role for m in conversation.messages] == ["system", "user", "assistant"]
    assert speech.requests == ["Hello there.", "Merry Christmas!"]
    assert dialog.histories[0][-1] == {"id": "turn-1", "role": "user", "content": "Hi elf"}


@pytest.mark.asyncio
async def test_speech_input_skips_language_model(settings, conversation):
    dialog, speech = FakeDialog(), FakeSpeech(chunks_per_text=3)
    pipeline = text_pipeline(settings, dialog, speech)

    stream = await pipeline.start(SpeechInput("session-1", "Ho ho hello!", "turn-1"), conversation)
    items = await flatten(stream)

    assert items == [("audio", "turn-1", ["Ho ho hello!", "", ""])]
    assert dialog.histories == []
    assert len(conversation.messages) == 1


@pytest.mark.asyncio
async def test_stopped_pipeline_reports_executor_not_running(settings, conversation):
    pipeline = text_pipeline(settings)
    await pipeline.stop()

    stream = await pipeline.start(TextInput("session-1", "Hi", "turn-1"), conversation)
    results = await collect(stream)

    assert len(results) == 1
    assert isinstance(results[0], ErrorResult)
    assert results[0].code == StatusCode.FAILED_PRECONDITION
    assert results[0].message == NOT_RUNNING_MESSAGE
    assert ErrorPolicy().is_hard(results[0])


@pytest.mark.asyncio
async def test_dialog_timeout_becomes_hard_error_result(settings, conversation):
    timeout = openai.APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/responses"))
    pipeline = text_pipeline(settings, dialog=FakeDialog(error=timeout))

    stream = await pipeline.start(TextInput("session-1", "Hi", "turn-1"), conversation)
    results = await collect(stream)

    assert isinstance(results[0], StateUpdate)
    error = results[-1]
    assert isinstance(error, ErrorResult)
    assert error.code == StatusCode.DEADLINE_EXCEEDED
    assert error.interaction_id == "turn-1"
    assert "timed out" in error.message.lower()
    assert ErrorPolicy().is_hard(error)


@pytest.mark.asyncio
async def test_text_pipeline_rejects_audio_input(settings, conversation):
    pipeline = text_pipeline(settings)
    with pytest.raises(ValueError):
        await pipeline.start(AudioStreamInput("session-1", frames_of()), conversation)


@pytest.mark.asyncio
async def test_audio_loop_runs_one_turn_per_segment(settings, conversation):
    dictation = FakeDictation(["what should I get dad"])
    pipeline = audio_pipeline(settings, dictation=dictation)

    frames = frames_of(silence(100), tone(300), silence(400))
    stream = await pipeline.start(AudioStreamInput("session-1", frames), conversation)
    items = await flatten(stream)

    complete = items[0]
    assert isinstance(complete, SpeechComplete)
    assert complete.iteration == 1
    assert complete.sample_rate == 16_000
    assert complete.total_samples > 0

    user_update = items[1]
    assert isinstance(user_update, StateUpdate)
    assert user_update.interaction_id == complete.interaction_id
    assert user_update.last_message.content == "what should I get dad"
    assert isinstance(items[-1], StateUpdate)
    assert items[-1].last_message.role == "assistant"
    assert dictation.calls == 1


@pytest.mark.asyncio
async def test_empty_transcript_reports_soft_error(settings, conversation):
    pipeline = audio_pipeline(settings, dictation=FakeDictation([""]))

    frames = frames_of(tone(300), silence(400))
    stream = await pipeline.start(AudioStreamInput("session-1", frames), conversation)
    results = await collect(stream)

    assert isinstance(results[0], SpeechComplete)
    errors = [r for r in results if isinstance(r, ErrorResult)]
    assert len(errors) == 1
    assert errors[0].message == NO_TEXT_MESSAGE
    assert ErrorPolicy().is_soft(errors[0].message)
    assert not any(isinstance(r, StateUpdate) for r in results)


@pytest.mark.asyncio
async def test_new_segment_interrupts_active_turn(settings, conversation):
    pipeline = audio_pipeline(
        settings,
        speech=FakeSpeech(delay=0.05),
        dictation=FakeDictation(["first", "second"]),
    )

    frames = slow_frames(tone(300), silence(400), tone(300), silence(400))
    stream = await pipeline.start(AudioStreamInput("session-1", frames), conversation)
    results = await collect(stream)

    completes = [r for r in results if isinstance(r, SpeechComplete)]
    interrupts = [r for r in results if isinstance(r, Interrupted)]
    assert [c.iteration for c in completes] == [1, 2]
    assert len(interrupts) == 1
    assert interrupts[0].interaction_id == completes[0].interaction_id


@pytest.mark.asyncio
async def test_auto_interruption_can_be_disabled(conversation):
    settings = make_settings(disable_auto_interruption=True)
    pipeline = audio_pipeline(
        settings,
        speech=FakeSpeech(delay=0.05),
        dictation=FakeDictation(["first", "second"]),
    )

    frames = slow_frames(tone(300), silence(400), tone(300), silence(400))
    stream = await pipeline.start(AudioStreamInput("session-1", frames), conversation)
    results = await collect(stream)

    assert not any(isinstance(r, Interrupted) for r in results)
    assert len([r for r in results if isinstance(r, SpeechComplete)]) == 2


@pytest.mark.asyncio
async def test_abort_cancels_execution(settings, conversation):
    async def endless():
        while True:
            await asyncio.sleep(0.01)
            yield silence(20)

    pipeline = audio_pipeline(settings)
    stream = await pipeline.start(AudioStreamInput("session-1", endless()), conversation)
    await asyncio.sleep(0.05)

    stream.abort()
    await stream.wait_closed()

    assert stream.aborted
    assert stream.ended
    assert await collect(stream) == []


@pytest.mark.asyncio
async def test_stop_aborts_running_executions(settings, conversation):
    async def endless():
        while True:
            await asyncio.sleep(0.01)
            yield silence(20)

    pipeline = audio_pipeline(settings)
    stream = await pipeline.start(AudioStreamInput("session-1", endless()), conversation)

    await pipeline.stop()

    assert not pipeline.running
    assert stream.aborted
    assert stream._producer.done()
    assert stream.ended
    assert await collect(stream) == []


def test_manager_names_pipelines_by_mode(settings):
    manager = PipelineManager(AsyncOpenAI(api_key="sk-test"), settings)

    shared = manager.initialize()
    first = manager.create_pipeline(AUDIO_MODE, "session-1")
    second = manager.create_pipeline(AUDIO_MODE, "session-2")

    assert shared.pipeline_id == "voice-agent-with-text-input"
    assert first.pipeline_id == "voice-agent-with-audio-input-1"
    assert second.pipeline_id == "voice-agent-with-audio-input-2"
    assert manager.creation_counter == 2
    with pytest.raises(ValueError):
        manager.create_pipeline("video")


@pytest.mark.asyncio
async def test_session_audio_pipeline_is_reused_until_discarded(settings, loaded_session):
    manager = FakePipelineManager(settings)

    first = manager.pipeline_for_audio(loaded_session)
    again = manager.pipeline_for_audio(loaded_session)
    assert again is first
    assert manager.creation_counter == 1

    await manager.discard_session_pipeline(loaded_session)
    assert loaded_session.session_pipeline is None
    assert not first.running

    fresh = manager.pipeline_for_audio(loaded_session)
    assert fresh is not first
    assert fresh.pipeline_id == "voice-agent-with-audio-input-2"


def test_unconfigured_stt_service_is_rejected(settings, loaded_session):
    manager = FakePipelineManager(settings)
    loaded_session.stt_service = "deepgram"

    with pytest.raises(ConfigurationError) as exc:
        manager.pipeline_for_audio(loaded_session)

    assert exc.value.requested == "deepgram"
    assert exc.value.available == ("openai",)


@pytest.mark.asyncio
async def test_replacing_text_pipeline_keeps_old_executions(settings, conversation):
    manager = FakePipelineManager(settings, speech=FakeSpeech(delay=0.01))
    old = manager.initialize()
    stream = await manager.invoke(old, TextInput("session-1", "Hi", "turn-1"), conversation)

    fresh = await manager.replace_text_pipeline()
    results = await collect(stream)

    assert fresh is manager.text_pipeline
    assert fresh is not old
    assert not old.running
    assert not stream.aborted
    assert isinstance(results[-1], StateUpdate)
