"""Generation pipeline: speech-to-text, dialog LLM and text-to-speech.

Audio input: frames -> Endpointer -> transcription -> turn queue -> dialog turn
Text input: dialog turn
Dialog turn: history -> LLM stream -> sentence chunks -> TTS -> AudioResult,
then the reply text is appended as a StateUpdate.

One shared instance serves every text turn. Each audio activation gets a
session-owned instance that loops over user turns for as long as frames keep
arriving.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Coroutine, Optional, Set, Union
from uuid import uuid4

from openai import AsyncOpenAI

from models.pipeline_results import (
	AudioChunk,
	AudioResult,
	ErrorResult,
	Interrupted,
	PipelineResult,
	SpeechComplete,
	StateUpdate,
	StatusCode,
)
from models.session_models import ChatMessage, ConversationState, SessionConnection
from services.openai.dialog_service import DialogService
from services.openai.dictation_service import DictationService
from services.openai.response_utils import error_result_from_exception
from services.openai.speech_service import SpeechService
from services.realtime.audio_stream import AudioFrame, PushStream
from services.realtime.endpointing import Endpointer, SpeechSegment
from services.realtime.errors import ConfigurationError
from services.realtime.text_chunking import chunk_sentences
from utils.media_validation import pcm16_wav_bytes
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)

TEXT_MODE = "text"
AUDIO_MODE = "audio"

NOT_RUNNING_MESSAGE = "Pipeline executor is not running"
NO_TEXT_MESSAGE = "Speech recognition produced no text"


@dataclass
class TextInput:
	session_id: str
	text: str
	interaction_id: str


@dataclass
class SpeechInput:
	"""Synthesize ``text`` as-is, skipping the language model."""

	session_id: str
	text: str
	interaction_id: str


@dataclass
class AudioStreamInput:
	session_id: str
	frames: AsyncIterator[AudioFrame]


PipelineInput = Union[TextInput, SpeechInput, AudioStreamInput]


@dataclass
class _Turn:
	interaction_id: str
	text: str = ""
	segment: Optional[SpeechSegment] = None
	interrupted: bool = False
	done: bool = False


class ResultStream(PushStream[PipelineResult]):
	"""Ordered results of one pipeline execution.

	The execution pushes results from a background task; the consumer pulls
	them with ``async for``. ``abort`` stops the execution and ends iteration.
	"""

	def __init__(self, pipeline_id: str) -> None:
		super().__init__()
		self.pipeline_id = pipeline_id
		self.aborted = False
		self._producer: Optional[asyncio.Task] = None

	def __aiter__(self) -> AsyncIterator[PipelineResult]:
		return self.as_sequence()

	def run(self, execution: Coroutine, on_done: Optional[Callable[[], None]] = None) -> None:
		self._producer = asyncio.create_task(self._execute(execution))
		if on_done is not None:
			self._producer.add_done_callback(lambda _task: on_done())

	async def _execute(self, execution: Coroutine) -> None:
		try:
			await execution
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			LOGGER.exception("Pipeline %s execution failed", self.pipeline_id)
			self.push(error_result_from_exception(exc))
		finally:
			self.end()

	def abort(self) -> None:
		"""Stop consuming early and cancel the execution behind the stream."""
		self.aborted = True
		self._items.clear()
		self.end()
		if self._producer is not None and not self._producer.done():
			self._producer.cancel()

	async def wait_closed(self) -> None:
		"""Wait for the execution behind the stream to finish."""
		if self._producer is None or self._producer is asyncio.current_task():
			return
		try:
			await self._producer
		except asyncio.CancelledError:
			pass


class GenerationPipeline:
	"""One hosted conversational graph instance."""

	def __init__(
		self,
		*,
		pipeline_id: str,
		mode: str,
		settings: Settings,
		dialog: DialogService,
		speech: SpeechService,
		dictation: Optional[DictationService] = None,
		unique_id: int = 0,
	) -> None:
		if mode == AUDIO_MODE and dictation is None:
			raise ValueError("Dictation service is required for audio pipelines.")
		self.pipeline_id = pipeline_id
		self.mode = mode
		self.unique_id = unique_id
		self.settings = settings
		self.dialog = dialog
		self.speech = speech
		self.dictation = dictation
		self._running = True
		self._executions: Set[ResultStream] = set()
		self._active_turn: Optional[_Turn] = None

	@property
	def running(self) -> bool:
		return self._running

	async def start(self, payload: PipelineInput, state: ConversationState) -> ResultStream:
		"""Begin one execution and return its result stream."""
		stream = ResultStream(self.pipeline_id)
		if not self._running:
			stream.push(ErrorResult(message=NOT_RUNNING_MESSAGE, code=int(StatusCode.FAILED_PRECONDITION)))
			stream.end()
			return stream

		if isinstance(payload, SpeechInput):
			execution = self._speak(payload, state, stream)
		elif isinstance(payload, TextInput):
			execution = self._text_turn(payload, state, stream)
		elif isinstance(payload, AudioStreamInput):
			if self.mode != AUDIO_MODE:
				raise ValueError(f"Pipeline {self.pipeline_id} does not accept audio input.")
			execution = self._audio_loop(payload, state, stream)
		else:
			raise TypeError(f"Unsupported pipeline input: {type(payload).__name__}")

		self._executions.add(stream)
		stream.run(execution, on_done=lambda: self._executions.discard(stream))
		return stream

	async def stop(self, *, abort_running: bool = True) -> None:
		"""Refuse new executions and, by default, abort those in flight."""
		self._running = False
		streams = list(self._executions)
		self._executions.clear()
		if abort_running:
			for stream in streams:
				stream.abort()
			for stream in streams:
				await stream.wait_closed()

	def _voice(self, state: ConversationState) -> str:
		return state.voice_id or self.settings.default_voice_id

	async def _speak(self, payload: SpeechInput, state: ConversationState, out: ResultStream) -> None:
		turn = _Turn(interaction_id=payload.interaction_id, text=payload.text)
		try:
			await self._synthesize(payload.text, self._voice(state), turn, out)
		except Exception as exc:
			LOGGER.warning("[Session %s] Speech synthesis failed: %s", payload.session_id, exc)
			out.push(error_result_from_exception(exc, turn.interaction_id))

	async def _text_turn(self, payload: TextInput, state: ConversationState, out: ResultStream) -> None:
		turn = _Turn(interaction_id=payload.interaction_id, text=payload.text)
		try:
			await self._respond(turn, state, out)
		except Exception as exc:
			LOGGER.warning("[Session %s] Text turn failed: %s", payload.session_id, exc)
			out.push(error_result_from_exception(exc, turn.interaction_id))

	async def _respond(self, turn: _Turn, state: ConversationState, out: ResultStream) -> None:
		"""Run the dialog half of the graph for one user turn."""
		state.messages.append(ChatMessage(role="user", content=turn.text, id=turn.interaction_id))
		state.interaction_id = turn.interaction_id
		out.push(StateUpdate(messages=list(state.messages), interaction_id=turn.interaction_id))

		voice = self._voice(state)
		reply = []
		async with aclosing(chunk_sentences(self.dialog.stream_reply(state.history()))) as sentences:
			async for sentence in sentences:
				if turn.interrupted:
					break
				reply.append(sentence)
				await self._synthesize(sentence, voice, turn, out)

		if reply:
			state.messages.append(ChatMessage(role="assistant", content=" ".join(reply), id=uuid4().hex))
			out.push(StateUpdate(messages=list(state.messages), interaction_id=turn.interaction_id))

	async def _synthesize(self, text: str, voice: str, turn: _Turn, out: ResultStream) -> None:
		chunks: PushStream[AudioChunk] = PushStream()
		out.push(AudioResult(chunks=chunks.as_sequence(), interaction_id=turn.interaction_id))
		first = True
		try:
			async with aclosing(self.speech.stream_speech(text, voice)) as audio:
				async for data in audio:
					if turn.interrupted:
						break
					chunks.push(AudioChunk(audio=data, text=text if first else ""))
					first = False
		finally:
			chunks.end()

	async def _audio_loop(self, payload: AudioStreamInput, state: ConversationState, out: ResultStream) -> None:
		endpointer = Endpointer(
			speech_threshold=self.settings.speech_threshold,
			pause_ms=self.settings.pause_duration_threshold_ms,
			min_speech_ms=self.settings.min_speech_duration_ms,
		)
		turns: asyncio.Queue = asyncio.Queue()
		worker = asyncio.create_task(self._turn_worker(payload.session_id, turns, state, out))
		iteration = 0
		try:
			async for frame in payload.frames:
				segment = endpointer.feed(frame)
				if segment is not None:
					iteration += 1
					self._segment_completed(segment, iteration, turns, out)
			segment = endpointer.flush()
			if segment is not None:
				iteration += 1
				self._segment_completed(segment, iteration, turns, out)
			turns.put_nowait(None)
			await worker
		finally:
			if not worker.done():
				worker.cancel()
		LOGGER.info("[Session %s] Audio loop on %s finished after %d turn(s)", payload.session_id, self.pipeline_id, iteration)

	def _segment_completed(self, segment: SpeechSegment, iteration: int, turns: asyncio.Queue, out: ResultStream) -> None:
		turn = _Turn(interaction_id=uuid4().hex, segment=segment)
		out.push(
			SpeechComplete(
				interaction_id=turn.interaction_id,
				iteration=iteration,
				total_samples=segment.total_samples,
				sample_rate=segment.sample_rate,
				endpointing_latency_ms=segment.endpointing_latency_ms,
			)
		)
		active = self._active_turn
		if active is not None and not active.done and not self.settings.disable_auto_interruption:
			active.interrupted = True
			out.push(Interrupted(interaction_id=active.interaction_id))
		turns.put_nowait(turn)

	async def _turn_worker(self, session_id: str, turns: asyncio.Queue, state: ConversationState, out: ResultStream) -> None:
		while True:
			turn = await turns.get()
			if turn is None:
				return
			self._active_turn = turn
			try:
				wav = pcm16_wav_bytes(turn.segment.frames, turn.segment.sample_rate)
				turn.text = await self.dictation.transcribe(wav)
				if not turn.text:
					out.push(
						ErrorResult(
							message=NO_TEXT_MESSAGE,
							code=int(StatusCode.INVALID_ARGUMENT),
							interaction_id=turn.interaction_id,
						)
					)
					continue
				await self._respond(turn, state, out)
			except asyncio.CancelledError:
				raise
			except Exception as exc:
				LOGGER.warning("[Session %s] Audio turn %s failed: %s", session_id, turn.interaction_id, exc)
				out.push(error_result_from_exception(exc, turn.interaction_id))
			finally:
				turn.done = True
				self._active_turn = None


@dataclass
class PipelineManager:
	"""Create, hand out and dispose of pipeline instances."""

	client: Optional[AsyncOpenAI]
	settings: Settings
	text_pipeline: Optional[GenerationPipeline] = None
	_creation_counter: int = field(default=0, init=False)

	@property
	def creation_counter(self) -> int:
		return self._creation_counter

	def initialize(self) -> GenerationPipeline:
		"""Build the shared text pipeline."""
		self.text_pipeline = self.create_pipeline(TEXT_MODE)
		LOGGER.info("Text input pipeline initialized; audio pipelines are created per session")
		return self.text_pipeline

	def create_pipeline(self, mode: str, session_id: Optional[str] = None) -> GenerationPipeline:
		if mode == TEXT_MODE:
			pipeline_id, unique_id = "voice-agent-with-text-input", 0
		elif mode == AUDIO_MODE:
			self._creation_counter += 1
			unique_id = self._creation_counter
			pipeline_id = f"voice-agent-with-audio-input-{unique_id}"
			LOGGER.info("Creating fresh audio pipeline #%d for session %s", unique_id, session_id or "unknown")
		else:
			raise ValueError(f"Unknown pipeline mode: {mode}")
		return GenerationPipeline(
			pipeline_id=pipeline_id,
			mode=mode,
			unique_id=unique_id,
			settings=self.settings,
			dialog=DialogService(self.client, self.settings.llm_model_name),
			speech=SpeechService(self.client, self.settings.tts_model_id),
			dictation=DictationService(self.client, self.settings.stt_model_name) if mode == AUDIO_MODE else None,
		)

	def pipeline_for_audio(self, connection: SessionConnection) -> GenerationPipeline:
		"""Return the session's audio pipeline, creating one when none is live."""
		if connection.stt_service not in self.settings.stt_services:
			raise ConfigurationError(
				f"STT service '{connection.stt_service}' requested but not configured",
				connection.stt_service,
				tuple(sorted(self.settings.stt_services)),
			)
		existing = connection.session_pipeline
		if existing is not None and existing.running:
			LOGGER.info("[Session %s] Using existing pipeline %s", connection.session_id, existing.pipeline_id)
			return existing
		pipeline = self.create_pipeline(AUDIO_MODE, connection.session_id)
		connection.session_pipeline = pipeline
		return pipeline

	async def invoke(self, pipeline: GenerationPipeline, payload: PipelineInput, state: ConversationState) -> ResultStream:
		return await pipeline.start(payload, state)

	@staticmethod
	def abort(stream: ResultStream) -> None:
		stream.abort()

	async def destroy(self, pipeline: Optional[GenerationPipeline]) -> None:
		"""Stop ``pipeline``; failures while stopping are logged, not raised."""
		if pipeline is None:
			return
		try:
			await pipeline.stop()
		except Exception as exc:
			LOGGER.warning("Error destroying pipeline %s: %s", pipeline.pipeline_id, exc)

	async def discard_session_pipeline(self, connection: SessionConnection) -> None:
		"""Drop the session's audio pipeline so the next activation builds fresh."""
		pipeline = connection.session_pipeline
		connection.session_pipeline = None
		if pipeline is not None:
			LOGGER.info("[Session %s] Clearing session pipeline %s", connection.session_id, pipeline.pipeline_id)
			await self.destroy(pipeline)

	async def replace_text_pipeline(self) -> GenerationPipeline:
		"""Swap in a fresh shared text pipeline; executions on the old one finish."""
		old = self.text_pipeline
		self.text_pipeline = self.create_pipeline(TEXT_MODE)
		if old is not None:
			await old.stop(abort_running=False)
		return self.text_pipeline

	async def shutdown(self) -> None:
		await self.destroy(self.text_pipeline)
		self.text_pipeline = None
