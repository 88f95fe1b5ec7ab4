"""Handle microphone audio events coming over the realtime websocket."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from models.session_models import SessionConnection
from services.realtime.audio_stream import AudioFrame, AudioStreamBuffer
from services.realtime.errors import ConfigurationError
from services.realtime.pipeline import AudioStreamInput, GenerationPipeline, PipelineManager
from services.realtime.result_handler import ResultHandler
from services.realtime.session_store import SessionStore
from utils.media_validation import flatten_audio_payload, rms
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)

# First 100 ms at 16 kHz, enough to tell a live microphone from silence.
FIRST_CHUNK_WINDOW = 1600


class AudioMessageHandler:
	"""Feed audio chunks into the session's audio pipeline."""

	def __init__(
		self,
		store: SessionStore,
		pipelines: PipelineManager,
		results: ResultHandler,
		session_id: str,
		settings: Settings,
	) -> None:
		self.store = store
		self.pipelines = pipelines
		self.results = results
		self.session_id = session_id
		self.settings = settings

	async def process_chunk(self, payload: Dict[str, Any]) -> None:
		"""Push one chunk of samples, activating the audio pipeline if idle."""
		connection = self.store.get(self.session_id)
		try:
			samples = flatten_audio_payload(payload.get("audio"))
		except ValueError as exc:
			LOGGER.warning("[Session %s] Dropping malformed audio chunk: %s", self.session_id, exc)
			return
		if samples.size == 0:
			return

		connection.audio_chunk_count += 1
		if connection.audio_chunk_count == 1:
			window = samples[:FIRST_CHUNK_WINDOW]
			LOGGER.info(
				"[Session %s] First audio chunk: %d samples, RMS %.4f, range [%.3f, %.3f]",
				self.session_id,
				samples.size,
				rms(window),
				float(window.min()),
				float(window.max()),
			)

		if connection.audio_buffer is None:
			try:
				self._activate(connection)
			except ConfigurationError as exc:
				LOGGER.error("[Session %s] Cannot start audio pipeline: %s", self.session_id, exc)
				await self.results.report(exc)
				return
		connection.audio_buffer.push(AudioFrame(samples=samples, sample_rate=self.settings.input_sample_rate))

	def _activate(self, connection: SessionConnection) -> None:
		pipeline = self.pipelines.pipeline_for_audio(connection)
		buffer = AudioStreamBuffer()
		connection.audio_buffer = buffer
		connection.audio_task = asyncio.create_task(self._run(connection, pipeline, buffer))
		LOGGER.info("[Session %s] Audio activation started on %s", self.session_id, pipeline.pipeline_id)

	async def _run(self, connection: SessionConnection, pipeline: GenerationPipeline, buffer: AudioStreamBuffer) -> None:
		async with self._activation(connection, buffer):
			stream = await self.pipelines.invoke(
				pipeline,
				AudioStreamInput(session_id=self.session_id, frames=buffer.as_sequence()),
				connection.state,
			)

			async def tear_down() -> None:
				buffer.end()
				await self.pipelines.discard_session_pipeline(connection)

			try:
				outcome = await self.results.drain(stream, on_hard_error=tear_down, end_turns=True)
			finally:
				self.pipelines.abort(stream)
			LOGGER.info(
				"[Session %s] Audio stream finished: %d result(s), %d frame(s) pushed",
				self.session_id,
				outcome.results,
				buffer.frames_pushed,
			)

	@asynccontextmanager
	async def _activation(self, connection: SessionConnection, buffer: AudioStreamBuffer):
		"""Release the buffer and task slots however the activation ends."""
		try:
			yield
		except asyncio.CancelledError:
			raise
		except Exception:
			LOGGER.exception("[Session %s] Error in audio pipeline execution", self.session_id)
		finally:
			buffer.end()
			if connection.audio_buffer is buffer:
				connection.audio_buffer = None
			if connection.audio_task is asyncio.current_task():
				connection.audio_task = None

	async def end_session(self) -> None:
		"""End the current activation and wait for its results to drain."""
		connection = self.store.find(self.session_id)
		if connection is None or connection.audio_buffer is None:
			return
		LOGGER.info("[Session %s] Audio session ended by client", self.session_id)
		connection.audio_buffer.end()
		task = connection.audio_task
		if task is not None and not task.done():
			await task

	async def close(self, connection: SessionConnection) -> None:
		"""Stop any activation of ``connection`` without waiting for replies."""
		if connection.audio_buffer is not None:
			connection.audio_buffer.end()
		task = connection.audio_task
		if task is not None and not task.done():
			task.cancel()
			try:
				await task
			except asyncio.CancelledError:
				pass
