"""Dispatch realtime websocket events to the appropriate handlers."""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from models.session_models import SessionConnection
from services.realtime.errors import ErrorPolicy, SessionUnloadedError
from services.realtime.event_factory import EventFactory
from services.realtime.interaction import InteractionTracker
from services.realtime.pipeline import PipelineManager, SpeechInput, TextInput
from services.realtime.prompts import initial_greeting, is_start_sentinel
from services.realtime.result_handler import ResultHandler
from services.realtime.session_store import SessionStore
from services.realtime.ws_audio import AudioMessageHandler
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)

QueuedTask = Callable[[], Awaitable[None]]


class RealtimeSessionHandler:
	"""Coordinate every interaction of one session over its websocket.

	Text turns run one at a time through a FIFO queue. Audio runs beside
	them in a background activation so the socket keeps accepting chunks.
	"""

	def __init__(
		self,
		store: SessionStore,
		pipelines: PipelineManager,
		transport,
		session_id: str,
		settings: Settings,
	) -> None:
		self.store = store
		self.pipelines = pipelines
		self.transport = transport
		self.session_id = session_id
		self.tracker = InteractionTracker()
		self.results = ResultHandler(
			store,
			session_id,
			self.tracker,
			transport,
			ErrorPolicy.from_settings(settings),
			interruption_aware=settings.interruption_aware,
		)
		self.audio_handler = AudioMessageHandler(store, pipelines, self.results, session_id, settings)
		self._queue: Deque[QueuedTask] = deque()
		self._processing = False
		self._queue_task: Optional[asyncio.Task] = None

	@property
	def processing(self) -> bool:
		return self._processing

	async def handle(self, payload: Dict[str, Any]) -> None:
		"""Process a single inbound websocket payload."""
		message_type = payload.get("type")
		connection = self.store.find(self.session_id)
		if connection is None or connection.unloaded:
			LOGGER.warning("[Session %s] Ignoring %s message for inactive session", self.session_id, message_type)
			return
		try:
			if message_type in ("text", "TEXT"):
				await self._submit_text(payload)
			elif message_type in ("audio", "AUDIO"):
				await self.audio_handler.process_chunk(payload)
			elif message_type == "audioSessionEnd":
				await self.audio_handler.end_session()
			else:
				raise ValueError(f"Unsupported message type: {message_type}")
		except Exception as exc:
			LOGGER.error("[Session %s] Error handling %s message: %s", self.session_id, message_type, exc)
			await self.results.report(exc)

	async def _submit_text(self, payload: Dict[str, Any]) -> None:
		text = payload.get("text")
		if isinstance(text, dict):
			text = text.get("text")
		if not isinstance(text, str) or not text.strip():
			raise ValueError("Text is required.")
		interaction_id = self.tracker.mint()
		await self.results.send(EventFactory.new_interaction(interaction_id))
		self.enqueue(lambda: self._run_text_turn(text, interaction_id))

	def enqueue(self, task: QueuedTask) -> None:
		"""Queue a unit of work; starts the drain loop when idle."""
		self._queue.append(task)
		if not self._processing:
			self._processing = True
			self._queue_task = asyncio.create_task(self._process_queue())
			connection = self.store.find(self.session_id)
			if connection is not None:
				connection.queue_task = self._queue_task

	async def _process_queue(self) -> None:
		try:
			while self._queue:
				task = self._queue.popleft()
				try:
					await task()
				except asyncio.CancelledError:
					raise
				except Exception:
					LOGGER.exception("[Session %s] Error processing queued task", self.session_id)
		finally:
			self._processing = False

	async def join(self) -> None:
		"""Wait until every queued task has run."""
		while self._queue_task is not None and not self._queue_task.done():
			await self._queue_task

	def _active_connection(self) -> SessionConnection:
		connection = self.store.get(self.session_id)
		if connection.unloaded:
			raise SessionUnloadedError(self.session_id)
		return connection

	async def _run_text_turn(self, text: str, interaction_id: str) -> None:
		connection = self._active_connection()
		if is_start_sentinel(text):
			await self._run_greeting(connection, interaction_id)
			return

		LOGGER.info("[Session %s] Text turn %s started", self.session_id, interaction_id)
		pipeline = self.pipelines.text_pipeline
		stream = await self.pipelines.invoke(
			pipeline,
			TextInput(session_id=self.session_id, text=text, interaction_id=interaction_id),
			connection.state,
		)

		async def replace_pipeline() -> None:
			if self.pipelines.text_pipeline is pipeline:
				await self.pipelines.replace_text_pipeline()

		try:
			await self.results.drain(stream, interaction_id=interaction_id, on_hard_error=replace_pipeline)
		finally:
			self.pipelines.abort(stream)
		await self.results.send(EventFactory.interaction_end(interaction_id))

	async def _run_greeting(self, connection: SessionConnection, interaction_id: str) -> None:
		"""Speak the experience's opening line without asking the model."""
		greeting = initial_greeting(connection.state.experience_type)
		self.store.add_message(self.session_id, "assistant", greeting)
		LOGGER.info("[Session %s] Sending %s greeting", self.session_id, connection.state.experience_type)
		stream = await self.pipelines.invoke(
			self.pipelines.text_pipeline,
			SpeechInput(session_id=self.session_id, text=greeting, interaction_id=interaction_id),
			connection.state,
		)
		try:
			await self.results.drain(stream, interaction_id=interaction_id)
		finally:
			self.pipelines.abort(stream)
		await self.results.send(EventFactory.interaction_end(interaction_id))

	async def close(self) -> None:
		"""Cancel queued and running work once the transport is gone."""
		self._queue.clear()
		task = self._queue_task
		if task is not None and not task.done():
			task.cancel()
			try:
				await task
			except asyncio.CancelledError:
				pass
		connection = self.store.find(self.session_id)
		if connection is not None:
			await self.audio_handler.close(connection)
