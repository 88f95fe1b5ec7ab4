"""Translate pipeline results into client events."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

from models.pipeline_results import (
	AudioResult,
	ErrorResult,
	Interrupted,
	PipelineResult,
	SpeechComplete,
	StateUpdate,
	Unrecognized,
)
from services.realtime.errors import ErrorPolicy, SessionError, SessionUnloadedError
from services.realtime.event_factory import EventFactory
from services.realtime.interaction import InteractionTracker
from services.realtime.pipeline import ResultStream
from services.realtime.prompts import is_start_sentinel
from services.realtime.session_store import SessionStore
from utils.media_validation import decode_audio_data

LOGGER = logging.getLogger(__name__)

HardErrorHook = Callable[[], Awaitable[None]]


@dataclass
class DrainOutcome:
	results: int = 0
	hard_failure: bool = False
	last_interaction_id: Optional[str] = None


class ResultHandler:
	"""Drain one result stream for a session and emit the matching events.

	Audio belonging to a superseded interaction is dropped when the session
	is interruption-aware. Soft errors are hidden, hard errors end the drain.
	"""

	def __init__(
		self,
		store: SessionStore,
		session_id: str,
		tracker: InteractionTracker,
		transport,
		policy: ErrorPolicy,
		interruption_aware: bool = True,
	) -> None:
		self.store = store
		self.session_id = session_id
		self.tracker = tracker
		self.transport = transport
		self.policy = policy
		self.interruption_aware = interruption_aware

	async def send(self, payload: Any) -> None:
		await self.transport.send(payload)

	async def drain(
		self,
		stream: ResultStream,
		*,
		interaction_id: Optional[str] = None,
		on_hard_error: Optional[HardErrorHook] = None,
		end_turns: bool = False,
	) -> DrainOutcome:
		"""Consume ``stream`` until it ends or reports a hard error.

		``end_turns`` emits an interaction end after each assistant reply,
		for streams that carry many turns.
		"""
		outcome = DrainOutcome(last_interaction_id=interaction_id)
		try:
			async for result in stream:
				outcome.results += 1
				try:
					stop = await self._process(result, outcome, on_hard_error, end_turns)
				except SessionError:
					raise
				except Exception as exc:
					LOGGER.exception("[Session %s] Error processing pipeline result", self.session_id)
					await self.report(exc, outcome.last_interaction_id)
					continue
				if stop:
					stream.abort()
					break
		except SessionError:
			raise
		except Exception as exc:
			LOGGER.error("[Session %s] Error reading pipeline results: %s", self.session_id, exc)
			await self.report(exc, outcome.last_interaction_id)
		return outcome

	async def report(self, error: Any, interaction_id: Optional[str] = None) -> None:
		"""Send an ERROR event unless the failure is a recoverable one."""
		message = str(error) or error.__class__.__name__
		if self.policy.is_soft(message):
			LOGGER.info("[Session %s] Ignoring recoverable error: %s", self.session_id, message)
			return
		await self.send(EventFactory.error(message, interaction_id or self.tracker.current_id or uuid4().hex))

	async def _process(
		self,
		result: PipelineResult,
		outcome: DrainOutcome,
		on_hard_error: Optional[HardErrorHook],
		end_turns: bool,
	) -> bool:
		if isinstance(result, AudioResult):
			await self._emit_audio(result, outcome)
		elif isinstance(result, SpeechComplete):
			await self._speech_complete(result)
		elif isinstance(result, Interrupted):
			interaction_id = result.interaction_id or outcome.last_interaction_id or self.tracker.current_id or uuid4().hex
			LOGGER.info("[Session %s] Interruption detected, cancelling %s", self.session_id, interaction_id)
			await self.send(EventFactory.cancel_response(interaction_id))
		elif isinstance(result, StateUpdate):
			await self._state_update(result, outcome, end_turns)
		elif isinstance(result, ErrorResult):
			return await self._error(result, outcome, on_hard_error)
		elif isinstance(result, Unrecognized):
			LOGGER.warning("[Session %s] Dropping unrecognized pipeline result: %r", self.session_id, result.data)
		else:
			LOGGER.warning("[Session %s] Unprocessed result type: %s", self.session_id, type(result).__name__)
		return False

	def _agent_name(self) -> str:
		connection = self.store.find(self.session_id)
		if connection is None:
			return ""
		return connection.state.agent.id

	async def _emit_audio(self, result: AudioResult, outcome: DrainOutcome) -> None:
		interaction_id = result.interaction_id or outcome.last_interaction_id or self.tracker.current_id
		if interaction_id is None:
			interaction_id = self.tracker.mint()
			await self.send(EventFactory.new_interaction(interaction_id))
		source = {"isAgent": True, "name": self._agent_name()}

		async for chunk in result.chunks:
			if self.interruption_aware and self.tracker.is_stale(interaction_id):
				LOGGER.info(
					"[Session %s] Skipping audio for stale interaction %s (current %s)",
					self.session_id,
					interaction_id,
					self.tracker.current_id,
				)
				break
			data = decode_audio_data(chunk.audio)
			if data is None:
				LOGGER.error("[Session %s] Unsupported audio data type: %s", self.session_id, type(chunk.audio).__name__)
				continue
			if not data:
				LOGGER.warning("[Session %s] Skipping empty audio chunk", self.session_id)
				continue
			utterance_id = uuid4().hex
			if chunk.text:
				await self.send(EventFactory.text(chunk.text, interaction_id, source, utterance_id))
			await self.send(EventFactory.audio(base64.b64encode(data).decode("ascii"), interaction_id, utterance_id))

	async def _speech_complete(self, result: SpeechComplete) -> None:
		interaction_id = result.interaction_id or str(result.iteration)
		LOGGER.info(
			"[Session %s] User speech complete (iteration %d, %d samples)",
			self.session_id,
			result.iteration,
			result.total_samples,
		)
		metadata = {
			"totalSamples": result.total_samples,
			"sampleRate": result.sample_rate,
			"endpointingLatencyMs": result.endpointing_latency_ms,
			"source": "VAD",
			"iteration": result.iteration,
		}
		await self.send(EventFactory.user_speech_complete(interaction_id, metadata))

	async def _state_update(self, result: StateUpdate, outcome: DrainOutcome, end_turns: bool) -> None:
		message = result.last_message
		if message is None:
			return
		if message.role == "assistant":
			if end_turns and result.interaction_id:
				await self.send(EventFactory.interaction_end(result.interaction_id))
			return
		if message.role != "user":
			return

		if result.interaction_id:
			outcome.last_interaction_id = result.interaction_id
			if self.tracker.adopt(result.interaction_id):
				await self.send(EventFactory.new_interaction(result.interaction_id))

		connection = self.store.get(self.session_id)
		if connection.unloaded:
			raise SessionUnloadedError(self.session_id)

		if is_start_sentinel(message.content):
			return
		interaction_id = outcome.last_interaction_id or self.tracker.current_id or uuid4().hex
		if self.interruption_aware and self.tracker.is_stale(interaction_id):
			LOGGER.debug(
				"[Session %s] Skipping user echo for stale interaction %s (current %s)",
				self.session_id,
				interaction_id,
				self.tracker.current_id,
			)
			return
		await self.send(EventFactory.text(message.content, interaction_id, {"isUser": True}))

	async def _error(
		self,
		result: ErrorResult,
		outcome: DrainOutcome,
		on_hard_error: Optional[HardErrorHook],
	) -> bool:
		message = result.message or "Pipeline processing error"
		if self.policy.is_soft(message):
			LOGGER.info("[Session %s] Ignoring recoverable pipeline error: %s", self.session_id, message)
			return False

		interaction_id = result.interaction_id or outcome.last_interaction_id or self.tracker.current_id or uuid4().hex
		await self.send(EventFactory.error(message, interaction_id))
		if not self.policy.is_hard(result):
			return False

		LOGGER.error("[Session %s] Pipeline failure (code %s): %s", self.session_id, result.code, message)
		outcome.hard_failure = True
		if on_hard_error is not None:
			await on_hard_error()
		return True
