"""Session lifecycle helpers for realtime conversations."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import Request

from models.session_models import Agent, ChatMessage, ConversationState, SessionConnection
from services.realtime.errors import ConfigurationError, SessionNotFoundError
from services.realtime.pipeline import PipelineManager
from services.realtime.prompts import GREETING_CARD, system_message
from services.realtime.session_store import SessionStore
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)


def _resolve_stt_service(settings: Settings, requested: Optional[str]) -> str:
	stt_service = (requested or settings.default_stt_service).strip().lower()
	available = tuple(sorted(settings.stt_services))
	if stt_service not in settings.stt_services:
		raise ConfigurationError(f"STT service '{stt_service}' is not supported", stt_service, available)
	if stt_service == "openai" and not settings.openai_api_key:
		raise ConfigurationError("OpenAI STT requested but OPENAI_API_KEY is not configured", stt_service, available)
	return stt_service


def bootstrap_session(
	store: SessionStore,
	settings: Settings,
	session_id: str,
	*,
	agent: Dict[str, Any],
	user_name: str,
	voice_id: Optional[str] = None,
	experience_type: Optional[str] = None,
	stt_service: Optional[str] = None,
) -> SessionConnection:
	"""Validate the request and register a fresh session under ``session_id``."""
	if not session_id or not session_id.strip():
		raise ValueError("sessionId is required.")
	if not isinstance(agent, dict):
		raise ValueError("agent must be an object.")
	if not user_name or not user_name.strip():
		raise ValueError("userName is required.")

	stt = _resolve_stt_service(settings, stt_service)
	experience = experience_type or GREETING_CARD
	persona = Agent(
		id=uuid4().hex,
		name=str(agent.get("name") or ""),
		description=str(agent.get("description") or ""),
		motivation=str(agent.get("motivation") or ""),
		system_prompt=str(agent.get("systemPrompt") or ""),
		knowledge=[str(item) for item in agent.get("knowledge") or []],
	)
	system_id = uuid4().hex
	state = ConversationState(
		interaction_id=system_id,
		agent=persona,
		user_name=user_name.strip(),
		messages=[
			ChatMessage(
				role="system",
				content=system_message(persona, user_name.strip(), experience),
				id=f"system{system_id}",
			)
		],
		voice_id=voice_id if voice_id is not None else settings.default_voice_id,
		experience_type=experience,
	)
	connection = store.create(session_id, state, stt)
	LOGGER.info("[Session %s] Loaded %s session (stt=%s, voice=%s)", session_id, experience, stt, state.voice_id)
	return connection


async def teardown_session(store: SessionStore, pipelines: PipelineManager, session_id: str) -> bool:
	"""Release everything the session owns. Returns False if already torn down.

	Raises SessionNotFoundError for ids that were never loaded.
	"""
	connection = store.find(session_id)
	if connection is None:
		if store.was_removed(session_id):
			return False
		raise SessionNotFoundError(session_id)

	connection.unloaded = True
	if connection.audio_buffer is not None:
		connection.audio_buffer.end()
	await _release_task(connection.audio_task)
	await _release_task(connection.queue_task)
	connection.audio_buffer = None
	connection.audio_task = None
	connection.queue_task = None
	await pipelines.discard_session_pipeline(connection)
	store.remove(session_id)
	if connection.transport is not None:
		await connection.transport.close(code=1000, reason="Session unloaded")
	LOGGER.info("[Session %s] Unloaded", session_id)
	return True


async def _release_task(task: Optional[asyncio.Task]) -> None:
	"""Cancel ``task`` if still pending and wait for it to finish."""
	if task is None or task is asyncio.current_task():
		return
	if not task.done():
		task.cancel()
	try:
		await task
	except asyncio.CancelledError:
		pass


async def shutdown_sessions(store: SessionStore, pipelines: PipelineManager) -> None:
	"""Tear down every live session and the shared pipeline."""
	for connection in store:
		try:
			await teardown_session(store, pipelines, connection.session_id)
		except Exception as exc:
			LOGGER.warning("[Session %s] Error during shutdown: %s", connection.session_id, exc)
	await pipelines.shutdown()


async def load_session(request: Request, session_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
	"""Create a session from a load request and return the agent it plays."""
	connection = bootstrap_session(
		request.app.state.session_store,
		request.app.state.settings,
		session_id,
		agent=payload.get("agent"),
		user_name=payload.get("userName") or "",
		voice_id=payload.get("voiceId"),
		experience_type=payload.get("experienceType"),
		stt_service=payload.get("sttService"),
	)
	agent = connection.state.agent
	return {
		"agent": {
			"id": agent.id,
			"name": agent.name,
			"description": agent.description,
			"motivation": agent.motivation,
			"systemPrompt": agent.system_prompt,
			"knowledge": agent.knowledge,
		}
	}


async def unload_session(request: Request, session_id: str) -> Dict[str, Any]:
	await teardown_session(request.app.state.session_store, request.app.state.pipeline_manager, session_id)
	return {"message": "Session unloaded"}
