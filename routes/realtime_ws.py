"""WebSocket endpoint for realtime voice and text conversations."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect

from controllers.session_controller import teardown_session
from services.realtime.transport import WebSocketTransport
from services.realtime.ws_session import RealtimeSessionHandler

router = APIRouter()
LOGGER = logging.getLogger(__name__)

POLICY_VIOLATION = 1008


@router.websocket("/session")
async def realtime_socket(websocket: WebSocket):
	"""Handle one client's conversation over a single websocket."""
	session_id = websocket.query_params.get("sessionId") or ""
	store = websocket.app.state.session_store
	pipelines = websocket.app.state.pipeline_manager
	await websocket.accept()

	connection = store.find(session_id) if session_id else None
	if connection is None or connection.unloaded:
		await websocket.close(code=POLICY_VIOLATION, reason="Session not found")
		return
	if connection.transport is not None and not connection.transport.closed:
		await websocket.close(code=POLICY_VIOLATION, reason="Session already connected")
		return

	transport = WebSocketTransport(websocket, session_id)
	store.attach_transport(session_id, transport)
	handler = RealtimeSessionHandler(store, pipelines, transport, session_id, websocket.app.state.settings)
	LOGGER.info("[Session %s] Websocket connected", session_id)
	try:
		while True:
			try:
				raw = await websocket.receive_text()
			except WebSocketDisconnect:
				break
			except RuntimeError:
				# Closed from the server side, e.g. by an HTTP unload.
				break
			except KeyError:
				await handler.results.report("Binary frames are not supported")
				continue
			try:
				payload = json.loads(raw)
			except ValueError:
				await handler.results.report("Payload must be JSON")
				continue
			if not isinstance(payload, dict):
				await handler.results.report("Payload must be a JSON object")
				continue
			await handler.handle(payload)
	finally:
		LOGGER.info("[Session %s] Websocket closed", session_id)
		transport.closed = True
		await handler.close()
		if store.find(session_id) is connection:
			await teardown_session(store, pipelines, session_id)
