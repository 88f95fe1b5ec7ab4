"""Outbound side of a session websocket."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

LOGGER = logging.getLogger(__name__)


class WebSocketTransport:
	"""Send JSON events to one client; a gone client is never an error."""

	def __init__(self, websocket: WebSocket, session_id: str) -> None:
		self.websocket = websocket
		self.session_id = session_id
		self.closed = False

	@property
	def is_open(self) -> bool:
		if self.closed:
			return False
		return self.websocket.client_state == WebSocketState.CONNECTED

	async def send(self, payload: Dict[str, Any]) -> bool:
		"""Send ``payload``; return False when it could not be delivered."""
		if not self.is_open:
			return False
		try:
			await self.websocket.send_json(payload)
			return True
		except (WebSocketDisconnect, RuntimeError) as exc:
			LOGGER.debug("[Session %s] Dropping %s event: %s", self.session_id, payload.get("type"), exc)
			self.closed = True
			return False

	async def close(self, code: int = 1000, reason: str = "") -> None:
		if not self.is_open:
			self.closed = True
			return
		self.closed = True
		try:
			await self.websocket.close(code=code, reason=reason)
		except RuntimeError:
			pass
