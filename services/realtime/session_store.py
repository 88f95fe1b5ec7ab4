"""Simple in-memory store for realtime sessions."""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, Iterator, Optional, Set
from uuid import uuid4

from models.session_models import ChatMessage, ConversationState, SessionConnection
from services.realtime.errors import SessionNotFoundError


class SessionStore:
	"""Own every live session connection, keyed by the client-chosen id."""

	def __init__(self, removed_capacity: int = 1024) -> None:
		self._sessions: Dict[str, SessionConnection] = {}
		self._removed: Deque[str] = deque(maxlen=removed_capacity)
		self._removed_ids: Set[str] = set()

	def __contains__(self, session_id: object) -> bool:
		return session_id in self._sessions

	def __len__(self) -> int:
		return len(self._sessions)

	def __iter__(self) -> Iterator[SessionConnection]:
		return iter(list(self._sessions.values()))

	def create(self, session_id: str, state: ConversationState, stt_service: str) -> SessionConnection:
		"""Register a session, replacing any previous one under the same id."""
		connection = SessionConnection(session_id=session_id, state=state, stt_service=stt_service)
		self._sessions[session_id] = connection
		self._forget_removed(session_id)
		return connection

	def get(self, session_id: str) -> SessionConnection:
		"""Return a session or raise SessionNotFoundError if missing."""
		connection = self._sessions.get(session_id)
		if connection is None:
			raise SessionNotFoundError(session_id)
		return connection

	def find(self, session_id: str) -> Optional[SessionConnection]:
		return self._sessions.get(session_id)

	def remove(self, session_id: str) -> Optional[SessionConnection]:
		"""Drop a session; remembers the id so repeated teardowns stay quiet."""
		connection = self._sessions.pop(session_id, None)
		if connection is not None and session_id not in self._removed_ids:
			if len(self._removed) == self._removed.maxlen:
				self._removed_ids.discard(self._removed[0])
			self._removed.append(session_id)
			self._removed_ids.add(session_id)
		return connection

	def was_removed(self, session_id: str) -> bool:
		return session_id in self._removed_ids

	def attach_transport(self, session_id: str, transport) -> SessionConnection:
		"""Bind the websocket transport to a session, keeping the first live one."""
		connection = self.get(session_id)
		if connection.transport is None or getattr(connection.transport, "closed", False):
			connection.transport = transport
		return connection

	def add_message(self, session_id: str, role: str, content: str, message_id: Optional[str] = None) -> ChatMessage:
		"""Append a message to the session conversation."""
		connection = self.get(session_id)
		message = ChatMessage(role=role, content=content.strip(), id=message_id or uuid4().hex)
		connection.state.messages.append(message)
		return message

	def _forget_removed(self, session_id: str) -> None:
		if session_id in self._removed_ids:
			self._removed_ids.discard(session_id)
			self._removed.remove(session_id)
