"""Exceptions and error classification for realtime sessions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Tuple

from models.pipeline_results import ErrorResult


class SessionError(RuntimeError):
	"""Base class for session-state failures raised inside a single task."""


class SessionNotFoundError(SessionError, KeyError):
	"""No session is registered under the requested id."""

	def __init__(self, session_id: str) -> None:
		super().__init__(f"Session not found for sessionId: {session_id}")
		self.session_id = session_id

	def __str__(self) -> str:
		return self.args[0]


class SessionUnloadedError(SessionError):
	"""The session was torn down while work for it was still in flight."""

	def __init__(self, session_id: str) -> None:
		super().__init__(f"Session unloaded for sessionId: {session_id}")
		self.session_id = session_id


class ConfigurationError(RuntimeError):
	"""A capability the request needs is not provisioned for this deployment."""

	def __init__(self, message: str, requested: str, available: Tuple[str, ...]) -> None:
		super().__init__(message)
		self.requested = requested
		self.available = available


@dataclass(frozen=True)
class ErrorPolicy:
	"""Classify pipeline errors as hard (tear down), soft (hide) or plain."""

	hard_codes: FrozenSet[int] = frozenset({4, 9})
	hard_patterns: Tuple[str, ...] = ("timed out", "executor is not running")
	soft_patterns: Tuple[str, ...] = ("no text",)

	@classmethod
	def from_settings(cls, settings) -> "ErrorPolicy":
		return cls(
			hard_codes=frozenset(settings.hard_error_codes),
			hard_patterns=tuple(settings.hard_error_patterns),
			soft_patterns=tuple(settings.soft_error_patterns),
		)

	def is_hard(self, error: ErrorResult) -> bool:
		if error.code is not None and int(error.code) in self.hard_codes:
			return True
		message = (error.message or "").lower()
		return any(pattern.lower() in message for pattern in self.hard_patterns)

	def is_soft(self, message: str) -> bool:
		lowered = (message or "").lower()
		return any(pattern.lower() in lowered for pattern in self.soft_patterns)
