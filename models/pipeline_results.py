"""Values produced by a generation pipeline execution.

A result stream yields exactly one of the variants below per pull. The
coordinator dispatches on the concrete type; anything else is logged and
dropped as unrecognized.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, AsyncIterator, List, Optional, Union

from models.session_models import ChatMessage


class StatusCode(IntEnum):
	"""gRPC-style status codes attached to pipeline errors."""

	UNKNOWN = 2
	INVALID_ARGUMENT = 3
	DEADLINE_EXCEEDED = 4
	FAILED_PRECONDITION = 9
	INTERNAL = 13
	UNAVAILABLE = 14


@dataclass
class AudioChunk:
	"""A slice of synthesized speech.

	``audio`` arrives as raw bytes, a base64 string, or a list of byte values
	depending on the synthesis backend.
	"""

	audio: Union[bytes, bytearray, str, List[int], None]
	text: str = ""


@dataclass
class AudioResult:
	"""Streamed synthesized audio for one utterance of an interaction."""

	chunks: AsyncIterator[AudioChunk]
	interaction_id: Optional[str] = None


@dataclass
class SpeechComplete:
	"""The endpointer decided the user finished speaking."""

	interaction_id: Optional[str]
	iteration: int
	total_samples: int
	sample_rate: int
	endpointing_latency_ms: int


@dataclass
class Interrupted:
	"""The user barged in on the response tagged ``interaction_id``."""

	interaction_id: Optional[str]


@dataclass
class StateUpdate:
	"""The conversation gained a message; the last entry is the new one."""

	messages: List[ChatMessage]
	interaction_id: Optional[str]

	@property
	def last_message(self) -> Optional[ChatMessage]:
		return self.messages[-1] if self.messages else None


@dataclass
class ErrorResult:
	"""A failure reported by the pipeline instead of raised."""

	message: str
	code: Optional[int] = None
	interaction_id: Optional[str] = None


@dataclass
class Unrecognized:
	"""Payload the pipeline emitted that has no known shape."""

	data: Any = field(default=None)


PipelineResult = Union[AudioResult, SpeechComplete, Interrupted, StateUpdate, ErrorResult, Unrecognized]
