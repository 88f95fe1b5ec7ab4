"""Session domain models for realtime voice conversations."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
	from services.realtime.audio_stream import AudioStreamBuffer
	from services.realtime.pipeline import GenerationPipeline


@dataclass
class ChatMessage:
	"""One conversation turn kept in the session history."""

	role: str
	content: str
	id: str
	created_at: float = field(default_factory=lambda: time.time())

	def as_dict(self) -> Dict[str, str]:
		return {"id": self.id, "role": self.role, "content": self.content}


@dataclass
class Agent:
	"""Persona the client asked the server to play."""

	id: str
	name: str = ""
	description: str = ""
	motivation: str = ""
	system_prompt: str = ""
	knowledge: List[str] = field(default_factory=list)


@dataclass
class ConversationState:
	"""Conversation data shared with the generation pipeline."""

	interaction_id: str
	agent: Agent
	user_name: str
	messages: List[ChatMessage] = field(default_factory=list)
	voice_id: Optional[str] = None
	experience_type: str = "greeting-card"
	answered_questions: Dict[str, str] = field(default_factory=dict)

	def history(self) -> List[Dict[str, str]]:
		"""Return the messages as plain role/content dicts."""
		return [msg.as_dict() for msg in self.messages]


@dataclass
class SessionConnection:
	"""In-memory session tracking: conversation state plus owned resources."""

	session_id: str
	state: ConversationState
	stt_service: str
	transport: Any = None
	unloaded: bool = False
	audio_buffer: Optional["AudioStreamBuffer"] = None
	audio_task: Optional["asyncio.Task[None]"] = None
	queue_task: Optional["asyncio.Task[None]"] = None
	session_pipeline: Optional["GenerationPipeline"] = None
	audio_chunk_count: int = 0
