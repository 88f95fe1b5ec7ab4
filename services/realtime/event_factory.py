"""Build the outbound websocket packets sent to the client."""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import uuid4

EVENT_TEXT = "TEXT"
EVENT_AUDIO = "AUDIO"
EVENT_NEW_INTERACTION = "newInteraction"
EVENT_INTERACTION_END = "INTERACTION_END"
EVENT_USER_SPEECH_COMPLETE = "USER_SPEECH_COMPLETE"
EVENT_CANCEL_RESPONSE = "CANCEL_RESPONSE"
EVENT_ERROR = "ERROR"


def _packet_id(interaction_id: str, utterance_id: Optional[str] = None) -> Dict[str, str]:
	packet = {"interactionId": interaction_id}
	if utterance_id is not None:
		packet["utteranceId"] = utterance_id
	return packet


class EventFactory:
	"""Stateless constructors for every outbound event type."""

	@staticmethod
	def new_interaction(interaction_id: str) -> Dict[str, Any]:
		return {"type": EVENT_NEW_INTERACTION, "interactionId": interaction_id}

	@staticmethod
	def text(
		text: str,
		interaction_id: str,
		source: Dict[str, Any],
		utterance_id: Optional[str] = None,
	) -> Dict[str, Any]:
		"""Return a transcript packet.

		``source`` is ``{"isAgent": True, "name": ...}`` for agent speech or
		``{"isUser": True}`` for the user's own words.
		"""
		return {
			"type": EVENT_TEXT,
			"text": {"text": text, "final": True},
			"packetId": _packet_id(interaction_id, utterance_id or uuid4().hex),
			"routing": {"source": dict(source)},
		}

	@staticmethod
	def audio(chunk_b64: str, interaction_id: str, utterance_id: str) -> Dict[str, Any]:
		return {
			"type": EVENT_AUDIO,
			"audio": {"chunk": chunk_b64},
			"packetId": _packet_id(interaction_id, utterance_id),
		}

	@staticmethod
	def interaction_end(interaction_id: str) -> Dict[str, Any]:
		return {"type": EVENT_INTERACTION_END, "packetId": _packet_id(interaction_id)}

	@staticmethod
	def user_speech_complete(interaction_id: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
		return {
			"type": EVENT_USER_SPEECH_COMPLETE,
			"packetId": _packet_id(interaction_id),
			"metadata": dict(metadata),
		}

	@staticmethod
	def cancel_response(interaction_id: str) -> Dict[str, Any]:
		return {"type": EVENT_CANCEL_RESPONSE, "packetId": _packet_id(interaction_id)}

	@staticmethod
	def error(error: Any, interaction_id: str) -> Dict[str, Any]:
		message = str(error) if not isinstance(error, str) else error
		return {
			"type": EVENT_ERROR,
			"error": message or "Unknown error",
			"packetId": _packet_id(interaction_id),
		}
