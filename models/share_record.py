from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _iso(timestamp: Optional[int]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass
class SharedCardRecord:
    """In-memory representation of a row in the SHARED_CARD table.

    Attributes:
        id: Public share id (``card_<ms>_<suffix>``).
        story_text: Generated card or story text.
        child_name: Optional recipient or child name shown on the card.
        voice_id: Voice used for narration playback.
        image_url: Optional data URL or remote URL of the card image.
        custom_voice_id: Optional cloned voice id.
        experience_type: Experience that produced the card.
        occasion: Card occasion (birthday, wedding, ...).
        created_at: Unix timestamp (seconds) when the row was inserted.
        expires_at: Unix timestamp (seconds) after which the row is ignored.
    """

    id: str
    story_text: str
    child_name: Optional[str] = None
    voice_id: Optional[str] = None
    image_url: Optional[str] = None
    custom_voice_id: Optional[str] = None
    experience_type: str = "greeting-card"
    occasion: str = "birthday"
    created_at: Optional[int] = None
    expires_at: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        """Return the card in the client's camelCase shape."""
        return {
            "storyText": self.story_text,
            "childName": self.child_name,
            "voiceId": self.voice_id,
            "imageUrl": self.image_url,
            "customVoiceId": self.custom_voice_id,
            "experienceType": self.experience_type,
            "occasion": self.occasion,
            "createdAt": _iso(self.created_at),
        }
