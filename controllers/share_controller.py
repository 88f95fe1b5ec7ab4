from fastapi import Request, HTTPException
from typing import Dict, Any, Optional
import logging
import secrets
import string
import time

from dal.share_dal import ShareDAL
from models.share_record import SharedCardRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_SHARE_ORIGIN = "http://localhost:5173"
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def new_card_id(now_ms: Optional[int] = None) -> str:
    """Return a share id of the form ``card_<epoch ms>_<7 base36 chars>``."""
    millis = int(time.time() * 1000) if now_ms is None else now_ms
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(7))
    return f"card_{millis}_{suffix}"


async def share_story(request: Request, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Persist a finished card and return the link that replays it.

    Args:
        request: FastAPI Request object (used to access app.state and the Origin header).
        payload: Card fields in the client's camelCase shape.

    Returns:
        A dict containing: storyId, shareUrl
    """
    story_text = (payload.get("storyText") or "").strip()
    if not story_text:
        raise HTTPException(status_code=400, detail="Missing storyText")

    record = SharedCardRecord(
        id=new_card_id(),
        story_text=story_text,
        child_name=payload.get("childName"),
        voice_id=payload.get("voiceId"),
        image_url=payload.get("imageUrl") or None,
        custom_voice_id=payload.get("customVoiceId"),
        experience_type=payload.get("experienceType") or "greeting-card",
        occasion=payload.get("occasion") or "birthday",
    )
    share_dal = ShareDAL(request.app.state.db_initializer)
    await share_dal.create_card(record, request.app.state.settings.share_ttl_seconds)
    LOGGER.info("Stored shared card %s (occasion=%s)", record.id, record.occasion)

    origin = request.headers.get("origin") or DEFAULT_SHARE_ORIGIN
    return {"storyId": record.id, "shareUrl": f"{origin.rstrip('/')}/share/{record.id}"}


async def get_story(request: Request, card_id: str) -> Dict[str, Any]:
    """Return a previously shared card, or 404 when unknown or expired."""
    record = await ShareDAL(request.app.state.db_initializer).get_card(card_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Card not found")
    return record.to_payload()
