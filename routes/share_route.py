from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.share_controller import get_story, share_story

router = APIRouter(prefix="/api")


class SharePayload(BaseModel):
	storyText: Optional[str] = None
	childName: Optional[str] = None
	voiceId: Optional[str] = None
	imageUrl: Optional[str] = None
	customVoiceId: Optional[str] = None
	experienceType: Optional[str] = None
	occasion: Optional[str] = None


@router.post("/share-story")
async def share_story_route(request: Request, payload: SharePayload):
	"""Store a finished card and return its share link."""
	try:
		return await share_story(request, payload.model_dump())
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/story/{card_id}")
async def get_story_route(request: Request, card_id: str):
	"""Return the shared card stored under ``card_id``."""
	try:
		return await get_story(request, card_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
