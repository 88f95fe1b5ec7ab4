"""FastAPI routes for loading and unloading conversation sessions."""

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from controllers.session_controller import load_session, unload_session
from services.realtime.errors import ConfigurationError, SessionNotFoundError

router = APIRouter()


class LoadPayload(BaseModel):
	agent: Optional[Any] = None
	userName: Optional[str] = None
	voiceId: Optional[str] = None
	experienceType: Optional[str] = None
	sttService: Optional[str] = None


@router.post("/load")
async def load_session_route(request: Request, payload: LoadPayload, sessionId: str = Query("")):
	try:
		return await load_session(request, sessionId, payload.model_dump())
	except ConfigurationError as exc:
		return JSONResponse(
			status_code=400,
			content={
				"error": str(exc),
				"availableServices": list(exc.available),
				"requestedService": exc.requested,
			},
		)
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc))
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/unload")
async def unload_session_route(request: Request, sessionId: str = Query("")):
	if not sessionId.strip():
		raise HTTPException(status_code=400, detail="sessionId is required.")
	try:
		return await unload_session(request, sessionId)
	except SessionNotFoundError as exc:
		raise HTTPException(status_code=404, detail=str(exc))
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
