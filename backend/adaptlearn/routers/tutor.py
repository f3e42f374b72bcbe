from typing import List, Literal, Optional

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
import logging
from ..completion_client import CompletionClient, CompletionRateLimited, CompletionUnavailable
from .auth import get_current_user, User
from sqlalchemy.orm import Session
from ..db import get_db
from ..models import AuthUser

router = APIRouter(prefix="/tutor", tags=["tutor"])

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
	role: Literal["user", "assistant"]
	content: str


class ChatRequest(BaseModel):
	message: Optional[str] = None
	messages: Optional[List[ChatMessage]] = None
	context: Optional[str] = None
	mode: Literal["tutor", "analyze"] = "tutor"


@router.post("/chat")
async def chat(req: ChatRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	if not req.message and not req.messages:
		raise HTTPException(status_code=400, detail="message or messages is required")
	# Enforce per-user request limits
	row = db.query(AuthUser).filter(AuthUser.username == user.username).first()
	if row and row.requests_used >= row.requests_limit:
		raise HTTPException(status_code=429, detail="request limit reached")
	try:
		client = CompletionClient()
	except ValueError as e:
		raise HTTPException(status_code=500, detail=str(e))
	try:
		text = await client.complete(
			[m.model_dump() for m in req.messages] if req.messages else None,
			message=req.message,
			mode=req.mode,
			context=req.context,
		)
	except CompletionRateLimited as e:
		raise HTTPException(status_code=429, detail=str(e))
	except CompletionUnavailable as e:
		raise HTTPException(status_code=402, detail=str(e))
	except Exception as e:
		logger.exception("tutor completion failed for %s", user.username)
		raise HTTPException(status_code=500, detail=str(e))
	finally:
		await client.aclose()
	# Only answered requests count against the quota
	if row:
		row.requests_used += 1
		db.commit()
	return {"message": text}
