from __future__ import annotations
import asyncio
import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..errors import QuizFlowError
from ..quiz_session import SecureExamSession
from ..security_monitor import Signal
from .auth import User, get_current_user
from .quizzes import (
    AnswerRequest,
    NavigateRequest,
    get_owned_session,
    http_error,
    load_quiz,
    registry,
    session_payload,
    store,
)


router = APIRouter(prefix="/exams", tags=["secure_exam"])


class StartExamRequest(BaseModel):
    # Whether the browser accepted the fullscreen request; refusal is not fatal
    fullscreen_granted: bool = False


class SignalRequest(BaseModel):
    signal: Signal


@router.post("/{quiz_id}/start", status_code=201)
async def start_exam(quiz_id: str, req: StartExamRequest, user: User = Depends(get_current_user)):
    quiz, pool = load_quiz(quiz_id)
    session = SecureExamSession(
        uuid.uuid4().hex,
        user.username,
        quiz,
        pool,
        store=store,
        scheduler=asyncio.get_running_loop(),
    )
    try:
        superseded = registry.start_exam(session, fullscreen_granted=req.fullscreen_granted)
    except QuizFlowError as exc:
        raise http_error(exc)
    return {"superseded_session_id": superseded, **session_payload(session)}


@router.get("/sessions/{session_id}")
async def get_exam(session_id: str, user: User = Depends(get_current_user)):
    session = get_owned_session(session_id, user, "exam")
    session.check_deadline()
    return session_payload(session)


@router.post("/sessions/{session_id}/signal")
async def signal(session_id: str, req: SignalRequest, user: User = Depends(get_current_user)):
    session = get_owned_session(session_id, user, "exam")
    result = session.handle_signal(req.signal)
    return {
        "action": result.action,
        "warning": result.warning,
        "violation": result.violation.value if result.violation else None,
        **session_payload(session),
    }


@router.post("/sessions/{session_id}/answer")
async def answer_exam(session_id: str, req: AnswerRequest, user: User = Depends(get_current_user)):
    session = get_owned_session(session_id, user, "exam")
    try:
        accepted = session.select_answer(req.question_id, req.option_index)
    except QuizFlowError as exc:
        raise http_error(exc)
    return {"accepted": accepted, **session_payload(session)}


@router.post("/sessions/{session_id}/navigate")
async def navigate_exam(session_id: str, req: NavigateRequest, user: User = Depends(get_current_user)):
    session = get_owned_session(session_id, user, "exam")
    try:
        session.navigate(req.direction)
    except QuizFlowError as exc:
        raise http_error(exc)
    return session_payload(session)


@router.post("/sessions/{session_id}/submit")
async def submit_exam(session_id: str, user: User = Depends(get_current_user)):
    session = get_owned_session(session_id, user, "exam")
    try:
        session.submit()
    except QuizFlowError as exc:
        raise http_error(exc)
    return session_payload(session)


@router.delete("/sessions/{session_id}", status_code=204)
async def abandon_exam(session_id: str, user: User = Depends(get_current_user)):
    get_owned_session(session_id, user, "exam")
    registry.remove(session_id)
