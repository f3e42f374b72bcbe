from __future__ import annotations
import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..domain import Question, QuizDefinition, SessionState
from ..errors import (
    InvalidAnswer,
    InvalidTransition,
    NoQuestionsAvailable,
    PersistenceUnavailable,
    QuizFlowError,
    QuizNotFound,
    SessionNotFound,
)
from ..quiz_session import QuizSession, SecureExamSession, SessionRegistry
from ..repository import SqlQuizStore
from ..session_config import ALL, SessionConfig, question_count_options
from .auth import User, get_current_user


router = APIRouter(prefix="/quizzes", tags=["quizzes"])

logger = logging.getLogger(__name__)

store = SqlQuizStore()
registry = SessionRegistry()


class StartQuizRequest(BaseModel):
    question_count: Union[int, str] = Field(default=ALL, description='"all" or one of the offered counts')
    timer_enabled: bool = False
    timer_minutes: int = Field(default=10, ge=1, le=600)


class AnswerRequest(BaseModel):
    question_id: str
    option_index: int


class NavigateRequest(BaseModel):
    direction: int = Field(default=1, description="+1 for next, -1 for previous")


def http_error(exc: QuizFlowError) -> HTTPException:
    if isinstance(exc, (QuizNotFound, NoQuestionsAvailable, SessionNotFound)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidAnswer):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, InvalidTransition):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, PersistenceUnavailable):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def load_quiz(quiz_id: str) -> Tuple[QuizDefinition, List[Question]]:
    try:
        quiz = store.get_quiz(quiz_id)
        pool = store.get_questions(quiz_id) if quiz is not None else []
    except Exception:
        logger.exception("failed to load quiz %s", quiz_id)
        raise HTTPException(status_code=503, detail="Failed to load quiz questions.")
    if quiz is None:
        raise HTTPException(status_code=404, detail="Quiz not found.")
    if not pool:
        raise HTTPException(status_code=404, detail="No questions available for this quiz.")
    return quiz, pool


def get_owned_session(session_id: str, user: User, kind: str) -> QuizSession:
    try:
        session = registry.get(session_id, user.username)
    except SessionNotFound as exc:
        raise http_error(exc)
    if session.kind != kind:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _question_payload(q: Question, reveal: bool) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": q.id,
        "question": q.question,
        "options": q.options,
        "points": q.points,
    }
    if reveal:
        payload["correct_answer"] = q.correct_answer
        payload["explanation"] = q.explanation
    return payload


def _result_payload(session: QuizSession) -> Optional[Dict[str, Any]]:
    result = session.result
    if result is None:
        return None
    outcome = session.outcome
    return {
        "percentage": result.percentage,
        "correct_count": result.correct_count,
        "total_questions": result.total_questions,
        "total_points": result.total_points,
        "passed": result.percentage >= session.quiz.passing_score,
        "trigger": session.submit_trigger.value if session.submit_trigger else None,
        "time_taken_seconds": round((session.submitted_at - session.started_at).total_seconds()),
        "level_up": outcome.level_up if outcome else None,
        "new_level": outcome.new_level if outcome else None,
        "new_points": outcome.new_points if outcome else None,
        "recommendation_created": outcome.recommendation_created if outcome else False,
        "review": [
            {
                "question_id": q.id,
                "selected": session.answers.get(q.id),
                "correct_answer": q.correct_answer,
                "is_correct": session.answers.get(q.id) == q.correct_answer,
                "explanation": q.explanation,
            }
            for q in session.questions
        ],
    }


def session_payload(session: QuizSession) -> Dict[str, Any]:
    submitted = session.state == SessionState.SUBMITTED
    quiz = session.quiz
    payload: Dict[str, Any] = {
        "session_id": session.session_id,
        "kind": session.kind,
        "state": session.state.value,
        "quiz": {
            "id": quiz.id,
            "title": quiz.title,
            "lesson_id": quiz.lesson_id,
            "difficulty": quiz.difficulty,
            "passing_score": quiz.passing_score,
        },
        "questions": [_question_payload(q, submitted) for q in session.questions],
        "current_index": session.cursor,
        "answers": dict(session.answers),
        "answered": len(session.answers),
        "total_questions": len(session.questions),
        "started_at": session.started_at.isoformat() if session.started_at else None,
        "deadline": session.deadline.isoformat() if session.deadline else None,
        "time_remaining": session.time_remaining(),
        "result": _result_payload(session),
    }
    if isinstance(session, SecureExamSession):
        exam = session.exam
        payload["exam"] = {
            "exam_session_id": exam.id if exam else None,
            "tab_switches": exam.tab_switches if exam else 0,
            "fullscreen_exits": exam.fullscreen_exits if exam else 0,
            "flagged": exam.flagged if exam else False,
            "flag_reason": exam.flag_reason if exam else None,
            "violation_threshold": session.violation_threshold,
            "fullscreen_held": session.monitor.fullscreen_held,
        }
        payload["flag_notice"] = session.flag_notice
        payload["release_fullscreen"] = session.release_fullscreen
    return payload


@router.get("/{quiz_id}/setup")
async def quiz_setup(quiz_id: str, user: User = Depends(get_current_user)):
    quiz, pool = load_quiz(quiz_id)
    return {
        "quiz": {
            "id": quiz.id,
            "title": quiz.title,
            "lesson_id": quiz.lesson_id,
            "difficulty": quiz.difficulty,
            "passing_score": quiz.passing_score,
        },
        "available_questions": len(pool),
        "question_count_options": question_count_options(len(pool)),
    }


@router.post("/{quiz_id}/sessions", status_code=201)
async def start_quiz(quiz_id: str, req: StartQuizRequest, user: User = Depends(get_current_user)):
    quiz, pool = load_quiz(quiz_id)
    session = QuizSession(
        uuid.uuid4().hex,
        user.username,
        quiz,
        pool,
        store=store,
        scheduler=asyncio.get_running_loop(),
    )
    _start(session, req)
    registry.add(session)
    return session_payload(session)


def _start(session: QuizSession, req: StartQuizRequest) -> None:
    config = SessionConfig(
        question_count=req.question_count,
        timer_enabled=req.timer_enabled,
        timer_minutes=req.timer_minutes,
    )
    try:
        session.start(config)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid quiz configuration: {exc}")
    except QuizFlowError as exc:
        raise http_error(exc)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, user: User = Depends(get_current_user)):
    session = get_owned_session(session_id, user, "quiz")
    session.check_deadline()
    return session_payload(session)


@router.post("/sessions/{session_id}/start")
async def restart_session(session_id: str, req: StartQuizRequest, user: User = Depends(get_current_user)):
    session = get_owned_session(session_id, user, "quiz")
    _start(session, req)
    return session_payload(session)


@router.post("/sessions/{session_id}/answer")
async def answer(session_id: str, req: AnswerRequest, user: User = Depends(get_current_user)):
    session = get_owned_session(session_id, user, "quiz")
    try:
        accepted = session.select_answer(req.question_id, req.option_index)
    except QuizFlowError as exc:
        raise http_error(exc)
    return {"accepted": accepted, **session_payload(session)}


@router.post("/sessions/{session_id}/navigate")
async def navigate(session_id: str, req: NavigateRequest, user: User = Depends(get_current_user)):
    session = get_owned_session(session_id, user, "quiz")
    try:
        session.navigate(req.direction)
    except QuizFlowError as exc:
        raise http_error(exc)
    return session_payload(session)


@router.post("/sessions/{session_id}/submit")
async def submit(session_id: str, user: User = Depends(get_current_user)):
    session = get_owned_session(session_id, user, "quiz")
    try:
        session.submit()
    except QuizFlowError as exc:
        raise http_error(exc)
    return session_payload(session)


@router.post("/sessions/{session_id}/retry")
async def retry(session_id: str, user: User = Depends(get_current_user)):
    session = get_owned_session(session_id, user, "quiz")
    try:
        session.retry()
    except QuizFlowError as exc:
        raise http_error(exc)
    return session_payload(session)


@router.delete("/sessions/{session_id}", status_code=204)
async def abandon(session_id: str, user: User = Depends(get_current_user)):
    get_owned_session(session_id, user, "quiz")
    registry.remove(session_id)
