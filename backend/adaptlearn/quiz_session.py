from __future__ import annotations
import logging
import math
import random
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

from .domain import (
    AnswerMap,
    ExamRecord,
    Question,
    QuizDefinition,
    SessionState,
    SubmitTrigger,
    ViolationKind,
)
from .errors import InvalidAnswer, InvalidTransition, NoQuestionsAvailable, PersistenceUnavailable, SessionNotFound
from .scoring import Outcome, ScoreResult, apply_outcome, compute_score
from .security_monitor import SecurityMonitor, Signal, SignalResult
from .session_config import ALL, SessionConfig, build_deadline, build_session
from .settings import settings


logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything with asyncio's call_later signature."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class QuizSession:
    """Practice quiz: configure, answer, submit, optionally retry."""

    kind = "quiz"

    def __init__(
        self,
        session_id: str,
        user_id: str,
        quiz: QuizDefinition,
        pool: List[Question],
        *,
        store,
        scheduler: Scheduler,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.session_id = session_id
        self.user_id = user_id
        self.quiz = quiz
        self.pool = list(pool)
        self.store = store
        self.scheduler = scheduler
        self.clock = clock
        self.rng = rng
        self.created_at = clock()
        self.last_activity_at = self.created_at
        self.state = SessionState.CONFIGURING
        self.config: Optional[SessionConfig] = None
        self.questions: List[Question] = []
        self.answers: AnswerMap = {}
        self.cursor = 0
        self.started_at: Optional[datetime] = None
        self.deadline: Optional[datetime] = None
        self.submitted_at: Optional[datetime] = None
        self.submit_trigger: Optional[SubmitTrigger] = None
        self.result: Optional[ScoreResult] = None
        self.outcome: Optional[Outcome] = None
        self.abandoned = False
        self._submitting = False
        self._handles: List[TimerHandle] = []

    # -- lifecycle -----------------------------------------------------

    def start(self, config: Optional[SessionConfig] = None) -> None:
        if self.state != SessionState.CONFIGURING or self.abandoned:
            raise InvalidTransition("Session has already started.")
        self.touch()
        config = config or SessionConfig()
        questions = build_session(self.pool, config.question_count, self.rng)
        now = self.clock()
        deadline = build_deadline(now, config.timer_enabled, config.timer_minutes)
        self.config = config
        self.questions = questions
        self.answers = {}
        self.cursor = 0
        self.started_at = now
        self.deadline = deadline
        self._submitting = False
        self.state = SessionState.IN_PROGRESS
        if deadline is not None:
            self._schedule((deadline - now).total_seconds(), self._on_deadline)
        logger.info("session %s started: %d questions, deadline=%s", self.session_id, len(questions), deadline)

    def submit(self, trigger: SubmitTrigger = SubmitTrigger.USER) -> ScoreResult:
        if self._submitting or self.state == SessionState.SUBMITTED:
            return self.result
        if self.state != SessionState.IN_PROGRESS:
            raise InvalidTransition("Session has not started.")
        self._submitting = True
        now = self.clock()
        self.last_activity_at = now
        self.result = compute_score(self.questions, self.answers)
        self.submitted_at = now
        self.submit_trigger = trigger
        self.state = SessionState.SUBMITTED
        self._release()
        logger.info(
            "session %s submitted by %s: %d%%", self.session_id, trigger.value, self.result.percentage
        )
        elapsed = round((now - self.started_at).total_seconds())
        self.outcome = apply_outcome(self.store, self.user_id, self.quiz, self.result, elapsed)
        self._after_submit(now)
        return self.result

    def retry(self) -> None:
        if self.state != SessionState.SUBMITTED:
            raise InvalidTransition("Only a submitted quiz can be retried.")
        self.touch()
        self._release()
        self.state = SessionState.CONFIGURING
        self.config = None
        self.questions = []
        self.answers = {}
        self.cursor = 0
        self.started_at = None
        self.deadline = None
        self.submitted_at = None
        self.submit_trigger = None
        self.result = None
        self.outcome = None
        self._submitting = False

    def abandon(self) -> None:
        if self.abandoned:
            return
        self.abandoned = True
        self._release()
        if self.state == SessionState.IN_PROGRESS:
            self._after_abandon(self.clock())
        logger.info("session %s abandoned in state %s", self.session_id, self.state.value)

    # -- in-progress operations ----------------------------------------

    def check_deadline(self) -> bool:
        if self.state != SessionState.IN_PROGRESS or self.deadline is None:
            return False
        if self.clock() >= self.deadline:
            self.submit(SubmitTrigger.TIMER)
            return True
        return False

    def select_answer(self, question_id: str, option_index: int) -> bool:
        self.touch()
        self.check_deadline()
        if self.state == SessionState.SUBMITTED:
            return False
        if self.state != SessionState.IN_PROGRESS:
            raise InvalidTransition("Session has not started.")
        question = self._question(question_id)
        if question is None:
            raise InvalidAnswer(f"Question {question_id} is not part of this session.")
        if not 0 <= option_index < len(question.options):
            raise InvalidAnswer(f"Option {option_index} is out of range.")
        self.answers[question_id] = option_index
        return True

    def navigate(self, direction: int) -> int:
        self.touch()
        self.check_deadline()
        if self.state == SessionState.CONFIGURING:
            raise InvalidTransition("Session has not started.")
        last = max(0, len(self.questions) - 1)
        self.cursor = max(0, min(self.cursor + int(direction), last))
        return self.cursor

    def time_remaining(self) -> Optional[int]:
        if self.deadline is None:
            return None
        if self.state == SessionState.SUBMITTED:
            return max(0, math.ceil((self.deadline - self.submitted_at).total_seconds()))
        return max(0, math.ceil((self.deadline - self.clock()).total_seconds()))

    # -- internals -------------------------------------------------------

    def touch(self) -> None:
        self.last_activity_at = self.clock()

    def _question(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def _schedule(self, delay: float, callback: Callable[[], None]) -> None:
        self._handles.append(self.scheduler.call_later(max(0.0, delay), callback))

    def _release(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()

    def _on_deadline(self) -> None:
        if self.state == SessionState.IN_PROGRESS:
            self.submit(SubmitTrigger.TIMER)

    def _after_submit(self, now: datetime) -> None:
        pass

    def _after_abandon(self, now: datetime) -> None:
        pass


class SecureExamSession(QuizSession):
    """Timed exam over the whole pool with violation monitoring."""

    kind = "exam"

    def __init__(
        self,
        session_id: str,
        user_id: str,
        quiz: QuizDefinition,
        pool: List[Question],
        *,
        store,
        scheduler: Scheduler,
        clock: Callable[[], datetime] = utcnow,
        exam_minutes: Optional[int] = None,
        violation_threshold: Optional[int] = None,
        grace_seconds: Optional[float] = None,
    ) -> None:
        super().__init__(session_id, user_id, quiz, pool, store=store, scheduler=scheduler, clock=clock)
        self.exam_minutes = exam_minutes or settings.secure_exam_minutes
        self.violation_threshold = violation_threshold or settings.violation_threshold
        self.grace_seconds = settings.violation_grace_seconds if grace_seconds is None else grace_seconds
        self.exam: Optional[ExamRecord] = None
        self.monitor = SecurityMonitor(self.record_violation)
        self.fullscreen_granted = False
        self.flag_notice: Optional[str] = None
        self.release_fullscreen = False

    def start(self, fullscreen_granted: bool = False) -> None:
        if not self.pool:
            raise NoQuestionsAvailable("No questions available for this exam.")
        super().start(SessionConfig(question_count=ALL, timer_enabled=True, timer_minutes=self.exam_minutes))
        try:
            exam_id = self.store.create_exam_session(self.user_id, self.quiz.id, self.started_at)
        except Exception as exc:
            logger.exception("failed to create exam session for user=%s quiz=%s", self.user_id, self.quiz.id)
            self._release()
            self.state = SessionState.CONFIGURING
            self.questions = []
            self.started_at = None
            self.deadline = None
            raise PersistenceUnavailable("Could not start the exam session.") from exc
        self.exam = ExamRecord(id=exam_id, user_id=self.user_id, quiz_id=self.quiz.id, started_at=self.started_at)
        # A refused fullscreen request is not fatal; exits are only counted once it is held
        self.fullscreen_granted = bool(fullscreen_granted)
        self.monitor.attach(self.fullscreen_granted)

    def retry(self) -> None:
        raise InvalidTransition("Secure exams cannot be retried.")

    def handle_signal(self, signal: Signal) -> SignalResult:
        self.touch()
        self.check_deadline()
        return self.monitor.handle(signal)

    def record_violation(self, kind: ViolationKind) -> Optional[str]:
        if self.state != SessionState.IN_PROGRESS or self.exam is None:
            return None
        exam = self.exam
        if kind == ViolationKind.TAB_SWITCH:
            exam.tab_switches += 1
        else:
            exam.fullscreen_exits += 1
        newly_flagged = False
        if not exam.flagged and exam.violation_count >= self.violation_threshold:
            exam.flagged = True
            exam.flag_reason = (
                f"Multiple security violations detected "
                f"({exam.tab_switches} tab switches, {exam.fullscreen_exits} fullscreen exits)"
            )
            newly_flagged = True
        try:
            self.store.update_exam_session(exam)
        except Exception:
            logger.exception("failed to record %s for exam session %s", kind.value, exam.id)
        if newly_flagged:
            logger.warning("exam session %s flagged: %s", exam.id, exam.flag_reason)
            self.flag_notice = (
                "Your exam has been flagged due to multiple security violations. The exam will now end."
            )
            self._schedule(self.grace_seconds, self._on_violation_limit)
            return self.flag_notice
        label = "Tab switch" if kind == ViolationKind.TAB_SWITCH else "Fullscreen exit"
        return f"{label} detected. ({exam.violation_count}/{self.violation_threshold} allowed)"

    def _on_violation_limit(self) -> None:
        if self.state == SessionState.IN_PROGRESS:
            self.submit(SubmitTrigger.VIOLATION)

    def _release(self) -> None:
        super()._release()
        self.monitor.detach()

    def _after_submit(self, now: datetime) -> None:
        self.release_fullscreen = True
        self._close_exam(now)

    def _after_abandon(self, now: datetime) -> None:
        self._close_exam(now)

    def _close_exam(self, now: datetime) -> None:
        if self.exam is None or self.exam.ended_at is not None:
            return
        self.exam.ended_at = now
        try:
            self.store.close_exam_session(self.exam.id, now)
        except Exception:
            logger.exception("failed to close exam session %s", self.exam.id)


class SessionRegistry:
    """In-process sessions keyed by id and scoped to their owner."""

    def __init__(self) -> None:
        self._sessions: Dict[str, QuizSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def add(self, session: QuizSession) -> QuizSession:
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str, user_id: str) -> QuizSession:
        session = self._sessions.get(session_id)
        if session is None or session.user_id != user_id:
            raise SessionNotFound("Session not found")
        session.touch()
        return session

    def remove(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.abandon()

    def active_exam(self, user_id: str, quiz_id: str) -> Optional[SecureExamSession]:
        for session in self._sessions.values():
            if (
                isinstance(session, SecureExamSession)
                and session.user_id == user_id
                and session.quiz.id == quiz_id
                and session.state == SessionState.IN_PROGRESS
            ):
                return session
        return None

    def supersede_exam(self, user_id: str, quiz_id: str) -> Optional[str]:
        previous = self.active_exam(user_id, quiz_id)
        if previous is None:
            return None
        logger.info("exam session %s superseded by a new start", previous.session_id)
        self.remove(previous.session_id)
        return previous.session_id

    def start_exam(self, session: SecureExamSession, fullscreen_granted: bool = False) -> Optional[str]:
        """Start a secure exam, then retire any exam it replaces.

        The prior exam is only superseded once the new one has started, so a
        failed start leaves it running.
        """
        session.start(fullscreen_granted=fullscreen_granted)
        superseded = self.supersede_exam(session.user_id, session.quiz.id)
        self.add(session)
        return superseded

    def prune(self, before: datetime) -> int:
        """Abandon sessions with no activity since the cutoff, whatever their state."""
        stale = [sid for sid, s in self._sessions.items() if s.last_activity_at < before]
        for sid in stale:
            self.remove(sid)
        return len(stale)
