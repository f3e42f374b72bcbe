import os
import tempfile
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import pytest

# Settings are read at import time, so the test environment must be in place first
_DB_DIR = tempfile.mkdtemp(prefix="adaptlearn-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}")
os.environ.setdefault("ADMIN_USERNAME", "admin_user")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("VIOLATION_GRACE_SECONDS", "0.2")
os.environ.pop("COMPLETION_API_KEY", None)
os.environ.pop("OPENROUTER_API_KEY", None)

from adaptlearn.domain import AttemptRecord, ExamRecord, Question, QuizDefinition, RecommendationRecord  # noqa: E402


class ManualClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 5, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class ManualHandle:
    def __init__(self, when: datetime, callback) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Fires callbacks only when the test advances time."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self.handles: List[ManualHandle] = []

    def call_later(self, delay, callback, *args):
        handle = ManualHandle(self.clock.now + timedelta(seconds=delay), lambda: callback(*args))
        self.handles.append(handle)
        return handle

    def pending(self) -> List[ManualHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, seconds: float) -> None:
        target = self.clock.now + timedelta(seconds=seconds)
        while True:
            due = [h for h in self.pending() if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.clock.now = max(self.clock.now, handle.when)
            handle.fired = True
            handle.callback()
        self.clock.now = target


class FakeStore:
    def __init__(self) -> None:
        self.attempts: List[AttemptRecord] = []
        self.recommendations: List[RecommendationRecord] = []
        self.profiles: Dict[str, Tuple[int, str]] = {}
        self.exams: Dict[str, ExamRecord] = {}
        self.closed: Dict[str, datetime] = {}
        self.failing = set()

    def _maybe_fail(self, op: str) -> None:
        if op in self.failing:
            raise RuntimeError(f"{op} failed")

    def record_attempt(self, attempt):
        self._maybe_fail("record_attempt")
        self.attempts.append(attempt)
        return f"attempt-{len(self.attempts)}"

    def get_profile(self, user_id):
        self._maybe_fail("get_profile")
        return self.profiles.get(user_id)

    def update_profile(self, user_id, total_points, level):
        self._maybe_fail("update_profile")
        self.profiles[user_id] = (total_points, level)

    def add_recommendation(self, rec):
        self._maybe_fail("add_recommendation")
        self.recommendations.append(rec)
        return f"rec-{len(self.recommendations)}"

    def create_exam_session(self, user_id, quiz_id, started_at):
        self._maybe_fail("create_exam_session")
        exam_id = f"exam-{len(self.exams) + 1}"
        self.exams[exam_id] = ExamRecord(id=exam_id, user_id=user_id, quiz_id=quiz_id, started_at=started_at)
        return exam_id

    def update_exam_session(self, exam):
        self._maybe_fail("update_exam_session")
        self.exams[exam.id] = exam.model_copy()

    def close_exam_session(self, exam_id, ended_at):
        self._maybe_fail("close_exam_session")
        self.closed[exam_id] = ended_at


def make_questions(n: int, points: int = 10) -> List[Question]:
    return [
        Question(
            id=f"q{i}",
            question=f"Question {i}?",
            options=["a", "b", "c", "d"],
            correct_answer=i % 4,
            explanation=f"Because {i % 4}.",
            points=points,
            order_index=i,
        )
        for i in range(n)
    ]


def answer_correctly(session, count: int) -> None:
    """Answer the first `count` presented questions correctly and the rest wrong."""
    for i, q in enumerate(session.questions):
        choice = q.correct_answer if i < count else (q.correct_answer + 1) % 4
        session.select_answer(q.id, choice)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def store():
    s = FakeStore()
    s.profiles["alice"] = (0, "beginner")
    return s


@pytest.fixture
def quiz():
    return QuizDefinition(id="quiz-1", title="Fractions", lesson_id="lesson-1", course_id="course-1", passing_score=70)
