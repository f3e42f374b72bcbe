from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


LEVELS: List[str] = ["beginner", "intermediate", "advanced"]

# question id -> chosen option index
AnswerMap = Dict[str, int]


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    question: str
    options: List[str]
    correct_answer: int
    explanation: Optional[str] = None
    points: int = 10
    order_index: int = 0


class QuizDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    lesson_id: Optional[str] = None
    course_id: Optional[str] = None
    difficulty: str = "beginner"
    passing_score: int = Field(default=70, ge=0, le=100)


class SessionState(str, Enum):
    CONFIGURING = "configuring"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


class SubmitTrigger(str, Enum):
    USER = "user"
    TIMER = "timer"
    VIOLATION = "violation"


class ViolationKind(str, Enum):
    TAB_SWITCH = "tab_switch"
    FULLSCREEN_EXIT = "fullscreen_exit"


class AttemptRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    quiz_id: str
    score: int
    correct_answers: int
    total_questions: int
    time_taken_seconds: int


class RecommendationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    lesson_id: str
    course_id: Optional[str] = None
    reason: str
    priority: int


class ExamRecord(BaseModel):
    """Mutable mirror of an exam_sessions row owned by one secure exam."""

    id: str
    user_id: str
    quiz_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    tab_switches: int = 0
    fullscreen_exits: int = 0
    flagged: bool = False
    flag_reason: Optional[str] = None

    @property
    def violation_count(self) -> int:
        return self.tab_switches + self.fullscreen_exits
