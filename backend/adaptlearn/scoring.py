from __future__ import annotations
import logging
from typing import Mapping, Optional, Sequence

from pydantic import BaseModel

from .domain import AttemptRecord, Question, QuizDefinition, RecommendationRecord
from .settings import settings


logger = logging.getLogger(__name__)

INTERMEDIATE_POINTS = 500
ADVANCED_POINTS = 1500


class ScoreResult(BaseModel):
    percentage: int
    correct_count: int
    total_questions: int
    total_points: int


class Outcome(BaseModel):
    passed: bool
    attempt_saved: bool = False
    points_awarded: int = 0
    new_points: Optional[int] = None
    new_level: Optional[str] = None
    level_up: Optional[str] = None
    recommendation_created: bool = False


def round_half_up_percent(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return (200 * correct + total) // (2 * total)


def compute_score(questions: Sequence[Question], answers: Mapping[str, int]) -> ScoreResult:
    correct = 0
    points = 0
    for q in questions:
        if answers.get(q.id) == q.correct_answer:
            correct += 1
            points += q.points
    return ScoreResult(
        percentage=round_half_up_percent(correct, len(questions)),
        correct_count=correct,
        total_questions=len(questions),
        total_points=points,
    )


def next_level(current_level: str, new_points: int) -> str:
    # One tier per passing attempt, never downward
    if current_level == "beginner" and new_points >= INTERMEDIATE_POINTS:
        return "intermediate"
    if current_level == "intermediate" and new_points >= ADVANCED_POINTS:
        return "advanced"
    return current_level


def recommendation_reason(percentage: int) -> str:
    return f"Review this lesson - you scored {percentage}% on the quiz"


def apply_outcome(
    store,
    user_id: str,
    quiz: QuizDefinition,
    score: ScoreResult,
    elapsed_seconds: int,
    *,
    priority: Optional[int] = None,
) -> Outcome:
    """Persist an attempt and apply the pass/fail policy.

    Every write is attempted once. Failures are logged and reflected in the
    returned Outcome; the caller's score is never affected.
    """
    passed = score.percentage >= quiz.passing_score
    outcome = Outcome(passed=passed)

    attempt = AttemptRecord(
        user_id=user_id,
        quiz_id=quiz.id,
        score=score.percentage,
        correct_answers=score.correct_count,
        total_questions=score.total_questions,
        time_taken_seconds=max(0, int(elapsed_seconds)),
    )
    try:
        store.record_attempt(attempt)
        outcome.attempt_saved = True
    except Exception:
        logger.exception("failed to save attempt for user=%s quiz=%s", user_id, quiz.id)

    if passed:
        try:
            profile = store.get_profile(user_id)
        except Exception:
            logger.exception("failed to read profile for user=%s", user_id)
            profile = None
        if profile is not None:
            current_points, current_level = profile
            new_points = (current_points or 0) + score.total_points
            level = next_level(current_level, new_points)
            try:
                store.update_profile(user_id, new_points, level)
                outcome.points_awarded = score.total_points
                outcome.new_points = new_points
                outcome.new_level = level
                if level != current_level:
                    outcome.level_up = level
                    logger.info("user=%s advanced to %s", user_id, level)
            except Exception:
                logger.exception("failed to update profile for user=%s", user_id)
    elif quiz.lesson_id:
        rec = RecommendationRecord(
            user_id=user_id,
            lesson_id=quiz.lesson_id,
            course_id=quiz.course_id,
            reason=recommendation_reason(score.percentage),
            priority=settings.recommendation_priority if priority is None else priority,
        )
        try:
            store.add_recommendation(rec)
            outcome.recommendation_created = True
        except Exception:
            logger.exception("failed to save recommendation for user=%s lesson=%s", user_id, quiz.lesson_id)
    return outcome
