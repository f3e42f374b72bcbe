from __future__ import annotations
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from .db import SessionLocal
from .domain import AttemptRecord, ExamRecord, Question, QuizDefinition, RecommendationRecord
from .models import ExamSession, Lesson, Profile, Quiz, QuizAttempt, QuizQuestion, Recommendation
from .session_config import normalize_options


logger = logging.getLogger(__name__)


class SqlQuizStore:
	"""Persistence for the quiz flow.

	Each call opens its own short-lived session, so the store can be used from
	timer callbacks that run outside any request.
	"""

	def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
		self._session_factory = session_factory

	def _session(self) -> Session:
		return self._session_factory()

	# -- reads -----------------------------------------------------------

	def get_quiz(self, quiz_id: str) -> Optional[QuizDefinition]:
		with self._session() as db:
			quiz = db.get(Quiz, quiz_id)
			if quiz is None:
				return None
			lesson = db.get(Lesson, quiz.lesson_id) if quiz.lesson_id else None
			return QuizDefinition(
				id=quiz.id,
				title=quiz.title,
				lesson_id=lesson.id if lesson else None,
				course_id=lesson.course_id if lesson else None,
				difficulty=quiz.difficulty or "beginner",
				passing_score=quiz.passing_score if quiz.passing_score is not None else 70,
			)

	def get_questions(self, quiz_id: str) -> List[Question]:
		with self._session() as db:
			rows = db.execute(
				select(QuizQuestion).where(QuizQuestion.quiz_id == quiz_id).order_by(QuizQuestion.order_index)
			).scalars().all()
			return [
				Question(
					id=row.id,
					question=row.question,
					options=normalize_options(row.options),
					correct_answer=row.correct_answer,
					explanation=row.explanation,
					points=row.points or 10,
					order_index=row.order_index or 0,
				)
				for row in rows
			]

	def get_profile(self, user_id: str) -> Optional[Tuple[int, str]]:
		with self._session() as db:
			row = db.get(Profile, user_id)
			if row is None:
				return None
			return (row.total_points or 0, row.current_level or "beginner")

	# -- writes ----------------------------------------------------------

	def record_attempt(self, attempt: AttemptRecord) -> str:
		with self._session() as db:
			row = QuizAttempt(
				username=attempt.user_id,
				quiz_id=attempt.quiz_id,
				score=attempt.score,
				total_questions=attempt.total_questions,
				correct_answers=attempt.correct_answers,
				time_taken_seconds=attempt.time_taken_seconds,
			)
			db.add(row)
			db.commit()
			return row.id

	def update_profile(self, user_id: str, total_points: int, level: str) -> None:
		with self._session() as db:
			db.execute(
				update(Profile)
				.where(Profile.username == user_id)
				.values(total_points=total_points, current_level=level, updated_at=datetime.utcnow())
			)
			db.commit()

	def add_recommendation(self, rec: RecommendationRecord) -> str:
		with self._session() as db:
			row = Recommendation(
				username=rec.user_id,
				lesson_id=rec.lesson_id,
				course_id=rec.course_id,
				reason=rec.reason,
				priority=rec.priority,
			)
			db.add(row)
			db.commit()
			return row.id

	def create_exam_session(self, user_id: str, quiz_id: str, started_at: datetime) -> str:
		with self._session() as db:
			row = ExamSession(username=user_id, quiz_id=quiz_id, started_at=started_at)
			db.add(row)
			db.commit()
			return row.id

	def update_exam_session(self, exam: ExamRecord) -> None:
		# Single writer per exam session, so the in-memory counters are authoritative
		with self._session() as db:
			db.execute(
				update(ExamSession)
				.where(ExamSession.id == exam.id)
				.values(
					tab_switches=exam.tab_switches,
					fullscreen_exits=exam.fullscreen_exits,
					is_flagged=exam.flagged,
					flag_reason=exam.flag_reason,
				)
			)
			db.commit()

	def close_exam_session(self, exam_id: str, ended_at: datetime) -> None:
		with self._session() as db:
			db.execute(
				update(ExamSession)
				.where(ExamSession.id == exam_id)
				.values(ended_at=ended_at, is_active=False)
			)
			db.commit()
