from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text
from .db import Base


def _new_id() -> str:
	return uuid.uuid4().hex


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	# "student" or "admin"
	role = Column(String(16), default="student", nullable=False)
	requests_used = Column(Integer, default=0, nullable=False)
	requests_limit = Column(Integer, default=1000, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# JWT id (jti)
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Profile(Base):
	__tablename__ = "profiles"
	username = Column(String(128), primary_key=True)
	full_name = Column(String(256), nullable=True)
	current_level = Column(String(16), default="beginner", nullable=False)
	total_points = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Course(Base):
	__tablename__ = "courses"
	id = Column(String(32), primary_key=True, default=_new_id)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	difficulty = Column(String(16), default="beginner", nullable=False)
	category = Column(String(128), nullable=True)
	is_published = Column(Boolean, default=False, nullable=False)
	created_by = Column(String(128), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Lesson(Base):
	__tablename__ = "lessons"
	id = Column(String(32), primary_key=True, default=_new_id)
	course_id = Column(String(32), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
	title = Column(String(256), nullable=False)
	content = Column(Text, nullable=True)
	order_index = Column(Integer, default=0, nullable=False)
	duration_minutes = Column(Integer, default=10, nullable=False)
	difficulty = Column(String(16), default="beginner", nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Quiz(Base):
	__tablename__ = "quizzes"
	id = Column(String(32), primary_key=True, default=_new_id)
	lesson_id = Column(String(32), ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
	title = Column(String(256), nullable=False)
	difficulty = Column(String(16), default="beginner", nullable=False)
	passing_score = Column(Integer, default=70, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class QuizQuestion(Base):
	__tablename__ = "quiz_questions"
	id = Column(String(32), primary_key=True, default=_new_id)
	quiz_id = Column(String(32), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
	question = Column(Text, nullable=False)
	# Stored as loosely typed JSON; normalized when loaded
	options = Column(JSON, nullable=False)
	correct_answer = Column(Integer, nullable=False)
	explanation = Column(Text, nullable=True)
	points = Column(Integer, default=10, nullable=True)
	order_index = Column(Integer, default=0, nullable=True)


class QuizAttempt(Base):
	__tablename__ = "quiz_attempts"
	id = Column(String(32), primary_key=True, default=_new_id)
	username = Column(String(128), nullable=False, index=True)
	quiz_id = Column(String(32), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
	score = Column(Integer, nullable=False)
	total_questions = Column(Integer, nullable=False)
	correct_answers = Column(Integer, nullable=False)
	time_taken_seconds = Column(Integer, nullable=True)
	attempted_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Recommendation(Base):
	__tablename__ = "recommendations"
	id = Column(String(32), primary_key=True, default=_new_id)
	username = Column(String(128), nullable=False, index=True)
	course_id = Column(String(32), nullable=True)
	lesson_id = Column(String(32), nullable=True)
	reason = Column(Text, nullable=True)
	priority = Column(Integer, default=0, nullable=False)
	is_dismissed = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ExamSession(Base):
	__tablename__ = "exam_sessions"
	id = Column(String(32), primary_key=True, default=_new_id)
	username = Column(String(128), nullable=False, index=True)
	quiz_id = Column(String(32), nullable=False, index=True)
	started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	ended_at = Column(DateTime, nullable=True)
	is_active = Column(Boolean, default=True, nullable=False)
	tab_switches = Column(Integer, default=0, nullable=False)
	fullscreen_exits = Column(Integer, default=0, nullable=False)
	is_flagged = Column(Boolean, default=False, nullable=False)
	flag_reason = Column(Text, nullable=True)
