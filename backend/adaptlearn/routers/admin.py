from __future__ import annotations
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Course, ExamSession, Lesson, Quiz, QuizQuestion
from .auth import User, require_admin

router = APIRouter(prefix="/admin", tags=["admin"])

Difficulty = Literal["beginner", "intermediate", "advanced"]


class CourseCreate(BaseModel):
	title: str = Field(min_length=1, max_length=256)
	description: Optional[str] = None
	difficulty: Difficulty = "beginner"
	category: Optional[str] = None
	is_published: bool = True


class LessonCreate(BaseModel):
	title: str = Field(min_length=1, max_length=256)
	content: Optional[str] = None
	order_index: int = 0
	duration_minutes: int = Field(default=10, ge=1)
	difficulty: Difficulty = "beginner"


class QuestionCreate(BaseModel):
	question: str = Field(min_length=1)
	options: List[str] = Field(min_length=2)
	correct_answer: int = Field(ge=0)
	explanation: Optional[str] = None
	points: int = Field(default=10, ge=0)
	order_index: Optional[int] = None

	@model_validator(mode="after")
	def _answer_in_range(self):
		if self.correct_answer >= len(self.options):
			raise ValueError("correct_answer must index into options")
		return self


class QuizCreate(BaseModel):
	title: str = Field(min_length=1, max_length=256)
	difficulty: Difficulty = "beginner"
	passing_score: int = Field(default=70, ge=0, le=100)
	questions: List[QuestionCreate] = Field(default_factory=list)


@router.post("/courses", status_code=201)
def create_course(req: CourseCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	row = Course(created_by=admin.username, **req.model_dump())
	db.add(row)
	db.commit()
	return {"id": row.id}


@router.post("/courses/{course_id}/lessons", status_code=201)
def create_lesson(course_id: str, req: LessonCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	if db.get(Course, course_id) is None:
		raise HTTPException(status_code=404, detail="Course not found")
	row = Lesson(course_id=course_id, **req.model_dump())
	db.add(row)
	db.commit()
	return {"id": row.id}


@router.post("/lessons/{lesson_id}/quizzes", status_code=201)
def create_quiz(lesson_id: str, req: QuizCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	if db.get(Lesson, lesson_id) is None:
		raise HTTPException(status_code=404, detail="Lesson not found")
	quiz = Quiz(lesson_id=lesson_id, title=req.title, difficulty=req.difficulty, passing_score=req.passing_score)
	db.add(quiz)
	db.flush()
	for i, q in enumerate(req.questions):
		db.add(QuizQuestion(
			quiz_id=quiz.id,
			question=q.question,
			options=q.options,
			correct_answer=q.correct_answer,
			explanation=q.explanation,
			points=q.points,
			order_index=q.order_index if q.order_index is not None else i,
		))
	db.commit()
	return {"id": quiz.id, "questions": len(req.questions)}


@router.get("/exam-sessions")
def list_exam_sessions(flagged: Optional[bool] = None, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	q = db.query(ExamSession)
	if flagged is not None:
		q = q.filter(ExamSession.is_flagged.is_(flagged))
	rows = q.order_by(ExamSession.started_at.desc()).all()
	return [
		{
			"id": s.id,
			"username": s.username,
			"quiz_id": s.quiz_id,
			"started_at": s.started_at.isoformat(),
			"ended_at": s.ended_at.isoformat() if s.ended_at else None,
			"is_active": s.is_active,
			"tab_switches": s.tab_switches,
			"fullscreen_exits": s.fullscreen_exits,
			"is_flagged": s.is_flagged,
			"flag_reason": s.flag_reason,
		}
		for s in rows
	]
