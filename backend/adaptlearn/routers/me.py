from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Profile, QuizAttempt, Recommendation
from .auth import User, get_current_user

router = APIRouter(prefix="/me", tags=["me"])


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	row = db.get(Profile, user.username)
	if row is None:
		raise HTTPException(status_code=404, detail="Profile not found")
	return {
		"username": row.username,
		"full_name": row.full_name,
		"current_level": row.current_level,
		"total_points": row.total_points,
		"role": user.role,
	}


@router.get("/recommendations")
def list_recommendations(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	rows = (
		db.query(Recommendation)
		.filter(Recommendation.username == user.username, Recommendation.is_dismissed.is_(False))
		.order_by(Recommendation.priority.desc(), Recommendation.created_at.desc())
		.all()
	)
	return [
		{
			"id": r.id,
			"lesson_id": r.lesson_id,
			"course_id": r.course_id,
			"reason": r.reason,
			"priority": r.priority,
			"created_at": r.created_at.isoformat(),
		}
		for r in rows
	]


@router.post("/recommendations/{rec_id}/dismiss")
def dismiss_recommendation(rec_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	row = db.get(Recommendation, rec_id)
	# Other users' rows are reported as missing
	if row is None or row.username != user.username:
		raise HTTPException(status_code=404, detail="Recommendation not found")
	row.is_dismissed = True
	db.commit()
	return {"ok": True}


@router.get("/attempts")
def list_attempts(quiz_id: str | None = None, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	q = db.query(QuizAttempt).filter(QuizAttempt.username == user.username)
	if quiz_id:
		q = q.filter(QuizAttempt.quiz_id == quiz_id)
	rows = q.order_by(QuizAttempt.attempted_at.desc()).all()
	return [
		{
			"id": a.id,
			"quiz_id": a.quiz_id,
			"score": a.score,
			"correct_answers": a.correct_answers,
			"total_questions": a.total_questions,
			"time_taken_seconds": a.time_taken_seconds,
			"attempted_at": a.attempted_at.isoformat(),
		}
		for a in rows
	]
