from __future__ import annotations
from datetime import datetime, timedelta
from sqlalchemy import update
from sqlalchemy.orm import Session

from .models import ExamSession
from .settings import settings


def close_stale_exam_sessions(db: Session, now: datetime | None = None) -> int:
	# Exams left active this long were abandoned (closed tab, lost device); no attempt is written for them
	now = now or datetime.utcnow()
	threshold = now - timedelta(hours=settings.stale_exam_hours)
	res = db.execute(
		update(ExamSession)
		.where(ExamSession.is_active.is_(True), ExamSession.started_at < threshold)
		.values(is_active=False, ended_at=now)
	)
	db.commit()
	return res.rowcount or 0
