from datetime import datetime, timedelta
import asyncio
import logging

from fastapi import FastAPI

from .db import Base, engine, get_db, ensure_schema
from .cleanup import close_stale_exam_sessions
from .settings import settings
from .routers import health
from .routers import auth
from .routers import quizzes
from .routers import exams
from .routers import tutor
from .routers import me
from .routers import admin

logger = logging.getLogger(__name__)

_watcher_task = None

app = FastAPI(title="AdaptLearn Quiz API")
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(quizzes.router)
app.include_router(exams.router)
app.include_router(tutor.router)
app.include_router(me.router)
app.include_router(admin.router)


@app.get("/info")
def root():
	return {
		"status": "ok",
		"tutor_configured": bool(settings.completion_api_key),
		"active_sessions": len(quizzes.registry),
	}


def _housekeeping() -> None:
	db = next(get_db())
	try:
		closed = close_stale_exam_sessions(db)
	finally:
		db.close()
	pruned = quizzes.registry.prune(datetime.utcnow() - timedelta(hours=settings.stale_exam_hours))
	if closed or pruned:
		logger.info("housekeeping closed %d stale exam sessions, pruned %d in-memory sessions", closed, pruned)


async def _cleanup_watcher():
	while True:
		await asyncio.sleep(60 * 60)
		try:
			_housekeeping()
		except Exception:
			logger.exception("housekeeping failed")


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Apply lightweight dev migrations
	try:
		ensure_schema()
	except Exception:
		logger.exception("schema migration failed")
	db = next(get_db())
	try:
		auth.ensure_seed_user(db)
	finally:
		db.close()
	try:
		_housekeeping()
	except Exception:
		logger.exception("housekeeping failed")
	# Start periodic cleanup loop
	global _watcher_task
	_watcher_task = asyncio.create_task(_cleanup_watcher())


@app.on_event("shutdown")
async def shutdown_event():
	if _watcher_task is not None:
		_watcher_task.cancel()
