import asyncio
import logging

from fastapi import FastAPI

from .db import Base, SessionLocal, engine, ensure_schema
from .cleanup import purge_expired_tts_cache
from .email_service import SmtpMailer
from .flows import FlowContext
from .gemini_client import GeminiClient
from .repositories import (
	CampaignRepository,
	SqlQuestionRepository,
	SqlSettingsRepository,
	SqlTtsCacheRepository,
	SqlUserRepository,
	TodoRepository,
)
from .settings import settings
from .routers import admin, auth, exam, health, learning

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="LearnFlow API")
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(exam.router)
app.include_router(learning.router)
app.include_router(admin.router)


def build_context(session_factory=SessionLocal) -> FlowContext:
	settings_repo = SqlSettingsRepository(session_factory)
	return FlowContext(
		questions=SqlQuestionRepository(session_factory),
		users=SqlUserRepository(session_factory),
		app_settings=settings_repo,
		tts_cache=SqlTtsCacheRepository(session_factory),
		mailer=SmtpMailer(settings_repo),
		ai_factory=GeminiClient,
		todos=TodoRepository(session_factory),
		campaigns=CampaignRepository(session_factory),
	)


async def _cleanup_watcher(ctx: FlowContext):
	# Daily; the first purge runs at startup
	while True:
		await asyncio.sleep(24 * 60 * 60)
		try:
			removed = purge_expired_tts_cache(ctx.tts_cache)
			logger.info("Purged %d expired voice lesson cache entries", removed)
		except Exception:
			logger.exception("Voice lesson cache cleanup failed")


async def _session_watcher():
	while True:
		await asyncio.sleep(60)
		exam.sessions.evict_idle()
		learning.sessions.evict_idle()


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Apply lightweight dev migrations
	try:
		ensure_schema()
	except Exception:
		logger.exception("Schema migration failed")
	ctx = build_context()
	app.state.context = ctx
	auth.seed_admin(ctx)
	try:
		purge_expired_tts_cache(ctx.tts_cache)
	except Exception:
		logger.exception("Voice lesson cache cleanup failed")
	if not settings.gemini_api_key:
		logger.warning("GEMINI_API_KEY is not set; grading and voice lessons will fail")
	app.state.cleanup_task = asyncio.create_task(_cleanup_watcher(ctx))
	app.state.session_task = asyncio.create_task(_session_watcher())


@app.on_event("shutdown")
async def shutdown_event():
	for name in ("cleanup_task", "session_task"):
		task = getattr(app.state, name, None)
		if task is not None:
			task.cancel()
