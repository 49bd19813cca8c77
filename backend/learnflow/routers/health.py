from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from sqlalchemy import text

from ..db import engine
from ..settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
	db_ok = True
	try:
		with engine.connect() as conn:
			conn.execute(text("SELECT 1"))
	except Exception as e:
		logger.warning("Database health check failed: %s", e)
		db_ok = False
	return {
		"status": "ok",
		"database": db_ok,
		"gemini_configured": bool(settings.gemini_api_key),
		"openrouter_configured": bool(settings.openrouter_api_key),
		"ready": getattr(request.app.state, "context", None) is not None,
	}
