from __future__ import annotations

from fastapi import HTTPException, Request

from .flows import FlowContext


def get_context(request: Request) -> FlowContext:
	ctx = getattr(request.app.state, "context", None)
	if ctx is None:
		raise HTTPException(status_code=503, detail="Service is still starting up")
	return ctx
