from __future__ import annotations

import logging
import time
import uuid
from typing import Callable, Dict, Generic, Literal, Optional, Tuple, TypeVar

from fastapi import HTTPException
from pydantic import BaseModel

from ..errors import AudioUnavailableError, LearnFlowError, SessionError
from ..schemas import User
from ..session import SpeechCaptureAdapter
from ..transcription import TranscriptionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SpeechEvent(BaseModel):
	"""A recognition lifecycle event forwarded by the browser."""

	type: Literal["result", "error", "end"]
	transcript: Optional[str] = None
	error: Optional[str] = None
	is_final: bool = True


def relay_speech_event(capture: SpeechCaptureAdapter, event: SpeechEvent) -> None:
	if event.type == "result":
		capture.handle_result(event.transcript or "", is_final=event.is_final)
	elif event.type == "error":
		capture.handle_error(event.error or "unknown")
	else:
		capture.handle_end()


class SessionStore(Generic[T]):
	"""In-memory sessions, each bound to the user who created it.

	A browser that navigates away never deletes its session, so sessions idle
	for longer than ``idle_timeout`` seconds are closed and dropped whenever a
	new session is created or ``evict_idle`` runs.
	"""

	def __init__(
		self,
		close: Callable[[T], None],
		*,
		idle_timeout: float,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self._close = close
		self.idle_timeout = idle_timeout
		self._clock = clock
		self._entries: Dict[str, Tuple[str, T]] = {}
		self._touched: Dict[str, float] = {}

	def __len__(self) -> int:
		return len(self._entries)

	def __contains__(self, session_id: str) -> bool:
		return session_id in self._entries

	def add(self, user: User, entry: T) -> str:
		self.evict_idle()
		session_id = uuid.uuid4().hex
		self._entries[session_id] = (user.id, entry)
		self._touched[session_id] = self._clock()
		return session_id

	def get(self, session_id: str, user: User) -> T:
		item = self._entries.get(session_id)
		if item is None or item[0] != user.id:
			raise HTTPException(status_code=404, detail="Session not found")
		self._touched[session_id] = self._clock()
		return item[1]

	def discard(self, session_id: str, user: User) -> None:
		entry = self.get(session_id, user)
		self._drop(session_id)
		self._close(entry)

	def evict_idle(self) -> int:
		cutoff = self._clock() - self.idle_timeout
		stale = [sid for sid, touched in self._touched.items() if touched < cutoff]
		for sid in stale:
			entry = self._drop(sid)
			try:
				self._close(entry)
			except Exception:
				logger.exception("Error closing idle session %s", sid)
		if stale:
			logger.info("Evicted %d idle sessions", len(stale))
		return len(stale)

	def _drop(self, session_id: str) -> T:
		self._touched.pop(session_id, None)
		return self._entries.pop(session_id)[1]


def to_http_error(e: LearnFlowError) -> HTTPException:
	if isinstance(e, AudioUnavailableError):
		return HTTPException(status_code=502, detail=str(e))
	if isinstance(e, TranscriptionError):
		return HTTPException(status_code=400, detail=str(e))
	if isinstance(e, SessionError):
		return HTTPException(status_code=409, detail=str(e))
	logger.error("Unhandled session error: %s", e)
	return HTTPException(status_code=500, detail=str(e))
