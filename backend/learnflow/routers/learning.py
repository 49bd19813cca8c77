"""
Voice-first learning sessions.

The server drives the ``AudioLessonPlayer``; instead of playing audio itself
it returns a ``playlist`` with every response: clip entries (WAV data URIs),
pauses and stops, in the order the browser must play them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..deps import get_context
from ..errors import LearnFlowError
from ..flows import FlowContext, generate_voice_lessons
from ..schemas import User
from ..session import AudioLessonPlayer, LearningSessionController, PlaylistOutput, RelayRecognizer, SpeechCaptureAdapter
from ..settings import settings
from .auth import get_current_user
from .common import SessionStore, SpeechEvent, relay_speech_event, to_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/learning", tags=["learning"])


@dataclass
class _LearningEntry:
	controller: LearningSessionController
	playlist: PlaylistOutput
	capture: SpeechCaptureAdapter


def _close_entry(entry: _LearningEntry) -> None:
	entry.controller.close()


sessions: SessionStore[_LearningEntry] = SessionStore(_close_entry, idle_timeout=settings.session_idle_minutes * 60)


class StartRequest(BaseModel):
	category: str
	autoplay: bool = True


class PlayRequest(BaseModel):
	kind: Literal["question", "answer"]


def _state(session_id: str, entry: _LearningEntry, **extra: Any) -> Dict[str, Any]:
	out = entry.controller.snapshot()
	out["session_id"] = session_id
	out["playlist"] = entry.playlist.drain()
	out.update(extra)
	return out


def _entry(session_id: str, user: User) -> _LearningEntry:
	return sessions.get(session_id, user)


@router.get("/categories")
async def categories(user: User = Depends(get_current_user), ctx: FlowContext = Depends(get_context)):
	return {"categories": ctx.questions.categories()}


@router.post("/sessions")
async def start(req: StartRequest, user: User = Depends(get_current_user), ctx: FlowContext = Depends(get_context)):
	playlist = PlaylistOutput()
	player = AudioLessonPlayer(
		generate_voice_lessons.bind(ctx),
		playlist,
		pause_seconds=settings.sequence_pause_seconds,
		# The pause is played by the browser
		sleep=playlist.pause,
	)
	capture = SpeechCaptureAdapter(
		RelayRecognizer(),
		restart_delay=settings.recognition_restart_delay,
		clear_delay=settings.transcript_clear_delay,
	)
	controller = LearningSessionController(ctx.questions.list_all(), player, capture=capture, autoplay=req.autoplay)
	try:
		controller.select_category(req.category)
	except LearnFlowError as e:
		controller.close()
		raise to_http_error(e)
	entry = _LearningEntry(controller=controller, playlist=playlist, capture=capture)
	session_id = sessions.add(user, entry)
	return _state(session_id, entry)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, user: User = Depends(get_current_user)):
	return _state(session_id, _entry(session_id, user))


async def _command(session_id: str, user: User, name: str) -> Dict[str, Any]:
	entry = _entry(session_id, user)
	try:
		accepted = await getattr(entry.controller, name)()
	except LearnFlowError as e:
		raise to_http_error(e)
	return _state(session_id, entry, accepted=accepted)


@router.post("/sessions/{session_id}/next")
async def next_lesson(session_id: str, user: User = Depends(get_current_user)):
	return await _command(session_id, user, "next")


@router.post("/sessions/{session_id}/previous")
async def previous_lesson(session_id: str, user: User = Depends(get_current_user)):
	return await _command(session_id, user, "previous")


@router.post("/sessions/{session_id}/repeat")
async def repeat_lesson(session_id: str, user: User = Depends(get_current_user)):
	return await _command(session_id, user, "repeat")


@router.post("/sessions/{session_id}/play")
async def play_clip(session_id: str, req: PlayRequest, user: User = Depends(get_current_user)):
	entry = _entry(session_id, user)
	try:
		accepted = await entry.controller.play(req.kind)
	except LearnFlowError as e:
		raise to_http_error(e)
	return _state(session_id, entry, accepted=accepted)


@router.post("/sessions/{session_id}/answer/toggle")
async def toggle_answer(session_id: str, user: User = Depends(get_current_user)):
	entry = _entry(session_id, user)
	try:
		entry.controller.toggle_answer()
	except LearnFlowError as e:
		raise to_http_error(e)
	return _state(session_id, entry)


@router.post("/sessions/{session_id}/stop")
async def stop_audio(session_id: str, user: User = Depends(get_current_user)):
	entry = _entry(session_id, user)
	entry.controller.stop()
	return _state(session_id, entry)


@router.post("/sessions/{session_id}/listen/start")
async def start_listening(session_id: str, user: User = Depends(get_current_user)):
	entry = _entry(session_id, user)
	entry.capture.start_listening()
	return _state(session_id, entry)


@router.post("/sessions/{session_id}/listen/stop")
async def stop_listening(session_id: str, user: User = Depends(get_current_user)):
	entry = _entry(session_id, user)
	entry.capture.stop_listening()
	return _state(session_id, entry)


@router.post("/sessions/{session_id}/speech")
async def relay_speech(session_id: str, event: SpeechEvent, user: User = Depends(get_current_user)):
	entry = _entry(session_id, user)
	relay_speech_event(entry.capture, event)
	await entry.controller.wait_for_voice_commands()
	return _state(session_id, entry)


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, user: User = Depends(get_current_user)):
	sessions.discard(session_id, user)
