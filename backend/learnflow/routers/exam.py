"""
Exam Module
===========

Runs exam and learning-mode exam sessions for signed-in users. Each session
wraps an ``ExamSession`` state machine together with relay speech adapters:
the browser forwards recognition events (dictated answers) and plays back the
feedback utterances returned in each response under ``speech``.

API Endpoints:
- POST   /exam/sessions: create a session and list categories
- GET    /exam/sessions/{id}: current state
- POST   /exam/sessions/{id}/category: pick a category (samples the questions)
- POST   /exam/sessions/{id}/mode: start in "learning" or "exam" mode
- POST   /exam/sessions/{id}/answer: submit a typed answer or the dictated draft
- POST   /exam/sessions/{id}/answer/audio: submit a recorded answer
- POST   /exam/sessions/{id}/listen/{start|stop}: dictation on/off
- POST   /exam/sessions/{id}/speech: relay a recognition event
- POST   /exam/sessions/{id}/next: advance after feedback
- POST   /exam/sessions/{id}/reset: back to category selection
- DELETE /exam/sessions/{id}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..deps import get_context
from ..errors import LearnFlowError
from ..flows import FlowContext, adaptive_learning_feedback, ai_proctoring_exam
from ..schemas import User
from ..session import (
	ExamMode,
	ExamSession,
	OutboxSynthesizer,
	RelayRecognizer,
	SpeechCaptureAdapter,
	SpeechPlaybackAdapter,
)
from ..settings import settings
from ..transcription import transcribe_audio
from .auth import get_current_user
from .common import SessionStore, SpeechEvent, relay_speech_event, to_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exam", tags=["exam"])


@dataclass
class _ExamEntry:
	session: ExamSession
	capture: SpeechCaptureAdapter
	recognizer: RelayRecognizer
	synthesizer: OutboxSynthesizer


def _close_entry(entry: _ExamEntry) -> None:
	entry.session.close()
	entry.capture.close()


sessions: SessionStore[_ExamEntry] = SessionStore(_close_entry, idle_timeout=settings.session_idle_minutes * 60)


# ============================================================================
# REQUEST MODELS
# ============================================================================

class CategoryRequest(BaseModel):
	category: str


class ModeRequest(BaseModel):
	mode: ExamMode


class AnswerRequest(BaseModel):
	# Omitted answer submits the dictated draft
	answer: Optional[str] = None


class AudioAnswerRequest(BaseModel):
	audio_base64: str
	language_code: str = Field(default="en-US")


# ============================================================================
# HELPERS
# ============================================================================

def _state(session_id: str, entry: _ExamEntry) -> Dict[str, Any]:
	out = entry.session.snapshot()
	out["session_id"] = session_id
	out["listening"] = entry.capture.listening
	out["recognition"] = {"active": entry.recognizer.active, "lang": entry.capture.options.lang}
	out["speech"] = entry.synthesizer.drain()
	return out


def _entry(session_id: str, user: User) -> _ExamEntry:
	return sessions.get(session_id, user)


async def _submit(session_id: str, entry: _ExamEntry, answer: Optional[str]) -> Dict[str, Any]:
	attempt = await entry.session.submit_answer(answer)
	await entry.session.wait_for_announcements()
	out = _state(session_id, entry)
	out["graded"] = attempt is not None
	return out


# ============================================================================
# API ENDPOINTS
# ============================================================================

@router.post("/sessions")
async def create_session(user: User = Depends(get_current_user), ctx: FlowContext = Depends(get_context)):
	recognizer = RelayRecognizer()
	synthesizer = OutboxSynthesizer()
	capture = SpeechCaptureAdapter(
		recognizer,
		restart_delay=settings.recognition_restart_delay,
		clear_delay=settings.transcript_clear_delay,
	)
	session = ExamSession(
		ctx.questions.list_all(),
		grade_learning=adaptive_learning_feedback.bind(ctx),
		grade_exam=ai_proctoring_exam.bind(ctx),
		playback=SpeechPlaybackAdapter(synthesizer),
		capture=capture,
		question_count=settings.exam_question_count,
	)
	entry = _ExamEntry(session=session, capture=capture, recognizer=recognizer, synthesizer=synthesizer)
	session_id = sessions.add(user, entry)
	logger.info("Exam session %s created for user %s", session_id, user.id)
	return _state(session_id, entry)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, user: User = Depends(get_current_user)):
	return _state(session_id, _entry(session_id, user))


@router.post("/sessions/{session_id}/category")
async def select_category(session_id: str, req: CategoryRequest, user: User = Depends(get_current_user)):
	entry = _entry(session_id, user)
	try:
		entry.session.select_category(req.category)
	except LearnFlowError as e:
		raise to_http_error(e)
	return _state(session_id, entry)


@router.post("/sessions/{session_id}/mode")
async def start_mode(session_id: str, req: ModeRequest, user: User = Depends(get_current_user)):
	entry = _entry(session_id, user)
	try:
		entry.session.start_exam(req.mode)
	except LearnFlowError as e:
		raise to_http_error(e)
	return _state(session_id, entry)


@router.post("/sessions/{session_id}/answer")
async def submit_answer(session_id: str, req: AnswerRequest, user: User = Depends(get_current_user)):
	entry = _entry(session_id, user)
	return await _submit(session_id, entry, req.answer)


@router.post("/sessions/{session_id}/answer/audio")
async def submit_audio_answer(session_id: str, req: AudioAnswerRequest, user: User = Depends(get_current_user)):
	entry = _entry(session_id, user)
	try:
		text = await transcribe_audio(req.audio_base64, language_code=req.language_code)
	except LearnFlowError as e:
		raise to_http_error(e)
	if not text.strip():
		raise HTTPException(status_code=400, detail="No speech detected in the recording")
	out = await _submit(session_id, entry, text)
	out["transcript"] = text
	return out


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
	return _state(session_id, entry)


@router.post("/sessions/{session_id}/next")
async def next_question(session_id: str, user: User = Depends(get_current_user)):
	entry = _entry(session_id, user)
	try:
		entry.session.advance_to_next()
	except LearnFlowError as e:
		raise to_http_error(e)
	return _state(session_id, entry)


@router.post("/sessions/{session_id}/reset")
async def reset_session(session_id: str, user: User = Depends(get_current_user)):
	entry = _entry(session_id, user)
	entry.session.reset_session()
	return _state(session_id, entry)


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, user: User = Depends(get_current_user)):
	sessions.discard(session_id, user)
