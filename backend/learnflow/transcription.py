from __future__ import annotations

import asyncio
import base64
import binascii
import logging

from google.cloud import speech_v1p1beta1 as speech
from google.api_core.exceptions import GoogleAPIError

from .errors import LearnFlowError

logger = logging.getLogger(__name__)


class TranscriptionError(LearnFlowError):
	pass


def _recognize(audio_content: bytes, language_code: str) -> str:
	try:
		client = speech.SpeechClient()
	except Exception as e:
		raise TranscriptionError(f"Speech-to-Text unavailable: {e}") from e
	audio = speech.RecognitionAudio(content=audio_content)
	config = speech.RecognitionConfig(
		language_code=language_code,
		model="default",
		enable_automatic_punctuation=True,
		profanity_filter=True,
	)
	try:
		response = client.recognize(config=config, audio=audio)
	except GoogleAPIError as e:
		raise TranscriptionError(f"Speech-to-Text API error: {e}") from e
	parts = [r.alternatives[0].transcript for r in response.results if r.alternatives]
	return " ".join(p.strip() for p in parts if p and p.strip())


async def transcribe_audio(audio_base64: str, *, language_code: str = "en-US") -> str:
	"""Transcribe a base64 recording of a spoken answer."""
	try:
		audio_content = base64.b64decode(audio_base64, validate=True)
	except (binascii.Error, ValueError) as e:
		raise TranscriptionError("Audio payload is not valid base64.") from e
	if not audio_content:
		raise TranscriptionError("Empty audio payload received.")
	text = await asyncio.to_thread(_recognize, audio_content, language_code)
	logger.debug("Transcribed %d bytes of audio into %d characters", len(audio_content), len(text))
	return text
