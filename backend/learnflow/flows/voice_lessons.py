from __future__ import annotations

import base64
import hashlib
import io
import logging
import wave
from datetime import timedelta
from typing import Optional

from pydantic import Field

from ..errors import FlowError
from ..schemas import CamelModel, VoiceLesson
from ..settings import settings
from .base import FlowContext, define_flow

logger = logging.getLogger(__name__)


class GenerateVoiceLessonsInput(CamelModel):
	question: str = Field(description="The question to be answered.")
	answer: str = Field(description="The answer to the question.")


def cache_id_for(question: str, answer: str) -> str:
	return hashlib.sha256((question + "\x1f" + answer).encode("utf-8")).hexdigest()


def pcm_to_wav_data_uri(pcm: bytes, *, rate: int = 24000, channels: int = 1, sample_width: int = 2) -> str:
	buf = io.BytesIO()
	with wave.open(buf, "wb") as w:
		w.setnchannels(channels)
		w.setsampwidth(sample_width)
		w.setframerate(rate)
		w.writeframes(pcm)
	return "data:audio/wav;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


async def _synthesize_with_retry(text: str, ctx: FlowContext) -> str:
	attempts = max(1, settings.tts_attempts)
	last_error: Optional[Exception] = None
	for attempt in range(1, attempts + 1):
		client = ctx.ai_factory()
		try:
			pcm, rate = await client.synthesize_speech(text)
			if not pcm:
				raise RuntimeError("No media returned from TTS API")
			return pcm_to_wav_data_uri(pcm, rate=rate)
		except Exception as e:
			last_error = e
			logger.warning("TTS generation attempt %d failed: %s", attempt, e)
		finally:
			await client.aclose()
		if attempt < attempts:
			await ctx.sleep(settings.tts_retry_delay)
	raise FlowError(f"Failed to generate voice lessons: {last_error}")


@define_flow("generateVoiceLessons", input_model=GenerateVoiceLessonsInput, output_model=VoiceLesson)
async def generate_voice_lessons(inp: GenerateVoiceLessonsInput, ctx: FlowContext) -> VoiceLesson:
	cache_id = cache_id_for(inp.question, inp.answer)
	max_age = timedelta(days=settings.tts_cache_max_age_days)
	cached = ctx.tts_cache.get(cache_id, max_age=max_age)
	if cached is not None:
		return cached

	question_audio = await _synthesize_with_retry(inp.question, ctx)
	answer_audio = await _synthesize_with_retry(f"The answer is, {inp.answer}", ctx)
	lesson = VoiceLesson(question_audio=question_audio, answer_audio=answer_audio)
	try:
		ctx.tts_cache.put(cache_id, lesson)
	except Exception:
		# A cache write failure still returns freshly synthesized audio
		logger.exception("Failed to store voice lesson %s in cache", cache_id)
	return lesson
