"""
Audio Lesson Player
===================

Plays the synthesized question/answer clips of the lesson currently on
screen. Clips come from the ``generateVoiceLessons`` flow, which returns both
clips of a question in one call; the player caches them per question id for
the lifetime of the lesson session (entries are never invalidated, so an edit
to a question's text mid-session is not picked up).

Guards:
- ``loading`` is set while a clip fetch is in flight; other ``play_audio``
  calls are ignored until it clears, so one question never triggers two
  synthesis calls and clips never overlap.
- ``sequence_in_progress`` makes ``play_sequence`` non re-entrant.
- every ``switch_question``/``stop`` bumps a generation counter and stops the
  output; a fetch or sequence step that resumes under an older generation
  does not play.
- each clip gets its own play token, so a clip that was cut off by a newer one
  never clears ``playing`` for the newer clip.
"""

from __future__ import annotations

import asyncio
import logging
from types import MappingProxyType
from typing import Awaitable, Callable, Dict, Literal, Mapping, Optional, Protocol

from ..errors import AudioUnavailableError, SessionError
from ..flows.voice_lessons import GenerateVoiceLessonsInput
from ..schemas import Question, VoiceLesson

logger = logging.getLogger(__name__)

ClipKind = Literal["question", "answer"]
CLIP_KINDS = ("question", "answer")

VoiceLessonFetcher = Callable[[GenerateVoiceLessonsInput], Awaitable[VoiceLesson]]


class AudioOutput(Protocol):
	async def play(self, source: str, kind: str) -> None:
		"""Play ``source``; return once playback has ended or been stopped."""
		...

	def stop(self) -> None: ...


class AudioLessonPlayer:
	def __init__(
		self,
		fetch_lesson: VoiceLessonFetcher,
		output: AudioOutput,
		*,
		pause_seconds: float = 1.0,
		sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
	) -> None:
		self._fetch_lesson = fetch_lesson
		self.output = output
		self.pause_seconds = pause_seconds
		self._sleep = sleep
		self.question: Optional[Question] = None
		self.show_answer = False
		self.loading: Optional[ClipKind] = None
		self.playing: Optional[ClipKind] = None
		self.sequence_in_progress = False
		self._cache: Dict[str, VoiceLesson] = {}
		self._generation = 0
		self._play_token = 0

	@property
	def cache(self) -> Mapping[str, VoiceLesson]:
		return MappingProxyType(self._cache)

	def switch_question(self, question: Optional[Question]) -> None:
		self._invalidate()
		self.question = question
		self.show_answer = False

	def stop(self) -> None:
		self._invalidate()

	async def play_audio(self, kind: ClipKind) -> bool:
		"""Play one clip of the current question.

		Returns ``False`` when the call was ignored (a fetch is already in
		flight) or the question changed before playback finished.
		"""
		if kind not in CLIP_KINDS:
			raise ValueError(f"unknown clip kind: {kind!r}")
		question = self.question
		if question is None:
			raise SessionError("No lesson is selected.")
		if self.loading is not None:
			logger.debug("Ignoring %s playback while %s audio is loading", kind, self.loading)
			return False

		generation = self._generation
		lesson = self._cache.get(question.id)
		if lesson is None:
			self.loading = kind
			try:
				lesson = await self._fetch_lesson(
					GenerateVoiceLessonsInput(question=question.question, answer=question.answer)
				)
			except Exception as e:
				logger.error("Error generating audio for question %s: %s", question.id, e)
				raise AudioUnavailableError(f"Could not generate audio for question {question.id}: {e}") from e
			finally:
				if generation == self._generation:
					self.loading = None
			self._cache[question.id] = lesson

		if generation != self._generation:
			return False
		source = lesson.question_audio if kind == "question" else lesson.answer_audio
		if not source:
			raise AudioUnavailableError(f"No {kind} audio is available for question {question.id}.")

		if self.playing is not None:
			self.output.stop()
		self._play_token += 1
		token = self._play_token
		self.playing = kind
		try:
			await self.output.play(source, kind)
		finally:
			if token == self._play_token:
				self.playing = None
		return generation == self._generation and token == self._play_token

	async def play_sequence(self) -> bool:
		"""Question clip, reveal the answer, a fixed pause, then the answer clip."""
		if self.sequence_in_progress:
			return False
		self.sequence_in_progress = True
		generation = self._generation
		try:
			if not await self.play_audio("question") or generation != self._generation:
				return False
			self.show_answer = True
			await self._sleep(self.pause_seconds)
			if generation != self._generation:
				return False
			return await self.play_audio("answer")
		finally:
			if generation == self._generation:
				self.sequence_in_progress = False

	def _invalidate(self) -> None:
		self._generation += 1
		self._play_token += 1
		self.output.stop()
		self.playing = None
		self.loading = None
		self.sequence_in_progress = False
