"""
Voice-first learning session: walk a category's questions and hear each one
read out followed by its answer.

Navigation commands (next, previous, repeat) are rate-limited rather than
debounced: while one command is still playing its audio, further commands are
dropped and reported as ignored.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..errors import LearnFlowError, SessionError
from ..schemas import Question
from .audio_player import AudioLessonPlayer, ClipKind
from .speech import SpeechCaptureAdapter

logger = logging.getLogger(__name__)

# First match wins, so "repeat the question" repeats rather than replaying the question clip
VOICE_COMMANDS: Tuple[Tuple[str, re.Pattern], ...] = (
	("next", re.compile(r"\b(next|skip)\b", re.I)),
	("previous", re.compile(r"\b(previous|back)\b", re.I)),
	("repeat", re.compile(r"\b(repeat|again)\b", re.I)),
	("answer", re.compile(r"\b(show answer|answer)\b", re.I)),
	("question", re.compile(r"\bquestion\b", re.I)),
	("stop", re.compile(r"\bstop\b", re.I)),
)


def match_voice_command(transcript: str) -> Optional[str]:
	for command, pattern in VOICE_COMMANDS:
		if pattern.search(transcript or ""):
			return command
	return None


class LearningSessionController:
	def __init__(
		self,
		questions: Sequence[Question],
		player: AudioLessonPlayer,
		*,
		capture: Optional[SpeechCaptureAdapter] = None,
		autoplay: bool = True,
	) -> None:
		self._bank: List[Question] = list(questions)
		self.player = player
		self.capture = capture
		self.autoplay = autoplay
		self.category: Optional[str] = None
		self.lessons: List[Question] = []
		self.index = 0
		self.last_command: Optional[str] = None
		self._command_in_flight = False
		self._voice_tasks: Set[asyncio.Task] = set()
		self._unsubscribe = capture.subscribe(self._on_transcript) if capture is not None else None

	def categories(self) -> List[str]:
		return sorted({q.category for q in self._bank})

	@property
	def current(self) -> Optional[Question]:
		if self.lessons:
			return self.lessons[self.index]
		return None

	@property
	def show_answer(self) -> bool:
		return self.player.show_answer

	@property
	def busy(self) -> bool:
		return self._command_in_flight

	def select_category(self, category: str) -> Question:
		lessons = [q for q in self._bank if q.category == category]
		if not lessons:
			raise SessionError(f"No lessons available in category {category!r}.")
		self.category = category
		self.lessons = lessons
		self.index = 0
		self.player.switch_question(lessons[0])
		logger.info("Learning session started on %s (%d lessons)", category, len(lessons))
		return lessons[0]

	# -- rate-limited navigation -------------------------------------------

	async def next(self) -> bool:
		return await self._run("next", lambda: self._move(1))

	async def previous(self) -> bool:
		return await self._run("previous", lambda: self._move(-1))

	async def repeat(self) -> bool:
		return await self._run("repeat", self._replay)

	async def _run(self, name: str, command: Callable[[], Awaitable[Any]]) -> bool:
		self._require_lessons()
		if self._command_in_flight:
			logger.debug("Ignoring %s while another command is running", name)
			return False
		self._command_in_flight = True
		self.last_command = name
		try:
			await command()
		finally:
			self._command_in_flight = False
		return True

	async def _move(self, step: int) -> None:
		self.index = (self.index + step) % len(self.lessons)
		self.player.switch_question(self.lessons[self.index])
		if self.autoplay:
			await self.player.play_sequence()

	async def _replay(self) -> None:
		self.player.switch_question(self.current)
		await self.player.play_sequence()

	# -- single actions -----------------------------------------------------

	def toggle_answer(self) -> bool:
		self._require_lessons()
		self.player.show_answer = not self.player.show_answer
		return self.player.show_answer

	async def play(self, kind: ClipKind) -> bool:
		self._require_lessons()
		return await self.player.play_audio(kind)

	def stop(self) -> None:
		self.player.stop()

	def _require_lessons(self) -> None:
		if not self.lessons:
			raise SessionError("Select a category before starting the lesson.")

	# -- voice control ------------------------------------------------------

	def _on_transcript(self, text: str) -> None:
		command = match_voice_command(text)
		if command is None or not self.lessons:
			return
		logger.debug("Voice command %r from transcript %r", command, text)
		task = asyncio.ensure_future(self._dispatch(command))
		self._voice_tasks.add(task)
		task.add_done_callback(self._voice_tasks.discard)

	async def _dispatch(self, command: str) -> None:
		try:
			if command == "next":
				await self.next()
			elif command == "previous":
				await self.previous()
			elif command == "repeat":
				await self.repeat()
			elif command == "answer":
				self.player.show_answer = True
				await self.play("answer")
			elif command == "question":
				await self.play("question")
			else:
				self.stop()
		except LearnFlowError as e:
			logger.warning("Voice command %s failed: %s", command, e)

	async def wait_for_voice_commands(self) -> None:
		while self._voice_tasks:
			await asyncio.gather(*list(self._voice_tasks))

	def close(self) -> None:
		self.player.stop()
		for task in self._voice_tasks:
			task.cancel()
		if self._unsubscribe is not None:
			self._unsubscribe()
			self._unsubscribe = None
		if self.capture is not None:
			self.capture.close()

	def snapshot(self) -> Dict[str, Any]:
		question = self.current
		payload = None
		if question is not None:
			payload = question.model_dump(by_alias=True, exclude={"answer"} if not self.show_answer else set())
		return {
			"category": self.category,
			"index": self.index,
			"total": len(self.lessons),
			"question": payload,
			"show_answer": self.show_answer,
			"loading": self.player.loading,
			"playing": self.player.playing,
			"busy": self.busy,
			"listening": self.capture.listening if self.capture is not None else False,
			"transcript": self.capture.transcript if self.capture is not None else "",
			"last_command": self.last_command,
		}
