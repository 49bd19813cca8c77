"""
Exam Session State Machine
==========================

Drives one exam or learning pass over a category of questions::

    category_selection --select_category--> mode_selection --start_exam--> ongoing
    ongoing --submit_answer--> feedback --advance_to_next--> ongoing | finished
    (any) --reset_session--> category_selection

Grading is delegated to a flow chosen by mode: ``adaptiveLearningFeedback``
in learning mode, ``aiProctoringExam`` in exam mode. In learning mode every
incorrectly answered question is queued and replayed as a new pass once the
current pass is complete, until a pass has no incorrect answers. Exam mode
never requeues.

Scoring:
- ``score.correct`` grows on every correct submit, retry passes included.
- ``score.total`` is the size of the current pass (the progress denominator).
- ``final_score`` is taken over the first-pass size, so a learning session
  reports how many questions were eventually answered correctly and
  ``first_attempt_correct`` keeps the first-try count.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..errors import SessionError
from ..flows.grading import AdaptiveLearningFeedbackInput, AiProctoringExamInput
from ..schemas import GradeResult, Question
from .speech import SpeechCaptureAdapter, SpeechPlaybackAdapter

logger = logging.getLogger(__name__)

DEFAULT_QUESTION_COUNT = 5


class ExamState(str, Enum):
	CATEGORY_SELECTION = "category_selection"
	MODE_SELECTION = "mode_selection"
	ONGOING = "ongoing"
	FEEDBACK = "feedback"
	FINISHED = "finished"


class ExamMode(str, Enum):
	LEARNING = "learning"
	EXAM = "exam"


@dataclass
class Score:
	correct: int = 0
	total: int = 0


@dataclass
class AnswerAttempt:
	question: Question
	user_answer: str
	feedback: Optional[str] = None
	is_correct: Optional[bool] = None


LearningGrader = Callable[[AdaptiveLearningFeedbackInput], Awaitable[GradeResult]]
ExamGrader = Callable[[AiProctoringExamInput], Awaitable[GradeResult]]


def percentage(correct: int, total: int) -> int:
	if total <= 0:
		return 0
	# Half-up rounding; round() would send 62.5 to 62
	return int(math.floor(correct / total * 100 + 0.5))


class ExamSession:
	def __init__(
		self,
		questions: Sequence[Question],
		*,
		grade_learning: LearningGrader,
		grade_exam: ExamGrader,
		playback: Optional[SpeechPlaybackAdapter] = None,
		capture: Optional[SpeechCaptureAdapter] = None,
		question_count: int = DEFAULT_QUESTION_COUNT,
		rng: Optional[random.Random] = None,
	) -> None:
		self._bank: List[Question] = list(questions)
		self._grade_learning = grade_learning
		self._grade_exam = grade_exam
		self.playback = playback
		self.capture = capture
		self.question_count = question_count
		self._rng = rng or random.Random()
		self._epoch = 0
		self._announcement: Optional[asyncio.Future] = None
		self._unsubscribe = capture.subscribe(self._on_transcript) if capture is not None else None
		self._clear()

	def _clear(self) -> None:
		self.state = ExamState.CATEGORY_SELECTION
		self.mode: Optional[ExamMode] = None
		self.category: Optional[str] = None
		self.exam_questions: List[Question] = []
		self.retry_queue: List[Question] = []
		self.current_question_index = 0
		self.score = Score()
		self.original_total = 0
		self.first_attempt_correct = 0
		self.pass_number = 0
		self.attempt: Optional[AnswerAttempt] = None
		self.draft_answer = ""

	# ------------------------------------------------------------------
	# Queries
	# ------------------------------------------------------------------

	def categories(self) -> List[str]:
		return sorted({q.category for q in self._bank})

	@property
	def current_question(self) -> Optional[Question]:
		if 0 <= self.current_question_index < len(self.exam_questions):
			return self.exam_questions[self.current_question_index]
		return None

	@property
	def final_score(self) -> Optional[int]:
		if self.state is not ExamState.FINISHED:
			return None
		return percentage(self.score.correct, self.original_total)

	# ------------------------------------------------------------------
	# Transitions
	# ------------------------------------------------------------------

	def select_category(self, category: str) -> List[Question]:
		if self.state is not ExamState.CATEGORY_SELECTION:
			raise SessionError(f"Cannot select a category while {self.state.value}.")
		pool = [q for q in self._bank if q.category == category]
		if not pool:
			raise SessionError(f"No questions available in category {category!r}.")
		chosen = self._rng.sample(pool, min(self.question_count, len(pool)))
		self.category = category
		self.exam_questions = chosen
		self.retry_queue = []
		self.current_question_index = 0
		self.score = Score(correct=0, total=len(chosen))
		self.original_total = len(chosen)
		self.state = ExamState.MODE_SELECTION
		logger.info("Exam session selected %d questions from %s", len(chosen), category)
		return chosen

	def start_exam(self, mode: ExamMode | str) -> None:
		if self.state is not ExamState.MODE_SELECTION:
			raise SessionError(f"Cannot start while {self.state.value}.")
		try:
			self.mode = ExamMode(mode)
		except ValueError:
			raise SessionError(f"Unknown mode {mode!r}; expected 'learning' or 'exam'.")
		self.state = ExamState.ONGOING

	async def submit_answer(self, text: Optional[str] = None) -> Optional[AnswerAttempt]:
		"""Grade an answer for the current question.

		Returns the graded attempt, or ``None`` when nothing happened: blank
		input, a session that is not waiting for an answer, a grading failure
		(the state goes back to ``ongoing`` so the user can retry) or a result
		that arrived after the session was reset.
		"""
		answer = (self.draft_answer if text is None else text).strip()
		if not answer or self.state is not ExamState.ONGOING:
			return None
		question = self.current_question
		if question is None:
			return None

		if self.capture is not None:
			self.capture.stop_listening()
		self.state = ExamState.FEEDBACK
		attempt = AnswerAttempt(question=question, user_answer=answer)
		self.attempt = attempt
		epoch = self._epoch
		try:
			if self.mode is ExamMode.LEARNING:
				result = await self._grade_learning(
					AdaptiveLearningFeedbackInput(question=question.question, user_answer=answer, correct_answer=question.answer)
				)
			else:
				result = await self._grade_exam(
					AiProctoringExamInput(question=question.question, user_answer=answer, expected_answer=question.answer)
				)
		except Exception:
			logger.exception("Grading failed for question %s", question.id)
			if epoch == self._epoch:
				self.state = ExamState.ONGOING
				self.attempt = None
			return None

		if epoch != self._epoch:
			logger.info("Discarding grading result for question %s after session reset", question.id)
			return None

		attempt.is_correct = result.is_correct
		attempt.feedback = result.feedback
		if result.is_correct:
			self.score.correct += 1
			if self.pass_number == 0:
				self.first_attempt_correct += 1
		elif self.mode is ExamMode.LEARNING:
			self.retry_queue.append(question)
		self.draft_answer = ""
		self._announce(result)
		return attempt

	def advance_to_next(self) -> ExamState:
		if self.state is not ExamState.FEEDBACK:
			raise SessionError(f"Cannot advance while {self.state.value}.")
		self.attempt = None
		self.draft_answer = ""
		if self.current_question_index < len(self.exam_questions) - 1:
			self.current_question_index += 1
			self.state = ExamState.ONGOING
		elif self.mode is ExamMode.LEARNING and self.retry_queue:
			self.exam_questions = list(self.retry_queue)
			self.retry_queue = []
			self.current_question_index = 0
			self.score.total = len(self.exam_questions)
			self.pass_number += 1
			self.state = ExamState.ONGOING
			logger.debug("Starting retry pass %d with %d questions", self.pass_number, len(self.exam_questions))
		else:
			self.current_question_index = len(self.exam_questions)
			self.state = ExamState.FINISHED
		return self.state

	def reset_session(self) -> None:
		self._epoch += 1
		if self.capture is not None:
			self.capture.stop_listening()
		if self.playback is not None:
			self.playback.cancel()
		self._clear()

	def close(self) -> None:
		self.reset_session()
		if self._unsubscribe is not None:
			self._unsubscribe()
			self._unsubscribe = None

	# ------------------------------------------------------------------
	# Speech side effects
	# ------------------------------------------------------------------

	def _on_transcript(self, text: str) -> None:
		if self.state is ExamState.ONGOING:
			self.draft_answer = f"{self.draft_answer} {text}".strip()

	def _announce(self, result: GradeResult) -> None:
		if self.playback is None:
			return
		text = "Correct!" if result.is_correct else f"Incorrect. {result.feedback}"
		self._announcement = asyncio.ensure_future(self._speak(text))

	async def _speak(self, text: str) -> None:
		try:
			await self.playback.speak(text)
		except Exception as e:
			logger.warning("Feedback playback failed: %s", e)

	async def wait_for_announcements(self) -> None:
		if self._announcement is not None:
			await self._announcement

	def snapshot(self) -> Dict[str, Any]:
		question = self.current_question
		attempt = self.attempt
		return {
			"state": self.state.value,
			"mode": self.mode.value if self.mode else None,
			"category": self.category,
			"categories": self.categories() if self.state is ExamState.CATEGORY_SELECTION else None,
			"question": question.model_dump(by_alias=True, exclude={"answer", "remarks"}) if question else None,
			"current_question_index": self.current_question_index,
			"pass_number": self.pass_number,
			"retry_queue_length": len(self.retry_queue),
			"score": {"correct": self.score.correct, "total": self.score.total},
			"draft_answer": self.draft_answer,
			"feedback": (
				{"is_correct": attempt.is_correct, "feedback": attempt.feedback, "user_answer": attempt.user_answer}
				if attempt is not None and attempt.is_correct is not None
				else None
			),
			"final_score": self.final_score,
			"first_attempt_correct": self.first_attempt_correct if self.state is ExamState.FINISHED else None,
			"original_total": self.original_total,
		}
