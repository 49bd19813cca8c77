"""
Speech capture and playback adapters.

Both adapters sit between the session state machines and a platform speech
API. The platform object is injected: in the browser it is the Web Speech
API reached through the relay adapters in ``session.relay``; in tests it is
a fake that fires lifecycle events by hand.

Capture is an explicit state machine::

    idle --start--> listening --error(no-speech|network)--> restarting
     ^                 |  ^                                     |
     |                 |  +----------- delay elapsed -----------+
     |                 +--end (silence timeout)--> listening (immediate restart)
     +---other error---+
    any --stop--> stopped --start--> listening

All handlers must be called on the running event loop; restarts and
transcript clearing are scheduled with ``loop.call_later``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol

from ..errors import SpeechSynthesisError

logger = logging.getLogger(__name__)

TRANSIENT_RECOGNITION_ERRORS = frozenset({"no-speech", "network"})
INTERRUPTION_ERRORS = frozenset({"interrupted", "canceled"})


# ============================================================================
# CAPTURE
# ============================================================================

class CaptureState(str, Enum):
	IDLE = "idle"
	LISTENING = "listening"
	RESTARTING = "restarting"
	STOPPED = "stopped"


@dataclass(frozen=True)
class RecognitionOptions:
	continuous: bool = True
	interim_results: bool = False
	lang: str = "en-US"


class Recognizer(Protocol):
	def start(self, options: RecognitionOptions) -> None: ...

	def stop(self) -> None: ...


class SpeechCaptureAdapter:
	"""Continuous speech-to-text session with auto-restart.

	``listening`` is true in both the listening and restarting states, so a
	transient recognition error is invisible to callers apart from the short
	restart delay. Finalized transcripts are published once to subscribers and
	kept in ``transcript`` until ``clear_delay`` elapses, so the same phrase
	cannot be picked up twice as a voice command.
	"""

	def __init__(
		self,
		recognizer: Optional[Recognizer],
		*,
		restart_delay: float = 0.25,
		clear_delay: float = 1.0,
		options: RecognitionOptions = RecognitionOptions(),
	) -> None:
		self._recognizer = recognizer
		self.restart_delay = restart_delay
		self.clear_delay = clear_delay
		self.options = options
		self.state = CaptureState.IDLE
		self.transcript = ""
		self._restart_handle: Optional[asyncio.TimerHandle] = None
		self._clear_handle: Optional[asyncio.TimerHandle] = None
		self._listeners: List[Callable[[str], None]] = []

	@property
	def supported(self) -> bool:
		return self._recognizer is not None

	@property
	def listening(self) -> bool:
		return self.state in (CaptureState.LISTENING, CaptureState.RESTARTING)

	def subscribe(self, callback: Callable[[str], None]) -> Callable[[], None]:
		self._listeners.append(callback)

		def unsubscribe() -> None:
			if callback in self._listeners:
				self._listeners.remove(callback)

		return unsubscribe

	def start_listening(self) -> None:
		if not self.supported:
			logger.warning("Speech recognition is not supported on this client")
			return
		if self.listening:
			return
		self.transcript = ""
		self._start_recognizer()

	def stop_listening(self) -> None:
		self._cancel_restart()
		if not self.listening:
			return
		self.state = CaptureState.STOPPED
		try:
			self._recognizer.stop()
		except Exception:
			logger.exception("Error stopping speech recognition")

	def close(self) -> None:
		self.stop_listening()
		if self._clear_handle is not None:
			self._clear_handle.cancel()
			self._clear_handle = None
		self._listeners.clear()

	# -- recognition lifecycle events ------------------------------------

	def handle_result(self, text: str, *, is_final: bool = True) -> None:
		if not is_final or not self.listening:
			return
		text = (text or "").strip()
		if not text:
			return
		self.transcript = text
		self._schedule_clear()
		for listener in list(self._listeners):
			try:
				listener(text)
			except Exception:
				logger.exception("Transcript listener failed")

	def handle_error(self, code: str) -> None:
		if not self.listening:
			# e.g. "aborted" delivered after a manual stop
			return
		if code in TRANSIENT_RECOGNITION_ERRORS:
			logger.debug("Recognition error %r, restarting in %.2fs", code, self.restart_delay)
			self.state = CaptureState.RESTARTING
			self._cancel_restart()
			self._restart_handle = asyncio.get_running_loop().call_later(self.restart_delay, self._restart)
			return
		logger.warning("Speech recognition error: %s", code)
		self._cancel_restart()
		self.state = CaptureState.IDLE

	def handle_end(self) -> None:
		if self.state is CaptureState.LISTENING:
			# Silence timeout; the session was not stopped on purpose
			logger.debug("Recognition ended unexpectedly, restarting")
			self._start_recognizer()

	# -- internals --------------------------------------------------------

	def _start_recognizer(self) -> None:
		self.state = CaptureState.LISTENING
		try:
			self._recognizer.start(self.options)
		except Exception:
			logger.exception("Error starting speech recognition")
			self.state = CaptureState.IDLE

	def _restart(self) -> None:
		self._restart_handle = None
		if self.state is CaptureState.RESTARTING:
			self._start_recognizer()

	def _cancel_restart(self) -> None:
		if self._restart_handle is not None:
			self._restart_handle.cancel()
			self._restart_handle = None

	def _schedule_clear(self) -> None:
		if self._clear_handle is not None:
			self._clear_handle.cancel()
		self._clear_handle = asyncio.get_running_loop().call_later(self.clear_delay, self._clear_transcript)

	def _clear_transcript(self) -> None:
		self._clear_handle = None
		self.transcript = ""


# ============================================================================
# PLAYBACK
# ============================================================================

class Utterance:
	def __init__(
		self,
		text: str,
		*,
		lang: str = "en-US",
		on_end: Optional[Callable[[], None]] = None,
		on_error: Optional[Callable[[str], None]] = None,
	) -> None:
		self.text = text
		self.lang = lang
		self._on_end = on_end
		self._on_error = on_error

	def fire_end(self) -> None:
		if self._on_end is not None:
			self._on_end()

	def fire_error(self, code: str) -> None:
		if self._on_error is not None:
			self._on_error(code)


class Synthesizer(Protocol):
	@property
	def speaking(self) -> bool: ...

	def speak(self, utterance: Utterance) -> None: ...

	def cancel(self) -> None: ...


class SpeechPlaybackAdapter:
	def __init__(self, synthesizer: Optional[Synthesizer], *, lang: str = "en-US") -> None:
		self._synthesizer = synthesizer
		self.lang = lang
		self._current: Optional[asyncio.Future] = None

	@property
	def speaking(self) -> bool:
		return self._current is not None and not self._current.done()

	def speak(self, text: str) -> asyncio.Future:
		"""Speak ``text``, interrupting whatever is being spoken.

		The returned future resolves when the utterance ends or is interrupted
		and fails with ``SpeechSynthesisError`` on any other synthesis error.
		"""
		loop = asyncio.get_running_loop()
		done: asyncio.Future = loop.create_future()
		if self._synthesizer is None:
			logger.warning("Text-to-Speech is not supported on this client")
			done.set_result(None)
			return done

		self.cancel()

		def finished() -> None:
			if not done.done():
				done.set_result(None)

		def failed(code: str) -> None:
			if done.done():
				return
			if code in INTERRUPTION_ERRORS:
				done.set_result(None)
			else:
				done.set_exception(SpeechSynthesisError(code))

		self._current = done
		try:
			self._synthesizer.speak(Utterance(text, lang=self.lang, on_end=finished, on_error=failed))
		except Exception as e:
			failed(str(e) or type(e).__name__)
		return done

	def cancel(self) -> None:
		if self._synthesizer is not None and self._synthesizer.speaking:
			self._synthesizer.cancel()
		# The predecessor counts as interrupted even if the platform stays silent
		if self._current is not None and not self._current.done():
			self._current.set_result(None)
		self._current = None
