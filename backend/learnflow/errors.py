from __future__ import annotations


class LearnFlowError(Exception):
	"""Base class for domain errors raised by sessions and flows."""


class SessionError(LearnFlowError):
	"""A session operation was requested in a state that does not allow it."""


class AudioUnavailableError(LearnFlowError):
	"""Synthesized audio for a lesson clip could not be obtained."""


class SpeechSynthesisError(LearnFlowError):
	def __init__(self, code: str) -> None:
		super().__init__(f"Speech synthesis error: {code}")
		self.code = code


class FlowError(LearnFlowError):
	"""A flow could not produce a valid result."""
