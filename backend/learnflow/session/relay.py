"""
Server-side stand-ins for the browser's speech and audio APIs.

The HTTP layer runs the session core on the server while the microphone,
speakers and speech engines live in the browser. These relays close the gap:
recognition lifecycle events posted by the browser are fed into the capture
adapter, and utterances/clips the core wants to play are queued for the
browser to pick up with the next response.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List

from .speech import RecognitionOptions, Utterance


class RelayRecognizer:
	def __init__(self) -> None:
		self.active = False
		self.options: RecognitionOptions | None = None
		self.starts = 0

	def start(self, options: RecognitionOptions) -> None:
		self.active = True
		self.options = options
		self.starts += 1

	def stop(self) -> None:
		self.active = False


class OutboxSynthesizer:
	"""Collects utterances for the browser; each one completes on the next loop turn."""

	def __init__(self) -> None:
		self.outbox: List[str] = []

	@property
	def speaking(self) -> bool:
		return False

	def speak(self, utterance: Utterance) -> None:
		self.outbox.append(utterance.text)
		asyncio.get_running_loop().call_soon(utterance.fire_end)

	def cancel(self) -> None:
		pass

	def drain(self) -> List[str]:
		out, self.outbox = self.outbox, []
		return out


class PlaylistOutput:
	"""Audio output that records clips and pauses as a playlist for the browser."""

	def __init__(self) -> None:
		self.entries: List[Dict[str, Any]] = []

	async def play(self, source: str, kind: str) -> None:
		self.entries.append({"type": "clip", "kind": kind, "src": source})

	def stop(self) -> None:
		self.entries.append({"type": "stop"})

	async def pause(self, seconds: float) -> None:
		self.entries.append({"type": "pause", "seconds": seconds})

	def drain(self) -> List[Dict[str, Any]]:
		out, self.entries = self.entries, []
		return out
