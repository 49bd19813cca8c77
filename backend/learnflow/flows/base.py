"""
Flow plumbing.

A flow is a named async callable with a pydantic input model and a pydantic
output model. Callers may pass either a model instance or a plain (camelCase)
dict; the input is validated before the body runs and the body's return value
is validated against the output model before it is handed back.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..db import utcnow
from ..errors import FlowError
from ..gemini_client import GeminiClient
from ..repositories import (
	CampaignRepository,
	QuestionRepository,
	SettingsRepository,
	TodoRepository,
	TtsCacheRepository,
	UserRepository,
)

logger = logging.getLogger(__name__)

InT = TypeVar("InT", bound=BaseModel)
OutT = TypeVar("OutT", bound=BaseModel)


class Mailer(Protocol):
	async def send(
		self,
		to: str,
		subject: str,
		text: str,
		html: Optional[str] = None,
		*,
		from_email: Optional[str] = None,
		provider: Optional[str] = None,
	) -> None: ...


@dataclass
class FlowContext:
	questions: QuestionRepository
	users: UserRepository
	app_settings: SettingsRepository
	tts_cache: TtsCacheRepository
	mailer: Mailer
	ai_factory: Callable[..., GeminiClient] = GeminiClient
	todos: Optional[TodoRepository] = None
	campaigns: Optional[CampaignRepository] = None
	sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
	clock: Callable[[], datetime] = field(default=utcnow)


class Flow(Generic[InT, OutT]):
	def __init__(
		self,
		name: str,
		input_model: Type[InT],
		output_model: Type[OutT],
		fn: Callable[[InT, FlowContext], Awaitable[Any]],
	) -> None:
		self.name = name
		self.input_model = input_model
		self.output_model = output_model
		self._fn = fn

	async def __call__(self, payload: InT | Dict[str, Any], ctx: FlowContext) -> OutT:
		data = payload if isinstance(payload, self.input_model) else self.input_model.model_validate(payload)
		logger.debug("Flow %s started", self.name)
		result = await self._fn(data, ctx)
		if isinstance(result, self.output_model):
			return result
		try:
			return self.output_model.model_validate(result)
		except ValidationError as e:
			raise FlowError(f"{self.name} returned an invalid result: {e}") from e

	def bind(self, ctx: FlowContext) -> Callable[[InT | Dict[str, Any]], Awaitable[OutT]]:
		async def call(payload: InT | Dict[str, Any]) -> OutT:
			return await self(payload, ctx)

		return call

	def __repr__(self) -> str:
		return f"<Flow {self.name}>"


FLOWS: Dict[str, Flow] = {}


def define_flow(name: str, *, input_model: Type[InT], output_model: Type[OutT]):
	def decorator(fn: Callable[[InT, FlowContext], Awaitable[Any]]) -> Flow[InT, OutT]:
		flow = Flow(name, input_model, output_model, fn)
		FLOWS[name] = flow
		return flow

	return decorator
