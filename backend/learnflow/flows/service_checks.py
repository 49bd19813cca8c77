from __future__ import annotations

import logging

from pydantic import Field

from ..schemas import CamelModel
from .base import FlowContext, define_flow

logger = logging.getLogger(__name__)


class TestAiServiceInput(CamelModel):
	api_key: str = Field(description="The AI API key to test.")


class TestEmailServiceInput(CamelModel):
	service: str = Field(description="The email service to test.")
	recipient: str = Field(description="The email address to send a test to.")


class ServiceCheckOutput(CamelModel):
	success: bool
	message: str


@define_flow("testAiService", input_model=TestAiServiceInput, output_model=ServiceCheckOutput)
async def test_ai_service(inp: TestAiServiceInput, ctx: FlowContext) -> ServiceCheckOutput:
	if not inp.api_key or len(inp.api_key) < 10:
		return ServiceCheckOutput(success=False, message="The provided API key appears to be invalid or is too short.")
	try:
		client = ctx.ai_factory(api_key=inp.api_key)
	except ValueError as e:
		return ServiceCheckOutput(success=False, message=str(e))
	try:
		await client.generate("Reply with the single word OK.")
	except Exception as e:
		logger.warning("AI service check failed: %s", e)
		return ServiceCheckOutput(success=False, message=f"AI service check failed: {e}")
	finally:
		await client.aclose()
	return ServiceCheckOutput(success=True, message="AI service is operational. Connection successful.")


@define_flow("testEmailService", input_model=TestEmailServiceInput, output_model=ServiceCheckOutput)
async def test_email_service(inp: TestEmailServiceInput, ctx: FlowContext) -> ServiceCheckOutput:
	if inp.service == "gmail":
		return ServiceCheckOutput(success=False, message="Gmail provider is not supported for automated testing.")
	logger.info("Sending test email to %s via %s", inp.recipient, inp.service)
	try:
		await ctx.mailer.send(
			inp.recipient,
			"LearnFlow test email",
			"This is a test message confirming your email settings work.",
			provider=inp.service,
		)
	except Exception as e:
		return ServiceCheckOutput(success=False, message=str(e))
	return ServiceCheckOutput(success=True, message=f"Test email successfully sent to {inp.recipient} via {inp.service}.")
