from __future__ import annotations

import asyncio
import logging
import re
import uuid
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from ..schemas import CamelModel, Campaign, CampaignAnalytics
from .base import FlowContext, define_flow

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class GenerateEmailCampaignInput(CamelModel):
	email_type: Literal["newsletter", "update", "notification", "invitation", "congratulations", "reminder"] = Field(
		description="The type of email campaign to generate."
	)
	tone: Literal["formal", "friendly", "urgent", "encouraging"] = Field(description="The desired tone of the email.")
	topic: str = Field(description="The key points or topic of the email campaign.")
	target_audience: Optional[str] = None
	additional_instructions: Optional[str] = None


class GenerateEmailCampaignOutput(CamelModel):
	subject: str
	body: str


class SendCampaignEmailInput(CamelModel):
	recipients: List[str]
	subject: str
	body: str
	segment: str = "all"

	@field_validator("recipients")
	@classmethod
	def _valid_emails(cls, value: List[str]) -> List[str]:
		bad = [v for v in value if not _EMAIL_RE.match(v)]
		if bad:
			raise ValueError(f"invalid email address: {bad[0]}")
		return value


class SendCampaignEmailOutput(CamelModel):
	success: bool
	message: str


def _build_campaign_prompt(inp: GenerateEmailCampaignInput) -> str:
	lines = [
		"You are an expert email copywriter.",
		"",
		"You will generate an email campaign based on the provided information. The body should be formatted in simple markdown.",
		"",
		f"Email Type: {inp.email_type}",
		f"Tone: {inp.tone}",
		f"Key Points/Topic: {inp.topic}",
	]
	if inp.target_audience:
		lines.append(f"Target Audience: {inp.target_audience}")
	if inp.additional_instructions:
		lines.append(f"Additional Instructions: {inp.additional_instructions}")
	lines += [
		"",
		"Generate an engaging subject line and a full email body tailored to the audience and campaign type.",
		"Return ONLY a JSON object with keys: subject (string), body (string, markdown).",
	]
	return "\n".join(lines)


@define_flow("generateEmailCampaign", input_model=GenerateEmailCampaignInput, output_model=GenerateEmailCampaignOutput)
async def generate_email_campaign(inp: GenerateEmailCampaignInput, ctx: FlowContext) -> dict:
	client = ctx.ai_factory()
	try:
		data = await client.generate_json(_build_campaign_prompt(inp))
	finally:
		await client.aclose()
	return {"subject": str(data.get("subject", "")).strip(), "body": str(data.get("body", "")).strip()}


@define_flow("sendCampaignEmail", input_model=SendCampaignEmailInput, output_model=SendCampaignEmailOutput)
async def send_campaign_email(inp: SendCampaignEmailInput, ctx: FlowContext) -> SendCampaignEmailOutput:
	if not inp.recipients:
		return SendCampaignEmailOutput(success=False, message="No recipients selected.")
	# TODO: render the markdown body to HTML instead of sending it verbatim as both parts
	results = await asyncio.gather(
		*(ctx.mailer.send(r, inp.subject, inp.body, inp.body) for r in inp.recipients),
		return_exceptions=True,
	)
	failures = [(r, res) for r, res in zip(inp.recipients, results) if isinstance(res, Exception)]
	for recipient, err in failures:
		logger.error("Campaign email to %s failed: %s", recipient, err)
	if failures:
		return SendCampaignEmailOutput(
			success=False,
			message=f"Failed to send campaign to {len(failures)} of {len(inp.recipients)} recipients: {failures[0][1]}",
		)

	if ctx.campaigns is not None:
		ctx.campaigns.save(
			Campaign(
				id=f"camp_{uuid.uuid4().hex[:10]}",
				subject=inp.subject,
				body=inp.body,
				status="Sent",
				recipients=inp.segment,
				date=ctx.clock().isoformat(timespec="seconds") + "Z",
				analytics=CampaignAnalytics(recipients=len(inp.recipients)),
			)
		)
	return SendCampaignEmailOutput(success=True, message=f"Successfully sent campaign to {len(inp.recipients)} recipients.")
