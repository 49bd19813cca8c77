from __future__ import annotations

from pydantic import Field

from ..schemas import CamelModel, GradeResult
from .base import FlowContext, define_flow


class AdaptiveLearningFeedbackInput(CamelModel):
	question: str = Field(description="The question being asked.")
	user_answer: str = Field(description="The user's answer to the question.")
	correct_answer: str = Field(description="The correct answer to the question.")


class AiProctoringExamInput(CamelModel):
	question: str = Field(description="The question being asked.")
	user_answer: str = Field(description="The user's answer to the question.")
	expected_answer: str = Field(description="The expected answer to the question.")


def _build_learning_prompt(inp: AdaptiveLearningFeedbackInput) -> str:
	return (
		"You are an AI-powered exam proctor providing feedback to a student.\n\n"
		"Determine if the student's answer is correct based on the intent, not just keywords.\n"
		"Provide constructive feedback to help the student understand the correct answer.\n"
		"If the answer is incorrect, explain why and provide hints.\n\n"
		f"Question: {inp.question}\n"
		f"User's Answer: {inp.user_answer}\n"
		f"Correct Answer: {inp.correct_answer}\n\n"
		"Return ONLY a JSON object with keys: isCorrect (boolean, true if the user answered correctly), "
		"feedback (string)."
	)


def _build_exam_prompt(inp: AiProctoringExamInput) -> str:
	return (
		"You are an AI exam proctor. Your task is to determine if a student's answer to a question is correct, "
		"even if it doesn't match the expected answer exactly. Focus on the intent and meaning of the answer. "
		"Provide feedback to the student.\n\n"
		f"Question: {inp.question}\n"
		f"User's Answer: {inp.user_answer}\n"
		f"Expected Answer: {inp.expected_answer}\n\n"
		"Assess if the user's answer demonstrates understanding of the material, and provide constructive feedback. "
		"Be concise in your feedback.\n"
		"Return ONLY a JSON object with keys: isCorrect (boolean), feedback (string)."
	)


def _coerce_grade(data: dict) -> GradeResult:
	raw = data.get("isCorrect", data.get("is_correct"))
	if isinstance(raw, str):
		is_correct = raw.strip().lower() in ("true", "yes", "correct")
	else:
		is_correct = bool(raw)
	feedback = str(data.get("feedback") or "").strip()
	return GradeResult(is_correct=is_correct, feedback=feedback)


async def _grade(prompt: str, ctx: FlowContext) -> GradeResult:
	client = ctx.ai_factory()
	try:
		data = await client.generate_json(prompt)
	finally:
		await client.aclose()
	return _coerce_grade(data)


@define_flow("adaptiveLearningFeedback", input_model=AdaptiveLearningFeedbackInput, output_model=GradeResult)
async def adaptive_learning_feedback(inp: AdaptiveLearningFeedbackInput, ctx: FlowContext) -> GradeResult:
	return await _grade(_build_learning_prompt(inp), ctx)


@define_flow("aiProctoringExam", input_model=AiProctoringExamInput, output_model=GradeResult)
async def ai_proctoring_exam(inp: AiProctoringExamInput, ctx: FlowContext) -> GradeResult:
	return await _grade(_build_exam_prompt(inp), ctx)
