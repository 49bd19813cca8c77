from __future__ import annotations

import logging
import uuid
from typing import List, Literal, Optional

from ..schemas import CamelModel, Question, QuestionData
from .base import FlowContext, define_flow

logger = logging.getLogger(__name__)


class ManageQuestionInput(CamelModel):
	action: Literal["create", "update", "delete", "getAll"]
	question_data: Optional[QuestionData] = None
	question_id: Optional[str] = None


class ManageQuestionOutput(CamelModel):
	success: bool
	message: str
	question: Optional[Question] = None
	questions: Optional[List[Question]] = None


def new_question_id() -> str:
	return uuid.uuid4().hex


@define_flow("manageQuestion", input_model=ManageQuestionInput, output_model=ManageQuestionOutput)
async def manage_question(inp: ManageQuestionInput, ctx: FlowContext) -> ManageQuestionOutput:
	repo = ctx.questions
	try:
		if inp.action == "getAll":
			return ManageQuestionOutput(success=True, message="Questions fetched successfully.", questions=repo.list_all())

		if inp.action == "create":
			data = inp.question_data
			if not data or not data.question or not data.answer:
				return ManageQuestionOutput(success=False, message="Question data is missing for create action.")
			question = Question(
				id=new_question_id(),
				question=data.question,
				answer=data.answer,
				category=data.category or "Uncategorized",
				remarks=data.remarks or "",
			)
			repo.put(question)
			return ManageQuestionOutput(success=True, message="Question created successfully.", question=question)

		if inp.action == "update":
			if not inp.question_id or not inp.question_data:
				return ManageQuestionOutput(success=False, message="Question ID or data is missing for update action.")
			updated = repo.update(inp.question_id, inp.question_data)
			if updated is None:
				return ManageQuestionOutput(success=False, message=f"Question {inp.question_id} not found.")
			return ManageQuestionOutput(success=True, message="Question updated successfully.", question=updated)

		if inp.action == "delete":
			if not inp.question_id:
				return ManageQuestionOutput(success=False, message="Question ID is missing for delete action.")
			repo.delete(inp.question_id)
			return ManageQuestionOutput(success=True, message="Question deleted successfully.")
	except Exception as e:
		logger.exception("Error in manageQuestion action '%s'", inp.action)
		return ManageQuestionOutput(success=False, message=f"An error occurred: {e}")

	return ManageQuestionOutput(success=False, message="Unsupported action.")
