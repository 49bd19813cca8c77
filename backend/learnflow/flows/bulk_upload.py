from __future__ import annotations

import csv
import io
import logging
import uuid
from typing import Dict, List, Literal, Optional, Union

from pydantic import Field

from ..schemas import CamelModel, Question, User
from .base import FlowContext, define_flow
from .manage_user import default_avatar

logger = logging.getLogger(__name__)


class BulkUploadInput(CamelModel):
	data_type: Literal["users", "questions"]
	csv_data: str = Field(description="The full content of the CSV file as a string.")


class BulkUploadOutput(CamelModel):
	success: bool
	message: str
	imported_count: Optional[int] = None
	updated_data: Optional[List[Union[User, Question]]] = None


def _int_or_zero(value: str) -> int:
	try:
		return int(value)
	except (TypeError, ValueError):
		return 0


def _parse_rows(csv_data: str) -> List[Dict[str, str]]:
	lines = [line for line in csv_data.splitlines() if line.strip()]
	if len(lines) < 2:
		raise ValueError("CSV file must have a header and at least one data row.")
	reader = csv.reader(io.StringIO("\n".join(lines)), skipinitialspace=True)
	rows = list(reader)
	headers = [h.strip().lower().replace('"', "") for h in rows[0]]
	out: List[Dict[str, str]] = []
	for values in rows[1:]:
		item = {}
		for idx, header in enumerate(headers):
			item[header] = values[idx].strip() if idx < len(values) else ""
		out.append(item)
	return out


def _user_from_row(item: Dict[str, str], today: str) -> User:
	user_id = item.get("id") or f"usr_{uuid.uuid4().hex[:12]}"
	status = item.get("status") or "Active"
	return User(
		id=user_id,
		name=item.get("name", ""),
		email=item.get("email", ""),
		phone=item.get("phone", ""),
		avatar=item.get("avatar") or default_avatar(user_id),
		status=status if status in ("Active", "Inactive") else "Active",
		last_login=item.get("lastlogin") or today,
		score=_int_or_zero(item.get("score", "")),
		progress=_int_or_zero(item.get("progress", "")),
		role="user",
	)


def _question_from_row(item: Dict[str, str]) -> Question:
	return Question(
		id=item.get("id") or uuid.uuid4().hex,
		category=item.get("category") or "Uncategorized",
		question=item.get("question", ""),
		answer=item.get("answer", ""),
		remarks=item.get("remarks", ""),
	)


@define_flow("bulkUpload", input_model=BulkUploadInput, output_model=BulkUploadOutput)
async def bulk_upload(inp: BulkUploadInput, ctx: FlowContext) -> BulkUploadOutput:
	try:
		rows = _parse_rows(inp.csv_data)
	except ValueError as e:
		return BulkUploadOutput(success=False, message=str(e))

	try:
		if inp.data_type == "users":
			today = ctx.clock().date().isoformat()
			imported = ctx.users.put_many(_user_from_row(item, today) for item in rows)
			updated: List[Union[User, Question]] = list(ctx.users.list_all())
		else:
			imported = ctx.questions.put_many(_question_from_row(item) for item in rows)
			updated = list(ctx.questions.list_all())
	except Exception as e:
		logger.exception("Error in bulkUpload for %s", inp.data_type)
		return BulkUploadOutput(success=False, message=f"An error occurred during CSV processing: {e}")

	return BulkUploadOutput(
		success=True,
		message=f"Successfully imported {imported} {inp.data_type}.",
		imported_count=imported,
		updated_data=updated,
	)
