from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime
from typing import List, Literal, Optional

from ..schemas import CamelModel, User, UserData
from .base import FlowContext, define_flow

logger = logging.getLogger(__name__)


class ManageUserInput(CamelModel):
	action: Literal["create", "update", "delete", "bulkDelete", "getAll"]
	user_data: Optional[UserData] = None
	user_id: Optional[str] = None
	user_ids: Optional[List[str]] = None


class ManageUserOutput(CamelModel):
	success: bool
	message: str
	user: Optional[User] = None
	users: Optional[List[User]] = None


def default_avatar(user_id: str) -> str:
	return f"https://i.pravatar.cc/150?u={user_id}"


def new_user_id() -> str:
	# Suffix keeps ids unique within one millisecond
	return f"usr_{int(time.time() * 1000)}{secrets.token_hex(2)}"


def build_user(user_id: str, data: UserData, *, today: datetime) -> User:
	return User(
		id=user_id,
		name=data.name or "",
		email=data.email or "",
		phone=data.phone or "",
		avatar=data.avatar or default_avatar(user_id),
		status=data.status or "Active",
		last_login=data.last_login or today.date().isoformat(),
		score=data.score or 0,
		progress=data.progress or 0,
		role=data.role or "user",
	)


@define_flow("manageUser", input_model=ManageUserInput, output_model=ManageUserOutput)
async def manage_user(inp: ManageUserInput, ctx: FlowContext) -> ManageUserOutput:
	repo = ctx.users
	try:
		if inp.action == "getAll":
			return ManageUserOutput(success=True, message="Users fetched successfully.", users=repo.list_all())

		if inp.action == "create":
			data = inp.user_data
			if not data or not data.email or not data.name:
				return ManageUserOutput(success=False, message="User data, email, or name is missing for create action.")
			existing = repo.get_by_email(data.email)
			if existing is not None and existing.id != inp.user_id:
				return ManageUserOutput(success=False, message=f"A user with email {data.email} already exists.")
			# Keep the id from the auth layer when given; admin-created users get a fresh one
			user = build_user(inp.user_id or new_user_id(), data, today=ctx.clock())
			repo.put(user)
			return ManageUserOutput(success=True, message="User created successfully.", user=user)

		if inp.action == "update":
			if not inp.user_id or not inp.user_data:
				return ManageUserOutput(success=False, message="User ID or data is missing for update action.")
			updated = repo.update(inp.user_id, inp.user_data)
			if updated is None:
				return ManageUserOutput(success=False, message=f"User {inp.user_id} not found.")
			return ManageUserOutput(success=True, message="User updated successfully.", user=updated)

		if inp.action == "delete":
			if not inp.user_id:
				return ManageUserOutput(success=False, message="User ID is missing for delete action.")
			repo.delete(inp.user_id)
			return ManageUserOutput(success=True, message="User deleted successfully.")

		if inp.action == "bulkDelete":
			if not inp.user_ids:
				return ManageUserOutput(success=False, message="User IDs are missing for bulk delete action.")
			repo.delete_many(inp.user_ids)
			return ManageUserOutput(
				success=True,
				message=f"{len(inp.user_ids)} users deleted successfully.",
				users=repo.list_all(),
			)
	except Exception as e:
		logger.exception("Error in manageUser action '%s'", inp.action)
		return ManageUserOutput(success=False, message=f"An error occurred: {e}")

	return ManageUserOutput(success=False, message=f"Unsupported action: {inp.action}")
