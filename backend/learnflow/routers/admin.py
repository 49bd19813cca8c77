"""
Admin Back-Office API
=====================

Everything under ``/admin`` requires a signed-in user with the ``admin`` role.
The endpoints are thin wrappers around the flows: a flow that reports
``success: false`` becomes a 400 with the flow's message as ``detail``.

Recipient segments for campaigns:
- ``all``: every active user
- ``not-started``: active users with no progress yet
- ``completed-exam``: active users at 100% progress
- ``score-gt-80``: active users scoring above 80
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import Field

from ..deps import get_context
from ..flows import (
	BulkUploadOutput,
	FlowContext,
	GenerateEmailCampaignInput,
	GenerateEmailCampaignOutput,
	ManageQuestionOutput,
	ManageSettingsOutput,
	ManageUserOutput,
	SendCampaignEmailOutput,
	ServiceCheckOutput,
	bulk_upload,
	generate_email_campaign,
	manage_question,
	manage_settings,
	manage_user,
	send_campaign_email,
)
from ..flows import service_checks
from ..schemas import CamelModel, Campaign, QuestionData, SettingsData, Todo, User, UserData
from .auth import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _ok(result):
	if not result.success:
		raise HTTPException(status_code=400, detail=result.message)
	return result


# ============================================================================
# USERS
# ============================================================================

class BulkDeleteRequest(CamelModel):
	user_ids: List[str]


@router.get("/users", response_model=ManageUserOutput, response_model_exclude_none=True)
async def list_users(ctx: FlowContext = Depends(get_context)):
	return _ok(await manage_user({"action": "getAll"}, ctx))


@router.post("/users", response_model=ManageUserOutput, response_model_exclude_none=True, status_code=201)
async def create_user(req: UserData, ctx: FlowContext = Depends(get_context)):
	return _ok(await manage_user({"action": "create", "userData": req}, ctx))


@router.put("/users/{user_id}", response_model=ManageUserOutput, response_model_exclude_none=True)
async def update_user(user_id: str, req: UserData, ctx: FlowContext = Depends(get_context)):
	return _ok(await manage_user({"action": "update", "userId": user_id, "userData": req}, ctx))


@router.delete("/users/{user_id}", response_model=ManageUserOutput, response_model_exclude_none=True)
async def delete_user(user_id: str, admin: User = Depends(require_admin), ctx: FlowContext = Depends(get_context)):
	if user_id == admin.id:
		raise HTTPException(status_code=400, detail="You cannot delete your own account")
	return _ok(await manage_user({"action": "delete", "userId": user_id}, ctx))


@router.post("/users/bulk-delete", response_model=ManageUserOutput, response_model_exclude_none=True)
async def bulk_delete_users(req: BulkDeleteRequest, admin: User = Depends(require_admin), ctx: FlowContext = Depends(get_context)):
	ids = [i for i in req.user_ids if i != admin.id]
	return _ok(await manage_user({"action": "bulkDelete", "userIds": ids}, ctx))


# ============================================================================
# QUESTIONS
# ============================================================================

@router.get("/questions", response_model=ManageQuestionOutput, response_model_exclude_none=True)
async def list_questions(ctx: FlowContext = Depends(get_context)):
	return _ok(await manage_question({"action": "getAll"}, ctx))


@router.post("/questions", response_model=ManageQuestionOutput, response_model_exclude_none=True, status_code=201)
async def create_question(req: QuestionData, ctx: FlowContext = Depends(get_context)):
	return _ok(await manage_question({"action": "create", "questionData": req}, ctx))


@router.put("/questions/{question_id}", response_model=ManageQuestionOutput, response_model_exclude_none=True)
async def update_question(question_id: str, req: QuestionData, ctx: FlowContext = Depends(get_context)):
	return _ok(await manage_question({"action": "update", "questionId": question_id, "questionData": req}, ctx))


@router.delete("/questions/{question_id}", response_model=ManageQuestionOutput, response_model_exclude_none=True)
async def delete_question(question_id: str, ctx: FlowContext = Depends(get_context)):
	return _ok(await manage_question({"action": "delete", "questionId": question_id}, ctx))


# ============================================================================
# SETTINGS & BULK UPLOAD
# ============================================================================

@router.get("/settings", response_model=ManageSettingsOutput)
async def get_settings(ctx: FlowContext = Depends(get_context)):
	return _ok(await manage_settings({"action": "get"}, ctx))


@router.put("/settings", response_model=ManageSettingsOutput)
async def put_settings(req: SettingsData, ctx: FlowContext = Depends(get_context)):
	return _ok(await manage_settings({"action": "set", "settingsData": req}, ctx))


class BulkUploadRequest(CamelModel):
	data_type: Literal["users", "questions"]
	csv_data: str


@router.post("/bulk-upload", response_model=BulkUploadOutput, response_model_exclude_none=True)
async def bulk_upload_csv(req: BulkUploadRequest, ctx: FlowContext = Depends(get_context)):
	return _ok(await bulk_upload({"dataType": req.data_type, "csvData": req.csv_data}, ctx))


@router.post("/bulk-upload/file", response_model=BulkUploadOutput, response_model_exclude_none=True)
async def bulk_upload_file(
	data_type: Literal["users", "questions"] = Form(...),
	file: UploadFile = File(...),
	ctx: FlowContext = Depends(get_context),
):
	raw = await file.read()
	try:
		text = raw.decode("utf-8-sig")
	except UnicodeDecodeError:
		raise HTTPException(status_code=400, detail="CSV file must be UTF-8 encoded")
	return _ok(await bulk_upload({"dataType": data_type, "csvData": text}, ctx))


# ============================================================================
# DASHBOARD
# ============================================================================

@router.get("/dashboard")
async def dashboard(ctx: FlowContext = Depends(get_context)):
	users = ctx.users.list_all()
	questions = ctx.questions.list_all()
	campaigns = ctx.campaigns.list_all() if ctx.campaigns is not None else []
	todos = ctx.todos.list_all() if ctx.todos is not None else []
	by_status: Dict[str, int] = {"Sent": 0, "Scheduled": 0, "Draft": 0}
	for c in campaigns:
		by_status[c.status] = by_status.get(c.status, 0) + 1
	return {
		"totalUsers": len(users),
		"activeUsers": sum(1 for u in users if u.status == "Active"),
		"questionsManaged": len(questions),
		"categories": len({q.category for q in questions}),
		"campaigns": by_status,
		"openTodos": sum(1 for t in todos if not t.completed),
	}


# ============================================================================
# EMAIL CAMPAIGNS
# ============================================================================

SEGMENTS: Dict[str, Callable[[User], bool]] = {
	"all": lambda u: True,
	"not-started": lambda u: u.progress == 0,
	"completed-exam": lambda u: u.progress >= 100,
	"score-gt-80": lambda u: u.score > 80,
}


def resolve_recipients(users: List[User], segment: str) -> List[str]:
	match = SEGMENTS.get(segment)
	if match is None:
		raise HTTPException(status_code=400, detail=f"Unknown recipient segment: {segment}")
	return [u.email for u in users if u.status == "Active" and match(u)]


class SendCampaignRequest(CamelModel):
	subject: str
	body: str
	segment: str = "all"
	# Manual list overrides the segment
	recipients: Optional[List[str]] = None


class CampaignDraft(CamelModel):
	id: Optional[str] = None
	subject: str
	body: str = ""
	status: Literal["Draft", "Scheduled"] = "Draft"
	recipients: str = "all"
	date: Optional[str] = Field(default=None, description="ISO send date for scheduled campaigns")


@router.post("/emails/generate", response_model=GenerateEmailCampaignOutput)
async def generate_email(req: GenerateEmailCampaignInput, ctx: FlowContext = Depends(get_context)):
	try:
		return await generate_email_campaign(req, ctx)
	except Exception as e:
		logger.error("Email generation failed: %s", e)
		raise HTTPException(status_code=502, detail=f"Failed to generate email content: {e}")


@router.post("/emails/send", response_model=SendCampaignEmailOutput)
async def send_email(req: SendCampaignRequest, ctx: FlowContext = Depends(get_context)):
	if req.recipients:
		recipients = [r.strip() for r in req.recipients if r.strip()]
		segment = "custom"
	else:
		recipients = resolve_recipients(ctx.users.list_all(), req.segment)
		segment = req.segment
	if not recipients:
		raise HTTPException(status_code=400, detail="No recipients selected.")
	try:
		result = await send_campaign_email(
			{"recipients": recipients, "subject": req.subject, "body": req.body, "segment": segment}, ctx
		)
	except ValueError as e:
		# pydantic rejects malformed addresses before anything is sent
		raise HTTPException(status_code=422, detail=str(e))
	return _ok(result)


@router.get("/emails/campaigns", response_model=List[Campaign], response_model_exclude_none=True)
async def list_campaigns(ctx: FlowContext = Depends(get_context)):
	return ctx.campaigns.list_all() if ctx.campaigns is not None else []


@router.post("/emails/campaigns", response_model=Campaign, response_model_exclude_none=True)
async def save_campaign(req: CampaignDraft, ctx: FlowContext = Depends(get_context)):
	if ctx.campaigns is None:
		raise HTTPException(status_code=503, detail="Campaign storage is not configured")
	if req.status == "Scheduled" and not req.date:
		raise HTTPException(status_code=400, detail="Scheduled campaigns need a send date")
	campaign = Campaign(
		id=req.id or f"camp_{uuid.uuid4().hex[:10]}",
		subject=req.subject,
		body=req.body,
		status=req.status,
		recipients=req.recipients,
		date=req.date if req.status == "Scheduled" else "N/A",
	)
	return ctx.campaigns.save(campaign)


@router.delete("/emails/campaigns/{campaign_id}", status_code=204)
async def delete_campaign(campaign_id: str, ctx: FlowContext = Depends(get_context)):
	if ctx.campaigns is None or not ctx.campaigns.delete(campaign_id):
		raise HTTPException(status_code=404, detail="Campaign not found")


# ============================================================================
# TO-DOS
# ============================================================================

class TodoRequest(CamelModel):
	task: str


def _todos(ctx: FlowContext):
	if ctx.todos is None:
		raise HTTPException(status_code=503, detail="To-do storage is not configured")
	return ctx.todos


@router.get("/todos", response_model=List[Todo])
async def list_todos(ctx: FlowContext = Depends(get_context)):
	return _todos(ctx).list_all()


@router.post("/todos", response_model=Todo, status_code=201)
async def add_todo(req: TodoRequest, ctx: FlowContext = Depends(get_context)):
	task = req.task.strip()
	if not task:
		raise HTTPException(status_code=400, detail="task must not be empty")
	return _todos(ctx).add(task)


@router.post("/todos/{todo_id}/toggle", response_model=Todo)
async def toggle_todo(todo_id: int, ctx: FlowContext = Depends(get_context)):
	todo = _todos(ctx).toggle(todo_id)
	if todo is None:
		raise HTTPException(status_code=404, detail="To-do not found")
	return todo


@router.delete("/todos/{todo_id}", status_code=204)
async def delete_todo(todo_id: int, ctx: FlowContext = Depends(get_context)):
	if not _todos(ctx).delete(todo_id):
		raise HTTPException(status_code=404, detail="To-do not found")


# ============================================================================
# SERVICE CHECKS
# ============================================================================

class AiCheckRequest(CamelModel):
	api_key: Optional[str] = None


class EmailCheckRequest(CamelModel):
	service: str
	recipient: str


@router.post("/services/test-ai", response_model=ServiceCheckOutput)
async def check_ai(req: AiCheckRequest, ctx: FlowContext = Depends(get_context)):
	api_key = req.api_key
	if not api_key:
		stored = ctx.app_settings.load() or {}
		api_key = stored.get("aiApiKey") or ""
	return await service_checks.test_ai_service({"apiKey": api_key}, ctx)


@router.post("/services/test-email", response_model=ServiceCheckOutput)
async def check_email(req: EmailCheckRequest, ctx: FlowContext = Depends(get_context)):
	return await service_checks.test_email_service({"service": req.service, "recipient": req.recipient}, ctx)
