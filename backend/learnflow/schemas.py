from __future__ import annotations
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
	# Wire format is camelCase; Python code uses snake_case
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Question(CamelModel):
	model_config = ConfigDict(frozen=True)

	id: str
	question: str
	answer: str
	category: str = "Uncategorized"
	remarks: Optional[str] = ""


class QuestionData(CamelModel):
	question: Optional[str] = None
	answer: Optional[str] = None
	category: Optional[str] = None
	remarks: Optional[str] = None


UserStatus = Literal["Active", "Inactive"]
UserRole = Literal["user", "admin"]


class User(CamelModel):
	id: str
	name: str
	email: str
	phone: str = ""
	avatar: str = ""
	status: UserStatus = "Active"
	last_login: str = ""
	score: int = 0
	progress: int = 0
	role: UserRole = "user"


class UserData(CamelModel):
	name: Optional[str] = None
	email: Optional[str] = None
	phone: Optional[str] = None
	avatar: Optional[str] = None
	status: Optional[UserStatus] = None
	last_login: Optional[str] = None
	score: Optional[int] = None
	progress: Optional[int] = None
	role: Optional[UserRole] = None


class SettingsData(CamelModel):
	provider: Optional[str] = None
	from_email: Optional[str] = None
	sendgrid_key: Optional[str] = None
	smtp_host: Optional[str] = None
	smtp_port: Optional[str] = None
	smtp_user: Optional[str] = None
	smtp_pass: Optional[str] = None
	ai_api_key: Optional[str] = None


class Todo(CamelModel):
	id: int
	task: str
	completed: bool = False


class CampaignAnalytics(CamelModel):
	recipients: int = 0
	open_rate: float = 0
	click_rate: float = 0


class Campaign(CamelModel):
	id: str
	subject: str
	body: str = ""
	status: Literal["Sent", "Draft", "Scheduled"] = "Draft"
	recipients: str = "all"
	date: str = "N/A"
	analytics: Optional[CampaignAnalytics] = None


class VoiceLesson(CamelModel):
	question_audio: str
	answer_audio: str


class GradeResult(CamelModel):
	is_correct: bool
	feedback: str = Field(default="")
