from .base import FLOWS, Flow, FlowContext, Mailer, define_flow
from .bulk_upload import BulkUploadInput, BulkUploadOutput, bulk_upload
from .email_campaigns import (
	GenerateEmailCampaignInput,
	GenerateEmailCampaignOutput,
	SendCampaignEmailInput,
	SendCampaignEmailOutput,
	generate_email_campaign,
	send_campaign_email,
)
from .grading import AdaptiveLearningFeedbackInput, AiProctoringExamInput, adaptive_learning_feedback, ai_proctoring_exam
from .manage_question import ManageQuestionInput, ManageQuestionOutput, manage_question
from .manage_settings import ManageSettingsInput, ManageSettingsOutput, manage_settings
from .manage_user import ManageUserInput, ManageUserOutput, manage_user
from .service_checks import ServiceCheckOutput, TestAiServiceInput, TestEmailServiceInput, test_ai_service, test_email_service
from .voice_lessons import GenerateVoiceLessonsInput, generate_voice_lessons
