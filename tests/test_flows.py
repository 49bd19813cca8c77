import asyncio
import base64
import io
import wave
from datetime import timedelta

import pytest

from learnflow.errors import FlowError
from learnflow.flows import (
	FLOWS,
	adaptive_learning_feedback,
	ai_proctoring_exam,
	bulk_upload,
	generate_email_campaign,
	generate_voice_lessons,
	manage_question,
	manage_settings,
	manage_user,
	send_campaign_email,
	service_checks,
)
from learnflow.flows.voice_lessons import cache_id_for


def run(flow, payload, ctx):
	return asyncio.run(flow(payload, ctx))


def test_all_flows_are_registered():
	assert set(FLOWS) == {
		"adaptiveLearningFeedback",
		"aiProctoringExam",
		"generateVoiceLessons",
		"manageQuestion",
		"manageUser",
		"manageSettings",
		"bulkUpload",
		"generateEmailCampaign",
		"sendCampaignEmail",
		"testAiService",
		"testEmailService",
	}


# ---------------------------------------------------------------------------
# Grading
# ---------------------------------------------------------------------------

def test_learning_feedback_parses_grade(memory_ctx, ai):
	ai.grades.append({"isCorrect": True, "feedback": "Exactly right."})
	result = run(
		adaptive_learning_feedback,
		{"question": "Capital of France?", "userAnswer": "Paris", "correctAnswer": "Paris"},
		memory_ctx,
	)
	assert result.is_correct is True
	assert result.feedback == "Exactly right."
	assert "User's Answer: Paris" in ai.prompts[0]
	assert ai.closed == 1


def test_exam_grade_accepts_string_booleans(memory_ctx, ai):
	ai.grades.append({"isCorrect": "false", "feedback": "Not quite."})
	result = run(
		ai_proctoring_exam,
		{"question": "2+2?", "userAnswer": "5", "expectedAnswer": "4"},
		memory_ctx,
	)
	assert result.is_correct is False
	assert "Expected Answer: 4" in ai.prompts[0]


def test_grading_errors_propagate(memory_ctx, ai):
	ai.fail_with = RuntimeError("quota")
	with pytest.raises(RuntimeError):
		run(ai_proctoring_exam, {"question": "q", "userAnswer": "a", "expectedAnswer": "b"}, memory_ctx)
	assert ai.closed == 1


# ---------------------------------------------------------------------------
# Voice lessons
# ---------------------------------------------------------------------------

def _wav_rate(data_uri):
	prefix = "data:audio/wav;base64,"
	assert data_uri.startswith(prefix)
	with wave.open(io.BytesIO(base64.b64decode(data_uri[len(prefix):]))) as w:
		return w.getframerate(), w.getnchannels(), w.getsampwidth()


def test_voice_lessons_synthesize_both_clips_and_cache(memory_ctx, ai):
	payload = {"question": "What is DNA?", "answer": "Deoxyribonucleic acid"}
	lesson = run(generate_voice_lessons, payload, memory_ctx)

	assert ai.spoken == ["What is DNA?", "The answer is, Deoxyribonucleic acid"]
	assert _wav_rate(lesson.question_audio) == (24000, 1, 2)
	assert _wav_rate(lesson.answer_audio) == (24000, 1, 2)

	again = run(generate_voice_lessons, payload, memory_ctx)
	assert again == lesson
	assert len(ai.spoken) == 2


def test_voice_lessons_retry_transient_failures(memory_ctx, ai):
	ai.tts_failures = 2
	lesson = run(generate_voice_lessons, {"question": "q", "answer": "a"}, memory_ctx)
	assert lesson.question_audio
	assert ai.spoken == ["q", "q", "q", "The answer is, a"]


def test_voice_lessons_give_up_after_three_attempts(memory_ctx, ai):
	ai.tts_failures = 3
	with pytest.raises(FlowError):
		run(generate_voice_lessons, {"question": "q", "answer": "a"}, memory_ctx)
	assert len(ai.spoken) == 3
	assert memory_ctx.tts_cache.get(cache_id_for("q", "a"), max_age=timedelta(days=30)) is None


# ---------------------------------------------------------------------------
# Manage question
# ---------------------------------------------------------------------------

def test_manage_question_lifecycle(memory_ctx):
	created = run(
		manage_question,
		{"action": "create", "questionData": {"question": "What is ATP?", "answer": "Energy currency", "category": "Biology"}},
		memory_ctx,
	)
	assert created.success
	qid = created.question.id

	updated = run(
		manage_question,
		{"action": "update", "questionId": qid, "questionData": {"remarks": "Chapter 3"}},
		memory_ctx,
	)
	assert updated.question.remarks == "Chapter 3"
	assert updated.question.answer == "Energy currency"

	deleted = run(manage_question, {"action": "delete", "questionId": qid}, memory_ctx)
	assert deleted.success
	assert memory_ctx.questions.get(qid) is None


def test_manage_question_create_needs_question_and_answer(memory_ctx):
	result = run(manage_question, {"action": "create", "questionData": {"question": "Only a question"}}, memory_ctx)
	assert result.success is False
	assert result.message == "Question data is missing for create action."


def test_manage_question_update_unknown_id(memory_ctx):
	result = run(manage_question, {"action": "update", "questionId": "nope", "questionData": {"answer": "x"}}, memory_ctx)
	assert result.success is False
	assert result.message == "Question nope not found."


def test_manage_question_defaults_category(memory_ctx):
	result = run(manage_question, {"action": "create", "questionData": {"question": "q", "answer": "a"}}, memory_ctx)
	assert result.question.category == "Uncategorized"


# ---------------------------------------------------------------------------
# Manage user
# ---------------------------------------------------------------------------

def test_manage_user_create_fills_defaults(memory_ctx):
	result = run(manage_user, {"action": "create", "userData": {"name": "Ada", "email": "ada@example.com"}}, memory_ctx)
	assert result.success
	user = result.user
	assert user.id.startswith("usr_")
	assert user.avatar == f"https://i.pravatar.cc/150?u={user.id}"
	assert user.status == "Active"
	assert user.role == "user"
	assert user.score == 0


def test_manage_user_rejects_duplicate_email(memory_ctx):
	payload = {"action": "create", "userData": {"name": "Ada", "email": "ada@example.com"}}
	run(manage_user, payload, memory_ctx)
	again = run(manage_user, payload, memory_ctx)
	assert again.success is False


def test_manage_user_bulk_delete_returns_remaining(memory_ctx):
	ids = []
	for i in range(3):
		res = run(manage_user, {"action": "create", "userData": {"name": f"U{i}", "email": f"u{i}@example.com"}}, memory_ctx)
		ids.append(res.user.id)

	result = run(manage_user, {"action": "bulkDelete", "userIds": ids[:2]}, memory_ctx)
	assert result.success
	assert result.message == "2 users deleted successfully."
	assert [u.id for u in result.users] == [ids[2]]


def test_manage_user_missing_fields(memory_ctx):
	result = run(manage_user, {"action": "update", "userId": "usr_1"}, memory_ctx)
	assert result.success is False
	assert result.message == "User ID or data is missing for update action."


# ---------------------------------------------------------------------------
# Manage settings
# ---------------------------------------------------------------------------

def test_settings_get_when_empty(memory_ctx):
	result = run(manage_settings, {"action": "get"}, memory_ctx)
	assert result.success
	assert result.message == "No settings found."


def test_settings_set_merges(memory_ctx):
	run(manage_settings, {"action": "set", "settingsData": {"provider": "smtp", "smtpHost": "mail.example.com"}}, memory_ctx)
	run(manage_settings, {"action": "set", "settingsData": {"smtpPort": "587"}}, memory_ctx)
	result = run(manage_settings, {"action": "get"}, memory_ctx)
	assert result.settings.provider == "smtp"
	assert result.settings.smtp_host == "mail.example.com"
	assert result.settings.smtp_port == "587"


# ---------------------------------------------------------------------------
# Bulk upload
# ---------------------------------------------------------------------------

def test_bulk_upload_questions(memory_ctx):
	csv_data = 'Question,Answer,Category\n"What is 2+2?",4,Math\nWhat is H2O?,Water,\n'
	result = run(bulk_upload, {"dataType": "questions", "csvData": csv_data}, memory_ctx)
	assert result.success
	assert result.imported_count == 2
	assert result.message == "Successfully imported 2 questions."
	imported = {q.question: q for q in memory_ctx.questions.list_all()}
	assert imported["What is 2+2?"].category == "Math"
	assert imported["What is H2O?"].category == "Uncategorized"


def test_bulk_upload_users_keeps_ids(memory_ctx):
	csv_data = "id,name,email,score\nusr_42,Grace,grace@example.com,91\n"
	result = run(bulk_upload, {"dataType": "users", "csvData": csv_data}, memory_ctx)
	assert result.success
	user = memory_ctx.users.get("usr_42")
	assert user.name == "Grace"
	assert user.score == 91
	assert user.role == "user"


def test_bulk_upload_needs_data_row(memory_ctx):
	result = run(bulk_upload, {"dataType": "users", "csvData": "name,email\n"}, memory_ctx)
	assert result.success is False
	assert result.message == "CSV file must have a header and at least one data row."


# ---------------------------------------------------------------------------
# Email campaigns
# ---------------------------------------------------------------------------

def test_generate_email_campaign(memory_ctx, ai):
	ai.json_reply = {"subject": " Keep going! ", "body": "## Hello\nKeep learning."}
	result = run(
		generate_email_campaign,
		{"emailType": "reminder", "tone": "friendly", "topic": "weekly practice", "targetAudience": "All Users"},
		memory_ctx,
	)
	assert result.subject == "Keep going!"
	assert "Target Audience: All Users" in ai.prompts[0]


def test_send_campaign_email_to_every_recipient(memory_ctx, mailer):
	result = run(
		send_campaign_email,
		{"recipients": ["a@example.com", "b@example.com"], "subject": "Hi", "body": "Body"},
		memory_ctx,
	)
	assert result.success
	assert result.message == "Successfully sent campaign to 2 recipients."
	assert [m["to"] for m in mailer.sent] == ["a@example.com", "b@example.com"]


def test_send_campaign_email_reports_failures(memory_ctx, mailer):
	mailer.fail_for.add("b@example.com")
	result = run(
		send_campaign_email,
		{"recipients": ["a@example.com", "b@example.com"], "subject": "Hi", "body": "Body"},
		memory_ctx,
	)
	assert result.success is False
	assert "1 of 2" in result.message


def test_send_campaign_email_rejects_bad_addresses(memory_ctx):
	with pytest.raises(ValueError):
		run(send_campaign_email, {"recipients": ["not-an-email"], "subject": "Hi", "body": "Body"}, memory_ctx)


# ---------------------------------------------------------------------------
# Service checks
# ---------------------------------------------------------------------------

def test_ai_service_check_rejects_short_keys(memory_ctx, ai):
	result = run(service_checks.test_ai_service, {"apiKey": "short"}, memory_ctx)
	assert result.success is False
	assert ai.prompts == []


def test_ai_service_check_uses_given_key(memory_ctx, ai):
	result = run(service_checks.test_ai_service, {"apiKey": "AIza-test-key-123"}, memory_ctx)
	assert result.success
	assert ai.api_keys == ["AIza-test-key-123"]


def test_ai_service_check_reports_failures(memory_ctx, ai):
	ai.fail_with = RuntimeError("API key not valid")
	result = run(service_checks.test_ai_service, {"apiKey": "AIza-test-key-123"}, memory_ctx)
	assert result.success is False
	assert "API key not valid" in result.message


def test_email_service_check(memory_ctx, mailer):
	gmail = run(service_checks.test_email_service, {"service": "gmail", "recipient": "me@example.com"}, memory_ctx)
	assert gmail.success is False

	smtp = run(service_checks.test_email_service, {"service": "smtp", "recipient": "me@example.com"}, memory_ctx)
	assert smtp.success
	assert mailer.sent[0]["provider"] == "smtp"


def test_voice_lesson_cache_id_keeps_question_and_answer_apart():
	assert cache_id_for("ab", "c") != cache_id_for("a", "bc")
	assert cache_id_for("q", "a") == cache_id_for("q", "a")
