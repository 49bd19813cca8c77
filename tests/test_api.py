from learnflow.routers import auth as auth_router
from learnflow.routers import exam as exam_router
from learnflow.schemas import User


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def test_health(client):
	resp = client.get("/health")
	assert resp.status_code == 200
	assert resp.json()["status"] == "ok"


def test_register_login_and_profile(client):
	resp = client.post(
		"/auth/register",
		json={"name": "Ada Lovelace", "email": "Ada@Example.com", "password": "engine-1843"},
	)
	assert resp.status_code == 201, resp.text
	body = resp.json()
	assert body["email"] == "ada@example.com"
	assert body["role"] == "user"
	assert body["avatar"].startswith("https://i.pravatar.cc/150?u=")

	token = client.post("/auth/token", data={"username": "ada@example.com", "password": "engine-1843"}).json()
	headers = {"Authorization": f"Bearer {token['access_token']}"}

	me = client.get("/auth/me", headers=headers)
	assert me.status_code == 200
	assert me.json()["name"] == "Ada Lovelace"
	assert "lastLogin" in me.json()

	updated = client.put("/auth/me", json={"phone": "555-0100"}, headers=headers)
	assert updated.status_code == 200
	assert updated.json()["phone"] == "555-0100"


def test_register_rejects_duplicate_email(client):
	payload = {"name": "Ada", "email": "ada@example.com", "password": "engine-1843"}
	assert client.post("/auth/register", json=payload).status_code == 201
	assert client.post("/auth/register", json=payload).status_code == 409


def test_login_with_wrong_password(client, user_headers):
	resp = client.post("/auth/token", data={"username": "learner@learnflow.test", "password": "nope"})
	assert resp.status_code == 401


def test_requests_without_token_are_rejected(client):
	assert client.get("/auth/me").status_code == 401
	assert client.post("/exam/sessions").status_code == 401


def test_verify_token(client, admin_headers, user_headers):
	admin_token = admin_headers["Authorization"].split()[1]
	user_token = user_headers["Authorization"].split()[1]

	ok = client.post("/auth/verify", json={"token": admin_token})
	assert ok.status_code == 200
	assert ok.json()["role"] == "admin"

	assert client.post("/auth/verify", json={"token": user_token}).status_code == 403
	assert client.post("/auth/verify", json={"token": "garbage"}).status_code == 401
	assert client.post("/auth/verify", json={}).status_code == 400


def test_seed_admin_is_idempotent(sql_ctx, monkeypatch):
	monkeypatch.setattr(auth_router.settings, "seed_admin_email", "root@learnflow.test")
	monkeypatch.setattr(auth_router.settings, "seed_admin_password", "root-pass")
	first = auth_router.seed_admin(sql_ctx)
	second = auth_router.seed_admin(sql_ctx)
	assert first.id == second.id
	assert first.role == "admin"
	assert auth_router.authenticate_user(sql_ctx, "root@learnflow.test", "root-pass") is not None


# ---------------------------------------------------------------------------
# Exam
# ---------------------------------------------------------------------------

def _grade_by_answer(prompt):
	return {"isCorrect": "User's Answer: right" in prompt, "feedback": "Review the chapter."}


def test_exam_flow_over_http(client, user_headers, ai):
	ai.grade_fn = _grade_by_answer
	created = client.post("/exam/sessions", headers=user_headers).json()
	sid = created["session_id"]
	assert created["state"] == "category_selection"
	assert created["categories"] == ["Biology", "History"]

	state = client.post(f"/exam/sessions/{sid}/category", json={"category": "Biology"}, headers=user_headers).json()
	assert state["state"] == "mode_selection"
	assert state["score"] == {"correct": 0, "total": 5}

	state = client.post(f"/exam/sessions/{sid}/mode", json={"mode": "exam"}, headers=user_headers).json()
	assert state["state"] == "ongoing"
	assert "answer" not in state["question"]

	for answer in ["right", "wrong", "right", "right", "wrong"]:
		state = client.post(f"/exam/sessions/{sid}/answer", json={"answer": answer}, headers=user_headers).json()
		assert state["state"] == "feedback"
		assert state["graded"] is True
		expected = "Correct!" if answer == "right" else "Incorrect. Review the chapter."
		assert state["speech"] == [expected]
		state = client.post(f"/exam/sessions/{sid}/next", headers=user_headers).json()

	assert state["state"] == "finished"
	assert state["final_score"] == 60


def test_exam_state_errors_map_to_409(client, user_headers):
	sid = client.post("/exam/sessions", headers=user_headers).json()["session_id"]
	resp = client.post(f"/exam/sessions/{sid}/mode", json={"mode": "exam"}, headers=user_headers)
	assert resp.status_code == 409
	resp = client.post(f"/exam/sessions/{sid}/category", json={"category": "Chemistry"}, headers=user_headers)
	assert resp.status_code == 409


def test_exam_blank_answer_is_not_graded(client, user_headers, ai):
	sid = client.post("/exam/sessions", headers=user_headers).json()["session_id"]
	client.post(f"/exam/sessions/{sid}/category", json={"category": "History"}, headers=user_headers)
	client.post(f"/exam/sessions/{sid}/mode", json={"mode": "learning"}, headers=user_headers)

	state = client.post(f"/exam/sessions/{sid}/answer", json={"answer": "  "}, headers=user_headers).json()
	assert state["graded"] is False
	assert state["state"] == "ongoing"
	assert ai.prompts == []


def test_exam_dictated_answer(client, user_headers, ai):
	ai.grade_fn = _grade_by_answer
	sid = client.post("/exam/sessions", headers=user_headers).json()["session_id"]
	client.post(f"/exam/sessions/{sid}/category", json={"category": "History"}, headers=user_headers)
	client.post(f"/exam/sessions/{sid}/mode", json={"mode": "exam"}, headers=user_headers)

	state = client.post(f"/exam/sessions/{sid}/listen/start", headers=user_headers).json()
	assert state["listening"] is True
	assert state["recognition"]["active"] is True

	state = client.post(
		f"/exam/sessions/{sid}/speech", json={"type": "result", "transcript": "right"}, headers=user_headers
	).json()
	assert state["draft_answer"] == "right"

	state = client.post(f"/exam/sessions/{sid}/answer", json={}, headers=user_headers).json()
	assert state["feedback"]["is_correct"] is True
	assert state["listening"] is False


def test_exam_sessions_are_private(client, user_headers, admin_headers):
	sid = client.post("/exam/sessions", headers=user_headers).json()["session_id"]
	assert client.get(f"/exam/sessions/{sid}", headers=admin_headers).status_code == 404


def test_exam_reset(client, user_headers):
	sid = client.post("/exam/sessions", headers=user_headers).json()["session_id"]
	client.post(f"/exam/sessions/{sid}/category", json={"category": "History"}, headers=user_headers)
	state = client.post(f"/exam/sessions/{sid}/reset", headers=user_headers).json()
	assert state["state"] == "category_selection"
	assert client.delete(f"/exam/sessions/{sid}", headers=user_headers).status_code == 204


# ---------------------------------------------------------------------------
# Learning
# ---------------------------------------------------------------------------

def test_learning_flow_over_http(client, user_headers, ai):
	assert client.get("/learning/categories", headers=user_headers).json() == {"categories": ["Biology", "History"]}

	state = client.post("/learning/sessions", json={"category": "History"}, headers=user_headers).json()
	sid = state["session_id"]
	assert state["question"]["id"] == "his1"
	assert "answer" not in state["question"]

	state = client.post(f"/learning/sessions/{sid}/next", headers=user_headers).json()
	assert state["accepted"] is True
	assert state["question"]["id"] == "his2"
	kinds = [(e["type"], e.get("kind")) for e in state["playlist"]]
	# Navigation first silences whatever the browser is still playing
	assert kinds == [("stop", None), ("clip", "question"), ("pause", None), ("clip", "answer")]
	assert state["playlist"][1]["src"].startswith("data:audio/wav;base64,")
	assert state["show_answer"] is True
	assert state["question"]["answer"] == "1945"
	assert ai.spoken == ["In what year did WWII end?", "The answer is, 1945"]

	# Clips come from the player cache the second time
	state = client.post(f"/learning/sessions/{sid}/repeat", headers=user_headers).json()
	assert len(ai.spoken) == 2
	assert [e["type"] for e in state["playlist"]] == ["stop", "clip", "pause", "clip"]


def test_learning_voice_command(client, user_headers):
	sid = client.post("/learning/sessions", json={"category": "History", "autoplay": False}, headers=user_headers).json()[
		"session_id"
	]
	client.post(f"/learning/sessions/{sid}/listen/start", headers=user_headers)
	state = client.post(
		f"/learning/sessions/{sid}/speech", json={"type": "result", "transcript": "go back"}, headers=user_headers
	).json()
	assert state["question"]["id"] == "his2"
	assert state["last_command"] == "previous"


def test_learning_audio_failure_maps_to_502(client, user_headers, ai):
	ai.tts_failures = 10
	sid = client.post("/learning/sessions", json={"category": "History"}, headers=user_headers).json()["session_id"]
	resp = client.post(f"/learning/sessions/{sid}/play", json={"kind": "question"}, headers=user_headers)
	assert resp.status_code == 502


def test_learning_unknown_category(client, user_headers):
	resp = client.post("/learning/sessions", json={"category": "Chemistry"}, headers=user_headers)
	assert resp.status_code == 409


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

def test_admin_requires_admin_role(client, user_headers):
	assert client.get("/admin/users", headers=user_headers).status_code == 403


def test_admin_question_crud(client, admin_headers):
	created = client.post(
		"/admin/questions",
		json={"question": "What is mitosis?", "answer": "Cell division", "category": "Biology"},
		headers=admin_headers,
	)
	assert created.status_code == 201
	qid = created.json()["question"]["id"]

	updated = client.put(f"/admin/questions/{qid}", json={"remarks": "Unit 2"}, headers=admin_headers)
	assert updated.json()["question"]["remarks"] == "Unit 2"

	missing = client.put("/admin/questions/nope", json={"remarks": "x"}, headers=admin_headers)
	assert missing.status_code == 400
	assert missing.json()["detail"] == "Question nope not found."

	listed = client.get("/admin/questions", headers=admin_headers).json()["questions"]
	assert len(listed) == 10
	assert client.delete(f"/admin/questions/{qid}", headers=admin_headers).status_code == 200


def test_admin_user_management(client, admin_headers, sql_ctx):
	created = client.post("/admin/users", json={"name": "Grace", "email": "grace@example.com"}, headers=admin_headers)
	assert created.status_code == 201
	uid = created.json()["user"]["id"]

	updated = client.put(f"/admin/users/{uid}", json={"status": "Inactive", "score": 85}, headers=admin_headers)
	assert updated.json()["user"]["status"] == "Inactive"

	remaining = client.post("/admin/users/bulk-delete", json={"userIds": [uid, "usr_admin"]}, headers=admin_headers)
	assert [u["id"] for u in remaining.json()["users"]] == ["usr_admin"]


def test_admin_settings_round_trip(client, admin_headers):
	empty = client.get("/admin/settings", headers=admin_headers).json()
	assert empty["message"] == "No settings found."
	client.put("/admin/settings", json={"provider": "sendgrid", "sendgridKey": "SG.x"}, headers=admin_headers)
	stored = client.get("/admin/settings", headers=admin_headers).json()["settings"]
	assert stored["provider"] == "sendgrid"
	assert stored["sendgridKey"] == "SG.x"


def test_admin_bulk_upload_file(client, admin_headers):
	csv_bytes = b"question,answer,category\nWhat is a cell?,Basic unit of life,Biology\n"
	resp = client.post(
		"/admin/bulk-upload/file",
		data={"data_type": "questions"},
		files={"file": ("questions.csv", csv_bytes, "text/csv")},
		headers=admin_headers,
	)
	assert resp.status_code == 200, resp.text
	assert resp.json()["importedCount"] == 1

	bad = client.post("/admin/bulk-upload", json={"dataType": "users", "csvData": "name"}, headers=admin_headers)
	assert bad.status_code == 400


def test_admin_dashboard(client, admin_headers):
	stats = client.get("/admin/dashboard", headers=admin_headers).json()
	assert stats["totalUsers"] == 1
	assert stats["questionsManaged"] == 9
	assert stats["categories"] == 2


def test_admin_send_campaign_to_segment(client, admin_headers, sql_ctx, mailer):
	client.post("/admin/users", json={"name": "High", "email": "high@example.com", "score": 95}, headers=admin_headers)
	client.post("/admin/users", json={"name": "Low", "email": "low@example.com", "score": 20}, headers=admin_headers)

	resp = client.post(
		"/admin/emails/send",
		json={"subject": "Great work", "body": "Keep it up", "segment": "score-gt-80"},
		headers=admin_headers,
	)
	assert resp.status_code == 200, resp.text
	assert [m["to"] for m in mailer.sent] == ["high@example.com"]

	campaigns = client.get("/admin/emails/campaigns", headers=admin_headers).json()
	assert campaigns[0]["status"] == "Sent"
	assert campaigns[0]["recipients"] == "score-gt-80"
	assert campaigns[0]["analytics"]["recipients"] == 1


def test_admin_campaign_drafts(client, admin_headers):
	saved = client.post("/admin/emails/campaigns", json={"subject": "Q3 update"}, headers=admin_headers).json()
	assert saved["status"] == "Draft"
	assert saved["date"] == "N/A"
	scheduled = client.post(
		"/admin/emails/campaigns", json={"subject": "Later", "status": "Scheduled"}, headers=admin_headers
	)
	assert scheduled.status_code == 400
	assert client.delete(f"/admin/emails/campaigns/{saved['id']}", headers=admin_headers).status_code == 204


def test_admin_generate_email(client, admin_headers, ai):
	ai.json_reply = {"subject": "New lessons", "body": "## Hi"}
	resp = client.post(
		"/admin/emails/generate",
		json={"emailType": "newsletter", "tone": "friendly", "topic": "new voice lessons"},
		headers=admin_headers,
	)
	assert resp.json() == {"subject": "New lessons", "body": "## Hi"}


def test_admin_todos(client, admin_headers):
	todo = client.post("/admin/todos", json={"task": "Review new questions"}, headers=admin_headers).json()
	toggled = client.post(f"/admin/todos/{todo['id']}/toggle", headers=admin_headers).json()
	assert toggled["completed"] is True
	assert client.get("/admin/todos", headers=admin_headers).json() == [toggled]
	assert client.delete(f"/admin/todos/{todo['id']}", headers=admin_headers).status_code == 204
	assert client.post("/admin/todos/999/toggle", headers=admin_headers).status_code == 404


def test_admin_service_checks(client, admin_headers, mailer):
	ai_check = client.post("/admin/services/test-ai", json={"apiKey": "short"}, headers=admin_headers).json()
	assert ai_check["success"] is False

	email_check = client.post(
		"/admin/services/test-email", json={"service": "smtp", "recipient": "me@example.com"}, headers=admin_headers
	).json()
	assert email_check["success"] is True
	assert mailer.sent[0]["to"] == "me@example.com"


def test_abandoned_sessions_are_closed(client, user_headers, monkeypatch):
	now = {"t": 1000.0}
	monkeypatch.setattr(exam_router.sessions, "_clock", lambda: now["t"])
	stale = client.post("/exam/sessions", headers=user_headers).json()["session_id"]
	client.post(f"/exam/sessions/{stale}/listen/start", headers=user_headers)
	entry = exam_router.sessions.get(stale, _learner(client, user_headers))

	now["t"] += exam_router.sessions.idle_timeout + 1
	fresh = client.post("/exam/sessions", headers=user_headers).json()["session_id"]

	assert client.get(f"/exam/sessions/{stale}", headers=user_headers).status_code == 404
	assert client.get(f"/exam/sessions/{fresh}", headers=user_headers).status_code == 200
	assert entry.capture.listening is False
	assert entry.recognizer.active is False


def _learner(client, headers):
	return User(**client.get("/auth/me", headers=headers).json())
