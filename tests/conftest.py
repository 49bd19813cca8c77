import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("TTS_RETRY_DELAY", "0")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from learnflow.db import Base, get_db
from learnflow.deps import get_context
from learnflow.flows import FlowContext
from learnflow.main import app
from learnflow.repositories import (
	CampaignRepository,
	InMemoryQuestionRepository,
	InMemorySettingsRepository,
	InMemoryTtsCacheRepository,
	InMemoryUserRepository,
	SqlQuestionRepository,
	SqlSettingsRepository,
	SqlTtsCacheRepository,
	SqlUserRepository,
	TodoRepository,
)
from learnflow.routers.auth import hash_password
from learnflow.schemas import Question, User


BIOLOGY = [
	Question(id=f"bio{i}", question=f"Biology question {i}?", answer=f"Biology answer {i}", category="Biology")
	for i in range(1, 8)
]
HISTORY = [
	Question(id="his1", question="Who was the first US president?", answer="George Washington", category="History"),
	Question(id="his2", question="In what year did WWII end?", answer="1945", category="History"),
]


class FakeAiClient:
	"""Stands in for GeminiClient. Queue grades with ``grades`` or set ``grade_fn``."""

	def __init__(self):
		self.grades = []
		self.grade_fn = None
		self.prompts = []
		self.spoken = []
		self.tts_failures = 0
		self.text_reply = "OK"
		self.json_reply = None
		self.fail_with = None
		self.closed = 0
		self.api_keys = []

	async def generate(self, prompt, *, json_output=False):
		self.prompts.append(prompt)
		if self.fail_with:
			raise self.fail_with
		return self.text_reply

	async def generate_json(self, prompt):
		self.prompts.append(prompt)
		if self.fail_with:
			raise self.fail_with
		if self.json_reply is not None:
			return self.json_reply
		if self.grade_fn is not None:
			return self.grade_fn(prompt)
		if self.grades:
			return self.grades.pop(0)
		return {"isCorrect": True, "feedback": "Well done."}

	async def synthesize_speech(self, text, *, voice=None, model=None):
		self.spoken.append(text)
		if self.tts_failures:
			self.tts_failures -= 1
			raise RuntimeError("TTS unavailable")
		return b"\x00\x01" * 240, 24000

	async def aclose(self):
		self.closed += 1


class FakeMailer:
	def __init__(self):
		self.sent = []
		self.fail_for = set()

	async def send(self, to, subject, text, html=None, *, from_email=None, provider=None):
		if to in self.fail_for:
			raise RuntimeError(f"mailbox unavailable: {to}")
		self.sent.append({"to": to, "subject": subject, "text": text, "provider": provider})


async def no_sleep(seconds):
	return None


@pytest.fixture
def ai():
	return FakeAiClient()


@pytest.fixture
def mailer():
	return FakeMailer()


@pytest.fixture
def ai_factory(ai):
	def factory(api_key=None, **kwargs):
		ai.api_keys.append(api_key)
		return ai

	return factory


@pytest.fixture
def memory_ctx(ai_factory, mailer):
	"""Flow context backed by in-memory repositories."""
	return FlowContext(
		questions=InMemoryQuestionRepository(BIOLOGY + HISTORY),
		users=InMemoryUserRepository(),
		app_settings=InMemorySettingsRepository(),
		tts_cache=InMemoryTtsCacheRepository(),
		mailer=mailer,
		ai_factory=ai_factory,
		sleep=no_sleep,
	)


@pytest.fixture
def session_factory():
	engine = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
	)
	Base.metadata.create_all(bind=engine)
	yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
	Base.metadata.drop_all(bind=engine)
	engine.dispose()


@pytest.fixture
def sql_ctx(session_factory, ai_factory, mailer):
	"""Flow context backed by an in-memory SQLite database."""
	ctx = FlowContext(
		questions=SqlQuestionRepository(session_factory),
		users=SqlUserRepository(session_factory),
		app_settings=SqlSettingsRepository(session_factory),
		tts_cache=SqlTtsCacheRepository(session_factory),
		mailer=mailer,
		ai_factory=ai_factory,
		todos=TodoRepository(session_factory),
		campaigns=CampaignRepository(session_factory),
		sleep=no_sleep,
	)
	ctx.questions.put_many(BIOLOGY + HISTORY)
	return ctx


@pytest.fixture
def client(session_factory, sql_ctx):
	def override_db():
		db = session_factory()
		try:
			yield db
		finally:
			db.close()

	app.dependency_overrides[get_db] = override_db
	app.dependency_overrides[get_context] = lambda: sql_ctx
	yield TestClient(app)
	app.dependency_overrides.clear()


def _make_account(ctx, user_id, email, password, role="user"):
	user = User(id=user_id, name=email.split("@")[0].title(), email=email, role=role, last_login="2024-01-01")
	ctx.users.put(user, password_hash=hash_password(password))
	return user


def _login(client, email, password):
	resp = client.post("/auth/token", data={"username": email, "password": password})
	assert resp.status_code == 200, resp.text
	return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
def admin_headers(client, sql_ctx):
	_make_account(sql_ctx, "usr_admin", "admin@learnflow.test", "admin-pass", role="admin")
	return _login(client, "admin@learnflow.test", "admin-pass")


@pytest.fixture
def user_headers(client, sql_ctx):
	_make_account(sql_ctx, "usr_learner", "learner@learnflow.test", "learner-pass")
	return _login(client, "learner@learnflow.test", "learner-pass")
