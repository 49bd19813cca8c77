from __future__ import annotations

from sqlalchemy import Boolean, Column, String, DateTime, Integer, Text
from .db import Base, utcnow


class UserRecord(Base):
	__tablename__ = "users"
	id = Column(String(64), primary_key=True, index=True)
	name = Column(String(256), nullable=False)
	email = Column(String(256), nullable=False, unique=True, index=True)
	phone = Column(String(32), default="", nullable=False)
	avatar = Column(String(512), default="", nullable=False)
	status = Column(String(16), default="Active", nullable=False)
	last_login = Column(String(16), nullable=False)
	score = Column(Integer, default=0, nullable=False)
	progress = Column(Integer, default=0, nullable=False)
	role = Column(String(16), default="user", nullable=False)
	# Only set for accounts that sign in with a password
	password_hash = Column(String(256), nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	session_id = Column(String(64), primary_key=True)
	user_id = Column(String(64), nullable=False, index=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=utcnow, nullable=False)


class QuestionRecord(Base):
	__tablename__ = "questions"
	id = Column(String(64), primary_key=True, index=True)
	question = Column(Text, nullable=False)
	answer = Column(Text, nullable=False)
	category = Column(String(128), default="Uncategorized", nullable=False, index=True)
	remarks = Column(Text, default="", nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SettingsRecord(Base):
	__tablename__ = "app_settings"
	# Single row keyed "app-config"
	id = Column(String(64), primary_key=True)
	data_json = Column(Text, nullable=False, default="{}")
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class TodoRecord(Base):
	__tablename__ = "todos"
	id = Column(Integer, primary_key=True, autoincrement=True)
	task = Column(Text, nullable=False)
	completed = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class CampaignRecord(Base):
	__tablename__ = "campaigns"
	id = Column(String(64), primary_key=True)
	subject = Column(String(512), nullable=False)
	body = Column(Text, nullable=False, default="")
	status = Column(String(16), nullable=False, default="Draft")
	recipients = Column(String(64), nullable=False, default="all")
	date = Column(String(32), nullable=False, default="N/A")
	analytics_json = Column(Text, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class TtsCacheRecord(Base):
	__tablename__ = "tts_cache"
	cache_id = Column(String(64), primary_key=True)
	question_audio = Column(Text, nullable=False)
	answer_audio = Column(Text, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
