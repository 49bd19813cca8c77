from __future__ import annotations
from datetime import datetime, timezone

from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./learnflow.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def utcnow() -> datetime:
	# Naive UTC, matching the DateTime columns
	return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Best-effort lightweight migrations for development (SQLite-friendly)
def ensure_schema(bind=None) -> None:
	bind = bind or engine
	try:
		inspector = inspect(bind)
		tables = set(inspector.get_table_names())
	except Exception:
		return
	if "users" in tables:
		cols = {c["name"] for c in inspector.get_columns("users")}
		with bind.begin() as conn:
			if "phone" not in cols:
				conn.exec_driver_sql("ALTER TABLE users ADD COLUMN phone VARCHAR(32) DEFAULT '' NOT NULL")
			if "password_hash" not in cols:
				conn.exec_driver_sql("ALTER TABLE users ADD COLUMN password_hash VARCHAR(256)")
	if "questions" in tables:
		cols = {c["name"] for c in inspector.get_columns("questions")}
		if "remarks" not in cols:
			with bind.begin() as conn:
				conn.exec_driver_sql("ALTER TABLE questions ADD COLUMN remarks TEXT DEFAULT '' NOT NULL")
