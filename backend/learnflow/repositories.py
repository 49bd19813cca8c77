"""
Storage repositories.

Every collection the flows touch sits behind a small abstract interface with a
SQLAlchemy implementation for the running service and, where tests need to
swap storage out, an in-memory implementation. SQL repositories open a short
session per operation from the injected session factory, so they can outlive
any single request.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .db import utcnow
from .models import CampaignRecord, QuestionRecord, SettingsRecord, TodoRecord, TtsCacheRecord, UserRecord
from .schemas import Campaign, CampaignAnalytics, Question, QuestionData, Todo, User, UserData, VoiceLesson

SessionFactory = Callable[[], Session]

SETTINGS_DOC_ID = "app-config"


# ============================================================================
# INTERFACES
# ============================================================================

class QuestionRepository(ABC):
	@abstractmethod
	def list_all(self) -> List[Question]: ...

	@abstractmethod
	def get(self, question_id: str) -> Optional[Question]: ...

	@abstractmethod
	def put(self, question: Question) -> Question: ...

	@abstractmethod
	def update(self, question_id: str, data: QuestionData) -> Optional[Question]: ...

	@abstractmethod
	def delete(self, question_id: str) -> bool: ...

	def put_many(self, questions: Iterable[Question]) -> int:
		count = 0
		for q in questions:
			self.put(q)
			count += 1
		return count

	def categories(self) -> List[str]:
		return sorted({q.category for q in self.list_all()})


class UserRepository(ABC):
	@abstractmethod
	def list_all(self) -> List[User]: ...

	@abstractmethod
	def get(self, user_id: str) -> Optional[User]: ...

	@abstractmethod
	def get_by_email(self, email: str) -> Optional[User]: ...

	@abstractmethod
	def put(self, user: User, *, password_hash: Optional[str] = None) -> User: ...

	@abstractmethod
	def update(self, user_id: str, data: UserData) -> Optional[User]: ...

	@abstractmethod
	def delete_many(self, user_ids: Iterable[str]) -> int: ...

	@abstractmethod
	def password_hash(self, user_id: str) -> Optional[str]: ...

	def delete(self, user_id: str) -> bool:
		return self.delete_many([user_id]) > 0

	def put_many(self, users: Iterable[User]) -> int:
		count = 0
		for u in users:
			self.put(u)
			count += 1
		return count


class SettingsRepository(ABC):
	@abstractmethod
	def load(self) -> Optional[Dict[str, str]]: ...

	@abstractmethod
	def merge(self, values: Dict[str, str]) -> Dict[str, str]: ...


class TtsCacheRepository(ABC):
	@abstractmethod
	def get(self, cache_id: str, *, max_age: timedelta) -> Optional[VoiceLesson]: ...

	@abstractmethod
	def put(self, cache_id: str, lesson: VoiceLesson) -> None: ...

	@abstractmethod
	def purge_older_than(self, threshold: datetime) -> int: ...


# ============================================================================
# IN-MEMORY IMPLEMENTATIONS
# ============================================================================

class InMemoryQuestionRepository(QuestionRepository):
	def __init__(self, questions: Iterable[Question] = ()) -> None:
		self._items: Dict[str, Question] = {}
		for q in questions:
			self._items[q.id] = q

	def list_all(self) -> List[Question]:
		return list(self._items.values())

	def get(self, question_id: str) -> Optional[Question]:
		return self._items.get(question_id)

	def put(self, question: Question) -> Question:
		self._items[question.id] = question
		return question

	def update(self, question_id: str, data: QuestionData) -> Optional[Question]:
		current = self._items.get(question_id)
		if current is None:
			return None
		updated = current.model_copy(update=data.model_dump(exclude_none=True))
		self._items[question_id] = updated
		return updated

	def delete(self, question_id: str) -> bool:
		return self._items.pop(question_id, None) is not None


class InMemoryUserRepository(UserRepository):
	def __init__(self, users: Iterable[User] = ()) -> None:
		self._items: Dict[str, User] = {u.id: u for u in users}
		self._hashes: Dict[str, str] = {}

	def list_all(self) -> List[User]:
		return list(self._items.values())

	def get(self, user_id: str) -> Optional[User]:
		return self._items.get(user_id)

	def get_by_email(self, email: str) -> Optional[User]:
		for u in self._items.values():
			if u.email.lower() == email.lower():
				return u
		return None

	def put(self, user: User, *, password_hash: Optional[str] = None) -> User:
		self._items[user.id] = user
		if password_hash:
			self._hashes[user.id] = password_hash
		return user

	def update(self, user_id: str, data: UserData) -> Optional[User]:
		current = self._items.get(user_id)
		if current is None:
			return None
		updated = current.model_copy(update=data.model_dump(exclude_none=True))
		self._items[user_id] = updated
		return updated

	def delete_many(self, user_ids: Iterable[str]) -> int:
		removed = 0
		for uid in user_ids:
			if self._items.pop(uid, None) is not None:
				removed += 1
			self._hashes.pop(uid, None)
		return removed

	def password_hash(self, user_id: str) -> Optional[str]:
		return self._hashes.get(user_id)


class InMemorySettingsRepository(SettingsRepository):
	def __init__(self, values: Optional[Dict[str, str]] = None) -> None:
		self._values = dict(values) if values is not None else None

	def load(self) -> Optional[Dict[str, str]]:
		return dict(self._values) if self._values is not None else None

	def merge(self, values: Dict[str, str]) -> Dict[str, str]:
		merged = dict(self._values or {})
		merged.update(values)
		self._values = merged
		return dict(merged)


class InMemoryTtsCacheRepository(TtsCacheRepository):
	def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
		self._clock = clock
		self._items: Dict[str, tuple[VoiceLesson, datetime]] = {}

	def get(self, cache_id: str, *, max_age: timedelta) -> Optional[VoiceLesson]:
		hit = self._items.get(cache_id)
		if hit is None:
			return None
		lesson, created_at = hit
		if self._clock() - created_at >= max_age:
			return None
		return lesson

	def put(self, cache_id: str, lesson: VoiceLesson) -> None:
		self._items[cache_id] = (lesson, self._clock())

	def purge_older_than(self, threshold: datetime) -> int:
		stale = [k for k, (_, created) in self._items.items() if created < threshold]
		for k in stale:
			del self._items[k]
		return len(stale)


# ============================================================================
# SQL IMPLEMENTATIONS
# ============================================================================

def _question_from_row(row: QuestionRecord) -> Question:
	return Question(id=row.id, question=row.question, answer=row.answer, category=row.category, remarks=row.remarks or "")


def _user_from_row(row: UserRecord) -> User:
	return User(
		id=row.id,
		name=row.name,
		email=row.email,
		phone=row.phone or "",
		avatar=row.avatar or "",
		status=row.status,
		last_login=row.last_login,
		score=row.score,
		progress=row.progress,
		role=row.role,
	)


class SqlQuestionRepository(QuestionRepository):
	def __init__(self, session_factory: SessionFactory) -> None:
		self._session_factory = session_factory

	def list_all(self) -> List[Question]:
		with self._session_factory() as db:
			rows = db.execute(select(QuestionRecord).order_by(QuestionRecord.created_at, QuestionRecord.id)).scalars().all()
			return [_question_from_row(r) for r in rows]

	def get(self, question_id: str) -> Optional[Question]:
		with self._session_factory() as db:
			row = db.get(QuestionRecord, question_id)
			return _question_from_row(row) if row else None

	def put(self, question: Question) -> Question:
		with self._session_factory() as db:
			db.merge(
				QuestionRecord(
					id=question.id,
					question=question.question,
					answer=question.answer,
					category=question.category,
					remarks=question.remarks or "",
				)
			)
			db.commit()
		return question

	def update(self, question_id: str, data: QuestionData) -> Optional[Question]:
		with self._session_factory() as db:
			row = db.get(QuestionRecord, question_id)
			if row is None:
				return None
			for key, value in data.model_dump(exclude_none=True).items():
				setattr(row, key, value)
			db.commit()
			db.refresh(row)
			return _question_from_row(row)

	def delete(self, question_id: str) -> bool:
		with self._session_factory() as db:
			res = db.execute(delete(QuestionRecord).where(QuestionRecord.id == question_id))
			db.commit()
			return bool(res.rowcount)


class SqlUserRepository(UserRepository):
	def __init__(self, session_factory: SessionFactory) -> None:
		self._session_factory = session_factory

	def list_all(self) -> List[User]:
		with self._session_factory() as db:
			rows = db.execute(select(UserRecord).order_by(UserRecord.created_at, UserRecord.id)).scalars().all()
			return [_user_from_row(r) for r in rows]

	def get(self, user_id: str) -> Optional[User]:
		with self._session_factory() as db:
			row = db.get(UserRecord, user_id)
			return _user_from_row(row) if row else None

	def get_by_email(self, email: str) -> Optional[User]:
		with self._session_factory() as db:
			row = db.execute(select(UserRecord).where(UserRecord.email == email)).scalars().first()
			return _user_from_row(row) if row else None

	def put(self, user: User, *, password_hash: Optional[str] = None) -> User:
		with self._session_factory() as db:
			row = db.get(UserRecord, user.id) or UserRecord(id=user.id)
			for key, value in user.model_dump(exclude={"id"}).items():
				setattr(row, key, value)
			if password_hash:
				row.password_hash = password_hash
			db.add(row)
			db.commit()
		return user

	def update(self, user_id: str, data: UserData) -> Optional[User]:
		with self._session_factory() as db:
			row = db.get(UserRecord, user_id)
			if row is None:
				return None
			for key, value in data.model_dump(exclude_none=True).items():
				setattr(row, key, value)
			db.commit()
			db.refresh(row)
			return _user_from_row(row)

	def delete_many(self, user_ids: Iterable[str]) -> int:
		ids = list(user_ids)
		if not ids:
			return 0
		with self._session_factory() as db:
			res = db.execute(delete(UserRecord).where(UserRecord.id.in_(ids)))
			db.commit()
			return res.rowcount or 0

	def password_hash(self, user_id: str) -> Optional[str]:
		with self._session_factory() as db:
			row = db.get(UserRecord, user_id)
			return row.password_hash if row else None


class SqlSettingsRepository(SettingsRepository):
	def __init__(self, session_factory: SessionFactory) -> None:
		self._session_factory = session_factory

	def load(self) -> Optional[Dict[str, str]]:
		with self._session_factory() as db:
			row = db.get(SettingsRecord, SETTINGS_DOC_ID)
			if row is None:
				return None
			return json.loads(row.data_json or "{}")

	def merge(self, values: Dict[str, str]) -> Dict[str, str]:
		with self._session_factory() as db:
			row = db.get(SettingsRecord, SETTINGS_DOC_ID)
			current = json.loads(row.data_json or "{}") if row else {}
			current.update(values)
			if row is None:
				row = SettingsRecord(id=SETTINGS_DOC_ID)
			row.data_json = json.dumps(current)
			db.add(row)
			db.commit()
			return current


class SqlTtsCacheRepository(TtsCacheRepository):
	def __init__(self, session_factory: SessionFactory) -> None:
		self._session_factory = session_factory

	def get(self, cache_id: str, *, max_age: timedelta) -> Optional[VoiceLesson]:
		with self._session_factory() as db:
			row = db.get(TtsCacheRecord, cache_id)
			if row is None or utcnow() - row.created_at >= max_age:
				return None
			return VoiceLesson(question_audio=row.question_audio, answer_audio=row.answer_audio)

	def put(self, cache_id: str, lesson: VoiceLesson) -> None:
		with self._session_factory() as db:
			db.merge(
				TtsCacheRecord(
					cache_id=cache_id,
					question_audio=lesson.question_audio,
					answer_audio=lesson.answer_audio,
					created_at=utcnow(),
				)
			)
			db.commit()

	def purge_older_than(self, threshold: datetime) -> int:
		with self._session_factory() as db:
			res = db.execute(delete(TtsCacheRecord).where(TtsCacheRecord.created_at < threshold))
			db.commit()
			return res.rowcount or 0


class TodoRepository:
	def __init__(self, session_factory: SessionFactory) -> None:
		self._session_factory = session_factory

	def list_all(self) -> List[Todo]:
		with self._session_factory() as db:
			rows = db.execute(select(TodoRecord).order_by(TodoRecord.id)).scalars().all()
			return [Todo(id=r.id, task=r.task, completed=r.completed) for r in rows]

	def add(self, task: str) -> Todo:
		with self._session_factory() as db:
			row = TodoRecord(task=task, completed=False)
			db.add(row)
			db.commit()
			db.refresh(row)
			return Todo(id=row.id, task=row.task, completed=row.completed)

	def toggle(self, todo_id: int) -> Optional[Todo]:
		with self._session_factory() as db:
			row = db.get(TodoRecord, todo_id)
			if row is None:
				return None
			row.completed = not row.completed
			db.commit()
			return Todo(id=row.id, task=row.task, completed=row.completed)

	def delete(self, todo_id: int) -> bool:
		with self._session_factory() as db:
			res = db.execute(delete(TodoRecord).where(TodoRecord.id == todo_id))
			db.commit()
			return bool(res.rowcount)


class CampaignRepository:
	def __init__(self, session_factory: SessionFactory) -> None:
		self._session_factory = session_factory

	def list_all(self) -> List[Campaign]:
		with self._session_factory() as db:
			rows = db.execute(select(CampaignRecord).order_by(CampaignRecord.created_at.desc())).scalars().all()
			out: List[Campaign] = []
			for r in rows:
				analytics = json.loads(r.analytics_json) if r.analytics_json else None
				out.append(
					Campaign(
						id=r.id,
						subject=r.subject,
						body=r.body,
						status=r.status,
						recipients=r.recipients,
						date=r.date,
						analytics=CampaignAnalytics.model_validate(analytics) if analytics else None,
					)
				)
			return out

	def save(self, campaign: Campaign) -> Campaign:
		with self._session_factory() as db:
			db.merge(
				CampaignRecord(
					id=campaign.id,
					subject=campaign.subject,
					body=campaign.body,
					status=campaign.status,
					recipients=campaign.recipients,
					date=campaign.date,
					analytics_json=campaign.analytics.model_dump_json(by_alias=True) if campaign.analytics else None,
				)
			)
			db.commit()
		return campaign

	def delete(self, campaign_id: str) -> bool:
		with self._session_factory() as db:
			res = db.execute(delete(CampaignRecord).where(CampaignRecord.id == campaign_id))
			db.commit()
			return bool(res.rowcount)
