"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import math
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Protocol

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    String,
    Text,
    create_engine,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from timecapsule.types import MessageType, to_iso

# Fields a director may change after creation. Delivery state is not among them.
MESSAGE_MUTABLE_FIELDS = (
    "title",
    "content",
    "type",
    "delivery_date",
    "media_url",
    "ai_prompt",
)
CHILD_MUTABLE_FIELDS = ("name", "birth_date", "gender")

# Moment categories offered to every director, keyed by id.
DEFAULT_CATEGORIES = {
    "life-advice": "Life Advice",
    "celebrations": "Celebrations and Encouragement",
    "milestones": "Milestones",
    "emotional-support": "Emotional Support",
    "just-because": "Just Because",
}
CATEGORY_EMOJIS = {
    "Life Advice": "\U0001F4AC",
    "Celebrations and Encouragement": "\U0001F389",
    "Milestones": "\U0001F393",
    "Emotional Support": "\U0001F60A",
    "Just Because": "\u2764\ufe0f",
}
DEFAULT_CATEGORY_EMOJI = "\U0001F4DD"


class DbClient(Protocol):
    """Interface for database access."""

    def create_child(
        self,
        user_id: str,
        *,
        name: str,
        birth_date: str,
        gender: Optional[str] = None,
    ) -> "ChildRecord":
        ...

    def get_child(self, child_id: str, user_id: str) -> Optional["ChildRecord"]:
        ...

    def list_children(self, user_id: str) -> list["ChildRecord"]:
        ...

    def update_child(
        self, child_id: str, user_id: str, changes: dict
    ) -> Optional["ChildRecord"]:
        ...

    def delete_child(self, child_id: str, user_id: str) -> bool:
        ...

    def create_message(
        self,
        user_id: str,
        *,
        child_id: str,
        title: str,
        content: str,
        type: MessageType,
        delivery_date: float,
        media_url: Optional[str] = None,
        ai_prompt: Optional[str] = None,
    ) -> "MessageRecord":
        ...

    def get_message(
        self, message_id: str, user_id: str
    ) -> Optional["MessageRecord"]:
        ...

    def list_messages(
        self, user_id: str, child_id: Optional[str] = None
    ) -> list["MessageRecord"]:
        ...

    def update_message(
        self, message_id: str, user_id: str, changes: dict
    ) -> Optional["MessageRecord"]:
        ...

    def delete_message(self, message_id: str, user_id: str) -> bool:
        ...

    def find_due_messages(self, now: float) -> list["MessageRecord"]:
        ...

    def mark_delivered(self, message_id: str) -> bool:
        ...

    def create_invite_code(
        self,
        director_id: str,
        *,
        code: str,
        director_name: str,
        expires_at: float,
    ) -> Optional["InviteCodeRecord"]:
        """Store a new code. Returns None if the code string is already taken."""
        ...

    def get_invite_code(self, code_id: str) -> Optional["InviteCodeRecord"]:
        ...

    def find_invite_code(self, code: str) -> Optional["InviteCodeRecord"]:
        ...

    def list_invite_codes(self, director_id: str) -> list["InviteCodeRecord"]:
        ...

    def redeem_invite_code(self, code_id: str, actor_id: str, now: float) -> bool:
        """Mark an unused code used and link the actor to its director, atomically."""
        ...

    def delete_invite_code(self, code_id: str) -> bool:
        ...

    def list_categories(self) -> list["CategoryRecord"]:
        ...

    def list_director_categories(self, director_id: str) -> list["CategoryRecord"]:
        ...

    def save_director_categories(
        self, director_id: str, category_ids: list[str]
    ) -> tuple[int, int]:
        """Add selections. Returns (newly saved, already saved)."""
        ...


@dataclass
class ChildRecord:
    id: str
    user_id: str
    name: str
    birth_date: str
    gender: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "birth_date": self.birth_date,
            "gender": self.gender,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }


@dataclass
class MessageRecord:
    id: str
    user_id: str
    child_id: str
    title: str
    content: str
    type: MessageType
    delivery_date: float
    is_delivered: bool = False
    media_url: Optional[str] = None
    ai_prompt: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def is_due(self, now: float) -> bool:
        return not self.is_delivered and self.delivery_date <= now

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "child_id": self.child_id,
            "title": self.title,
            "content": self.content,
            "type": self.type.value,
            "delivery_date": to_iso(self.delivery_date),
            "is_delivered": self.is_delivered,
            "media_url": self.media_url,
            "ai_prompt": self.ai_prompt,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }


@dataclass
class InviteCodeRecord:
    id: str
    code: str
    director_id: str
    expires_at: float
    director_name: str = ""
    is_used: bool = False
    used_by: Optional[str] = None
    used_at: Optional[float] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "director_id": self.director_id,
            "expires_at": to_iso(self.expires_at),
            "is_used": self.is_used,
            "used_by": self.used_by,
            "used_at": to_iso(self.used_at) if self.used_at is not None else None,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }


@dataclass
class DirectorActorLink:
    director_id: str
    actor_id: str
    relationship: str = "Invited"
    created_at: float = field(default_factory=lambda: time.time())


@dataclass
class CategoryRecord:
    id: str
    name: str

    @property
    def emoji(self) -> str:
        return CATEGORY_EMOJIS.get(self.name, DEFAULT_CATEGORY_EMOJI)

    def as_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "emoji": self.emoji}


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.children: Dict[str, ChildRecord] = {}
        self.messages: Dict[str, MessageRecord] = {}
        self.invite_codes: Dict[str, InviteCodeRecord] = {}
        self.links: list[DirectorActorLink] = []
        self.categories: Dict[str, CategoryRecord] = {
            category_id: CategoryRecord(id=category_id, name=name)
            for category_id, name in DEFAULT_CATEGORIES.items()
        }
        self.director_categories: Dict[str, list[str]] = {}
        # The API and the scheduler touch the same dicts from different threads.
        self._lock = threading.RLock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.children.clear()
            self.messages.clear()
            self.invite_codes.clear()
            self.links.clear()
            self.director_categories.clear()

    def create_child(
        self,
        user_id: str,
        *,
        name: str,
        birth_date: str,
        gender: Optional[str] = None,
    ) -> ChildRecord:
        record = ChildRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            birth_date=birth_date,
            gender=gender,
        )
        with self._lock:
            self.children[record.id] = record
        return replace(record)

    def get_child(self, child_id: str, user_id: str) -> Optional[ChildRecord]:
        with self._lock:
            child = self.children.get(child_id)
            if not child or child.user_id != user_id:
                return None
            return replace(child)

    def list_children(self, user_id: str) -> list[ChildRecord]:
        with self._lock:
            children = [
                replace(c) for c in self.children.values() if c.user_id == user_id
            ]
        return sorted(children, key=lambda c: c.created_at, reverse=True)

    def update_child(
        self, child_id: str, user_id: str, changes: dict
    ) -> Optional[ChildRecord]:
        with self._lock:
            child = self.children.get(child_id)
            if not child or child.user_id != user_id:
                return None
            for key, value in changes.items():
                if key in CHILD_MUTABLE_FIELDS:
                    setattr(child, key, value)
            child.updated_at = time.time()
            return replace(child)

    def delete_child(self, child_id: str, user_id: str) -> bool:
        with self._lock:
            child = self.children.get(child_id)
            if not child or child.user_id != user_id:
                return False
            del self.children[child_id]
            for message_id in [
                m.id for m in self.messages.values() if m.child_id == child_id
            ]:
                del self.messages[message_id]
            return True

    def create_message(
        self,
        user_id: str,
        *,
        child_id: str,
        title: str,
        content: str,
        type: MessageType,
        delivery_date: float,
        media_url: Optional[str] = None,
        ai_prompt: Optional[str] = None,
    ) -> MessageRecord:
        record = MessageRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            child_id=child_id,
            title=title,
            content=content,
            type=MessageType(type),
            delivery_date=delivery_date,
            media_url=media_url,
            ai_prompt=ai_prompt,
        )
        with self._lock:
            self.messages[record.id] = record
        return replace(record)

    def get_message(self, message_id: str, user_id: str) -> Optional[MessageRecord]:
        with self._lock:
            message = self.messages.get(message_id)
            if not message or message.user_id != user_id:
                return None
            return replace(message)

    def list_messages(
        self, user_id: str, child_id: Optional[str] = None
    ) -> list[MessageRecord]:
        with self._lock:
            messages = [
                replace(m)
                for m in self.messages.values()
                if m.user_id == user_id and (child_id is None or m.child_id == child_id)
            ]
        return sorted(messages, key=lambda m: m.delivery_date)

    def update_message(
        self, message_id: str, user_id: str, changes: dict
    ) -> Optional[MessageRecord]:
        with self._lock:
            message = self.messages.get(message_id)
            if not message or message.user_id != user_id:
                return None
            for key, value in changes.items():
                if key not in MESSAGE_MUTABLE_FIELDS:
                    continue
                if key == "type":
                    value = MessageType(value)
                setattr(message, key, value)
            message.updated_at = time.time()
            return replace(message)

    def delete_message(self, message_id: str, user_id: str) -> bool:
        with self._lock:
            message = self.messages.get(message_id)
            if not message or message.user_id != user_id:
                return False
            del self.messages[message_id]
            return True

    def find_due_messages(self, now: float) -> list[MessageRecord]:
        with self._lock:
            return [replace(m) for m in self.messages.values() if m.is_due(now)]

    def mark_delivered(self, message_id: str) -> bool:
        with self._lock:
            message = self.messages.get(message_id)
            if not message:
                return False
            message.is_delivered = True
            message.updated_at = time.time()
            return True

    def create_invite_code(
        self,
        director_id: str,
        *,
        code: str,
        director_name: str,
        expires_at: float,
    ) -> Optional[InviteCodeRecord]:
        with self._lock:
            if any(c.code == code for c in self.invite_codes.values()):
                return None
            record = InviteCodeRecord(
                id=str(uuid.uuid4()),
                code=code,
                director_id=director_id,
                director_name=director_name,
                expires_at=expires_at,
            )
            self.invite_codes[record.id] = record
            return replace(record)

    def get_invite_code(self, code_id: str) -> Optional[InviteCodeRecord]:
        with self._lock:
            record = self.invite_codes.get(code_id)
            return replace(record) if record else None

    def find_invite_code(self, code: str) -> Optional[InviteCodeRecord]:
        with self._lock:
            for record in self.invite_codes.values():
                if record.code == code:
                    return replace(record)
        return None

    def list_invite_codes(self, director_id: str) -> list[InviteCodeRecord]:
        with self._lock:
            codes = [
                replace(c)
                for c in self.invite_codes.values()
                if c.director_id == director_id
            ]
        return sorted(codes, key=lambda c: c.created_at, reverse=True)

    def redeem_invite_code(self, code_id: str, actor_id: str, now: float) -> bool:
        with self._lock:
            record = self.invite_codes.get(code_id)
            if not record or record.is_used:
                return False
            record.is_used = True
            record.used_by = actor_id
            record.used_at = now
            record.updated_at = now
            self.links.append(
                DirectorActorLink(
                    director_id=record.director_id, actor_id=actor_id, created_at=now
                )
            )
            return True

    def delete_invite_code(self, code_id: str) -> bool:
        with self._lock:
            return self.invite_codes.pop(code_id, None) is not None

    def list_categories(self) -> list[CategoryRecord]:
        with self._lock:
            categories = [replace(c) for c in self.categories.values()]
        return sorted(categories, key=lambda c: c.name)

    def list_director_categories(self, director_id: str) -> list[CategoryRecord]:
        with self._lock:
            return [
                replace(self.categories[category_id])
                for category_id in self.director_categories.get(director_id, [])
                if category_id in self.categories
            ]

    def save_director_categories(
        self, director_id: str, category_ids: list[str]
    ) -> tuple[int, int]:
        with self._lock:
            selected = self.director_categories.setdefault(director_id, [])
            unique_ids = list(dict.fromkeys(category_ids))
            existing = [c for c in unique_ids if c in selected]
            new = [c for c in unique_ids if c not in selected]
            selected.extend(new)
            return len(new), len(existing)


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(
        self, database_url: str, statement_timeout_seconds: Optional[float] = None
    ):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # Share the single in-memory database across threads.
            engine_kwargs = {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            }
        else:
            engine_kwargs = {"pool_pre_ping": True, "pool_recycle": 1800}
        if statement_timeout_seconds and database_url.startswith("postgresql"):
            # Bound the server side too, so an abandoned call frees its connection.
            timeout_ms = int(statement_timeout_seconds * 1000)
            engine_kwargs["pool_timeout"] = statement_timeout_seconds
            engine_kwargs["connect_args"] = {
                "connect_timeout": max(1, math.ceil(statement_timeout_seconds)),
                "options": f"-c statement_timeout={timeout_ms}",
            }
        self.engine = create_engine(database_url, future=True, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)
        self._seed_categories()

    def _to_child_record(self, row: "ChildRow") -> ChildRecord:
        return ChildRecord(
            id=row.id,
            user_id=row.user_id,
            name=row.name,
            birth_date=row.birth_date,
            gender=row.gender,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_message_record(self, row: "MessageRow") -> MessageRecord:
        return MessageRecord(
            id=row.id,
            user_id=row.user_id,
            child_id=row.child_id,
            title=row.title,
            content=row.content,
            type=MessageType(row.type),
            delivery_date=row.delivery_date,
            is_delivered=bool(row.is_delivered),
            media_url=row.media_url,
            ai_prompt=row.ai_prompt,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _seed_categories(self) -> None:
        with self.Session() as session:
            known = set(session.execute(select(CategoryRow.id)).scalars())
            session.add_all(
                CategoryRow(id=category_id, name=name)
                for category_id, name in DEFAULT_CATEGORIES.items()
                if category_id not in known
            )
            session.commit()

    def _to_invite_code_record(self, row: "InviteCodeRow") -> InviteCodeRecord:
        return InviteCodeRecord(
            id=row.id,
            code=row.code,
            director_id=row.director_id,
            director_name=row.director_name or "",
            expires_at=row.expires_at,
            is_used=bool(row.is_used),
            used_by=row.used_by,
            used_at=row.used_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _owned_child(
        self, session: Session, child_id: str, user_id: str
    ) -> Optional["ChildRow"]:
        row = session.get(ChildRow, child_id)
        if not row or row.user_id != user_id:
            return None
        return row

    def _owned_message(
        self, session: Session, message_id: str, user_id: str
    ) -> Optional["MessageRow"]:
        row = session.get(MessageRow, message_id)
        if not row or row.user_id != user_id:
            return None
        return row

    def create_child(
        self,
        user_id: str,
        *,
        name: str,
        birth_date: str,
        gender: Optional[str] = None,
    ) -> ChildRecord:
        now = time.time()
        with self.Session() as session:
            row = ChildRow(
                id=str(uuid.uuid4()),
                user_id=user_id,
                name=name,
                birth_date=birth_date,
                gender=gender,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_child_record(row)

    def get_child(self, child_id: str, user_id: str) -> Optional[ChildRecord]:
        with self.Session() as session:
            row = self._owned_child(session, child_id, user_id)
            return self._to_child_record(row) if row else None

    def list_children(self, user_id: str) -> list[ChildRecord]:
        with self.Session() as session:
            stmt = (
                select(ChildRow)
                .where(ChildRow.user_id == user_id)
                .order_by(ChildRow.created_at.desc())
            )
            return [self._to_child_record(row) for row in session.execute(stmt).scalars()]

    def update_child(
        self, child_id: str, user_id: str, changes: dict
    ) -> Optional[ChildRecord]:
        with self.Session() as session:
            row = self._owned_child(session, child_id, user_id)
            if not row:
                return None
            for key, value in changes.items():
                if key in CHILD_MUTABLE_FIELDS:
                    setattr(row, key, value)
            row.updated_at = time.time()
            session.commit()
            session.refresh(row)
            return self._to_child_record(row)

    def delete_child(self, child_id: str, user_id: str) -> bool:
        with self.Session() as session:
            row = self._owned_child(session, child_id, user_id)
            if not row:
                return False
            session.query(MessageRow).filter(MessageRow.child_id == child_id).delete(
                synchronize_session=False
            )
            session.delete(row)
            session.commit()
            return True

    def create_message(
        self,
        user_id: str,
        *,
        child_id: str,
        title: str,
        content: str,
        type: MessageType,
        delivery_date: float,
        media_url: Optional[str] = None,
        ai_prompt: Optional[str] = None,
    ) -> MessageRecord:
        now = time.time()
        with self.Session() as session:
            row = MessageRow(
                id=str(uuid.uuid4()),
                user_id=user_id,
                child_id=child_id,
                title=title,
                content=content,
                type=MessageType(type).value,
                delivery_date=delivery_date,
                is_delivered=False,
                media_url=media_url,
                ai_prompt=ai_prompt,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_message_record(row)

    def get_message(self, message_id: str, user_id: str) -> Optional[MessageRecord]:
        with self.Session() as session:
            row = self._owned_message(session, message_id, user_id)
            return self._to_message_record(row) if row else None

    def list_messages(
        self, user_id: str, child_id: Optional[str] = None
    ) -> list[MessageRecord]:
        with self.Session() as session:
            stmt = select(MessageRow).where(MessageRow.user_id == user_id)
            if child_id is not None:
                stmt = stmt.where(MessageRow.child_id == child_id)
            stmt = stmt.order_by(MessageRow.delivery_date.asc())
            return [
                self._to_message_record(row) for row in session.execute(stmt).scalars()
            ]

    def update_message(
        self, message_id: str, user_id: str, changes: dict
    ) -> Optional[MessageRecord]:
        with self.Session() as session:
            row = self._owned_message(session, message_id, user_id)
            if not row:
                return None
            for key, value in changes.items():
                if key not in MESSAGE_MUTABLE_FIELDS:
                    continue
                if key == "type":
                    value = MessageType(value).value
                setattr(row, key, value)
            row.updated_at = time.time()
            session.commit()
            session.refresh(row)
            return self._to_message_record(row)

    def delete_message(self, message_id: str, user_id: str) -> bool:
        with self.Session() as session:
            row = self._owned_message(session, message_id, user_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def find_due_messages(self, now: float) -> list[MessageRecord]:
        with self.Session() as session:
            stmt = select(MessageRow).where(
                MessageRow.is_delivered.is_(False),
                MessageRow.delivery_date <= now,
            )
            return [
                self._to_message_record(row) for row in session.execute(stmt).scalars()
            ]

    def mark_delivered(self, message_id: str) -> bool:
        with self.Session() as session:
            result = session.execute(
                update(MessageRow)
                .where(MessageRow.id == message_id)
                .values(is_delivered=True, updated_at=time.time())
            )
            session.commit()
            return (result.rowcount or 0) > 0

    def create_invite_code(
        self,
        director_id: str,
        *,
        code: str,
        director_name: str,
        expires_at: float,
    ) -> Optional[InviteCodeRecord]:
        now = time.time()
        with self.Session() as session:
            row = InviteCodeRow(
                id=str(uuid.uuid4()),
                code=code,
                director_id=director_id,
                director_name=director_name,
                expires_at=expires_at,
                is_used=False,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                # Unique constraint on code.
                session.rollback()
                return None
            session.refresh(row)
            return self._to_invite_code_record(row)

    def get_invite_code(self, code_id: str) -> Optional[InviteCodeRecord]:
        with self.Session() as session:
            row = session.get(InviteCodeRow, code_id)
            return self._to_invite_code_record(row) if row else None

    def find_invite_code(self, code: str) -> Optional[InviteCodeRecord]:
        with self.Session() as session:
            row = session.execute(
                select(InviteCodeRow).where(InviteCodeRow.code == code)
            ).scalar_one_or_none()
            return self._to_invite_code_record(row) if row else None

    def list_invite_codes(self, director_id: str) -> list[InviteCodeRecord]:
        with self.Session() as session:
            stmt = (
                select(InviteCodeRow)
                .where(InviteCodeRow.director_id == director_id)
                .order_by(InviteCodeRow.created_at.desc())
            )
            return [
                self._to_invite_code_record(row)
                for row in session.execute(stmt).scalars()
            ]

    def redeem_invite_code(self, code_id: str, actor_id: str, now: float) -> bool:
        with self.Session() as session:
            result = session.execute(
                update(InviteCodeRow)
                .where(InviteCodeRow.id == code_id, InviteCodeRow.is_used.is_(False))
                .values(is_used=True, used_by=actor_id, used_at=now, updated_at=now)
            )
            if not result.rowcount:
                session.rollback()
                return False
            director_id = session.get(InviteCodeRow, code_id).director_id
            session.add(
                DirectorActorRow(
                    id=str(uuid.uuid4()),
                    director_id=director_id,
                    actor_id=actor_id,
                    relationship="Invited",
                    created_at=now,
                )
            )
            session.commit()
            return True

    def delete_invite_code(self, code_id: str) -> bool:
        with self.Session() as session:
            row = session.get(InviteCodeRow, code_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def list_categories(self) -> list[CategoryRecord]:
        with self.Session() as session:
            stmt = select(CategoryRow).order_by(CategoryRow.name)
            return [
                CategoryRecord(id=row.id, name=row.name)
                for row in session.execute(stmt).scalars()
            ]

    def list_director_categories(self, director_id: str) -> list[CategoryRecord]:
        with self.Session() as session:
            stmt = (
                select(CategoryRow)
                .join(
                    DirectorCategoryRow,
                    DirectorCategoryRow.category_id == CategoryRow.id,
                )
                .where(DirectorCategoryRow.director_id == director_id)
                .order_by(DirectorCategoryRow.created_at)
            )
            return [
                CategoryRecord(id=row.id, name=row.name)
                for row in session.execute(stmt).scalars()
            ]

    def save_director_categories(
        self, director_id: str, category_ids: list[str]
    ) -> tuple[int, int]:
        unique_ids = list(dict.fromkeys(category_ids))
        with self.Session() as session:
            existing = set(
                session.execute(
                    select(DirectorCategoryRow.category_id).where(
                        DirectorCategoryRow.director_id == director_id,
                        DirectorCategoryRow.category_id.in_(unique_ids),
                    )
                ).scalars()
            )
            new = [c for c in unique_ids if c not in existing]
            now = time.time()
            session.add_all(
                DirectorCategoryRow(
                    director_id=director_id, category_id=category_id, created_at=now
                )
                for category_id in new
            )
            session.commit()
            return len(new), len(existing)


Base = declarative_base()


class ChildRow(Base):
    __tablename__ = "children"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    birth_date = Column(String, nullable=False)
    gender = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class MessageRow(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    child_id = Column(
        String, ForeignKey("children.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    type = Column(String, nullable=False)
    delivery_date = Column(Float, nullable=False, index=True)
    is_delivered = Column(Boolean, nullable=False, default=False, index=True)
    media_url = Column(String, nullable=True)
    ai_prompt = Column(Text, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class InviteCodeRow(Base):
    __tablename__ = "invite_codes"

    id = Column(String, primary_key=True)
    code = Column(String, nullable=False, unique=True)
    director_id = Column(String, nullable=False, index=True)
    director_name = Column(String, nullable=False, default="")
    expires_at = Column(Float, nullable=False)
    is_used = Column(Boolean, nullable=False, default=False)
    used_by = Column(String, nullable=True)
    used_at = Column(Float, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class DirectorActorRow(Base):
    __tablename__ = "director_actor"

    id = Column(String, primary_key=True)
    director_id = Column(String, nullable=False, index=True)
    actor_id = Column(String, nullable=False, index=True)
    relationship = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, unique=True)


class DirectorCategoryRow(Base):
    __tablename__ = "director_categories"

    director_id = Column(String, primary_key=True)
    category_id = Column(
        String, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True
    )
    created_at = Column(Float, nullable=False)
