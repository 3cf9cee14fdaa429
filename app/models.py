"""SQLAlchemy ORM models for the URL shortener application.

This module defines the database schema using SQLAlchemy declarative models
for short-code mappings and the per-redirect visit log.

Data Model Layout
=================
::
    urls table
    ├─ code (VARCHAR(20) PRIMARY KEY)
    ├─ original_url (TEXT NOT NULL)
    ├─ created_at (TIMESTAMPTZ NOT NULL)
    └─ expires_at (TIMESTAMPTZ NULL)

    visits table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ url_code (VARCHAR(20) NOT NULL, FK urls.code, INDEXED)
    ├─ ip_address (TEXT NULL)
    ├─ user_agent (TEXT NULL)
    └─ visited_at (TIMESTAMPTZ NOT NULL)

Class Relationship Diagram
=========================
::
    UrlMapping 1 ──── * Visit
    (no cascading delete; visits outlive an expired mapping)

How to Use
===========
**Step 1 — Import**::
    from app.models import UrlMapping, Visit

**Step 2 — Create a new mapping**::
    mapping = UrlMapping(code="abc123", original_url="https://example.com",
                         created_at=utcnow())
    db.add(mapping)
    await db.commit()

**Step 3 — Query visits**::
    result = await db.execute(
        select(Visit).where(Visit.url_code == "abc123").order_by(Visit.visited_at.desc())
    )
    visits = result.scalars().all()

Key Behaviours
===============
- code is the primary key, so the backend rejects duplicate codes on insert.
- created_at is set by the application once and never updated.
- expires_at marks a mapping inactive for redirects; rows are never deleted.
- Backends without timezone support hand back naive datetimes; callers
  normalise them to UTC with ``as_utc``.

Classes:
    UrlMapping:  A short code and its target URL.
    Visit:  One recorded redirect for a short code.
"""

import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

__all__ = ["UrlMapping", "Visit", "as_utc", "utcnow"]

CODE_MAX_LENGTH = 20


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


class UrlMapping(Base):
    __tablename__ = "urls"

    code: Mapped[str] = mapped_column(String(CODE_MAX_LENGTH), primary_key=True)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def is_expired(self, now: datetime.datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return as_utc(self.expires_at) < (now or utcnow())

    def __repr__(self) -> str:
        return f"<UrlMapping(code='{self.code}', expires_at={self.expires_at})>"


class Visit(Base):
    __tablename__ = "visits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url_code: Mapped[str] = mapped_column(
        String(CODE_MAX_LENGTH), ForeignKey("urls.code"), index=True, nullable=False
    )
    ip_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    visited_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<Visit(id={self.id}, url_code='{self.url_code}', visited_at={self.visited_at})>"
