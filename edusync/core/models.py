"""
Core DB models: persisted session (token + user) per profile.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import Column, String, DateTime, Text, JSON, select

from edusync.core.db import Base, session_scope


def _utc_now() -> datetime:
    """UTC now as naive datetime for DateTime(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StoredSession(Base):
    """Bearer token and serialized user for one profile (the per-tab session storage)."""
    __tablename__ = "stored_sessions"

    profile = Column(String(255), primary_key=True)
    token = Column(Text, nullable=True)
    user = Column(JSON, nullable=True)  # {id, name, email, role}
    created_at = Column(DateTime(timezone=False), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=False), default=_utc_now, onupdate=_utc_now, nullable=False)


def load_stored_session(profile: str) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
    """Return (token, user) for profile; (None, None) when nothing is stored."""
    with session_scope() as session:
        row = session.execute(
            select(StoredSession).where(StoredSession.profile == profile)
        ).scalars().first()
        if row is None:
            return None, None
        return row.token, row.user


def save_stored_session(profile: str, token: Optional[str], user: Optional[Dict[str, Any]]) -> None:
    """Create or update the row for profile."""
    with session_scope() as session:
        row = session.execute(
            select(StoredSession).where(StoredSession.profile == profile)
        ).scalars().first()
        now = _utc_now()
        if row:
            row.token = token
            row.user = user
            row.updated_at = now
        else:
            session.add(StoredSession(
                profile=profile,
                token=token,
                user=user,
                created_at=now,
                updated_at=now,
            ))


def clear_stored_session(profile: str) -> None:
    """Remove token and user for profile."""
    with session_scope() as session:
        row = session.execute(
            select(StoredSession).where(StoredSession.profile == profile)
        ).scalars().first()
        if row:
            session.delete(row)
