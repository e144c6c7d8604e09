"""
sessions.py - In-memory client sessions

A Session is the runtime state of one client: its AuthState stream, its
ViewRouter and the entry list currently displayed. Sessions are never
persisted; after a restart the client presents its ID token to a new session
and the state is derived again from the identity provider.

The registry subscribes the router to the session's AuthState when the
session starts and cancels that subscription when the session ends, either
explicitly or after SESSION_TIMEOUT_MINUTES of inactivity.
"""

import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from .identity import AuthState
from .models import AuthenticatedUser, JournalEntry
from .view_router import ViewRouter

_logger = logging.getLogger(__name__)

SESSION_TIMEOUT_MINUTES = int(os.environ.get("SESSION_TIMEOUT_MINUTES", "30"))


@dataclass
class Session:
    session_id: str
    auth: AuthState = field(default_factory=AuthState)
    router: ViewRouter = field(default_factory=ViewRouter)
    entries: List[JournalEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_active: datetime = field(default_factory=datetime.utcnow)
    unsubscribe: Optional[Callable[[], None]] = None

    @property
    def user(self) -> Optional[AuthenticatedUser]:
        return self.router.user

    def touch(self) -> None:
        self.last_active = datetime.utcnow()

    def summary(self) -> dict:
        return {
            "session_id": self.session_id,
            "screen": self.router.screen.value,
            "user": self.user.public_dict() if self.user else None,
            "consented": self.router.consented,
            "crisis": self.router.crisis,
            "entry_count": len(self.entries),
            "created_at": self.created_at.isoformat() + "Z",
            "last_active": self.last_active.isoformat() + "Z",
        }


class SessionRegistry:
    def __init__(self, timeout_minutes: int = SESSION_TIMEOUT_MINUTES):
        self._sessions: Dict[str, Session] = {}
        self._timeout = timedelta(minutes=timeout_minutes)

    def __len__(self):
        return len(self._sessions)

    def start(self) -> Session:
        """Create a session and wire its router to its auth-state stream."""
        self.purge_expired()
        session_id = f"session_{int(datetime.utcnow().timestamp() * 1000)}_{uuid.uuid4().hex[:6]}"
        session = Session(session_id=session_id)

        def _on_auth_change(user: Optional[AuthenticatedUser]):
            session.router.on_auth_state_changed(user)
            if user is None:
                session.entries = []

        session.unsubscribe = session.auth.subscribe(_on_auth_change)
        self._sessions[session_id] = session
        _logger.info("Started new session %s", session_id)
        return session

    def get(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self._expired(session):
            self.end(session_id)
            return None
        session.touch()
        return session

    def end(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        if session.unsubscribe:
            session.unsubscribe()
            session.unsubscribe = None
        _logger.info("Session ended: %s", session_id)
        return True

    def purge_expired(self) -> int:
        expired = [sid for sid, s in self._sessions.items() if self._expired(s)]
        for sid in expired:
            self.end(sid)
        if expired:
            _logger.info("Purged %d idle sessions", len(expired))
        return len(expired)

    def _expired(self, session: Session) -> bool:
        return datetime.utcnow() - session.last_active > self._timeout
