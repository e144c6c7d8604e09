"""
pipeline.py - Journal entry write pipeline

submit_entry(session, mood, text):
    validate -> enrich (best-effort) -> persist -> refresh the displayed list

- Validation failures raise before any gateway or Firestore call.
- Any enrichment failure is logged and the entry is saved with
  sentiment = mood and no feedback text.
- A failed write raises PersistenceError and the list is not re-read.
- A failed re-read after a good write is reported on the result; the write stands.
- If the session signs out or changes user during enrichment, nothing is written
  and AuthenticationError is raised.
- Not idempotent: two identical submissions are two entries.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .errors import AuthenticationError, MoodJournalError, ValidationError
from .journal_store import JournalStore
from .models import JournalEntry, Mood
from .safety import detect_safety
from .sessions import Session

_logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    entry: JournalEntry
    entries: List[JournalEntry] = field(default_factory=list)
    refresh_error: Optional[str] = None
    safety_flag: bool = False
    safety_keyword: Optional[str] = None


class JournalWritePipeline:
    def __init__(self, store: JournalStore, gateway: Any):
        self.store = store
        self.gateway = gateway

    @staticmethod
    def validate(session: Session, mood: Any, text: Any) -> Mood:
        if session.user is None:
            raise AuthenticationError("Please log in first!")
        parsed = Mood.parse(mood)
        if parsed is None:
            raise ValidationError(f"Mood must be one of: {', '.join(Mood.labels())}.")
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Please select a mood and write something.")
        return parsed

    async def _enrich(self, session: Session, mood: Mood, text: str):
        """Returns (sentiment, ai_response); never raises."""
        try:
            reply = await self.gateway.enrich(text, mood.value, session.user)
        except Exception as e:
            _logger.warning("AI analysis failed, continuing without it: %s", e)
            return mood.value, None

        if not isinstance(reply, dict):
            _logger.warning("AI analysis returned %s instead of a dict, ignoring it", type(reply).__name__)
            return mood.value, None
        return reply.get("sentiment") or mood.value, reply.get("aiResponse") or None

    async def submit_entry(self, session: Session, mood: Any, text: Any) -> SubmissionResult:
        parsed = self.validate(session, mood, text)
        user = session.user

        sentiment, ai_response = await self._enrich(session, parsed, text)

        # The session may have signed out or switched user while the AI call was in flight
        if session.user is None or session.user.uid != user.uid:
            _logger.info("Discarding submission for user %s: session identity changed during enrichment", user.uid)
            raise AuthenticationError("Signed out before the entry was saved.")

        # Raises PersistenceError; nothing below runs if the write fails
        entry_id = self.store.add_entry(user.uid, parsed.value, text, sentiment, ai_response)
        entry = JournalEntry(
            id=entry_id, user_id=user.uid, mood=parsed.value, text=text,
            sentiment=sentiment, ai_response=ai_response,
        )
        result = SubmissionResult(entry=entry)
        result.safety_flag, result.safety_keyword = detect_safety(text)

        try:
            result.entries = self.store.list_entries(user.uid)
            if session.user is not None and session.user.uid == user.uid:
                session.entries = result.entries
            # Use the stored copy so the returned entry carries the server timestamp
            for stored in result.entries:
                if stored.id == entry_id:
                    result.entry = stored
                    break
        except MoodJournalError as e:
            _logger.warning("Entry %s saved but refreshing the list failed: %s", entry_id, e)
            result.refresh_error = str(e)
            if session.user is not None and session.user.uid == user.uid:
                result.entries = list(session.entries)

        return result

    def load_entries(self, session: Session) -> List[JournalEntry]:
        """Re-read the caller's entries, newest first, and make them the displayed list."""
        if session.user is None:
            raise AuthenticationError("Please log in first!")
        entries = self.store.list_entries(session.user.uid)
        session.entries = entries
        return entries
