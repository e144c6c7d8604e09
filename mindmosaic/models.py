"""
models.py - Plain data types shared by the journal service

- Mood: the fixed set of labels a user can pick.
- AuthenticatedUser: the identity handle published by the identity provider.
- JournalEntry: one durable journal document and its Firestore mapping.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import pytz


class Mood(str, Enum):
    HAPPY = "Happy"
    SAD = "Sad"
    NEUTRAL = "Neutral"
    ANGRY = "Angry"
    ANXIOUS = "Anxious"

    @classmethod
    def labels(cls):
        return [m.value for m in cls]

    @classmethod
    def parse(cls, value: Any) -> Optional["Mood"]:
        """Return the Mood for an exact label match, or None."""
        if isinstance(value, cls):
            return value
        for m in cls:
            if m.value == value:
                return m
        return None


@dataclass
class AuthenticatedUser:
    uid: str
    email: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None
    provider: str = "password"

    def public_dict(self) -> Dict[str, Any]:
        # Tokens never leave the server in API responses
        return {"uid": self.uid, "email": self.email, "provider": self.provider}


@dataclass
class JournalEntry:
    id: str
    user_id: str
    mood: str
    text: str
    sentiment: str
    ai_response: Optional[str] = None
    timestamp: Optional[datetime] = None

    @staticmethod
    def to_document(mood: str, text: str, sentiment: str, ai_response: Optional[str], timestamp: Any) -> Dict[str, Any]:
        """
        Build the Firestore document body for a new entry.
        `aiResponse` is omitted entirely when there is no feedback text.
        """
        doc = {"mood": mood, "text": text, "sentiment": sentiment, "timestamp": timestamp}
        if ai_response:
            doc["aiResponse"] = ai_response
        return doc

    @classmethod
    def from_document(cls, doc_id: str, user_id: str, data: Dict[str, Any]) -> "JournalEntry":
        mood = data.get("mood", "")
        timestamp = data.get("timestamp")
        return cls(
            id=doc_id,
            user_id=user_id,
            mood=mood,
            text=data.get("text", ""),
            # Older documents may lack a sentiment; fall back to the mood
            sentiment=data.get("sentiment") or mood,
            # Legacy clients wrote "" for missing feedback
            ai_response=data.get("aiResponse") or None,
            timestamp=timestamp if isinstance(timestamp, datetime) else None,
        )

    def to_api(self, tz_name: str = "UTC") -> Dict[str, Any]:
        """Serialize for API responses, rendering the timestamp in the display timezone."""
        created_at = None
        if self.timestamp is not None:
            ts = self.timestamp
            if ts.tzinfo is None:
                ts = ts.replace(tzinfo=pytz.utc)
            created_at = ts.astimezone(pytz.timezone(tz_name)).isoformat()
        return {
            "id": self.id,
            "mood": self.mood,
            "text": self.text,
            "sentiment": self.sentiment,
            "aiResponse": self.ai_response,
            "created_at": created_at,
        }
