"""
journal_store.py - Firestore access for journal entries

Every entry lives at users/{uid}/journals/{entryId}. The owning uid is a
mandatory part of the address for every operation here, so a query can only
ever see one user's partition.

Failures from Firestore (or a missing client) surface as PersistenceError.
"""

import logging
from typing import Callable, List, Optional

from google.cloud import firestore

from .errors import PersistenceError
from .gcp_clients import get_firestore_client
from .models import JournalEntry

_logger = logging.getLogger(__name__)

# Firestore collection and subcollection names
FIRESTORE_USERS_COLLECTION = "users"
FIRESTORE_JOURNALS_SUBCOLLECTION = "journals"


class JournalStore:
    def __init__(self, client_factory: Callable[[], Optional[firestore.Client]] = get_firestore_client):
        self._client_factory = client_factory
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = self._client_factory()
        if self._client is None:
            raise PersistenceError("Could not connect to database.")
        return self._client

    def journals(self, user_id: str):
        """Collection reference for one user's partition."""
        if not user_id:
            raise PersistenceError("A user id is required to address journal entries.")
        client = self._get_client()
        return client.collection(FIRESTORE_USERS_COLLECTION).document(user_id).collection(FIRESTORE_JOURNALS_SUBCOLLECTION)

    def add_entry(self, user_id: str, mood: str, text: str, sentiment: str, ai_response: Optional[str] = None) -> str:
        """
        Append a new entry with a server-assigned timestamp.
        Returns the generated document id.
        """
        doc = JournalEntry.to_document(mood, text, sentiment, ai_response, firestore.SERVER_TIMESTAMP)
        try:
            # .add() auto-generates the document id, so identical entries never overwrite each other
            _update_time, doc_ref = self.journals(user_id).add(doc)
        except PersistenceError:
            raise
        except Exception as e:
            _logger.exception("Failed to save journal entry for user %s: %s", user_id, e)
            raise PersistenceError("Failed to save entry.") from e

        _logger.info("Saved journal entry %s for user %s", doc_ref.id, user_id)
        return doc_ref.id

    def list_entries(self, user_id: str) -> List[JournalEntry]:
        """All entries of one user, newest first."""
        try:
            query = self.journals(user_id).order_by("timestamp", direction=firestore.Query.DESCENDING)
            return [JournalEntry.from_document(snap.id, user_id, snap.to_dict() or {}) for snap in query.stream()]
        except PersistenceError:
            raise
        except Exception as e:
            _logger.exception("Failed to load journal entries for user %s: %s", user_id, e)
            raise PersistenceError("Failed to load entries.") from e
