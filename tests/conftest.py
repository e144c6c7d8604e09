from datetime import datetime, timedelta

import pytest
from google.cloud import firestore

from mindmosaic.errors import AuthenticationError, EnrichmentError, PersistenceError
from mindmosaic.models import AuthenticatedUser, JournalEntry
from mindmosaic.sessions import SessionRegistry


class FakeStore:
    """JournalStore stand-in keeping entries per user in memory."""

    def __init__(self):
        self.partitions = {}
        self.calls = []
        self.fail_add = False
        self.fail_list = False
        self._clock = datetime(2025, 1, 1, 12, 0, 0)
        self._next_id = 0

    def add_entry(self, user_id, mood, text, sentiment, ai_response=None):
        self.calls.append(("add", user_id))
        if self.fail_add:
            raise PersistenceError("Failed to save entry.")
        self._next_id += 1
        self._clock += timedelta(seconds=1)
        doc_id = f"entry-{self._next_id}"
        self.partitions.setdefault(user_id, []).append(
            JournalEntry(doc_id, user_id, mood, text, sentiment, ai_response, self._clock)
        )
        return doc_id

    def list_entries(self, user_id):
        self.calls.append(("list", user_id))
        if self.fail_list:
            raise PersistenceError("Failed to load entries.")
        return sorted(self.partitions.get(user_id, []), key=lambda e: e.timestamp, reverse=True)


class FakeGateway:
    def __init__(self, reply=None, error=None):
        self.reply = reply if reply is not None else {"aiResponse": "Thanks for sharing.", "sentiment": None, "success": True}
        self.error = error
        self.calls = []

    async def enrich(self, text, mood, caller):
        self.calls.append((text, mood, caller.uid if caller else None))
        if self.error is not None:
            raise self.error
        return self.reply


class FakeIdentityProvider:
    def __init__(self):
        self.users = {"amy@example.com": AuthenticatedUser(uid="uid-amy", email="amy@example.com", id_token="good-token")}

    async def sign_in(self, email, password):
        from mindmosaic.identity import IdentityError, validate_credentials
        validate_credentials(email, password)
        if email not in self.users or password != "secret123":
            raise IdentityError("INVALID_LOGIN_CREDENTIALS")
        return self.users[email]

    async def sign_up(self, email, password):
        from mindmosaic.identity import IdentityError, validate_credentials
        validate_credentials(email, password)
        if email in self.users:
            raise IdentityError("EMAIL_EXISTS")
        user = AuthenticatedUser(uid=f"uid-{len(self.users)}", email=email, id_token="good-token")
        self.users[email] = user
        return user

    async def sign_in_with_google(self, google_id_token, request_uri="http://localhost"):
        return AuthenticatedUser(uid="uid-google", email="g@example.com", id_token="good-token", provider="google.com")

    async def send_password_reset(self, email):
        return None

    def verify_id_token(self, id_token):
        if id_token != "good-token":
            raise AuthenticationError("User not authenticated")
        return self.users["amy@example.com"]


# --- Minimal Firestore client double for JournalStore tests ---

class _Snapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    def to_dict(self):
        return dict(self._data)


class _DocRef:
    def __init__(self, db, path):
        self._db = db
        self._path = path
        self.id = path[-1]

    def collection(self, name):
        return _CollectionRef(self._db, self._path + (name,))


class _Query:
    def __init__(self, docs):
        self._docs = docs

    def stream(self):
        return iter(self._docs)


class _CollectionRef:
    def __init__(self, db, path):
        self._db = db
        self._path = path

    def document(self, doc_id):
        return _DocRef(self._db, self._path + (doc_id,))

    def add(self, data):
        if self._db.fail_writes:
            raise RuntimeError("403 Missing or insufficient permissions.")
        self._db.counter += 1
        stored = {}
        for key, value in data.items():
            stored[key] = self._db.now() if value is firestore.SERVER_TIMESTAMP else value
        doc_id = f"auto{self._db.counter}"
        self._db.docs.setdefault(self._path, {})[doc_id] = stored
        return stored.get("timestamp"), _DocRef(self._db, self._path + (doc_id,))

    def order_by(self, field, direction=None):
        if self._db.fail_reads:
            raise RuntimeError("503 Service unavailable")
        items = list(self._db.docs.get(self._path, {}).items())
        items.sort(key=lambda kv: kv[1][field], reverse=direction == firestore.Query.DESCENDING)
        return _Query([_Snapshot(doc_id, data) for doc_id, data in items])


class FakeFirestoreClient:
    def __init__(self):
        self.docs = {}
        self.counter = 0
        self.fail_writes = False
        self.fail_reads = False
        self._clock = datetime(2025, 3, 1, 9, 0, 0)

    def now(self):
        self._clock += timedelta(minutes=1)
        return self._clock

    def collection(self, name):
        return _CollectionRef(self, (name,))


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def amy():
    return AuthenticatedUser(uid="uid-amy", email="amy@example.com", id_token="good-token")


@pytest.fixture
def signed_in_session(registry, amy):
    session = registry.start()
    session.auth.publish(amy)
    session.router.accept_consent()
    return session
