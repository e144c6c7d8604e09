"""
deps.py - Shared service objects and FastAPI dependency helpers

The session registry, identity provider and write pipeline are created once
per process and handed to endpoints through Depends(), so tests can replace
them with app.dependency_overrides.
"""

from fastapi import HTTPException

from .enrichment import default_gateway
from .errors import (
    AuthenticationError,
    InvalidTransitionError,
    PersistenceError,
    ValidationError,
)
from .identity import FirebaseIdentityProvider
from .journal_store import JournalStore
from .pipeline import JournalWritePipeline
from .sessions import Session, SessionRegistry

_registry = SessionRegistry()
_identity_provider = FirebaseIdentityProvider()
_pipeline = None


def get_registry() -> SessionRegistry:
    return _registry


def get_identity_provider() -> FirebaseIdentityProvider:
    return _identity_provider


def get_pipeline() -> JournalWritePipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = JournalWritePipeline(JournalStore(), default_gateway())
    return _pipeline


def require_session(registry: SessionRegistry, session_id: str) -> Session:
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found or expired")
    return session


def as_http_exception(e: Exception) -> HTTPException:
    """Translate a service error into the HTTP status the endpoints use."""
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, AuthenticationError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, PersistenceError):
        return HTTPException(status_code=503, detail=f"{e} Try again.")
    return HTTPException(status_code=500, detail="An internal error occurred.")
