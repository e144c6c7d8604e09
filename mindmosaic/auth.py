"""
auth.py - Authentication endpoints for the mood journal

Each endpoint acts on one client session (session_id form field):
1. Signup / Login:
   - Validates email format and minimum password length locally.
   - Calls the identity provider (Firebase Authentication).
   - Publishes the signed-in user on the session's auth-state stream, which
     moves the session's router to the consent screen.
   - Preloads the user's journal list (best-effort).
2. Google sign-in: same flow with a Google ID token.
3. Password reset: asks the provider to send a reset email.
4. Logout: publishes "signed out"; the router returns to the auth screen.

Provider rejections come back as 401 with a friendly message.
"""

import logging

from fastapi import APIRouter, Depends, Form, HTTPException

from .deps import (
    as_http_exception,
    get_identity_provider,
    get_pipeline,
    get_registry,
    require_session,
)
from .errors import MoodJournalError
from .identity import FirebaseIdentityProvider
from .models import AuthenticatedUser
from .pipeline import JournalWritePipeline
from .sessions import Session, SessionRegistry

_logger = logging.getLogger(__name__)

# Create a FastAPI router to group authentication endpoints
router = APIRouter()


def _signed_in(session: Session, user: AuthenticatedUser, pipeline: JournalWritePipeline, message: str) -> dict:
    session.auth.publish(user)
    try:
        pipeline.load_entries(session)
    except MoodJournalError as e:
        # The list can be reloaded later; sign-in itself succeeded
        _logger.warning("Could not preload entries for user %s: %s", user.uid, e)
    return {
        "status": "success",
        "message": message,
        "screen": session.router.screen.value,
        "user": user.public_dict(),
    }


@router.post("/signup")
async def signup(
    session_id: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    registry: SessionRegistry = Depends(get_registry),
    provider: FirebaseIdentityProvider = Depends(get_identity_provider),
    pipeline: JournalWritePipeline = Depends(get_pipeline),
):
    session = require_session(registry, session_id)
    try:
        user = await provider.sign_up(email, password)
    except MoodJournalError as e:
        _logger.warning("Signup failed: %s", e)
        raise as_http_exception(e)

    _logger.info("New user created successfully: %s", user.uid)
    return _signed_in(session, user, pipeline, f"Account created, welcome {user.email}")


@router.post("/login")
async def login(
    session_id: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    registry: SessionRegistry = Depends(get_registry),
    provider: FirebaseIdentityProvider = Depends(get_identity_provider),
    pipeline: JournalWritePipeline = Depends(get_pipeline),
):
    session = require_session(registry, session_id)
    try:
        user = await provider.sign_in(email, password)
    except MoodJournalError as e:
        _logger.warning("Login failed: %s", e)
        raise as_http_exception(e)

    _logger.info("User logged in successfully: %s", user.uid)
    return _signed_in(session, user, pipeline, f"Logged in as {user.email}")


@router.post("/login/google")
async def login_google(
    session_id: str = Form(...),
    google_id_token: str = Form(...),
    request_uri: str = Form("http://localhost"),
    registry: SessionRegistry = Depends(get_registry),
    provider: FirebaseIdentityProvider = Depends(get_identity_provider),
    pipeline: JournalWritePipeline = Depends(get_pipeline),
):
    session = require_session(registry, session_id)
    try:
        user = await provider.sign_in_with_google(google_id_token, request_uri=request_uri)
    except MoodJournalError as e:
        _logger.warning("Google sign-in failed: %s", e)
        raise as_http_exception(e)

    return _signed_in(session, user, pipeline, f"Logged in as {user.email}")


@router.post("/reset_password")
async def reset_password(
    email: str = Form(...),
    provider: FirebaseIdentityProvider = Depends(get_identity_provider),
):
    try:
        await provider.send_password_reset(email)
    except MoodJournalError as e:
        raise as_http_exception(e)
    return {"status": "success", "message": "If an account exists, a reset email has been sent."}


@router.post("/logout")
async def logout(session_id: str = Form(...), registry: SessionRegistry = Depends(get_registry)):
    session = require_session(registry, session_id)
    if session.user is None:
        raise HTTPException(status_code=400, detail="Not signed in.")
    uid = session.user.uid
    session.auth.publish(None)
    _logger.info("User logged out: %s", uid)
    return {"status": "success", "screen": session.router.screen.value}
