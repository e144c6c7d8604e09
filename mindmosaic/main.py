"""
main.py - FastAPI application entrypoint for the Mind Mosaic mood journal

Purpose:
- Exposes HTTP endpoints for client sessions (start / inspect / end), screen
  navigation (consent, crisis overlay), journal entries and the AI feedback
  gateway.
- Orchestrates the write pipeline:
    validate -> AI feedback (best-effort) -> Firestore write -> list refresh
- Authentication endpoints live in auth.py.

Design/behavioral notes:
- Sessions are in memory; the screen for a session is decided by its ViewRouter
  from auth-state notifications and explicit navigation only.
- Journal entries live in Firestore under users/{uid}/journals.
- The gateway endpoint follows the callable-function protocol so existing
  clients can keep calling it with {"data": {...}} and a bearer ID token.
"""

import os
import logging
from datetime import datetime

from fastapi import Body, Depends, FastAPI, Form, Header, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse, Response

from . import auth
from . import enrichment
from . import gcp_clients
from .deps import (
    as_http_exception,
    get_identity_provider,
    get_pipeline,
    get_registry,
    require_session,
)
from .errors import AuthenticationError, EnrichmentError, MoodJournalError, ValidationError
from .identity import FirebaseIdentityProvider
from .models import Mood
from .pipeline import JournalWritePipeline
from .sessions import SessionRegistry
from .view_router import Screen

# Configure logging (configurable via LOG_LEVEL env var)
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
_logger = logging.getLogger(__name__)

DISPLAY_TIMEZONE = os.environ.get("DISPLAY_TIMEZONE", "UTC")
CRISIS_HELPLINE = {"name": "Crisis Lifeline", "phone": "988", "availability": "24/7, free and confidential"}

# FastAPI app and routers
app = FastAPI(title="Mind Mosaic Journal")
app.include_router(auth.router)


def _screen_payload(session) -> dict:
    payload = session.summary()
    if session.router.crisis:
        payload["helpline"] = CRISIS_HELPLINE
    return payload


def _entries_payload(entries) -> list:
    return [e.to_api(DISPLAY_TIMEZONE) for e in entries]


# -------------------------
# Startup event
# -------------------------
@app.on_event("startup")
async def startup_event():
    _logger.info("Mind Mosaic Journal starting up (enrichment backend: %s)", gcp_clients.ENRICHMENT_BACKEND)
    if gcp_clients.ENRICHMENT_BACKEND == "vertex":
        gcp_clients.init_vertex()


# -------------------------
# Basic endpoints (index, favicon, health)
# -------------------------
@app.get("/", response_class=HTMLResponse)
async def index():
    return HTMLResponse("<h1>Mind Mosaic Journal</h1><p>Application running but no frontend found.</p>")


@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=204)


@app.get("/health")
async def health_check(registry: SessionRegistry = Depends(get_registry)):
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "sessions_active": len(registry),
        "enrichment_backend": gcp_clients.ENRICHMENT_BACKEND,
    }


@app.get("/moods")
async def list_moods():
    return {"moods": Mood.labels()}


# -------------------------
# Session lifecycle endpoints
# -------------------------
@app.post("/start_session")
async def start_session(
    id_token: str = Form(None),
    registry: SessionRegistry = Depends(get_registry),
    provider: FirebaseIdentityProvider = Depends(get_identity_provider),
    pipeline: JournalWritePipeline = Depends(get_pipeline),
):
    """
    Create a session and resolve its first auth-state notification.

    - With a valid ID token the session starts signed in (consent screen).
    - Without one, or with an invalid token, it starts on the auth screen.
    """
    session = registry.start()

    user = None
    if id_token:
        try:
            user = provider.verify_id_token(id_token)
        except AuthenticationError:
            _logger.info("Session %s started with an invalid token; signing out", session.session_id)

    session.auth.publish(user)

    if user is not None:
        try:
            pipeline.load_entries(session)
        except MoodJournalError as e:
            _logger.warning("Could not preload entries for session %s: %s", session.session_id, e)

    return _screen_payload(session)


@app.get("/session/{session_id}")
async def get_session_endpoint(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    session = require_session(registry, session_id)
    return _screen_payload(session)


@app.post("/end_session")
async def end_session(session_id: str = Form(...), registry: SessionRegistry = Depends(get_registry)):
    if not registry.end(session_id):
        raise HTTPException(status_code=404, detail="Session not found or expired")
    return {"status": "ended", "session_id": session_id}


# -------------------------
# Navigation endpoints
# -------------------------
@app.post("/consent")
async def accept_consent(session_id: str = Form(...), registry: SessionRegistry = Depends(get_registry)):
    session = require_session(registry, session_id)
    try:
        session.router.accept_consent()
    except MoodJournalError as e:
        raise as_http_exception(e)
    return _screen_payload(session)


@app.post("/crisis")
async def trigger_crisis(session_id: str = Form(...), registry: SessionRegistry = Depends(get_registry)):
    session = require_session(registry, session_id)
    try:
        session.router.trigger_crisis()
    except MoodJournalError as e:
        raise as_http_exception(e)
    _logger.info("Crisis screen opened for session %s", session_id)
    return _screen_payload(session)


@app.post("/crisis/dismiss")
async def dismiss_crisis(session_id: str = Form(...), registry: SessionRegistry = Depends(get_registry)):
    session = require_session(registry, session_id)
    try:
        session.router.dismiss_crisis()
    except MoodJournalError as e:
        raise as_http_exception(e)
    return _screen_payload(session)


# -------------------------
# Journal endpoints
# -------------------------
@app.post("/journal")
async def submit_journal_entry(
    session_id: str = Form(...),
    mood: str = Form(""),
    text: str = Form(""),
    registry: SessionRegistry = Depends(get_registry),
    pipeline: JournalWritePipeline = Depends(get_pipeline),
):
    """
    Save one journal entry for the signed-in user of this session.

    Returns the stored entry, the refreshed list, and a safety flag when the
    text contains crisis language. A failed save returns 503 and nothing is stored.
    """
    session = require_session(registry, session_id)
    screen = session.router.screen
    if session.user is not None and screen is not Screen.JOURNAL:
        if screen is Screen.CONSENT:
            detail = "Accept the privacy consent before writing entries."
        else:
            detail = f"Cannot write entries from the '{screen.value}' screen."
        raise HTTPException(status_code=409, detail=detail)
    try:
        result = await pipeline.submit_entry(session, mood, text)
    except MoodJournalError as e:
        _logger.warning("Journal submission rejected for session %s: %s", session_id, e)
        raise as_http_exception(e)

    return {
        "status": "success",
        "entry": result.entry.to_api(DISPLAY_TIMEZONE),
        "entries": _entries_payload(result.entries),
        "refresh_error": result.refresh_error,
        "safety_flag": result.safety_flag,
    }


@app.get("/journal/{session_id}")
async def list_journal_entries(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
    pipeline: JournalWritePipeline = Depends(get_pipeline),
):
    session = require_session(registry, session_id)
    try:
        entries = pipeline.load_entries(session)
    except MoodJournalError as e:
        raise as_http_exception(e)
    return {"entries": _entries_payload(entries)}


# -------------------------
# Enrichment gateway (callable protocol)
# -------------------------
def _callable_error(status_code: int, status: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"status": status, "message": message}})


@app.post("/analyzeSentimentWithGemini")
async def analyze_sentiment_with_gemini(
    payload: dict = Body(...),
    authorization: str = Header(None),
    provider: FirebaseIdentityProvider = Depends(get_identity_provider),
):
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()

    try:
        caller = provider.verify_id_token(token)
    except AuthenticationError as e:
        return _callable_error(401, "UNAUTHENTICATED", str(e))

    data = payload.get("data") or {}
    try:
        result = await enrichment.enrich(data.get("text"), data.get("mood"), caller)
    except ValidationError as e:
        return _callable_error(400, "INVALID_ARGUMENT", str(e))
    except EnrichmentError as e:
        _logger.error("Gemini API Error for user %s: %s", caller.uid, e)
        return _callable_error(500, "INTERNAL", "AI analysis failed. Please try again.")

    return {"result": result}


@app.get("/_debug_env")
async def debug_env():
    """
    Small debug summary of configuration. Only enabled when ALLOW_DEBUG_ENDPOINT=1.
    """
    if os.environ.get("ALLOW_DEBUG_ENDPOINT") != "1":
        raise HTTPException(status_code=403, detail="Debug endpoint disabled")
    return {
        "gcp_project": gcp_clients.GCP_PROJECT,
        "gcp_location": gcp_clients.GCP_LOCATION,
        "enrichment_backend": gcp_clients.ENRICHMENT_BACKEND,
        "gemini_model": gcp_clients.GEMINI_MODEL,
        "gemini_key_set": bool(gcp_clients.GEMINI_API_KEY),
        "firebase_key_set": bool(gcp_clients.FIREBASE_API_KEY),
        "remote_gateway": enrichment.ENRICHMENT_GATEWAY_URL,
        "google_credentials_set": bool(os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")),
    }


# -------------------------
# Run with Uvicorn when executed directly
# -------------------------
if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("mindmosaic.main:app", host="0.0.0.0", port=port, reload=True)
