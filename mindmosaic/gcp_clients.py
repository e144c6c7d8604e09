"""
gcp_clients.py - Google Cloud / Firebase / Gemini helper utilities

This module provides the connections the journal service needs:
1. Firestore (per-user journal documents)
2. Firebase Admin (ID-token verification for signed-in users)
3. Generative Language API (Gemini over HTTPS, API key kept server-side)
4. Vertex AI Generative Models (alternative backend, if available in environment)

Main Features:
- Automatically loads environment variables from a `.env` file if available.
- Exposes `get_firestore_client()` and `get_firebase_app()`.
- `gemini_generate()` / `vertex_generate()` return the first candidate's text
  and raise EnrichmentError on any failure. Neither retries.

This module is **import-safe**:
- If Vertex AI is not installed, only the Vertex backend becomes unavailable.
"""

import os
import logging
from typing import Any, Dict, Optional

# dotenv is used to load environment variables from a .env file
from dotenv import load_dotenv, find_dotenv

import httpx
import firebase_admin
from google.cloud import firestore

from .errors import EnrichmentError

# Optional Vertex AI imports
try:
    import vertexai
    from vertexai.generative_models import GenerativeModel
    _VERTEX_AVAILABLE = True
except ImportError:
    vertexai = None
    GenerativeModel = None
    _VERTEX_AVAILABLE = False

# Module logger
_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())

# --- Load environment variables on import ---
_env_path = find_dotenv()
if _env_path:
    load_dotenv(_env_path, override=False)
    _logger.debug("Loaded .env from %s", _env_path)
else:
    load_dotenv(override=False)

# --- Environment Configurations (defaults provided) ---
GCP_PROJECT: str = os.environ.get("GCP_PROJECT", "mind-mosaic-472120")
GCP_LOCATION: str = os.environ.get("GCP_LOCATION", "us-central1")
FIREBASE_API_KEY: Optional[str] = os.environ.get("FIREBASE_API_KEY")
GEMINI_API_KEY: Optional[str] = os.environ.get("GEMINI_API_KEY")
GEMINI_API_BASE: str = os.environ.get("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")
GEMINI_MODEL: str = os.environ.get("GEMINI_MODEL", "gemini-1.5-flash")
ENRICHMENT_BACKEND: str = os.environ.get("ENRICHMENT_BACKEND", "gemini").lower()
VERTEX_MODEL_NAME: Optional[str] = os.environ.get("VERTEX_MODEL_NAME")
ENRICHMENT_TIMEOUT_SECONDS: float = float(os.environ.get("ENRICHMENT_TIMEOUT_SECONDS", "30"))

_logger.debug(
    "GCP_PROJECT=%s, GCP_LOCATION=%s, ENRICHMENT_BACKEND=%s, GEMINI_API_KEY_set=%s, VERTEX_MODEL_NAME_set=%s",
    GCP_PROJECT,
    GCP_LOCATION,
    ENRICHMENT_BACKEND,
    bool(GEMINI_API_KEY),
    bool(VERTEX_MODEL_NAME),
)

# Flag to track Vertex initialization
_vertex_initialized = False


def init_vertex() -> None:
    """
    Initialize Vertex AI for text generation.
    - Safe to call multiple times.
    - Does nothing if Vertex AI is not installed or already initialized.
    """
    global _vertex_initialized
    if _vertex_initialized or not _VERTEX_AVAILABLE:
        if not _VERTEX_AVAILABLE:
            _logger.debug("Vertex AI python package not available.")
        return

    try:
        _logger.info("Initializing Vertex AI: project=%s, location=%s", GCP_PROJECT, GCP_LOCATION)
        vertexai.init(project=GCP_PROJECT, location=GCP_LOCATION)
        _vertex_initialized = True
        _logger.info("Vertex AI initialized successfully")
    except Exception as e:
        _logger.exception("Vertex AI initialization failed: %s", e)
        _vertex_initialized = False


def get_firebase_app() -> firebase_admin.App:
    """
    Return the default Firebase Admin app, initializing it on first use.
    Credentials come from Application Default Credentials.
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        _logger.info("Initializing Firebase Admin for project: %s", GCP_PROJECT)
        return firebase_admin.initialize_app(options={"projectId": GCP_PROJECT})


def _first_candidate_text(data: Dict[str, Any]) -> str:
    """
    Pull `candidates[0].content.parts[0].text` out of a generateContent reply.
    Raises EnrichmentError when the shape is not what we expect.
    """
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise EnrichmentError(f"Malformed generateContent response: {e!r}") from e
    if not isinstance(text, str):
        raise EnrichmentError("generateContent response text is not a string")
    return text


async def gemini_generate(prompt_text: str, timeout: Optional[float] = None) -> str:
    """
    Call the Generative Language API with a single text prompt.

    The API key travels in the query string; the body is
    {"contents": [{"parts": [{"text": prompt}]}]}.

    Returns:
        The first candidate's text (untrimmed).
    """
    if not GEMINI_API_KEY:
        raise EnrichmentError("GEMINI_API_KEY is not configured")

    url = f"{GEMINI_API_BASE}/models/{GEMINI_MODEL}:generateContent"
    body = {"contents": [{"parts": [{"text": prompt_text}]}]}

    try:
        async with httpx.AsyncClient(timeout=timeout or ENRICHMENT_TIMEOUT_SECONDS) as client:
            resp = await client.post(url, params={"key": GEMINI_API_KEY}, json=body)
            resp.raise_for_status()
            data = resp.json()
    except httpx.HTTPStatusError as e:
        _logger.warning("Gemini API returned HTTP %s", e.response.status_code)
        raise EnrichmentError(f"Gemini API error: HTTP {e.response.status_code}") from e
    except (httpx.HTTPError, ValueError) as e:
        raise EnrichmentError(f"Gemini API request failed: {e}") from e

    return _first_candidate_text(data)


async def vertex_generate(
    prompt_text: str,
    model_name: Optional[str] = None,
    max_output_tokens: int = 256,
    temperature: float = 0.7,
) -> str:
    """
    Generate text using a Vertex AI generative model.
    Safety-blocked or empty responses raise EnrichmentError.
    """
    if not _VERTEX_AVAILABLE:
        raise EnrichmentError("Vertex AI package not available")

    model_to_use = model_name or VERTEX_MODEL_NAME
    if not model_to_use:
        raise EnrichmentError("No Vertex model specified")

    init_vertex()
    if not _vertex_initialized:
        raise EnrichmentError("Vertex AI not initialized")

    model = GenerativeModel(model_to_use)
    generation_config = {"max_output_tokens": max_output_tokens, "temperature": temperature}

    try:
        response = await model.generate_content_async(prompt_text, generation_config=generation_config)
    except Exception as e:
        raise EnrichmentError(f"Vertex AI generation failed: {e}") from e

    if not response.candidates:
        _logger.warning("Vertex AI response was blocked. Prompt Feedback: %s", response.prompt_feedback)
        raise EnrichmentError("Vertex AI returned no candidates")

    try:
        return response.candidates[0].content.parts[0].text
    except (IndexError, AttributeError) as e:
        raise EnrichmentError(f"Malformed Vertex AI response: {e!r}") from e


def get_firestore_client() -> Optional[firestore.Client]:
    """
    Initialize and return a Firestore client.

    Returns:
        Firestore client instance, or None on failure.
    """
    try:
        _logger.debug("Initializing Firestore client for project: %s", GCP_PROJECT)
        return firestore.Client(project=GCP_PROJECT)
    except Exception as e:
        _logger.exception("Firestore client initialization failed: %s", e)
        return None
