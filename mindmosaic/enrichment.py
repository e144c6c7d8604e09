"""
enrichment.py - AI feedback gateway for journal entries

The gateway is the only place that holds the generative-language credential.
It checks the caller, builds one prompt embedding the mood and the entry text
verbatim, calls the configured backend once and shapes the reply as

    {"aiResponse": <feedback>, "sentiment": <mood>, "success": True}

The sentiment is the user's mood echoed back; the model is only asked for
supportive feedback, not for a classification.

Two gateway implementations share the `enrich(text, mood, caller)` coroutine
signature used by the write pipeline:
- LocalGateway calls the backend in-process.
- RemoteGatewayClient calls a separately deployed gateway over the callable
  protocol ({"data": ...} in, {"result": ...} out, bearer ID token).
"""

import asyncio
import logging
import os
from typing import Any, Dict, Optional

import httpx

from . import gcp_clients
from .errors import AuthenticationError, EnrichmentError, ValidationError
from .models import AuthenticatedUser

_logger = logging.getLogger(__name__)

ENRICHMENT_GATEWAY_URL: Optional[str] = os.environ.get("ENRICHMENT_GATEWAY_URL")


def build_prompt(text: str, mood: str) -> str:
    return (
        "Analyze this journal entry and provide supportive feedback for a youth mental wellness app.\n"
        f"User selected mood: {mood}\n"
        f"Journal text: \"{text}\"\n\n"
        "Respond with empathetic, supportive feedback in 1-2 sentences. Be encouraging and understanding."
    )


async def _generate(prompt: str) -> str:
    backend = gcp_clients.ENRICHMENT_BACKEND
    if backend == "vertex":
        return await gcp_clients.vertex_generate(prompt)
    if backend == "gemini":
        return await gcp_clients.gemini_generate(prompt)
    raise EnrichmentError(f"Unknown enrichment backend: {backend}")


async def enrich(text: str, mood: str, caller: Optional[AuthenticatedUser]) -> Dict[str, Any]:
    """
    Produce supportive feedback for one entry.

    Raises:
      - AuthenticationError if there is no caller identity.
      - ValidationError if text/mood are missing.
      - EnrichmentError on any upstream failure or empty reply.
    """
    if caller is None:
        _logger.warning("Unauthenticated request to enrichment gateway")
        raise AuthenticationError("User not authenticated")
    if not isinstance(text, str) or not mood:
        raise ValidationError("Both text and mood are required.")

    _logger.info("Processing sentiment analysis: user=%s mood=%s text_length=%d", caller.uid, mood, len(text))

    try:
        raw = await asyncio.wait_for(_generate(build_prompt(text, mood)), timeout=gcp_clients.ENRICHMENT_TIMEOUT_SECONDS)
    except asyncio.TimeoutError as e:
        _logger.error("Enrichment backend timed out for user %s", caller.uid)
        raise EnrichmentError("AI analysis timed out.") from e
    except EnrichmentError as e:
        _logger.error("Enrichment backend error for user %s: %s", caller.uid, e)
        raise

    feedback = (raw or "").strip()
    if not feedback:
        raise EnrichmentError("AI analysis returned an empty response.")

    _logger.info("Successfully generated AI response: user=%s response_length=%d", caller.uid, len(feedback))
    return {"aiResponse": feedback, "sentiment": mood, "success": True}


class LocalGateway:
    async def enrich(self, text: str, mood: str, caller: Optional[AuthenticatedUser]) -> Dict[str, Any]:
        return await enrich(text, mood, caller)


class RemoteGatewayClient:
    """Client for a gateway deployed behind its own URL."""

    def __init__(self, url: str, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout or gcp_clients.ENRICHMENT_TIMEOUT_SECONDS
        self.transport = transport

    async def enrich(self, text: str, mood: str, caller: Optional[AuthenticatedUser]) -> Dict[str, Any]:
        if caller is None or not caller.id_token:
            raise AuthenticationError("User not authenticated")

        headers = {"Authorization": f"Bearer {caller.id_token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.url, json={"data": {"text": text, "mood": mood}}, headers=headers)
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise EnrichmentError(f"Gateway request failed: {e}") from e

        if not isinstance(payload, dict):
            raise EnrichmentError(f"Gateway replied with {type(payload).__name__} instead of a JSON object (HTTP {resp.status_code})")
        if resp.status_code >= 400 or "error" in payload:
            error = payload.get("error")
            if not isinstance(error, dict):
                error = {"message": str(error or "")}
            raise EnrichmentError(f"Gateway error {error.get('status', resp.status_code)}: {error.get('message', '')}")

        result = payload.get("result")
        if not isinstance(result, dict):
            raise EnrichmentError("Gateway reply has no result object")
        return result


def default_gateway():
    if ENRICHMENT_GATEWAY_URL:
        _logger.info("Using remote enrichment gateway at %s", ENRICHMENT_GATEWAY_URL)
        return RemoteGatewayClient(ENRICHMENT_GATEWAY_URL)
    return LocalGateway()
