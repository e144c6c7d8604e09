"""
identity.py - Identity provider integration (Firebase Authentication)

This module wraps the identity provider the journal service relies on:
1. Email/password sign-in and registration via the Firebase Auth REST API.
2. Federated Google sign-in (signInWithIdp with a Google ID token).
3. Password-reset emails (sendOobCode).
4. Verification of ID tokens presented by clients (firebase_admin).

It also provides AuthState, the per-session authentication-state stream.
Listeners subscribe once and get back an unsubscribe callable; a listener
registered after the first notification is called immediately with the
current state, mirroring how the provider's own auth-state listener behaves.

Provider error codes are translated into short user-facing messages by
friendly_error().
"""

import logging
import re
from typing import Callable, List, Optional

import httpx
from firebase_admin import auth as firebase_auth

from . import gcp_clients
from .errors import AuthenticationError, ValidationError
from .models import AuthenticatedUser

_logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
MIN_PASSWORD_LENGTH = 6

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

FRIENDLY_ERRORS = {
    "EMAIL_NOT_FOUND": "No account found with this email.",
    "INVALID_PASSWORD": "Incorrect password. Try again.",
    "INVALID_LOGIN_CREDENTIALS": "Incorrect email or password. Try again.",
    "INVALID_EMAIL": "Invalid email address.",
    "EMAIL_EXISTS": "This email is already in use. Try logging in.",
    "WEAK_PASSWORD": "Password too weak. Use at least 6 characters.",
    "INVALID_IDP_RESPONSE": "Google sign-in cancelled.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Try again later.",
    "NETWORK_REQUEST_FAILED": "Network error. Check your connection.",
}
DEFAULT_ERROR = "Something went wrong. Please try again."

Listener = Callable[[Optional[AuthenticatedUser]], None]


def friendly_error(code: Optional[str]) -> str:
    """
    Map a provider error code to a user-facing message.
    REST errors look like "WEAK_PASSWORD : Password should be at least 6 characters",
    so only the leading token is used.
    """
    if not code:
        return DEFAULT_ERROR
    key = code.split(":", 1)[0].strip().upper()
    return FRIENDLY_ERRORS.get(key, DEFAULT_ERROR)


def is_valid_email(email: str) -> bool:
    return bool(email) and bool(_EMAIL_RE.match(email))


def validate_credentials(email: str, password: str) -> None:
    """Local checks done before any provider call."""
    if not is_valid_email(email):
        raise ValidationError("Please enter a valid email address.")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")


class IdentityError(AuthenticationError):
    """A provider rejection, carrying the raw code and the friendly message."""

    def __init__(self, code: Optional[str]):
        self.code = code
        super().__init__(friendly_error(code))


class AuthState:
    """
    Authentication-state stream for one session.

    publish(None) means signed out; publish(user) means signed in.
    """

    def __init__(self):
        self._user: Optional[AuthenticatedUser] = None
        self._resolved = False
        self._listeners: List[Listener] = []

    @property
    def user(self) -> Optional[AuthenticatedUser]:
        return self._user

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        if self._resolved:
            listener(self._user)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, user: Optional[AuthenticatedUser]) -> None:
        self._user = user
        self._resolved = True
        for listener in list(self._listeners):
            listener(user)


class FirebaseIdentityProvider:
    """
    Thin client over the Firebase Auth REST API plus Admin-SDK token checks.
    """

    def __init__(self, api_key: Optional[str] = None, timeout: float = 15.0):
        self._api_key = api_key
        self._timeout = timeout

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key or gcp_clients.FIREBASE_API_KEY

    async def _call(self, method: str, body: dict) -> dict:
        if not self.api_key:
            _logger.error("FIREBASE_API_KEY is not configured; cannot call %s", method)
            raise IdentityError(None)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(f"{IDENTITY_TOOLKIT_URL}/accounts:{method}", params={"key": self.api_key}, json=body)
        except httpx.HTTPError as e:
            _logger.warning("Identity provider request %s failed: %s", method, e)
            raise IdentityError("NETWORK_REQUEST_FAILED") from e

        if resp.status_code >= 400:
            try:
                code = resp.json().get("error", {}).get("message")
            except ValueError:
                code = None
            _logger.warning("Identity provider rejected %s: %s", method, code)
            raise IdentityError(code)
        try:
            return resp.json()
        except ValueError as e:
            _logger.error("Identity provider sent a non-JSON reply to %s", method)
            raise IdentityError(None) from e

    @staticmethod
    def _user_from_reply(data: dict, provider: str) -> AuthenticatedUser:
        return AuthenticatedUser(
            uid=data["localId"],
            email=data.get("email"),
            id_token=data.get("idToken"),
            refresh_token=data.get("refreshToken"),
            provider=provider,
        )

    async def sign_in(self, email: str, password: str) -> AuthenticatedUser:
        validate_credentials(email, password)
        data = await self._call("signInWithPassword", {"email": email, "password": password, "returnSecureToken": True})
        _logger.info("User signed in: %s", data.get("localId"))
        return self._user_from_reply(data, "password")

    async def sign_up(self, email: str, password: str) -> AuthenticatedUser:
        validate_credentials(email, password)
        data = await self._call("signUp", {"email": email, "password": password, "returnSecureToken": True})
        _logger.info("New user registered: %s", data.get("localId"))
        return self._user_from_reply(data, "password")

    async def sign_in_with_google(self, google_id_token: str, request_uri: str = "http://localhost") -> AuthenticatedUser:
        if not google_id_token:
            raise ValidationError("A Google ID token is required.")
        body = {
            "postBody": f"id_token={google_id_token}&providerId=google.com",
            "requestUri": request_uri,
            "returnSecureToken": True,
            "returnIdpCredential": True,
        }
        data = await self._call("signInWithIdp", body)
        _logger.info("User signed in with Google: %s", data.get("localId"))
        return self._user_from_reply(data, "google.com")

    async def send_password_reset(self, email: str) -> None:
        if not is_valid_email(email):
            raise ValidationError("Enter the email you used to register.")
        await self._call("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})
        _logger.info("Password reset email requested")

    def verify_id_token(self, id_token: str) -> AuthenticatedUser:
        """
        Verify a client-held ID token.
        Raises AuthenticationError if the token is missing, expired, revoked or malformed.
        """
        if not id_token:
            raise AuthenticationError("User not authenticated")
        try:
            claims = firebase_auth.verify_id_token(id_token, app=gcp_clients.get_firebase_app())
        except Exception as e:
            _logger.warning("ID token verification failed: %s", e)
            raise AuthenticationError("User not authenticated") from e

        provider = (claims.get("firebase") or {}).get("sign_in_provider", "password")
        return AuthenticatedUser(uid=claims["uid"], email=claims.get("email"), id_token=id_token, provider=provider)
