"""
view_router.py - Screen selection for one client session

States: loading -> auth -> consent -> journal, with crisis as an overlay on
journal. The router only decides which screen is shown; it never touches the
network or the database.
"""

from enum import Enum
from typing import Optional

from .errors import InvalidTransitionError
from .models import AuthenticatedUser


class Screen(str, Enum):
    LOADING = "loading"
    AUTH = "auth"
    CONSENT = "consent"
    JOURNAL = "journal"
    CRISIS = "crisis"


class ViewRouter:
    def __init__(self):
        self.user: Optional[AuthenticatedUser] = None
        self._screen = Screen.LOADING
        self.crisis = False

    @property
    def screen(self) -> Screen:
        # Crisis overrides everything while it is active
        if self.crisis:
            return Screen.CRISIS
        return self._screen

    @property
    def consented(self) -> bool:
        return self._screen is Screen.JOURNAL

    def on_auth_state_changed(self, user: Optional[AuthenticatedUser]) -> None:
        """Listener for the session's AuthState."""
        if user is None:
            self.user = None
            self.crisis = False
            self._screen = Screen.AUTH
            return

        signed_in_as_other = self.user is not None and self.user.uid != user.uid
        self.user = user
        if self._screen in (Screen.LOADING, Screen.AUTH) or signed_in_as_other:
            self.crisis = False
            self._screen = Screen.CONSENT

    def accept_consent(self) -> None:
        self._require(Screen.CONSENT, "accept consent")
        self._screen = Screen.JOURNAL

    def trigger_crisis(self) -> None:
        self._require(Screen.JOURNAL, "open the crisis screen")
        self.crisis = True

    def dismiss_crisis(self) -> None:
        self._require(Screen.CRISIS, "dismiss the crisis screen")
        self.crisis = False

    def _require(self, expected: Screen, action: str) -> None:
        current = self.screen
        if current is not expected:
            raise InvalidTransitionError(f"Cannot {action} from the '{current.value}' screen.")
