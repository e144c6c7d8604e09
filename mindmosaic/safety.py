"""
safety.py - Crisis-language check for journal text

Flags entries that contain self-harm or crisis phrasing so the client can
offer the crisis screen. The flag is advisory only: it never moves the
session to the crisis screen on its own.
"""

import re
from typing import Optional, Tuple

SAFETY_KEYWORDS = [
    "suicide", "suicidal", "kill myself", "end my life", "hurt myself", "want to die",
    "wish i was dead", "no reason to live", "better off dead", "can't go on",
    "cut myself", "self-harm", "self harm", "harm myself", "hang myself", "overdose",
    "can't cope", "breaking point", "no hope",
]

_SAFETY_RE = re.compile(
    r"\b(" + r"|".join(re.escape(k) for k in SAFETY_KEYWORDS) + r")\b",
    flags=re.IGNORECASE,
)

# "can't go on" about chores or schoolwork is frustration, not a crisis
_NON_CRISIS_RE = re.compile(
    r"can't go on with (?:this|these|that|my|the) (?:homework|work|tasks?|assignments?)\b",
    flags=re.IGNORECASE,
)


def detect_safety(text: str) -> Tuple[bool, Optional[str]]:
    """
    Returns (flagged, matched_keyword).
    """
    if not text or not text.strip():
        return False, None

    m = _SAFETY_RE.search(text)
    if not m:
        return False, None

    keyword = m.group(0).lower()
    if keyword == "can't go on" and _NON_CRISIS_RE.search(text):
        return False, None
    return True, keyword
