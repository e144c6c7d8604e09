"""
errors.py - Error taxonomy for the mood journal service

- ValidationError: bad local input, rejected before any I/O.
- AuthenticationError: missing or invalid identity.
- EnrichmentError: the AI feedback call failed; recovered inside the write pipeline.
- PersistenceError: Firestore write/read failed; surfaced to the caller.
- InvalidTransitionError: a navigation action not allowed from the current screen.
"""


class MoodJournalError(Exception):
    """Base class for all service errors."""


class ValidationError(MoodJournalError):
    pass


class AuthenticationError(MoodJournalError):
    pass


class EnrichmentError(MoodJournalError):
    pass


class PersistenceError(MoodJournalError):
    pass


class InvalidTransitionError(MoodJournalError):
    pass
