"""
Error taxonomy shared by the matching and chat services.

Services raise these; the HTTP layer maps each class to a status code.
Every failure is scoped to the single user action that triggered it.
"""

from typing import Optional


class ClassCrushError(Exception):
    """Base class for all domain failures."""

    status_code = 500

    def __init__(self, message: str, *, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class NotFound(ClassCrushError):
    """Referenced profile or match is absent."""

    status_code = 404


class Unauthenticated(ClassCrushError):
    """No current identity."""

    status_code = 401


class Unavailable(ClassCrushError):
    """Store, network or vendor failure."""

    status_code = 503


class InvalidInput(ClassCrushError):
    """Empty id, empty message, or a request that makes no sense."""

    status_code = 400


class SchemaMismatch(InvalidInput):
    """A stored record does not decode into its declared type."""

    status_code = 500


class RateLimited(ClassCrushError):
    """Daily swipe limit reached."""

    status_code = 429
