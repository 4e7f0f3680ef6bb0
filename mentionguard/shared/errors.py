"""Error taxonomy for the crisis engine.

Lifecycle and rule operations raise these; the HTTP layer maps them to
status codes (404 / 409 / 400).
"""


class CrisisEngineError(Exception):
    """Base exception for crisis engine errors."""
    pass


class NotFoundError(CrisisEngineError):
    """Unknown crisis or rule identifier."""
    pass


class InvalidStateError(CrisisEngineError):
    """Operation not allowed in the entity's current state."""
    pass


class ValidationError(CrisisEngineError):
    """Input rejected before any state was touched."""
    pass
