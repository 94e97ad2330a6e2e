"""
Credat error types.

Every failure that aborts a flow is a CredatError subclass, so the CLI
can report it once at the command boundary. A delegation that fails
verification is not an error: it is a normal result with valid=False.
"""

from __future__ import annotations


class CredatError(Exception):
    """Base error for all Credat operations."""
    pass


class ConflictError(CredatError):
    """An agent identity already exists and overwriting was not requested."""
    pass


class ValidationError(CredatError):
    """User-supplied input (constraint, date, domain) is malformed."""
    pass


# Precondition errors
class PreconditionError(CredatError):
    """A record required by the flow is absent."""
    pass


class MissingAgentError(PreconditionError):
    """No agent DID was given and no local agent record exists."""
    pass


class MissingOwnerError(PreconditionError):
    """No owner record exists to anchor verification."""
    pass


class MissingTokenError(PreconditionError):
    """No token was given and no delegation record exists."""
    pass


# Store errors
class StoreError(CredatError):
    """Base error for trust store reads."""
    pass


class NotFoundError(StoreError):
    """A record kind was read before the flow that creates it ran."""
    def __init__(self, kind: str, hint: str):
        self.kind = kind
        self.hint = hint
        super().__init__(f"No {kind} found. {hint}")


class DecodeError(StoreError):
    """Stored key material is not valid base64url."""
    pass


class CorruptRecordError(StoreError):
    """A stored record is not valid JSON or is missing required fields."""
    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Corrupt record {path}: {message}")
