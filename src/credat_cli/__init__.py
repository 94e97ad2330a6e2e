"""
Credat — agent identity and delegation from the command line.

Local trust-state lifecycle:
Owner delegates scopes → Agent holds the credential → Anyone verifies it.
"""

__version__ = "0.1.0"

from .errors import (
    ConflictError,
    CredatError,
    DecodeError,
    MissingAgentError,
    MissingOwnerError,
    MissingTokenError,
    NotFoundError,
    ValidationError,
)
from .models import (
    AgentIdentity,
    Algorithm,
    Delegation,
    DelegationClaims,
    DelegationConstraints,
    KeyPair,
    OwnerIdentity,
)
from .trust_store import TrustSnapshot, TrustStore
from .sdk import IdentitySDK, VerificationIssue, VerificationResult, has_scope
from .local_sdk import LocalIdentitySDK
from .lifecycle import TrustLifecycle
from .status import StatusReport, build_status

__all__ = [
    "CredatError", "ConflictError", "ValidationError", "MissingAgentError",
    "MissingOwnerError", "MissingTokenError", "NotFoundError", "DecodeError",
    "Algorithm", "KeyPair", "AgentIdentity", "OwnerIdentity",
    "DelegationConstraints", "DelegationClaims", "Delegation",
    "TrustStore", "TrustSnapshot", "IdentitySDK", "VerificationIssue",
    "VerificationResult", "has_scope", "LocalIdentitySDK", "TrustLifecycle",
    "StatusReport", "build_status",
]
