"""Identity SDK capability interface consumed by the lifecycle flows."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

from .models import (
    AgentIdentity,
    Algorithm,
    Delegation,
    DelegationConstraints,
    KeyPair,
)


@dataclass
class Identity:
    """A freshly minted DID with its key pair and DID document."""

    did: str
    key_pair: KeyPair
    did_document: Any


@dataclass
class VerificationIssue:
    message: str


@dataclass
class VerificationResult:
    """Outcome of checking a delegation or presentation.

    An invalid credential is reported here, never raised.
    """

    valid: bool
    agent: Optional[str] = None
    owner: Optional[str] = None
    scopes: Optional[list[str]] = None
    constraints: Optional[DelegationConstraints] = None
    valid_from: Optional[str] = None
    valid_until: Optional[str] = None
    errors: list[VerificationIssue] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "agent": self.agent,
            "owner": self.owner,
            "scopes": list(self.scopes or []),
            "constraints": self.constraints.to_dict() if self.constraints else None,
            "validFrom": self.valid_from,
            "validUntil": self.valid_until,
            "errors": [e.message for e in self.errors],
        }


@dataclass
class Challenge:
    nonce: str
    from_did: str
    created_at: str


@dataclass
class Presentation:
    type: str
    delegation: str
    agent: str
    nonce: str
    proof: str


class IdentitySDK(Protocol):
    def create_identity(
        self, domain: str, path: Optional[str], algorithm: Algorithm
    ) -> Identity: ...

    def issue_delegation(
        self,
        agent_did: str,
        owner_did: str,
        owner_key_pair: KeyPair,
        scopes: Sequence[str],
        constraints: Optional[DelegationConstraints] = None,
        valid_until: Optional[str] = None,
    ) -> Delegation: ...

    def verify_delegation(
        self,
        token: str,
        owner_public_key: bytes,
        algorithm: Optional[Algorithm] = None,
    ) -> VerificationResult: ...

    def create_challenge(self, from_did: str) -> Challenge: ...

    def present_credentials(
        self, challenge: Challenge, delegation_token: str, agent: AgentIdentity
    ) -> Presentation: ...

    def verify_presentation(
        self,
        presentation: Presentation,
        challenge: Challenge,
        owner_public_key: bytes,
        agent_public_key: bytes,
    ) -> VerificationResult: ...


def has_scope(result: VerificationResult, scope: str) -> bool:
    """True when a valid result grants the scope."""
    return result.valid and scope in (result.scopes or [])
