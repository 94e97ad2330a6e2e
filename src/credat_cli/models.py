"""
Trust-state records: agent and owner identities and the delegation
issued between them.

Records serialize to the camelCase JSON layout stored under .credat/.
Raw key bytes pass through the codec on the way in and out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from . import codec


Number = Union[int, float]


class Algorithm(str, Enum):
    ES256 = "ES256"
    EDDSA = "EdDSA"
    ES256K = "ES256K"


@dataclass(frozen=True)
class KeyPair:
    """Signing key pair. Private bytes are kept out of repr()."""

    algorithm: Algorithm
    public_key: bytes
    private_key: bytes = field(repr=False)

    def to_dict(self) -> dict:
        return {
            "algorithm": self.algorithm.value,
            "publicKey": codec.encode(self.public_key),
            "privateKey": codec.encode(self.private_key),
        }

    @classmethod
    def from_dict(cls, d: dict) -> KeyPair:
        return cls(
            algorithm=Algorithm(d["algorithm"]),
            public_key=codec.decode(d["publicKey"]),
            private_key=codec.decode(d["privateKey"]),
        )


@dataclass
class AgentIdentity:
    """The identity that receives delegated authority."""

    did: str
    domain: str
    key_pair: KeyPair
    did_document: Any
    path: Optional[str] = None

    @property
    def algorithm(self) -> Algorithm:
        return self.key_pair.algorithm

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "did": self.did,
            "algorithm": self.algorithm.value,
            "domain": self.domain,
        }
        if self.path is not None:
            d["path"] = self.path
        d["keyPair"] = self.key_pair.to_dict()
        d["didDocument"] = self.did_document
        return d

    @classmethod
    def from_dict(cls, d: dict) -> AgentIdentity:
        return cls(
            did=d["did"],
            domain=d["domain"],
            path=d.get("path"),
            key_pair=KeyPair.from_dict(d["keyPair"]),
            did_document=d.get("didDocument"),
        )


@dataclass
class OwnerIdentity:
    """The delegating principal."""

    did: str
    key_pair: KeyPair

    def to_dict(self) -> dict:
        return {"did": self.did, "keyPair": self.key_pair.to_dict()}

    @classmethod
    def from_dict(cls, d: dict) -> OwnerIdentity:
        return cls(did=d["did"], key_pair=KeyPair.from_dict(d["keyPair"]))


@dataclass
class DelegationConstraints:
    """Optional restrictions narrowing a delegation."""

    max_transaction_value: Optional[Number] = None
    allowed_domains: Optional[list[str]] = None
    rate_limit: Optional[Number] = None

    def is_empty(self) -> bool:
        return (
            self.max_transaction_value is None
            and self.allowed_domains is None
            and self.rate_limit is None
        )

    def to_dict(self) -> dict:
        d: dict[str, Any] = {}
        if self.max_transaction_value is not None:
            d["maxTransactionValue"] = self.max_transaction_value
        if self.allowed_domains is not None:
            d["allowedDomains"] = list(self.allowed_domains)
        if self.rate_limit is not None:
            d["rateLimit"] = self.rate_limit
        return d

    @classmethod
    def from_dict(cls, d: Optional[dict]) -> Optional[DelegationConstraints]:
        """Build constraints, normalizing an empty mapping to None."""
        if not d:
            return None
        domains = d.get("allowedDomains")
        if domains is not None and not isinstance(domains, list):
            raise ValueError("allowedDomains must be a list")
        constraints = cls(
            max_transaction_value=d.get("maxTransactionValue"),
            allowed_domains=list(domains) if domains is not None else None,
            rate_limit=d.get("rateLimit"),
        )
        return None if constraints.is_empty() else constraints


@dataclass
class DelegationClaims:
    agent: str
    owner: str
    scopes: list[str]
    constraints: Optional[DelegationConstraints] = None
    valid_from: Optional[str] = None
    valid_until: Optional[str] = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "agent": self.agent,
            "owner": self.owner,
            "scopes": list(self.scopes),
        }
        if self.constraints is not None and not self.constraints.is_empty():
            d["constraints"] = self.constraints.to_dict()
        if self.valid_from is not None:
            d["validFrom"] = self.valid_from
        if self.valid_until is not None:
            d["validUntil"] = self.valid_until
        return d

    @classmethod
    def from_dict(cls, d: dict) -> DelegationClaims:
        return cls(
            agent=d["agent"],
            owner=d["owner"],
            scopes=list(d["scopes"]),
            constraints=DelegationConstraints.from_dict(d.get("constraints")),
            valid_from=d.get("validFrom"),
            valid_until=d.get("validUntil"),
        )


@dataclass
class Delegation:
    """A signed delegation token and the claims it carries."""

    token: str
    claims: DelegationClaims

    def to_dict(self) -> dict:
        return {"token": self.token, "claims": self.claims.to_dict()}

    @classmethod
    def from_dict(cls, d: dict) -> Delegation:
        return cls(token=d["token"], claims=DelegationClaims.from_dict(d["claims"]))
