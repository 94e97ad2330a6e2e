"""
Trust-state lifecycle flows: init, delegate and verify.

Each flow validates its inputs, sequences identity SDK calls one at a
time and persists through the trust store. Precondition and validation
failures raise CredatError subclasses; a credential that fails
verification is returned as a result, not raised.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from .errors import (
    ConflictError,
    MissingAgentError,
    MissingOwnerError,
    MissingTokenError,
    ValidationError,
)
from .models import (
    AgentIdentity,
    Algorithm,
    DelegationConstraints,
    Number,
    OwnerIdentity,
)
from .sdk import IdentitySDK, VerificationResult
from .timestamps import parse_iso8601
from .trust_store import TrustStore

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHM = Algorithm.ES256
OWNER_ALGORITHM = Algorithm.ES256
OWNER_PLACEHOLDER_DOMAIN = "owner.local"


# ── Input parsing ─────────────────────────────────────────────────


def parse_algorithm(value: Union[Algorithm, str]) -> Algorithm:
    if isinstance(value, Algorithm):
        return value
    for member in Algorithm:
        if member.value.lower() == str(value).strip().lower():
            return member
    choices = ", ".join(a.value for a in Algorithm)
    raise ValidationError(f"--algorithm must be one of {choices}")


def parse_max_value(raw: str) -> Number:
    """Parse a strictly positive, finite transaction cap. Integral values stay ints."""
    text = str(raw).strip()
    try:
        if not text or "_" in text:
            raise ValueError(text)
        value = float(text)
    except ValueError:
        raise ValidationError("--max-value must be a positive number") from None
    if not math.isfinite(value) or value <= 0:
        raise ValidationError("--max-value must be a positive number")
    return int(value) if value.is_integer() else value


def parse_until(raw: str) -> str:
    """Check that the expiry parses as ISO 8601; the text is kept as given."""
    if parse_iso8601(raw) is None:
        raise ValidationError("--until must be a valid ISO 8601 date")
    return raw


def parse_rate_limit(raw: Union[str, int]) -> int:
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ValidationError("--rate-limit must be a positive integer") from None
    if value <= 0:
        raise ValidationError("--rate-limit must be a positive integer")
    return value


def parse_scopes(raw: str) -> list[str]:
    """Split on commas and trim. Order, duplicates and empty entries are kept."""
    return [scope.strip() for scope in raw.split(",")]


def parse_allowed_domains(raw: str) -> list[str]:
    domains: list[str] = []
    for item in raw.split(","):
        domain = item.strip()
        if domain and domain not in domains:
            domains.append(domain)
    return domains


def hosting_url(domain: str, path: Optional[str] = None) -> str:
    """URL where the DID document must be published for did:web resolution."""
    sub_path = (path or "").strip("/")
    if sub_path:
        return f"https://{domain}/{sub_path}/did.json"
    return f"https://{domain}/.well-known/did.json"


# ── Flow results ──────────────────────────────────────────────────


@dataclass
class InitResult:
    agent: AgentIdentity
    hosting_url: str
    saved_to: Path
    overwritten: bool = False

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "did": self.agent.did,
            "algorithm": self.agent.algorithm.value,
            "domain": self.agent.domain,
        }
        if self.agent.path is not None:
            d["path"] = self.agent.path
        d["url"] = self.hosting_url
        d["didDocument"] = self.agent.did_document
        d["savedTo"] = str(self.saved_to)
        return d


@dataclass
class DelegateResult:
    agent: str
    owner: str
    scopes: list[str]
    token: str
    saved_to: Path
    constraints: Optional[DelegationConstraints] = None
    valid_until: Optional[str] = None
    owner_created: bool = False

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "agent": self.agent,
            "owner": self.owner,
            "scopes": list(self.scopes),
        }
        if self.constraints is not None:
            d["constraints"] = self.constraints.to_dict()
        d["validUntil"] = self.valid_until
        d["token"] = self.token
        return d


@dataclass
class VerifyResult:
    result: VerificationResult
    token_from_store: bool = False

    @property
    def valid(self) -> bool:
        return self.result.valid

    def to_dict(self) -> dict:
        return self.result.to_dict()


# ── Flows ─────────────────────────────────────────────────────────


class TrustLifecycle:
    """Runs one flow at a time against an explicit store and SDK."""

    def __init__(self, store: TrustStore, sdk: IdentitySDK):
        self.store = store
        self.sdk = sdk

    def init(
        self,
        domain: str,
        path: Optional[str] = None,
        algorithm: Union[Algorithm, str] = DEFAULT_ALGORITHM,
        force: bool = False,
    ) -> InitResult:
        """Create the local agent identity, refusing to overwrite unless forced."""
        domain = (domain or "").strip()
        if not domain:
            raise ValidationError("--domain must not be empty")
        algorithm = parse_algorithm(algorithm)
        path = path or None

        existed = self.store.agent_exists()
        if existed and not force:
            raise ConflictError(
                "Agent identity already exists at "
                f"{self.store.path_for('agent')}; use --force to overwrite"
            )

        identity = self.sdk.create_identity(domain, path, algorithm)
        agent = AgentIdentity(
            did=identity.did,
            domain=domain,
            path=path,
            key_pair=identity.key_pair,
            did_document=identity.did_document,
        )
        saved_to = self.store.save_agent(agent)
        if existed:
            logger.info("Overwrote agent identity with %s", agent.did)
        else:
            logger.info("Created agent identity %s", agent.did)

        return InitResult(
            agent=agent,
            hosting_url=hosting_url(domain, path),
            saved_to=saved_to,
            overwritten=existed,
        )

    def delegate(
        self,
        scopes: str,
        agent_did: Optional[str] = None,
        max_value: Optional[str] = None,
        until: Optional[str] = None,
        allowed_domains: Optional[str] = None,
        rate_limit: Optional[str] = None,
    ) -> DelegateResult:
        """Issue a delegation from the (possibly new) owner to the agent."""
        agent_did = self._resolve_agent_did(agent_did)

        constraints: Optional[DelegationConstraints] = DelegationConstraints()
        if max_value is not None:
            constraints.max_transaction_value = parse_max_value(max_value)
        if allowed_domains is not None:
            constraints.allowed_domains = parse_allowed_domains(allowed_domains) or None
        if rate_limit is not None:
            constraints.rate_limit = parse_rate_limit(rate_limit)
        if constraints.is_empty():
            constraints = None
        valid_until = parse_until(until) if until is not None else None
        scope_list = parse_scopes(scopes)

        owner, owner_created = self._resolve_owner()

        delegation = self.sdk.issue_delegation(
            agent_did=agent_did,
            owner_did=owner.did,
            owner_key_pair=owner.key_pair,
            scopes=scope_list,
            constraints=constraints,
            valid_until=valid_until,
        )
        saved_to = self.store.save_delegation(delegation)
        logger.info(
            "Issued delegation from %s to %s (%d scopes)",
            owner.did, agent_did, len(scope_list),
        )

        return DelegateResult(
            agent=agent_did,
            owner=owner.did,
            scopes=scope_list,
            token=delegation.token,
            saved_to=saved_to,
            constraints=constraints,
            valid_until=valid_until,
            owner_created=owner_created,
        )

    def verify(self, token: Optional[str] = None) -> VerifyResult:
        """Verify a token (or the stored delegation) against the owner's public key."""
        from_store = False
        if not token:
            if not self.store.delegation_exists():
                raise MissingTokenError(
                    "A delegation token is required. "
                    "Usage: `credat verify <token>` or run `credat delegate` first."
                )
            token = self.store.load_delegation().token
            from_store = True
            logger.info("Loaded token from %s", self.store.path_for("delegation"))

        if not self.store.owner_exists():
            raise MissingOwnerError(
                f"No owner key found in {self.store.path_for('owner')}. "
                "Run a delegation first."
            )
        owner = self.store.load_owner()

        result = self.sdk.verify_delegation(
            token, owner.key_pair.public_key, owner.key_pair.algorithm
        )
        if not result.valid:
            logger.info("Delegation failed verification: %d issue(s)", len(result.errors))
        return VerifyResult(result=result, token_from_store=from_store)

    def _resolve_agent_did(self, agent_did: Optional[str]) -> str:
        if agent_did:
            return agent_did
        if self.store.agent_exists():
            return self.store.load_agent().did
        raise MissingAgentError(
            "No agent DID provided and no local agent found. "
            "Run `credat init` or use --agent <did>."
        )

    def _resolve_owner(self) -> tuple[OwnerIdentity, bool]:
        if self.store.owner_exists():
            owner = self.store.load_owner()
            logger.info("Loaded owner %s", owner.did)
            return owner, False

        identity = self.sdk.create_identity(OWNER_PLACEHOLDER_DOMAIN, None, OWNER_ALGORITHM)
        owner = OwnerIdentity(did=identity.did, key_pair=identity.key_pair)
        self.store.save_owner(owner)
        logger.info("Created owner identity %s", owner.did)
        return owner, True
