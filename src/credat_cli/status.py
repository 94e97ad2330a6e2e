"""Point-in-time view of the trust store for `credat status`."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .models import DelegationConstraints
from .timestamps import parse_iso8601, utc_now
from .trust_store import TrustSnapshot, TrustStore

logger = logging.getLogger(__name__)


@dataclass
class AgentStatus:
    did: str
    algorithm: str
    domain: str
    path: Optional[str] = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"did": self.did, "algorithm": self.algorithm, "domain": self.domain}
        if self.path is not None:
            d["path"] = self.path
        return d


@dataclass
class OwnerStatus:
    did: str

    def to_dict(self) -> dict:
        return {"did": self.did}


@dataclass
class DelegationStatus:
    scopes: list[str] = field(default_factory=list)
    constraints: Optional[DelegationConstraints] = None
    expires: Optional[str] = None
    # None when there is no (parseable) expiry, never False
    expired: Optional[bool] = None
    valid_from: Optional[str] = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"scopes": list(self.scopes)}
        if self.constraints is not None:
            d["constraints"] = self.constraints.to_dict()
        if self.expires is not None:
            d["expires"] = self.expires
        if self.expired is not None:
            d["expired"] = self.expired
        if self.valid_from is not None:
            d["validFrom"] = self.valid_from
        return d


@dataclass
class StatusReport:
    """Derived view shared by the JSON and human renderings."""

    agent: Optional[AgentStatus] = None
    owner: Optional[OwnerStatus] = None
    delegation: Optional[DelegationStatus] = None

    def to_dict(self) -> dict:
        return {
            "agent": self.agent.to_dict() if self.agent else None,
            "owner": self.owner.to_dict() if self.owner else None,
            "delegation": self.delegation.to_dict() if self.delegation else None,
        }

    def render_lines(self) -> list[str]:
        lines = ["Agent"]
        if self.agent:
            lines.append(f"  DID: {self.agent.did}")
            lines.append(f"  Algorithm: {self.agent.algorithm}")
            lines.append(f"  Domain: {self.agent.domain}")
            if self.agent.path:
                lines.append(f"  Path: {self.agent.path}")
            lines.append("  ✓ Agent identity loaded")
        else:
            lines.append("  ✗ No agent — run `credat init`")

        lines.append("Owner")
        if self.owner:
            lines.append(f"  DID: {self.owner.did}")
            lines.append("  ✓ Owner identity loaded")
        else:
            lines.append("  ✗ No owner — run `credat delegate` to create one")

        lines.append("Delegation")
        delegation = self.delegation
        if delegation:
            if delegation.scopes:
                lines.append(f"  Scopes: {', '.join(delegation.scopes)}")
            if delegation.constraints:
                c = delegation.constraints
                if c.max_transaction_value is not None:
                    lines.append(f"  Max Value: {c.max_transaction_value}")
                if c.allowed_domains is not None:
                    lines.append(f"  Allowed Domains: {', '.join(c.allowed_domains)}")
                if c.rate_limit is not None:
                    lines.append(f"  Rate Limit: {c.rate_limit}")
            if delegation.expires is not None:
                suffix = " (expired)" if delegation.expired else ""
                lines.append(f"  Expires: {delegation.expires}{suffix}")
            if delegation.valid_from is not None:
                lines.append(f"  Valid From: {delegation.valid_from}")
            lines.append("  ✓ Delegation loaded")
        else:
            lines.append("  ✗ No delegation — run `credat delegate`")
        return lines


def is_expired(valid_until: Optional[str], now: datetime) -> Optional[bool]:
    if valid_until is None:
        return None
    expiry = parse_iso8601(valid_until)
    if expiry is None:
        logger.warning("Ignoring unparseable validUntil %r", valid_until)
        return None
    return expiry < now


def report_from_snapshot(snapshot: TrustSnapshot, now: Optional[datetime] = None) -> StatusReport:
    now = now or utc_now()
    report = StatusReport()
    if snapshot.agent is not None:
        agent = snapshot.agent
        report.agent = AgentStatus(
            did=agent.did,
            algorithm=agent.algorithm.value,
            domain=agent.domain,
            path=agent.path,
        )
    if snapshot.owner is not None:
        report.owner = OwnerStatus(did=snapshot.owner.did)
    if snapshot.delegation is not None:
        claims = snapshot.delegation.claims
        report.delegation = DelegationStatus(
            scopes=list(claims.scopes),
            constraints=claims.constraints,
            expires=claims.valid_until,
            expired=is_expired(claims.valid_until, now),
            valid_from=claims.valid_from,
        )
    return report


def build_status(store: TrustStore, now: Optional[datetime] = None) -> StatusReport:
    """Read whatever records exist and derive the status view. Never writes."""
    return report_from_snapshot(store.snapshot(), now=now)
