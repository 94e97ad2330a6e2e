"""Local trust store: agent, owner and delegation records under .credat/."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from .errors import CorruptRecordError, NotFoundError
from .models import AgentIdentity, Delegation, OwnerIdentity
from .storage import ensure_private_dir, write_private_json


logger = logging.getLogger(__name__)

CREDAT_DIR_NAME = ".credat"
CREDAT_DIR_ENV = "CREDAT_DIR"

AGENT_FILE = "agent.json"
OWNER_FILE = "owner.json"
DELEGATION_FILE = "delegation.json"

_HINTS = {
    "agent": "Run `credat init` first.",
    "owner": "Run `credat delegate` first.",
    "delegation": "Run `credat delegate` first.",
}

T = TypeVar("T")


@dataclass
class TrustSnapshot:
    """Whichever records exist at one point in time; each is independently optional."""

    agent: Optional[AgentIdentity] = None
    owner: Optional[OwnerIdentity] = None
    delegation: Optional[Delegation] = None


class TrustStore:
    """File-backed store holding at most one record of each kind.

    Records are plain JSON files in a single owner-only directory. There
    is no locking: concurrent writers from separate processes race and the
    last write wins.
    """

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else Path.cwd() / CREDAT_DIR_NAME

    @classmethod
    def for_cwd(cls) -> TrustStore:
        """Resolve the store for this invocation ($CREDAT_DIR or ./.credat)."""
        override = os.getenv(CREDAT_DIR_ENV)
        return cls(Path(override) if override else Path.cwd() / CREDAT_DIR_NAME)

    def ensure_root_directory(self) -> None:
        """Create the root if needed and reset its mode to 0700.

        This applies to a $CREDAT_DIR override as well: the directory holds
        private keys, so an existing one is tightened on the first write.
        Read-only operations never call this.
        """
        ensure_private_dir(self.root)

    def path_for(self, kind: str) -> Path:
        filenames = {"agent": AGENT_FILE, "owner": OWNER_FILE, "delegation": DELEGATION_FILE}
        return self.root / filenames[kind]

    # ── writes ────────────────────────────────────────────────────

    def _write(self, kind: str, payload: dict) -> Path:
        self.ensure_root_directory()
        path = self.path_for(kind)
        write_private_json(path, payload)
        logger.debug("Wrote %s record to %s", kind, path)
        return path

    def save_agent(self, agent: AgentIdentity) -> Path:
        return self._write("agent", agent.to_dict())

    def save_owner(self, owner: OwnerIdentity) -> Path:
        return self._write("owner", owner.to_dict())

    def save_delegation(self, delegation: Delegation) -> Path:
        return self._write("delegation", delegation.to_dict())

    # ── reads ─────────────────────────────────────────────────────

    def _read(self, kind: str, parse: Callable[[dict], T]) -> T:
        path = self.path_for(kind)
        if not path.exists():
            raise NotFoundError(kind, _HINTS[kind])
        try:
            with open(path, encoding="utf-8") as f:
                raw: Any = json.load(f)
            if not isinstance(raw, dict):
                raise TypeError("expected a JSON object")
            return parse(raw)
        except (KeyError, TypeError, ValueError) as exc:
            raise CorruptRecordError(str(path), str(exc) or type(exc).__name__) from exc

    def load_agent(self) -> AgentIdentity:
        return self._read("agent", AgentIdentity.from_dict)

    def load_owner(self) -> OwnerIdentity:
        return self._read("owner", OwnerIdentity.from_dict)

    def load_delegation(self) -> Delegation:
        return self._read("delegation", Delegation.from_dict)

    def agent_exists(self) -> bool:
        return self.path_for("agent").exists()

    def owner_exists(self) -> bool:
        return self.path_for("owner").exists()

    def delegation_exists(self) -> bool:
        return self.path_for("delegation").exists()

    def snapshot(self) -> TrustSnapshot:
        """Load every record that exists, leaving absent kinds as None."""
        return TrustSnapshot(
            agent=self.load_agent() if self.agent_exists() else None,
            owner=self.load_owner() if self.owner_exists() else None,
            delegation=self.load_delegation() if self.delegation_exists() else None,
        )
