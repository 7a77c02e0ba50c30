"""Policy resolver: typed access to config/runtime_policy.json.

Every tunable the engine uses (authorization domain, ledger clock,
per-tier TTL windows, payout routes) is read through a method here. No
engine hard-codes these values. Missing or malformed keys fail loud with
ValueError at the point they are requested.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from stellarcade.persistence.keys import DataKey, KeyKind, StorageTier

POLICY_FILENAME = "runtime_policy.json"


@dataclass(frozen=True)
class TTLPolicy:
    """Renewal window for one storage tier (or one persistent key kind).

    threshold_ledgers: renew when remaining TTL drops below this.
    extend_to_ledgers: new remaining TTL after renewal.
    """
    threshold_ledgers: int
    extend_to_ledgers: int


class PolicyResolver:
    """Resolves runtime policy values from a loaded policy document.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        resolver.ttl_policy(StorageTier.PERSISTENT)
        resolver.auth_domain()
    """

    def __init__(self, policy: dict[str, Any]) -> None:
        self._policy = policy

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        path = config_dir / POLICY_FILENAME
        if not path.exists():
            raise ValueError(f"Policy file not found: {path}")
        with path.open("r", encoding="utf-8") as f:
            return cls(json.load(f))

    def _section(self, *path: str) -> Any:
        node: Any = self._policy
        for part in path:
            if not isinstance(node, dict) or part not in node:
                raise ValueError(f"Missing policy key: {'.'.join(path)}")
            node = node[part]
        return node

    def version(self) -> str:
        return str(self._section("version"))

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def auth_domain(self) -> str:
        """Domain string bound into every signed invocation."""
        domain = self._section("auth", "domain")
        if not isinstance(domain, str) or not domain:
            raise ValueError("auth.domain must be a non-empty string")
        return domain

    def proof_validity_ledgers(self) -> int:
        """Longest window (in ledgers) a signed proof may stay valid.

        Must fit inside the temporary tier's extend_to window, otherwise a
        consumed nonce marker could be evicted while its proof still
        verifies.
        """
        value = self._section("auth", "proof_validity_ledgers")
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValueError("auth.proof_validity_ledgers must be a positive integer")
        nonce_ttl = self.ttl_policy(StorageTier.TEMPORARY)
        if value > nonce_ttl.extend_to_ledgers:
            raise ValueError(
                "auth.proof_validity_ledgers cannot exceed ttl.temporary.extend_to_ledgers"
            )
        return value

    # ------------------------------------------------------------------
    # Ledger clock
    # ------------------------------------------------------------------

    def close_seconds(self) -> int:
        value = self._section("ledger", "close_seconds")
        if not isinstance(value, int) or value <= 0:
            raise ValueError("ledger.close_seconds must be a positive integer")
        return value

    def genesis_utc(self) -> datetime:
        raw = self._section("ledger", "genesis_utc")
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))

    # ------------------------------------------------------------------
    # TTL windows
    # ------------------------------------------------------------------

    def ttl_policy(self, tier: StorageTier, kind: Optional[KeyKind] = None) -> TTLPolicy:
        """TTL window for a tier, with optional per-kind override."""
        section = self._section("ttl", tier.value)
        if kind is not None:
            overrides = section.get("kind_overrides", {})
            if kind.value in overrides:
                section = overrides[kind.value]
        return self._ttl_from(section, f"ttl.{tier.value}")

    def ttl_for_kind(self, kind: KeyKind) -> TTLPolicy:
        return self.ttl_policy(DataKey(kind).tier, kind)

    @staticmethod
    def _ttl_from(section: dict[str, Any], label: str) -> TTLPolicy:
        try:
            threshold = section["threshold_ledgers"]
            extend_to = section["extend_to_ledgers"]
        except KeyError as e:
            raise ValueError(f"Missing policy key: {label}.{e.args[0]}") from e
        if not isinstance(threshold, int) or not isinstance(extend_to, int):
            raise ValueError(f"{label} TTL values must be integers")
        if threshold <= 0 or extend_to <= 0:
            raise ValueError(f"{label} TTL values must be positive")
        if threshold > extend_to:
            raise ValueError(f"{label} threshold_ledgers cannot exceed extend_to_ledgers")
        return TTLPolicy(threshold_ledgers=threshold, extend_to_ledgers=extend_to)

    # ------------------------------------------------------------------
    # Payout routing
    # ------------------------------------------------------------------

    def payout_routes(self) -> dict[str, str]:
        """Event kind -> collaborator role that pays out its amount."""
        routes = self._section("payouts", "routes")
        if not isinstance(routes, dict):
            raise ValueError("payouts.routes must be an object")
        return {str(k): str(v) for k, v in routes.items()}
