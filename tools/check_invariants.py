#!/usr/bin/env python3
"""StellarCade invariant checks against the runtime policy artifact."""

import json
from datetime import datetime
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"
POLICY_FILENAME = "runtime_policy.json"

# Event kinds whose payload carries an amount (the only routable kinds).
AMOUNT_EVENT_KINDS = {"badge_defined", "badge_awarded", "tournament_created", "player_joined"}
TIERS = ("instance", "persistent", "temporary")
PERSISTENT_KINDS = {"badge", "user_badges", "tournament", "player_joined", "player_score"}


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check_ttl_window(window: dict, label: str, errors: list[str]) -> None:
    """Validate one threshold/extend_to pair."""
    threshold = window.get("threshold_ledgers")
    extend_to = window.get("extend_to_ledgers")
    for name, value in (("threshold_ledgers", threshold), ("extend_to_ledgers", extend_to)):
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(f"{label}.{name} must be an integer")
            return
        if value <= 0:
            errors.append(f"{label}.{name} must be > 0, got {value}")
    if threshold > extend_to:
        errors.append(f"{label}.threshold_ledgers cannot exceed extend_to_ledgers")


def check(config_dir: Path = CONFIG_DIR) -> int:
    policy = load_json(config_dir / POLICY_FILENAME)
    errors: list[str] = []

    # --- Authorization ---
    domain = policy.get("auth", {}).get("domain")
    if not isinstance(domain, str) or not domain:
        errors.append("auth.domain must be a non-empty string")

    # --- Ledger clock ---
    ledger = policy.get("ledger", {})
    close_seconds = ledger.get("close_seconds")
    if not isinstance(close_seconds, int) or close_seconds <= 0:
        errors.append("ledger.close_seconds must be a positive integer")
    try:
        datetime.fromisoformat(str(ledger.get("genesis_utc", "")).replace("Z", "+00:00"))
    except ValueError:
        errors.append("ledger.genesis_utc must be an ISO-8601 timestamp")

    # --- TTL windows ---
    ttl = policy.get("ttl", {})
    for tier in TIERS:
        window = ttl.get(tier)
        if window is None:
            errors.append(f"ttl missing tier: {tier}")
            continue
        check_ttl_window(window, f"ttl.{tier}", errors)

    overrides = ttl.get("persistent", {}).get("kind_overrides", {})
    for kind, window in overrides.items():
        if kind not in PERSISTENT_KINDS:
            errors.append(f"ttl.persistent.kind_overrides has unknown kind: {kind}")
            continue
        check_ttl_window(window, f"ttl.persistent.kind_overrides.{kind}", errors)

    # Consumed nonces must not outlive the records they protect.
    if not errors:
        temporary = ttl["temporary"]["extend_to_ledgers"]
        persistent = ttl["persistent"]["extend_to_ledgers"]
        if temporary > persistent:
            errors.append("ttl.temporary.extend_to_ledgers must not exceed ttl.persistent")

    # Nonce markers must outlive every proof that could still replay them.
    validity = policy.get("auth", {}).get("proof_validity_ledgers")
    if not isinstance(validity, int) or isinstance(validity, bool) or validity <= 0:
        errors.append("auth.proof_validity_ledgers must be a positive integer")
    elif isinstance(ttl.get("temporary", {}).get("extend_to_ledgers"), int):
        if validity > ttl["temporary"]["extend_to_ledgers"]:
            errors.append(
                "auth.proof_validity_ledgers must not exceed ttl.temporary.extend_to_ledgers"
            )

    # --- Payout routes ---
    routes = policy.get("payouts", {}).get("routes", {})
    if not isinstance(routes, dict):
        errors.append("payouts.routes must be an object")
    else:
        for kind, role in routes.items():
            if kind not in AMOUNT_EVENT_KINDS:
                errors.append(f"payouts.routes: {kind} events carry no amount")
            if not isinstance(role, str) or not role:
                errors.append(f"payouts.routes.{kind} must name a collaborator role")

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check())
