"""StellarCade CLI: command-line interface for the ledger engine.

Usage:
    stellarcade new-key
    stellarcade init --reward 0xReward... --fee 0xFee...
    stellarcade define-badge --badge-id 1 --criteria-file criteria.json --reward 100
    stellarcade award-badge --user 0xUser... --badge-id 1
    stellarcade badges-of --user 0xUser...
    stellarcade create-tournament --id 1 --rules-file rules.json --entry-fee 50
    stellarcade join-tournament --id 1
    stellarcade events --kind badge_awarded
    stellarcade evict-expired --tier temporary
    stellarcade check-invariants

Privileged commands sign the invocation with STELLARCADE_SIGNING_KEY
(read from the environment or a .env file) or --key. The signer's
address is the acting admin or player.

Every command that opens the ledger first evicts expired temporary
entries (spent nonce markers whose proofs can no longer verify), so the
snapshot does not grow with every signed call.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from eth_account import Account

from stellarcade.crypto.commitment import commitment_from_file, parse_commitment
from stellarcade.errors import InvalidInputError, LedgerError
from stellarcade.identity.auth import AuthProof, normalize_address, sign_invocation
from stellarcade.persistence.clock import WallClockLedger
from stellarcade.persistence.event_log import EventKind, EventLog
from stellarcade.persistence.keys import StorageTier
from stellarcade.persistence.state_store import StateStore
from stellarcade.policy.resolver import PolicyResolver
from stellarcade.service import ArcadeService, ServiceResult


ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG = ROOT / "config"
DEFAULT_DATA = ROOT / "data"


def _make_service(args: argparse.Namespace, evict: bool = True) -> ArcadeService:
    """Create an ArcadeService with durable persistence."""
    data_dir: Path = args.data_dir
    data_dir.mkdir(parents=True, exist_ok=True)
    resolver = PolicyResolver.from_config_dir(args.config)
    clock = WallClockLedger(resolver.close_seconds(), resolver.genesis_utc())
    service = ArcadeService(
        resolver,
        clock=clock,
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
        state_store=StateStore(data_dir / "state.json"),
    )
    if evict:
        service.evict_expired(StorageTier.TEMPORARY)
    return service


def _signing_key(args: argparse.Namespace) -> str:
    key = args.key or os.environ.get("STELLARCADE_SIGNING_KEY")
    if not key:
        raise InvalidInputError("No signing key: pass --key or set STELLARCADE_SIGNING_KEY")
    return key


def _signer(args: argparse.Namespace) -> str:
    return Account.from_key(_signing_key(args)).address


def _authorize(
    service: ArcadeService,
    args: argparse.Namespace,
    operation: str,
    call_args: dict[str, Any],
) -> AuthProof:
    return sign_invocation(
        _signing_key(args),
        operation,
        call_args,
        nonce=time.time_ns(),
        domain=service.auth_domain,
        valid_until_ledger=service.clock.sequence + service.proof_validity_ledgers,
    )


def _hash_arg(value: Optional[str], path: Optional[Path], label: str) -> bytes:
    if path is not None:
        return commitment_from_file(path)
    if value is None:
        raise InvalidInputError(f"Provide --{label}-hash or --{label}-file")
    return parse_commitment(value, f"{label}_hash")


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    code = result.error_code.value if result.error_code else "error"
    print(f"Failed [{code}]: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def _print(value: Any) -> int:
    print(json.dumps(value, indent=2, default=str))
    return 0


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

def cmd_new_key(args: argparse.Namespace) -> int:
    acct = Account.create()
    return _print({"address": acct.address, "private_key": acct.key.hex()})


def cmd_status(args: argparse.Namespace) -> int:
    return _print(_make_service(args).status())


def cmd_init(args: argparse.Namespace) -> int:
    service = _make_service(args)
    admin = _signer(args)
    collaborators: dict[str, str] = {}
    if args.reward:
        collaborators["reward"] = normalize_address(args.reward, "reward")
    if args.fee:
        collaborators["fee"] = normalize_address(args.fee, "fee")
    for spec in args.collaborator or []:
        role, sep, address = spec.partition("=")
        if not sep:
            raise InvalidInputError(f"Collaborator must be ROLE=ADDRESS, got {spec!r}")
        collaborators[role] = normalize_address(address, f"collaborator {role}")
    proof = _authorize(service, args, "init", {"admin": admin, "collaborators": collaborators})
    return _report(service.init(admin, collaborators, proof))


def cmd_define_badge(args: argparse.Namespace) -> int:
    service = _make_service(args)
    criteria = _hash_arg(args.criteria_hash, args.criteria_file, "criteria")
    call_args = {"badge_id": args.badge_id, "criteria_hash": criteria, "reward": args.reward}
    proof = _authorize(service, args, "define_badge", call_args)
    return _report(service.define_badge(_signer(args), args.badge_id, criteria, args.reward, proof))


def cmd_evaluate_user(args: argparse.Namespace) -> int:
    service = _make_service(args)
    user = normalize_address(args.user, "user")
    proof = _authorize(service, args, "evaluate_user", {"user": user, "badge_id": args.badge_id})
    return _report(service.evaluate_user(_signer(args), user, args.badge_id, proof))


def cmd_award_badge(args: argparse.Namespace) -> int:
    service = _make_service(args)
    user = normalize_address(args.user, "user")
    proof = _authorize(service, args, "award_badge", {"user": user, "badge_id": args.badge_id})
    return _report(service.award_badge(_signer(args), user, args.badge_id, proof))


def cmd_badges_of(args: argparse.Namespace) -> int:
    return _print(_make_service(args).badges_of(args.user))


def cmd_get_badge(args: argparse.Namespace) -> int:
    definition = _make_service(args).get_badge(args.badge_id)
    if definition is None:
        return _print(None)
    return _print({
        "badge_id": definition.badge_id,
        "criteria_hash": definition.criteria_hex,
        "reward": definition.reward,
    })


def cmd_create_tournament(args: argparse.Namespace) -> int:
    service = _make_service(args)
    rules = _hash_arg(args.rules_hash, args.rules_file, "rules")
    call_args = {"tournament_id": args.id, "rules_hash": rules, "entry_fee": args.entry_fee}
    proof = _authorize(service, args, "create_tournament", call_args)
    return _report(service.create_tournament(_signer(args), args.id, rules, args.entry_fee, proof))


def cmd_join_tournament(args: argparse.Namespace) -> int:
    service = _make_service(args)
    proof = _authorize(service, args, "join_tournament", {"tournament_id": args.id})
    return _report(service.join_tournament(_signer(args), args.id, proof))


def cmd_record_result(args: argparse.Namespace) -> int:
    service = _make_service(args)
    player = normalize_address(args.player, "player")
    call_args = {"tournament_id": args.id, "player": player, "score": args.score}
    proof = _authorize(service, args, "record_result", call_args)
    return _report(service.record_result(_signer(args), args.id, player, args.score, proof))


def cmd_finalize_tournament(args: argparse.Namespace) -> int:
    service = _make_service(args)
    proof = _authorize(service, args, "finalize_tournament", {"tournament_id": args.id})
    return _report(service.finalize_tournament(_signer(args), args.id, proof))


def cmd_get_tournament(args: argparse.Namespace) -> int:
    record = _make_service(args).get_tournament(args.id)
    if record is None:
        return _print(None)
    return _print({
        "tournament_id": record.tournament_id,
        "rules_hash": record.rules_hash.hex(),
        "entry_fee": record.entry_fee,
        "status": record.status.value,
    })


def cmd_get_score(args: argparse.Namespace) -> int:
    return _print(_make_service(args).get_score(args.id, args.player))


def cmd_is_joined(args: argparse.Namespace) -> int:
    return _print(_make_service(args).is_joined(args.id, args.player))


def cmd_events(args: argparse.Namespace) -> int:
    log = _make_service(args).event_log
    events = log.read_from(args.offset)
    if args.kind:
        events = [e for e in events if e.event_kind == EventKind(args.kind)]
    for event in events:
        print(json.dumps(event.to_dict(), sort_keys=True))
    return 0


def cmd_evict_expired(args: argparse.Namespace) -> int:
    tier = StorageTier(args.tier) if args.tier else None
    evicted = _make_service(args, evict=False).evict_expired(tier)
    return _print({"evicted": [key.encode() for key in evicted]})


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run policy invariant checks."""
    tools_dir = ROOT / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(args.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stellarcade",
        description="StellarCade ledger engine CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.environ.get("STELLARCADE_CONFIG_DIR", DEFAULT_CONFIG)),
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path(os.environ.get("STELLARCADE_DATA_DIR", DEFAULT_DATA)),
        help="Path to data directory (default: data/)",
    )
    parser.add_argument("--key", help="Signing private key (default: $STELLARCADE_SIGNING_KEY)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show ledger status")
    sub.add_parser("new-key", help="Generate a signing key")

    p_init = sub.add_parser("init", help="Bootstrap the deployment (signer becomes admin)")
    p_init.add_argument("--reward", help="Reward service address")
    p_init.add_argument("--fee", help="Fee service address")
    p_init.add_argument(
        "--collaborator", action="append",
        help="Additional collaborator as ROLE=ADDRESS (repeatable)",
    )

    # badges
    p_def = sub.add_parser("define-badge", help="Define a badge")
    p_def.add_argument("--badge-id", type=int, required=True)
    p_def.add_argument("--criteria-hash", help="SHA-256 of the criteria document (hex)")
    p_def.add_argument("--criteria-file", type=Path, help="Criteria document to commit to")
    p_def.add_argument("--reward", type=int, default=0, help="Reward amount (default: 0)")

    for name, help_text in (
        ("evaluate-user", "Record a criteria evaluation"),
        ("award-badge", "Award a badge to a user"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--user", required=True)
        p.add_argument("--badge-id", type=int, required=True)

    p_of = sub.add_parser("badges-of", help="List a user's badges")
    p_of.add_argument("--user", required=True)

    p_gb = sub.add_parser("get-badge", help="Show a badge definition")
    p_gb.add_argument("--badge-id", type=int, required=True)

    # tournaments
    p_ct = sub.add_parser("create-tournament", help="Create a tournament")
    p_ct.add_argument("--id", type=int, required=True)
    p_ct.add_argument("--rules-hash", help="SHA-256 of the rules document (hex)")
    p_ct.add_argument("--rules-file", type=Path, help="Rules document to commit to")
    p_ct.add_argument("--entry-fee", type=int, default=0, help="Entry fee (default: 0)")

    for name, help_text in (
        ("join-tournament", "Join a tournament (signer is the player)"),
        ("finalize-tournament", "Finalize a tournament"),
        ("get-tournament", "Show a tournament"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--id", type=int, required=True)

    p_rr = sub.add_parser("record-result", help="Record a player's score")
    p_rr.add_argument("--id", type=int, required=True)
    p_rr.add_argument("--player", required=True)
    p_rr.add_argument("--score", type=int, required=True)

    for name, help_text in (
        ("get-score", "Show a player's score"),
        ("is-joined", "Check tournament participation"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--id", type=int, required=True)
        p.add_argument("--player", required=True)

    p_ev = sub.add_parser("events", help="Print the event log as JSON lines")
    p_ev.add_argument("--kind", choices=[k.value for k in EventKind])
    p_ev.add_argument("--offset", type=int, default=0)

    p_evict = sub.add_parser("evict-expired", help="Drop ledger entries whose TTL has run out")
    p_evict.add_argument("--tier", choices=[t.value for t in StorageTier], help="Only this tier")

    sub.add_parser("check-invariants", help="Validate the runtime policy")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv(ROOT / ".env")
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "new-key": cmd_new_key,
        "init": cmd_init,
        "define-badge": cmd_define_badge,
        "evaluate-user": cmd_evaluate_user,
        "award-badge": cmd_award_badge,
        "badges-of": cmd_badges_of,
        "get-badge": cmd_get_badge,
        "create-tournament": cmd_create_tournament,
        "join-tournament": cmd_join_tournament,
        "record-result": cmd_record_result,
        "finalize-tournament": cmd_finalize_tournament,
        "get-tournament": cmd_get_tournament,
        "get-score": cmd_get_score,
        "is-joined": cmd_is_joined,
        "events": cmd_events,
        "evict-expired": cmd_evict_expired,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except LedgerError as e:
        print(f"Failed [{e.code.value}]: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
