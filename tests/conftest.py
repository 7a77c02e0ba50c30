"""Shared fixtures: policy, signing accounts and a signed-operation driver."""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any, Optional

import pytest
from eth_account import Account
from eth_account.signers.local import LocalAccount

from stellarcade.identity.auth import AuthProof, sign_invocation
from stellarcade.persistence.clock import LedgerClock
from stellarcade.policy.resolver import PolicyResolver
from stellarcade.service import ArcadeService, ServiceResult


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
DOMAIN = "stellarcade:local"

ADMIN_KEY = "0x" + "11" * 32
USER_KEY = "0x" + "22" * 32
PLAYER_KEY = "0x" + "33" * 32
OTHER_KEY = "0x" + "44" * 32
REWARD_KEY = "0x" + "55" * 32
FEE_KEY = "0x" + "66" * 32


def make_hash(seed: int) -> bytes:
    return bytes([seed]) * 32


class ArcadeDriver:
    """Signs and submits operations the way a well-behaved client would."""

    def __init__(
        self,
        service: ArcadeService,
        admin: LocalAccount,
        reward: LocalAccount,
        fee: LocalAccount,
    ) -> None:
        self.service = service
        self.admin = admin
        self.reward = reward
        self.fee = fee
        self._nonces = itertools.count(1)

    def proof(
        self,
        account: LocalAccount,
        operation: str,
        args: dict[str, Any],
        valid_until: Optional[int] = None,
    ) -> AuthProof:
        if valid_until is None:
            valid_until = self.service.clock.sequence + self.service.proof_validity_ledgers
        return sign_invocation(
            account.key, operation, args, next(self._nonces), DOMAIN, valid_until,
        )

    def init(self, caller: Optional[LocalAccount] = None) -> ServiceResult:
        caller = caller or self.admin
        collaborators = {"reward": self.reward.address, "fee": self.fee.address}
        proof = self.proof(caller, "init", {"admin": caller.address, "collaborators": collaborators})
        return self.service.init(caller.address, collaborators, proof)

    def define_badge(
        self,
        badge_id: int,
        reward: int = 0,
        criteria: Optional[bytes] = None,
        caller: Optional[LocalAccount] = None,
    ) -> ServiceResult:
        caller = caller or self.admin
        criteria = criteria if criteria is not None else make_hash(badge_id % 256)
        args = {"badge_id": badge_id, "criteria_hash": criteria, "reward": reward}
        proof = self.proof(caller, "define_badge", args)
        return self.service.define_badge(caller.address, badge_id, criteria, reward, proof)

    def evaluate_user(
        self, user: str, badge_id: int, caller: Optional[LocalAccount] = None,
    ) -> ServiceResult:
        caller = caller or self.admin
        proof = self.proof(caller, "evaluate_user", {"user": user, "badge_id": badge_id})
        return self.service.evaluate_user(caller.address, user, badge_id, proof)

    def award_badge(
        self, user: str, badge_id: int, caller: Optional[LocalAccount] = None,
    ) -> ServiceResult:
        caller = caller or self.admin
        proof = self.proof(caller, "award_badge", {"user": user, "badge_id": badge_id})
        return self.service.award_badge(caller.address, user, badge_id, proof)

    def create_tournament(
        self,
        tournament_id: int,
        entry_fee: int = 0,
        rules: Optional[bytes] = None,
        caller: Optional[LocalAccount] = None,
    ) -> ServiceResult:
        caller = caller or self.admin
        rules = rules if rules is not None else make_hash(tournament_id % 256)
        args = {"tournament_id": tournament_id, "rules_hash": rules, "entry_fee": entry_fee}
        proof = self.proof(caller, "create_tournament", args)
        return self.service.create_tournament(caller.address, tournament_id, rules, entry_fee, proof)

    def join(self, player: LocalAccount, tournament_id: int) -> ServiceResult:
        proof = self.proof(player, "join_tournament", {"tournament_id": tournament_id})
        return self.service.join_tournament(player.address, tournament_id, proof)

    def record_result(
        self,
        tournament_id: int,
        player: str,
        score: int,
        caller: Optional[LocalAccount] = None,
    ) -> ServiceResult:
        caller = caller or self.admin
        args = {"tournament_id": tournament_id, "player": player, "score": score}
        proof = self.proof(caller, "record_result", args)
        return self.service.record_result(caller.address, tournament_id, player, score, proof)

    def finalize(
        self, tournament_id: int, caller: Optional[LocalAccount] = None,
    ) -> ServiceResult:
        caller = caller or self.admin
        proof = self.proof(caller, "finalize_tournament", {"tournament_id": tournament_id})
        return self.service.finalize_tournament(caller.address, tournament_id, proof)


def build_driver(service: ArcadeService, admin: LocalAccount) -> ArcadeDriver:
    return ArcadeDriver(
        service, admin, Account.from_key(REWARD_KEY), Account.from_key(FEE_KEY),
    )


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def admin() -> LocalAccount:
    return Account.from_key(ADMIN_KEY)


@pytest.fixture
def user() -> LocalAccount:
    return Account.from_key(USER_KEY)


@pytest.fixture
def player() -> LocalAccount:
    return Account.from_key(PLAYER_KEY)


@pytest.fixture
def other() -> LocalAccount:
    return Account.from_key(OTHER_KEY)


@pytest.fixture
def clock() -> LedgerClock:
    return LedgerClock(100)


@pytest.fixture
def service(resolver: PolicyResolver, clock: LedgerClock) -> ArcadeService:
    return ArcadeService(resolver, clock=clock)


@pytest.fixture
def driver(service: ArcadeService, admin: LocalAccount) -> ArcadeDriver:
    return build_driver(service, admin)


@pytest.fixture
def arcade(driver: ArcadeDriver) -> ArcadeDriver:
    """Driver over an initialized deployment."""
    result = driver.init()
    assert result.success, result.errors
    return driver
