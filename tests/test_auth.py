"""Tests for the authorization gate: signatures, nonces, admin checks."""

import pytest
from eth_account.signers.local import LocalAccount

from stellarcade.errors import (
    ErrorCode,
    InvalidInputError,
    MissingAuthorizationError,
    NotAuthorizedError,
    NotInitializedError,
)
from stellarcade.identity.auth import (
    AuthGate,
    AuthProof,
    SignatureVerifier,
    canonical_invocation,
    normalize_address,
    sign_invocation,
)
from stellarcade.models.config import DeploymentConfig
from stellarcade.persistence.clock import LedgerClock
from stellarcade.persistence.keys import DataKey
from stellarcade.persistence.ledger_store import LedgerStore
from stellarcade.policy.resolver import PolicyResolver

DOMAIN = "stellarcade:local"
ARGS = {"user": "0x1111111111111111111111111111111111111111", "badge_id": 1}


def _sign(
    account: LocalAccount,
    nonce: int = 1,
    operation: str = "award_badge",
    valid_until: int = 200,
) -> AuthProof:
    return sign_invocation(account.key, operation, ARGS, nonce, DOMAIN, valid_until)


def _check(
    store: LedgerStore,
    gate: AuthGate,
    address: str,
    proof: AuthProof,
    operation: str = "award_badge",
) -> None:
    with store.atomic(gate.scope_keys(address, proof)) as txn:
        gate.require_auth(txn, address, operation, ARGS, proof)


@pytest.fixture
def store() -> LedgerStore:
    return LedgerStore(LedgerClock(100))


@pytest.fixture
def gate(resolver: PolicyResolver) -> AuthGate:
    return AuthGate(resolver)


class TestAddresses:
    def test_lowercase_normalized_to_checksum(self, admin: LocalAccount) -> None:
        assert normalize_address(admin.address.lower()) == admin.address

    def test_invalid_address_rejected(self) -> None:
        with pytest.raises(InvalidInputError):
            normalize_address("not-an-address")
        with pytest.raises(InvalidInputError):
            normalize_address(12345)


class TestCanonicalMessage:
    def test_key_order_irrelevant(self) -> None:
        a = canonical_invocation(DOMAIN, "op", {"b": 1, "a": 2}, 5, 10)
        b = canonical_invocation(DOMAIN, "op", {"a": 2, "b": 1}, 5, 10)
        assert a == b

    def test_bytes_encoded_as_hex(self) -> None:
        msg = canonical_invocation(DOMAIN, "op", {"h": b"\x01\x02"}, 1, 10)
        assert '"h":"0102"' in msg

    def test_expiry_is_signed(self) -> None:
        msg = canonical_invocation(DOMAIN, "op", {}, 1, 17_380)
        assert '"valid_until_ledger":17380' in msg


class TestSignatureVerifier:
    def test_recovers_signer(self, admin: LocalAccount) -> None:
        verifier = SignatureVerifier(DOMAIN)
        assert verifier.recover("award_badge", ARGS, _sign(admin)) == admin.address

    def test_other_domain_recovers_someone_else(self, admin: LocalAccount) -> None:
        verifier = SignatureVerifier("stellarcade:other")
        assert verifier.recover("award_badge", ARGS, _sign(admin)) != admin.address

    def test_garbage_signature_rejected(self) -> None:
        verifier = SignatureVerifier(DOMAIN)
        with pytest.raises(NotAuthorizedError):
            verifier.recover(
                "award_badge", ARGS, AuthProof(nonce=1, valid_until_ledger=200, signature="0x1234"),
            )


class TestRequireAuth:
    def test_valid_proof_spends_nonce(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount,
    ) -> None:
        _check(store, gate, admin.address, _sign(admin, nonce=7))
        assert store.has(DataKey.auth_nonce(admin.address, 7))
        assert store.ttl(DataKey.auth_nonce(admin.address, 7)) == 17_280

    def test_missing_proof(self, store: LedgerStore, gate: AuthGate, admin: LocalAccount) -> None:
        with pytest.raises(MissingAuthorizationError) as exc:
            with store.atomic([]) as txn:
                gate.require_auth(txn, admin.address, "award_badge", ARGS, None)
        assert exc.value.code == ErrorCode.NOT_AUTHORIZED

    def test_replayed_nonce_rejected(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount,
    ) -> None:
        proof = _sign(admin, nonce=3)
        _check(store, gate, admin.address, proof)
        with pytest.raises(NotAuthorizedError, match="already used"):
            _check(store, gate, admin.address, proof)

    def test_signature_from_other_key_rejected(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount, other: LocalAccount,
    ) -> None:
        with pytest.raises(NotAuthorizedError, match="signature is from"):
            _check(store, gate, admin.address, _sign(other))

    def test_signature_for_other_operation_rejected(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount,
    ) -> None:
        proof = _sign(admin, operation="evaluate_user")
        with pytest.raises(NotAuthorizedError):
            _check(store, gate, admin.address, proof, operation="award_badge")

    def test_rejected_operation_leaves_nonce_unspent(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount,
    ) -> None:
        proof = _sign(admin, nonce=9)
        with pytest.raises(RuntimeError):
            with store.atomic(gate.scope_keys(admin.address, proof)) as txn:
                gate.require_auth(txn, admin.address, "award_badge", ARGS, proof)
                raise RuntimeError("later check failed")
        assert not store.has(DataKey.auth_nonce(admin.address, 9))
        _check(store, gate, admin.address, proof)

    def test_negative_nonce_rejected(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount,
    ) -> None:
        proof = AuthProof(nonce=-1, valid_until_ledger=200, signature=_sign(admin).signature)
        with pytest.raises(InvalidInputError):
            _check(store, gate, admin.address, proof)


class TestProofExpiry:
    def test_gate_window_comes_from_policy(self, gate: AuthGate) -> None:
        assert gate.validity_ledgers == 17_280

    def test_valid_on_last_ledger(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount,
    ) -> None:
        _check(store, gate, admin.address, _sign(admin, valid_until=100))

    def test_expired_proof_rejected_and_nonce_unspent(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount,
    ) -> None:
        proof = _sign(admin, nonce=4, valid_until=99)
        with pytest.raises(NotAuthorizedError, match="proof expired at ledger 99"):
            _check(store, gate, admin.address, proof)
        assert not store.has(DataKey.auth_nonce(admin.address, 4))

    def test_window_longer_than_policy_rejected(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount,
    ) -> None:
        with pytest.raises(NotAuthorizedError, match="exceeds 17280 ledgers"):
            _check(store, gate, admin.address, _sign(admin, valid_until=100 + 17_281))
        _check(store, gate, admin.address, _sign(admin, valid_until=100 + 17_280))

    def test_tampered_expiry_breaks_signature(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount,
    ) -> None:
        signed = _sign(admin, valid_until=150)
        extended = AuthProof(nonce=signed.nonce, valid_until_ledger=160, signature=signed.signature)
        with pytest.raises(NotAuthorizedError, match="signature is from"):
            _check(store, gate, admin.address, extended)

    def test_nonce_marker_outlives_proof(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount,
    ) -> None:
        proof = _sign(admin, nonce=8, valid_until=100 + 17_280)
        _check(store, gate, admin.address, proof)
        marker = store.entry(DataKey.auth_nonce(admin.address, 8))
        assert marker.live_until_ledger >= proof.valid_until_ledger


class TestRequireAdmin:
    def test_not_initialized_checked_first(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount,
    ) -> None:
        with pytest.raises(NotInitializedError):
            with store.atomic([]) as txn:
                gate.require_admin(txn, admin.address, "award_badge", ARGS, None)

    def test_non_admin_rejected_after_valid_signature(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount, other: LocalAccount,
    ) -> None:
        with store.atomic([DataKey.config()]) as txn:
            txn.set(DataKey.config(), DeploymentConfig(admin=admin.address))
        proof = _sign(other)
        with pytest.raises(NotAuthorizedError, match="not the administrator"):
            with store.atomic(gate.scope_keys(other.address, proof)) as txn:
                gate.require_admin(txn, other.address, "award_badge", ARGS, proof)

    def test_admin_accepted(
        self, store: LedgerStore, gate: AuthGate, admin: LocalAccount,
    ) -> None:
        with store.atomic([DataKey.config()]) as txn:
            txn.set(DataKey.config(), DeploymentConfig(admin=admin.address))
        proof = _sign(admin)
        with store.atomic(gate.scope_keys(admin.address, proof)) as txn:
            config = gate.require_admin(txn, admin.address, "award_badge", ARGS, proof)
        assert config.admin == admin.address
