"""Authorization gate: proves a privileged caller signed the invocation.

A caller authorizes an operation by signing a canonical message that
binds the deployment domain, the operation name, its arguments, a
caller-chosen nonce and the last ledger at which the proof is valid:

    {"args": {...}, "domain": "stellarcade:local", "nonce": 17,
     "operation": "award_badge", "valid_until_ledger": 17380}

(JSON, sorted keys, compact separators.) The signature is an Ethereum
personal-sign signature produced with eth_account; verification recovers
the signer address and compares it to the claimed identity.

Consumed nonces are recorded in the temporary storage tier inside the
operation's own transaction, so a proof is spent exactly when the
operation commits and a rejected operation leaves it unspent. A proof
may not be valid for longer than auth.proof_validity_ledgers, and the
policy keeps the nonce marker alive at least that long, so a marker is
only evicted once its proof can no longer be used.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from stellarcade.errors import (
    InvalidInputError,
    MissingAuthorizationError,
    NotAuthorizedError,
    NotInitializedError,
)
from stellarcade.models.config import DeploymentConfig
from stellarcade.models.types import require_u64
from stellarcade.persistence.keys import DataKey, StorageTier
from stellarcade.persistence.ledger_store import LedgerTransaction
from stellarcade.policy.resolver import PolicyResolver

logger = logging.getLogger(__name__)


def normalize_address(value: Any, field_name: str = "address") -> str:
    """Return the EIP-55 checksum form of an address or raise InvalidInput."""
    if not isinstance(value, str) or not Web3.is_address(value):
        raise InvalidInputError(f"{field_name} is not a valid address: {value!r}")
    return Web3.to_checksum_address(value)


def _jsonable(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def canonical_invocation(
    domain: str,
    operation: str,
    args: dict[str, Any],
    nonce: int,
    valid_until_ledger: int,
) -> str:
    """Canonical message text signed by the caller."""
    return json.dumps(
        {
            "domain": domain,
            "operation": operation,
            "args": _jsonable(args),
            "nonce": nonce,
            "valid_until_ledger": valid_until_ledger,
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


@dataclass(frozen=True)
class AuthProof:
    """A caller's signature over one invocation."""
    nonce: int
    valid_until_ledger: int
    signature: str  # 0x-prefixed hex, 65 bytes


def sign_invocation(
    private_key: str,
    operation: str,
    args: dict[str, Any],
    nonce: int,
    domain: str,
    valid_until_ledger: int,
) -> AuthProof:
    """Produce an AuthProof for an invocation (client-side helper)."""
    message = encode_defunct(
        text=canonical_invocation(domain, operation, args, nonce, valid_until_ledger),
    )
    signed = Account.sign_message(message, private_key=private_key)
    signature = signed.signature.hex()
    if not signature.startswith("0x"):
        signature = "0x" + signature
    return AuthProof(nonce=nonce, valid_until_ledger=valid_until_ledger, signature=signature)


class SignatureVerifier:
    """Recovers the signer of an invocation message."""

    def __init__(self, domain: str) -> None:
        self._domain = domain

    @property
    def domain(self) -> str:
        return self._domain

    def recover(self, operation: str, args: dict[str, Any], proof: AuthProof) -> str:
        """Return the checksum address that signed the invocation.

        Raises NotAuthorizedError for malformed or unrecoverable signatures.
        """
        message = encode_defunct(
            text=canonical_invocation(
                self._domain, operation, args, proof.nonce, proof.valid_until_ledger,
            ),
        )
        try:
            recovered = Account.recover_message(message, signature=proof.signature)
        except Exception as e:
            raise NotAuthorizedError(f"Invalid signature for {operation}: {e}") from e
        return Web3.to_checksum_address(recovered)


class AuthGate:
    """Identity checks shared by every privileged operation.

    Both checks run inside the caller's LedgerTransaction. The nonce key
    of the proof must be part of the transaction's locked scope; use
    scope_keys() when building it.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        verifier: Optional[SignatureVerifier] = None,
    ) -> None:
        self._verifier = verifier or SignatureVerifier(resolver.auth_domain())
        self._nonce_ttl = resolver.ttl_policy(StorageTier.TEMPORARY)
        self._validity_ledgers = resolver.proof_validity_ledgers()

    @property
    def verifier(self) -> SignatureVerifier:
        return self._verifier

    @property
    def validity_ledgers(self) -> int:
        """Longest window a proof may be valid for, in ledgers."""
        return self._validity_ledgers

    @staticmethod
    def scope_keys(address: str, proof: Optional[AuthProof]) -> list[DataKey]:
        """Keys an authorization check will write (the nonce marker)."""
        if proof is None or not isinstance(proof.nonce, int):
            return []
        return [DataKey.auth_nonce(address, proof.nonce)]

    def require_auth(
        self,
        txn: LedgerTransaction,
        address: str,
        operation: str,
        args: dict[str, Any],
        proof: Optional[AuthProof],
    ) -> None:
        """Verify that address signed this invocation; spend the nonce."""
        if proof is None:
            raise MissingAuthorizationError(f"{operation} requires authorization from {address}")
        nonce = require_u64(proof.nonce, "nonce")
        valid_until = require_u64(proof.valid_until_ledger, "valid_until_ledger")

        now = txn.current_ledger
        if now > valid_until:
            raise NotAuthorizedError(
                f"{operation}: proof expired at ledger {valid_until} (current {now})"
            )
        if valid_until - now > self._validity_ledgers:
            raise NotAuthorizedError(
                f"{operation}: proof validity exceeds {self._validity_ledgers} ledgers"
            )

        signer = self._verifier.recover(operation, args, proof)
        if signer != address:
            raise NotAuthorizedError(
                f"{operation}: signature is from {signer}, expected {address}"
            )

        nonce_key = DataKey.auth_nonce(address, nonce)
        if txn.has(nonce_key):
            raise NotAuthorizedError(f"{operation}: nonce {nonce} already used by {address}")
        txn.set(nonce_key, True)
        txn.extend_ttl(
            nonce_key,
            self._nonce_ttl.threshold_ledgers,
            self._nonce_ttl.extend_to_ledgers,
        )

    def require_admin(
        self,
        txn: LedgerTransaction,
        caller: str,
        operation: str,
        args: dict[str, Any],
        proof: Optional[AuthProof],
    ) -> DeploymentConfig:
        """Check order: configuration exists, caller signed, caller is admin."""
        config: Optional[DeploymentConfig] = txn.get(DataKey.config())
        if config is None:
            raise NotInitializedError("Deployment is not initialized")
        self.require_auth(txn, caller, operation, args, proof)
        if caller != config.admin:
            raise NotAuthorizedError(f"{operation}: {caller} is not the administrator")
        return config
