"""Deployment configuration: one-time bootstrap and typed reads.

The configuration lives in the instance tier under a single key. It is
written exactly once; there is no update or delete. Its TTL is renewed
at bootstrap only.
"""

from __future__ import annotations

from typing import Optional

from stellarcade.errors import AlreadyInitializedError, InvalidInputError, NotInitializedError
from stellarcade.engine.lifecycle import LifecycleEngine
from stellarcade.identity.auth import AuthProof, normalize_address
from stellarcade.models.config import DeploymentConfig
from stellarcade.persistence.event_log import EventKind
from stellarcade.persistence.keys import DataKey


class ConfigStore(LifecycleEngine):
    """Create-once configuration record."""

    def bootstrap(
        self,
        admin: str,
        collaborators: Optional[dict[str, str]] = None,
        proof: Optional[AuthProof] = None,
    ) -> DeploymentConfig:
        admin = normalize_address(admin, "admin")
        roles: dict[str, str] = {}
        for role, address in (collaborators or {}).items():
            if not isinstance(role, str) or not role:
                raise InvalidInputError("Collaborator role must be a non-empty string")
            roles[role] = normalize_address(address, f"collaborator {role}")

        args = {"admin": admin, "collaborators": roles}
        key = DataKey.config()
        with self._store.atomic([key, *self._auth.scope_keys(admin, proof)]) as txn:
            if txn.has(key):
                raise AlreadyInitializedError("Deployment is already initialized")
            self._auth.require_auth(txn, admin, "init", args, proof)

            config = DeploymentConfig(
                admin=admin,
                collaborators=roles,
                initialized_ledger=txn.current_ledger,
            )
            self._write(txn, key, config)
            event = self._emit(txn, EventKind.INITIALIZED, admin, {
                "operation": "init",
                "admin": admin,
                "collaborators": dict(roles),
            })
        self._publish(event)
        return config

    def get(self) -> DeploymentConfig:
        config = self._store.get(DataKey.config())
        if config is None:
            raise NotInitializedError("Deployment is not initialized")
        return config

    def is_initialized(self) -> bool:
        return self._store.has(DataKey.config())
