"""Deployment configuration model.

One record per deployment, stored in the instance tier. Holds the
administrator identity and the addresses of collaborating services
(for example the reward and fee disbursement services). The engine never
calls these collaborators; it only stores their addresses so event
consumers know where the carried amounts should be routed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional


@dataclass(frozen=True)
class DeploymentConfig:
    """Immutable deployment configuration, created once at bootstrap.

    collaborators is copied into a read-only mapping, so neither the
    caller's dict nor a reader holding the stored record can change it.
    """
    admin: str
    collaborators: Mapping[str, str] = field(default_factory=dict)
    initialized_ledger: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "collaborators", MappingProxyType(dict(self.collaborators)))

    def collaborator(self, role: str) -> Optional[str]:
        """Return the address configured for a collaborator role."""
        return self.collaborators.get(role)
