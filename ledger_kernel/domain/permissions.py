"""
Permissions -- role -> resource -> action table.

Responsibility:
    Pure lookup of whether a role may perform an action on a resource.
    The table itself is configuration (``ledger_config``); this module only
    defines the vocabulary and the evaluation rule.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Consumed by
    services/access_policy.py.

Rule:
    ``manage`` on a resource implies every action on that resource.
    Unknown roles have no permissions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class Resource(str, Enum):
    SALES = "sales"
    PURCHASES = "purchases"
    INVENTORY = "inventory"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"


@dataclass(frozen=True)
class PermissionTable:
    """
    Immutable role -> resource -> actions mapping.

    Built from configuration with ``from_mapping``; values are validated
    against Resource and Action so that a typo in YAML fails at load time.
    """

    grants: Mapping[str, Mapping[Resource, frozenset[Action]]]

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Mapping[str, list[str]]]) -> PermissionTable:
        grants: dict[str, Mapping[Resource, frozenset[Action]]] = {}
        for role, resources in raw.items():
            if not isinstance(resources, Mapping):
                raise ValueError(f"Permissions for role '{role}' must be a mapping")
            per_role: dict[Resource, frozenset[Action]] = {}
            for resource, actions in resources.items():
                try:
                    per_role[Resource(resource)] = frozenset(Action(a) for a in actions)
                except ValueError as exc:
                    raise ValueError(
                        f"Invalid permission entry for role '{role}': {exc}"
                    ) from exc
            grants[role] = MappingProxyType(per_role)
        return cls(grants=MappingProxyType(grants))

    @property
    def roles(self) -> tuple[str, ...]:
        return tuple(self.grants)

    def allows(self, role: str, resource: Resource, action: Action) -> bool:
        actions = self.grants.get(role, {}).get(resource, frozenset())
        return action in actions or Action.MANAGE in actions
