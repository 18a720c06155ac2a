"""
AccessPolicy -- role check at the orchestrator boundary.

Responsibility:
    The surrounding auth layer supplies ``{actor_id, role}`` and the kernel
    trusts it.  This service only answers whether that role may perform an
    action on a resource, and raises InsufficientPermissionError before any
    store access when it may not.

Architecture position:
    Kernel > Services.  Consumes the PermissionTable built from
    configuration by ``ledger_config.bridges``.
"""

from ledger_kernel.domain.dtos import Actor
from ledger_kernel.domain.permissions import Action, PermissionTable, Resource
from ledger_kernel.exceptions import InsufficientPermissionError
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.access_policy")


class AccessPolicy:
    def __init__(self, permissions: PermissionTable):
        self._permissions = permissions

    def allows(self, actor: Actor, resource: Resource, action: Action) -> bool:
        return self._permissions.allows(actor.role, resource, action)

    def require(self, actor: Actor, resource: Resource, action: Action) -> None:
        """
        Raises:
            InsufficientPermissionError: if the actor's role lacks the action.
        """
        if self.allows(actor, resource, action):
            return
        logger.warning(
            "permission_denied",
            extra={
                "actor_id": str(actor.actor_id),
                "role": actor.role,
                "resource": resource.value,
                "action": action.value,
            },
        )
        raise InsufficientPermissionError(actor.role, resource.value, action.value)
