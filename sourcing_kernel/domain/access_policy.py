"""
sourcing_kernel.domain.access_policy -- Role-based checks at the workflow boundary.

Responsibility:
    Decide whether an actor (with assigned roles, acting for one company) may
    perform a workflow action.  Every service calls ``AccessPolicy.require``
    before any state transition or mutation.

Architecture position:
    Kernel > Domain.  Pure: the caller supplies the actor's roles; this module
    never resolves identity.

Invariants:
    - Fail closed: an actor with no roles, or an action with no mapped
      permission, is denied.
    - Company scope is not a permission.  Services hide entities of other
      companies by reporting them as not found.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from uuid import UUID

from sourcing_kernel.exceptions import AuthorizationError
from sourcing_kernel.logging_config import get_logger

logger = get_logger("domain.access_policy")

# (workflow_name, action) -> permission string
WORKFLOW_ACTION_TO_PERMISSION: dict[tuple[str, str], str] = {
    # Purchase requisitions
    ("purchase_requisition", "create"): "requisition.create",
    ("purchase_requisition", "update"): "requisition.create",
    ("purchase_requisition", "delete"): "requisition.create",
    ("purchase_requisition", "submit"): "requisition.submit",
    ("purchase_requisition", "approve"): "requisition.approve",
    ("purchase_requisition", "reject"): "requisition.approve",
    ("purchase_requisition", "convert"): "requisition.convert",
    # RFQs
    ("rfq", "create"): "rfq.manage",
    ("rfq", "publish"): "rfq.manage",
    ("rfq", "send"): "rfq.send",
    ("rfq", "remind"): "rfq.send",
    ("rfq", "close"): "rfq.manage",
    ("rfq", "cancel"): "rfq.manage",
    ("rfq", "award"): "rfq.award",
    # Quotations and inbound responses
    ("quotation_response", "ingest"): "quotation.ingest",
    ("quotation_response", "review"): "quotation.review",
    ("quotation_response", "dedup_sweep"): "quotation.reconcile",
    ("quotation", "record"): "quotation.ingest",
    ("quotation", "review"): "quotation.review",
    ("quotation", "accept"): "quotation.decide",
    ("quotation", "reject"): "quotation.decide",
    ("quotation", "withdraw"): "quotation.review",
    ("rfq_comparison", "select"): "quotation.decide",
}


DEFAULT_ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "requester": frozenset({"requisition.create", "requisition.submit"}),
    "approver": frozenset({"requisition.approve"}),
    "buyer": frozenset({
        "requisition.convert",
        "rfq.manage",
        "rfq.send",
        "quotation.ingest",
        "quotation.review",
    }),
    "procurement_manager": frozenset({
        "requisition.approve",
        "requisition.convert",
        "rfq.manage",
        "rfq.send",
        "rfq.award",
        "quotation.ingest",
        "quotation.review",
        "quotation.decide",
        "quotation.reconcile",
    }),
    "admin": frozenset(WORKFLOW_ACTION_TO_PERMISSION.values()),
}


@dataclass(frozen=True)
class Actor:
    """The caller of a service operation.

    ``company_id`` scopes every read and write; ``roles`` feed the policy.
    """
    actor_id: UUID
    company_id: UUID
    roles: tuple[str, ...] = ()


@dataclass(frozen=True)
class RolePolicy:
    """Role -> permissions map.  Frozen so it can be shared across threads."""
    role_permissions: Mapping[str, frozenset[str]] = field(
        default_factory=lambda: dict(DEFAULT_ROLE_PERMISSIONS)
    )

    def permissions_for(self, roles: tuple[str, ...]) -> frozenset[str]:
        granted: set[str] = set()
        for role in roles:
            granted |= self.role_permissions.get(role, frozenset())
        return frozenset(granted)


def get_permission_for_action(workflow_name: str, action: str) -> str | None:
    """Return the permission required for this workflow action, or None if unmapped."""
    return WORKFLOW_ACTION_TO_PERMISSION.get((workflow_name, action))


def check_permission(
    policy: RolePolicy,
    roles: tuple[str, ...],
    required_permission: str | None,
) -> tuple[bool, str]:
    """Check whether roles grant the required permission.

    Returns:
        (allowed, reason). reason is empty when allowed, or a short message
        when denied.
    """
    if required_permission is None:
        return (False, "no permission mapped for action")
    if not roles:
        return (False, "actor has no roles")
    if required_permission not in policy.permissions_for(roles):
        return (False, f"permission '{required_permission}' not granted to actor")
    return (True, "")


class AccessPolicy:
    """The single authorization capability consumed by every service."""

    def __init__(self, policy: RolePolicy | None = None):
        self._policy = policy or RolePolicy()

    def is_allowed(self, actor: Actor, workflow_name: str, action: str) -> bool:
        permission = get_permission_for_action(workflow_name, action)
        allowed, _ = check_permission(self._policy, actor.roles, permission)
        return allowed

    def require(self, actor: Actor, workflow_name: str, action: str) -> None:
        """Raise AuthorizationError unless the actor may perform the action."""
        permission = get_permission_for_action(workflow_name, action)
        allowed, reason = check_permission(self._policy, actor.roles, permission)
        if not allowed:
            logger.warning(
                "authorization_denied",
                extra={
                    "actor_id": str(actor.actor_id),
                    "workflow": workflow_name,
                    "action": action,
                    "reason": reason,
                },
            )
            raise AuthorizationError(
                actor_id=str(actor.actor_id),
                permission=permission or f"{workflow_name}.{action}",
                reason=reason,
            )
