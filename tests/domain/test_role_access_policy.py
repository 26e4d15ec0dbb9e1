"""
Tests for role-based access at the workflow boundary.

Validates:
- Fail-closed behaviour (no roles, unmapped actions)
- Default role grants for each procurement role
- Custom role policies
- Denials are logged with the workflow and action
"""

from uuid import uuid4

import pytest

from sourcing_kernel.domain.access_policy import (
    DEFAULT_ROLE_PERMISSIONS,
    WORKFLOW_ACTION_TO_PERMISSION,
    AccessPolicy,
    Actor,
    RolePolicy,
    check_permission,
    get_permission_for_action,
)
from sourcing_kernel.exceptions import AuthorizationError


def _actor(*roles: str) -> Actor:
    return Actor(actor_id=uuid4(), company_id=uuid4(), roles=tuple(roles))


class TestFailClosed:

    def test_actor_without_roles_is_denied(self):
        policy = AccessPolicy()
        with pytest.raises(AuthorizationError) as exc_info:
            policy.require(_actor(), "purchase_requisition", "create")
        assert exc_info.value.code == "NOT_AUTHORIZED"
        assert exc_info.value.reason == "actor has no roles"

    def test_unmapped_action_is_denied_even_for_admin(self):
        policy = AccessPolicy()
        assert not policy.is_allowed(_actor("admin"), "purchase_requisition", "teleport")
        with pytest.raises(AuthorizationError) as exc_info:
            policy.require(_actor("admin"), "purchase_requisition", "teleport")
        assert exc_info.value.permission == "purchase_requisition.teleport"

    def test_unknown_role_grants_nothing(self):
        assert not AccessPolicy().is_allowed(_actor("janitor"), "rfq", "send")

    def test_check_permission_reports_missing_grant(self):
        allowed, reason = check_permission(RolePolicy(), ("requester",), "rfq.award")
        assert not allowed
        assert "rfq.award" in reason


class TestDefaultRoles:

    @pytest.mark.parametrize(
        "role, workflow, action, allowed",
        [
            ("requester", "purchase_requisition", "create", True),
            ("requester", "purchase_requisition", "submit", True),
            ("requester", "purchase_requisition", "approve", False),
            ("approver", "purchase_requisition", "approve", True),
            ("approver", "purchase_requisition", "reject", True),
            ("approver", "purchase_requisition", "convert", False),
            ("buyer", "purchase_requisition", "convert", True),
            ("buyer", "rfq", "send", True),
            ("buyer", "rfq", "award", False),
            ("buyer", "quotation_response", "ingest", True),
            ("buyer", "quotation_response", "dedup_sweep", False),
            ("buyer", "rfq_comparison", "select", False),
            ("procurement_manager", "rfq", "award", True),
            ("procurement_manager", "quotation_response", "dedup_sweep", True),
            ("procurement_manager", "quotation", "accept", True),
            ("procurement_manager", "rfq_comparison", "select", True),
            ("procurement_manager", "purchase_requisition", "create", False),
        ],
    )
    def test_role_grants(self, role, workflow, action, allowed):
        assert AccessPolicy().is_allowed(_actor(role), workflow, action) is allowed

    def test_admin_holds_every_mapped_permission(self):
        assert DEFAULT_ROLE_PERMISSIONS["admin"] == frozenset(WORKFLOW_ACTION_TO_PERMISSION.values())

    def test_roles_combine(self):
        actor = _actor("requester", "approver")
        policy = AccessPolicy()
        assert policy.is_allowed(actor, "purchase_requisition", "submit")
        assert policy.is_allowed(actor, "purchase_requisition", "approve")

    def test_every_action_maps_to_a_granted_permission(self):
        granted = set().union(*DEFAULT_ROLE_PERMISSIONS.values())
        for key, permission in WORKFLOW_ACTION_TO_PERMISSION.items():
            assert permission in granted, key


class TestCustomPolicy:

    def test_custom_role_map(self):
        policy = AccessPolicy(RolePolicy(role_permissions={"clerk": frozenset({"rfq.send"})}))
        assert policy.is_allowed(_actor("clerk"), "rfq", "remind")
        assert not policy.is_allowed(_actor("buyer"), "rfq", "send")

    def test_lookup_helper(self):
        assert get_permission_for_action("quotation", "withdraw") == "quotation.review"
        assert get_permission_for_action("quotation", "explode") is None


class TestDenialLogging:

    def test_denial_is_logged(self, captured_logs):
        actor = _actor("requester")
        with pytest.raises(AuthorizationError):
            AccessPolicy().require(actor, "rfq", "award")
        denials = [r for r in captured_logs() if r["message"] == "authorization_denied"]
        assert len(denials) == 1
        assert denials[0]["workflow"] == "rfq"
        assert denials[0]["action"] == "award"
        assert denials[0]["actor_id"] == str(actor.actor_id)
