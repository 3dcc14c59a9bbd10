"""
Authorization tests for OrderFlow.

Verifies:
- Default roles grant the operations their job needs
- Missing permissions raise PermissionDeniedError, never a silent no-op
- Denials are written to the security event log
- Inactive users and users of another org are refused
"""

import pytest

from orderflow.models import Permission, Role, SecurityEvent
from orderflow.permissions import (
    DEFAULT_ROLES,
    PERMISSION_DEFINITIONS,
    get_all_permission_codes,
    validate_permission_code,
)
from orderflow.services import permission_service
from orderflow.services.permission_service import (
    OPERATION_PERMISSIONS,
    PermissionDeniedError,
    authorize,
    require_capability,
)


# =============================================================================
# ROLE MATRIX
# =============================================================================


class TestRoleMatrix:
    @pytest.mark.parametrize(
        "operation",
        ["create_order", "approve_order", "delete_order", "manage_credit", "replay_intents"],
    )
    def test_admin_can_do_everything(self, db_session, org_a, admin_a, operation):
        assert authorize(admin_a.id, operation, org_id=org_a.id).allowed

    @pytest.mark.parametrize(
        "operation,allowed",
        [
            ("create_order", True),
            ("update_order", True),
            ("approve_order", False),
            ("delete_order", False),
            ("update_packer_status", False),
            ("manage_credit", False),
        ],
    )
    def test_sales_rep(self, db_session, org_a, sales_a, operation, allowed):
        assert authorize(sales_a.id, operation, org_id=org_a.id).allowed is allowed

    @pytest.mark.parametrize(
        "operation,allowed",
        [
            ("update_packer_status", True),
            ("update_transporter_details", True),
            ("update_cargo_receipt", True),
            ("mark_order_prepared", True),
            ("create_order", False),
            ("approve_order", False),
        ],
    )
    def test_packer(self, db_session, org_a, packer_a, operation, allowed):
        assert authorize(packer_a.id, operation, org_id=org_a.id).allowed is allowed

    def test_accountant_reads_accounts(self, db_session, org_a, accountant_a):
        assert authorize(accountant_a.id, "view_customer_accounts", org_id=org_a.id).allowed
        assert not authorize(accountant_a.id, "manage_credit", org_id=org_a.id).allowed

    def test_every_operation_maps_to_known_permissions(self):
        codes = set(get_all_permission_codes())
        for operation, required in OPERATION_PERMISSIONS.items():
            assert required, operation
            assert all(validate_permission_code(code) for code in required), operation
            assert set(required) <= codes, operation

    def test_has_permission(self, db_session, packer_a):
        assert permission_service.has_permission(packer_a.id, "PREPARE_ORDERS")
        assert not permission_service.has_permission(packer_a.id, "MANAGE_CREDIT")
        with pytest.raises(ValueError):
            permission_service.has_permission(packer_a.id, "FLY_DRONES")


# =============================================================================
# DENIAL
# =============================================================================


class TestDenial:
    def test_require_capability_raises(self, db_session, org_a, sales_a):
        with pytest.raises(PermissionDeniedError) as exc:
            require_capability(user_id=sales_a.id, operation="approve_order", org_id=org_a.id)
        assert exc.value.result.required == ("APPROVE_ORDERS",)
        assert "APPROVE_ORDERS" in exc.value.result.reason

    def test_denial_is_logged(self, db_session, org_a, sales_a):
        with pytest.raises(PermissionDeniedError):
            require_capability(user_id=sales_a.id, operation="delete_order", org_id=org_a.id)

        event = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert event.user_id == sales_a.id
        assert event.org_id == org_a.id
        assert event.action == "delete_order"
        assert event.success is False

    def test_unknown_operation(self, db_session, org_a, admin_a):
        result = authorize(admin_a.id, "launch_rockets", org_id=org_a.id)
        assert not result.allowed
        assert "Unknown operation" in result.reason

    def test_inactive_user(self, db_session, org_a, admin_a):
        admin_a.is_active = False
        db_session.commit()
        result = authorize(admin_a.id, "view_orders", org_id=org_a.id)
        assert not result.allowed
        assert result.reason == "User account is inactive"

    def test_user_from_other_org(self, db_session, org_a, admin_b):
        result = authorize(admin_b.id, "view_orders", org_id=org_a.id)
        assert not result.allowed

    def test_missing_user(self, db_session, org_a):
        assert not authorize(None, "view_orders", org_id=org_a.id).allowed


class TestBootstrap:
    def test_initialize_permissions_is_idempotent(self, db_session):
        first = permission_service.initialize_permissions()
        second = permission_service.initialize_permissions()
        assert first == len(PERMISSION_DEFINITIONS)
        assert second == 0
        assert db_session.query(Permission).count() == len(PERMISSION_DEFINITIONS)

    def test_default_roles_are_per_org_and_idempotent(self, db_session, org_a, org_b):
        for org in (org_a, org_b):
            names = {r.name for r in db_session.query(Role).filter_by(org_id=org.id)}
            assert names == {name for name, _ in DEFAULT_ROLES}

        assert permission_service.create_default_roles(org_a.id) == 0
        assert permission_service.assign_default_role_permissions(org_a.id) == 0

    def test_assign_unknown_role(self, db_session, org_a, admin_a):
        with pytest.raises(ValueError):
            permission_service.assign_role(admin_a.id, "astronaut")

    def test_role_names(self, db_session, admin_a):
        assert permission_service.get_user_role_names(admin_a.id) == ["admin"]

    def test_system_init_command(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["system", "init", "--org", "Acme", "--org-code", "ACME"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(args=["tokens", "issue", "--username", "packer"])
        assert result.exit_code == 0, result.output
        assert "PASS Token for packer" in result.output
        assert "roles: packer" in result.output

        result = runner.invoke(args=["system", "init", "--org-code", "ACME"])
        assert result.exit_code == 0
        assert "already exists" in result.output
