# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for core resources.

These tests create two organizations with separate stores and users, then
verify that:
1. User A cannot read/write data in Organization B
2. Passing a foreign store_id, product_id or customer_id is rejected
3. Cross-tenant lookups fail exactly like missing records (no existence leak)
4. Security events are logged for cross-tenant access attempts

Test Coverage:
- Stores: foreign store ids rejected and logged
- Catalog: products and SKUs scoped per org
- Orders: foreign products, packers and orders rejected
- Stock and credit: ledgers scoped per org
- Sessions: tokens carry the user's org
"""

import pytest

from orderflow.models import Order, SecurityEvent, User
from orderflow.services import catalog_service, credit_service, order_service, stock_service
from orderflow.services.catalog_service import CatalogNotFoundError
from orderflow.services.order_service import OrderNotFoundError, OrderValidationError
from orderflow.services.permission_service import PermissionDeniedError
from orderflow.services.session_service import create_session, revoke_session, validate_session
from orderflow.services.tenant_service import (
    TenantAccessError,
    get_org_stores,
    require_store_in_org,
    validate_org_active,
)

from conftest import ADDRESS, line


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_require_store_in_org_valid(self, db_session, org_a, store_a):
        """Store in its own org passes validation."""
        result = require_store_in_org(store_a.id, org_a.id)
        assert result.id == store_a.id

    def test_require_store_in_org_cross_tenant(self, db_session, org_a, org_b, store_b):
        """Store from different org raises TenantAccessError."""
        with pytest.raises(TenantAccessError):
            require_store_in_org(store_b.id, org_a.id)

    def test_require_store_in_org_nonexistent(self, db_session, org_a):
        """Non-existent store raises TenantAccessError."""
        with pytest.raises(TenantAccessError):
            require_store_in_org(99999, org_a.id)

    def test_cross_tenant_and_missing_look_the_same(self, db_session, org_a, store_b):
        with pytest.raises(TenantAccessError) as foreign:
            require_store_in_org(store_b.id, org_a.id)
        with pytest.raises(TenantAccessError) as missing:
            require_store_in_org(99999, org_a.id)
        assert str(foreign.value) == str(missing.value)

    def test_get_org_stores(self, db_session, org_a, org_b, store_a, store_b):
        """get_org_stores returns only stores for that org."""
        stores_a = get_org_stores(org_a.id)
        stores_b = get_org_stores(org_b.id)

        assert len(stores_a) == 1
        assert stores_a[0].id == store_a.id

        assert len(stores_b) == 1
        assert stores_b[0].id == store_b.id

    def test_inactive_org(self, app, db_session, org_a):
        org_a.is_active = False
        db_session.commit()
        with pytest.raises(TenantAccessError):
            validate_org_active(org_a.id)

        result = app.test_cli_runner().invoke(args=[
            "users", "create", "--org-id", str(org_a.id), "--username", "late",
            "--email", "late@acme.test", "--role", "packer",
        ])
        assert result.exit_code == 1
        assert "FAIL Organization is not active" in result.output
        assert db_session.query(User).filter_by(username="late").count() == 0

    def test_cross_tenant_access_logs_security_event(
        self, db_session, app, org_a, org_b, store_b
    ):
        """Cross-tenant access attempt is logged."""
        initial_count = db_session.query(SecurityEvent).filter_by(
            event_type="CROSS_TENANT_ACCESS_DENIED"
        ).count()

        with app.test_request_context():
            with pytest.raises(TenantAccessError):
                require_store_in_org(store_b.id, org_a.id)

        final_count = db_session.query(SecurityEvent).filter_by(
            event_type="CROSS_TENANT_ACCESS_DENIED"
        ).count()

        assert final_count == initial_count + 1


class TestSessionTenantContext:
    """Test that sessions carry tenant context."""

    def test_session_captures_org_id(self, db_session, admin_a, org_a, store_a):
        """Session creation captures user's org_id."""
        session, token = create_session(user_id=admin_a.id)

        assert session.org_id == org_a.id
        assert session.store_id == store_a.id

    def test_validate_session_returns_org_context(self, db_session, admin_a, org_a):
        """validate_session returns SessionContext with org_id."""
        session, token = create_session(user_id=admin_a.id)

        context = validate_session(token)

        assert context is not None
        assert context.org_id == org_a.id
        assert context.user.id == admin_a.id

    def test_deactivated_org_invalidates_session(self, db_session, admin_a, org_a):
        session, token = create_session(user_id=admin_a.id)

        org_a.is_active = False
        db_session.commit()

        assert validate_session(token) is None
        assert session.is_revoked

    def test_revoked_token_no_longer_validates(self, app, db_session, admin_a):
        _, token = create_session(user_id=admin_a.id)
        assert revoke_session(token, reason="Lost device")
        assert validate_session(token) is None
        assert not revoke_session(token)

        _, token = create_session(user_id=admin_a.id)
        runner = app.test_cli_runner()
        result = runner.invoke(args=["tokens", "revoke", token])
        assert result.exit_code == 0, result.output
        assert "PASS Token revoked" in result.output

        result = runner.invoke(args=["tokens", "revoke", token])
        assert result.exit_code == 1


class TestCatalogTenantIsolation:
    """Test product access is tenant-scoped."""

    def test_cross_tenant_product_read_blocked(self, db_session, org_a, product_b):
        with pytest.raises(CatalogNotFoundError):
            catalog_service.get_product_by_id(org_a.id, product_b.id)

    def test_product_sku_unique_per_org_not_global(self, db_session, org_a, org_b):
        """Same SKU can exist in different orgs."""
        product_a = catalog_service.create_product(
            org_id=org_a.id, sku="SAME-SKU", name="Product A", unit_price_cents=100
        )
        product_b = catalog_service.create_product(
            org_id=org_b.id, sku="SAME-SKU", name="Product B", unit_price_cents=200
        )
        db_session.commit()  # Should not raise - SKU unique per org, not global

        assert product_a.id != product_b.id
        assert product_a.sku == product_b.sku


class TestOrderTenantIsolation:
    """Order operations never reach across organizations."""

    def test_foreign_store_line_rejected(
        self, db_session, org_a, store_b, stock_a, product_a, admin_a, packer_a, customer_a
    ):
        with pytest.raises(OrderNotFoundError):
            order_service.create_order(
                org_id=org_a.id, user_id=admin_a.id, customer_id=customer_a.id,
                items=[line(product_a, store_b, 1)], payment_type="cash",
                assigned_packer_id=packer_a.id, delivery_method="customer_pickup",
            )

    def test_foreign_customer_rejected(
        self, db_session, org_b, store_b, product_b, admin_b, customer_a
    ):
        packer_b = User(org_id=org_b.id, username="packer_b", email="packer_b@beta.test")
        db_session.add(packer_b)
        db_session.commit()

        with pytest.raises(OrderNotFoundError):
            order_service.create_order(
                org_id=org_b.id, user_id=admin_b.id, customer_id=customer_a.id,
                items=[line(product_b, store_b, 1)], payment_type="cash",
                assigned_packer_id=packer_b.id, delivery_method="customer_pickup",
            )

    def test_foreign_packer_rejected(
        self, db_session, org_a, store_a, stock_a, product_a, admin_a, admin_b, customer_a
    ):
        with pytest.raises(OrderValidationError):
            order_service.create_order(
                org_id=org_a.id, user_id=admin_a.id, customer_id=customer_a.id,
                items=[line(product_a, store_a, 1)], payment_type="cash",
                assigned_packer_id=admin_b.id, delivery_method="local_delivery",
                delivery_address=ADDRESS,
            )

    def test_user_cannot_act_in_other_org(
        self, db_session, org_a, org_b, store_a, stock_a, product_a, admin_a, admin_b,
        packer_a, customer_a,
    ):
        order = order_service.create_order(
            org_id=org_a.id, user_id=admin_a.id, customer_id=customer_a.id,
            items=[line(product_a, store_a, 1)], payment_type="cash",
            assigned_packer_id=packer_a.id, delivery_method="customer_pickup",
        )
        db_session.commit()

        # admin of org B claiming org A's tenant context
        with pytest.raises(PermissionDeniedError):
            order_service.approve_order(org_id=org_a.id, order_id=order.id, user_id=admin_b.id)

        # admin of org B in its own tenant cannot see the order
        with pytest.raises(OrderNotFoundError):
            order_service.approve_order(org_id=org_b.id, order_id=order.id, user_id=admin_b.id)

        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "pending"


class TestLedgerTenantIsolation:
    def test_stock_lists_scoped(self, db_session, org_a, org_b, stock_a):
        assert len(stock_service.list_stock(org_a.id)) == 2
        assert stock_service.list_stock(org_b.id) == []

    def test_foreign_stock_row_not_found(self, db_session, org_b, store_a, product_a, stock_a):
        assert stock_service.get_stock_item(org_b.id, product_a.id, store_a.id) is None

    def test_customers_scoped(self, db_session, org_a, org_b, customer_a):
        assert [c.id for c in credit_service.list_customers(org_a.id)] == [customer_a.id]
        assert credit_service.list_customers(org_b.id) == []


class TestUserTenantIsolation:
    """Test user access is tenant-scoped."""

    def test_same_username_different_orgs(self, db_session, org_a, org_b, store_a, store_b):
        """Same username can exist in different orgs."""
        user_a = User(org_id=org_a.id, store_id=store_a.id, username="admin", email="admin@acme.com")
        user_b = User(org_id=org_b.id, store_id=store_b.id, username="admin", email="admin@beta.com")

        db_session.add(user_a)
        db_session.add(user_b)
        db_session.commit()  # Should not raise - username unique per org, not global

        assert user_a.id != user_b.id
