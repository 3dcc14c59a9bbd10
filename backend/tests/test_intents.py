# Overview: Pytest coverage for best-effort ledger side effects and their replay.

"""
Ledger Intent Tests

Stock and credit side effects never abort the order operation that triggers
them. These tests inject failures into single lines and check that:
- the other lines are still applied
- the failure is recorded as a FAILED intent with its error
- replay applies the effect later, or supersedes it when no longer wanted
- strict mode turns a failed effect into an error for the whole operation
"""

import pytest

from orderflow.models import LedgerIntent, Order
from orderflow.services import credit_service, intent_service, order_service, stock_service
from orderflow.services.intent_service import LedgerSideEffectError

from conftest import ADDRESS, line


@pytest.fixture
def fail_lines_for(monkeypatch):
    """Make one stock_service per-line function fail for a given product."""
    def _patch(function_name, product):
        real = getattr(stock_service, function_name)

        def flaky(org_id, order_item, **kwargs):
            if order_item.product_id == product.id:
                raise RuntimeError("stock row locked by another writer")
            return real(org_id, order_item, **kwargs)

        monkeypatch.setattr(stock_service, function_name, flaky)
    return _patch


def _create(org, user, customer, packer, items, payment_type="cash"):
    return order_service.create_order(
        org_id=org.id,
        user_id=user.id,
        customer_id=customer.id,
        items=items,
        payment_type=payment_type,
        assigned_packer_id=packer.id,
        delivery_method="local_delivery",
        delivery_address=ADDRESS,
    )


def _levels(org, product, store):
    item = stock_service.get_stock(org.id, product.id, store.id)
    return item.current_stock, item.available_stock


class TestPerLineFailure:
    def test_failed_line_does_not_block_others(
        self, db_session, org_a, store_a, stock_a, product_a, product_a2,
        admin_a, packer_a, customer_a, fail_lines_for,
    ):
        fail_lines_for("reserve_line", product_a2)

        order = _create(
            org_a, admin_a, customer_a, packer_a,
            [line(product_a, store_a, 2), line(product_a2, store_a, 3), line(product_a, store_a, 1)],
        )
        db_session.commit()

        assert order.status == "pending"
        assert _levels(org_a, product_a, store_a) == (10, 7)
        assert _levels(org_a, product_a2, store_a) == (100, 100)

        intents = intent_service.list_order_intents(org_a.id, order.id)
        assert [i.status for i in intents] == ["APPLIED", "FAILED", "APPLIED"]
        failed = intents[1]
        assert failed.intent_type == "STOCK_RESERVE"
        assert failed.order_item_id == order.items[1].id
        assert "locked by another writer" in failed.error_message
        assert failed.attempts == 1

    def test_replay_applies_failed_reservation(
        self, db_session, monkeypatch, org_a, store_a, stock_a, product_a, product_a2,
        admin_a, packer_a, customer_a, fail_lines_for,
    ):
        fail_lines_for("reserve_line", product_a2)
        order = _create(
            org_a, admin_a, customer_a, packer_a,
            [line(product_a, store_a, 2), line(product_a2, store_a, 3)],
        )
        db_session.commit()
        monkeypatch.undo()

        counts = intent_service.replay_failed_intents(org_a.id, user_id=admin_a.id)
        db_session.commit()

        assert counts == {"replayed": 1, "APPLIED": 1, "FAILED": 0, "SUPERSEDED": 0}
        assert _levels(org_a, product_a2, store_a) == (100, 97)
        assert intent_service.list_failed_intents(org_a.id) == []

        intent = intent_service.list_order_intents(org_a.id, order.id)[1]
        assert intent.status == "APPLIED"
        assert intent.attempts == 2

    def test_replay_supersedes_reservation_of_cancelled_order(
        self, db_session, monkeypatch, org_a, store_a, stock_a, product_a, product_a2,
        admin_a, packer_a, customer_a, fail_lines_for,
    ):
        fail_lines_for("reserve_line", product_a2)
        order = _create(
            org_a, admin_a, customer_a, packer_a,
            [line(product_a, store_a, 2), line(product_a2, store_a, 3)],
        )
        db_session.commit()
        monkeypatch.undo()

        order_service.update_order_status(
            org_id=org_a.id, order_id=order.id, new_status="cancelled", user_id=admin_a.id
        )
        db_session.commit()

        counts = intent_service.replay_failed_intents(org_a.id)
        db_session.commit()

        assert counts["SUPERSEDED"] == 1
        assert _levels(org_a, product_a, store_a) == (10, 10)
        assert _levels(org_a, product_a2, store_a) == (100, 100)

    def test_failed_deduct_keeps_reservation_until_replay(
        self, db_session, monkeypatch, org_a, store_a, stock_a, product_a,
        admin_a, packer_a, customer_a, fail_lines_for,
    ):
        order = _create(org_a, admin_a, customer_a, packer_a, [line(product_a, store_a, 4)])
        db_session.commit()

        fail_lines_for("deduct_line", product_a)
        order_service.approve_order(org_id=org_a.id, order_id=order.id, user_id=admin_a.id)
        db_session.commit()

        assert order.status == "approved"
        assert _levels(org_a, product_a, store_a) == (10, 6)

        monkeypatch.undo()
        intent_service.replay_failed_intents(org_a.id)
        db_session.commit()

        assert _levels(org_a, product_a, store_a) == (6, 6)


class TestCreditFailure:
    def test_invoice_failure_recorded_and_replayed(
        self, db_session, monkeypatch, org_a, store_a, stock_a, product_a,
        admin_a, packer_a, customer_a,
    ):
        def broken(*args, **kwargs):
            raise RuntimeError("customer row busy")

        monkeypatch.setattr(credit_service, "add_customer_transaction", broken)
        order = _create(
            org_a, admin_a, customer_a, packer_a, [line(product_a, store_a, 2)], payment_type="credit"
        )
        db_session.commit()

        assert customer_a.credit_used_cents == 0
        invoice_intent = [
            i for i in intent_service.list_order_intents(org_a.id, order.id)
            if i.intent_type == "CREDIT_INVOICE"
        ][0]
        assert invoice_intent.status == "FAILED"

        monkeypatch.undo()
        intent_service.replay_failed_intents(org_a.id)
        db_session.commit()

        assert customer_a.credit_used_cents == 3000
        assert invoice_intent.status == "APPLIED"

    def test_invoice_replay_after_cancel_is_superseded(
        self, db_session, monkeypatch, org_a, store_a, stock_a, product_a,
        admin_a, packer_a, customer_a,
    ):
        def broken(*args, **kwargs):
            raise RuntimeError("customer row busy")

        monkeypatch.setattr(credit_service, "add_customer_transaction", broken)
        order = _create(
            org_a, admin_a, customer_a, packer_a, [line(product_a, store_a, 2)], payment_type="credit"
        )
        db_session.commit()
        monkeypatch.undo()

        order_service.update_order_status(
            org_id=org_a.id, order_id=order.id, new_status="cancelled", user_id=admin_a.id
        )
        db_session.commit()

        counts = intent_service.replay_failed_intents(org_a.id)
        db_session.commit()

        assert counts["SUPERSEDED"] == 1
        assert customer_a.credit_used_cents == 0
        assert credit_service.find_order_transaction(order.id, "refund") is None


class TestStrictMode:
    def test_strict_mode_aborts_operation(
        self, app, db_session, monkeypatch, org_a, store_a, stock_a, product_a, product_a2,
        admin_a, packer_a, customer_a, fail_lines_for,
    ):
        monkeypatch.setitem(app.config, "ORDERFLOW_STRICT_LEDGER", True)
        fail_lines_for("reserve_line", product_a2)

        with pytest.raises(LedgerSideEffectError) as exc:
            _create(
                org_a, admin_a, customer_a, packer_a,
                [line(product_a, store_a, 2), line(product_a2, store_a, 3)],
            )
        assert exc.value.intent.intent_type == "STOCK_RESERVE"
        db_session.rollback()

        assert db_session.query(Order).count() == 0
        assert db_session.query(LedgerIntent).count() == 0
        assert _levels(org_a, product_a, store_a) == (10, 10)


class TestLedgerCli:
    def test_failed_and_replay_commands(
        self, app, db_session, monkeypatch, org_a, store_a, stock_a, product_a, product_a2,
        admin_a, packer_a, customer_a, fail_lines_for,
    ):
        fail_lines_for("reserve_line", product_a2)
        _create(org_a, admin_a, customer_a, packer_a, [line(product_a2, store_a, 3)])
        db_session.commit()
        monkeypatch.undo()

        runner = app.test_cli_runner()

        result = runner.invoke(args=["ledger", "failed", "--org-id", str(org_a.id)])
        assert result.exit_code == 0
        assert "STOCK_RESERVE" in result.output

        result = runner.invoke(args=["ledger", "replay", "--org-id", str(org_a.id)])
        assert result.exit_code == 0
        assert "1 applied" in result.output

        result = runner.invoke(args=["ledger", "failed", "--org-id", str(org_a.id)])
        assert "No failed ledger side effects" in result.output

    def test_stock_check_command(self, app, db_session, org_a, store_a, stock_a):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["stock", "check", "--org-id", str(org_a.id)])
        assert result.exit_code == 0
        assert "2 stock rows consistent" in result.output

        stock_a.available_stock = 50
        db_session.commit()

        result = runner.invoke(args=["stock", "check", "--org-id", str(org_a.id)])
        assert result.exit_code == 1
        assert "exceeds current_stock" in result.output
