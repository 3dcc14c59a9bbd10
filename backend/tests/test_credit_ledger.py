# Overview: Pytest coverage for the customer credit ledger and eligibility checks.

"""
Credit Ledger Tests

Verifies:
- credit_used is a fold over the transaction log, floored at zero
- eligibility compares the order total with limit minus used
- credit orders over the limit are rejected before anything is written
- two orders checked against the same balance can both pass (accepted race)
- credit status buckets
"""

import pytest

from orderflow.models import CustomerTransaction, Order
from orderflow.services import catalog_service, credit_service, order_service, stock_service
from orderflow.services.credit_service import (
    CreditError,
    CustomerNotFoundError,
    check_credit_eligibility,
    fold_credit_used,
    get_credit_status,
)
from orderflow.services.order_service import OrderValidationError

from conftest import ADDRESS


class _Txn:
    def __init__(self, transaction_type, amount_cents):
        self.transaction_type = transaction_type
        self.amount_cents = amount_cents


@pytest.fixture
def big_ticket(db_session, org_a, store_a):
    """Product priced at 10,000 with 10 units in stock."""
    product = catalog_service.create_product(
        org_id=org_a.id, sku="GEN-5KVA", name="Generator 5kVA", unit_price_cents=10_000
    )
    stock_service.set_stock_count(
        org_id=org_a.id, product_id=product.id, store_id=store_a.id, current_stock=10
    )
    db_session.commit()
    return product


def _credit_order(org, user, customer, packer, product, store, quantity):
    return order_service.create_order(
        org_id=org.id,
        user_id=user.id,
        customer_id=customer.id,
        items=[{"product_id": product.id, "store_id": store.id, "quantity": quantity}],
        payment_type="credit",
        assigned_packer_id=packer.id,
        delivery_method="local_delivery",
        delivery_address=ADDRESS,
    )


class TestFold:
    """fold_credit_used over a transaction log."""

    def test_invoices_accumulate(self):
        log = [_Txn("invoice", 500), _Txn("invoice", 300)]
        assert fold_credit_used(log) == 800

    def test_payment_reduces(self):
        log = [_Txn("invoice", 500), _Txn("payment", 200)]
        assert fold_credit_used(log) == 300

    def test_floor_at_zero(self):
        log = [_Txn("invoice", 100), _Txn("refund", 500)]
        assert fold_credit_used(log) == 0

    def test_floor_is_applied_in_order(self):
        """Overpayment is not carried forward as a credit balance."""
        log = [_Txn("payment", 500), _Txn("invoice", 100)]
        assert fold_credit_used(log) == 100

    def test_adjustment_reduces(self):
        log = [_Txn("invoice", 1000), _Txn("credit_adjustment", 250)]
        assert fold_credit_used(log) == 750


class TestAddTransaction:
    def test_invoice_then_payment(self, db_session, org_a, customer_a, admin_a):
        credit_service.add_customer_transaction(
            org_a.id, customer_a.id, transaction_type="invoice", amount_cents=40_000
        )
        txn = credit_service.record_payment(
            org_id=org_a.id, customer_id=customer_a.id, amount_cents=15_000, user_id=admin_a.id
        )
        db_session.commit()

        assert customer_a.credit_used_cents == 25_000
        assert txn.balance_after_cents == 25_000
        assert customer_a.total_spent_cents == 40_000

    def test_payment_floor(self, db_session, org_a, customer_a, admin_a):
        credit_service.add_customer_transaction(
            org_a.id, customer_a.id, transaction_type="invoice", amount_cents=1_000
        )
        credit_service.record_payment(
            org_id=org_a.id, customer_id=customer_a.id, amount_cents=5_000, user_id=admin_a.id
        )
        assert customer_a.credit_used_cents == 0

    def test_invalid_type(self, db_session, org_a, customer_a):
        with pytest.raises(CreditError):
            credit_service.add_customer_transaction(
                org_a.id, customer_a.id, transaction_type="gift", amount_cents=100
            )

    def test_non_positive_amount(self, db_session, org_a, customer_a):
        with pytest.raises(CreditError):
            credit_service.add_customer_transaction(
                org_a.id, customer_a.id, transaction_type="invoice", amount_cents=0
            )

    def test_primitive_does_not_check_limit(self, db_session, org_a, customer_a):
        """Eligibility lives in the order flow, not in the ledger primitive."""
        credit_service.add_customer_transaction(
            org_a.id, customer_a.id, transaction_type="invoice", amount_cents=250_000
        )
        assert customer_a.credit_used_cents == 250_000

    def test_cross_tenant_customer(self, db_session, org_b, customer_a):
        with pytest.raises(CustomerNotFoundError):
            credit_service.add_customer_transaction(
                org_b.id, customer_a.id, transaction_type="invoice", amount_cents=100
            )


class TestEligibility:
    def test_eligible_when_available_covers_total(self, db_session, customer_a):
        customer_a.credit_used_cents = 70_000
        result = check_credit_eligibility(customer_a, 30_000)
        assert result.is_eligible
        assert result.available_credit_cents == 30_000

    def test_ineligible_reports_amounts(self, db_session, customer_a):
        customer_a.credit_used_cents = 80_000
        result = check_credit_eligibility(customer_a, 30_000)
        assert not result.is_eligible
        assert result.available_credit_cents == 20_000
        assert result.required_cents == 30_000
        assert "Insufficient credit" in result.message

    def test_cash_only_customer(self, db_session, cash_customer_a):
        result = check_credit_eligibility(cash_customer_a, 1)
        assert not result.is_eligible


class TestCreditOrderScenario:
    """limit 100,000 / used 80,000: a 30,000 credit order is refused, then accepted after a payment."""

    def test_limit_payment_then_accept(
        self, db_session, org_a, store_a, admin_a, packer_a, customer_a, big_ticket
    ):
        credit_service.add_customer_transaction(
            org_a.id, customer_a.id, transaction_type="invoice", amount_cents=80_000
        )
        db_session.commit()
        txn_count = db_session.query(CustomerTransaction).count()

        with pytest.raises(OrderValidationError) as exc:
            _credit_order(org_a, admin_a, customer_a, packer_a, big_ticket, store_a, 3)
        db_session.rollback()

        assert str(exc.value) == "Order amount exceeds available credit limit"
        assert exc.value.details["available_credit_cents"] == 20_000
        assert exc.value.details["required_cents"] == 30_000
        assert db_session.query(Order).count() == 0
        assert db_session.query(CustomerTransaction).count() == txn_count
        stock = stock_service.get_stock(org_a.id, big_ticket.id, store_a.id)
        assert stock.available_stock == 10

        credit_service.record_payment(
            org_id=org_a.id, customer_id=customer_a.id, amount_cents=20_000, user_id=admin_a.id
        )
        db_session.commit()
        assert customer_a.credit_used_cents == 60_000

        order = _credit_order(org_a, admin_a, customer_a, packer_a, big_ticket, store_a, 3)
        db_session.commit()

        assert order.total_amount_cents == 30_000
        assert customer_a.credit_used_cents == 90_000
        invoice = credit_service.find_order_transaction(order.id, "invoice")
        assert invoice is not None
        assert invoice.amount_cents == 30_000
        assert invoice.reference == f"Order {order.order_number}"

    def test_check_then_act_race_can_exceed_limit(
        self, db_session, org_a, store_a, admin_a, packer_a, customer_a, big_ticket
    ):
        """
        Two orders checked against the same balance both pass.

        The second order's invoice is posted by the ledger primitive, which
        does not re-check, so credit_used ends above the limit.
        """
        credit_service.add_customer_transaction(
            org_a.id, customer_a.id, transaction_type="invoice", amount_cents=40_000
        )
        db_session.commit()
        assert customer_a.credit_used_cents == 40_000

        first = check_credit_eligibility(customer_a, 50_000)
        second = check_credit_eligibility(customer_a, 50_000)
        assert first.is_eligible and second.is_eligible

        for _ in range(2):
            credit_service.add_customer_transaction(
                org_a.id, customer_a.id, transaction_type="invoice", amount_cents=50_000
            )
        db_session.commit()

        assert customer_a.credit_used_cents == 140_000
        assert customer_a.credit_used_cents > customer_a.credit_limit_cents


class TestCreditStatus:
    @pytest.mark.parametrize(
        "used,expected",
        [
            (0, "good"),
            (69_999, "good"),
            (70_000, "warning"),
            (89_999, "warning"),
            (90_000, "high-risk"),
            (120_000, "high-risk"),
        ],
    )
    def test_buckets(self, db_session, customer_a, used, expected):
        customer_a.credit_used_cents = used
        assert get_credit_status(customer_a) == expected

    def test_cash_only(self, db_session, cash_customer_a):
        assert get_credit_status(cash_customer_a) == "cash-only"

    def test_list_by_status(self, db_session, org_a, customer_a, cash_customer_a):
        customer_a.credit_used_cents = 95_000
        db_session.commit()

        high_risk = credit_service.list_customers_by_credit_status(org_a.id, "high-risk")
        assert [c.id for c in high_risk] == [customer_a.id]
