# Overview: Credit ledger: customer transactions, derived credit usage, and eligibility checks.

"""
Credit Ledger

add_customer_transaction() appends to a customer's transaction log and
recomputes credit_used_cents by folding the whole log:

    invoice                              -> used += amount
    payment / refund / credit_adjustment -> used = max(0, used - amount)

The log is the source of truth: a cached credit_used_cents with no matching
transactions behind it is discarded by the next post.

The primitive never checks eligibility. Eligibility (available credit covers
the order total) is a separate, non-locking read made by the order flow
before it posts an invoice. Two concurrent credit orders for one customer can
both pass that check and together exceed the limit; this check-then-act race
is accepted and pinned by tests.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Customer, CustomerTransaction
from .concurrency import lock_for_update
from orderflow.time_utils import utcnow


TRANSACTION_INVOICE = "invoice"
TRANSACTION_PAYMENT = "payment"
TRANSACTION_REFUND = "refund"
TRANSACTION_CREDIT_ADJUSTMENT = "credit_adjustment"

TRANSACTION_TYPES = (
    TRANSACTION_INVOICE,
    TRANSACTION_PAYMENT,
    TRANSACTION_REFUND,
    TRANSACTION_CREDIT_ADJUSTMENT,
)

CREDIT_STATUS_CASH_ONLY = "cash-only"
CREDIT_STATUS_GOOD = "good"
CREDIT_STATUS_WARNING = "warning"
CREDIT_STATUS_HIGH_RISK = "high-risk"


class CreditError(Exception):
    """Raised for credit ledger operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class CustomerNotFoundError(CreditError):
    pass


@dataclass(frozen=True)
class CreditEligibility:
    is_eligible: bool
    available_credit_cents: int
    required_cents: int
    message: str | None = None


def get_customer(org_id: int, customer_id: int, *, lock: bool = False) -> Customer:
    query = db.session.query(Customer).filter_by(id=customer_id, org_id=org_id)
    if lock:
        query = lock_for_update(query)
    customer = query.first()
    if customer is None:
        raise CustomerNotFoundError(f"Customer {customer_id} not found", {"customer_id": customer_id})
    return customer


def list_customers(org_id: int, *, active_only: bool = True) -> list[Customer]:
    query = db.session.query(Customer).filter_by(org_id=org_id)
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(Customer.last_name, Customer.first_name).all()


def create_customer(
    *,
    org_id: int,
    first_name: str,
    last_name: str,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
    city: str | None = None,
    credit_limit_cents: int = 0,
    notes: str | None = None,
) -> Customer:
    """Create a customer. Caller commits."""
    if not first_name or not last_name:
        raise CreditError("first_name and last_name are required")
    if credit_limit_cents < 0:
        raise CreditError("credit_limit_cents must be non-negative", {"credit_limit_cents": credit_limit_cents})

    if email:
        existing = db.session.query(Customer).filter_by(org_id=org_id, email=email).first()
        if existing:
            raise CreditError(f"Customer with email {email} already exists", {"email": email})

    customer = Customer(
        org_id=org_id,
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=phone,
        address=address,
        city=city,
        credit_limit_cents=credit_limit_cents,
        credit_used_cents=0,
        notes=notes,
    )
    db.session.add(customer)
    db.session.flush()
    return customer


def set_credit_limit(*, org_id: int, customer_id: int, credit_limit_cents: int) -> Customer:
    if credit_limit_cents < 0:
        raise CreditError("credit_limit_cents must be non-negative", {"credit_limit_cents": credit_limit_cents})
    customer = get_customer(org_id, customer_id, lock=True)
    customer.credit_limit_cents = credit_limit_cents
    db.session.flush()
    return customer


def fold_credit_used(transactions) -> int:
    """Replay a transaction log (oldest first) into credit used, flooring at zero."""
    used = 0
    for txn in transactions:
        if txn.transaction_type == TRANSACTION_INVOICE:
            used += txn.amount_cents
        else:
            used = max(0, used - txn.amount_cents)
    return used


def list_customer_transactions(org_id: int, customer_id: int) -> list[CustomerTransaction]:
    get_customer(org_id, customer_id)
    return (
        db.session.query(CustomerTransaction)
        .filter_by(org_id=org_id, customer_id=customer_id)
        .order_by(CustomerTransaction.id)
        .all()
    )


def add_customer_transaction(
    org_id: int,
    customer_id: int,
    *,
    transaction_type: str,
    amount_cents: int,
    reference: str | None = None,
    note: str | None = None,
    order_id: int | None = None,
    user_id: int | None = None,
) -> CustomerTransaction:
    """
    Append a transaction and recompute the customer's credit usage.

    The customer row is locked for the duration; no eligibility check is
    made here. Caller commits.
    """
    if transaction_type not in TRANSACTION_TYPES:
        raise CreditError(
            f"Invalid transaction type: {transaction_type}",
            {"allowed": list(TRANSACTION_TYPES)},
        )
    if amount_cents is None or amount_cents <= 0:
        raise CreditError("Transaction amount must be positive", {"amount_cents": amount_cents})

    customer = get_customer(org_id, customer_id, lock=True)

    history = (
        db.session.query(CustomerTransaction)
        .filter_by(customer_id=customer.id)
        .order_by(CustomerTransaction.id)
        .all()
    )

    txn = CustomerTransaction(
        org_id=org_id,
        customer_id=customer.id,
        transaction_type=transaction_type,
        amount_cents=amount_cents,
        reference=reference,
        note=note,
        order_id=order_id,
        created_by_user_id=user_id,
    )
    txn.balance_after_cents = fold_credit_used(history + [txn])

    customer.credit_used_cents = txn.balance_after_cents
    if transaction_type == TRANSACTION_INVOICE:
        customer.total_spent_cents = (customer.total_spent_cents or 0) + amount_cents

    db.session.add(txn)
    db.session.flush()
    return txn


def record_payment(
    *,
    org_id: int,
    customer_id: int,
    amount_cents: int,
    user_id: int,
    reference: str | None = None,
    note: str | None = None,
) -> CustomerTransaction:
    return add_customer_transaction(
        org_id,
        customer_id,
        transaction_type=TRANSACTION_PAYMENT,
        amount_cents=amount_cents,
        reference=reference,
        note=note,
        user_id=user_id,
    )


def check_credit_eligibility(customer: Customer, order_total_cents: int) -> CreditEligibility:
    """
    Decide whether the customer's remaining credit covers an order total.

    Reads credit_used_cents without locking; see the module docstring for
    the accepted race this implies.
    """
    available = customer.credit_limit_cents - customer.credit_used_cents

    if order_total_cents <= 0:
        return CreditEligibility(False, available, order_total_cents, "Order total must be positive")

    if available >= order_total_cents:
        return CreditEligibility(True, available, order_total_cents)

    return CreditEligibility(
        False,
        available,
        order_total_cents,
        f"Insufficient credit. Available: {available}, Required: {order_total_cents}",
    )


def get_credit_status(customer: Customer) -> str:
    """Bucket a customer by credit utilisation."""
    if not customer.credit_limit_cents:
        return CREDIT_STATUS_CASH_ONLY

    utilisation = customer.credit_used_cents / customer.credit_limit_cents
    if utilisation >= 0.9:
        return CREDIT_STATUS_HIGH_RISK
    if utilisation >= 0.7:
        return CREDIT_STATUS_WARNING
    return CREDIT_STATUS_GOOD


def list_customers_by_credit_status(org_id: int, status: str) -> list[Customer]:
    return [c for c in list_customers(org_id) if get_credit_status(c) == status]


def find_order_transaction(order_id: int, transaction_type: str) -> CustomerTransaction | None:
    return (
        db.session.query(CustomerTransaction)
        .filter_by(order_id=order_id, transaction_type=transaction_type)
        .order_by(CustomerTransaction.id)
        .first()
    )


def record_order_placed(customer: Customer) -> None:
    customer.total_orders = (customer.total_orders or 0) + 1
    customer.last_order_at = utcnow()
