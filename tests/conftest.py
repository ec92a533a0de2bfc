"""Shared fixtures: a small star schema with hand-checked KPIs.

Ledger (amounts in dollars):

====  ========  ========  ========  ==========  =====  ======  =====
txn   customer  merchant  category  date        hour   amount  fraud
====  ========  ========  ========  ==========  =====  ======  =====
1     1         10        1         2019-01-05  09     100.00
2     1         10        1         2019-01-20  23      50.00  yes
3     2         20        2         2019-02-10  14     300.00
4     1         20        2         2019-03-01  09      20.00
5     3         10        1         2019-03-15  23      80.00  yes
6     2         10        1         2019-03-20  10      40.00
====  ========  ========  ========  ==========  =====  ======  =====

Customer 4, merchant 30 and category 3 have no transactions.
"""

from datetime import date, time
from decimal import Decimal

import pytest

from transaction_audit.foundation.dataset import TransactionDataset
from transaction_audit.foundation.records import (
    Category,
    Customer,
    Merchant,
    Transaction,
)


def _txn(
    transaction_id,
    customer_id,
    transaction_date,
    amount,
    is_fraud=False,
    merchant_id=10,
    category_id=1,
    hour=12,
):
    return Transaction(
        transaction_id=transaction_id,
        customer_id=customer_id,
        merchant_id=merchant_id,
        category_id=category_id,
        transaction_date=transaction_date,
        transaction_time=time(hour, 0),
        amount=Decimal(amount),
        is_fraud=is_fraud,
    )


@pytest.fixture
def make_txn():
    """Factory for transactions with sensible defaults."""
    return _txn


@pytest.fixture
def sample_customers():
    return [
        Customer(1, "Ada Lovelace", state="NY", age=30),
        Customer(2, "Bob Stone", state="CA", age=55),
        Customer(3, "Cy Young", state="NY", age=70),
        Customer(4, "Dee Never", state="TX", age=22),
    ]


@pytest.fixture
def sample_merchants():
    return [
        Merchant(10, "fraud_Kozey-Boehm", 1),
        Merchant(20, "fraud_Jast Ltd", 2),
        Merchant(30, "fraud_Brown PLC", 1),
    ]


@pytest.fixture
def sample_categories():
    return [
        Category(1, "grocery_pos"),
        Category(2, "travel"),
        Category(3, "misc_net"),
    ]


@pytest.fixture
def sample_transactions():
    return [
        _txn(1, 1, date(2019, 1, 5), "100.00", hour=9),
        _txn(2, 1, date(2019, 1, 20), "50.00", is_fraud=True, hour=23),
        _txn(3, 2, date(2019, 2, 10), "300.00", merchant_id=20, category_id=2, hour=14),
        _txn(4, 1, date(2019, 3, 1), "20.00", merchant_id=20, category_id=2, hour=9),
        _txn(5, 3, date(2019, 3, 15), "80.00", is_fraud=True, hour=23),
        _txn(6, 2, date(2019, 3, 20), "40.00", hour=10),
    ]


@pytest.fixture
def sample_dataset(
    sample_customers, sample_merchants, sample_categories, sample_transactions
):
    return TransactionDataset.from_records(
        customers=sample_customers,
        merchants=sample_merchants,
        categories=sample_categories,
        transactions=sample_transactions,
    )
