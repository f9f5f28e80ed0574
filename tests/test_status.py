from datetime import date

from models import Transaction, TransactionStatus
from status import derive_status, effective_status

TODAY = date(2025, 6, 15)


def test_paid_wins_over_due_date():
    status = derive_status(TransactionStatus.paid, date(2020, 1, 1), TODAY)
    assert status == TransactionStatus.paid


def test_past_due_is_overdue():
    assert derive_status(None, date(2025, 6, 14), TODAY) == TransactionStatus.overdue
    assert (
        derive_status(TransactionStatus.pending, date(2025, 6, 14), TODAY)
        == TransactionStatus.overdue
    )


def test_due_today_or_later_is_pending():
    assert derive_status(None, TODAY, TODAY) == TransactionStatus.pending
    assert derive_status(None, date(2025, 7, 1), TODAY) == TransactionStatus.pending


def test_stored_overdue_is_recomputed():
    assert (
        derive_status(TransactionStatus.overdue, date(2025, 7, 1), TODAY)
        == TransactionStatus.pending
    )


def test_paid_date_counts_as_paid():
    txn = Transaction(
        due_date=date(2025, 1, 1),
        status=TransactionStatus.pending,
        paid_date=date(2025, 1, 2),
    )
    assert effective_status(txn, TODAY) == TransactionStatus.paid
