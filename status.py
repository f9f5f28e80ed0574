from datetime import date
from typing import Optional

from models import Transaction, TransactionStatus


def derive_status(
    explicit_status: Optional[TransactionStatus], due_date: date, today: date
) -> TransactionStatus:
    if explicit_status == TransactionStatus.paid:
        return TransactionStatus.paid
    if due_date < today:
        return TransactionStatus.overdue
    return TransactionStatus.pending


def effective_status(txn: Transaction, today: date) -> TransactionStatus:
    explicit = TransactionStatus.paid if txn.paid_date else txn.status
    return derive_status(explicit, txn.due_date, today)
