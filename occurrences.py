"""Expansion of stored series into the occurrences a user sees.

Only roots and overrides are stored. Every read rebuilds the monthly
occurrences of a series for the requested window. Months listed in the root's
``cancelled_occurrences`` are skipped, and months with an override show the
override's data instead of the root's.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Iterator, Optional, Union

from models import SeriesKind, Transaction, TransactionStatus, TransactionType
from recurrence import months_between, occurrence_date, occurrence_key
from status import derive_status, effective_status
from virtual_ids import encode


@dataclass
class Occurrence:
    id: str
    real_id: Optional[int]
    parent_id: int
    type: TransactionType
    description: str
    amount_cents: int
    due_date: date
    paid_date: Optional[date]
    status: TransactionStatus
    notes: Optional[str]
    category_id: int
    account_id: int
    tag_ids: list[int] = field(default_factory=list)
    is_fixed: bool = False
    installments: Optional[int] = None
    current_installment: Optional[int] = None
    is_virtual: bool = False
    is_override: bool = False


@dataclass
class InstallmentSummary:
    total_installments: int
    paid_installments: int
    pending_installments: int
    cancelled_installments: int
    current_installment: int
    start_date: date
    end_date: date
    installment_amount_cents: int
    total_amount_cents: int


@dataclass
class InstallmentGroup:
    id: str
    parent_id: int
    type: TransactionType
    description: str
    category_id: int
    account_id: int
    tag_ids: list[int]
    status: str
    due_date: date
    summary: InstallmentSummary


def series_dates(
    root: Transaction, from_date: Optional[date] = None
) -> Iterator[tuple[int, date]]:
    """Yield ``(index, date)`` for each month of the series, in order.

    Open-ended fixed series never stop on their own; callers must bound the
    iteration. ``from_date`` skips ahead to the first month that can be on or
    after it.
    """
    start = root.series_start
    day = root.billing_day
    first = 0
    if from_date is not None:
        first = max(0, months_between(start, from_date))

    if root.series_kind == SeriesKind.installment:
        indexes: Iterable[int] = range(first, root.installments)
    else:
        indexes = itertools.count(first)

    for index in indexes:
        current = occurrence_date(start, day, index)
        if root.end_date is not None and current > root.end_date:
            return
        yield index, current


def contains_date(root: Transaction, value: date) -> bool:
    """True when the month of ``value`` is one of the series' months."""
    index = months_between(root.series_start, value)
    if index < 0:
        return False
    if root.series_kind == SeriesKind.installment and index >= root.installments:
        return False
    if root.end_date is not None:
        last = occurrence_date(root.series_start, root.billing_day, index)
        return last <= root.end_date
    return True


def overrides_by_key(overrides: Iterable[Transaction]) -> dict[str, Transaction]:
    return {
        occurrence_key(override.override_for_date): override
        for override in overrides
        if override.override_for_date is not None
    }


def _from_record(txn: Transaction, today: date) -> Occurrence:
    return Occurrence(
        id=str(txn.id),
        real_id=txn.id,
        parent_id=txn.id,
        type=txn.type,
        description=txn.description,
        amount_cents=txn.amount_cents,
        due_date=txn.due_date,
        paid_date=txn.paid_date,
        status=effective_status(txn, today),
        notes=txn.notes,
        category_id=txn.category_id,
        account_id=txn.account_id,
        tag_ids=txn.tag_ids,
    )


def _from_override(
    root: Transaction,
    override: Transaction,
    current_installment: Optional[int],
    today: date,
) -> Occurrence:
    occurrence = _from_record(override, today)
    occurrence.parent_id = root.id
    occurrence.is_fixed = root.is_fixed
    occurrence.installments = root.installments
    occurrence.current_installment = current_installment
    occurrence.is_override = True
    return occurrence


def _virtual(
    root: Transaction,
    due: date,
    current_installment: Optional[int],
    today: date,
) -> Occurrence:
    return Occurrence(
        id=encode(root.id, due.year, due.month),
        real_id=None,
        parent_id=root.id,
        type=root.type,
        description=root.description,
        amount_cents=root.amount_cents,
        due_date=due,
        paid_date=None,
        status=derive_status(None, due, today),
        notes=root.notes,
        category_id=root.category_id,
        account_id=root.account_id,
        tag_ids=root.tag_ids,
        is_fixed=root.is_fixed,
        installments=root.installments,
        current_installment=current_installment,
        is_virtual=True,
    )


def expand_transaction(
    root: Transaction,
    overrides: Iterable[Transaction],
    range_start: date,
    range_end: date,
    today: date,
) -> Iterator[Occurrence]:
    if root.series_kind == SeriesKind.single:
        if range_start <= root.due_date <= range_end:
            yield _from_record(root, today)
        return

    by_key = overrides_by_key(overrides)
    cancelled = set(root.cancelled_occurrences or [])
    is_installment = root.series_kind == SeriesKind.installment

    for index, due in series_dates(root, from_date=range_start):
        if due > range_end:
            break
        if due < range_start:
            continue
        key = occurrence_key(due)
        if key in cancelled:
            continue
        current = index + 1 if is_installment else None
        override = by_key.get(key)
        if override is not None:
            yield _from_override(root, override, current, today)
        else:
            yield _virtual(root, due, current, today)


def expand_transactions(
    records: Iterable[Transaction],
    range_start: date,
    range_end: date,
    today: date,
) -> list[Occurrence]:
    roots: list[Transaction] = []
    overrides: dict[int, list[Transaction]] = {}
    for txn in records:
        if txn.is_override and txn.parent_transaction_id is not None:
            overrides.setdefault(txn.parent_transaction_id, []).append(txn)
        elif txn.parent_transaction_id is None:
            roots.append(txn)

    occurrences: list[Occurrence] = []
    for root in roots:
        occurrences.extend(
            expand_transaction(
                root, overrides.get(root.id, []), range_start, range_end, today
            )
        )
    return occurrences


def installment_summary(
    root: Transaction, overrides: Iterable[Transaction], today: date
) -> Optional[InstallmentSummary]:
    if root.series_kind != SeriesKind.installment:
        return None

    by_key = overrides_by_key(overrides)
    cancelled = set(root.cancelled_occurrences or [])
    paid = 0
    skipped = 0
    total_amount = 0
    current = 0
    last_date = root.series_start

    for index, due in series_dates(root):
        last_date = due
        key = occurrence_key(due)
        if key in cancelled:
            skipped += 1
            continue
        override = by_key.get(key)
        if override is not None:
            status = effective_status(override, today)
            total_amount += override.amount_cents
        else:
            status = derive_status(None, due, today)
            total_amount += root.amount_cents
        if status == TransactionStatus.paid:
            paid += 1
        elif current == 0 and due >= today:
            current = index + 1

    total = root.installments
    return InstallmentSummary(
        total_installments=total,
        paid_installments=paid,
        pending_installments=total - skipped - paid,
        cancelled_installments=skipped,
        current_installment=current or total,
        start_date=root.series_start,
        end_date=root.end_date or last_date,
        installment_amount_cents=root.amount_cents,
        total_amount_cents=total_amount,
    )


def group_installments(
    occurrences: Iterable[Occurrence],
    roots: dict[int, Transaction],
    overrides: dict[int, list[Transaction]],
    today: date,
) -> list[Union[Occurrence, InstallmentGroup]]:
    """Collapse the occurrences of each installment series into one row."""
    rows: list[Union[Occurrence, InstallmentGroup]] = []
    grouped: set[int] = set()
    for occurrence in occurrences:
        root = roots.get(occurrence.parent_id)
        if root is None or root.series_kind != SeriesKind.installment:
            rows.append(occurrence)
            continue
        if root.id in grouped:
            continue
        grouped.add(root.id)
        summary = installment_summary(root, overrides.get(root.id, []), today)
        effective = summary.total_installments - summary.cancelled_installments
        if effective > 0 and summary.paid_installments == effective:
            status = "paid"
        elif summary.paid_installments > 0:
            status = "partial"
        else:
            status = "pending"
        rows.append(
            InstallmentGroup(
                id=str(root.id),
                parent_id=root.id,
                type=root.type,
                description=root.description,
                category_id=root.category_id,
                account_id=root.account_id,
                tag_ids=root.tag_ids,
                status=status,
                due_date=root.series_start,
                summary=summary,
            )
        )
    return rows
