from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Union

from rapidfuzz.distance import Levenshtein
from sqlalchemy import and_, case, delete, func, not_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased, selectinload

from models import (
    Account,
    Category,
    EditScope,
    SeriesKind,
    Tag,
    Transaction,
    TransactionStatus,
    TransactionType,
    transaction_tags,
)
from occurrences import (
    InstallmentGroup,
    Occurrence,
    contains_date,
    expand_transaction,
    expand_transactions,
    group_installments,
    overrides_by_key,
    series_dates,
)
from periods import Period, overdue_window
from recurrence import (
    clamped_date,
    installment_end_date,
    local_today,
    month_bounds,
    months_between,
    occurrence_date,
    occurrence_key,
    shift_month,
)
from schemas import AccountIn, CategoryIn, TagIn, TransactionEditIn, TransactionIn
from virtual_ids import decode

logger = logging.getLogger(__name__)


class TransactionNotFound(ValueError):
    pass


class OverrideConflict(ValueError):
    pass


def get_current_user_id() -> int:
    return 1


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    tag_id: Optional[int] = None
    is_fixed: Optional[bool] = None
    status: Optional[TransactionStatus] = None


@dataclass
class OccurrenceTarget:
    """The stored state behind one occurrence.

    ``occurrence_date`` is the canonical date of the month inside the series,
    or ``None`` when ``root`` is a one-off transaction.
    """

    root: Transaction
    occurrence_date: Optional[date] = None
    override: Optional[Transaction] = None

    @property
    def is_series(self) -> bool:
        return self.occurrence_date is not None


@dataclass
class AccountBalance:
    id: int
    name: str
    color: Optional[str]
    initial_balance_cents: int
    current_balance_cents: int


@dataclass
class MutationResult:
    scope: EditScope
    transaction_id: Optional[int]
    affected_count: int


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.type, Category.name)
        )
        return self.session.scalars(stmt).all()

    def create(self, data: CategoryIn) -> Category:
        clean_name = data.name.strip()
        existing = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                Category.type == data.type,
                func.lower(Category.name) == clean_name.lower(),
            )
        )
        if existing:
            raise ValueError("Category with this name already exists")
        category = Category(
            user_id=self.user_id, name=clean_name, type=data.type, color=data.color
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category


class AccountService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.name)
        )
        return self.session.scalars(stmt).all()

    def create(self, data: AccountIn) -> Account:
        clean_name = data.name.strip()
        existing = self.session.scalar(
            select(Account).where(
                Account.user_id == self.user_id,
                func.lower(Account.name) == clean_name.lower(),
            )
        )
        if existing:
            raise ValueError("Account with this name already exists")
        account = Account(
            user_id=self.user_id,
            name=clean_name,
            color=data.color,
            initial_balance_cents=data.initial_balance_cents,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def _paid_totals(self) -> dict[int, int]:
        # Series roots never carry a payment; paid singles and overrides do.
        signed = case(
            (Transaction.type == TransactionType.income, Transaction.amount_cents),
            else_=-Transaction.amount_cents,
        )
        stmt = (
            select(Transaction.account_id, func.coalesce(func.sum(signed), 0))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.status == TransactionStatus.paid,
            )
            .group_by(Transaction.account_id)
        )
        return {
            account_id: int(total) for account_id, total in self.session.execute(stmt)
        }

    def balance(self, account: Account) -> AccountBalance:
        return self._with_balance(account, self._paid_totals())

    def balances(self) -> list[AccountBalance]:
        totals = self._paid_totals()
        return [self._with_balance(account, totals) for account in self.list_all()]

    @staticmethod
    def _with_balance(account: Account, totals: dict[int, int]) -> AccountBalance:
        return AccountBalance(
            id=account.id,
            name=account.name,
            color=account.color,
            initial_balance_cents=account.initial_balance_cents,
            current_balance_cents=account.initial_balance_cents
            + totals.get(account.id, 0),
        )


class TagService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Tag]:
        stmt = select(Tag).where(Tag.user_id == self.user_id).order_by(Tag.name)
        return self.session.scalars(stmt).all()

    def create(self, data: TagIn) -> Tag:
        clean_name = data.name.strip()
        if not clean_name:
            raise ValueError("Tag name cannot be empty")

        stmt = select(Tag).where(
            Tag.user_id == self.user_id, func.lower(Tag.name) == clean_name.lower()
        )
        if self.session.scalar(stmt):
            raise ValueError("Tag already exists")

        tag = Tag(user_id=self.user_id, name=clean_name, color=data.color)
        self.session.add(tag)
        self.session.commit()
        self.session.refresh(tag)
        return tag

    def resolve(self, tag_ids: list[int]) -> list[Tag]:
        unique_ids = list(dict.fromkeys(tag_ids))
        if not unique_ids:
            return []
        tags = self.session.scalars(
            select(Tag).where(Tag.user_id == self.user_id, Tag.id.in_(unique_ids))
        ).all()
        if len(tags) != len(unique_ids):
            raise ValueError("Tag not found")
        by_id = {tag.id: tag for tag in tags}
        return [by_id[tag_id] for tag_id in unique_ids]

    def delete(self, tag_id: int) -> None:
        tag = self.session.get(Tag, tag_id)
        if not tag or tag.user_id != self.user_id:
            raise ValueError("Tag not found")

        self.session.execute(
            delete(transaction_tags).where(transaction_tags.c.tag_id == tag.id)
        )
        self.session.delete(tag)
        self.session.commit()


def _check_references(
    session: Session,
    user_id: int,
    txn_type: TransactionType,
    category_id: int,
    account_id: int,
) -> None:
    category = session.get(Category, category_id)
    if not category or category.user_id != user_id:
        raise ValueError("Category not found")
    if category.type != txn_type:
        raise ValueError("Category type mismatch")
    account = session.get(Account, account_id)
    if not account or account.user_id != user_id:
        raise ValueError("Account not found")


def _field_conditions(model, filters: TransactionFilters) -> list:
    conditions = []
    if filters.type:
        conditions.append(model.type == filters.type)
    if filters.category_id:
        conditions.append(model.category_id == filters.category_id)
    if filters.account_id:
        conditions.append(model.account_id == filters.account_id)
    if filters.tag_id:
        conditions.append(model.tags.any(Tag.id == filters.tag_id))
    return conditions


def _matches(occurrence: Occurrence, filters: TransactionFilters) -> bool:
    if filters.type and occurrence.type != filters.type:
        return False
    if filters.category_id and occurrence.category_id != filters.category_id:
        return False
    if filters.account_id and occurrence.account_id != filters.account_id:
        return False
    if filters.tag_id and filters.tag_id not in occurrence.tag_ids:
        return False
    if filters.is_fixed is not None and occurrence.is_fixed != filters.is_fixed:
        return False
    return True


def _cash_flow_date(occurrence: Occurrence) -> date:
    if occurrence.status == TransactionStatus.paid and occurrence.paid_date:
        return occurrence.paid_date
    return occurrence.due_date


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(self, data: TransactionIn, today: Optional[date] = None) -> Transaction:
        today = today or local_today()
        _check_references(
            self.session, self.user_id, data.type, data.category_id, data.account_id
        )
        tags = TagService(self.session, self.user_id).resolve(data.tag_ids)

        txn = Transaction(
            user_id=self.user_id,
            type=data.type,
            amount_cents=data.amount_cents,
            description=data.description.strip(),
            notes=data.notes or None,
            category_id=data.category_id,
            account_id=data.account_id,
            due_date=data.due_date,
            status=TransactionStatus.pending,
            is_fixed=False,
            cancelled_occurrences=[],
            is_override=False,
        )
        txn.tags = tags

        is_series = data.is_fixed or (data.installments or 0) > 1
        if is_series:
            txn.start_date = data.due_date
            txn.day_of_month = data.due_date.day
            if data.installments:
                txn.installments = data.installments
                txn.end_date = installment_end_date(
                    data.due_date, data.installments, data.due_date.day
                )
            else:
                txn.is_fixed = True
        elif data.status == TransactionStatus.paid:
            txn.status = TransactionStatus.paid
            txn.paid_date = today

        self.session.add(txn)
        self.session.flush()

        if is_series and data.status == TransactionStatus.paid:
            # A series root only describes the series; payment belongs to the
            # first occurrence.
            first = Transaction(
                user_id=self.user_id,
                type=txn.type,
                amount_cents=txn.amount_cents,
                description=txn.description,
                notes=txn.notes,
                category_id=txn.category_id,
                account_id=txn.account_id,
                due_date=data.due_date,
                status=TransactionStatus.paid,
                paid_date=today,
                is_fixed=False,
                cancelled_occurrences=[],
                is_override=True,
                override_for_date=data.due_date,
                parent_transaction_id=txn.id,
            )
            first.tags = list(tags)
            self.session.add(first)

        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: id={txn.id} kind={txn.series_kind.value} "
            f"installments={txn.installments}"
        )
        return txn

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(selectinload(Transaction.tags))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise TransactionNotFound("Transaction not found")
        return txn

    def _roots_for_window(
        self, period: Period, filters: TransactionFilters
    ) -> list[Transaction]:
        is_single = and_(
            Transaction.is_fixed.is_(False),
            Transaction.installments.is_(None),
            Transaction.end_date.is_(None),
        )
        series_start = func.coalesce(Transaction.start_date, Transaction.due_date)
        stmt = (
            select(Transaction)
            .options(selectinload(Transaction.tags))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.is_override.is_(False),
                Transaction.parent_transaction_id.is_(None),
                or_(
                    and_(
                        is_single,
                        Transaction.due_date.between(period.start, period.end),
                    ),
                    and_(
                        not_(is_single),
                        series_start <= period.end,
                        or_(
                            Transaction.end_date.is_(None),
                            Transaction.end_date >= period.start,
                        ),
                    ),
                ),
            )
            .order_by(Transaction.id)
        )
        if filters.is_fixed is not None:
            stmt = stmt.where(Transaction.is_fixed.is_(filters.is_fixed))

        conditions = _field_conditions(Transaction, filters)
        if conditions:
            # An edited month can match even when its series does not.
            override = aliased(Transaction)
            matching_overrides = select(override.parent_transaction_id).where(
                override.user_id == self.user_id,
                override.is_override.is_(True),
                *_field_conditions(override, filters),
            )
            stmt = stmt.where(
                or_(and_(*conditions), Transaction.id.in_(matching_overrides))
            )
        return self.session.scalars(stmt).all()

    def _overrides_for(
        self,
        root_ids: list[int],
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[Transaction]:
        if not root_ids:
            return []
        stmt = (
            select(Transaction)
            .options(selectinload(Transaction.tags))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.is_override.is_(True),
                Transaction.parent_transaction_id.in_(root_ids),
            )
        )
        if start is not None:
            first_day = month_bounds(start.year, start.month)[0]
            stmt = stmt.where(Transaction.override_for_date >= first_day)
        if end is not None:
            last_day = month_bounds(end.year, end.month)[1]
            stmt = stmt.where(Transaction.override_for_date <= last_day)
        return self.session.scalars(stmt).all()

    def _expand(
        self, period: Period, filters: TransactionFilters, today: date
    ) -> list[Occurrence]:
        roots = self._roots_for_window(period, filters)
        overrides = self._overrides_for(
            [root.id for root in roots if root.series_kind != SeriesKind.single],
            period.start,
            period.end,
        )
        records = [*roots, *overrides]
        occurrences = expand_transactions(records, period.start, period.end, today)
        return [o for o in occurrences if _matches(o, filters)]

    def _paid_before(
        self, period: Period, filters: TransactionFilters, today: date
    ) -> list[Occurrence]:
        """Occurrences due before ``period`` whose payment falls inside it."""
        paid_in_period = and_(
            Transaction.user_id == self.user_id,
            Transaction.status == TransactionStatus.paid,
            Transaction.paid_date.between(period.start, period.end),
        )
        singles = self.session.scalars(
            select(Transaction)
            .options(selectinload(Transaction.tags))
            .where(
                paid_in_period,
                Transaction.is_override.is_(False),
                Transaction.parent_transaction_id.is_(None),
                Transaction.due_date < period.start,
            )
        ).all()
        overrides = self.session.scalars(
            select(Transaction)
            .options(selectinload(Transaction.tags))
            .where(
                paid_in_period,
                Transaction.is_override.is_(True),
                Transaction.override_for_date < period.start,
            )
        ).all()

        occurrences: list[Occurrence] = []
        for txn in singles:
            if txn.series_kind == SeriesKind.single:
                occurrences.extend(
                    expand_transaction(txn, [], txn.due_date, txn.due_date, today)
                )
        if overrides:
            parent_ids = {override.parent_transaction_id for override in overrides}
            roots = {
                root.id: root
                for root in self.session.scalars(
                    select(Transaction)
                    .options(selectinload(Transaction.tags))
                    .where(Transaction.id.in_(parent_ids))
                ).all()
            }
            for override in overrides:
                root = roots.get(override.parent_transaction_id)
                if root is None:
                    continue
                canonical = override.override_for_date
                first, last = month_bounds(canonical.year, canonical.month)
                occurrences.extend(
                    expand_transaction(root, [override], first, last, today)
                )
        return [o for o in occurrences if _matches(o, filters)]

    def list_occurrences(
        self,
        period: Period,
        filters: Optional[TransactionFilters] = None,
        *,
        include_overdue: bool = False,
        cash_flow: bool = False,
        today: Optional[date] = None,
    ) -> list[Occurrence]:
        """Expand every series intersecting ``period`` into occurrences.

        With ``cash_flow`` a paid occurrence belongs to the period of its
        payment, so earlier months paid inside ``period`` are pulled in and
        occurrences paid outside it are dropped. Unpaid ones stay on their due
        date.
        """
        filters = filters or TransactionFilters()
        today = today or local_today()
        occurrences = self._expand(period, filters, today)

        if cash_flow:
            occurrences = [
                o
                for o in occurrences
                if period.start <= _cash_flow_date(o) <= period.end
            ]
            seen = {occurrence.id for occurrence in occurrences}
            for occurrence in self._paid_before(period, filters, today):
                if occurrence.id not in seen:
                    seen.add(occurrence.id)
                    occurrences.append(occurrence)

        if include_overdue:
            earlier = overdue_window(period)
            if earlier is not None:
                seen = {occurrence.id for occurrence in occurrences}
                for occurrence in self._expand(earlier, filters, today):
                    if (
                        occurrence.status == TransactionStatus.overdue
                        and occurrence.id not in seen
                    ):
                        occurrences.append(occurrence)

        if filters.status:
            occurrences = [o for o in occurrences if o.status == filters.status]
        occurrences.sort(key=lambda o: (o.due_date, o.id), reverse=True)
        return occurrences

    def group_installments(
        self, occurrences: list[Occurrence], today: Optional[date] = None
    ) -> list[Union[Occurrence, InstallmentGroup]]:
        today = today or local_today()
        parent_ids = sorted({o.parent_id for o in occurrences})
        if not parent_ids:
            return []
        roots = {
            root.id: root
            for root in self.session.scalars(
                select(Transaction)
                .options(selectinload(Transaction.tags))
                .where(
                    Transaction.user_id == self.user_id,
                    Transaction.id.in_(parent_ids),
                )
            ).all()
        }
        installment_ids = [
            root_id
            for root_id, root in roots.items()
            if root.series_kind == SeriesKind.installment
        ]
        overrides: dict[int, list[Transaction]] = {}
        for override in self._overrides_for(installment_ids):
            overrides.setdefault(override.parent_transaction_id, []).append(override)
        return group_installments(occurrences, roots, overrides, today)

    def suggestions(
        self,
        query: str,
        txn_type: Optional[TransactionType] = None,
        limit: int = 10,
    ) -> list[Transaction]:
        needle = (query or "").strip().lower()
        if len(needle) < 2:
            return []
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.is_override.is_(False),
            )
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(200)
        )
        if txn_type:
            stmt = stmt.where(Transaction.type == txn_type)

        contains: list[Transaction] = []
        close: list[Transaction] = []
        seen: set[str] = set()
        for txn in self.session.scalars(stmt).all():
            key = txn.description.strip().lower()
            if key in seen:
                continue
            if needle in key:
                seen.add(key)
                contains.append(txn)
            elif any(
                int(Levenshtein.distance(needle, word)) <= 1 for word in key.split()
            ):
                seen.add(key)
                close.append(txn)
        return (contains + close)[:limit]


class SeriesMutationService:
    """Scoped edits and deletes of occurrences.

    Each public call runs as a single unit of work. Everything is flushed in
    the session and committed once at the end, and any failure rolls the whole
    call back.
    """

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _owned(self, transaction_id: Optional[int]) -> Transaction:
        if transaction_id is None:
            raise TransactionNotFound("Transaction not found")
        txn = self.session.scalar(
            select(Transaction)
            .options(selectinload(Transaction.tags))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        if not txn:
            raise TransactionNotFound("Transaction not found")
        return txn

    def resolve_target(self, identifier: str) -> OccurrenceTarget:
        virtual = decode(identifier)
        if virtual is not None:
            root = self._owned(virtual.root_id)
            if root.is_override or root.series_kind == SeriesKind.single:
                raise TransactionNotFound("Occurrence not found")
            occ_date = clamped_date(virtual.year, virtual.month, root.billing_day)
            if not contains_date(root, occ_date):
                raise TransactionNotFound("Occurrence not found")
            return OccurrenceTarget(root=root, occurrence_date=occ_date)

        try:
            transaction_id = int(identifier)
        except (TypeError, ValueError) as exc:
            raise TransactionNotFound("Transaction not found") from exc

        txn = self._owned(transaction_id)
        if txn.is_override:
            root = self._owned(txn.parent_transaction_id)
            return OccurrenceTarget(
                root=root, occurrence_date=txn.override_for_date, override=txn
            )
        if txn.series_kind == SeriesKind.single:
            return OccurrenceTarget(root=txn)
        first = occurrence_date(txn.series_start, txn.billing_day, 0)
        return OccurrenceTarget(root=txn, occurrence_date=first)

    def edit(
        self, identifier: str, data: TransactionEditIn, today: Optional[date] = None
    ) -> MutationResult:
        today = today or local_today()
        try:
            result = self._edit(identifier, data.scope, data.changes(), today)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return result

    def delete(
        self,
        identifier: str,
        scope: EditScope = EditScope.single,
    ) -> MutationResult:
        scope = EditScope(scope)
        try:
            result = self._delete(identifier, scope)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return result

    def _edit(
        self,
        identifier: str,
        scope: EditScope,
        changes: dict[str, object],
        today: date,
    ) -> MutationResult:
        target = self.resolve_target(identifier)
        root = target.root

        base = target.override or root
        _check_references(
            self.session,
            self.user_id,
            changes.get("type", base.type),
            changes.get("category_id", base.category_id),
            changes.get("account_id", base.account_id),
        )
        if "tag_ids" in changes:
            changes["tags"] = TagService(self.session, self.user_id).resolve(
                changes.pop("tag_ids")
            )

        if not target.is_series:
            self._apply(root, changes, today)
            if "due_date" in changes:
                root.due_date = changes["due_date"]
            self.session.flush()
            logger.info(f"series_edit: root_id={root.id} scope=single kind=single")
            return MutationResult(scope=scope, transaction_id=root.id, affected_count=1)

        occ_date = target.occurrence_date
        if scope == EditScope.single:
            override = self._edit_single(target, changes, today)
            logger.info(
                f"series_edit: root_id={root.id} scope=single "
                f"occurrence={occurrence_key(occ_date)} override_id={override.id}"
            )
            return MutationResult(
                scope=scope, transaction_id=override.id, affected_count=1
            )

        if scope == EditScope.future:
            preserved = self._preserve_history(root, occ_date)
            self._apply_to_root(root, changes, today)
            pruned = self._delete_overrides(root, from_date=occ_date)
            logger.info(
                f"series_edit: root_id={root.id} scope=future "
                f"from={occurrence_key(occ_date)} preserved={preserved} pruned={pruned}"
            )
            return MutationResult(
                scope=scope, transaction_id=root.id, affected_count=1 + preserved
            )

        self._apply_to_root(root, changes, today)
        pruned = self._delete_overrides(root)
        logger.info(f"series_edit: root_id={root.id} scope=all pruned={pruned}")
        return MutationResult(scope=scope, transaction_id=root.id, affected_count=1)

    def _edit_single(
        self, target: OccurrenceTarget, changes: dict[str, object], today: date
    ) -> Transaction:
        root = target.root
        occ_date = target.occurrence_date
        override = target.override or self._find_override(root, occ_date)
        if override is None and occurrence_key(occ_date) in (
            root.cancelled_occurrences or []
        ):
            raise TransactionNotFound("Occurrence was cancelled")

        if override is not None:
            self._apply_to_override(override, changes, today)
            self.session.flush()
            return override

        try:
            with self.session.begin_nested():
                override = self._new_override(root, occ_date)
                self._apply_to_override(override, changes, today)
        except IntegrityError as exc:
            # Another request created the override first; update it instead.
            existing = self._find_override(root, occ_date)
            if existing is None:
                raise OverrideConflict(
                    "Occurrence was modified concurrently, please retry"
                ) from exc
            self._apply_to_override(existing, changes, today)
            self.session.flush()
            return existing
        return override

    def _delete(self, identifier: str, scope: EditScope) -> MutationResult:
        target = self.resolve_target(identifier)
        root = target.root

        if not target.is_series:
            self._delete_records([root])
            logger.info(
                f"series_delete: root_id={root.id} scope={scope.value} kind=single"
            )
            return MutationResult(scope=scope, transaction_id=None, affected_count=1)

        occ_date = target.occurrence_date
        key = occurrence_key(occ_date)

        if scope == EditScope.single:
            override = target.override or self._find_override(root, occ_date)
            if override is not None:
                self._delete_records([override])
            cancelled = list(root.cancelled_occurrences or [])
            added = key not in cancelled
            if added:
                root.cancelled_occurrences = sorted([*cancelled, key])
            self.session.flush()
            logger.info(
                f"series_delete: root_id={root.id} scope=single occurrence={key} "
                f"newly_cancelled={added}"
            )
            return MutationResult(
                scope=scope, transaction_id=root.id, affected_count=int(added)
            )

        if scope == EditScope.future:
            months_diff = months_between(root.series_start, occ_date)
            if months_diff <= 0:
                count = self._delete_series(root)
                logger.info(
                    f"series_delete: root_id={root.id} scope=future from_start=True "
                    f"deleted={count}"
                )
                return MutationResult(
                    scope=EditScope.all, transaction_id=None, affected_count=count
                )

            if root.series_kind == SeriesKind.installment:
                root.installments = months_diff
                root.end_date = installment_end_date(
                    root.series_start, months_diff, root.billing_day
                )
            else:
                root.is_fixed = False
                year, month = shift_month(occ_date.year, occ_date.month, -1)
                root.end_date = clamped_date(year, month, root.billing_day)
            root.cancelled_occurrences = [
                item for item in (root.cancelled_occurrences or []) if item < key
            ]
            pruned = self._delete_overrides(root, from_date=occ_date)
            self.session.flush()
            logger.info(
                f"series_delete: root_id={root.id} scope=future from={key} "
                f"end_date={root.end_date.isoformat()} pruned={pruned}"
            )
            return MutationResult(
                scope=scope, transaction_id=root.id, affected_count=pruned + 1
            )

        count = self._delete_series(root)
        logger.info(f"series_delete: root_id={root.id} scope=all deleted={count}")
        return MutationResult(scope=scope, transaction_id=None, affected_count=count)

    def _find_override(
        self, root: Transaction, occ_date: date
    ) -> Optional[Transaction]:
        first, last = month_bounds(occ_date.year, occ_date.month)
        return self.session.scalars(
            select(Transaction)
            .options(selectinload(Transaction.tags))
            .where(
                Transaction.parent_transaction_id == root.id,
                Transaction.is_override.is_(True),
                Transaction.override_for_date.between(first, last),
            )
            .order_by(Transaction.id)
        ).first()

    def _new_override(self, root: Transaction, occ_date: date) -> Transaction:
        override = Transaction(
            user_id=root.user_id,
            type=root.type,
            amount_cents=root.amount_cents,
            description=root.description,
            notes=root.notes,
            category_id=root.category_id,
            account_id=root.account_id,
            due_date=occ_date,
            status=TransactionStatus.pending,
            is_fixed=False,
            cancelled_occurrences=[],
            is_override=True,
            override_for_date=occ_date,
            parent_transaction_id=root.id,
        )
        # Tags are copied only once the override is pending in the session.
        self.session.add(override)
        override.tags = list(root.tags)
        return override

    def _preserve_history(self, root: Transaction, before: date) -> int:
        """Freeze every earlier occurrence that still reads from the root."""
        existing = overrides_by_key(
            self.session.scalars(
                select(Transaction).where(
                    Transaction.parent_transaction_id == root.id,
                    Transaction.is_override.is_(True),
                )
            ).all()
        )
        cancelled = set(root.cancelled_occurrences or [])
        cutoff = month_bounds(before.year, before.month)[0]
        created = 0
        for _, occ_date in series_dates(root):
            if occ_date >= cutoff:
                break
            key = occurrence_key(occ_date)
            if key in existing or key in cancelled:
                continue
            self._new_override(root, occ_date)
            created += 1
        self.session.flush()
        return created

    def _apply(
        self, record: Transaction, changes: dict[str, object], today: date
    ) -> None:
        for field in (
            "type",
            "amount_cents",
            "description",
            "notes",
            "category_id",
            "account_id",
        ):
            if field in changes:
                setattr(record, field, changes[field])
        if "tags" in changes:
            record.tags = list(changes["tags"])
        if "status" in changes:
            if changes["status"] == TransactionStatus.paid:
                record.status = TransactionStatus.paid
                record.paid_date = record.paid_date or today
            else:
                record.status = TransactionStatus.pending
                record.paid_date = None

    def _apply_to_override(
        self, override: Transaction, changes: dict[str, object], today: date
    ) -> None:
        self._apply(override, changes, today)
        if "due_date" in changes:
            override.due_date = changes["due_date"]

    def _apply_to_root(
        self, root: Transaction, changes: dict[str, object], today: date
    ) -> None:
        # Payment is tracked per occurrence, never on a series root.
        series_changes = {k: v for k, v in changes.items() if k != "status"}
        self._apply(root, series_changes, today)
        if "due_date" in changes:
            new_day = changes["due_date"].day
            root.day_of_month = new_day
            root.due_date = occurrence_date(root.series_start, new_day, 0)
            root.start_date = root.due_date
            if root.series_kind == SeriesKind.installment:
                root.end_date = installment_end_date(
                    root.series_start, root.installments, new_day
                )
            elif root.end_date is not None:
                root.end_date = clamped_date(
                    root.end_date.year, root.end_date.month, new_day
                )
        self.session.flush()

    def _delete_records(self, records: list[Transaction]) -> int:
        for record in records:
            self.session.delete(record)
        self.session.flush()
        return len(records)

    def _delete_overrides(
        self, root: Transaction, from_date: Optional[date] = None
    ) -> int:
        stmt = select(Transaction).where(
            Transaction.parent_transaction_id == root.id,
            Transaction.is_override.is_(True),
        )
        if from_date is not None:
            cutoff = month_bounds(from_date.year, from_date.month)[0]
            stmt = stmt.where(Transaction.override_for_date >= cutoff)
        return self._delete_records(self.session.scalars(stmt).all())

    def _delete_series(self, root: Transaction) -> int:
        # Overrides reference the root, so they go first.
        count = self._delete_overrides(root)
        return count + self._delete_records([root])
