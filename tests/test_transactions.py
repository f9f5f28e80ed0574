from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from database import Base, create_db_engine
from models import Transaction, TransactionStatus, TransactionType
from occurrences import InstallmentGroup
from periods import Period
from schemas import AccountIn, CategoryIn, TransactionEditIn, TransactionIn
from services import (
    AccountService,
    CategoryService,
    SeriesMutationService,
    TransactionFilters,
    TransactionService,
)

TODAY = date(2025, 6, 15)
JUNE = Period("month", date(2025, 6, 1), date(2025, 6, 30))
YEAR = Period("custom", date(2025, 1, 1), date(2025, 12, 31))


def _setup(session: Session):
    expense = CategoryService(session).create(
        CategoryIn(name="Bills", type=TransactionType.expense)
    )
    income = CategoryService(session).create(
        CategoryIn(name="Salary", type=TransactionType.income)
    )
    account = AccountService(session).create(AccountIn(name="Checking"))
    return expense, income, account


def _payload(category, account, **fields) -> TransactionIn:
    values = dict(
        type=category.type,
        amount_cents=100,
        description="Rent",
        due_date=date(2025, 1, 15),
        category_id=category.id,
        account_id=account.id,
    )
    values.update(fields)
    return TransactionIn(**values)


def test_transaction_in_validates_series_fields():
    base = dict(
        type=TransactionType.expense,
        amount_cents=100,
        description="Phone",
        due_date=date(2025, 1, 1),
        category_id=1,
        account_id=1,
    )
    assert TransactionIn(**base, installments=1).installments is None
    assert TransactionIn(**base, installments=48).installments == 48
    with pytest.raises(ValidationError):
        TransactionIn(**base, installments=49)
    with pytest.raises(ValidationError):
        TransactionIn(**base, is_fixed=True, installments=3)
    with pytest.raises(ValidationError):
        TransactionIn(**{**base, "amount_cents": 0})


def test_transaction_in_accepts_camel_case():
    data = TransactionIn.model_validate(
        {
            "type": "expense",
            "amountCents": 990,
            "description": "Gym",
            "dueDate": "2025-03-31",
            "categoryId": 2,
            "accountId": 3,
            "isFixed": True,
        }
    )
    assert data.amount_cents == 990
    assert data.due_date == date(2025, 3, 31)
    assert data.is_fixed is True


def test_create_installment_series_sets_schedule():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        expense, _, account = _setup(session)

        txn = TransactionService(session).create(
            _payload(expense, account, due_date=date(2025, 1, 31), installments=4),
            today=TODAY,
        )

        assert txn.start_date == date(2025, 1, 31)
        assert txn.day_of_month == 31
        assert txn.installments == 4
        assert txn.end_date == date(2025, 4, 30)
        assert txn.is_fixed is False
        assert txn.status == TransactionStatus.pending


def test_create_rejects_mismatched_category_and_unknown_account():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        expense, income, account = _setup(session)
        service = TransactionService(session)

        with pytest.raises(ValueError, match="Category type mismatch"):
            service.create(
                _payload(income, account, type=TransactionType.expense), today=TODAY
            )
        with pytest.raises(ValueError, match="Account not found"):
            service.create(_payload(expense, account, account_id=999), today=TODAY)


def test_create_paid_series_marks_first_occurrence_paid():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        expense, _, account = _setup(session)
        root = TransactionService(session).create(
            _payload(expense, account, installments=3, status=TransactionStatus.paid),
            today=TODAY,
        )

        occurrences = sorted(
            TransactionService(session).list_occurrences(YEAR, today=TODAY),
            key=lambda o: o.due_date,
        )

        assert root.status == TransactionStatus.pending
        assert [o.status for o in occurrences] == [
            TransactionStatus.paid,
            TransactionStatus.overdue,
            TransactionStatus.overdue,
        ]
        assert occurrences[0].paid_date == TODAY
        assert occurrences[0].real_id != root.id


def test_create_paid_single_transaction():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        expense, _, account = _setup(session)
        txn = TransactionService(session).create(
            _payload(expense, account, status=TransactionStatus.paid), today=TODAY
        )

        assert txn.status == TransactionStatus.paid
        assert txn.paid_date == TODAY
        assert txn.start_date is None


def test_list_occurrences_sorted_newest_first_and_filtered():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        expense, income, account = _setup(session)
        savings = AccountService(session).create(AccountIn(name="Savings"))
        service = TransactionService(session)
        service.create(_payload(expense, account, is_fixed=True), today=TODAY)
        service.create(
            _payload(income, savings, description="Salary", due_date=date(2025, 3, 5)),
            today=TODAY,
        )

        everything = service.list_occurrences(YEAR, today=TODAY)
        by_account = service.list_occurrences(
            YEAR, TransactionFilters(account_id=savings.id), today=TODAY
        )
        fixed_only = service.list_occurrences(
            YEAR, TransactionFilters(is_fixed=True), today=TODAY
        )
        overdue = service.list_occurrences(
            YEAR, TransactionFilters(status=TransactionStatus.overdue), today=TODAY
        )

        assert len(everything) == 13
        assert everything[0].due_date == date(2025, 12, 15)
        assert [o.description for o in by_account] == ["Salary"]
        assert len(fixed_only) == 12
        # Jan to May of the fixed series plus the March salary.
        assert len(overdue) == 6


def test_include_overdue_pulls_earlier_unpaid_occurrences():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        expense, _, account = _setup(session)
        service = TransactionService(session)
        service.create(
            _payload(expense, account, description="Late", due_date=date(2025, 3, 1)),
            today=TODAY,
        )
        service.create(
            _payload(
                expense,
                account,
                description="Settled",
                due_date=date(2025, 4, 1),
                status=TransactionStatus.paid,
            ),
            today=TODAY,
        )
        service.create(
            _payload(
                expense, account, description="Current", due_date=date(2025, 6, 20)
            ),
            today=TODAY,
        )

        plain = service.list_occurrences(JUNE, today=TODAY)
        with_overdue = service.list_occurrences(JUNE, include_overdue=True, today=TODAY)

        assert [o.description for o in plain] == ["Current"]
        assert [o.description for o in with_overdue] == ["Current", "Late"]


def test_group_installments_returns_one_row_per_series():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        expense, _, account = _setup(session)
        service = TransactionService(session)
        service.create(
            _payload(expense, account, description="TV", installments=10), today=TODAY
        )
        service.create(
            _payload(expense, account, description="Lunch", due_date=date(2025, 2, 2)),
            today=TODAY,
        )

        rows = service.group_installments(
            service.list_occurrences(YEAR, today=TODAY), today=TODAY
        )

        groups = [row for row in rows if isinstance(row, InstallmentGroup)]
        assert len(rows) == 2
        assert len(groups) == 1
        assert groups[0].description == "TV"
        assert groups[0].status == "pending"
        assert groups[0].summary.total_installments == 10
        assert groups[0].summary.current_installment == 6


def test_suggestions_match_substrings_then_typos():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        expense, income, account = _setup(session)
        service = TransactionService(session)
        for description in ["Netflix", "netflix", "Internet", "Rent"]:
            service.create(
                _payload(expense, account, description=description), today=TODAY
            )
        service.create(
            _payload(income, account, description="Network bonus"), today=TODAY
        )

        net = service.suggestions("net", TransactionType.expense)
        typo = service.suggestions("rant")

        assert {txn.description.lower() for txn in net} == {"netflix", "internet"}
        assert len(net) == 2
        assert [txn.description for txn in typo] == ["Rent"]
        assert service.suggestions("n") == []
        assert len(service.suggestions("net", limit=1)) == 1


def test_get_unknown_transaction_raises():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(ValueError, match="Transaction not found"):
            TransactionService(session).get(1)
        assert session.scalars(select(Transaction)).all() == []


def test_cash_flow_lists_paid_occurrences_in_payment_period():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        expense, _, account = _setup(session)
        service = TransactionService(session)
        root = service.create(
            _payload(
                expense,
                account,
                description="Course",
                due_date=date(2025, 3, 15),
                installments=3,
            ),
            today=TODAY,
        )
        gym = service.create(
            _payload(expense, account, description="Gym", due_date=date(2025, 3, 20)),
            today=TODAY,
        )
        paid_on = date(2025, 4, 2)
        mutations = SeriesMutationService(session)
        paid = TransactionEditIn(status=TransactionStatus.paid)
        mutations.edit(f"{root.id}::2025-03", paid, today=paid_on)
        mutations.edit(str(gym.id), paid, today=paid_on)
        march = Period("month", date(2025, 3, 1), date(2025, 3, 31))
        april = Period("month", date(2025, 4, 1), date(2025, 4, 30))

        by_due = service.list_occurrences(april, today=paid_on)
        by_payment = service.list_occurrences(april, cash_flow=True, today=paid_on)
        march_by_payment = service.list_occurrences(
            march, cash_flow=True, today=paid_on
        )

        assert [(o.due_date, o.status) for o in by_due] == [
            (date(2025, 4, 15), TransactionStatus.pending)
        ]
        assert [(o.description, o.status, o.paid_date) for o in by_payment] == [
            ("Course", TransactionStatus.pending, None),
            ("Gym", TransactionStatus.paid, paid_on),
            ("Course", TransactionStatus.paid, paid_on),
        ]
        assert by_payment[2].is_override is True
        assert by_payment[2].current_installment == 1
        assert march_by_payment == []
