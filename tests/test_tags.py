from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from database import Base, create_db_engine
from models import Tag, TransactionType
from schemas import AccountIn, CategoryIn, TagIn, TransactionIn
from services import AccountService, CategoryService, TagService, TransactionService


def _transaction(session: Session, tag_ids: list[int]):
    category = CategoryService(session).create(
        CategoryIn(name="Food", type=TransactionType.expense)
    )
    account = AccountService(session).create(AccountIn(name="Wallet"))
    return TransactionService(session).create(
        TransactionIn(
            type=TransactionType.expense,
            amount_cents=1299,
            description="Lunch",
            due_date=date(2025, 1, 5),
            category_id=category.id,
            account_id=account.id,
            tag_ids=tag_ids,
        ),
        today=date(2025, 1, 5),
    )


def test_deleting_used_tag_clears_associations() -> None:
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        tag = TagService(session).create(TagIn(name="Dining"))
        txn = _transaction(session, [tag.id])
        assert txn.tag_ids == [tag.id]

        TagService(session).delete(tag.id)

        txn_after = TransactionService(session).get(txn.id)
        assert txn_after.tags == []
        assert session.scalars(select(Tag)).all() == []


def test_transaction_tag_ids_are_deduplicated() -> None:
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        tag = TagService(session).create(TagIn(name="Dining"))

        txn = _transaction(session, [tag.id, tag.id])

        assert len(txn.tags) == 1
        assert txn.tags[0].name == "Dining"


def test_tag_names_are_unique_case_insensitive() -> None:
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        TagService(session).create(TagIn(name="Travel"))

        with pytest.raises(ValueError, match="Tag already exists"):
            TagService(session).create(TagIn(name=" travel "))
        with pytest.raises(ValueError, match="Tag name cannot be empty"):
            TagService(session).create(TagIn(name="   "))


def test_unknown_tag_ids_are_rejected() -> None:
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(ValueError, match="Tag not found"):
            _transaction(session, [42])
        with pytest.raises(ValueError, match="Tag not found"):
            TagService(session).delete(42)
