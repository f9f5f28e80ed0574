from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from models import EditScope, TransactionStatus, TransactionType

MAX_INSTALLMENTS = 48


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CategoryIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=50)
    type: TransactionType
    color: Optional[str] = Field(None, max_length=7)


class AccountIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=50)
    color: Optional[str] = Field(None, max_length=7)
    initial_balance_cents: int = 0


class TagIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=30)
    color: Optional[str] = Field(None, max_length=9)


class TransactionIn(CamelModel):
    type: TransactionType
    amount_cents: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = Field(None, max_length=1000)
    due_date: date
    status: TransactionStatus = TransactionStatus.pending
    category_id: int
    account_id: int
    tag_ids: list[int] = Field(default_factory=list)
    is_fixed: bool = False
    installments: Optional[int] = Field(None, ge=1, le=MAX_INSTALLMENTS)

    @field_validator("installments")
    @classmethod
    def _single_installment_is_plain(cls, value: Optional[int]) -> Optional[int]:
        if value == 1:
            return None
        return value

    @model_validator(mode="after")
    def _fixed_or_installments(self) -> "TransactionIn":
        if self.is_fixed and self.installments:
            raise ValueError("A transaction cannot be both fixed and in installments")
        return self


class TransactionEditIn(CamelModel):
    """Fields to change on an occurrence. Fields that are not sent keep their value."""

    scope: EditScope = EditScope.single
    type: Optional[TransactionType] = None
    amount_cents: Optional[int] = Field(None, gt=0)
    description: Optional[str] = Field(None, min_length=1, max_length=255)
    notes: Optional[str] = Field(None, max_length=1000)
    due_date: Optional[date] = None
    status: Optional[TransactionStatus] = None
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    tag_ids: Optional[list[int]] = None

    def changes(self) -> dict[str, object]:
        values = self.model_dump(exclude_unset=True, exclude={"scope"})
        # Explicit nulls only make sense for notes.
        return {
            key: value
            for key, value in values.items()
            if value is not None or key == "notes"
        }


class OccurrenceOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

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
    tag_ids: list[int]
    is_fixed: bool
    installments: Optional[int]
    current_installment: Optional[int]
    is_virtual: bool
    is_override: bool


class InstallmentSummaryOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    total_installments: int
    paid_installments: int
    pending_installments: int
    cancelled_installments: int
    current_installment: int
    start_date: date
    end_date: date
    installment_amount_cents: int
    total_amount_cents: int


class InstallmentGroupOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_id: int
    type: TransactionType
    description: str
    category_id: int
    account_id: int
    tag_ids: list[int]
    status: str
    due_date: date
    summary: InstallmentSummaryOut
    is_group: bool = True


class TransactionOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: TransactionType
    amount_cents: int
    description: str
    notes: Optional[str]
    due_date: date
    paid_date: Optional[date]
    status: TransactionStatus
    category_id: int
    account_id: int
    tag_ids: list[int]
    start_date: Optional[date]
    day_of_month: Optional[int]
    is_fixed: bool
    installments: Optional[int]
    end_date: Optional[date]
    cancelled_occurrences: list[str]
    is_override: bool
    override_for_date: Optional[date]
    parent_transaction_id: Optional[int]


class MutationOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    scope: EditScope
    transaction_id: Optional[int]
    affected_count: int


class SuggestionOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    type: TransactionType
    amount_cents: int
    category_id: int
    account_id: int


class CategoryOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: TransactionType
    color: Optional[str]


class AccountOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    color: Optional[str]
    initial_balance_cents: int
    current_balance_cents: int


class TagOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    color: Optional[str]
