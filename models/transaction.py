"""Pydantic models for transaction occurrences, new entries and partial edits"""
from pydantic import BaseModel, Field, model_validator
import datetime
from datetime import date
from typing import Any, Dict, Literal, Optional

TransactionType = Literal['income', 'expense']

DEFAULT_ACCOUNT = "Carteira"


class Transaction(BaseModel):
    """
    One concrete, dated income or expense occurrence.
    `group_id` links the occurrences of one installment plan or recurring series.
    """
    id: Optional[str] = None
    group_id: Optional[str] = None
    amount: float
    category: str
    account: str = DEFAULT_ACCOUNT
    date: date
    description: str = ""
    type: TransactionType
    is_recurring: bool = False
    is_paid: bool = True

    class Config:
        populate_by_name = True
        from_attributes = True


class TransactionEntry(BaseModel):
    """
    A logical user entry, expanded into one or more occurrences on create.
    """
    amount: float = Field(..., gt=0, description="Positive amount. Installment plans split it across occurrences.")
    category: str = Field(..., min_length=1)
    description: str = ""
    date: date
    type: TransactionType
    account: str = DEFAULT_ACCOUNT
    installments: int = Field(1, ge=1, description="Total number of installments (expenses only).")
    is_recurring: bool = False
    start_installment: int = Field(1, ge=1, description="Installment number of the first occurrence created.")
    is_paid: bool = True


class TransactionUpdate(BaseModel):
    """
    Partial edit of an occurrence. Only the fields explicitly provided are written;
    the set of changed fields is `model_fields_set`.
    """
    amount: Optional[float] = None
    category: Optional[str] = Field(None, min_length=1)
    account: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime.date] = None
    type: Optional[TransactionType] = None
    is_recurring: Optional[bool] = None
    is_paid: Optional[bool] = None

    @model_validator(mode='after')
    def reject_explicit_nulls(self) -> 'TransactionUpdate':
        nulls = [name for name in self.model_fields_set if getattr(self, name) is None]
        if nulls:
            raise ValueError(f"Fields cannot be cleared: {', '.join(sorted(nulls))}")
        return self

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(include=self.model_fields_set)
