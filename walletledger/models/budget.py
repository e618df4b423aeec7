"""
Budget Models

A Budget holds the per-category spending targets of one user for one
calendar month. What was actually spent is never stored: it is derived
from expense transactions every time a budget is read.
"""

import re
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from walletledger.models.wallet import utcnow


MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def parse_month(month: str) -> tuple[datetime, datetime]:
    """
    Turn a YYYY-MM key into its [start, end) datetime bounds.

    Raises ValueError for malformed keys.
    """
    if not isinstance(month, str) or not MONTH_PATTERN.match(month):
        raise ValueError(f"Month must be formatted YYYY-MM, got {month!r}")
    year, mon = (int(part) for part in month.split("-"))
    start = datetime(year, mon, 1)
    end = datetime(year + 1, 1, 1) if mon == 12 else datetime(year, mon + 1, 1)
    return start, end


class BudgetAllocation(BaseModel):
    """
    A spending target for one category.

    There is no `spent` field: a stored spent figure would go stale the
    moment a transaction changes, so it is recomputed at read time instead.
    Input that still carries one (older clients) has it silently dropped.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    category: str = Field(..., min_length=1, max_length=100)
    amount: int = Field(
        ...,
        ge=0,
        description="Allocated amount in minor units"
    )
    description: Optional[str] = Field(default=None, max_length=200)


class Budget(BaseModel):
    """Allocations of one user for one month. Unique per (user, month)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    month: str = Field(..., description="YYYY-MM")
    total_budget: int = Field(default=0, ge=0)
    allocations: list[BudgetAllocation] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator('month')
    @classmethod
    def validate_month(cls, v: str) -> str:
        parse_month(v)
        return v

    @model_validator(mode='after')
    def validate_unique_categories(self) -> 'Budget':
        seen = set()
        for allocation in self.allocations:
            if allocation.category in seen:
                raise ValueError(
                    f"Category {allocation.category!r} is allocated more than once"
                )
            seen.add(allocation.category)
        return self


class AllocationWithSpent(BaseModel):
    """An allocation paired with its freshly derived spend."""

    category: str
    allocated: int
    spent: int = Field(ge=0)
    description: Optional[str] = None

    @property
    def remaining(self) -> int:
        return self.allocated - self.spent

    @property
    def is_over_budget(self) -> bool:
        return self.spent > self.allocated
