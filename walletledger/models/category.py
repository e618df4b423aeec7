"""
Custom Category Model

Users can add their own categories next to the built-in ones. A category
belongs to one transaction kind, and a user cannot have two categories
with the same name and kind.
"""

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from walletledger.models.wallet import TransactionKind, utcnow


class CustomCategory(BaseModel):
    """A user-defined category for income, expense or bill transactions."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=50)
    kind: TransactionKind
    icon: str = Field(default="folder", max_length=40)
    color: str = Field(default="#6366f1", max_length=20)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def unique_key(self) -> tuple[str, str, TransactionKind]:
        return (self.user_id, self.name, self.kind)
