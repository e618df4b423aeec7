"""
Custom Categories

Per-user categories offered next to the built-in ones when recording
transactions. Names are unique per user and kind: "Gifts" can exist
once as income and once as expense. Transactions store the category
name, so renaming or deleting a category leaves existing transactions
as they are.
"""

from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from walletledger.audit import AuditLogger
from walletledger.models.audit import AuditEventBuilder, AuditEventType
from walletledger.models.category import CustomCategory
from walletledger.models.wallet import TransactionKind, utcnow
from walletledger.services.storage import DuplicateError, LedgerStoreInterface, NotFoundError


class CustomCategoryUpdate(BaseModel):
    """Editable category fields. The kind is fixed once created."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    icon: Optional[str] = Field(default=None, max_length=40)
    color: Optional[str] = Field(default=None, max_length=20)


class CategoryService:
    """Owner-scoped custom category operations."""

    def __init__(
        self,
        store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()

    async def get_category(self, user_id: str, category_id: UUID) -> CustomCategory:
        category = await self._store.get_category(category_id)
        if category is None or category.user_id != user_id:
            raise NotFoundError(f"Category not found: {category_id}")
        return category

    async def list_categories(
        self,
        user_id: str,
        kind: Optional[TransactionKind] = None,
    ) -> list[CustomCategory]:
        """A user's categories sorted by name, optionally of one kind."""
        categories = await self._store.list_categories(user_id)
        if kind is not None:
            categories = [c for c in categories if c.kind == TransactionKind(kind)]
        return categories

    async def create_category(
        self,
        user_id: str,
        name: str,
        kind: TransactionKind,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> CustomCategory:
        """
        Add a category for one transaction kind.

        Raises:
            DuplicateError: If the user already has this name for this kind
        """
        fields = {"user_id": user_id, "name": name, "kind": kind}
        if icon:
            fields["icon"] = icon
        if color:
            fields["color"] = color
        category = CustomCategory(**fields)
        await self._ensure_unique(category)
        category = await self._store.save_category(category)
        await self._log(AuditEventType.CATEGORY_CREATED, category)
        return category

    async def update_category(
        self,
        user_id: str,
        category_id: UUID,
        changes: Union[CustomCategoryUpdate, dict],
    ) -> CustomCategory:
        """
        Rename or restyle a category.

        Raises:
            NotFoundError: If the category is missing or not the user's
            DuplicateError: If the new name is taken for this kind
        """
        if isinstance(changes, dict):
            changes = CustomCategoryUpdate(**changes)
        category = await self.get_category(user_id, category_id)
        data = category.model_dump()
        data.update(changes.model_dump(exclude_unset=True, exclude_none=True))
        data["updated_at"] = utcnow()
        category = CustomCategory.model_validate(data)
        await self._ensure_unique(category)
        category = await self._store.replace_category(category)
        await self._log(AuditEventType.CATEGORY_UPDATED, category)
        return category

    async def delete_category(self, user_id: str, category_id: UUID) -> CustomCategory:
        category = await self.get_category(user_id, category_id)
        await self._store.delete_category(category_id)
        await self._log(AuditEventType.CATEGORY_DELETED, category)
        return category

    async def _ensure_unique(self, category: CustomCategory) -> None:
        for other in await self._store.list_categories(category.user_id):
            if other.id != category.id and other.unique_key == category.unique_key:
                raise DuplicateError(
                    f"Category already exists: {category.name} ({category.kind.value})"
                )

    async def _log(self, event_type: AuditEventType, category: CustomCategory) -> None:
        await self._audit.log(AuditEventBuilder.category_changed(
            event_type,
            category_id=category.id,
            user_id=category.user_id,
            name=category.name,
            kind=category.kind.value,
        ))
