"""Word categories stored in the ``wordCategories`` collection."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from corpus_sync.engine import PersistenceEngine
from corpus_sync.exceptions import (
    DuplicateRecordError,
    EngineUnavailableError,
    StorageCorruptionError,
)
from corpus_sync.models import ContentError, ErrorKind, OperationResult

logger = logging.getLogger(__name__)

COLLECTION = "wordCategories"


@dataclass(frozen=True, slots=True)
class Category:
    """A word category shown in category pickers."""

    id: str
    name: str
    color: str | None = None

    def to_record(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "color": self.color}


DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(id="general", name="General", color="bg-gray-700"),
    Category(id="vocabulary", name="Vocabulary", color="bg-purple-700"),
)
_DEFAULT_IDS = frozenset(c.id for c in DEFAULT_CATEGORIES)


def slugify(name: str) -> str:
    """Category id derived from its display name."""
    return re.sub(r"[^a-z0-9]+", "-", name.strip().lower()).strip("-")


def _failure(kind: ErrorKind, message: str, item_id: str | None = None,
             field: str | None = None) -> OperationResult:
    return OperationResult.failure(
        ContentError(kind=kind, message=message, field=field, item_id=item_id)
    )


class CategoryService:
    """Cached list of word categories; the defaults are always present."""

    def __init__(self, engine: PersistenceEngine) -> None:
        self._engine = engine
        self._categories: list[Category] | None = None

    async def initialize(self) -> list[Category]:
        if self._categories is not None:
            return list(self._categories)
        try:
            records = await self._engine.get_all(COLLECTION)
            if not records:
                await self._engine.bulk_add(
                    COLLECTION, [c.to_record() for c in DEFAULT_CATEGORIES],
                )
                records = [c.to_record() for c in DEFAULT_CATEGORIES]
        except (EngineUnavailableError, StorageCorruptionError, DuplicateRecordError) as e:
            logger.error("Cannot load word categories, using defaults: %s", e)
            self._categories = list(DEFAULT_CATEGORIES)
            return list(self._categories)

        categories = [
            Category(id=r["id"], name=str(r.get("name") or r["id"]), color=r.get("color"))
            for r in records
            if isinstance(r.get("id"), str)
        ]
        known = {c.id for c in categories}
        categories.extend(c for c in DEFAULT_CATEGORIES if c.id not in known)
        self._categories = categories
        return list(categories)

    async def list_categories(self) -> list[Category]:
        return await self.initialize()

    async def get(self, category_id: str) -> Category | None:
        for category in await self.initialize():
            if category.id == category_id:
                return category
        return None

    async def add(self, name: str, color: str | None = None) -> OperationResult:
        await self.initialize()
        category_id = slugify(name or "")
        if not category_id:
            return _failure(
                ErrorKind.VALIDATION_FAILURE, "Category name is required", field="name",
            )
        if any(c.id == category_id for c in self._categories):
            return _failure(
                ErrorKind.DUPLICATE_CONTENT,
                f"Category already exists: {category_id!r}", item_id=category_id,
            )
        category = Category(id=category_id, name=name.strip(), color=color)
        try:
            await self._engine.add(COLLECTION, category.to_record())
        except DuplicateRecordError:
            return _failure(
                ErrorKind.DUPLICATE_CONTENT,
                f"Category already exists: {category_id!r}", item_id=category_id,
            )
        except (EngineUnavailableError, StorageCorruptionError) as e:
            logger.error("Failed to add category %s: %s", category_id, e)
            return _failure(
                ErrorKind.ENGINE_UNAVAILABLE, "Content store unavailable", category_id,
            )
        self._categories.append(category)
        return OperationResult.success(category)

    async def update(
        self,
        category_id: str,
        *,
        name: str | None = None,
        color: str | None = None,
    ) -> OperationResult:
        existing = await self.get(category_id)
        if existing is None:
            return _failure(
                ErrorKind.NOT_FOUND, f"Category not found: {category_id!r}", category_id,
            )
        if name is not None and not name.strip():
            return _failure(
                ErrorKind.VALIDATION_FAILURE, "Category name is required",
                category_id, field="name",
            )
        updated = Category(
            id=category_id,
            name=name.strip() if name is not None else existing.name,
            color=color if color is not None else existing.color,
        )
        try:
            await self._engine.update(COLLECTION, updated.to_record())
        except (EngineUnavailableError, StorageCorruptionError) as e:
            logger.error("Failed to update category %s: %s", category_id, e)
            return _failure(
                ErrorKind.ENGINE_UNAVAILABLE, "Content store unavailable", category_id,
            )
        self._categories = [updated if c.id == category_id else c for c in self._categories]
        return OperationResult.success(updated)

    async def delete(self, category_id: str) -> OperationResult:
        existing = await self.get(category_id)
        if existing is None:
            return _failure(
                ErrorKind.NOT_FOUND, f"Category not found: {category_id!r}", category_id,
            )
        if category_id in _DEFAULT_IDS:
            return _failure(
                ErrorKind.IMMUTABLE_PREDEFINED,
                f"Default category {category_id!r} cannot be deleted", category_id,
            )
        try:
            await self._engine.delete(COLLECTION, category_id)
        except (EngineUnavailableError, StorageCorruptionError) as e:
            logger.error("Failed to delete category %s: %s", category_id, e)
            return _failure(
                ErrorKind.ENGINE_UNAVAILABLE, "Content store unavailable", category_id,
            )
        self._categories = [c for c in self._categories if c.id != category_id]
        return OperationResult.success(existing)
