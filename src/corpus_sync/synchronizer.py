"""ContentSynchronizer: in-memory mirror of the content collections."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from corpus_sync.catalog import EMERGENCY_DATASET, PredefinedCatalog, load_catalog
from corpus_sync.config import Settings
from corpus_sync.engine import PersistenceEngine
from corpus_sync.exceptions import (
    DuplicateRecordError,
    EngineUnavailableError,
    StorageCorruptionError,
)
from corpus_sync.models import (
    ContentError,
    ContentItem,
    ContentType,
    ErrorKind,
    ImportCounts,
    ImportReport,
    OperationResult,
)
from corpus_sync.normalizer import (
    as_record,
    content_key,
    describe,
    gloss_key,
    normalize,
)

logger = logging.getLogger(__name__)

# Ids the pre-flag releases gave to shipped content ("word-12", "verb-3")
_LEGACY_PREDEFINED_ID = re.compile(r"^(word|verb|sentence|number)-\d+$")

# Engine failures the synchronizer absorbs instead of propagating
_ENGINE_ERRORS = (EngineUnavailableError, StorageCorruptionError)


def utc_now() -> str:
    """Current time as an ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def _failure(
    kind: ErrorKind,
    message: str,
    *,
    field: str | None = None,
    item_id: str | None = None,
) -> OperationResult:
    return OperationResult.failure(
        ContentError(kind=kind, message=message, field=field, item_id=item_id)
    )


class ContentSynchronizer:
    """Write-through cache over a :class:`PersistenceEngine`.

    Reads are served from memory after a lazy initialization; every
    mutation is written to the engine first and mirrored in the cache
    only once the write has succeeded. Business-rule outcomes are
    returned as :class:`OperationResult` values, never raised.
    """

    def __init__(
        self,
        engine: PersistenceEngine,
        *,
        catalog: PredefinedCatalog | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._engine = engine
        self._settings = settings or Settings()
        if catalog is None:
            catalog = load_catalog(self._settings.catalog_path)
        self._catalog = catalog
        self._cache: dict[ContentType, list[ContentItem]] = {}
        self._ready = False
        self._degraded = False
        self._user_id: str | None = None
        self._init_task: asyncio.Task[None] | None = None
        self._generation = 0
        # Held from the duplicate check until the cache reflects the write
        self._write_locks = {ct: asyncio.Lock() for ct in ContentType}

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def degraded(self) -> bool:
        """True while the cache is serving fallback data."""
        return self._degraded

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def engine(self) -> PersistenceEngine:
        return self._engine

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def initialize(self, user_id: str | None = None) -> None:
        """Load every collection from the engine (once per user).

        Concurrent callers share one in-flight load.
        """
        while not (self._ready and self._user_id == user_id):
            task = self._init_task
            if task is None or task.done():
                task = asyncio.create_task(self._load(user_id, self._generation))
                self._init_task = task
            # A load for another user finishes first, then the loop starts ours.
            # A cancelled caller must not cancel the shared load.
            await asyncio.shield(task)

    async def force_refresh(self) -> None:
        """Discard the cache state and reload from the engine."""
        logger.info("Forcing content refresh")
        self._generation += 1
        self._ready = False
        self._init_task = None
        await self.initialize(self._user_id)

    async def _ensure_ready(self) -> None:
        if not self._ready:
            await self.initialize(self._user_id)

    async def _load(self, user_id: str | None, generation: int) -> None:
        logger.info("Initializing content cache for user %s", user_id or "anonymous")
        try:
            await self._engine.open()
            for content_type in ContentType:
                await self._reconcile(content_type)
            cache: dict[ContentType, list[ContentItem]] = {}
            for content_type in ContentType:
                records = await self._engine.get_all(content_type.value)
                cache[content_type] = self._validated(content_type, records)
        except _ENGINE_ERRORS as e:
            if generation != self._generation:
                return
            logger.error("Content store unavailable, serving fallback data: %s", e)
            self._fall_back()
            self._degraded = True
        else:
            if generation != self._generation:
                logger.debug("Discarding stale content load")
                return
            self._cache = cache
            self._degraded = False
            logger.info(
                "Content loaded - words: %d, verbs: %d, sentences: %d, numbers: %d",
                *(len(cache[ct]) for ct in ContentType),
            )
        self._user_id = user_id
        self._ready = True

    async def _reconcile(self, content_type: ContentType) -> None:
        """Purge orphaned predefined records and seed missing catalog ones."""
        catalog_ids = self._catalog.ids(content_type)
        stored = await self._engine.get_all(content_type.value)
        stored_ids: set[str] = set()
        purged = 0
        for record in stored:
            record_id = record.get("id")
            if self._is_orphaned(record, catalog_ids):
                await self._engine.delete(content_type.value, record_id)
                purged += 1
            elif isinstance(record_id, str):
                stored_ids.add(record_id)
        if purged:
            logger.warning(
                "Purged %d orphaned predefined %s", purged, content_type.value,
            )

        if not self._settings.seed_predefined:
            return
        missing = [
            r for r in self._catalog.records(content_type)
            if r["id"] not in stored_ids
        ]
        if not missing:
            return
        try:
            await self._engine.bulk_add(content_type.value, missing)
        except DuplicateRecordError as e:
            logger.warning("Predefined %s already seeded: %s", content_type.value, e)
        else:
            logger.info(
                "Seeded %d predefined %s", len(missing), content_type.value,
            )

    def _is_orphaned(self, record: Mapping[str, Any], catalog_ids: frozenset[str]) -> bool:
        record_id = record.get("id")
        if record_id in catalog_ids:
            return False
        if record.get("isPredefined") is True:
            return True
        # Migration-only cleanup of content shipped before the explicit flag
        return (
            self._settings.purge_legacy_ids
            and isinstance(record_id, str)
            and _LEGACY_PREDEFINED_ID.match(record_id) is not None
        )

    def _validated(
        self, content_type: ContentType, records: list[dict[str, Any]],
    ) -> list[ContentItem]:
        items: list[ContentItem] = []
        for index, record in enumerate(records):
            result = normalize(content_type, record, index=index)
            if not result.ok:
                logger.warning(
                    "Dropping invalid %s %r: %s",
                    content_type.singular, record.get("id"), result.error.message,
                )
                continue
            items.append(result.item)
        return items

    def _fall_back(self) -> None:
        if self._cache:
            logger.warning("Keeping last-known content cache")
            return
        if self._settings.emergency_fallback:
            logger.warning("Loading emergency content dataset")
            self._cache = {ct: list(EMERGENCY_DATASET[ct]) for ct in ContentType}
        else:
            self._cache = {ct: [] for ct in ContentType}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all(self, content_type: ContentType | str) -> list[ContentItem]:
        """Return a copy of the cached collection."""
        content_type = ContentType.coerce(content_type)
        await self._ensure_ready()
        return list(self._cache.get(content_type, ()))

    async def get_by_id(
        self, content_type: ContentType | str, item_id: str,
    ) -> ContentItem | None:
        content_type = ContentType.coerce(content_type)
        await self._ensure_ready()
        return self._find(content_type, item_id)

    async def export_data(self) -> dict[str, list[dict[str, Any]]]:
        """Cached collections as plain records, keyed by collection name."""
        await self._ensure_ready()
        return {
            ct.value: [item.to_record() for item in self._cache.get(ct, ())]
            for ct in ContentType
        }

    def _find(self, content_type: ContentType, item_id: str) -> ContentItem | None:
        for item in self._cache.get(content_type, ()):
            if item.id == item_id:
                return item
        return None

    def _find_equivalent(
        self,
        content_type: ContentType,
        item: ContentItem,
        *,
        exclude_id: str | None = None,
    ) -> ContentItem | None:
        french, english = content_key(item), gloss_key(item)
        for other in self._cache.get(content_type, ()):
            if other.is_predefined or other.id == exclude_id:
                continue
            if content_key(other) == french or gloss_key(other) == english:
                return other
        return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add(
        self, content_type: ContentType | str, record: Mapping[str, Any],
    ) -> OperationResult:
        """Normalize and store a new user item."""
        content_type = ContentType.coerce(content_type)
        await self._ensure_ready()
        async with self._write_locks[content_type]:
            return await self._add(content_type, record)

    async def _add(
        self, content_type: ContentType, record: Mapping[str, Any],
    ) -> OperationResult:
        result = normalize(content_type, record)
        if not result.ok:
            return OperationResult.failure(result.error)
        now = utc_now()
        item = dataclasses.replace(
            result.item,
            is_predefined=False,
            created_at=now,
            updated_at=now,
            created_by=self._user_id or result.item.created_by,
        )

        if self._find(content_type, item.id) is not None:
            return _failure(
                ErrorKind.DUPLICATE_CONTENT,
                f"An item with id {item.id!r} already exists",
                field="id", item_id=item.id,
            )
        twin = self._find_equivalent(content_type, item)
        if twin is not None:
            return _failure(
                ErrorKind.DUPLICATE_CONTENT,
                f"Equivalent {content_type.singular} already exists: {describe(twin)}",
                item_id=twin.id,
            )
        if self._degraded:
            return self._unavailable("add", item.id)

        try:
            await self._engine.add(content_type.value, item.to_record())
        except DuplicateRecordError:
            return _failure(
                ErrorKind.DUPLICATE_CONTENT,
                f"An item with id {item.id!r} already exists",
                field="id", item_id=item.id,
            )
        except _ENGINE_ERRORS as e:
            logger.error("Failed to add %s %s: %s", content_type.singular, item.id, e)
            return self._unavailable("add", item.id)

        self._cache.setdefault(content_type, []).append(item)
        logger.debug("Added %s %s", content_type.singular, describe(item))
        return OperationResult.success(item)

    async def update(
        self,
        content_type: ContentType | str,
        item_id: str,
        patch: Mapping[str, Any],
    ) -> OperationResult:
        """Merge ``patch`` over a user item and write it through."""
        content_type = ContentType.coerce(content_type)
        await self._ensure_ready()
        async with self._write_locks[content_type]:
            return await self._update(content_type, item_id, patch)

    async def _update(
        self,
        content_type: ContentType,
        item_id: str,
        patch: Mapping[str, Any],
    ) -> OperationResult:
        existing = self._find(content_type, item_id)
        rejected = self._check_mutable(content_type, item_id, existing)
        if rejected is not None:
            return rejected

        changes = as_record(patch)
        if "id" in changes and changes["id"] != item_id:
            return _failure(
                ErrorKind.VALIDATION_FAILURE, "An item id cannot be changed",
                field="id", item_id=item_id,
            )
        if changes.get("isPredefined"):
            return _failure(
                ErrorKind.VALIDATION_FAILURE,
                "User content cannot be marked predefined",
                field="isPredefined", item_id=item_id,
            )

        merged = {**existing.to_record(), **changes}
        if content_type is ContentType.VERBS and "infinitive" in changes \
                and "french" not in changes:
            merged["french"] = [changes["infinitive"]]
        merged.update(
            id=item_id,
            isPredefined=False,
            createdAt=existing.created_at,
            createdBy=existing.created_by,
            updatedAt=utc_now(),
        )
        result = normalize(content_type, merged)
        if not result.ok:
            return OperationResult.failure(result.error)
        item = result.item

        twin = self._find_equivalent(content_type, item, exclude_id=item_id)
        if twin is not None:
            return _failure(
                ErrorKind.DUPLICATE_CONTENT,
                f"Equivalent {content_type.singular} already exists: {describe(twin)}",
                item_id=twin.id,
            )
        if self._degraded:
            return self._unavailable("update", item_id)

        try:
            await self._engine.update(content_type.value, item.to_record())
        except _ENGINE_ERRORS as e:
            logger.error("Failed to update %s %s: %s", content_type.singular, item_id, e)
            return self._unavailable("update", item_id)

        items = self._cache.setdefault(content_type, [])
        for index, cached in enumerate(items):
            if cached.id == item_id:
                items[index] = item
                break
        else:
            items.append(item)
        logger.debug("Updated %s %s", content_type.singular, describe(item))
        return OperationResult.success(item)

    async def delete(
        self, content_type: ContentType | str, item_id: str,
    ) -> OperationResult:
        """Remove a user item from the store, then from the cache."""
        content_type = ContentType.coerce(content_type)
        await self._ensure_ready()
        async with self._write_locks[content_type]:
            return await self._delete(content_type, item_id)

    async def _delete(self, content_type: ContentType, item_id: str) -> OperationResult:
        existing = self._find(content_type, item_id)
        rejected = self._check_mutable(content_type, item_id, existing)
        if rejected is not None:
            return rejected
        if self._degraded:
            return self._unavailable("delete", item_id)

        try:
            await self._engine.delete(content_type.value, item_id)
        except _ENGINE_ERRORS as e:
            logger.error("Failed to delete %s %s: %s", content_type.singular, item_id, e)
            return self._unavailable("delete", item_id)

        self._cache[content_type] = [
            item for item in self._cache.get(content_type, ()) if item.id != item_id
        ]
        logger.debug("Deleted %s %s", content_type.singular, item_id)
        return OperationResult.success(existing)

    def _check_mutable(
        self,
        content_type: ContentType,
        item_id: str,
        existing: ContentItem | None,
    ) -> OperationResult | None:
        if existing is None:
            return _failure(
                ErrorKind.NOT_FOUND,
                f"{content_type.singular.capitalize()} not found: {item_id!r}",
                item_id=item_id,
            )
        if existing.is_predefined:
            return _failure(
                ErrorKind.IMMUTABLE_PREDEFINED,
                f"Predefined {content_type.singular} {item_id!r} cannot be modified",
                item_id=item_id,
            )
        return None

    def _unavailable(self, operation: str, item_id: str | None) -> OperationResult:
        return _failure(
            ErrorKind.ENGINE_UNAVAILABLE,
            f"Content store unavailable; {operation} was not saved",
            item_id=item_id,
        )

    # ------------------------------------------------------------------
    # Bulk import
    # ------------------------------------------------------------------

    async def bulk_import(self, bundle: Mapping[str, Any]) -> ImportReport:
        """Import records from a JSON bundle (or its ``data`` section).

        Records whose id is already present are skipped; invalid records
        are counted as errors. Each collection is written in a single
        engine transaction and mirrored in the cache afterwards.
        """
        data = bundle.get("data") if isinstance(bundle.get("data"), Mapping) else bundle
        await self._ensure_ready()
        report = ImportReport()

        for content_type in ContentType:
            raw_records = data.get(content_type.value)
            if not isinstance(raw_records, list):
                continue
            async with self._write_locks[content_type]:
                await self._import_records(
                    content_type, raw_records, report.counts[content_type],
                )

        total = report.total
        logger.info(
            "Import finished: %d added, %d skipped, %d errors",
            total.added, total.skipped, total.errors,
        )
        return report

    async def _import_records(
        self,
        content_type: ContentType,
        raw_records: list[Any],
        counts: ImportCounts,
    ) -> None:
        if self._degraded:
            counts.errors += len(raw_records)
            return

        known_ids = {item.id for item in self._cache.get(content_type, ())}
        batch: list[ContentItem] = []
        now = utc_now()
        for raw in raw_records:
            result = normalize(content_type, raw)
            if not result.ok:
                logger.warning(
                    "Skipping invalid imported %s: %s",
                    content_type.singular, result.error.message,
                )
                counts.errors += 1
                continue
            item = result.item
            if item.id in known_ids:
                counts.skipped += 1
                continue
            if item.created_at is None:
                item = dataclasses.replace(item, created_at=now, updated_at=now)
            known_ids.add(item.id)
            batch.append(item)

        if not batch:
            return
        try:
            await self._engine.bulk_add(
                content_type.value, [item.to_record() for item in batch],
            )
        except (DuplicateRecordError, *_ENGINE_ERRORS) as e:
            logger.error("Bulk import of %s failed: %s", content_type.value, e)
            counts.errors += len(batch)
            return
        self._cache.setdefault(content_type, []).extend(batch)
        counts.added += len(batch)
