"""Seen/unseen content rotation per (user, content type)."""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from corpus_sync.config import Settings
from corpus_sync.engine import PersistenceEngine
from corpus_sync.exceptions import EngineUnavailableError, StorageCorruptionError
from corpus_sync.models import (
    ContentError,
    ContentItem,
    ContentType,
    ErrorKind,
    OperationResult,
    RotationState,
    RotationStats,
)

if TYPE_CHECKING:
    from corpus_sync.synchronizer import ContentSynchronizer

logger = logging.getLogger(__name__)

STATE_COLLECTION = "rotationState"

_Key = tuple[str, ContentType]


def state_id(user_id: str, content_type: ContentType) -> str:
    """Record id of the persisted state for one user and content type."""
    return f"{user_id}:{content_type.value}"


class RotationEngine:
    """Serves every item of a collection once before any item repeats.

    ``get_next`` hands out a random unseen item and remembers it as
    ``current``. The next ``get_next`` confirms that pending item as
    seen before drawing again; ``mark_current_as_seen`` confirms it
    explicitly. When the unseen pool runs dry a new cycle starts over
    the seen items.

    With a synchronizer attached, every ``get_next`` draws from the
    synchronizer's current content: deleted items leave the rotation
    and new items join the unseen pool.

    Only ``seenIds`` and ``current`` are persisted; the unseen pool is
    recomputed from the full collection on ``initialize``. Methods
    called without ``user_id`` act for ``Settings.default_user``.
    """

    def __init__(
        self,
        engine: PersistenceEngine,
        *,
        synchronizer: ContentSynchronizer | None = None,
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._engine = engine
        self._synchronizer = synchronizer
        self._default_user = (settings or Settings()).default_user
        self._rng = rng or random.Random()
        self._states: dict[_Key, RotationState] = {}
        self._items: dict[_Key, dict[str, ContentItem]] = {}

    @property
    def default_user(self) -> str:
        return self._default_user

    def _key(self, content_type: ContentType | str, user_id: str | None) -> _Key:
        return (user_id or self._default_user, ContentType.coerce(content_type))

    def is_initialized(
        self, content_type: ContentType | str, user_id: str | None = None,
    ) -> bool:
        return self._key(content_type, user_id) in self._states

    async def initialize(
        self,
        content_type: ContentType | str,
        all_items: Iterable[ContentItem],
        user_id: str | None = None,
    ) -> None:
        """Restore or start the rotation over ``all_items``."""
        key = self._key(content_type, user_id)
        user_id, content_type = key
        items = list(all_items)
        by_id = {item.id: item for item in items}

        saved = await self._load_state(key)
        if saved is not None:
            # Ids that are no longer in the collection are dropped
            seen = [i for i in dict.fromkeys(saved["seenIds"]) if i in by_id]
            current = saved["current"] if saved["current"] in by_id else None
            seen_set = set(seen)
            state = RotationState(
                seen_ids=seen,
                unseen_pool=[item for item in items if item.id not in seen_set],
                current=current,
            )
            logger.info(
                "Restored %s rotation for %s: %d seen, %d unseen",
                content_type.value, user_id, len(state.seen_ids), len(state.unseen_pool),
            )
        else:
            state = RotationState(unseen_pool=items)
            logger.info(
                "Started %s rotation for %s with %d items",
                content_type.value, user_id, len(items),
            )

        self._states[key] = state
        self._items[key] = by_id
        await self._save_state(key)

    async def refresh(
        self, content_type: ContentType | str, user_id: str | None = None,
    ) -> None:
        """Re-initialize from the attached synchronizer's current content."""
        user_id, content_type = self._key(content_type, user_id)
        if self._synchronizer is None:
            raise RuntimeError("No synchronizer attached to this rotation engine")
        items = await self._synchronizer.get_all(content_type)
        await self.initialize(content_type, items, user_id)

    async def get_next(
        self, content_type: ContentType | str, user_id: str | None = None,
    ) -> OperationResult:
        """Draw the next unseen item; an empty collection yields ``empty-pool``."""
        key = self._key(content_type, user_id)
        user_id, content_type = key
        if self._synchronizer is not None:
            items = await self._synchronizer.get_all(content_type)
            if key in self._states:
                self._follow(key, items)
            else:
                await self.initialize(content_type, items, user_id)
        elif key not in self._states:
            return self._not_initialized(content_type, user_id)

        state = self._states[key]
        by_id = self._items[key]
        if not by_id:
            return OperationResult.failure(ContentError(
                kind=ErrorKind.EMPTY_POOL,
                message=f"No {content_type.value} available",
            ))

        self._confirm_current(state)

        if not state.unseen_pool:
            logger.info(
                "All %s seen by %s, starting a new cycle", content_type.value, user_id,
            )
            state.unseen_pool = [by_id[i] for i in state.seen_ids if i in by_id]
            state.seen_ids = []
            if not state.unseen_pool:
                state.unseen_pool = list(by_id.values())

        index = self._rng.randrange(len(state.unseen_pool))
        item = state.unseen_pool.pop(index)
        state.current = item.id
        await self._save_state(key)
        logger.debug("Next %s for %s: %s", content_type.singular, user_id, item.id)
        return OperationResult.success(item)

    async def mark_current_as_seen(
        self, content_type: ContentType | str, user_id: str | None = None,
    ) -> OperationResult:
        """Confirm the pending ``current`` item as seen."""
        key = self._key(content_type, user_id)
        state = self._states.get(key)
        if state is None:
            return self._not_initialized(key[1], key[0])
        if state.current is not None and state.current not in state.seen_ids:
            state.seen_ids.append(state.current)
            await self._save_state(key)
        return OperationResult.success(state.current)

    async def reset(
        self,
        content_type: ContentType | str,
        all_items: Iterable[ContentItem],
        user_id: str | None = None,
    ) -> None:
        """Clear all progress and start a fresh cycle over ``all_items``."""
        key = self._key(content_type, user_id)
        items = list(all_items)
        self._states[key] = RotationState(unseen_pool=items)
        self._items[key] = {item.id: item for item in items}
        logger.info("Reset %s rotation for %s", key[1].value, key[0])
        await self._save_state(key)

    def stats(
        self, content_type: ContentType | str, user_id: str | None = None,
    ) -> RotationStats:
        key = self._key(content_type, user_id)
        state = self._states.get(key)
        if state is None:
            return RotationStats(seen=0, unseen=0, total=0)
        return RotationStats(
            seen=len(state.seen_ids),
            unseen=len(state.unseen_pool),
            total=len(self._items[key]),
        )

    def state(
        self, content_type: ContentType | str, user_id: str | None = None,
    ) -> RotationState | None:
        """A copy of the in-memory state, for inspection."""
        state = self._states.get(self._key(content_type, user_id))
        if state is None:
            return None
        return RotationState(
            seen_ids=list(state.seen_ids),
            unseen_pool=list(state.unseen_pool),
            current=state.current,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _follow(self, key: _Key, items: list[ContentItem]) -> None:
        """Bring a live state in line with the collection's current items."""
        state = self._states[key]
        known = self._items[key]
        by_id = {item.id: item for item in items}

        state.seen_ids = [i for i in state.seen_ids if i in by_id]
        if state.current not in by_id:
            state.current = None
        seen = set(state.seen_ids)
        state.unseen_pool = [
            by_id[item.id] for item in state.unseen_pool if item.id in by_id
        ]
        added = [
            item for item in items
            if item.id not in known and item.id not in seen
        ]
        state.unseen_pool.extend(added)
        if added or len(by_id) != len(known):
            logger.debug(
                "%s rotation for %s now covers %d items",
                key[1].value, key[0], len(by_id),
            )
        self._items[key] = by_id

    @staticmethod
    def _confirm_current(state: RotationState) -> None:
        current = state.current
        if current is None or current in state.seen_ids:
            return
        state.seen_ids.append(current)
        state.unseen_pool = [item for item in state.unseen_pool if item.id != current]

    @staticmethod
    def _not_initialized(content_type: ContentType, user_id: str) -> OperationResult:
        return OperationResult.failure(ContentError(
            kind=ErrorKind.NOT_FOUND,
            message=f"No {content_type.value} rotation initialized for {user_id!r}",
        ))

    async def _load_state(self, key: _Key) -> dict[str, Any] | None:
        user_id, content_type = key
        try:
            record = await self._engine.get_by_id(
                STATE_COLLECTION, state_id(user_id, content_type),
            )
        except (EngineUnavailableError, StorageCorruptionError) as e:
            logger.error("Error loading %s rotation state: %s", content_type.value, e)
            return None
        if record is None:
            return None
        seen = record.get("seenIds")
        current = record.get("current")
        if not isinstance(seen, list) or not all(isinstance(i, str) for i in seen) \
                or not (current is None or isinstance(current, str)):
            logger.warning(
                "Ignoring malformed %s rotation state for %s", content_type.value, user_id,
            )
            return None
        return {"seenIds": seen, "current": current}

    async def _save_state(self, key: _Key) -> None:
        user_id, content_type = key
        record = {
            "id": state_id(user_id, content_type),
            "userId": user_id,
            "contentType": content_type.value,
            **self._states[key].to_record(),
        }
        try:
            await self._engine.update(STATE_COLLECTION, record)
        except (EngineUnavailableError, StorageCorruptionError) as e:
            logger.error("Error saving %s rotation state: %s", content_type.value, e)
