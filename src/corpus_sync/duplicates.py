"""Duplicate detection over a content collection."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING

from corpus_sync.models import (
    ContentItem,
    ContentType,
    DuplicateGroup,
    DuplicateReport,
    MatchKind,
    Verb,
)

if TYPE_CHECKING:
    from corpus_sync.synchronizer import ContentSynchronizer

logger = logging.getLogger(__name__)


def variant_key(item: ContentItem) -> str:
    """Sorted, lowercased French variants joined with ``|``."""
    return "|".join(sorted(v.strip().lower() for v in item.french))


def _gloss(item: ContentItem) -> str:
    return item.english.strip().lower()


def _infinitive(item: ContentItem) -> str:
    if isinstance(item, Verb):
        return item.infinitive.strip().lower()
    return ""


def _group_by(
    items: Sequence[ContentItem],
    key_fn: Callable[[ContentItem], str],
) -> dict[str, list[ContentItem]]:
    """Bucket items by key, keeping first-appearance order."""
    groups: dict[str, list[ContentItem]] = {}
    for item in items:
        key = key_fn(item)
        if key:
            groups.setdefault(key, []).append(item)
    return groups


def _claim(
    items: Sequence[ContentItem],
    key_fn: Callable[[ContentItem], str],
    matched_by: MatchKind,
    claimed: set[str],
) -> list[DuplicateGroup]:
    """Group unclaimed items; ids in returned groups become claimed."""
    results: list[DuplicateGroup] = []
    for key, group in _group_by(items, key_fn).items():
        remaining = [item for item in group if item.id not in claimed]
        if len(remaining) < 2:
            continue
        results.append(DuplicateGroup(
            key=key, matched_by=matched_by, items=tuple(remaining),
        ))
        claimed.update(item.id for item in remaining)
    return results


def scan(
    items: Iterable[ContentItem],
    *,
    by_content_variant: bool = True,
    by_gloss: bool = True,
    content_type: ContentType | str | None = None,
) -> list[DuplicateGroup]:
    """Find groups of two or more items sharing a content key.

    Passes run in priority order and an item joins at most one group:
    French variants first, then the English gloss, then (for verbs) the
    infinitive.
    """
    items = list(items)
    if not items:
        return []
    if content_type is not None:
        is_verbs = ContentType.coerce(content_type) is ContentType.VERBS
    else:
        is_verbs = all(isinstance(item, Verb) for item in items)

    claimed: set[str] = set()
    groups: list[DuplicateGroup] = []
    if by_content_variant:
        groups.extend(_claim(items, variant_key, MatchKind.CONTENT_VARIANT, claimed))
    if by_gloss:
        groups.extend(_claim(items, _gloss, MatchKind.GLOSS, claimed))
    if is_verbs:
        groups.extend(_claim(items, _infinitive, MatchKind.INFINITIVE, claimed))
    return groups


async def scan_all(
    synchronizer: ContentSynchronizer,
    *,
    by_content_variant: bool = True,
    by_gloss: bool = True,
) -> DuplicateReport:
    """Scan every content collection held by ``synchronizer``."""
    groups: dict[ContentType, list[DuplicateGroup]] = {}
    for content_type in ContentType:
        items = await synchronizer.get_all(content_type)
        groups[content_type] = scan(
            items,
            by_content_variant=by_content_variant,
            by_gloss=by_gloss,
            content_type=content_type,
        )
    report = DuplicateReport(groups=groups)
    logger.info("Duplicate scan found %d groups", report.total)
    return report
