"""Validation and coercion of raw records into content items."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from corpus_sync.models import (
    ITEM_CLASSES,
    PRONOUNS,
    ContentError,
    ContentItem,
    ContentType,
    ErrorKind,
    NormalizeResult,
    Verb,
)

# snake_case aliases accepted alongside the stored camelCase keys
_KEY_ALIASES = {
    "is_predefined": "isPredefined",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "created_by": "createdBy",
}

# Older verb tables keyed the third persons with both genders
_PRONOUN_ALIASES = {
    "il/elle": "il",
    "elle": "il",
    "on": "il",
    "ils/elles": "ils",
    "elles": "ils",
}


def generate_id(content_type: ContentType, index: int | None = None) -> str:
    """Return ``<singular>-<index>`` or a random ``<singular>-u<hex>`` id."""
    if index is not None:
        return f"{content_type.singular}-{index}"
    return f"{content_type.singular}-u{uuid.uuid4().hex[:12]}"


def _fail(field: str, message: str, item_id: str | None = None) -> NormalizeResult:
    return NormalizeResult(error=ContentError(
        kind=ErrorKind.VALIDATION_FAILURE,
        message=message,
        field=field,
        item_id=item_id,
    ))


def _text(value: Any) -> str | None:
    """Strip a string value; anything else (or blank) becomes None."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _variants(value: Any) -> tuple[str, ...]:
    """Coerce a scalar or sequence of strings into a tuple of variants."""
    if isinstance(value, str):
        value = [value]
    elif not isinstance(value, (list, tuple)):
        return ()
    return tuple(v for v in (_text(x) for x in value) if v is not None)


def _conjugations(value: Any) -> Mapping[str, tuple[str, ...]] | None:
    if value is None:
        value = {}
    if not isinstance(value, Mapping):
        return None
    table: dict[str, tuple[str, ...]] = {}
    for key, forms in value.items():
        pronoun = _PRONOUN_ALIASES.get(str(key).strip().lower(), str(key).strip().lower())
        if pronoun in PRONOUNS and pronoun not in table:
            table[pronoun] = _variants(forms)
    return MappingProxyType({
        pronoun: table.get(pronoun) or ("",) for pronoun in PRONOUNS
    })


def as_record(raw: Mapping[str, Any] | ContentItem) -> dict[str, Any]:
    """Copy ``raw`` into a plain record dict with camelCase keys."""
    if isinstance(raw, ContentItem):
        return raw.to_record()
    record = dict(raw)
    for alias, key in _KEY_ALIASES.items():
        if alias in record and key not in record:
            record[key] = record.pop(alias)
    return record


def normalize(
    content_type: ContentType | str,
    raw: Mapping[str, Any] | ContentItem,
    *,
    index: int | None = None,
) -> NormalizeResult:
    """Validate ``raw`` and build the content item for ``content_type``.

    Invalid input is reported through ``NormalizeResult.error`` with the
    offending field name; this function does not raise for bad data.
    """
    content_type = ContentType.coerce(content_type)
    if not isinstance(raw, (Mapping, ContentItem)):
        return _fail("record", f"Expected a mapping, got {type(raw).__name__}")
    record = as_record(raw)

    item_id = _text(record.get("id"))
    if item_id is None and isinstance(record.get("id"), int):
        item_id = str(record["id"])

    english = record.get("english")
    if content_type is ContentType.NUMBERS and isinstance(english, (int, float)) \
            and not isinstance(english, bool):
        english = str(english)
    english = _text(english)
    if english is None:
        return _fail("english", "Missing or blank 'english' gloss", item_id)

    french = _variants(record.get("french"))
    fields: dict[str, Any] = {}

    if content_type is ContentType.VERBS:
        infinitive = _text(record.get("infinitive")) or (french[0] if french else None)
        if infinitive is None:
            return _fail("infinitive", "Missing verb 'infinitive'", item_id)
        if not french:
            french = (infinitive,)
        conjugations = _conjugations(record.get("conjugations"))
        if conjugations is None:
            return _fail(
                "conjugations", "'conjugations' must map pronouns to forms", item_id,
            )
        group = record.get("group")
        if isinstance(group, int) and not isinstance(group, bool):
            group = str(group)
        fields.update(
            infinitive=infinitive,
            group=_text(group),
            tense=_text(record.get("tense")) or "present",
            conjugations=conjugations,
        )
    elif content_type is ContentType.WORDS:
        category = _text(record.get("category"))
        if category is None:
            legacy = record.get("categories")
            if isinstance(legacy, (list, tuple)) and legacy:
                category = _text(legacy[0])
        fields["category"] = category or "general"
    elif content_type is ContentType.NUMBERS:
        fields["category"] = "number"

    if not french:
        return _fail("french", "Missing or empty 'french' translation", item_id)

    cls = ITEM_CLASSES[content_type]
    item = cls(
        id=item_id or generate_id(content_type, index),
        english=english,
        french=french,
        is_predefined=_flag(record.get("isPredefined")),
        created_at=_text(record.get("createdAt")),
        updated_at=_text(record.get("updatedAt")),
        created_by=_text(record.get("createdBy")) or "anonymous",
        hint=_text(record.get("hint")),
        explanation=_text(record.get("explanation")),
        **fields,
    )
    return NormalizeResult(item=item)


def content_key(item: ContentItem) -> str:
    """Case-insensitive first French variant, used by the duplicate rule."""
    return item.french[0].strip().lower()


def gloss_key(item: ContentItem) -> str:
    """Case-insensitive English gloss, used by the duplicate rule."""
    return item.english.strip().lower()


def is_equivalent(a: ContentItem, b: ContentItem) -> bool:
    """True when two items share either comparison key."""
    return content_key(a) == content_key(b) or gloss_key(a) == gloss_key(b)


def describe(item: ContentItem) -> str:
    """Short human label for log lines."""
    if isinstance(item, Verb):
        return f"{item.id} ({item.infinitive})"
    return f"{item.id} ({item.english})"
