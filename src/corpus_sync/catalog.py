"""Shipped predefined catalog and the built-in emergency dataset."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from corpus_sync.config import load_yaml_file
from corpus_sync.exceptions import ConfigError, DataImportError
from corpus_sync.models import (
    ContentItem,
    ContentType,
    NumberItem,
    Sentence,
    Word,
)
from corpus_sync.normalizer import normalize

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "predefined.yaml"


@dataclass(frozen=True)
class PredefinedCatalog:
    """The system-shipped corpus, keyed by content type."""

    items: Mapping[ContentType, tuple[ContentItem, ...]] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> PredefinedCatalog:
        return cls({ct: () for ct in ContentType})

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PredefinedCatalog:
        """Build a catalog from ``{collection: [record, ...]}``.

        Every record is normalized and flagged predefined; a record that
        fails validation or lacks an id makes the whole catalog invalid.
        """
        items: dict[ContentType, tuple[ContentItem, ...]] = {}
        for content_type in ContentType:
            raw_records = data.get(content_type.value) or []
            if not isinstance(raw_records, list):
                raise DataImportError(
                    f"Catalog section {content_type.value!r} must be a list"
                )
            parsed: list[ContentItem] = []
            seen: set[str] = set()
            for raw in raw_records:
                if not isinstance(raw, Mapping) or not raw.get("id"):
                    raise DataImportError(
                        f"Catalog {content_type.value} record needs a stable id: {raw!r}"
                    )
                result = normalize(content_type, {**raw, "isPredefined": True})
                if not result.ok:
                    raise DataImportError(
                        f"Invalid catalog {content_type.singular} "
                        f"{raw.get('id')!r}: {result.error.message}"
                    )
                if result.item.id in seen:
                    raise DataImportError(
                        f"Duplicate catalog id {result.item.id!r} in {content_type.value}"
                    )
                seen.add(result.item.id)
                parsed.append(result.item)
            items[content_type] = tuple(parsed)
        return cls(items)

    def get(self, content_type: ContentType) -> tuple[ContentItem, ...]:
        return self.items.get(content_type, ())

    def ids(self, content_type: ContentType) -> frozenset[str]:
        return frozenset(item.id for item in self.get(content_type))

    def records(self, content_type: ContentType) -> list[dict[str, Any]]:
        return [item.to_record() for item in self.get(content_type)]

    def __len__(self) -> int:
        return sum(len(v) for v in self.items.values())


def load_catalog(path: str | Path | None = None) -> PredefinedCatalog:
    """Load the predefined catalog from YAML (the packaged one by default)."""
    source = Path(path) if path is not None else DEFAULT_CATALOG_PATH
    if not source.exists():
        raise FileNotFoundError(f"File not found: {source}")
    try:
        data = load_yaml_file(source)
    except ConfigError as e:
        raise DataImportError(f"Invalid catalog file {source}: {e}") from e
    catalog = PredefinedCatalog.from_mapping(data)
    logger.debug("Loaded %d predefined items from %s", len(catalog), source)
    return catalog


# ---------------------------------------------------------------------------
# Emergency dataset: served only when the engine cannot be used at all
# ---------------------------------------------------------------------------

EMERGENCY_DATASET: Mapping[ContentType, tuple[ContentItem, ...]] = {
    ContentType.WORDS: (
        Word(id="fallback-w1", english="hello", french=("bonjour",),
             is_predefined=True, hint="Greeting",
             explanation="Basic greeting in French"),
        Word(id="fallback-w2", english="thank you", french=("merci",),
             is_predefined=True, hint="Expressing gratitude",
             explanation="Basic way to say thanks"),
        Word(id="fallback-w3", english="yes", french=("oui",),
             is_predefined=True, hint="Affirmative",
             explanation="Basic affirmation"),
    ),
    ContentType.VERBS: (),
    ContentType.SENTENCES: (
        Sentence(id="fallback-s1", english="How are you?",
                 french=("Comment allez-vous?",), is_predefined=True,
                 explanation="Formal way to ask how someone is doing"),
        Sentence(id="fallback-s2", english="I am fine",
                 french=("Je vais bien",), is_predefined=True,
                 explanation="Simple response to how are you"),
    ),
    ContentType.NUMBERS: (
        NumberItem(id="fallback-n1", english="1", french=("un",), is_predefined=True),
        NumberItem(id="fallback-n2", english="2", french=("deux",), is_predefined=True),
    ),
}
