"""Domain model dataclasses and enums for corpus-sync."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ContentType(str, Enum):
    """Content collections served to the learner."""

    WORDS = "words"
    VERBS = "verbs"
    SENTENCES = "sentences"
    NUMBERS = "numbers"

    @property
    def singular(self) -> str:
        """Singular form used in generated ids (``word``, ``verb``...)."""
        return self.value[:-1]

    @classmethod
    def coerce(cls, value: ContentType | str) -> ContentType:
        """Accept an enum member, a collection name or its singular."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if value in (member.value, member.singular):
                return member
        raise ValueError(f"Unknown content type: {value!r}")


class ErrorKind(str, Enum):
    """Business-rule outcomes reported through result values."""

    ENGINE_UNAVAILABLE = "engine-unavailable"
    VALIDATION_FAILURE = "validation-failure"
    DUPLICATE_CONTENT = "duplicate-content"
    NOT_FOUND = "not-found"
    IMMUTABLE_PREDEFINED = "immutable-predefined"
    EMPTY_POOL = "empty-pool"


class MatchKind(str, Enum):
    """Which key a duplicate group was formed on."""

    CONTENT_VARIANT = "content-variant"
    GLOSS = "gloss"
    INFINITIVE = "infinitive"


# Pronoun keys every verb conjugation table carries
PRONOUNS: tuple[str, ...] = ("je", "tu", "il", "nous", "vous", "ils")


# ---------------------------------------------------------------------------
# Content items
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True, kw_only=True)
class ContentItem:
    """A normalized corpus item. Use the concrete subclasses."""

    content_type: ClassVar[ContentType]

    id: str
    english: str
    french: tuple[str, ...]
    is_predefined: bool = False
    created_at: str | None = None
    updated_at: str | None = None
    created_by: str = "anonymous"
    hint: str | None = None
    explanation: str | None = None

    def to_record(self) -> dict[str, Any]:
        """Return a fresh plain-dict record in the stored/exported format."""
        record: dict[str, Any] = {
            "id": self.id,
            "english": self.english,
            "french": list(self.french),
        }
        record.update(self._type_fields())
        if self.hint is not None:
            record["hint"] = self.hint
        if self.explanation is not None:
            record["explanation"] = self.explanation
        record["isPredefined"] = self.is_predefined
        record["createdAt"] = self.created_at
        record["updatedAt"] = self.updated_at
        record["createdBy"] = self.created_by
        return record

    def _type_fields(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True, slots=True, kw_only=True)
class Word(ContentItem):
    """A vocabulary word."""

    content_type: ClassVar[ContentType] = ContentType.WORDS

    category: str = "general"

    def _type_fields(self) -> dict[str, Any]:
        return {"category": self.category}


@dataclass(frozen=True, slots=True, kw_only=True)
class Verb(ContentItem):
    """A verb with its conjugation table for one tense."""

    content_type: ClassVar[ContentType] = ContentType.VERBS

    infinitive: str
    group: str | None = None
    tense: str = "present"
    conjugations: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({}), hash=False,
    )

    def _type_fields(self) -> dict[str, Any]:
        return {
            "infinitive": self.infinitive,
            "group": self.group,
            "tense": self.tense,
            "conjugations": {
                pronoun: list(forms)
                for pronoun, forms in self.conjugations.items()
            },
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class Sentence(ContentItem):
    """A full sentence."""

    content_type: ClassVar[ContentType] = ContentType.SENTENCES


@dataclass(frozen=True, slots=True, kw_only=True)
class NumberItem(ContentItem):
    """A number with its spelled-out French forms."""

    content_type: ClassVar[ContentType] = ContentType.NUMBERS

    category: str = "number"

    def _type_fields(self) -> dict[str, Any]:
        return {"category": self.category}


ITEM_CLASSES: dict[ContentType, type[ContentItem]] = {
    ContentType.WORDS: Word,
    ContentType.VERBS: Verb,
    ContentType.SENTENCES: Sentence,
    ContentType.NUMBERS: NumberItem,
}


# ---------------------------------------------------------------------------
# Result values
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ContentError:
    """A structured business-rule failure."""

    kind: ErrorKind
    message: str
    field: str | None = None
    item_id: str | None = None


@dataclass(frozen=True, slots=True)
class OperationResult:
    """Outcome of a synchronizer, rotation or category operation."""

    ok: bool
    item: Any = None
    error: ContentError | None = None

    @classmethod
    def success(cls, item: Any = None) -> OperationResult:
        return cls(ok=True, item=item)

    @classmethod
    def failure(cls, error: ContentError) -> OperationResult:
        return cls(ok=False, error=error)


@dataclass(frozen=True, slots=True)
class NormalizeResult:
    """Either a normalized item or the validation error that stopped it."""

    item: ContentItem | None = None
    error: ContentError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class ImportCounts:
    """Per-collection tallies of a bulk import."""

    added: int = 0
    skipped: int = 0
    errors: int = 0


@dataclass(slots=True)
class ImportReport:
    """Summary of a bulk import across all content types."""

    counts: dict[ContentType, ImportCounts] = field(
        default_factory=lambda: {ct: ImportCounts() for ct in ContentType}
    )

    @property
    def total(self) -> ImportCounts:
        return ImportCounts(
            added=sum(c.added for c in self.counts.values()),
            skipped=sum(c.skipped for c in self.counts.values()),
            errors=sum(c.errors for c in self.counts.values()),
        )


# ---------------------------------------------------------------------------
# Rotation and duplicates
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class RotationState:
    """Seen/unseen bookkeeping for one (user, content type) pair."""

    seen_ids: list[str] = field(default_factory=list)
    unseen_pool: list[ContentItem] = field(default_factory=list)
    current: str | None = None

    def to_record(self) -> dict[str, Any]:
        """Persisted form; the unseen pool is recomputed on restore."""
        return {"seenIds": list(self.seen_ids), "current": self.current}


@dataclass(frozen=True, slots=True)
class RotationStats:
    """Progress through the current rotation cycle."""

    seen: int
    unseen: int
    total: int


@dataclass(frozen=True, slots=True)
class DuplicateGroup:
    """Two or more items sharing a normalized content key."""

    key: str
    matched_by: MatchKind
    items: tuple[ContentItem, ...]


@dataclass(frozen=True, slots=True)
class DuplicateReport:
    """Duplicate groups for every content type."""

    groups: dict[ContentType, list[DuplicateGroup]]

    @property
    def counts(self) -> dict[ContentType, int]:
        return {ct: len(g) for ct, g in self.groups.items()}

    @property
    def total(self) -> int:
        return sum(self.counts.values())
