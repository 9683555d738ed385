"""JSON bundle and CSV codecs for importing and exporting content."""

from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from corpus_sync.exceptions import DataImportError
from corpus_sync.models import PRONOUNS, ContentType

logger = logging.getLogger(__name__)

BUNDLE_VERSION = "1.0"

# Separator for multi-value CSV cells
MULTI_VALUE_SEPARATOR = "|"

_COMMON_COLUMNS = ["id", "english", "french"]
_TRAILING_COLUMNS = [
    "hint", "explanation", "isPredefined", "createdAt", "updatedAt", "createdBy",
]
_TYPE_COLUMNS: dict[ContentType, list[str]] = {
    ContentType.WORDS: ["category"],
    ContentType.VERBS: ["infinitive", "group", "tense"]
    + [f"conj_{p}" for p in PRONOUNS],
    ContentType.SENTENCES: [],
    ContentType.NUMBERS: ["category"],
}


# ---------------------------------------------------------------------------
# JSON bundle
# ---------------------------------------------------------------------------

def build_bundle(
    data: Mapping[str, list[dict[str, Any]]],
    *,
    exported_at: str | None = None,
) -> dict[str, Any]:
    """Wrap per-collection records in the ``{metadata, data}`` bundle."""
    payload = {ct.value: list(data.get(ct.value, [])) for ct in ContentType}
    counts = {name: len(records) for name, records in payload.items()}
    return {
        "metadata": {
            "exportDate": exported_at
            or datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "contentCounts": counts,
            "totalItems": sum(counts.values()),
            "version": BUNDLE_VERSION,
        },
        "data": payload,
    }


def dump_bundle(
    bundle: Mapping[str, Any],
    destination: str | Path | None = None,
) -> str:
    """Serialize a bundle to JSON text, writing it to ``destination`` if given."""
    text = json.dumps(bundle, indent=2, ensure_ascii=False)
    if destination is not None:
        Path(destination).write_text(text, encoding="utf-8")
    return text


def load_bundle(source: str | Path) -> dict[str, Any]:
    """Parse a bundle from a JSON file path or JSON text.

    Both the wrapped ``{metadata, data}`` form and a bare
    ``{words: [...], ...}`` mapping are accepted; the bare form is
    returned wrapped with empty metadata.
    """
    if isinstance(source, Path) or (
        isinstance(source, str) and not source.lstrip().startswith(("{", "["))
    ):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        text = path.read_text(encoding="utf-8")
    else:
        text = source

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise DataImportError(f"Failed to parse JSON bundle: {e}") from e
    if not isinstance(parsed, dict):
        raise DataImportError("Bundle root must be a JSON object")

    if isinstance(parsed.get("data"), dict):
        data = parsed["data"]
        metadata = parsed.get("metadata") or {}
    else:
        data = parsed
        metadata = {}

    for ct in ContentType:
        section = data.get(ct.value)
        if section is not None and not isinstance(section, list):
            raise DataImportError(f"Bundle section {ct.value!r} must be a list")

    return {"metadata": metadata, "data": data}


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def csv_columns(content_type: ContentType | str) -> list[str]:
    content_type = ContentType.coerce(content_type)
    return _COMMON_COLUMNS + _TYPE_COLUMNS[content_type] + _TRAILING_COLUMNS


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return MULTI_VALUE_SEPARATOR.join(str(v) for v in value)
    return str(value)


def _split(cell: str) -> list[str]:
    return [part.strip() for part in cell.split(MULTI_VALUE_SEPARATOR) if part.strip()]


def records_to_csv(
    content_type: ContentType | str,
    records: Iterable[Mapping[str, Any]],
) -> str:
    """Render records as CSV text with pipe-delimited multi-value cells."""
    content_type = ContentType.coerce(content_type)
    columns = csv_columns(content_type)
    out = io.StringIO()
    writer = csv.DictWriter(out, fieldnames=columns, lineterminator="\n")
    writer.writeheader()
    for record in records:
        row = {col: _cell(record.get(col)) for col in columns if not col.startswith("conj_")}
        if content_type is ContentType.VERBS:
            conjugations = record.get("conjugations") or {}
            for pronoun in PRONOUNS:
                row[f"conj_{pronoun}"] = _cell(conjugations.get(pronoun))
        writer.writerow(row)
    return out.getvalue()


def csv_to_records(
    content_type: ContentType | str,
    text: str,
) -> list[dict[str, Any]]:
    """Parse CSV text into raw records ready for normalization.

    Empty cells are omitted so that normalization applies its defaults.
    """
    content_type = ContentType.coerce(content_type)
    reader = csv.DictReader(io.StringIO(text))
    if reader.fieldnames is None:
        return []
    missing = {"english"} - set(reader.fieldnames)
    if missing:
        raise DataImportError(f"CSV is missing column(s): {', '.join(sorted(missing))}")

    records: list[dict[str, Any]] = []
    for line_no, row in enumerate(reader, start=2):
        if None in row:
            raise DataImportError(f"Line {line_no}: more cells than columns")
        record: dict[str, Any] = {}
        conjugations: dict[str, list[str]] = {}
        for column, cell in row.items():
            cell = (cell or "").strip()
            if not cell:
                continue
            if column == "french":
                record["french"] = _split(cell)
            elif column.startswith("conj_"):
                conjugations[column[len("conj_"):]] = _split(cell)
            elif column == "isPredefined":
                record["isPredefined"] = cell.lower() == "true"
            else:
                record[column] = cell
        if content_type is ContentType.VERBS:
            record["conjugations"] = conjugations
        records.append(record)
    logger.debug("Parsed %d %s from CSV", len(records), content_type.value)
    return records
