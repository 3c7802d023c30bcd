from __future__ import annotations

"""CSV loader for the support-article export."""

import csv
import hashlib
from pathlib import Path
from typing import Iterable

from supportrag.rag.types import Document


class DocumentSourceError(RuntimeError):
    """Raised when the article export cannot be read."""
    pass


REQUIRED_COLUMNS = ("Title", "Content")


def _hash_text(text_value: str) -> str:
    return hashlib.sha256(text_value.encode("utf-8")).hexdigest()[:16]


def _resolve_doc_id(row: dict[str, str], row_number: int) -> str:
    """Use the exported id, else a stable hash of the permalink or title."""
    doc_id = (row.get("id") or "").strip()
    if doc_id:
        return doc_id
    permalink = (row.get("Permalink") or "").strip()
    if permalink:
        return _hash_text(permalink)
    title = (row.get("Title") or "").strip()
    return _hash_text(f"{title}#{row_number}")


def parse_articles(rows: Iterable[dict[str, str]]) -> list[Document]:
    """Turn CSV rows into Document records, skipping blank rows."""
    documents: list[Document] = []
    for row_number, row in enumerate(rows, start=1):
        if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
            continue
        documents.append(
            Document(
                doc_id=_resolve_doc_id(row, row_number),
                title=(row.get("Title") or "").strip(),
                date=(row.get("Date") or "").strip(),
                permalink=(row.get("Permalink") or "").strip(),
                categories=(row.get("Categories") or "").strip(),
                raw_content=row.get("Content") or "",
            )
        )
    return documents


def load_support_articles(path: str | Path) -> list[Document]:
    """Load the article export (header row required) into Documents."""
    csv_path = Path(path)
    try:
        with csv_path.open("r", encoding="utf-8-sig", newline="") as handle:
            reader = csv.DictReader(handle)
            columns = reader.fieldnames or []
            missing = [name for name in REQUIRED_COLUMNS if name not in columns]
            if missing:
                raise DocumentSourceError(
                    f"{csv_path} is missing required columns: {', '.join(missing)}"
                )
            return parse_articles(reader)
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise DocumentSourceError(f"Failed to read {csv_path}: {exc}") from exc
