from __future__ import annotations

"""Overlapping character-window chunking with separator-aware cuts."""

from supportrag.rag.errors import ConfigurationError
from supportrag.rag.types import Chunk, PlainTextDocument

# Highest priority first; a hard cut is the implicit last resort.
SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", "! ", "? ", "; ", " ")


def validate_window(window_size: int, overlap: int) -> None:
    """Reject window settings that cannot make progress."""
    if window_size <= 0:
        raise ConfigurationError(f"window_size must be positive, got {window_size}")
    if overlap < 0 or overlap >= window_size:
        raise ConfigurationError(
            f"overlap must be in [0, window_size), got overlap={overlap} window_size={window_size}"
        )


def _find_cut(text: str, start: int, window_size: int, overlap: int) -> int:
    """Return the end offset for the window beginning at start."""
    end = start + window_size
    floor = start + max(overlap + 1, window_size // 2)
    for separator in SEPARATORS:
        idx = text.rfind(separator, start, end)
        if idx == -1:
            continue
        cut = idx + len(separator)
        if cut >= floor:
            return cut
    return end


def chunk_text(text: str, window_size: int, overlap: int) -> list[str]:
    """Split text into windows of at most window_size characters.

    Consecutive windows share exactly ``overlap`` characters. Each window is
    cut after the highest-priority separator that still fills at least half
    of it, otherwise hard-cut at ``window_size``. The last window runs to the
    end of the text.
    """
    validate_window(window_size, overlap)
    if not text or not text.strip():
        return []
    length = len(text)
    if length <= window_size:
        return [text]

    chunks: list[str] = []
    start = 0
    while length - start > window_size:
        cut = _find_cut(text, start, window_size, overlap)
        chunks.append(text[start:cut])
        start = cut - overlap
    chunks.append(text[start:])
    return chunks


def stitch_chunks(chunks: list[str], overlap: int) -> str:
    """Rebuild the original text from chunk_text output."""
    if not chunks:
        return ""
    if len(chunks) == 1:
        return chunks[0]
    return chunks[0] + "".join(chunk[overlap:] for chunk in chunks[1:])


def chunk_document(document: PlainTextDocument, window_size: int, overlap: int) -> list[Chunk]:
    """Chunk a plain-text document into indexed Chunk records."""
    pieces = chunk_text(document.plain_text, window_size, overlap)
    if not pieces:
        return []
    base_metadata = document.document.metadata()
    total = len(pieces)
    chunks: list[Chunk] = []
    for idx, piece in enumerate(pieces):
        metadata = dict(base_metadata)
        metadata["chunk_count"] = total
        chunks.append(
            Chunk(
                source_id=document.doc_id,
                chunk_index=idx,
                text=piece,
                source_metadata=metadata,
            )
        )
    return chunks
