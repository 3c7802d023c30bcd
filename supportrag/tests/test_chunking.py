from __future__ import annotations

"""Chunking behavior tests."""

import pytest

from supportrag.loaders.chunking import chunk_document, chunk_text, stitch_chunks
from supportrag.rag.errors import ConfigurationError
from supportrag.rag.types import Document, PlainTextDocument


def _plain(text: str, doc_id: str = "article-1") -> PlainTextDocument:
    document = Document(
        doc_id=doc_id,
        title="February release notes",
        date="2024-02-29",
        permalink="https://support.example.com/feb",
        categories="Releases",
        raw_content=text,
    )
    return PlainTextDocument(document=document, plain_text=text)


def test_hard_cut_windows_share_overlap() -> None:
    text = "a" * 2500

    chunks = chunk_text(text, window_size=1000, overlap=200)

    assert [len(chunk) for chunk in chunks] == [1000, 1000, 900]
    assert chunks[0][-200:] == chunks[1][:200]
    assert chunks[1][-200:] == chunks[2][:200]
    assert stitch_chunks(chunks, 200) == text


def test_paragraph_break_is_preferred_cut() -> None:
    text = "A" * 600 + "\n\n" + "B" * 600

    chunks = chunk_text(text, window_size=1000, overlap=100)

    assert len(chunks) == 2
    assert chunks[0] == "A" * 600 + "\n\n"
    assert stitch_chunks(chunks, 100) == text


def test_separator_too_close_to_start_falls_back_to_hard_cut() -> None:
    text = "A" * 100 + "\n\n" + "B" * 1500

    chunks = chunk_text(text, window_size=1000, overlap=200)

    assert len(chunks[0]) == 1000
    assert stitch_chunks(chunks, 200) == text


def test_word_text_respects_window_and_reconstructs() -> None:
    text = " ".join(f"word{i}" for i in range(600))

    chunks = chunk_text(text, window_size=300, overlap=50)

    assert len(chunks) > 1
    assert all(len(chunk) <= 300 for chunk in chunks)
    for left, right in zip(chunks, chunks[1:]):
        assert left[-50:] == right[:50]
    assert all(chunk.endswith(" ") for chunk in chunks[:-1])
    assert stitch_chunks(chunks, 50) == text


def test_empty_and_whitespace_text_yield_no_chunks() -> None:
    assert chunk_text("", 1000, 200) == []
    assert chunk_text("   \n\n  ", 1000, 200) == []


def test_short_text_is_single_chunk() -> None:
    assert chunk_text("Short article.", 1000, 200) == ["Short article."]


@pytest.mark.parametrize(
    ("window_size", "overlap"),
    [(0, 0), (-5, 0), (100, 100), (100, 150), (100, -1)],
)
def test_invalid_window_settings_raise(window_size: int, overlap: int) -> None:
    with pytest.raises(ConfigurationError):
        chunk_text("some text", window_size, overlap)


def test_chunking_is_deterministic() -> None:
    text = "Paragraph one.\n\n" * 200
    assert chunk_text(text, 500, 80) == chunk_text(text, 500, 80)


def test_chunk_document_indexes_and_copies_metadata() -> None:
    text = "word " * 600

    chunks = chunk_document(_plain(text), window_size=1000, overlap=200)

    assert [chunk.chunk_index for chunk in chunks] == list(range(len(chunks)))
    assert chunks[0].chunk_id == "article-1:0"
    assert chunks[0].source_id == "article-1"
    assert chunks[0].source_metadata["title"] == "February release notes"
    assert chunks[0].source_metadata["chunk_count"] == len(chunks)
    assert stitch_chunks([chunk.text for chunk in chunks], 200) == text


def test_chunk_document_empty_body_has_no_chunks() -> None:
    assert chunk_document(_plain(""), window_size=1000, overlap=200) == []
