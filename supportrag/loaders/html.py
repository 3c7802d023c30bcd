from __future__ import annotations

"""HTML to plain text conversion for article bodies."""

import re
from html.parser import HTMLParser

from supportrag.rag.types import Document, PlainTextDocument

_BLOCK_TAGS = {
    "p",
    "div",
    "section",
    "article",
    "header",
    "footer",
    "blockquote",
    "pre",
    "table",
    "ul",
    "ol",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
}
_LINE_TAGS = {"br", "li", "tr", "hr"}
_SKIP_TAGS = {"script", "style", "head", "title"}
_INLINE_WS_RE = re.compile(r"[ \t\r\n\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n[ \t]*\n(?:[ \t]*\n)+")
_TRAILING_WS_RE = re.compile(r"[ \t]+\n")


class _TextExtractor(HTMLParser):
    """Collect text content; links are unwrapped and images dropped."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._skip_depth = 0
        self._pre_depth = 0

    def handle_starttag(self, tag: str, attrs) -> None:
        if tag in _SKIP_TAGS:
            self._skip_depth += 1
            return
        if tag == "pre":
            self._pre_depth += 1
        if tag in _BLOCK_TAGS:
            self.parts.append("\n\n")
        elif tag in _LINE_TAGS:
            self.parts.append("\n")

    def handle_startendtag(self, tag: str, attrs) -> None:
        if tag in _LINE_TAGS:
            self.parts.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in _SKIP_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
            return
        if tag == "pre":
            self._pre_depth = max(0, self._pre_depth - 1)
        if tag in _BLOCK_TAGS:
            self.parts.append("\n\n")

    def handle_data(self, data: str) -> None:
        if self._skip_depth:
            return
        if self._pre_depth:
            self.parts.append(data)
            return
        self.parts.append(_INLINE_WS_RE.sub(" ", data))


def html_to_text(html: str) -> str:
    """Convert HTML to plain text without word-wrapping."""
    if not html:
        return ""
    parser = _TextExtractor()
    parser.feed(html)
    parser.close()
    text = "".join(parser.parts)
    text = _TRAILING_WS_RE.sub("\n", text)
    text = "\n".join(line.lstrip(" ") for line in text.split("\n"))
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


def to_plain_text(document: Document) -> PlainTextDocument:
    """Attach the plain-text rendering of a document's HTML body."""
    return PlainTextDocument(document=document, plain_text=html_to_text(document.raw_content))
