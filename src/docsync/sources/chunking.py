"""Split file contents into heading-aware text chunks."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Iterable, Iterator

__all__ = [
    "CodeChunker",
    "Segment",
    "TextChunker",
]

_HEADING = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t#]*$")
_FENCE = re.compile(r"^\s*(```|~~~)")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n", re.MULTILINE)

MARKDOWN_SUFFIXES = frozenset({".md", ".markdown", ".mdx"})


@dataclass(frozen=True, slots=True)
class Segment:
    """Chunk text plus the heading path it sits under."""

    content: str
    headings: tuple[str, ...] = ()

    def as_pair(self) -> tuple[str, tuple[str, ...]]:
        return self.content, self.headings


def _paragraph_spans(text: str) -> Iterator[tuple[int, int]]:
    last = 0
    for match in _PARAGRAPH_BREAK.finditer(text):
        if text[last:match.start()].strip():
            yield (last, match.start())
        last = match.end()
    if last < len(text) and text[last:].strip():
        yield (last, len(text))


def _hard_split(text: str, limit: int) -> Iterator[str]:
    """Split ``text`` at line boundaries, cutting lines longer than ``limit``."""

    buffer = ""
    for line in text.splitlines(keepends=True):
        while len(line) > limit:
            if buffer:
                yield buffer
                buffer = ""
            yield line[:limit]
            line = line[limit:]
        if len(buffer) + len(line) > limit and buffer:
            yield buffer
            buffer = ""
        buffer += line
    if buffer:
        yield buffer


class TextChunker:
    """Pack paragraphs into chunks of at most ``max_chars`` characters.

    Markdown input additionally tracks ``#`` headings so every chunk
    records its heading hierarchy; fenced code blocks are never read as
    headings.
    """

    def __init__(self, *, max_chars: int = 2_000) -> None:
        if max_chars < 1:
            raise ValueError("max_chars must be >= 1")
        self.max_chars = max_chars

    def split(self, text: str, *, markdown: bool = False) -> list[Segment]:
        normalized = text.replace("\r\n", "\n").replace("\r", "\n")
        if not normalized.strip():
            return []
        sections = (
            self._markdown_sections(normalized)
            if markdown
            else [((), normalized)]
        )
        segments: list[Segment] = []
        for headings, body in sections:
            for piece in self._pack(body):
                segments.append(Segment(content=piece, headings=headings))
        return segments

    def _markdown_sections(
        self,
        text: str,
    ) -> list[tuple[tuple[str, ...], str]]:
        sections: list[tuple[tuple[str, ...], str]] = []
        stack: list[tuple[int, str]] = []
        current: list[str] = []
        in_fence = False

        def flush() -> None:
            body = "".join(current)
            if body.strip():
                sections.append((tuple(title for _, title in stack), body))
            current.clear()

        for line in text.splitlines(keepends=True):
            if _FENCE.match(line):
                in_fence = not in_fence
            match = None if in_fence else _HEADING.match(line.rstrip("\n"))
            if match:
                flush()
                level = len(match.group(1))
                while stack and stack[-1][0] >= level:
                    stack.pop()
                stack.append((level, match.group(2).strip()))
            current.append(line)
        flush()
        return sections

    def _pack(self, body: str) -> Iterable[str]:
        limit = self.max_chars
        buffer = ""
        for start, end in _paragraph_spans(body):
            paragraph = body[start:end].strip("\n")
            if len(paragraph) > limit:
                if buffer:
                    yield buffer
                    buffer = ""
                yield from _hard_split(paragraph, limit)
                continue
            candidate = f"{buffer}\n\n{paragraph}" if buffer else paragraph
            if len(candidate) > limit:
                yield buffer
                buffer = paragraph
            else:
                buffer = candidate
        if buffer:
            yield buffer


class CodeChunker:
    """Cut source files into line windows bounded by ``max_chars``."""

    def __init__(self, *, max_lines: int = 80, max_chars: int = 4_000) -> None:
        if max_lines < 1 or max_chars < 1:
            raise ValueError("max_lines and max_chars must be >= 1")
        self.max_lines = max_lines
        self.max_chars = max_chars

    def split(self, text: str, *, label: str) -> list[Segment]:
        lines = text.replace("\r\n", "\n").splitlines(keepends=True)
        if not "".join(lines).strip():
            return []

        segments: list[Segment] = []
        window: list[str] = []
        window_chars = 0
        first_line = 1

        def flush(last_line: int) -> None:
            content = "".join(window)
            if content.strip():
                section = f"{label}:{first_line}-{last_line}"
                segments.append(Segment(content=content, headings=(label, section)))

        for number, line in enumerate(lines, start=1):
            # Oversized single lines are left whole; EmbeddingClient truncates.
            too_long = window and window_chars + len(line) > self.max_chars
            if len(window) >= self.max_lines or too_long:
                flush(number - 1)
                window = []
                window_chars = 0
                first_line = number
            window.append(line)
            window_chars += len(line)
        if window:
            flush(len(lines))
        return segments
