from __future__ import annotations

import pytest

from docsync.sources.chunking import CodeChunker, Segment, TextChunker


def test_markdown_sections_track_heading_hierarchy() -> None:
    text = (
        "# Guide\n"
        "Intro paragraph.\n\n"
        "## Install\n"
        "Run the installer.\n\n"
        "### Linux\n"
        "Use the package.\n\n"
        "## Usage\n"
        "Call the tool.\n"
    )

    segments = TextChunker().split(text, markdown=True)

    assert [segment.headings for segment in segments] == [
        ("Guide",),
        ("Guide", "Install"),
        ("Guide", "Install", "Linux"),
        ("Guide", "Usage"),
    ]
    assert segments[1].content.startswith("## Install")


def test_fenced_code_is_not_read_as_headings() -> None:
    text = "# Title\n```bash\n# not a heading\n```\n"

    segments = TextChunker().split(text, markdown=True)

    assert len(segments) == 1
    assert segments[0].headings == ("Title",)
    assert "# not a heading" in segments[0].content


def test_plain_text_ignores_hash_lines() -> None:
    segments = TextChunker().split("# literally text\nmore", markdown=False)

    assert segments == [Segment(content="# literally text\nmore")]


def test_paragraphs_are_packed_within_budget() -> None:
    paragraphs = ["a" * 40, "b" * 40, "c" * 40]

    segments = TextChunker(max_chars=90).split("\n\n".join(paragraphs))

    assert [segment.content for segment in segments] == [
        f"{'a' * 40}\n\n{'b' * 40}",
        "c" * 40,
    ]
    assert all(len(segment.content) <= 90 for segment in segments)


def test_oversized_paragraph_is_hard_split() -> None:
    segments = TextChunker(max_chars=10).split("x" * 25)

    assert [len(segment.content) for segment in segments] == [10, 10, 5]


def test_blank_input_yields_nothing() -> None:
    assert TextChunker().split("  \n\n ") == []
    assert CodeChunker().split("\n\n", label="empty.py") == []


def test_code_windows_carry_line_ranges() -> None:
    text = "".join(f"line {number}\n" for number in range(1, 6))

    segments = CodeChunker(max_lines=2).split(text, label="src/app.py")

    assert [segment.headings for segment in segments] == [
        ("src/app.py", "src/app.py:1-2"),
        ("src/app.py", "src/app.py:3-4"),
        ("src/app.py", "src/app.py:5-5"),
    ]
    assert "".join(segment.content for segment in segments) == text


def test_code_windows_respect_character_budget() -> None:
    text = "aaaa\nbbbb\ncccc\n"

    segments = CodeChunker(max_lines=10, max_chars=10).split(text, label="f.txt")

    assert [segment.content for segment in segments] == ["aaaa\nbbbb\n", "cccc\n"]


@pytest.mark.parametrize("kwargs", [{"max_lines": 0}, {"max_chars": 0}])
def test_code_chunker_validates_limits(kwargs) -> None:
    with pytest.raises(ValueError):
        CodeChunker(**kwargs)
