# Copyright (c) Syntropy Systems
"""Line-oriented document model for solver configuration files.

Control, data, starter and parameter files have no formal grammar. Fields
are found by literal comment markers that the solver writes into its
``.ss_new`` output, never by absolute line numbers, because every rewrite
shifts the lines below it. All functions here are pure: they take a
:class:`ConfigDocument` and return a new one.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from typing_extensions import Self

from stocksim.errors import FormatMismatch

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence
    from pathlib import Path


@dataclass(frozen=True)
class ConfigDocument:
    """An ordered, immutable sequence of text lines."""

    lines: tuple[str, ...]
    source: str | None = None
    trailing_newline: bool = True

    @classmethod
    def from_text(cls, text: str, source: str | None = None) -> Self:
        """Split text into lines, remembering whether it ended in a newline."""
        trailing = text.endswith("\n")
        lines = text.splitlines()
        return cls(lines=tuple(lines), source=source, trailing_newline=trailing)

    @classmethod
    def from_lines(
        cls,
        lines: Iterable[str],
        source: str | None = None,
    ) -> Self:
        return cls(lines=tuple(lines), source=source)

    def to_text(self) -> str:
        text = "\n".join(self.lines)
        if self.trailing_newline and self.lines:
            text += "\n"
        return text

    def with_lines(self, lines: Iterable[str]) -> ConfigDocument:
        """Return a copy holding ``lines`` but keeping source and newline style."""
        return ConfigDocument(
            lines=tuple(lines),
            source=self.source,
            trailing_newline=self.trailing_newline,
        )

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self) -> Iterator[str]:
        return iter(self.lines)

    def __getitem__(self, index: int) -> str:
        return self.lines[index]


def read_document(path: Path) -> ConfigDocument:
    """Read a configuration file from disk."""
    return ConfigDocument.from_text(path.read_text(), source=path.name)


def write_document(document: ConfigDocument, path: Path) -> None:
    """Write a configuration document to disk."""
    _ = path.write_text(document.to_text())


def _matches(line: str, marker: str, *, ignore_case: bool) -> bool:
    if ignore_case:
        return marker.lower() in line.lower()
    return marker in line


def locate_all(
    document: ConfigDocument,
    marker: str,
    *,
    start: int = 0,
    end: int | None = None,
    ignore_case: bool = False,
) -> list[int]:
    """Return every line index in ``[start, end)`` containing ``marker``."""
    stop = len(document) if end is None else end
    return [
        i
        for i in range(start, stop)
        if _matches(document.lines[i], marker, ignore_case=ignore_case)
    ]


def locate(
    document: ConfigDocument,
    marker: str,
    *,
    start: int = 0,
    end: int | None = None,
    ignore_case: bool = False,
) -> int:
    """Return the first line index containing ``marker``.

    Raises:
        FormatMismatch: If no line in range contains the marker.

    """
    hits = locate_all(document, marker, start=start, end=end, ignore_case=ignore_case)
    if not hits:
        raise FormatMismatch(marker, document.source)
    return hits[0]


def locate_unique(
    document: ConfigDocument,
    marker: str,
    *,
    ignore_case: bool = False,
) -> int:
    """Return the single line index containing ``marker``.

    Raises:
        FormatMismatch: If the marker is absent or appears more than once.

    """
    hits = locate_all(document, marker, ignore_case=ignore_case)
    if len(hits) != 1:
        if not hits:
            raise FormatMismatch(marker, document.source)
        lines = ", ".join(str(h + 1) for h in hits)
        raise FormatMismatch(
            marker,
            document.source,
            detail=f"expected exactly one match, found it on lines {lines}",
        )
    return hits[0]


def locate_last(
    document: ConfigDocument,
    marker: str,
    *,
    ignore_case: bool = False,
) -> int:
    """Return the last line index containing ``marker``."""
    hits = locate_all(document, marker, ignore_case=ignore_case)
    if not hits:
        raise FormatMismatch(marker, document.source)
    return hits[-1]


def locate_first_of(
    document: ConfigDocument,
    markers: Sequence[str],
    *,
    start: int = 0,
) -> int:
    """Return the first line at or after ``start`` containing any of ``markers``."""
    for i in range(start, len(document)):
        if any(marker in document.lines[i] for marker in markers):
            return i
    raise FormatMismatch(" | ".join(markers), document.source)


def splice_block(
    document: ConfigDocument,
    start: int,
    end: int,
    replacement: Iterable[str],
) -> ConfigDocument:
    """Replace the inclusive block ``[start, end]`` with ``replacement``.

    ``end == start - 1`` addresses the empty block in front of ``start``,
    which turns the splice into an insertion.
    """
    if start < 0 or end < start - 1 or end >= len(document):
        msg = f"Invalid block [{start}, {end}] for document of {len(document)} lines"
        raise IndexError(msg)
    lines = document.lines
    return document.with_lines((*lines[:start], *replacement, *lines[end + 1 :]))


def append_after(
    document: ConfigDocument,
    index: int,
    lines: Iterable[str],
) -> ConfigDocument:
    """Insert ``lines`` directly after line ``index`` (-1 inserts at the top)."""
    return splice_block(document, index + 1, index, lines)


def replace_line(document: ConfigDocument, index: int, line: str) -> ConfigDocument:
    return splice_block(document, index, index, [line])


def leading_token(line: str) -> str:
    """Return the first whitespace-separated token of a line."""
    tokens = line.split()
    if not tokens:
        msg = "Empty line has no leading value"
        raise ValueError(msg)
    return tokens[0]


def comment_of(line: str) -> str:
    """Return the ``#`` comment of a line including the hash, or ''."""
    pos = line.find("#")
    return "" if pos < 0 else line[pos:]


def value_tokens(line: str) -> list[str]:
    """Return the whitespace-separated fields in front of the comment."""
    pos = line.find("#")
    return (line if pos < 0 else line[:pos]).split()


def with_value_tokens(line: str, tokens: Iterable[str]) -> str:
    """Rebuild ``line`` from new value fields, keeping its comment."""
    comment = comment_of(line)
    values = " ".join(tokens)
    return f"{values} {comment}" if comment else values


def set_leading_value(
    document: ConfigDocument,
    index: int,
    value: object,
) -> ConfigDocument:
    """Replace the value in front of a line's comment, keeping the comment."""
    comment = comment_of(document.lines[index])
    text = format_value(value)
    return replace_line(document, index, f"{text} {comment}" if comment else text)


def format_value(value: object) -> str:
    """Format numbers the way the solver writes them (no trailing .0)."""
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def format_row(values: Iterable[object]) -> str:
    return " ".join(format_value(v) for v in values)
