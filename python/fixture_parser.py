"""Annotated fixture loader that turns cursor-marker comments into test cases."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

UNLABELED = "unlabeled"

_COMMENT_LINE = re.compile(r"^(?P<indent>[ \t]*)(?P<leader>//+|#+|--|;+|/\*+|\*)(?P<body>.*)$")
_TRAILING_MARKER = re.compile(r"(?P<leader>//+|#+)\s*(?P<body>cursor here\b.*)$", re.IGNORECASE)
_MARKER = re.compile(r"\bcursor here\b", re.IGNORECASE)
_SHOULD_SUGGEST = re.compile(r"\bshould\s+suggest\b\s*:?\s*(?P<intent>.*)$", re.IGNORECASE)
_AFTER_SEPARATOR = re.compile(r"\bcursor here\b\s*[-:–—]+\s*(?P<intent>.*)$", re.IGNORECASE)
_CLOSE_COMMENT = re.compile(r"\s*\*+/\s*$")
_STRING_LITERAL = re.compile(r"\"(?:\\.|[^\"\\])*\"|'(?:\\.|[^'\\])*'")

DEFAULT_HEADING_PATTERN = re.compile(r"^scenario\b", re.IGNORECASE)


class MalformedFixtureError(ValueError):
    """Raised when fixture text or a fixture object breaks the cursor-marker rules."""


@dataclass(frozen=True)
class CursorMarker:
    """One annotated cursor position and the edit a fixture author expects there."""

    index: int
    line: int
    offset: int
    comment: str
    intent: str
    scenario: str = UNLABELED


@dataclass(frozen=True)
class AnnotatedFixture:
    """Fixture text plus the cursor markers parsed from it, in source order."""

    text: str
    markers: Tuple[CursorMarker, ...]
    source: Optional[Path] = None

    def __post_init__(self) -> None:
        if not self.markers:
            raise MalformedFixtureError("fixture contains no cursor markers")
        for position, marker in enumerate(self.markers):
            if marker.index != position:
                raise MalformedFixtureError(f"marker at position {position} carries index {marker.index}")
            if not 0 <= marker.offset <= len(self.text):
                raise MalformedFixtureError(f"line {marker.line}: marker offset {marker.offset} is outside the fixture text")
            if not marker.intent.strip():
                raise MalformedFixtureError(f"line {marker.line}: cursor marker does not describe an expected edit")

    @classmethod
    def from_text(
        cls,
        text: str,
        source: Optional[Path] = None,
        heading_pattern: Union[str, re.Pattern, None] = None,
    ) -> "AnnotatedFixture":
        """Parse ``text`` and wrap it with its markers."""
        return cls(text=text, markers=tuple(parse(text, heading_pattern=heading_pattern)), source=source)

    def owns(self, marker: CursorMarker) -> bool:
        """Return True when ``marker`` is one of this fixture's own marker objects."""
        return any(candidate is marker for candidate in self.markers)


def load_fixture(path: Union[str, Path], heading_pattern: Union[str, re.Pattern, None] = None) -> AnnotatedFixture:
    """Read a fixture file from disk and parse its markers."""
    fixture_path = Path(path)
    text = fixture_path.read_text(encoding="utf-8")
    fixture = AnnotatedFixture.from_text(text, source=fixture_path, heading_pattern=heading_pattern)
    logger.debug("Loaded %d markers from %s", len(fixture.markers), fixture_path)
    return fixture


def parse(text: str, heading_pattern: Union[str, re.Pattern, None] = None) -> List[CursorMarker]:
    """Scan fixture text once and return every cursor marker in source order.

    Headings update the scenario label carried forward to later markers. A marker
    needs at least one preceding code line to anchor it, and must describe a
    non-empty intent.
    """
    heading = _compile_heading(heading_pattern)
    markers: List[CursorMarker] = []
    scenario = UNLABELED
    seen_code = False
    offset = 0

    for line_number, raw_line in enumerate(text.splitlines(keepends=True), start=1):
        line = raw_line.rstrip("\r\n")
        found = _find_marker(line)

        if found is None:
            comment = _COMMENT_LINE.match(line)
            if comment:
                body = _strip_comment_body(comment.group("body"))
                if heading.search(body):
                    scenario = body
            elif line.strip():
                seen_code = True
            offset += len(raw_line)
            continue

        column, body = found
        if column > 0 and line[:column].strip():
            seen_code = True
        if not seen_code:
            raise MalformedFixtureError(f"line {line_number}: cursor marker has no preceding code to anchor it")

        intent = _extract_intent(body)
        if not intent:
            raise MalformedFixtureError(f"line {line_number}: cursor marker does not describe an expected edit")

        markers.append(
            CursorMarker(
                index=len(markers),
                line=line_number,
                offset=offset + column,
                comment=line[column:],
                intent=intent,
                scenario=scenario,
            )
        )
        offset += len(raw_line)

    if not markers:
        raise MalformedFixtureError("fixture contains no cursor markers")
    return markers


def _compile_heading(heading_pattern: Union[str, re.Pattern, None]) -> re.Pattern:
    """Normalize the heading pattern argument to a compiled regex."""
    if heading_pattern is None:
        return DEFAULT_HEADING_PATTERN
    if isinstance(heading_pattern, str):
        return re.compile(heading_pattern, re.IGNORECASE)
    return heading_pattern


def _find_marker(line: str) -> Optional[Tuple[int, str]]:
    """Return (column, comment body) for a marker comment on ``line``, if any."""
    comment = _COMMENT_LINE.match(line)
    if comment and _MARKER.search(comment.group("body")):
        return comment.start("leader"), _strip_comment_body(comment.group("body"))

    # Quoted spans are blanked so a "//" or "#" inside a literal is not taken for a comment.
    masked = _STRING_LITERAL.sub(lambda literal: " " * len(literal.group()), line)
    trailing = _TRAILING_MARKER.search(masked)
    if trailing:
        return trailing.start("leader"), _strip_comment_body(line[trailing.start("body") :])
    return None


def _strip_comment_body(body: str) -> str:
    """Drop a block-comment terminator and surrounding whitespace."""
    return _CLOSE_COMMENT.sub("", body).strip()


def _extract_intent(body: str) -> str:
    """Take the intent prose after ``should suggest``, else after the first separator."""
    match = _SHOULD_SUGGEST.search(body) or _AFTER_SEPARATOR.search(body)
    if not match:
        return ""
    return _strip_comment_body(match.group("intent"))
