"""Line-bounded context windows around fixture cursor markers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from fixture_parser import AnnotatedFixture, CursorMarker


@dataclass(frozen=True)
class ContextWindow:
    """Text on either side of a cursor, with the marker comment cut out.

    ``before`` runs from ``start`` up to the cursor and ``after`` runs from the end
    of the marker comment up to ``end``, so re-inserting the comment between them
    reproduces ``fixture.text[start:end]``.
    """

    before: str
    after: str
    start: int
    cursor: int
    end: int
    marker_line: int
    lines_before: int
    lines_after: int

    @property
    def line_prefix(self) -> str:
        """Text between the start of the cursor line and the cursor."""
        return self.before.rsplit("\n", 1)[-1]

    @property
    def line_suffix(self) -> str:
        """Text between the cursor and the end of the cursor line."""
        return self.after.split("\n", 1)[0]


def extract_context(fixture: AnnotatedFixture, marker: CursorMarker, window_lines: int) -> ContextWindow:
    """Return up to ``window_lines`` lines on each side of ``marker``, clipped to the fixture."""
    if window_lines < 1:
        raise ValueError(f"window_lines must be at least 1, got {window_lines}")
    if not fixture.owns(marker):
        raise ValueError(f"marker {marker.index} at line {marker.line} does not belong to this fixture")

    text = fixture.text
    line_starts = _line_starts(text)
    line_count = len(line_starts) - 1
    marker_index = marker.line - 1

    first = max(0, marker_index - window_lines)
    last = min(line_count, marker_index + 1 + window_lines)
    start = line_starts[first]
    end = line_starts[last]
    comment_end = marker.offset + len(marker.comment)

    return ContextWindow(
        before=text[start:marker.offset],
        after=text[comment_end:end],
        start=start,
        cursor=marker.offset,
        end=end,
        marker_line=marker.line,
        lines_before=marker_index - first,
        lines_after=last - marker_index - 1,
    )


def _line_starts(text: str) -> List[int]:
    """Offsets where each line begins, followed by ``len(text)``."""
    starts = [0]
    for line in text.splitlines(keepends=True):
        starts.append(starts[-1] + len(line))
    return starts
