"""
Tests for context_extractor

Test Coverage:
- extract_context(): window sizes, boundary clipping, round-trip, argument checks
- ContextWindow: line_prefix / line_suffix helpers
"""
import pytest

from context_extractor import extract_context
from fixture_parser import AnnotatedFixture


@pytest.fixture
def fixture(example_text):
    return AnnotatedFixture.from_text(example_text)


def test_round_trip_reproduces_fixture_slice(fixture):
    """before + marker comment + after is exactly the original slice."""
    for window_lines in (1, 3, 8, 100):
        for marker in fixture.markers:
            window = extract_context(fixture, marker, window_lines)

            rebuilt = window.before + marker.comment + window.after
            assert rebuilt == fixture.text[window.start:window.end]
            assert window.cursor == marker.offset


def test_window_stays_in_bounds(fixture):
    for marker in fixture.markers:
        window = extract_context(fixture, marker, 100)

        assert 0 <= window.start <= window.cursor <= window.end <= len(fixture.text)


def test_full_window_away_from_boundaries(fixture):
    """A marker in the middle gets exactly window_lines on each side."""
    marker = fixture.markers[3]  # line 23

    window = extract_context(fixture, marker, 3)

    assert window.lines_before == 3
    assert window.lines_after == 3
    assert window.before.count("\n") == 3
    assert window.after.count("\n") == 4  # rest of the marker line plus three lines


def test_window_clipped_at_start():
    fixture = AnnotatedFixture.from_text("int a = 1\n// Cursor here - should suggest semicolon\nint b = 2;\n")

    window = extract_context(fixture, fixture.markers[0], 5)

    assert window.start == 0
    assert window.lines_before == 1
    assert window.lines_after == 1
    assert window.before == "int a = 1\n"
    assert window.after == "\nint b = 2;\n"


def test_window_clipped_at_end_without_trailing_newline():
    fixture = AnnotatedFixture.from_text("int a = 1\n    // Cursor here - should suggest semicolon")

    window = extract_context(fixture, fixture.markers[0], 2)

    assert window.end == len(fixture.text)
    assert window.lines_after == 0
    assert window.after == ""
    assert window.line_prefix == "    "


def test_marker_comment_is_hidden_from_window(fixture):
    for marker in fixture.markers:
        window = extract_context(fixture, marker, 1)

        assert marker.intent not in window.before + window.after


def test_line_prefix_and_suffix(fixture):
    window = extract_context(fixture, fixture.markers[0], 2)

    assert window.line_prefix == "        "
    assert window.line_suffix == ""
    assert window.before.endswith('String message = "Hello, World"\n        ')


def test_foreign_marker_rejected(example_text):
    fixture = AnnotatedFixture.from_text(example_text)
    other = AnnotatedFixture.from_text(example_text)

    with pytest.raises(ValueError):
        extract_context(fixture, other.markers[0], 3)


def test_window_lines_must_be_positive(fixture):
    with pytest.raises(ValueError):
        extract_context(fixture, fixture.markers[0], 0)


def test_extraction_is_deterministic(fixture):
    marker = fixture.markers[2]

    assert extract_context(fixture, marker, 4) == extract_context(fixture, marker, 4)
