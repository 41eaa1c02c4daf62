"""
Tests for fixture_parser

Test Coverage:
- parse(): marker discovery, scenario labels, intent extraction, offsets
- parse(): malformed fixtures (no markers, unanchored marker, empty intent)
- parse(): comment leaders inside string literals
- AnnotatedFixture: construction-time validation of markers
- load_fixture(): reading a fixture from disk
"""
import pytest

from fixture_parser import (
    UNLABELED,
    AnnotatedFixture,
    CursorMarker,
    MalformedFixtureError,
    load_fixture,
    parse,
)


def test_example_fixture_markers_in_source_order(example_text):
    """Every 'Cursor here' comment becomes one marker, in order."""
    markers = parse(example_text)

    assert [marker.line for marker in markers] == [6, 12, 17, 23, 28, 31, 37, 47]
    assert [marker.index for marker in markers] == list(range(8))


def test_example_fixture_intents(example_text):
    """Intent is the prose after 'should suggest'."""
    intents = [marker.intent for marker in parse(example_text)]

    assert intents[0] == "semicolon"
    assert intents[1] == "closing parenthesis and semicolon"
    assert intents[6] == "return statement"
    assert intents[7] == "closing brace for constructor"


def test_example_fixture_scenarios(example_text):
    """Each marker carries the nearest preceding scenario heading."""
    markers = parse(example_text)

    assert markers[0].scenario == "Scenario 1: Simple insertion - cursor at end of statement"
    assert markers[4].scenario == "Scenario 5: Incomplete expression"
    assert markers[5].scenario == "Scenario 5: Incomplete expression"
    assert markers[6].scenario == "Scenario 6: Missing return statement"


def test_offset_points_at_marker_comment(example_text):
    """Offset is where the comment starts, after indentation."""
    for marker in parse(example_text):
        assert example_text[marker.offset:].startswith(marker.comment)
        assert marker.comment.startswith("// Cursor here")


def test_marker_without_heading_is_unlabeled():
    text = "x = 1\n# Cursor here - should suggest newline\n"

    markers = parse(text)

    assert len(markers) == 1
    assert markers[0].scenario == UNLABELED
    assert markers[0].intent == "newline"


def test_consecutive_markers_kept_in_order():
    text = "int a = 1\n// Cursor here - should suggest semicolon\n// Cursor here - should suggest return statement\n"

    markers = parse(text)

    assert [marker.intent for marker in markers] == ["semicolon", "return statement"]


def test_trailing_marker_comment():
    """A marker may trail code on the same line."""
    text = "int x = 5 + // Cursor here - should suggest completing the expression\n"

    markers = parse(text)

    assert markers[0].offset == text.index("//")
    assert markers[0].intent == "completing the expression"


def test_comment_leader_inside_string_literal_is_not_a_marker():
    text = 'url = "http://example.com/#cursor here - should suggest semicolon";\n'

    with pytest.raises(MalformedFixtureError):
        parse(text)


def test_trailing_marker_after_string_with_comment_leader():
    text = 'note("// cursor here"); // Cursor here - should suggest semicolon\n'

    marker = parse(text)[0]

    assert marker.offset == text.rindex("//")
    assert marker.comment == "// Cursor here - should suggest semicolon"
    assert marker.intent == "semicolon"


def test_block_comment_marker_strips_terminator():
    text = "foo(\n/* Cursor here: should suggest closing parenthesis */\n"

    assert parse(text)[0].intent == "closing parenthesis"


def test_intent_after_separator_without_should_suggest():
    text = "call(\n// Cursor here - closing parenthesis\n"

    assert parse(text)[0].intent == "closing parenthesis"


def test_custom_heading_pattern():
    text = "// Case A: first\nx = 1\n// Cursor here - should suggest semicolon\n"

    assert parse(text)[0].scenario == UNLABELED
    assert parse(text, heading_pattern=r"^case\b")[0].scenario == "Case A: first"


def test_no_markers_is_malformed():
    with pytest.raises(MalformedFixtureError):
        parse("public class Empty {\n}\n")


def test_marker_before_any_code_is_malformed():
    text = "// Scenario 1: nothing yet\n// Cursor here - should suggest semicolon\n"

    with pytest.raises(MalformedFixtureError):
        parse(text)


def test_marker_without_intent_is_malformed():
    with pytest.raises(MalformedFixtureError):
        parse("x = 1\n// Cursor here\n")


def test_fixture_object_without_markers_is_malformed():
    with pytest.raises(MalformedFixtureError):
        AnnotatedFixture(text="class X {}", markers=())


def test_fixture_object_rejects_offset_outside_text():
    marker = CursorMarker(index=0, line=1, offset=99, comment="// Cursor here - semicolon", intent="semicolon")

    with pytest.raises(MalformedFixtureError):
        AnnotatedFixture(text="x = 1", markers=(marker,))


def test_fixture_object_rejects_empty_intent():
    marker = CursorMarker(index=0, line=1, offset=0, comment="// Cursor here", intent="  ")

    with pytest.raises(MalformedFixtureError):
        AnnotatedFixture(text="// Cursor here", markers=(marker,))


def test_fixture_object_rejects_misnumbered_markers():
    marker = CursorMarker(index=3, line=1, offset=0, comment="// Cursor here - semicolon", intent="semicolon")

    with pytest.raises(MalformedFixtureError):
        AnnotatedFixture(text="// Cursor here - semicolon", markers=(marker,))


def test_fixture_owns_only_its_markers(example_text):
    first = AnnotatedFixture.from_text(example_text)
    second = AnnotatedFixture.from_text(example_text)

    assert first.owns(first.markers[0])
    assert not first.owns(second.markers[0])


def test_load_fixture_records_source(example_path):
    fixture = load_fixture(example_path)

    assert fixture.source == example_path
    assert len(fixture.markers) == 8


def test_markers_are_frozen(example_text):
    marker = parse(example_text)[0]

    with pytest.raises(Exception):
        marker.intent = "brace"
