"""Tests for position arithmetic and decoration remapping."""

import pytest
from pydantic import ValidationError

from inline_types.core.positions import (
    apply_change,
    apply_changes,
    clamp_decorations,
    clamp_position,
    normalize_change,
    offset_at,
    position_at,
    remap_decoration,
    remap_position,
    utf16_len,
)
from inline_types.models import Decoration, Position, TextChange


def _decoration(start: Position, end: Position, after: str = ": number") -> Decoration:
    return Decoration(text_before="", text_after=after, start_position=start, end_position=end)


class TestOffsets:
    def test_utf16_len_counts_astral_characters_twice(self) -> None:
        assert utf16_len("abc") == 3
        assert utf16_len("a😀b") == 4

    def test_offset_at_first_line(self) -> None:
        assert offset_at("let x = 1;", Position(0, 4)) == 4

    def test_offset_at_second_line(self) -> None:
        assert offset_at("ab\ncd", Position(1, 1)) == 4

    def test_offset_at_crlf(self) -> None:
        assert offset_at("ab\r\ncd", Position(1, 0)) == 4

    def test_offset_clamps_past_line_end(self) -> None:
        assert offset_at("ab\ncd", Position(0, 99)) == 2

    def test_offset_clamps_past_last_line(self) -> None:
        assert offset_at("ab\ncd", Position(7, 0)) == 5

    def test_offset_after_surrogate_pair(self) -> None:
        assert offset_at("😀x", Position(0, 2)) == 1

    def test_position_at_round_trips_offset(self) -> None:
        text = "one\ntwo\nthree"
        assert position_at(text, 9) == Position(2, 1)

    def test_position_at_clamps_negative(self) -> None:
        assert position_at("abc", -5) == Position(0, 0)

    def test_position_at_counts_utf16(self) -> None:
        assert position_at("😀x", 2) == Position(0, 3)

    def test_clamp_position(self) -> None:
        assert clamp_position("ab\ncd", Position(0, 10)) == Position(0, 2)
        assert clamp_position("ab\ncd", Position(5, 5)) == Position(1, 2)


class TestApplyChange:
    def test_insert(self) -> None:
        assert apply_change("let x = 1;", TextChange.insert(Position(0, 0), "//")) == "//let x = 1;"

    def test_replace_across_lines(self) -> None:
        change = TextChange(start=Position(0, 2), end=Position(1, 1), new_text="-")
        assert apply_change("ab\ncd", change) == "ab-d"

    def test_delete(self) -> None:
        assert apply_change("abcdef", TextChange.delete(Position(0, 1), Position(0, 3))) == "adef"

    def test_changes_apply_in_order(self) -> None:
        changes = [TextChange.insert(Position(0, 0), "a"), TextChange.insert(Position(0, 1), "b")]
        assert apply_changes("", changes) == "ab"

    def test_normalize_change_clamps_range(self) -> None:
        change = normalize_change("ab", TextChange(start=Position(0, 5), end=Position(3, 0), new_text="x"))
        assert change.start == Position(0, 2)
        assert change.end == Position(0, 2)


class TestRemapPosition:
    def test_insert_before_on_same_line_shifts_column(self) -> None:
        change = TextChange.insert(Position(0, 0), "//")
        assert remap_position(Position(0, 5), change) == Position(0, 7)

    def test_position_before_change_is_unchanged(self) -> None:
        change = TextChange.insert(Position(0, 8), "abc")
        assert remap_position(Position(0, 4), change) == Position(0, 4)

    def test_insertion_point_moves_to_end_of_inserted_text(self) -> None:
        change = TextChange.insert(Position(0, 4), "ab")
        assert remap_position(Position(0, 4), change) == Position(0, 6)

    def test_deletion_collapses_inner_positions_to_start(self) -> None:
        change = TextChange.delete(Position(0, 2), Position(0, 6))
        assert remap_position(Position(0, 4), change) == Position(0, 2)
        assert remap_position(Position(0, 6), change) == Position(0, 2)

    def test_position_after_deletion_on_same_line(self) -> None:
        change = TextChange.delete(Position(0, 2), Position(0, 6))
        assert remap_position(Position(0, 9), change) == Position(0, 5)

    def test_multiline_insert_shifts_later_lines(self) -> None:
        change = TextChange.insert(Position(0, 0), "a\nb\n")
        assert remap_position(Position(3, 4), change) == Position(5, 4)

    def test_multiline_insert_on_last_replaced_line(self) -> None:
        change = TextChange.insert(Position(1, 2), "xy\nz")
        assert remap_position(Position(1, 5), change) == Position(2, 4)

    def test_multiline_delete_joins_lines(self) -> None:
        change = TextChange.delete(Position(0, 3), Position(2, 1))
        assert remap_position(Position(2, 4), change) == Position(0, 6)
        assert remap_position(Position(4, 1), change) == Position(2, 1)

    def test_remap_matches_applied_text(self) -> None:
        text = "const a = 1;\nconst b = 'x';\n"
        change = TextChange(start=Position(0, 6), end=Position(0, 7), new_text="alpha")
        updated = apply_change(text, change)
        moved = remap_position(Position(1, 6), change)
        assert updated[offset_at(updated, moved)] == "b"


class TestRemapDecoration:
    def test_decoration_shifts_with_insert(self) -> None:
        decoration = _decoration(Position(0, 4), Position(0, 5))
        moved = remap_decoration(decoration, TextChange.insert(Position(0, 0), "//"))
        assert moved.start_position == Position(0, 6)
        assert moved.end_position == Position(0, 7)
        assert moved.text_after == ": number"

    def test_unaffected_decoration_is_same_object(self) -> None:
        decoration = _decoration(Position(0, 4), Position(0, 5))
        assert remap_decoration(decoration, TextChange.insert(Position(3, 0), "x")) is decoration

    def test_decoration_swallowed_by_deletion_is_empty_range(self) -> None:
        decoration = _decoration(Position(0, 4), Position(0, 5))
        moved = remap_decoration(decoration, TextChange.delete(Position(0, 0), Position(0, 10)))
        assert moved.start_position == moved.end_position == Position(0, 0)

    def test_decorations_are_immutable(self) -> None:
        decoration = _decoration(Position(0, 4), Position(0, 5))
        with pytest.raises(ValidationError):
            decoration.text_after = ": string"  # type: ignore[misc]


class TestClampDecorations:
    def test_drops_decorations_outside_text(self) -> None:
        inside = _decoration(Position(0, 0), Position(0, 2))
        outside = _decoration(Position(3, 0), Position(3, 1))
        assert clamp_decorations("abc", [inside, outside]) == (inside,)

    def test_drops_decorations_past_line_end(self) -> None:
        decoration = _decoration(Position(0, 1), Position(0, 9))
        assert clamp_decorations("abc\ndefghijkl", [decoration]) == ()
