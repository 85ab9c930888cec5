"""Position arithmetic over editor text.

Columns are counted in UTF-16 code units, the way editors address text.
Every helper here is total: out-of-range input is clamped to the text instead
of raising.
"""

import re
from bisect import bisect_right
from collections.abc import Iterable, Sequence

from inline_types.models import Decoration, Position, TextChange

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def utf16_len(value: str) -> int:
    return len(value) + sum(1 for ch in value if ord(ch) > 0xFFFF)


def _line_spans(text: str) -> list[tuple[int, int]]:
    """Return ``(content_start, content_end)`` string offsets for every line."""
    spans: list[tuple[int, int]] = []
    start = 0
    for match in _LINE_BREAK.finditer(text):
        spans.append((start, match.start()))
        start = match.end()
    spans.append((start, len(text)))
    return spans


def _column_to_offset(line: str, character: int) -> int:
    units = 0
    for index, ch in enumerate(line):
        if units >= character:
            return index
        units += 2 if ord(ch) > 0xFFFF else 1
        if units > character:
            # Inside a surrogate pair; snap to the start of the code point.
            return index
    return len(line)


def offset_at(text: str, position: Position) -> int:
    """Convert a position into a string offset, clamping to the text."""
    spans = _line_spans(text)
    if position.line >= len(spans):
        return len(text)
    start, end = spans[position.line]
    return start + _column_to_offset(text[start:end], position.character)


def position_at(text: str, offset: int) -> Position:
    """Convert a string offset into a position, clamping to the text."""
    offset = max(0, min(offset, len(text)))
    spans = _line_spans(text)
    line = bisect_right([start for start, _ in spans], offset) - 1
    start, end = spans[line]
    return Position(line, utf16_len(text[start : min(offset, end)]))


def clamp_position(text: str, position: Position) -> Position:
    return position_at(text, offset_at(text, position))


def end_position(text: str) -> Position:
    return position_at(text, len(text))


def normalize_change(text: str, change: TextChange) -> TextChange:
    """Clamp a change's range onto ``text`` so remapping and applying agree."""
    start = clamp_position(text, change.start)
    end = clamp_position(text, change.end)
    if start == change.start and end == change.end:
        return change
    return TextChange(start=start, end=max(start, end), new_text=change.new_text)


def apply_change(text: str, change: TextChange) -> str:
    start = offset_at(text, change.start)
    end = max(start, offset_at(text, change.end))
    return text[:start] + change.new_text + text[end:]


def apply_changes(text: str, changes: Iterable[TextChange]) -> str:
    for change in changes:
        text = apply_change(text, change)
    return text


def inserted_end(change: TextChange) -> Position:
    """Position right after the inserted text once ``change`` is applied."""
    lines = _LINE_BREAK.split(change.new_text)
    if len(lines) == 1:
        return Position(change.start.line, change.start.character + utf16_len(lines[0]))
    return Position(change.start.line + len(lines) - 1, utf16_len(lines[-1]))


def remap_position(position: Position, change: TextChange) -> Position:
    """Return where ``position`` ends up after ``change`` is applied."""
    if position < change.start:
        return position
    new_end = inserted_end(change)
    if position <= change.end:
        return new_end
    if position.line == change.end.line:
        return Position(new_end.line, new_end.character + position.character - change.end.character)
    line_delta = (new_end.line - change.start.line) - (change.end.line - change.start.line)
    return Position(position.line + line_delta, position.character)


def remap_decoration(decoration: Decoration, change: TextChange) -> Decoration:
    start = remap_position(decoration.start_position, change)
    end = remap_position(decoration.end_position, change)
    if start == decoration.start_position and end == decoration.end_position:
        return decoration
    return Decoration(
        text_before=decoration.text_before,
        text_after=decoration.text_after,
        start_position=start,
        end_position=max(start, end),
        is_warning=decoration.is_warning,
    )


def remap_decorations(decorations: Sequence[Decoration], change: TextChange) -> tuple[Decoration, ...]:
    return tuple(remap_decoration(decoration, change) for decoration in decorations)


def clamp_decorations(text: str, decorations: Sequence[Decoration]) -> tuple[Decoration, ...]:
    """Drop decorations that no longer fit ``text`` (after a full reload)."""
    limit = end_position(text)
    kept: list[Decoration] = []
    for decoration in decorations:
        if decoration.end_position > limit:
            continue
        if clamp_position(text, decoration.start_position) != decoration.start_position:
            continue
        if clamp_position(text, decoration.end_position) != decoration.end_position:
            continue
        kept.append(decoration)
    return tuple(kept)
