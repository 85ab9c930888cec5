from collections.abc import Sequence

from rich.style import Style
from rich.table import Table
from rich.text import Text

from inline_types.config import DecorationStyle
from inline_types.core.positions import offset_at
from inline_types.models import Decoration


def decoration_style(style: DecorationStyle, is_warning: bool) -> Style:
    return Style(color=style.color_for(is_warning), italic=True, dim=style.opacity < 1)


def render_inline(text: str, decorations: Sequence[Decoration], style: DecorationStyle) -> Text:
    """Splice decoration labels into ``text`` the way an editor would show them."""
    insertions: list[tuple[int, int, int, str, bool]] = []
    for index, decoration in enumerate(decorations):
        if decoration.text_before:
            offset = offset_at(text, decoration.start_position)
            insertions.append((offset, 1, index, decoration.text_before, decoration.is_warning))
        if decoration.text_after:
            offset = offset_at(text, decoration.end_position)
            insertions.append((offset, 0, index, decoration.text_after, decoration.is_warning))
    insertions.sort(key=lambda item: item[:3])

    rendered = Text()
    cursor = 0
    for offset, _, _, label, is_warning in insertions:
        rendered.append(text[cursor:offset])
        rendered.append(label, style=decoration_style(style, is_warning))
        cursor = offset
    rendered.append(text[cursor:])
    return rendered


def decoration_table(decorations: Sequence[Decoration]) -> Table:
    table = Table(show_lines=False)
    for header in ("start", "end", "before", "after", "warning"):
        table.add_column(header)
    for decoration in decorations:
        table.add_row(
            f"{decoration.start_position.line + 1}:{decoration.start_position.character + 1}",
            f"{decoration.end_position.line + 1}:{decoration.end_position.character + 1}",
            Text(decoration.text_before),
            Text(decoration.text_after),
            "yes" if decoration.is_warning else "",
        )
    return table
