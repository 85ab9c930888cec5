import re
from bisect import bisect_right
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import cast

from tree_sitter import Node, Parser, Tree
from tree_sitter_language_pack import SupportedLanguage, get_parser

from inline_types.core.languages import resolve_language
from inline_types.core.positions import utf16_len
from inline_types.models import Position

_PARSERS: dict[str, Parser] = {}

_LINE_BREAK = re.compile(rb"\r\n|\r|\n")


def _parser_for(language: str) -> Parser:
    parser = _PARSERS.get(language)
    if parser is None:
        parser = get_parser(cast(SupportedLanguage, language))
        _PARSERS[language] = parser
    return parser


@dataclass
class SourceFile:
    """A parsed snapshot of one file's text."""

    path: str
    text: str
    language: str
    tree: Tree
    source_bytes: bytes
    version: int = 0
    _line_starts: list[int] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        self._line_starts = [0] + [match.end() for match in _LINE_BREAK.finditer(self.source_bytes)]

    @property
    def root(self) -> Node:
        return self.tree.root_node

    @property
    def has_errors(self) -> bool:
        return self.tree.root_node.has_error

    def position_of(self, byte_offset: int) -> Position:
        byte_offset = max(0, min(byte_offset, len(self.source_bytes)))
        line = bisect_right(self._line_starts, byte_offset) - 1
        prefix = self.source_bytes[self._line_starts[line] : byte_offset]
        return Position(line, utf16_len(prefix.decode("utf-8", errors="replace").rstrip("\r")))

    def start_of(self, node: Node) -> Position:
        return self.position_of(node.start_byte)

    def end_of(self, node: Node) -> Position:
        return self.position_of(node.end_byte)

    def text_of(self, node: Node) -> str:
        return self.source_bytes[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

    def node_at(self, start_byte: int, end_byte: int) -> Node | None:
        return self.tree.root_node.descendant_for_byte_range(start_byte, end_byte)


def parse_source(path: str, text: str, language: str | None = None, version: int = 0) -> SourceFile:
    resolved_language = resolve_language(language, path)
    source_bytes = text.encode("utf-8")
    tree = _parser_for(resolved_language).parse(source_bytes)
    return SourceFile(
        path=path,
        text=text,
        language=resolved_language,
        tree=tree,
        source_bytes=source_bytes,
        version=version,
    )


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal that does not descend into ERROR subtrees."""
    stack = [node]
    while stack:
        current = stack.pop()
        if current.is_error or current.is_missing:
            continue
        yield current
        stack.extend(reversed(current.children))


FUNCTION_NODE_TYPES = frozenset(
    {
        "arrow_function",
        "function",
        "function_declaration",
        "function_expression",
        "generator_function",
        "generator_function_declaration",
        "method_definition",
    }
)
PARAMETER_NODE_TYPES = frozenset({"required_parameter", "optional_parameter"})
FIELD_NODE_TYPES = frozenset({"public_field_definition", "field_definition"})


def named_children(node: Node) -> list[Node]:
    return [child for child in node.named_children if child.type != "comment"]


def parameter_nodes(function: Node) -> list[Node]:
    single = function.child_by_field_name("parameter")
    if single is not None:
        return [single]
    parameters = function.child_by_field_name("parameters")
    if parameters is None:
        return []
    return named_children(parameters)


def parameter_binding(parameter: Node) -> Node:
    """Return the node that names a parameter (its pattern or left-hand side)."""
    if parameter.type in PARAMETER_NODE_TYPES:
        pattern = parameter.child_by_field_name("pattern")
        return pattern if pattern is not None else parameter
    if parameter.type == "assignment_pattern":
        left = parameter.child_by_field_name("left")
        return left if left is not None else parameter
    return parameter
