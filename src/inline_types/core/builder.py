import logging

from tree_sitter import Node

from inline_types.config import Features
from inline_types.core.ports.oracle import NodeLocator, QueryKind, TypeOracle
from inline_types.core.syntax import (
    FIELD_NODE_TYPES,
    FUNCTION_NODE_TYPES,
    SourceFile,
    named_children,
    parameter_binding,
    parameter_nodes,
    parse_source,
    walk,
)
from inline_types.models import BuildResult, Decoration, FeatureKind

logger = logging.getLogger(__name__)

_FUNCTION_VALUE_TYPES = FUNCTION_NODE_TYPES | {"class"}
_CALL_NODE_TYPES = frozenset({"call_expression", "new_expression"})
_NO_RETURN_TYPE_METHODS = frozenset({"constructor"})


def _single_line(type_text: str) -> str:
    return " ".join(type_text.split())


def _tie_break(decoration: Decoration) -> tuple[object, int]:
    # At an equal start, prefix text renders first.
    return (decoration.start_position, 0 if decoration.text_before else 1)


class DecorationBuilder:
    """Compute a file's decorations from scratch.

    Walks the syntax tree once, and for every construct whose feature is
    enabled asks the oracle for the inferred type (or parameter name) and
    anchors a decoration on the construct. The oracle is the only suspension
    point; a failing or empty answer simply drops that decoration.
    """

    def __init__(self, features: Features, oracle: TypeOracle) -> None:
        self._features = features
        self._oracle = oracle

    async def build(self, path: str, text: str, version: int = 0) -> BuildResult:
        source = parse_source(path, text, version=version)
        decorations: list[Decoration] = []
        for node in walk(source.root):
            if not node.is_named:
                continue
            if node.type == "variable_declarator":
                await self._variable(source, node, decorations)
            elif node.type in FUNCTION_NODE_TYPES:
                await self._function(source, node, decorations)
            elif node.type in FIELD_NODE_TYPES:
                await self._property(source, node, decorations)
            elif node.type == "object_pattern":
                await self._object_pattern(source, node, decorations)
            elif node.type == "array_pattern":
                await self._array_pattern(source, node, decorations)
            elif node.type == "object":
                await self._object_literal(source, node, decorations)
            elif node.type in _CALL_NODE_TYPES:
                await self._call(source, node, decorations)

        seen: set[tuple[object, ...]] = set()
        unique: list[Decoration] = []
        for decoration in decorations:
            if decoration.identity in seen:
                continue
            seen.add(decoration.identity)
            unique.append(decoration)
        unique.sort(key=_tie_break)
        return BuildResult(decorations=tuple(unique), has_errors=source.has_errors)

    def _enabled(self, kind: FeatureKind) -> bool:
        return self._features.enabled(kind)

    async def _query(self, source: SourceFile, locator: NodeLocator) -> str | None:
        try:
            result = await self._oracle.infer(source, locator)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Oracle failed for %s at %s: %s", source.path, locator.anchor, exc)
            return None
        if not result or not result.strip():
            return None
        return _single_line(result)

    async def _type_decoration(
        self,
        source: SourceFile,
        target: Node,
        decorations: list[Decoration],
        *,
        prefix: bool = False,
        wrap: bool = False,
    ) -> None:
        locator = NodeLocator(
            kind=QueryKind.TYPE,
            start_byte=target.start_byte,
            end_byte=target.end_byte,
            anchor=source.start_of(target),
            name=source.text_of(target),
        )
        type_text = await self._query(source, locator)
        if type_text is None:
            return
        if prefix:
            before, after = f"<{type_text}>", ""
        elif wrap:
            before, after = "(", f": {type_text})"
        else:
            before, after = "", f": {type_text}"
        decorations.append(
            Decoration(
                text_before=before,
                text_after=after,
                start_position=source.start_of(target),
                end_position=source.end_of(target),
                is_warning=self._enabled(FeatureKind.HIGHLIGHT_ANY) and type_text == "any",
            )
        )

    async def _variable(self, source: SourceFile, declarator: Node, decorations: list[Decoration]) -> None:
        name = declarator.child_by_field_name("name")
        if name is None or name.type != "identifier":
            return
        if declarator.child_by_field_name("type") is not None:
            return
        value = declarator.child_by_field_name("value")
        is_function = value is not None and value.type in _FUNCTION_VALUE_TYPES
        feature = FeatureKind.FUNCTION_VARIABLE_TYPE if is_function else FeatureKind.VARIABLE_TYPE
        if self._enabled(feature):
            await self._type_decoration(source, name, decorations)

    async def _function(self, source: SourceFile, function: Node, decorations: list[Decoration]) -> None:
        bare = function.child_by_field_name("parameter")
        wrapped = False
        if self._enabled(FeatureKind.FUNCTION_PARAMETER_TYPE):
            for parameter in parameter_nodes(function):
                if parameter.child_by_field_name("type") is not None:
                    continue
                binding = parameter_binding(parameter)
                if binding.type not in ("identifier", "rest_pattern"):
                    continue
                count = len(decorations)
                await self._type_decoration(source, binding, decorations, wrap=bare is not None)
                wrapped = bare is not None and len(decorations) > count

        if not self._enabled(FeatureKind.FUNCTION_RETURN_TYPE):
            return
        if function.child_by_field_name("return_type") is not None:
            return
        name = function.child_by_field_name("name")
        if name is not None and source.text_of(name) in _NO_RETURN_TYPE_METHODS:
            return
        if any(not child.is_named and child.type in ("set", "*") for child in function.children):
            return
        if function.type.startswith("generator"):
            return
        parameters = bare if bare is not None else function.child_by_field_name("parameters")
        if parameters is None:
            return
        reachable = _reachable_name(function)
        locator = NodeLocator(
            kind=QueryKind.RETURN_TYPE,
            start_byte=function.start_byte,
            end_byte=function.end_byte,
            anchor=source.start_of(reachable if reachable is not None else parameters),
            name=source.text_of(reachable) if reachable is not None else "",
        )
        return_type = await self._query(source, locator)
        if return_type is None:
            return
        # A bare arrow parameter needs parentheses before it can carry a return type.
        needs_parens = bare is not None and not wrapped
        decorations.append(
            Decoration(
                text_before="(" if needs_parens else "",
                text_after=f"): {return_type}" if needs_parens else f": {return_type}",
                start_position=source.start_of(parameters),
                end_position=source.end_of(parameters),
                is_warning=self._enabled(FeatureKind.HIGHLIGHT_ANY) and return_type == "any",
            )
        )

    async def _property(self, source: SourceFile, field: Node, decorations: list[Decoration]) -> None:
        if not self._enabled(FeatureKind.PROPERTY_TYPE):
            return
        if field.child_by_field_name("type") is not None:
            return
        name = field.child_by_field_name("name")
        if name is None:
            name = field.child_by_field_name("property")
        if name is None or name.type == "computed_property_name":
            return
        await self._type_decoration(source, name, decorations)

    async def _object_pattern(self, source: SourceFile, pattern: Node, decorations: list[Decoration]) -> None:
        if not self._enabled(FeatureKind.OBJECT_PATTERN_TYPE):
            return
        for member in named_children(pattern):
            binding: Node | None = None
            if member.type == "shorthand_property_identifier_pattern":
                binding = member
            elif member.type == "pair_pattern":
                value = member.child_by_field_name("value")
                if value is not None and value.type == "identifier":
                    binding = value
            elif member.type == "object_assignment_pattern":
                left = member.child_by_field_name("left")
                if left is not None and left.type in ("shorthand_property_identifier_pattern", "identifier"):
                    binding = left
            if binding is not None:
                await self._type_decoration(source, binding, decorations)

    async def _array_pattern(self, source: SourceFile, pattern: Node, decorations: list[Decoration]) -> None:
        if not self._enabled(FeatureKind.ARRAY_PATTERN_TYPE):
            return
        for member in named_children(pattern):
            binding = member
            if member.type == "assignment_pattern":
                left = member.child_by_field_name("left")
                if left is None:
                    continue
                binding = left
            if binding.type == "identifier":
                await self._type_decoration(source, binding, decorations)

    async def _object_literal(self, source: SourceFile, literal: Node, decorations: list[Decoration]) -> None:
        if not self._enabled(FeatureKind.OBJECT_LITERAL_TYPE):
            return
        for member in named_children(literal):
            if member.type == "pair":
                value = member.child_by_field_name("value")
                if value is None or value.type in _FUNCTION_VALUE_TYPES:
                    continue
                await self._type_decoration(source, value, decorations, prefix=True)
            elif member.type == "shorthand_property_identifier":
                await self._type_decoration(source, member, decorations)

    async def _call(self, source: SourceFile, call: Node, decorations: list[Decoration]) -> None:
        if not self._enabled(FeatureKind.PARAMETER_NAME):
            return
        arguments = call.child_by_field_name("arguments")
        if arguments is None or arguments.type != "arguments":
            return
        for index, argument in enumerate(named_children(arguments)):
            if argument.type == "spread_element":
                break
            locator = NodeLocator(
                kind=QueryKind.PARAMETER_NAME,
                start_byte=call.start_byte,
                end_byte=call.end_byte,
                anchor=source.start_of(argument),
                argument_index=index,
            )
            name = await self._query(source, locator)
            if name is None:
                continue
            if argument.type == "identifier" and source.text_of(argument) == name.lstrip("."):
                continue
            decorations.append(
                Decoration(
                    text_before=f"{name}: ",
                    text_after="",
                    start_position=source.start_of(argument),
                    end_position=source.end_of(argument),
                )
            )


def _reachable_name(function: Node) -> Node | None:
    """Return the identifier through which a function can be referenced."""
    name = function.child_by_field_name("name")
    if name is not None:
        return name
    parent = function.parent
    if parent is None:
        return None
    if parent.type == "variable_declarator":
        return parent.child_by_field_name("name")
    if parent.type == "pair":
        return parent.child_by_field_name("key")
    if parent.type in FIELD_NODE_TYPES:
        name = parent.child_by_field_name("name")
        return name if name is not None else parent.child_by_field_name("property")
    return None
