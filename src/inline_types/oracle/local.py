"""Syntax-directed type inference over a single file.

``LocalTypeOracle`` answers from what is visible in the parsed file: explicit
annotations, literal initialisers, local declarations and return statements.
It never guesses: anything that would need a real type checker yields
``None``, except the cases where TypeScript itself falls back to ``any``
(untyped parameters without defaults, declarations without initialisers).
"""

import logging

from tree_sitter import Node

from inline_types.core.ports.oracle import NodeLocator, QueryKind
from inline_types.core.syntax import (
    FIELD_NODE_TYPES,
    FUNCTION_NODE_TYPES,
    PARAMETER_NODE_TYPES,
    SourceFile,
    named_children,
    parameter_binding,
    parameter_nodes,
)

logger = logging.getLogger(__name__)

_MAX_DEPTH = 8

_SCOPE_NODE_TYPES = frozenset({"program", "statement_block", "class_body", "switch_body"})
_DECLARATION_NODE_TYPES = frozenset({"lexical_declaration", "variable_declaration"})
_LITERAL_TYPES = {
    "number": "number",
    "string": "string",
    "template_string": "string",
    "true": "boolean",
    "false": "boolean",
    "null": "null",
    "undefined": "undefined",
    "regex": "RegExp",
}
_BOOLEAN_OPERATORS = frozenset({"==", "!=", "===", "!==", "<", ">", "<=", ">=", "instanceof", "in"})
_NUMERIC_OPERATORS = frozenset({"-", "*", "/", "%", "**", "<<", ">>", ">>>", "&", "|", "^"})
_UNARY_TYPES = {"!": "boolean", "typeof": "string", "-": "number", "+": "number", "~": "number", "void": "undefined"}


def _is_field(parent: Node | None, name: str, node: Node) -> bool:
    if parent is None:
        return False
    child = parent.child_by_field_name(name)
    return child is not None and child.start_byte == node.start_byte and child.end_byte == node.end_byte


def _wrap(type_text: str) -> str:
    if "|" in type_text or "=>" in type_text or "&" in type_text:
        return f"({type_text})"
    return type_text


def union(types: list[str]) -> str:
    distinct: list[str] = []
    for type_text in types:
        if type_text not in distinct:
            distinct.append(type_text)
    return " | ".join(distinct)


def annotation_text(source: SourceFile, node: Node, field: str = "type") -> str | None:
    """Return the written type of ``node``'s annotation field, without the colon."""
    annotation = node.child_by_field_name(field)
    if annotation is None:
        return None
    text = source.text_of(annotation).strip()
    if text.startswith(":"):
        text = text[1:].strip()
    return text or None


class LocalTypeOracle:
    """Oracle backed by the parsed file alone."""

    async def infer(self, source: SourceFile, locator: NodeLocator) -> str | None:
        node = source.node_at(locator.start_byte, locator.end_byte)
        if node is None:
            logger.debug("No node at bytes %d-%d in %s", locator.start_byte, locator.end_byte, source.path)
            return None
        if locator.kind == QueryKind.RETURN_TYPE:
            function = _enclosing_function(node)
            return self.return_type(source, function, 0) if function is not None else None
        if locator.kind == QueryKind.PARAMETER_NAME:
            return self.parameter_name(source, node, locator.argument_index or 0)
        return self.type_of(source, node, 0)

    async def close(self) -> None:
        return None

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    def type_of(self, source: SourceFile, node: Node, depth: int) -> str | None:
        """Type of a binding name, or of an expression when ``node`` is not one."""
        if depth > _MAX_DEPTH:
            return None
        parent = node.parent
        if parent is None:
            return self.expression_type(source, node, depth)

        if parent.type == "variable_declarator" and _is_field(parent, "name", node):
            return self._declarator_type(source, parent, depth)
        if parent.type in PARAMETER_NODE_TYPES and _is_field(parent, "pattern", node):
            return self._parameter_type(source, parent, depth)
        if parent.type == "assignment_pattern" and _is_field(parent, "left", node):
            return self._with_default(source, node, parent.child_by_field_name("right"), depth)
        if parent.type == "formal_parameters" or (
            parent.type == "arrow_function" and _is_field(parent, "parameter", node)
        ):
            return "any"
        if parent.type in FIELD_NODE_TYPES and (
            _is_field(parent, "name", node) or _is_field(parent, "property", node)
        ):
            written = annotation_text(source, parent)
            if written:
                return written
            value = parent.child_by_field_name("value")
            return self.expression_type(source, value, depth + 1) if value is not None else "any"
        if parent.type == "object_assignment_pattern" and _is_field(parent, "left", node):
            return self._with_default(source, node, parent.child_by_field_name("right"), depth)
        if node.type == "shorthand_property_identifier_pattern":
            return self._destructured_property(source, parent, source.text_of(node), depth)
        if parent.type == "pair_pattern" and _is_field(parent, "value", node):
            key = parent.child_by_field_name("key")
            pattern = parent.parent
            if key is None or pattern is None:
                return None
            return self._destructured_property(source, pattern, _key_name(source, key), depth)
        if parent.type == "array_pattern":
            return self._destructured_element(source, parent, node, depth)
        if node.type == "shorthand_property_identifier":
            return self._reference_type(source, node, depth)
        return self.expression_type(source, node, depth)

    def _with_default(self, source: SourceFile, binding: Node, default: Node | None, depth: int) -> str | None:
        container = binding.parent
        if container is not None and container.type == "object_assignment_pattern" and container.parent is not None:
            found = self._destructured_property(source, container.parent, source.text_of(binding), depth)
            if found is not None:
                return found
        if default is None:
            return "any"
        return self.expression_type(source, default, depth + 1)

    def _declarator_type(self, source: SourceFile, declarator: Node, depth: int) -> str | None:
        written = annotation_text(source, declarator)
        if written:
            return written
        value = declarator.child_by_field_name("value")
        if value is None:
            return "any"
        return self.expression_type(source, value, depth + 1)

    def _parameter_type(self, source: SourceFile, parameter: Node, depth: int) -> str | None:
        written = annotation_text(source, parameter)
        if written:
            return written
        value = parameter.child_by_field_name("value")
        if value is not None:
            return self.expression_type(source, value, depth + 1)
        pattern = parameter.child_by_field_name("pattern")
        if pattern is not None and pattern.type == "rest_pattern":
            return "any[]"
        return "any"

    def _pattern_source(self, pattern: Node) -> Node | None:
        """Return the expression a destructuring pattern is matched against."""
        parent = pattern.parent
        if parent is not None and parent.type == "variable_declarator" and _is_field(parent, "name", pattern):
            return parent.child_by_field_name("value")
        return None

    def _literal_behind(self, source: SourceFile, expression: Node | None, kind: str, depth: int) -> Node | None:
        while expression is not None and depth <= _MAX_DEPTH:
            if expression.type == kind:
                return expression
            if expression.type == "parenthesized_expression":
                inner = named_children(expression)
                expression = inner[0] if inner else None
            elif expression.type == "identifier":
                declaration = self.resolve(source, expression)
                if declaration is None or declaration.parent is None:
                    return None
                if declaration.parent.type != "variable_declarator":
                    return None
                expression = declaration.parent.child_by_field_name("value")
            else:
                return None
            depth += 1
        return None

    def _destructured_property(self, source: SourceFile, pattern: Node, key: str, depth: int) -> str | None:
        literal = self._literal_behind(source, self._pattern_source(pattern), "object", depth)
        if literal is None:
            return None
        for member in named_children(literal):
            if member.type == "pair":
                member_key = member.child_by_field_name("key")
                value = member.child_by_field_name("value")
                if member_key is not None and value is not None and _key_name(source, member_key) == key:
                    return self.expression_type(source, value, depth + 1)
            elif member.type == "shorthand_property_identifier" and source.text_of(member) == key:
                return self._reference_type(source, member, depth + 1)
        return None

    def _destructured_element(self, source: SourceFile, pattern: Node, binding: Node, depth: int) -> str | None:
        literal = self._literal_behind(source, self._pattern_source(pattern), "array", depth)
        if literal is None:
            return None
        index = next((i for i, item in enumerate(named_children(pattern)) if item.start_byte == binding.start_byte), None)
        elements = named_children(literal)
        if index is None or index >= len(elements):
            return None
        if elements[index].type == "spread_element":
            return None
        return self.expression_type(source, elements[index], depth + 1)

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def expression_type(self, source: SourceFile, node: Node, depth: int) -> str | None:
        if depth > _MAX_DEPTH:
            return None
        kind = node.type
        if kind in _LITERAL_TYPES:
            return _LITERAL_TYPES[kind]
        if kind == "identifier":
            return self._reference_type(source, node, depth)
        if kind == "parenthesized_expression":
            inner = named_children(node)
            return self.expression_type(source, inner[0], depth + 1) if inner else None
        if kind == "array":
            return self._array_type(source, node, depth)
        if kind == "object":
            return self._object_type(source, node, depth)
        if kind in FUNCTION_NODE_TYPES:
            return self.function_type(source, node, depth)
        if kind == "class":
            name = node.child_by_field_name("name")
            return f"typeof {source.text_of(name)}" if name is not None else None
        if kind == "new_expression":
            constructor = node.child_by_field_name("constructor")
            if constructor is None:
                return None
            type_arguments = node.child_by_field_name("type_arguments")
            suffix = source.text_of(type_arguments) if type_arguments is not None else ""
            return source.text_of(constructor) + suffix
        if kind in ("as_expression", "satisfies_expression"):
            named = named_children(node)
            if kind == "as_expression" and len(named) == 2:
                return source.text_of(named[1])
            return self.expression_type(source, named[0], depth + 1) if named else None
        if kind == "type_assertion":
            named = named_children(node)
            if named and named[0].type == "type_arguments":
                return source.text_of(named[0])[1:-1].strip()
            return None
        if kind == "call_expression":
            return self._call_type(source, node, depth)
        if kind == "unary_expression":
            operator = node.child_by_field_name("operator")
            return _UNARY_TYPES.get(source.text_of(operator)) if operator is not None else None
        if kind == "update_expression":
            return "number"
        if kind == "binary_expression":
            return self._binary_type(source, node, depth)
        if kind == "ternary_expression":
            consequence = node.child_by_field_name("consequence")
            alternative = node.child_by_field_name("alternative")
            if consequence is None or alternative is None:
                return None
            left = self.expression_type(source, consequence, depth + 1)
            right = self.expression_type(source, alternative, depth + 1)
            return union([left, right]) if left and right else None
        if kind == "assignment_expression":
            right = node.child_by_field_name("right")
            return self.expression_type(source, right, depth + 1) if right is not None else None
        if kind == "await_expression":
            inner = named_children(node)
            awaited = self.expression_type(source, inner[0], depth + 1) if inner else None
            if awaited and awaited.startswith("Promise<") and awaited.endswith(">"):
                return awaited[len("Promise<") : -1]
            return awaited if awaited and not awaited.startswith("Promise") else None
        return None

    def _reference_type(self, source: SourceFile, node: Node, depth: int) -> str | None:
        name = source.text_of(node)
        if name == "undefined":
            return "undefined"
        if name in ("NaN", "Infinity"):
            return "number"
        declaration = self.resolve(source, node)
        if declaration is None:
            return None
        if declaration.type in FUNCTION_NODE_TYPES:
            return self.function_type(source, declaration, depth + 1)
        if declaration.type in ("class_declaration", "class"):
            return f"typeof {name}"
        return self.type_of(source, declaration, depth + 1)

    def _array_type(self, source: SourceFile, node: Node, depth: int) -> str | None:
        elements = named_children(node)
        if not elements:
            return "any[]"
        types: list[str] = []
        for element in elements:
            if element.type == "spread_element":
                return None
            element_type = self.expression_type(source, element, depth + 1)
            if element_type is None:
                return None
            types.append(element_type)
        return f"{_wrap(union(types))}[]"

    def _object_type(self, source: SourceFile, node: Node, depth: int) -> str | None:
        members: list[str] = []
        for member in named_children(node):
            if member.type == "pair":
                key = member.child_by_field_name("key")
                value = member.child_by_field_name("value")
                if key is None or value is None or key.type == "computed_property_name":
                    return None
                value_type = self.expression_type(source, value, depth + 1)
                if value_type is None:
                    return None
                members.append(f"{_key_name(source, key)}: {value_type};")
            elif member.type == "shorthand_property_identifier":
                value_type = self._reference_type(source, member, depth + 1)
                if value_type is None:
                    return None
                members.append(f"{source.text_of(member)}: {value_type};")
            elif member.type == "method_definition":
                name = member.child_by_field_name("name")
                method_type = self.function_type(source, member, depth + 1)
                if name is None or method_type is None:
                    return None
                members.append(f"{source.text_of(name)}: {method_type};")
            else:
                return None
        if not members:
            return "{}"
        return "{ " + " ".join(members) + " }"

    def _binary_type(self, source: SourceFile, node: Node, depth: int) -> str | None:
        operator = node.child_by_field_name("operator")
        if operator is None:
            return None
        symbol = source.text_of(operator)
        if symbol in _BOOLEAN_OPERATORS:
            return "boolean"
        if symbol in _NUMERIC_OPERATORS:
            return "number"
        if symbol == "+":
            left = node.child_by_field_name("left")
            right = node.child_by_field_name("right")
            if left is None or right is None:
                return None
            types = {self.expression_type(source, left, depth + 1), self.expression_type(source, right, depth + 1)}
            if "string" in types:
                return "string"
            if types == {"number"}:
                return "number"
        return None

    def _call_type(self, source: SourceFile, node: Node, depth: int) -> str | None:
        callee = self._callee(source, node)
        if callee is None:
            return None
        return self.return_type(source, callee, depth + 1)

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------

    def function_type(self, source: SourceFile, function: Node, depth: int) -> str | None:
        if depth > _MAX_DEPTH:
            return None
        parameters: list[str] = []
        for parameter in parameter_nodes(function):
            binding = parameter_binding(parameter)
            parameter_type = self.type_of(source, binding, depth + 1) or "any"
            optional = "?" if parameter.type == "optional_parameter" else ""
            parameters.append(f"{source.text_of(binding)}{optional}: {parameter_type}")
        returned = self.return_type(source, function, depth + 1)
        if returned is None:
            return None
        return f"({', '.join(parameters)}) => {returned}"

    def return_type(self, source: SourceFile, function: Node, depth: int) -> str | None:
        if depth > _MAX_DEPTH:
            return None
        written = annotation_text(source, function, "return_type")
        if written:
            return written
        if function.type.startswith("generator") or _has_token(function, "*"):
            return None
        body = function.child_by_field_name("body")
        if body is None:
            return None
        if body.type != "statement_block":
            inferred = self.expression_type(source, body, depth + 1)
        else:
            types: list[str] = []
            for statement in _return_statements(body):
                values = named_children(statement)
                if not values:
                    types.append("undefined")
                    continue
                value_type = self.expression_type(source, values[0], depth + 1)
                if value_type is None:
                    return None
                types.append(value_type)
            if not types or all(value_type == "undefined" for value_type in types):
                inferred = "void"
            else:
                inferred = union(types)
        if inferred is None:
            return None
        if _has_token(function, "async"):
            return f"Promise<{inferred}>"
        return inferred

    def parameter_name(self, source: SourceFile, call: Node, argument_index: int) -> str | None:
        callee = self._callee(source, call)
        if callee is None:
            return None
        parameters = parameter_nodes(callee)
        if argument_index >= len(parameters):
            return None
        parameter = parameters[argument_index]
        binding = parameter_binding(parameter)
        if binding.type == "rest_pattern":
            inner = named_children(binding)
            if inner and inner[0].type == "identifier":
                return "..." + source.text_of(inner[0])
            return None
        if binding.type != "identifier":
            return None
        return source.text_of(binding)

    def _callee(self, source: SourceFile, call: Node) -> Node | None:
        """Return the local function or constructor a call/new expression invokes."""
        while call.type not in ("call_expression", "new_expression") and call.parent is not None:
            call = call.parent
        target = call.child_by_field_name("function")
        if target is None:
            target = call.child_by_field_name("constructor")
        if target is None or target.type != "identifier":
            return None
        declaration = self.resolve(source, target)
        if declaration is None:
            return None
        if declaration.type in FUNCTION_NODE_TYPES:
            return declaration if call.type == "call_expression" else None
        if declaration.type in ("class_declaration", "class"):
            return _constructor_of(source, declaration) if call.type == "new_expression" else None
        parent = declaration.parent
        if parent is not None and parent.type == "variable_declarator":
            value = parent.child_by_field_name("value")
            if value is not None and value.type in FUNCTION_NODE_TYPES:
                return value
        return None

    # ------------------------------------------------------------------
    # Scope resolution
    # ------------------------------------------------------------------

    def resolve(self, source: SourceFile, reference: Node) -> Node | None:
        """Find the declaration a name refers to, searching enclosing scopes outward.

        Returns the binding identifier for variables and parameters, or the
        function/class declaration node itself.
        """
        name = source.text_of(reference)
        scope = reference.parent
        while scope is not None:
            if scope.type in FUNCTION_NODE_TYPES:
                for parameter in parameter_nodes(scope):
                    binding = parameter_binding(parameter)
                    if binding.type == "identifier" and source.text_of(binding) == name:
                        return binding
            if scope.type in _SCOPE_NODE_TYPES:
                found = _declared_in(source, scope, name)
                if found is not None and found.start_byte != reference.start_byte:
                    return found
            scope = scope.parent
        return None


def _declared_in(source: SourceFile, scope: Node, name: str) -> Node | None:
    for statement in named_children(scope):
        if statement.type == "export_statement":
            declaration = statement.child_by_field_name("declaration")
            if declaration is None:
                continue
            statement = declaration
        if statement.type in _DECLARATION_NODE_TYPES:
            for declarator in named_children(statement):
                if declarator.type != "variable_declarator":
                    continue
                binding = declarator.child_by_field_name("name")
                if binding is not None and binding.type == "identifier" and source.text_of(binding) == name:
                    return binding
        elif statement.type in ("function_declaration", "generator_function_declaration", "class_declaration"):
            declared = statement.child_by_field_name("name")
            if declared is not None and source.text_of(declared) == name:
                return statement
    return None


def _constructor_of(source: SourceFile, class_node: Node) -> Node | None:
    body = class_node.child_by_field_name("body")
    if body is None:
        return None
    for member in named_children(body):
        if member.type == "method_definition":
            name = member.child_by_field_name("name")
            if name is not None and source.text_of(name) == "constructor":
                return member
    return None


def _return_statements(body: Node) -> list[Node]:
    found: list[Node] = []
    stack = list(reversed(body.children))
    while stack:
        node = stack.pop()
        if node.type == "return_statement":
            found.append(node)
            continue
        if node.type in FUNCTION_NODE_TYPES or node.type in ("class", "class_declaration"):
            continue
        stack.extend(reversed(node.children))
    return found


def _has_token(node: Node, token: str) -> bool:
    return any(not child.is_named and child.type == token for child in node.children)


def _key_name(source: SourceFile, key: Node) -> str:
    text = source.text_of(key)
    if key.type == "string" and len(text) >= 2:
        return text[1:-1]
    return text


def _enclosing_function(node: Node | None) -> Node | None:
    while node is not None and node.type not in FUNCTION_NODE_TYPES:
        node = node.parent
    return node
