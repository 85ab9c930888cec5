from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from inline_types.core.syntax import SourceFile
from inline_types.models import Position


class QueryKind(str, Enum):
    TYPE = "type"
    RETURN_TYPE = "returnType"
    PARAMETER_NAME = "parameterName"


@dataclass(frozen=True)
class NodeLocator:
    """Identifies the syntax node a query is about.

    ``start_byte``/``end_byte`` select the node in the parsed tree. ``anchor`` is
    the editor position a language server should be asked about (the name of a
    binding, the name a function is reachable through, or the start of a call
    argument). ``argument_index`` is only set for parameter-name queries.
    """

    kind: QueryKind
    start_byte: int
    end_byte: int
    anchor: Position
    name: str = ""
    argument_index: int | None = None


class TypeOracle(Protocol):
    async def infer(self, source: SourceFile, locator: NodeLocator) -> str | None: ...

    async def close(self) -> None: ...
