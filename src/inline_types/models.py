from enum import Enum
from functools import total_ordering

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


@total_ordering
class Position(_Frozen):
    """Zero-based line and UTF-16 character offset."""

    line: int = Field(ge=0)
    character: int = Field(ge=0)

    def __init__(self, line: int, character: int) -> None:
        super().__init__(line=line, character=character)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Position):
            return NotImplemented
        return (self.line, self.character) < (other.line, other.character)


class TextChange(_Frozen):
    """Replace the text in ``[start, end)`` with ``new_text``."""

    start: Position
    end: Position
    new_text: str = ""

    @model_validator(mode="after")
    def _check_range(self) -> "TextChange":
        if self.end < self.start:
            raise ValueError(f"end {self.end} precedes start {self.start}")
        return self

    @classmethod
    def insert(cls, at: Position, text: str) -> "TextChange":
        return cls(start=at, end=at, new_text=text)

    @classmethod
    def delete(cls, start: Position, end: Position) -> "TextChange":
        return cls(start=start, end=end)


class Decoration(_Frozen):
    text_before: str
    text_after: str
    start_position: Position
    end_position: Position
    is_warning: bool = False

    @model_validator(mode="after")
    def _check_range(self) -> "Decoration":
        if self.end_position < self.start_position:
            raise ValueError(f"end {self.end_position} precedes start {self.start_position}")
        return self

    @property
    def identity(self) -> tuple[Position, Position, str, str]:
        return (self.start_position, self.end_position, self.text_before, self.text_after)


class FileChangeType(str, Enum):
    CREATED = "Created"
    CHANGED = "Changed"
    DELETED = "Deleted"


class FeatureKind(str, Enum):
    VARIABLE_TYPE = "variableType"
    FUNCTION_VARIABLE_TYPE = "functionVariableType"
    FUNCTION_RETURN_TYPE = "functionReturnType"
    FUNCTION_PARAMETER_TYPE = "functionParameterType"
    PROPERTY_TYPE = "propertyType"
    OBJECT_PATTERN_TYPE = "objectPatternType"
    ARRAY_PATTERN_TYPE = "arrayPatternType"
    OBJECT_LITERAL_TYPE = "objectLiteralType"
    PARAMETER_NAME = "parameterName"
    HIGHLIGHT_ANY = "highlightAny"


class BuildResult(_Frozen):
    decorations: tuple[Decoration, ...] = ()
    has_errors: bool = False
