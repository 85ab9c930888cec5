import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from rich.color import Color, ColorParseError

from inline_types.models import FeatureKind

SETTINGS_PREFIX = "inlineTypes"
UPDATE_DELAY_ENV = "INLINE_TYPES_UPDATE_DELAY"

Theme = Literal["light", "dark"]


class _Settings(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel, extra="forbid")


class Features(_Settings):
    variable_type: bool = True
    function_variable_type: bool = False
    function_return_type: bool = True
    function_parameter_type: bool = True
    property_type: bool = True
    object_pattern_type: bool = True
    array_pattern_type: bool = True
    object_literal_type: bool = True
    parameter_name: bool = True
    highlight_any: bool = True

    def enabled(self, kind: FeatureKind) -> bool:
        return bool(getattr(self, _FEATURE_FIELDS[kind]))


_FEATURE_FIELDS = {
    kind: name for name, info in Features.model_fields.items() for kind in FeatureKind if info.alias == kind.value
}


class DecorationStyle(_Settings):
    opacity: float = Field(default=0.5, ge=0.0, le=1.0)
    color: str = "black"
    warn_color: str = "#FF2400"

    @field_validator("color", "warn_color")
    @classmethod
    def _check_color(cls, value: str) -> str:
        try:
            Color.parse(value)
        except ColorParseError as exc:
            raise ValueError(str(exc)) from None
        return value

    def color_for(self, is_warning: bool) -> str:
        return self.warn_color if is_warning else self.color


class Configuration(_Settings):
    """Immutable settings snapshot handed to one service instance."""

    features: Features = Field(default_factory=Features)
    update_delay: int = Field(default=0, ge=0)
    light_theme_decoration_style: DecorationStyle = Field(default_factory=lambda: DecorationStyle(color="black"))
    dark_theme_decoration_style: DecorationStyle = Field(default_factory=lambda: DecorationStyle(color="white"))

    def style_for(self, theme: Theme) -> DecorationStyle:
        return self.dark_theme_decoration_style if theme == "dark" else self.light_theme_decoration_style

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "Configuration":
        """Build a configuration from editor-style settings.

        Accepts dotted keys (``inlineTypes.features.variableType``), the same
        keys without the ``inlineTypes`` prefix, or already nested mappings.
        Unrelated top-level keys are ignored.
        """
        nested: dict[str, Any] = {}
        for key, value in settings.items():
            parts = key.split(".")
            if parts[0] == SETTINGS_PREFIX:
                parts = parts[1:]
            elif "." in key:
                continue
            if not parts:
                if isinstance(value, Mapping):
                    _merge(nested, value)
                continue
            if parts[0] not in _TOP_LEVEL_KEYS:
                continue
            _assign(nested, parts, value)
        return cls.model_validate(nested)


_TOP_LEVEL_KEYS = {info.alias for info in Configuration.model_fields.values()}


def _assign(target: dict[str, Any], parts: list[str], value: Any) -> None:
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    if isinstance(value, Mapping) and isinstance(target.get(parts[-1]), dict):
        _merge(target[parts[-1]], value)
    else:
        target[parts[-1]] = dict(value) if isinstance(value, Mapping) else value


def _merge(target: dict[str, Any], values: Mapping[str, Any]) -> None:
    for key, value in values.items():
        _assign(target, key.split("."), value)


def load_configuration(path: str | Path | None = None) -> Configuration:
    settings: dict[str, Any] = {}
    if path is not None:
        loaded = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(loaded, dict):
            raise ValueError(f"{path}: expected a JSON object of settings")
        settings = loaded
    delay = os.getenv(UPDATE_DELAY_ENV)
    if delay is not None:
        settings[f"{SETTINGS_PREFIX}.updateDelay"] = delay
    return Configuration.from_settings(settings)
