from pathlib import PurePath

_LANGUAGE_ALIASES = {
    "javascript": "javascript",
    "javascriptreact": "javascript",
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "tsx",
    "typescript": "typescript",
    "typescriptreact": "tsx",
}

_EXTENSION_LANGUAGE_MAP = {
    ".cjs": "javascript",
    ".cts": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".mts": "typescript",
    ".ts": "typescript",
    ".tsx": "tsx",
}

_SUPPORTED_LANGUAGES = set(_EXTENSION_LANGUAGE_MAP.values())

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(_EXTENSION_LANGUAGE_MAP)


def normalize_language(language: str) -> str:
    normalized = language.strip().lower()
    resolved = _LANGUAGE_ALIASES.get(normalized, normalized)
    if resolved not in _SUPPORTED_LANGUAGES:
        raise ValueError(f"Unsupported language '{language}'. Supported: {sorted(_SUPPORTED_LANGUAGES)}")
    return resolved


def detect_language_from_path(file_path: str | PurePath) -> str:
    suffix = PurePath(file_path).suffix.lower()
    if suffix in _EXTENSION_LANGUAGE_MAP:
        return _EXTENSION_LANGUAGE_MAP[suffix]
    raise ValueError(f"Unsupported file extension: {suffix}")


def is_supported_path(file_path: str | PurePath) -> bool:
    return PurePath(file_path).suffix.lower() in _EXTENSION_LANGUAGE_MAP


def resolve_language(language: str | None, file_path: str | PurePath | None) -> str:
    if language:
        return normalize_language(language)
    if file_path:
        return detect_language_from_path(file_path)
    raise ValueError("Language must be provided when no file path is available.")


def normalize_path(file_name: str) -> str:
    """Convert host paths to the forward-slash form the service keys on."""
    return file_name.replace("\\", "/")
