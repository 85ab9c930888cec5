from inline_types.core.registry import FileRegistry
from inline_types.models import Decoration


class DecorationStore:
    """Read-only view over the registry's current decorations."""

    def __init__(self, registry: FileRegistry) -> None:
        self._registry = registry

    def get_decorations(self, path: str) -> tuple[Decoration, ...]:
        entry = self._registry.get(path)
        if entry is None:
            return ()
        return entry.decorations

    def is_dirty(self, path: str) -> bool:
        entry = self._registry.get(path)
        return entry is not None and entry.dirty
