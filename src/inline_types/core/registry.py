from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from inline_types.core.positions import apply_change, clamp_decorations, normalize_change, remap_decorations
from inline_types.models import Decoration, TextChange


@dataclass
class FileEntry:
    """Mutable per-file state, owned by the event loop thread."""

    path: str
    text: str = ""
    decorations: tuple[Decoration, ...] = ()
    generation: int = 0
    dirty: bool = False
    loaded: bool = False
    opened: bool = False
    needs_reload: bool = False
    pending_changes: list[TextChange] = field(default_factory=list)

    def bump(self) -> int:
        self.generation += 1
        self.dirty = True
        return self.generation


class FileRegistry:
    """Tracks text, decorations and dirtiness for every known file."""

    def __init__(self) -> None:
        self._entries: dict[str, FileEntry] = {}

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FileEntry]:
        return iter(list(self._entries.values()))

    def get(self, path: str) -> FileEntry | None:
        return self._entries.get(path)

    def ensure(self, path: str) -> FileEntry:
        entry = self._entries.get(path)
        if entry is None:
            entry = FileEntry(path=path)
            self._entries[path] = entry
        return entry

    def remove(self, path: str) -> FileEntry | None:
        return self._entries.pop(path, None)

    def mark_reload(self, path: str) -> FileEntry:
        """Flag ``path`` so its text is re-read before the next rebuild.

        Files whose text came from an editor buffer keep that text; they are
        only marked dirty.
        """
        entry = self.ensure(path)
        if not entry.opened:
            entry.needs_reload = True
        entry.bump()
        return entry

    def open(self, path: str, text: str) -> FileEntry:
        entry = self.ensure(path)
        entry.text = text
        entry.loaded = True
        entry.opened = True
        entry.needs_reload = False
        entry.pending_changes.clear()
        entry.decorations = clamp_decorations(text, entry.decorations)
        entry.bump()
        return entry

    def apply_document_changes(self, path: str, changes: Iterable[TextChange]) -> FileEntry:
        """Apply edits in order, remapping decorations through each one.

        Edits to a file whose text has not been loaded yet, or is about to be
        re-read, are queued and replayed by :meth:`load`.
        """
        entry = self.ensure(path)
        changes = list(changes)
        if not entry.loaded or entry.needs_reload:
            entry.pending_changes.extend(changes)
            if not entry.opened:
                entry.needs_reload = True
        else:
            for change in changes:
                self._apply(entry, change)
        entry.bump()
        return entry

    def load(self, path: str, text: str) -> FileEntry | None:
        """Install text read from disk and replay any queued edits."""
        entry = self._entries.get(path)
        if entry is None:
            return None
        entry.text = text
        entry.loaded = True
        entry.needs_reload = False
        pending, entry.pending_changes = entry.pending_changes, []
        entry.decorations = clamp_decorations(text, entry.decorations)
        for change in pending:
            self._apply(entry, change)
        return entry

    @staticmethod
    def _apply(entry: FileEntry, change: TextChange) -> None:
        change = normalize_change(entry.text, change)
        entry.text = apply_change(entry.text, change)
        entry.decorations = remap_decorations(entry.decorations, change)
