from __future__ import annotations

import asyncio
import contextlib
import logging
from pathlib import Path

from watchfiles import Change, DefaultFilter, awatch

from inline_types.core.languages import is_supported_path, normalize_path
from inline_types.core.ports.watcher import FileChanges, OnFileChanges
from inline_types.models import FileChangeType

logger = logging.getLogger(__name__)

_CHANGE_TYPES: dict[Change, FileChangeType] = {
    Change.added: FileChangeType.CREATED,
    Change.modified: FileChangeType.CHANGED,
    Change.deleted: FileChangeType.DELETED,
}


class SourceFilter(DefaultFilter):
    """Let through TypeScript/JavaScript sources outside dependency and tool folders."""

    ignore_dirs = (*DefaultFilter.ignore_dirs, "node_modules")

    def __call__(self, change: Change, path: str) -> bool:
        return is_supported_path(path) and super().__call__(change, path)


def to_file_changes(raw_changes: set[tuple[Change, str]]) -> FileChanges:
    """Keep supported source files, mapped to ``FileChangeType``, in a stable order."""
    changes = {
        (_CHANGE_TYPES[change], normalize_path(path))
        for change, path in raw_changes
        if change in _CHANGE_TYPES and is_supported_path(path)
    }
    return sorted(changes, key=lambda item: (item[1], item[0].value))


class WatchfilesWatcher:
    """Watch a directory for TypeScript/JavaScript changes and trigger a callback.

    Implements the ``FileWatcherPort`` protocol.
    """

    def __init__(self, directory: str | Path, on_change: OnFileChanges) -> None:
        self._directory = Path(directory)
        self._on_change = on_change
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._watch())
        logger.info("Watcher started for %s", self._directory)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Watcher stopped for %s", self._directory)

    async def _watch(self) -> None:
        async for raw_changes in awatch(self._directory, watch_filter=SourceFilter()):
            changes = to_file_changes(raw_changes)
            if changes:
                logger.info("Detected %d file change(s)", len(changes))
                try:
                    await self._on_change(changes)
                except Exception:
                    logger.exception("Error in watcher callback")
