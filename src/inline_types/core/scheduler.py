"""Per-file debounced rebuilds.

Every edit re-arms a trailing-edge timer for its file. When the timer fires
the file is rebuilt from its current text, and the result is accepted only if
no newer edit arrived while the builder was running.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from inline_types.core.builder import DecorationBuilder
from inline_types.core.ports.source import SourceReader
from inline_types.core.registry import FileEntry, FileRegistry

logger = logging.getLogger(__name__)

DecorationsChanged = Callable[[str], None]


class UpdateScheduler:
    def __init__(
        self,
        registry: FileRegistry,
        builder: DecorationBuilder,
        reader: SourceReader | None = None,
        update_delay: int = 0,
        on_decorations_changed: DecorationsChanged | None = None,
    ) -> None:
        self._registry = registry
        self._builder = builder
        self._reader = reader
        self._delay = max(0, update_delay) / 1000
        self._on_decorations_changed = on_decorations_changed
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._rebuilds: dict[str, set[asyncio.Task[None]]] = {}
        self._closed = False

    def is_armed(self, path: str) -> bool:
        timer = self._timers.get(path)
        return timer is not None and not timer.done()

    def schedule(self, path: str) -> None:
        """(Re)arm the debounce timer for ``path``. Must run on the loop thread."""
        if self._closed:
            return
        timer = self._timers.get(path)
        if timer is not None and not timer.done():
            timer.cancel()
        self._timers[path] = asyncio.get_running_loop().create_task(self._fire(path))

    def cancel(self, path: str) -> None:
        """Drop the pending timer and any in-flight rebuild for ``path``."""
        timer = self._timers.pop(path, None)
        if timer is not None:
            timer.cancel()
        for task in self._rebuilds.pop(path, set()):
            task.cancel()

    async def flush(self) -> None:
        """Wait until no timer is armed and no rebuild is running."""
        while True:
            tasks = [task for task in self._tasks() if not task.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        self._closed = True
        tasks = self._tasks()
        for task in tasks:
            task.cancel()
        self._timers.clear()
        self._rebuilds.clear()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _is_pending(self, path: str) -> bool:
        """Whether another timer or rebuild will still produce a result for ``path``."""
        current = asyncio.current_task()
        return self.is_armed(path) or any(task is not current for task in self._rebuilds.get(path, ()))

    def _tasks(self) -> list[asyncio.Task[None]]:
        tasks = list(self._timers.values())
        for running in self._rebuilds.values():
            tasks.extend(running)
        return tasks

    async def _fire(self, path: str) -> None:
        await asyncio.sleep(self._delay)
        task = asyncio.current_task()
        assert task is not None
        # From here on this task is a rebuild; re-arming no longer cancels it.
        if self._timers.get(path) is task:
            del self._timers[path]
        running = self._rebuilds.setdefault(path, set())
        running.add(task)
        try:
            await self._rebuild(path)
        finally:
            running.discard(task)
            if not running and self._rebuilds.get(path) is running:
                del self._rebuilds[path]

    async def _rebuild(self, path: str) -> None:
        entry = self._registry.get(path)
        if entry is None:
            return
        if entry.needs_reload and not await self._reload(entry):
            return

        generation = entry.generation
        try:
            result = await self._builder.build(path, entry.text, version=generation)
        except Exception:
            logger.exception("Rebuild failed for %s", path)
            if self._registry.get(path) is entry and entry.generation == generation:
                entry.dirty = False
            return

        if self._registry.get(path) is not entry or entry.generation != generation:
            logger.debug("Discarding stale decorations for %s (generation %d)", path, generation)
            if self._registry.get(path) is entry and entry.dirty and not self._is_pending(path):
                self.schedule(path)
            return

        entry.dirty = False
        if result.has_errors and entry.decorations:
            logger.debug("Keeping previous decorations for %s; parse has errors", path)
            return
        entry.decorations = result.decorations
        logger.info("Applied %d decoration(s) to %s", len(result.decorations), path)
        self._notify(path)

    async def _reload(self, entry: FileEntry) -> bool:
        if self._reader is None:
            self._registry.load(entry.path, entry.text)
            return True
        generation = entry.generation
        try:
            text = await self._reader.read(entry.path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read %s: %s", entry.path, exc)
            if self._registry.get(entry.path) is not entry:
                return False
            if entry.loaded and entry.pending_changes:
                # Keep queued edits on top of the text we already have.
                self._registry.load(entry.path, entry.text)
                return True
            if entry.generation == generation:
                entry.needs_reload = False
                entry.dirty = False
            return False
        if self._registry.get(entry.path) is not entry:
            return False
        if entry.needs_reload:
            self._registry.load(entry.path, text)
        return True

    def _notify(self, path: str) -> None:
        if self._on_decorations_changed is None:
            return
        try:
            self._on_decorations_changed(path)
        except Exception:
            logger.exception("Error in decorations callback for %s", path)
