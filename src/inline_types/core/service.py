from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any

from inline_types.config import Configuration
from inline_types.core.builder import DecorationBuilder
from inline_types.core.languages import is_supported_path
from inline_types.core.ports.oracle import TypeOracle
from inline_types.core.ports.source import SourceReader
from inline_types.core.registry import FileRegistry
from inline_types.core.scheduler import DecorationsChanged, UpdateScheduler
from inline_types.core.store import DecorationStore
from inline_types.models import Decoration, FileChangeType, TextChange

logger = logging.getLogger(__name__)


class InlineTypesService:
    """Entry point for hosts: file events in, decorations out.

    Notifications may arrive from any thread. They are applied on the event
    loop the service is bound to (the running loop at first use, unless one
    is passed in) and return immediately; analysis happens later on that
    loop. Notifications sent before any loop is bound are held and applied
    in arrival order once one is. ``get_decorations`` only reads the current
    state.
    """

    def __init__(
        self,
        configuration: Configuration,
        oracle: TypeOracle,
        reader: SourceReader | None = None,
        builder: DecorationBuilder | None = None,
        on_decorations_changed: DecorationsChanged | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._configuration = configuration
        self._oracle = oracle
        self._loop = loop
        self._lock = threading.Lock()
        self._backlog: list[tuple[Callable[..., None], tuple[Any, ...]]] = []
        self._registry = FileRegistry()
        self._store = DecorationStore(self._registry)
        self._scheduler = UpdateScheduler(
            self._registry,
            builder or DecorationBuilder(configuration.features, oracle),
            reader=reader,
            update_delay=configuration.update_delay,
            on_decorations_changed=on_decorations_changed,
        )

    @property
    def configuration(self) -> Configuration:
        return self._configuration

    @property
    def registry(self) -> FileRegistry:
        return self._registry

    @property
    def store(self) -> DecorationStore:
        return self._store

    def notify_file_change(self, path: str, kind: FileChangeType | str) -> None:
        self._dispatch(self._on_file_change, path, FileChangeType(kind))

    def notify_document_change(self, path: str, changes: Iterable[TextChange]) -> None:
        self._dispatch(self._on_document_change, path, tuple(changes))

    def notify_document_open(self, path: str, text: str) -> None:
        self._dispatch(self._on_document_open, path, text)

    def get_decorations(self, path: str) -> tuple[Decoration, ...]:
        if path not in self._registry and is_supported_path(path):
            self._dispatch(self._on_unknown_path, path)
        return self._store.get_decorations(path)

    async def flush(self) -> None:
        await self._scheduler.flush()

    async def close(self) -> None:
        await self._scheduler.close()
        await self._oracle.close()

    async def __aenter__(self) -> InlineTypesService:
        running = asyncio.get_running_loop()
        with self._lock:
            self._loop = self._loop or running
        if self._loop is running:
            self._drain()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _dispatch(self, callback: Callable[..., None], *args: Any) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        with self._lock:
            if self._loop is None:
                if running is None:
                    self._backlog.append((callback, args))
                    logger.debug("Holding %s until an event loop is bound", callback.__name__)
                    return
                self._loop = running
            loop = self._loop
        if running is loop:
            self._drain()
            callback(*args)
        else:
            loop.call_soon_threadsafe(callback, *args)

    def _drain(self) -> None:
        with self._lock:
            backlog, self._backlog = self._backlog, []
        for callback, args in backlog:
            callback(*args)

    def _on_file_change(self, path: str, kind: FileChangeType) -> None:
        if kind == FileChangeType.DELETED:
            if self._registry.remove(path) is not None:
                self._scheduler.cancel(path)
                logger.debug("Forgot %s", path)
            return
        if not is_supported_path(path):
            return
        self._registry.mark_reload(path)
        self._scheduler.schedule(path)

    def _on_document_change(self, path: str, changes: tuple[TextChange, ...]) -> None:
        if not is_supported_path(path):
            return
        self._registry.apply_document_changes(path, changes)
        self._scheduler.schedule(path)

    def _on_document_open(self, path: str, text: str) -> None:
        if not is_supported_path(path):
            return
        self._registry.open(path, text)
        self._scheduler.schedule(path)

    def _on_unknown_path(self, path: str) -> None:
        if path in self._registry:
            return
        self._registry.mark_reload(path)
        self._scheduler.schedule(path)
