"""Tests for the watchfiles watcher adapter."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from watchfiles import Change

from inline_types.models import FileChangeType
from inline_types.watcher.watchfiles_adapter import SourceFilter, WatchfilesWatcher, to_file_changes


class TestToFileChanges:
    def test_maps_change_kinds(self) -> None:
        changes = {
            (Change.added, "/src/a.ts"),
            (Change.modified, "/src/b.tsx"),
            (Change.deleted, "/src/c.js"),
        }
        assert to_file_changes(changes) == [
            (FileChangeType.CREATED, "/src/a.ts"),
            (FileChangeType.CHANGED, "/src/b.tsx"),
            (FileChangeType.DELETED, "/src/c.js"),
        ]

    def test_drops_unsupported_files(self) -> None:
        changes = {(Change.added, "/src/readme.md"), (Change.modified, "/src/Makefile")}
        assert to_file_changes(changes) == []

    def test_normalizes_paths(self) -> None:
        assert to_file_changes({(Change.modified, "C:\\src\\a.ts")}) == [(FileChangeType.CHANGED, "C:/src/a.ts")]


class TestSourceFilter:
    @pytest.mark.parametrize("path", ["/src/a.ts", "/src/ui/view.tsx", "/src/lib.mjs"])
    def test_accepts_sources(self, path: str) -> None:
        assert SourceFilter()(Change.modified, path) is True

    @pytest.mark.parametrize(
        "path",
        ["/src/node_modules/lib/index.js", "/src/.git/hooks/x.js", "/src/readme.md", "/src/.venv/a.ts"],
    )
    def test_rejects_dependencies_and_other_files(self, path: str) -> None:
        assert SourceFilter()(Change.added, path) is False


class TestWatchfilesWatcher:
    def test_implements_protocol(self) -> None:
        from inline_types.core.ports.watcher import FileWatcherPort

        callback = AsyncMock()
        watcher: FileWatcherPort = WatchfilesWatcher("/tmp", callback)
        assert hasattr(watcher, "start")
        assert hasattr(watcher, "stop")

    @pytest.mark.asyncio
    async def test_start_creates_task(self) -> None:
        callback = AsyncMock()
        watcher = WatchfilesWatcher("/tmp", callback)

        with patch("inline_types.watcher.watchfiles_adapter.awatch") as mock_awatch:
            mock_awatch.return_value = _empty_async_iter()
            await watcher.start()
            assert watcher._task is not None
            await watcher.stop()
            assert watcher._task is None

    @pytest.mark.asyncio
    async def test_watch_uses_source_filter(self) -> None:
        watcher = WatchfilesWatcher("/tmp", AsyncMock())

        with patch("inline_types.watcher.watchfiles_adapter.awatch") as mock_awatch:
            mock_awatch.return_value = _empty_async_iter()
            await watcher.start()
            await asyncio.sleep(0)
            await watcher.stop()

        assert isinstance(mock_awatch.call_args.kwargs["watch_filter"], SourceFilter)

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self) -> None:
        watcher = WatchfilesWatcher("/tmp", AsyncMock())
        await watcher.stop()

    @pytest.mark.asyncio
    async def test_double_start_is_noop(self) -> None:
        watcher = WatchfilesWatcher("/tmp", AsyncMock())

        with patch("inline_types.watcher.watchfiles_adapter.awatch") as mock_awatch:
            mock_awatch.return_value = _empty_async_iter()
            await watcher.start()
            task = watcher._task
            await watcher.start()
            assert watcher._task is task
            await watcher.stop()

    @pytest.mark.asyncio
    async def test_callback_receives_supported_files(self) -> None:
        callback = AsyncMock()
        watcher = WatchfilesWatcher("/tmp", callback)

        changes = {(Change.added, "/tmp/foo.ts"), (Change.modified, "/tmp/bar.txt"), (Change.deleted, "/tmp/baz.js")}

        with patch("inline_types.watcher.watchfiles_adapter.awatch") as mock_awatch:
            mock_awatch.return_value = _single_change_iter(changes)
            await watcher.start()
            await asyncio.sleep(0.05)
            await watcher.stop()

        callback.assert_called_once_with(
            [(FileChangeType.DELETED, "/tmp/baz.js"), (FileChangeType.CREATED, "/tmp/foo.ts")]
        )

    @pytest.mark.asyncio
    async def test_callback_not_called_for_unsupported_only(self) -> None:
        callback = AsyncMock()
        watcher = WatchfilesWatcher("/tmp", callback)

        with patch("inline_types.watcher.watchfiles_adapter.awatch") as mock_awatch:
            mock_awatch.return_value = _single_change_iter({(Change.added, "/tmp/readme.txt")})
            await watcher.start()
            await asyncio.sleep(0.05)
            await watcher.stop()

        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_failing_callback_keeps_watching(self) -> None:
        callback = AsyncMock(side_effect=[RuntimeError("boom"), None])
        watcher = WatchfilesWatcher("/tmp", callback)

        batches = [{(Change.added, "/tmp/a.ts")}, {(Change.modified, "/tmp/a.ts")}]
        with patch("inline_types.watcher.watchfiles_adapter.awatch") as mock_awatch:
            mock_awatch.return_value = _batches_iter(batches)
            await watcher.start()
            await asyncio.sleep(0.05)
            await watcher.stop()

        assert callback.await_count == 2


async def _empty_async_iter() -> AsyncIterator[Any]:
    """Async iterator that never yields, just blocks until cancelled."""
    try:
        await asyncio.sleep(3600)
    except asyncio.CancelledError:
        return
    yield  # pragma: no cover


async def _single_change_iter(changes: set[tuple[Change, str]]) -> AsyncIterator[set[tuple[Change, str]]]:
    """Async iterator that yields one set of changes then blocks."""
    yield changes
    try:
        await asyncio.sleep(3600)
    except asyncio.CancelledError:
        return


async def _batches_iter(batches: list[set[tuple[Change, str]]]) -> AsyncIterator[set[tuple[Change, str]]]:
    for batch in batches:
        yield batch
    try:
        await asyncio.sleep(3600)
    except asyncio.CancelledError:
        return
