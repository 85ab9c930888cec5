import asyncio
import contextlib
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from inline_types.cli.annotate import load_or_exit, oracle_or_exit
from inline_types.core.languages import is_supported_path, normalize_path
from inline_types.core.ports.watcher import FileChanges
from inline_types.core.service import InlineTypesService
from inline_types.models import FileChangeType
from inline_types.sources.disk import DiskSourceReader
from inline_types.watcher.watchfiles_adapter import SourceFilter, WatchfilesWatcher

console = Console()

_SKIPPED_DIRECTORIES = frozenset(SourceFilter.ignore_dirs)


def scan_directory(directory: Path) -> Iterator[str]:
    """Yield supported source files below ``directory``, skipping dependency folders."""
    for current, directories, files in os.walk(directory):
        directories[:] = sorted(name for name in directories if name not in _SKIPPED_DIRECTORIES)
        for name in sorted(files):
            if is_supported_path(name):
                yield normalize_path(str(Path(current, name).resolve()))


def watch(
    directory: Annotated[Path, typer.Argument(help="Directory to watch.", exists=True, file_okay=False)],
    config: Annotated[Path | None, typer.Option("--config", "-c", help="JSON settings file.")] = None,
    oracle: Annotated[str, typer.Option(help="Type oracle: local or tsserver.")] = "local",
    initial: Annotated[bool, typer.Option(help="Analyse existing files on start.")] = True,
) -> None:
    """Keep decorations up to date while files in a directory change."""
    configuration = load_or_exit(config)
    type_oracle = oracle_or_exit(oracle, directory)
    reader = DiskSourceReader(directory)

    async def _run() -> None:
        def _report(path: str) -> None:
            count = len(service.get_decorations(path))
            console.print(f"[green]Updated[/green] {escape(path)} ({count} decorations)")

        async def _on_change(changes: FileChanges) -> None:
            for kind, path in changes:
                service.notify_file_change(path, kind)

        service = InlineTypesService(configuration, type_oracle, reader=reader, on_decorations_changed=_report)
        watcher = WatchfilesWatcher(directory, _on_change)
        async with service:
            if initial:
                for path in scan_directory(directory):
                    service.notify_file_change(path, FileChangeType.CREATED)
            await watcher.start()
            console.print(f"[green]Watching[/green] {escape(str(directory))} (Ctrl+C to stop)")
            try:
                await asyncio.Event().wait()
            finally:
                await watcher.stop()

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run())
