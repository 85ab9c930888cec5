from collections.abc import Callable, Coroutine
from typing import Any, Protocol

from inline_types.models import FileChangeType

FileChanges = list[tuple[FileChangeType, str]]
OnFileChanges = Callable[[FileChanges], Coroutine[Any, Any, None]]


class FileWatcherPort(Protocol):
    """Reports created, changed and deleted source files until stopped."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...
