from __future__ import annotations

import asyncio
from pathlib import Path


class DiskSourceReader:
    """Read file text from disk, off the event loop thread.

    Implements the ``SourceReader`` protocol. Relative paths resolve
    against ``root``.
    """

    def __init__(self, root: str | Path = ".", encoding: str = "utf-8") -> None:
        self._root = Path(root)
        self._encoding = encoding

    def resolve(self, path: str) -> Path:
        file_path = Path(path)
        return file_path if file_path.is_absolute() else self._root / file_path

    async def read(self, path: str) -> str:
        return await asyncio.to_thread(self._read, self.resolve(path))

    def _read(self, path: Path) -> str:
        # Line endings stay as written.
        with path.open(encoding=self._encoding, newline="") as handle:
            return handle.read()
