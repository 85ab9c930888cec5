from typing import Protocol


class SourceReader(Protocol):
    async def read(self, path: str) -> str: ...
