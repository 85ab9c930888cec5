"""Oracle backed by TypeScript's ``tsserver`` running as a child process.

Requests go out as one JSON object per line on stdin; responses and events
come back framed with ``Content-Length`` headers on stdout. File text is pushed
with ``open`` (``fileContent``) so answers reflect unsaved editor state.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import re
import shlex
import shutil
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from inline_types.core.ports.oracle import NodeLocator, QueryKind
from inline_types.core.syntax import SourceFile

logger = logging.getLogger(__name__)

TSSERVER_ENV = "INLINE_TYPES_TSSERVER"

_KIND_PREFIX = re.compile(r"^\([^)]*\)\s*")
_SCRIPT_KINDS = {".ts": "TS", ".tsx": "TSX", ".js": "JS", ".jsx": "JSX", ".mjs": "JS", ".cjs": "JS"}


class OracleError(RuntimeError):
    pass


def find_tsserver(root: str | Path) -> list[str]:
    """Return the command line that starts tsserver for ``root``."""
    override = os.getenv(TSSERVER_ENV)
    if override:
        return shlex.split(override)
    local = Path(root) / "node_modules" / "typescript" / "lib" / "tsserver.js"
    if local.exists():
        return ["node", str(local)]
    found = shutil.which("tsserver")
    if found:
        return [found]
    raise OracleError(f"tsserver not found; install typescript or set {TSSERVER_ENV}")


def _matching_paren(text: str, start: int) -> int:
    depth = 0
    for index in range(start, len(text)):
        if text[index] == "(":
            depth += 1
        elif text[index] == ")":
            depth -= 1
            if depth == 0:
                return index
    return -1


def type_from_display(display: str, name: str) -> str | None:
    """Extract the type from a quickinfo string such as ``const n: number``."""
    if name:
        match = re.search(rf"(?:^|[\s.]){re.escape(name)}\??: ", display)
        if match:
            return display[match.end() :].strip() or None
    body = _KIND_PREFIX.sub("", display)
    head, separator, tail = body.partition(": ")
    if not separator or "(" in head:
        return None
    return tail.strip() or None


def return_type_from_display(display: str, name: str = "") -> str | None:
    """Extract a return type from a function or method quickinfo string.

    Handles declarations (``function f(a: number): string``) as well as
    bindings holding a function type (``const f: (a: number) => string``).
    """
    body = _KIND_PREFIX.sub("", display)
    declared = type_from_display(display, name) if name else None
    if declared is not None and declared.startswith("("):
        close = _matching_paren(declared, 0)
        if close != -1 and declared[close + 1 :].startswith(" => "):
            return declared[close + len(" => ") + 1 :].strip() or None
    open_index = body.find("(")
    if open_index == -1:
        return None
    close = _matching_paren(body, open_index)
    if close == -1 or not body[close + 1 :].startswith(": "):
        return None
    return body[close + 3 :].strip() or None


def parameter_name_from_help(body: dict[str, Any], argument_index: int) -> str | None:
    items = body.get("items") or []
    if not items:
        return None
    selected = body.get("selectedItemIndex", 0)
    item = items[selected] if 0 <= selected < len(items) else items[0]
    parameters = item.get("parameters") or []
    if not parameters:
        return None
    variadic = bool(item.get("isVariadic"))
    if argument_index < len(parameters) - 1 or (argument_index == len(parameters) - 1 and not variadic):
        return parameters[argument_index].get("name") or None
    if variadic and argument_index == len(parameters) - 1:
        name = parameters[-1].get("name")
        return f"...{name}" if name else None
    return None


class TsserverOracle:
    """Implements ``TypeOracle`` by querying a long-lived tsserver process."""

    def __init__(self, root: str | Path, command: Sequence[str] | None = None, timeout: float = 10.0) -> None:
        self._root = Path(root)
        self._command = list(command) if command is not None else None
        self._timeout = timeout
        self._process: asyncio.subprocess.Process | None = None
        self._reader: asyncio.Task[None] | None = None
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._open_files: dict[str, int] = {}
        self._seq = 0
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        if self._process is not None:
            return
        command = self._command or find_tsserver(self._root)
        self._process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
            cwd=str(self._root),
        )
        self._reader = asyncio.create_task(self._read_loop())
        logger.info("tsserver started for %s", self._root)

    async def close(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
            self._reader = None
        if self._process is not None:
            if self._process.returncode is None:
                self._process.terminate()
                with contextlib.suppress(ProcessLookupError):
                    await self._process.wait()
            self._process = None
            logger.info("tsserver stopped for %s", self._root)
        self._fail_pending(OracleError("tsserver closed"))
        self._open_files.clear()

    async def infer(self, source: SourceFile, locator: NodeLocator) -> str | None:
        file_name = self._file_name(source.path)
        async with self._lock:
            await self.start()
            await self._sync(file_name, source)
        location = {"file": file_name, "line": locator.anchor.line + 1, "offset": locator.anchor.character + 1}

        if locator.kind == QueryKind.PARAMETER_NAME:
            body = await self.request("signatureHelp", location)
            if body is None:
                return None
            return parameter_name_from_help(body, locator.argument_index or 0)

        if locator.kind == QueryKind.RETURN_TYPE and not locator.name:
            return None
        body = await self.request("quickinfo", location)
        if body is None:
            return None
        display = str(body.get("displayString", ""))
        if locator.kind == QueryKind.RETURN_TYPE:
            return return_type_from_display(display, locator.name)
        return type_from_display(display, locator.name)

    async def request(self, command: str, arguments: dict[str, Any]) -> dict[str, Any] | None:
        """Send a request and return its body, or ``None`` when tsserver reports failure."""
        loop = asyncio.get_running_loop()
        seq = self._next_seq()
        future: asyncio.Future[dict[str, Any]] = loop.create_future()
        self._pending[seq] = future
        await self._write({"seq": seq, "type": "request", "command": command, "arguments": arguments})
        try:
            response = await asyncio.wait_for(future, self._timeout)
        except asyncio.TimeoutError:
            raise OracleError(f"tsserver timed out on {command}") from None
        finally:
            self._pending.pop(seq, None)
        if not response.get("success", False):
            logger.debug("tsserver %s failed: %s", command, response.get("message"))
            return None
        body = response.get("body")
        return body if isinstance(body, dict) else None

    async def notify(self, command: str, arguments: dict[str, Any]) -> None:
        await self._write({"seq": self._next_seq(), "type": "request", "command": command, "arguments": arguments})

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def _file_name(self, path: str) -> str:
        file_path = Path(path)
        if not file_path.is_absolute():
            file_path = self._root / file_path
        return file_path.resolve().as_posix()

    async def _sync(self, file_name: str, source: SourceFile) -> None:
        fingerprint = hash(source.text)
        if self._open_files.get(file_name) == fingerprint:
            return
        if file_name in self._open_files:
            await self.notify("close", {"file": file_name})
        arguments = {"file": file_name, "fileContent": source.text}
        script_kind = _SCRIPT_KINDS.get(Path(file_name).suffix.lower())
        if script_kind:
            arguments["scriptKindName"] = script_kind
        await self.notify("open", arguments)
        self._open_files[file_name] = fingerprint

    async def _write(self, message: dict[str, Any]) -> None:
        if self._process is None or self._process.stdin is None:
            raise OracleError("tsserver is not running")
        self._process.stdin.write((json.dumps(message) + "\n").encode("utf-8"))
        await self._process.stdin.drain()

    async def _read_loop(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        stdout = self._process.stdout
        try:
            while True:
                message = await read_message(stdout)
                if message is None:
                    break
                if message.get("type") != "response":
                    continue
                future = self._pending.get(int(message.get("request_seq", -1)))
                if future is not None and not future.done():
                    future.set_result(message)
        except Exception:
            logger.exception("tsserver reader failed")
        self._fail_pending(OracleError("tsserver exited"))

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()


async def read_message(stream: asyncio.StreamReader) -> dict[str, Any] | None:
    """Read one ``Content-Length`` framed JSON message, or ``None`` at EOF."""
    length: int | None = None
    while True:
        line = await stream.readline()
        if not line:
            return None
        header = line.decode("utf-8").strip()
        if not header:
            if length is not None:
                break
            continue
        name, _, value = header.partition(":")
        if name.lower() == "content-length":
            length = int(value.strip())
    payload = await stream.readexactly(length)
    return json.loads(payload.decode("utf-8"))
