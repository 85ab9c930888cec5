"""Tests for the tsserver-backed oracle."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import pytest

from inline_types.core.ports.oracle import NodeLocator, QueryKind
from inline_types.core.syntax import parse_source
from inline_types.models import Position
from inline_types.oracle.tsserver import (
    TSSERVER_ENV,
    OracleError,
    TsserverOracle,
    find_tsserver,
    parameter_name_from_help,
    read_message,
    return_type_from_display,
    type_from_display,
)

FAKE_TSSERVER = Path(__file__).parent.parent / "fake_tsserver.py"


class TestTypeFromDisplay:
    @pytest.mark.parametrize(
        ("display", "name", "expected"),
        [
            ("const count: number", "count", "number"),
            ("(property) Foo.bar?: string", "bar", "string"),
            ("let x: { a: number; }", "x", "{ a: number; }"),
            ("(parameter) x: any", "", "any"),
            ("function f(a: number): string", "f", None),
        ],
    )
    def test_type_from_display(self, display: str, name: str, expected: str | None) -> None:
        assert type_from_display(display, name) == expected


class TestReturnTypeFromDisplay:
    @pytest.mark.parametrize(
        ("display", "name", "expected"),
        [
            ("function add(a: number, b: number): number", "add", "number"),
            ("(method) Foo.run(): Promise<void>", "run", "Promise<void>"),
            ("const f: (a: number) => string", "f", "string"),
            ("function wrap(cb: (x: number) => void): boolean", "wrap", "boolean"),
            ("let x: number", "x", None),
        ],
    )
    def test_return_type_from_display(self, display: str, name: str, expected: str | None) -> None:
        assert return_type_from_display(display, name) == expected


class TestParameterNameFromHelp:
    def test_fixed_parameters(self) -> None:
        body = {"items": [{"parameters": [{"name": "a"}, {"name": "b"}], "isVariadic": False}]}
        assert parameter_name_from_help(body, 0) == "a"
        assert parameter_name_from_help(body, 1) == "b"
        assert parameter_name_from_help(body, 2) is None

    def test_rest_parameter_labels_first_overflowing_argument(self) -> None:
        body = {"items": [{"parameters": [{"name": "a"}, {"name": "rest"}], "isVariadic": True}]}
        assert parameter_name_from_help(body, 1) == "...rest"
        assert parameter_name_from_help(body, 2) is None

    def test_selected_item(self) -> None:
        body = {
            "items": [{"parameters": [{"name": "a"}]}, {"parameters": [{"name": "other"}]}],
            "selectedItemIndex": 1,
        }
        assert parameter_name_from_help(body, 0) == "other"

    def test_no_items(self) -> None:
        assert parameter_name_from_help({"items": []}, 0) is None


class TestReadMessage:
    @pytest.mark.asyncio
    async def test_reads_framed_messages_until_eof(self) -> None:
        reader = asyncio.StreamReader()
        for message in ({"seq": 1, "type": "event"}, {"seq": 2, "type": "response"}):
            payload = json.dumps(message).encode("utf-8")
            reader.feed_data(b"Content-Length: %d\r\n\r\n" % len(payload) + payload + b"\n")
        reader.feed_eof()

        assert await read_message(reader) == {"seq": 1, "type": "event"}
        assert await read_message(reader) == {"seq": 2, "type": "response"}
        assert await read_message(reader) is None


class TestFindTsserver:
    def test_environment_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(TSSERVER_ENV, "node /opt/ts/tsserver.js --disableAutomaticTypingAcquisition")
        assert find_tsserver(tmp_path) == ["node", "/opt/ts/tsserver.js", "--disableAutomaticTypingAcquisition"]

    def test_project_installation(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(TSSERVER_ENV, raising=False)
        server = tmp_path / "node_modules" / "typescript" / "lib" / "tsserver.js"
        server.parent.mkdir(parents=True)
        server.write_text("", encoding="utf-8")
        assert find_tsserver(tmp_path) == ["node", str(server)]

    def test_missing(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(TSSERVER_ENV, raising=False)
        monkeypatch.setenv("PATH", str(tmp_path))
        with pytest.raises(OracleError, match="tsserver not found"):
            find_tsserver(tmp_path)


class TestTsserverOracle:
    @pytest.fixture
    def oracle(self, tmp_path: Path) -> TsserverOracle:
        return TsserverOracle(tmp_path, command=[sys.executable, str(FAKE_TSSERVER)], timeout=5.0)

    @pytest.mark.asyncio
    async def test_quickinfo_type(self, oracle: TsserverOracle, tmp_path: Path) -> None:
        source = parse_source(str(tmp_path / "a.ts"), "const count = 1;")
        locator = NodeLocator(kind=QueryKind.TYPE, start_byte=6, end_byte=11, anchor=Position(0, 6), name="count")
        try:
            assert await oracle.infer(source, locator) == "number"
        finally:
            await oracle.close()

    @pytest.mark.asyncio
    async def test_text_is_resynced_after_edits(self, oracle: TsserverOracle, tmp_path: Path) -> None:
        path = str(tmp_path / "a.ts")
        try:
            first = parse_source(path, "let a = 1;")
            await oracle.infer(first, NodeLocator(QueryKind.TYPE, 4, 5, Position(0, 4), name="a"))
            second = parse_source(path, "let b = 1;")
            answer = await oracle.infer(second, NodeLocator(QueryKind.TYPE, 4, 5, Position(0, 4), name="b"))
            assert answer == "number"
        finally:
            await oracle.close()

    @pytest.mark.asyncio
    async def test_failed_request_is_unanswered(self, oracle: TsserverOracle, tmp_path: Path) -> None:
        source = parse_source(str(tmp_path / "a.ts"), "x;")
        locator = NodeLocator(kind=QueryKind.TYPE, start_byte=0, end_byte=1, anchor=Position(5, 0), name="x")
        try:
            assert await oracle.infer(source, locator) is None
        finally:
            await oracle.close()

    @pytest.mark.asyncio
    async def test_signature_help(self, oracle: TsserverOracle, tmp_path: Path) -> None:
        source = parse_source(str(tmp_path / "a.ts"), "f(1, 2, 3);")
        try:
            names = [
                await oracle.infer(
                    source,
                    NodeLocator(QueryKind.PARAMETER_NAME, 0, 10, Position(0, 2 + 3 * index), argument_index=index),
                )
                for index in range(3)
            ]
        finally:
            await oracle.close()
        assert names == ["first", "...rest", None]

    @pytest.mark.asyncio
    async def test_return_type_needs_a_name(self, oracle: TsserverOracle, tmp_path: Path) -> None:
        source = parse_source(str(tmp_path / "a.ts"), "(() => 1)();")
        try:
            assert await oracle.infer(source, NodeLocator(QueryKind.RETURN_TYPE, 1, 8, Position(0, 1))) is None
        finally:
            await oracle.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, oracle: TsserverOracle) -> None:
        await oracle.close()
        await oracle.close()
