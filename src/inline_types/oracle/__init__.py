from pathlib import Path

from inline_types.core.ports.oracle import TypeOracle
from inline_types.oracle.local import LocalTypeOracle
from inline_types.oracle.tsserver import OracleError, TsserverOracle, find_tsserver

ORACLE_KINDS = ("local", "tsserver")


def create_oracle(kind: str, root: str | Path = ".") -> TypeOracle:
    if kind == "local":
        return LocalTypeOracle()
    if kind == "tsserver":
        return TsserverOracle(root)
    raise ValueError(f"Unknown oracle '{kind}'. Supported: {list(ORACLE_KINDS)}")


__all__ = [
    "ORACLE_KINDS",
    "LocalTypeOracle",
    "OracleError",
    "TsserverOracle",
    "create_oracle",
    "find_tsserver",
]
