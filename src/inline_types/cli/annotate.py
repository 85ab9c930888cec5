import asyncio
from pathlib import Path
from typing import Annotated, cast

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from inline_types.cli.render import decoration_table, render_inline
from inline_types.config import Configuration, Theme, load_configuration
from inline_types.core.languages import is_supported_path
from inline_types.core.ports.oracle import TypeOracle
from inline_types.core.service import InlineTypesService
from inline_types.models import Decoration
from inline_types.oracle import ORACLE_KINDS, OracleError, create_oracle, find_tsserver

console = Console()

THEMES = ("light", "dark")


def load_or_exit(config: Path | None) -> Configuration:
    try:
        return load_configuration(config)
    except ValidationError as exc:
        console.print("[red]Invalid configuration[/red]")
        console.print(str(exc), markup=False)
        raise typer.Exit(code=2) from None
    except (OSError, ValueError) as exc:
        console.print(f"[red]Could not read configuration:[/red] {escape(str(exc))}")
        raise typer.Exit(code=2) from None


def oracle_or_exit(kind: str, root: Path) -> TypeOracle:
    if kind not in ORACLE_KINDS:
        raise typer.BadParameter(f"expected one of {', '.join(ORACLE_KINDS)}", param_hint="--oracle")
    if kind == "tsserver":
        try:
            find_tsserver(root)
        except OracleError as exc:
            console.print(f"[red]{escape(str(exc))}[/red]")
            raise typer.Exit(code=1) from None
    return create_oracle(kind, root)


async def annotate_text(
    path: str, text: str, configuration: Configuration, oracle: TypeOracle
) -> tuple[Decoration, ...]:
    """Run one full analysis of ``text`` and return its decorations."""
    async with InlineTypesService(configuration, oracle) as service:
        service.notify_document_open(path, text)
        await service.flush()
        return service.get_decorations(path)


def annotate(
    path: Annotated[Path, typer.Argument(help="TypeScript or JavaScript file.", exists=True, dir_okay=False)],
    config: Annotated[Path | None, typer.Option("--config", "-c", help="JSON settings file.")] = None,
    oracle: Annotated[str, typer.Option(help="Type oracle: local or tsserver.")] = "local",
    theme: Annotated[str, typer.Option(help="Colour theme: light or dark.")] = "light",
    as_list: Annotated[bool, typer.Option("--list", help="Print a table of decorations instead.")] = False,
) -> None:
    """Print a file with its inferred types shown inline."""
    if theme not in THEMES:
        raise typer.BadParameter(f"expected one of {', '.join(THEMES)}", param_hint="--theme")
    if not is_supported_path(path):
        console.print(f"[red]Unsupported file extension:[/red] {escape(path.suffix)}")
        raise typer.Exit(code=1)

    configuration = load_or_exit(config)
    type_oracle = oracle_or_exit(oracle, Path.cwd())
    with path.open(encoding="utf-8", newline="") as handle:
        text = handle.read()

    decorations = asyncio.run(annotate_text(str(path.resolve()), text, configuration, type_oracle))
    if as_list:
        console.print(decoration_table(decorations))
        console.print(f"({len(decorations)} decorations)")
        return
    style = configuration.style_for(cast(Theme, theme))
    console.print(render_inline(text, decorations, style), soft_wrap=True)
