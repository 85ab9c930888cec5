import logging
from typing import Annotated

import typer

from inline_types.cli.annotate import annotate
from inline_types.cli.watch import watch

app = typer.Typer(
    name="inline-types",
    help="Inline types: show inferred TypeScript/JavaScript types next to the code.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)

app.command("annotate")(annotate)
app.command("watch")(watch)


@app.callback()
def configure(
    log_level: Annotated[str, typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ...).")] = "WARNING",
) -> None:
    logging.basicConfig(level=log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def main() -> None:
    app()
