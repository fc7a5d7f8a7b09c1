import logging
from typing import Optional

import typer

from ... import __version__
from ...core.logging_utils import setup_logging
from .commands.gate import register_gate_commands
from .commands.pairing import register_pairing_commands
from .commands.utils import raise_exit as _raise_exit
from .commands.utils import require_chat_config as _require_chat_config

logger = logging.getLogger("chatgate.cli")

app = typer.Typer(add_completion=False)
pairing_app = typer.Typer(add_completion=False)


def _version_callback(value: bool) -> None:
    if not value:
        return
    typer.echo(f"chatgate {__version__}")
    raise typer.Exit(code=0)


@app.callback()
def _root(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Enable logging at this level (e.g. INFO)"
    ),
) -> None:
    if log_level:
        setup_logging(log_level)


def main() -> None:
    """Entrypoint for CLI execution."""
    app()


register_gate_commands(
    app,
    require_chat_config=_require_chat_config,
    raise_exit=_raise_exit,
)
app.add_typer(pairing_app, name="pairing")
register_pairing_commands(pairing_app, raise_exit=_raise_exit)


if __name__ == "__main__":
    main()
