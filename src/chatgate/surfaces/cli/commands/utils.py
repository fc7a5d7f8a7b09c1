from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, NoReturn, Optional

import typer

from ....core.config import ConfigError, resolve_config_path
from ....integrations.chat.config import ChatConfig, load_chat_config


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def require_chat_config(path: Optional[Path]) -> ChatConfig:
    config_path = resolve_config_path(path, env=os.environ)
    try:
        return load_chat_config(config_path)
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)


def load_json_file(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise_exit(f"Unable to read JSON from {path}: {exc}", cause=exc)


def echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
