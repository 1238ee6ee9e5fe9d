from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Callable, Mapping, Optional

import typer

from lunals import __version__
from lunals.server import start_io, start_tcp

app = typer.Typer(add_completion=False)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _context_callable(ctx: typer.Context, key: str, default: Callable) -> Callable:
    obj = ctx.obj
    if isinstance(obj, Mapping):
        candidate = obj.get(key)
        if callable(candidate):
            return candidate
    return default


def _configure_logging(debug_log: Path | None) -> logging.Handler:
    root = logging.getLogger("lunals")
    if debug_log is None:
        handler: logging.Handler = logging.NullHandler()
    else:
        handler = logging.FileHandler(debug_log, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.setLevel(logging.DEBUG)
    root.addHandler(handler)
    return handler


def _announce_port(port: int) -> None:
    print(f"lunals listening on 127.0.0.1:{port}", file=sys.stderr, flush=True)


@app.command()
def main(
    ctx: typer.Context,
    port: Optional[int] = typer.Option(
        None,
        "-p",
        "--port",
        min=0,
        max=65535,
        help="Serve on a loopback TCP port instead of stdio (0 picks a free port).",
    ),
    debug_log: Optional[Path] = typer.Option(
        None,
        "-d",
        "--debug-log",
        dir_okay=False,
        help="Append debug logging to this file.",
    ),
) -> None:
    """Run the lunals language server."""
    handler = _configure_logging(debug_log)
    log = logging.getLogger("lunals.cli")
    log.info("lunals %s starting", __version__)
    try:
        if port is None:
            _context_callable(ctx, "start_io", start_io)()
        else:
            _context_callable(ctx, "start_tcp", start_tcp)(port, on_ready=_announce_port)
    except KeyboardInterrupt:
        log.info("interrupted")
    finally:
        logging.getLogger("lunals").removeHandler(handler)
        handler.close()
