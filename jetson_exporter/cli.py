#!/usr/bin/env python
"""
jetson-exporter serve [--bind 0.0.0.0:9995] [--interval 1000] ...
jetson-exporter parse tegrastats.log
jetson-exporter scrape http://jetson:9995
"""
from __future__ import annotations

import logging
import platform
import sys
from pathlib import Path
from typing import Optional

import requests
import typer

from jetson_exporter import __version__
from jetson_exporter.collector.parsers import SysfsGovernorReader, parse_snapshot
from jetson_exporter.collector.sampler import tail_line
from jetson_exporter.config import Settings, configure_logging

log = logging.getLogger(__name__)

app = typer.Typer(add_completion=False, help="Prometheus exporter for detailed jetson info")


def _print_header() -> None:
    log.info(
        "Jetson Prometheus Exporter %s  Python: %s  OS: %s  ARCH: %s",
        __version__,
        platform.python_version(),
        platform.system(),
        platform.machine(),
    )


@app.command()
def serve(
    bind: Optional[str] = typer.Option(None, "--bind", "-b", help="Address to bind to"),
    log_dir: Optional[Path] = typer.Option(
        None, "--log-dir", "-p", help="Directory tegrastats dumps its output to"
    ),
    interval: Optional[int] = typer.Option(
        None, "--interval", "-i", help="Samples the information every <milliseconds>"
    ),
    cleanup_hours: Optional[int] = typer.Option(
        None, "--cleanup-hours", "-l", help="Hours between tegrastats log clean ups, 0 disables"
    ),
    no_spawn: bool = typer.Option(
        False, "--no-spawn", help="Read an existing log instead of starting tegrastats"
    ),
):
    """Start tegrastats and serve /metrics."""
    import uvicorn

    from jetson_exporter.api import create_app

    settings = Settings.from_env()
    overrides = {
        "bind": bind,
        "log_dir": str(log_dir) if log_dir else None,
        "interval_ms": interval,
        "cleanup_hours": cleanup_hours,
    }
    settings = settings.model_copy(update={k: v for k, v in overrides.items() if v is not None})
    if no_spawn:
        settings = settings.model_copy(update={"spawn_sampler": False})

    configure_logging(settings.log_level)
    _print_header()
    try:
        host, port = settings.host_port()
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--bind")
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())


@app.command()
def parse(
    file: Optional[Path] = typer.Argument(None, help="tegrastats log; stdin when omitted"),
    sysfs_root: str = typer.Option("/sys", help="Where to look up CPU scaling governors"),
    keep_going: bool = typer.Option(
        False, "--keep-going", help="Keep cores that have no scaling governor"
    ),
):
    """Parse the last line of a tegrastats log and print it as JSON."""
    if file is None:
        lines = [ln for ln in sys.stdin.read().splitlines() if ln.strip()]
        line = lines[-1] if lines else ""
    else:
        try:
            line = tail_line(str(file))
        except OSError as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(code=1)

    snapshot = parse_snapshot(line, SysfsGovernorReader(sysfs_root), not keep_going)
    typer.echo(snapshot.model_dump_json(indent=2))


@app.command()
def scrape(
    url: str = typer.Argument("http://127.0.0.1:9995", help="exporter base URL"),
    timeout: float = typer.Option(10, help="seconds"),
):
    """Fetch /metrics from a running exporter."""
    try:
        r = requests.get(url.rstrip("/") + "/metrics", timeout=timeout)
        r.raise_for_status()
    except requests.RequestException as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(r.text, nl=False)


def main() -> None:
    app()


if __name__ == "__main__":
    main()          # `python -m jetson_exporter.cli serve --no-spawn`
