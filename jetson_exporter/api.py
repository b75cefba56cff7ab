# jetson_exporter/api.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Response
from fastapi.responses import HTMLResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from jetson_exporter import __version__
from jetson_exporter.collector.holder import SnapshotHolder
from jetson_exporter.collector.models import Snapshot
from jetson_exporter.collector.parsers import GovernorReader, SysfsGovernorReader
from jetson_exporter.collector.projector import TegrastatsCollector
from jetson_exporter.collector.sampler import Tegrastats
from jetson_exporter.config import Settings
from jetson_exporter.maintenance import LogJanitor

log = logging.getLogger(__name__)

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width">
    <title>Jetson Prometheus Exporter</title>
</head>
<body>
<h1>Jetson Prometheus Exporter</h1>
<p><a href="/metrics">Metrics</a></p>
<p><a href="/snapshot">Latest snapshot (JSON)</a></p>
</body>
</html>
"""


def create_app(
    settings: Optional[Settings] = None,
    sampler=None,
    governor_reader: Optional[GovernorReader] = None,
) -> FastAPI:
    """Build the exporter app.

    *sampler* defaults to a :class:`Tegrastats` writing into
    ``settings.log_dir``; tests pass a fake with the same methods.
    """
    settings = settings or Settings.from_env()
    sampler = sampler or Tegrastats(settings.command, settings.interval_ms, settings.log_dir)
    holder = SnapshotHolder(
        sampler,
        governor_reader or SysfsGovernorReader(settings.sysfs_root),
        settings.stop_on_unsupported_core,
    )
    registry = CollectorRegistry(auto_describe=False)
    registry.register(TegrastatsCollector(holder, settings.namespace))
    janitor = LogJanitor(holder, settings.cleanup_hours)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.spawn_sampler:
            sampler.start(settings.interval_ms, settings.log_dir)
        else:
            log.info("not spawning tegrastats, reading %s", sampler.log_file)
        janitor.start()
        log.info("Providing metrics at http://%s/metrics", settings.bind)
        try:
            yield
        finally:
            log.info("Shutdown Server ...")
            janitor.stop()
            if settings.spawn_sampler:
                sampler.stop()
            log.info("Server exiting")

    # ---------- FastAPI ----------------------------------------------------
    app = FastAPI(title="Jetson Prometheus Exporter", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.sampler = sampler
    app.state.holder = holder
    app.state.registry = registry
    app.state.janitor = janitor

    @app.get("/", response_class=HTMLResponse)
    def index():
        return INDEX_HTML

    @app.get("/metrics")
    def metrics():
        return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    @app.get("/snapshot", response_model=Snapshot)
    def snapshot():
        return holder.refresh()

    @app.get("/healthz")
    def healthz():
        return {
            "status": "ok",
            "sampler_running": bool(sampler.running),
            "log_file": sampler.log_file,
        }

    return app
