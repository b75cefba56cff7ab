from __future__ import annotations

import logging
import os
from typing import Tuple

from pydantic import BaseModel

log = logging.getLogger(__name__)

# *** How to override at runtime:
# export JETSON_EXP_BIND=127.0.0.1:9995
# export JETSON_EXP_INTERVAL_MS=500
# export JETSON_EXP_CLEANUP_HOURS=6
# python -m jetson_exporter.cli serve
ENV_PREFIX = "JETSON_EXP_"
LOG_FORMAT = "%(asctime)s  %(levelname)s %(message)s"


def _env(name: str, default: str) -> str:
    return os.getenv(ENV_PREFIX + name, default)


def _env_int(name: str, default: int) -> int:
    raw = _env(name, str(default))
    try:
        return int(raw)
    except ValueError:
        log.warning("%s%s=%r is not an integer, using %d", ENV_PREFIX, name, raw, default)
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name, "1" if default else "0").strip().lower()
    return raw in ("1", "true", "yes", "on")


class Settings(BaseModel):
    bind: str = "0.0.0.0:9995"
    log_dir: str = "."
    interval_ms: int = 1000
    cleanup_hours: int = 1
    namespace: str = "nvidia_jetson"
    sysfs_root: str = "/sys"
    stop_on_unsupported_core: bool = True
    spawn_sampler: bool = True
    command: str = "tegrastats"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            bind=_env("BIND", "0.0.0.0:9995"),
            log_dir=_env("LOG_DIR", os.getcwd()),
            interval_ms=_env_int("INTERVAL_MS", 1000),
            cleanup_hours=_env_int("CLEANUP_HOURS", 1),
            namespace=_env("NAMESPACE", "nvidia_jetson"),
            sysfs_root=_env("SYSFS_ROOT", "/sys"),
            stop_on_unsupported_core=_env_bool("STOP_ON_UNSUPPORTED_CORE", True),
            spawn_sampler=_env_bool("SPAWN", True),
            command=_env("COMMAND", "tegrastats"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
        )

    def host_port(self) -> Tuple[str, int]:
        """Split `host:port` or `[v6]:port`; a bare port binds every interface."""
        host, _, port = self.bind.rpartition(":")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        try:
            number = int(port)
        except ValueError:
            raise ValueError(f"bind address {self.bind!r} needs a numeric port") from None
        if not 0 < number < 65536:
            raise ValueError(f"bind port {number} out of range")
        return host or "0.0.0.0", number


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
