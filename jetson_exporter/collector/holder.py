from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from .models import Snapshot
from .parsers import GovernorReader, parse_snapshot

log = logging.getLogger(__name__)


class Sampler(Protocol):
    def read_latest(self) -> str: ...

    def truncate(self) -> None: ...


class SnapshotHolder:
    """Owns the scrape lock shared by the HTTP scrape path and the log janitor.

    Both the read -> parse sequence and log truncation happen under ``lock``.
    Nothing is kept between scrapes: each snapshot belongs to its caller.
    """

    def __init__(
        self,
        sampler: Sampler,
        governor_reader: Optional[GovernorReader] = None,
        stop_on_unsupported: bool = True,
    ):
        self.sampler = sampler
        self.governor_reader = governor_reader
        self.stop_on_unsupported = stop_on_unsupported
        self.lock = threading.Lock()

    def refresh_locked(self) -> Snapshot:
        """Read and parse the latest line. Caller must hold ``lock``."""
        raw = self.sampler.read_latest()
        if not raw:
            log.info("no tegrastats sample available, exporting empty snapshot")
        return parse_snapshot(raw, self.governor_reader, self.stop_on_unsupported)

    def refresh(self) -> Snapshot:
        with self.lock:
            return self.refresh_locked()

    def truncate_log(self) -> None:
        with self.lock:
            self.sampler.truncate()
