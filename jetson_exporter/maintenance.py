from __future__ import annotations

import logging
import threading
from typing import Optional

from .collector.holder import SnapshotHolder

log = logging.getLogger(__name__)


class LogJanitor:
    """Truncates the tegrastats log every *interval_hours* hours.

    Truncation takes the holder lock, so it never interleaves with a scrape.
    """

    def __init__(self, holder: SnapshotHolder, interval_hours: float = 1):
        self.holder = holder
        self.interval_s = max(float(interval_hours), 0.0) * 3600
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> None:
        try:
            self.holder.truncate_log()
        except Exception as exc:
            log.error("log cleanup error: %s", exc)

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_s):
            self.run_once()

    def start(self) -> bool:
        if self.interval_s <= 0:
            log.info("log cleanup disabled")
            return False
        log.info("start job to clean up logfile every %g h", self.interval_s / 3600)
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="log-janitor", daemon=True)
        self._thread.start()
        return True

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
