from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from typing import List, Optional

log = logging.getLogger(__name__)

LOG_NAME = "tegrastats.log"
BIN_PATHS = ["/usr/bin/tegrastats", "/home/nvidia/tegrastats"]
# tegrastats lines are a few hundred bytes
MAX_TAIL = 64 * 1024

# -----------------------------
# Helpers
# -----------------------------

def _run(cmd: List[str], timeout: int = 10) -> bool:
    """Run a short command, True on exit code 0. Never raises."""
    try:
        proc = subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        log.error("command not found: %s", cmd[0])
        return False
    except subprocess.TimeoutExpired:
        log.error("command timed out after %ds: %s", timeout, shlex.join(cmd))
        return False

    if proc.returncode != 0:
        log.error("%s failed with %d: %s", shlex.join(cmd), proc.returncode, proc.stderr.strip())
        return False
    return True


def tail_line(path: str, chunk: int = 4096, limit: int = MAX_TAIL) -> str:
    """Last newline-terminated line of *path*; a trailing partial line is skipped.

    At most *limit* bytes are read back from the end. NUL padding, left
    when tegrastats writes past a truncated log, is dropped.
    """
    chunks: List[bytes] = []
    newlines = 0
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        pos = f.tell()
        stop = max(0, pos - limit)
        # need the terminating newline plus the one before the line
        while pos > stop and newlines < 2:
            step = min(chunk, pos - stop)
            pos -= step
            f.seek(pos)
            data = f.read(step)
            chunks.append(data)
            newlines += data.count(b"\n")
    buf = b"".join(reversed(chunks))
    if b"\n" not in buf:
        return ""
    complete = buf[: buf.rindex(b"\n")]
    line = complete.rsplit(b"\n", 1)[-1].replace(b"\0", b"")
    return line.decode("utf-8", errors="replace").strip()


# -----------------------------
# Public API
# -----------------------------

class Tegrastats:
    """Drives the vendor ``tegrastats`` utility through its log file.

    tegrastats appends one line per interval to ``<log_dir>/tegrastats.log``;
    the exporter only ever needs the newest complete line.
    """

    def __init__(self, command: str = "tegrastats", interval_ms: int = 1000, log_dir: str = "."):
        self.command = command
        self.interval_ms = interval_ms
        self.log_dir = os.path.abspath(log_dir)
        self._proc: Optional[subprocess.Popen] = None

    @property
    def log_file(self) -> str:
        return os.path.join(self.log_dir, LOG_NAME)

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def find_binary(self) -> Optional[str]:
        if os.path.sep in self.command:
            return self.command if os.path.isfile(self.command) else None
        for path in BIN_PATHS:
            if os.path.isfile(path):
                return path
        return shutil.which(self.command)

    def start(self, interval_ms: Optional[int] = None, log_dir: Optional[str] = None) -> bool:
        if self.running:
            log.info("tegrastats already running as pid %d", self._proc.pid)
            return True

        if interval_ms is not None:
            self.interval_ms = interval_ms
        if log_dir is not None:
            self.log_dir = os.path.abspath(log_dir)

        binary = self.find_binary()
        if binary is None:
            log.warning("tegrastats not found in %s or on PATH", ", ".join(BIN_PATHS))
            return False

        os.makedirs(self.log_dir, exist_ok=True)
        cmd = [binary, "--interval", str(self.interval_ms), "--logfile", self.log_file]
        log.info("exec cmd %s", shlex.join(cmd))
        try:
            self._proc = subprocess.Popen(
                cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
            )
        except OSError as exc:
            log.error("failed to start tegrastats: %s", exc)
            self._proc = None
            return False
        return True

    def stop(self) -> None:
        binary = self.find_binary()
        if binary is not None:
            log.info("exec cmd %s --stop", binary)
            _run([binary, "--stop"])
        if self.running:
            self._proc.terminate()
            try:
                self._proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                log.warning("tegrastats did not exit, killing pid %d", self._proc.pid)
                self._proc.kill()
        self._proc = None
        log.info("tegrastats stopped")

    def read_latest(self) -> str:
        try:
            return tail_line(self.log_file)
        except FileNotFoundError:
            log.debug("%s does not exist yet", self.log_file)
            return ""
        except OSError as exc:
            log.error("reading %s failed: %s", self.log_file, exc)
            return ""

    def truncate(self) -> None:
        if not os.path.exists(self.log_file):
            return
        try:
            with open(self.log_file, "w"):
                pass
        except OSError as exc:
            log.error("cleaning up %s failed: %s", self.log_file, exc)
            return
        log.info("cleaned up %s", self.log_file)
