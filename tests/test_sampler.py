import os
import stat
import time

import pytest

from jetson_exporter.collector.sampler import Tegrastats, tail_line

FAKE_TEGRASTATS = """#!/bin/sh
if [ "$1" = "--stop" ]; then
    exit 0
fi
echo "RAM 1/2MB (lfb 1x4MB) MTS fg 1% bg 2%" >> "$4"
exec sleep 30
"""


@pytest.fixture
def fake_binary(tmp_path):
    path = tmp_path / "tegrastats"
    path.write_text(FAKE_TEGRASTATS)
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return str(path)


def test_tail_line_returns_last_complete_line(tmp_path):
    log = tmp_path / "tegrastats.log"
    log.write_text("first\nsecond\nthird\n")
    assert tail_line(str(log)) == "third"

    # tegrastats still writing the next line
    log.write_text("first\nsecond\nthi")
    assert tail_line(str(log)) == "second"

    log.write_text("no newline yet")
    assert tail_line(str(log)) == ""

    log.write_text("")
    assert tail_line(str(log)) == ""


def test_tail_line_across_chunks(tmp_path):
    log = tmp_path / "tegrastats.log"
    long_line = "VDD_IN 1/1 " * 200
    log.write_text("old\n" + long_line + "\n")
    assert tail_line(str(log), chunk=16) == long_line.strip()


def test_tail_line_skips_nul_padding(tmp_path):
    log = tmp_path / "tegrastats.log"
    with open(log, "wb") as f:
        f.write(b"\0" * (1024 * 1024))
        f.write(b"RAM 1/2MB (lfb 1x4MB)\n")
    assert tail_line(str(log)) == "RAM 1/2MB (lfb 1x4MB)"


def test_tail_line_reads_back_at_most_limit(tmp_path):
    log = tmp_path / "tegrastats.log"
    log.write_text("x" * 100 + "MTS fg 1% bg 2%\n")
    assert tail_line(str(log), chunk=8, limit=16) == "MTS fg 1% bg 2%"


def test_read_latest_after_sparse_write(tmp_path):
    sampler = Tegrastats(log_dir=str(tmp_path))
    with open(sampler.log_file, "w") as f:
        f.write("RAM 1/2MB\n" * 1000)
    sampler.truncate()
    # a writer that kept its offset leaves a hole in front of its next line
    with open(sampler.log_file, "r+b") as f:
        f.seek(10000)
        f.write(b"MTS fg 3% bg 4%\n")
    assert sampler.read_latest() == "MTS fg 3% bg 4%"


def test_read_latest_without_log(tmp_path):
    sampler = Tegrastats(log_dir=str(tmp_path))
    assert sampler.read_latest() == ""


def test_truncate(tmp_path):
    sampler = Tegrastats(log_dir=str(tmp_path))
    sampler.truncate()  # missing file is fine
    assert not os.path.exists(sampler.log_file)

    with open(sampler.log_file, "w") as f:
        f.write("RAM 1/2MB\n")
    assert sampler.read_latest() == "RAM 1/2MB"
    sampler.truncate()
    assert os.path.getsize(sampler.log_file) == 0
    assert sampler.read_latest() == ""


def test_start_without_binary(tmp_path):
    sampler = Tegrastats(command=str(tmp_path / "missing"), log_dir=str(tmp_path))
    assert sampler.find_binary() is None
    assert sampler.start() is False
    assert not sampler.running
    sampler.stop()  # nothing to stop, must not raise


def test_start_read_stop(tmp_path, fake_binary):
    log_dir = tmp_path / "logs"
    sampler = Tegrastats(command=fake_binary)
    assert sampler.start(interval_ms=200, log_dir=str(log_dir)) is True
    try:
        assert sampler.running
        assert sampler.log_file == str(log_dir / "tegrastats.log")
        deadline = time.time() + 5
        line = ""
        while not line and time.time() < deadline:
            line = sampler.read_latest()
            time.sleep(0.05)
        assert line == "RAM 1/2MB (lfb 1x4MB) MTS fg 1% bg 2%"
    finally:
        sampler.stop()
    assert not sampler.running


def test_second_start_keeps_running_child(tmp_path, fake_binary):
    sampler = Tegrastats(command=fake_binary, log_dir=str(tmp_path))
    assert sampler.start() is True
    try:
        first = sampler._proc
        assert sampler.start(log_dir=str(tmp_path / "elsewhere")) is True
        assert sampler._proc is first
        assert sampler.log_dir == str(tmp_path)
        assert first.poll() is None
    finally:
        sampler.stop()
    assert first.poll() is not None
