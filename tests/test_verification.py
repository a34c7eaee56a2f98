"""Verification Tests: repeated captures and busy processes.

- Writing many archives must not leak file descriptors or temporary files
- Collecting while many threads run must list every one of them
- Collecting must keep working while other threads allocate and collect garbage
"""

import gc
import sys
import tempfile
import threading

import psutil
import pytest

from pysnap.archive import read_full_snapshot, write_full_snapshot
from pysnap.collector import collect
from pysnap.inspector import PythonRuntimeInspector


@pytest.fixture
def worker_threads():
    """Start idle threads and stop them after the test."""
    stop = threading.Event()
    started = threading.Barrier(21)

    def worker() -> None:
        started.wait()
        stop.wait()

    threads = [
        threading.Thread(target=worker, name=f"verify-worker-{i}", daemon=True)
        for i in range(20)
    ]
    for thread in threads:
        thread.start()
    started.wait(timeout=10.0)
    try:
        yield threads
    finally:
        stop.set()
        for thread in threads:
            thread.join(timeout=5.0)


class TestRepeatedCaptures:
    """Resource stability over many archive writes."""

    @pytest.mark.skipif(sys.platform == "win32", reason="num_fds() is POSIX only")
    def test_no_descriptor_leak(self, tmp_path):
        """Test repeated writes leave the descriptor count unchanged."""
        process = psutil.Process()
        write_full_snapshot(tmp_path / "warmup.zip")
        gc.collect()
        before = process.num_fds()

        for i in range(10):
            write_full_snapshot(tmp_path / f"out-{i}.zip")
        gc.collect()

        assert process.num_fds() == before

    def test_no_temp_file_leak(self, tmp_path, monkeypatch):
        """Test repeated writes leave the temp directory empty."""
        temp_dir = tmp_path / "tmp"
        temp_dir.mkdir()
        monkeypatch.setattr(tempfile, "tempdir", str(temp_dir))

        for i in range(10):
            write_full_snapshot(tmp_path / f"out-{i}.zip")

        assert list(temp_dir.iterdir()) == []


class TestBusyProcess:
    """Collection while other threads are running."""

    def test_all_threads_dumped(self, tmp_path, worker_threads):
        """Test every worker thread appears in stack.txt."""
        out = tmp_path / "busy.zip"

        write_full_snapshot(out)

        stack = read_full_snapshot(out).stack
        for thread in worker_threads:
            assert f'"{thread.name}" (daemon)' in stack

    def test_task_count_sees_workers(self, worker_threads):
        """Test the snapshot counts the worker threads."""
        snapshot = collect()

        assert snapshot.num_tasks >= len(worker_threads) + 1

    def test_collect_during_gc_churn(self):
        """Test collection succeeds while another thread churns the collector."""
        inspector = PythonRuntimeInspector()
        inspector.recorder.install()
        stop = threading.Event()

        def churn() -> None:
            while not stop.is_set():
                cycle: list = []
                cycle.append(cycle)
                gc.collect(0)

        thread = threading.Thread(target=churn, daemon=True)
        thread.start()
        try:
            snapshots = [collect(inspector) for _ in range(5)]
        finally:
            stop.set()
            thread.join(timeout=5.0)
            inspector.recorder.uninstall()
            inspector.recorder.reset()

        assert all(snapshot.pid == snapshots[0].pid for snapshot in snapshots)
        assert snapshots[-1].gc.pauses
