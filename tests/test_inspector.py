"""Tests for the CPython RuntimeInspector."""

import gc
import io
import pickle
import threading
import tracemalloc

import psutil
import pytest

from pysnap.inspector import PythonRuntimeInspector
from pysnap.models import GCStats, MemoryStats
from pysnap.pauses import GCPauseRecorder


@pytest.fixture
def inspector():
    return PythonRuntimeInspector(recorder=GCPauseRecorder())


class TestMemoryStats:
    """Tests for memory_stats()."""

    def test_memory_stats_fields(self, inspector):
        """Test memory counters are populated."""
        stats = inspector.memory_stats()

        assert isinstance(stats, MemoryStats)
        assert stats.rss > 0
        assert stats.vms >= stats.rss
        assert stats.allocated_blocks > 0
        assert stats.gc_objects == 0

    def test_count_objects(self):
        """Test tracked objects are counted only when asked for."""
        inspector = PythonRuntimeInspector(recorder=GCPauseRecorder(), count_objects=True)
        assert inspector.memory_stats().gc_objects > 0

        inspector.count_objects = False
        assert inspector.memory_stats().gc_objects == 0

    def test_traced_memory_when_tracing(self, inspector):
        """Test tracemalloc counters are reported while tracing."""
        tracemalloc.start()
        try:
            data = [bytes(1024) for _ in range(100)]
            stats = inspector.memory_stats()
        finally:
            tracemalloc.stop()

        assert stats.tracing is True
        assert stats.traced_current > 0
        assert stats.traced_peak >= stats.traced_current
        assert len(data) == 100

    def test_traced_memory_when_not_tracing(self, inspector):
        """Test tracemalloc counters are zero when not tracing."""
        if tracemalloc.is_tracing():
            pytest.skip("tracemalloc enabled for the whole test run")

        stats = inspector.memory_stats()

        assert stats.tracing is False
        assert stats.traced_current == 0
        assert stats.traced_peak == 0

    def test_access_denied_degrades_to_zero(self, inspector, monkeypatch):
        """Test psutil failures leave rss and vms at zero."""

        def denied(*args, **kwargs):
            raise psutil.AccessDenied()

        monkeypatch.setattr(psutil, "Process", denied)

        stats = inspector.memory_stats()

        assert stats.rss == 0
        assert stats.vms == 0
        assert stats.allocated_blocks > 0


class TestGCStats:
    """Tests for gc_stats()."""

    def test_gc_stats_fields(self, inspector):
        """Test collector counters are populated."""
        gc.collect()
        stats = inspector.gc_stats()

        assert isinstance(stats, GCStats)
        assert stats.enabled == gc.isenabled()
        assert len(stats.threshold) == 3
        assert len(stats.count) == 3
        assert len(stats.generations) == len(gc.get_stats())
        assert stats.num_gc == sum(gen.collections for gen in stats.generations)
        assert stats.num_gc >= 1

    def test_pauses_come_from_recorder(self, inspector):
        """Test recorded pauses are reported."""
        inspector.recorder.install()
        try:
            gc.collect()
            stats = inspector.gc_stats()
        finally:
            inspector.recorder.uninstall()

        assert len(stats.pauses) >= 1
        assert stats.last_gc > 0.0
        assert stats.pause_total > 0.0

    def test_no_pauses_without_recorder(self, inspector):
        """Test pause fields are zero when the recorder is not installed."""
        gc.collect()
        stats = inspector.gc_stats()

        assert stats.pauses == ()
        assert stats.last_gc == 0.0
        assert stats.pause_total == 0.0


class TestThreads:
    """Tests for task_count() and stack_dump()."""

    def test_task_count_includes_new_thread(self, inspector):
        """Test a started thread is counted."""
        stop = threading.Event()
        before = inspector.task_count()
        thread = threading.Thread(target=stop.wait, name="pysnap-test-worker", daemon=True)
        thread.start()
        try:
            assert inspector.task_count() == before + 1
        finally:
            stop.set()
            thread.join(timeout=5.0)

    def test_stack_dump_lists_all_threads(self, inspector):
        """Test every live thread appears with its stack."""
        started = threading.Event()
        stop = threading.Event()

        def worker():
            started.set()
            stop.wait()

        thread = threading.Thread(target=worker, name="pysnap-test-worker", daemon=True)
        thread.start()
        started.wait(timeout=5.0)
        try:
            dump = inspector.stack_dump()
        finally:
            stop.set()
            thread.join(timeout=5.0)

        assert f'Thread {thread.ident} "pysnap-test-worker" (daemon):' in dump
        assert f'"{threading.main_thread().name}" (non-daemon):' in dump
        assert "test_stack_dump_lists_all_threads" in dump
        assert "in worker" in dump


class TestHeapDump:
    """Tests for heap_dump()."""

    def test_heap_dump_is_tracemalloc_snapshot(self, inspector):
        """Test the heap image unpickles to a tracemalloc.Snapshot."""
        sink = io.BytesIO()

        inspector.heap_dump(sink)

        assert sink.tell() > 0
        heap = pickle.loads(sink.getvalue())
        assert isinstance(heap, tracemalloc.Snapshot)

    def test_heap_dump_restores_tracing_state(self, inspector):
        """Test temporary tracing is stopped after the dump."""
        was_tracing = tracemalloc.is_tracing()

        inspector.heap_dump(io.BytesIO())

        assert tracemalloc.is_tracing() == was_tracing

    def test_heap_dump_while_tracing(self, inspector):
        """Test an existing trace is used and left running."""
        tracemalloc.start(5)
        try:
            data = [bytearray(4096) for _ in range(50)]
            sink = io.BytesIO()
            inspector.heap_dump(sink)
            assert tracemalloc.is_tracing()
        finally:
            tracemalloc.stop()

        heap = pickle.loads(sink.getvalue())
        assert heap.traceback_limit == 5
        assert sum(stat.size for stat in heap.statistics("filename")) > 50 * 4096
        assert len(data) == 50

    def test_failed_dump_stops_temporary_tracing(self, inspector, monkeypatch):
        """Test tracing started for a failed dump is stopped again."""
        if tracemalloc.is_tracing():
            pytest.skip("tracemalloc enabled for the whole test run")

        def broken():
            raise MemoryError("no room for the snapshot")

        monkeypatch.setattr(tracemalloc, "take_snapshot", broken)

        with pytest.raises(MemoryError):
            inspector.heap_dump(io.BytesIO())

        assert not tracemalloc.is_tracing()

    def test_failed_dump_keeps_callers_tracing(self, inspector, monkeypatch):
        """Test a failed dump leaves tracing the caller started running."""

        def broken():
            raise MemoryError("no room for the snapshot")

        tracemalloc.start()
        try:
            monkeypatch.setattr(tracemalloc, "take_snapshot", broken)
            with pytest.raises(MemoryError):
                inspector.heap_dump(io.BytesIO())
            assert tracemalloc.is_tracing()
        finally:
            tracemalloc.stop()


def test_trace_frames_minimum():
    """Test trace depth has a minimum value."""
    inspector = PythonRuntimeInspector(trace_frames=0)
    assert inspector.trace_frames == 1

    inspector.trace_frames = -5
    assert inspector.trace_frames == 1
