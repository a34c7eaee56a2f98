"""Runtime introspection for pysnap.

The collector and archiver read process-wide runtime state only through a
RuntimeInspector, so tests can substitute deterministic fixtures.
"""

import gc
import logging
import pickle
import sys
import threading
import traceback
import tracemalloc
from typing import BinaryIO, Protocol

import psutil

from pysnap.models import GCStats, GenerationStats, MemoryStats
from pysnap.pauses import GCPauseRecorder, default_recorder

logger = logging.getLogger(__name__)


class RuntimeInspector(Protocol):
    """Reads memory, GC, thread and heap state of the running interpreter."""

    def memory_stats(self) -> MemoryStats: ...

    def gc_stats(self) -> GCStats: ...

    def task_count(self) -> int: ...

    def stack_dump(self) -> str: ...

    def heap_dump(self, sink: BinaryIO) -> None: ...


class PythonRuntimeInspector:
    """
    RuntimeInspector for CPython, backed by gc, tracemalloc and psutil.

    stack_dump() and heap_dump() run while holding the GIL: no other Python
    thread makes progress until they return.
    """

    def __init__(
        self,
        recorder: GCPauseRecorder | None = None,
        trace_frames: int = 1,
        count_objects: bool = False,
    ) -> None:
        """
        Initialize the PythonRuntimeInspector.

        Args:
            recorder: Source of GC pause history. Defaults to the module-wide
                recorder, which records nothing until installed.
            trace_frames: Frames per allocation when tracing has to be started
                for a heap dump. Default 1.
            count_objects: Report how many objects the collector tracks. This
                walks every tracked object on each collection, so it costs
                time and memory proportional to the heap. Default False.
        """
        self._recorder = recorder if recorder is not None else default_recorder
        self._trace_frames = max(1, trace_frames)
        self._count_objects = count_objects

    @property
    def recorder(self) -> GCPauseRecorder:
        return self._recorder

    @property
    def trace_frames(self) -> int:
        """Get the traceback depth used for temporary tracing."""
        return self._trace_frames

    @trace_frames.setter
    def trace_frames(self, value: int) -> None:
        """Set the traceback depth used for temporary tracing."""
        self._trace_frames = max(1, value)

    @property
    def count_objects(self) -> bool:
        return self._count_objects

    @count_objects.setter
    def count_objects(self, value: bool) -> None:
        self._count_objects = value

    def memory_stats(self) -> MemoryStats:
        """Collect process memory and allocator counters."""
        rss = vms = 0
        try:
            mem = psutil.Process().memory_info()
            rss, vms = mem.rss, mem.vms
        except psutil.Error as exc:
            logger.debug("memory_info unavailable: %s", exc)

        tracing = tracemalloc.is_tracing()
        if tracing:
            traced_current, traced_peak = tracemalloc.get_traced_memory()
        else:
            traced_current, traced_peak = 0, 0

        return MemoryStats(
            rss=rss,
            vms=vms,
            allocated_blocks=sys.getallocatedblocks(),
            gc_objects=len(gc.get_objects()) if self._count_objects else 0,
            traced_current=traced_current,
            traced_peak=traced_peak,
            tracing=tracing,
        )

    def gc_stats(self) -> GCStats:
        """Collect collector counters and the recorded pause history."""
        generations = tuple(
            GenerationStats(
                collections=stats.get("collections", 0),
                collected=stats.get("collected", 0),
                uncollectable=stats.get("uncollectable", 0),
            )
            for stats in gc.get_stats()
        )
        return GCStats(
            enabled=gc.isenabled(),
            threshold=tuple(gc.get_threshold()),
            count=tuple(gc.get_count()),
            generations=generations,
            num_gc=sum(gen.collections for gen in generations),
            garbage=len(gc.garbage),
            last_gc=self._recorder.last_gc,
            pause_total=self._recorder.pause_total,
            pauses=tuple(self._recorder.get_pauses()),
        )

    def task_count(self) -> int:
        return threading.active_count()

    def stack_dump(self) -> str:
        """Format the stacks of all live threads."""
        frames = sys._current_frames()
        threads = {thread.ident: thread for thread in threading.enumerate()}

        parts = [f"{len(frames)} threads\n"]
        for ident, frame in frames.items():
            thread = threads.get(ident)
            name = thread.name if thread is not None else "<unknown>"
            kind = "daemon" if thread is not None and thread.daemon else "non-daemon"
            parts.append(f'\nThread {ident} "{name}" ({kind}):\n')
            parts.extend(traceback.format_stack(frame))
        return "".join(parts)

    def heap_dump(self, sink: BinaryIO) -> None:
        """
        Write a pickled tracemalloc.Snapshot to sink.

        Uses the same encoding as tracemalloc.Snapshot.dump(), so the image
        loads with tracemalloc.Snapshot.load().

        When tracemalloc is not tracing, tracing is started for the dump and
        stopped again afterwards. Only tracing started here is stopped, but
        a trace another thread starts while the dump runs ends with it.
        """
        started = False
        if not tracemalloc.is_tracing():
            logger.warning(
                "tracemalloc is not tracing; heap image only covers allocations "
                "made during the dump"
            )
            tracemalloc.start(self._trace_frames)
            started = True
        try:
            snapshot = tracemalloc.take_snapshot()
        finally:
            if started:
                tracemalloc.stop()
        pickle.dump(snapshot, sink, pickle.HIGHEST_PROTOCOL)
