"""Shared fixtures for pysnap tests."""

import pytest

from pysnap.models import GCStats, GenerationStats, MemoryStats


class FakeInspector:
    """RuntimeInspector returning fixed values."""

    def __init__(self, heap: bytes = b"fake heap image", stacks: str = "1 threads\n") -> None:
        self.heap = heap
        self.stacks = stacks
        self.heap_dumps = 0

    def memory_stats(self) -> MemoryStats:
        return MemoryStats(
            rss=64 * 1024**2,
            vms=256 * 1024**2,
            allocated_blocks=12345,
            gc_objects=6789,
            traced_current=1024,
            traced_peak=2048,
            tracing=True,
        )

    def gc_stats(self) -> GCStats:
        return GCStats(
            enabled=True,
            threshold=(700, 10, 10),
            count=(5, 1, 0),
            generations=(
                GenerationStats(collections=10, collected=100, uncollectable=0),
                GenerationStats(collections=2, collected=20, uncollectable=0),
                GenerationStats(collections=1, collected=3, uncollectable=1),
            ),
            num_gc=13,
            garbage=1,
            last_gc=1700000000.5,
            pause_total=0.003,
            pauses=(0.002, 0.001),
        )

    def task_count(self) -> int:
        return 3

    def stack_dump(self) -> str:
        return self.stacks

    def heap_dump(self, sink) -> None:
        self.heap_dumps += 1
        sink.write(self.heap)


@pytest.fixture
def fake_inspector() -> FakeInspector:
    return FakeInspector()
