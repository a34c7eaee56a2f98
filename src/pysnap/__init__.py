"""pysnap - diagnostic snapshots of a running Python process."""

from pysnap.archive import (
    ArchiveContents,
    Archiver,
    read_full_snapshot,
    write_full_snapshot,
)
from pysnap.collector import Collector, collect
from pysnap.errors import (
    ArchiveReadError,
    DumpWriteError,
    OpenError,
    SnapshotError,
    SnapshotWriteError,
    TraceWriteError,
)
from pysnap.inspector import PythonRuntimeInspector, RuntimeInspector
from pysnap.models import (
    BuildInfo,
    Dependency,
    GCStats,
    GenerationStats,
    MemoryStats,
    Snapshot,
)
from pysnap.pauses import GCPauseRecorder

__version__ = "0.1.0"

__all__ = [
    "ArchiveContents",
    "ArchiveReadError",
    "Archiver",
    "BuildInfo",
    "Collector",
    "Dependency",
    "DumpWriteError",
    "GCPauseRecorder",
    "GCStats",
    "GenerationStats",
    "MemoryStats",
    "OpenError",
    "PythonRuntimeInspector",
    "RuntimeInspector",
    "Snapshot",
    "SnapshotError",
    "SnapshotWriteError",
    "TraceWriteError",
    "collect",
    "read_full_snapshot",
    "write_full_snapshot",
]
