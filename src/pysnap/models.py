"""Data models for pysnap."""

import json
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class MemoryStats:
    """Memory counters of the process at collection time."""

    rss: int = 0  # Bytes
    vms: int = 0  # Bytes
    allocated_blocks: int = 0
    gc_objects: int = 0
    traced_current: int = 0  # Bytes, 0 unless tracemalloc is tracing
    traced_peak: int = 0
    tracing: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryStats":
        return cls(**data)


@dataclass(slots=True, frozen=True)
class GenerationStats:
    """Per-generation counters as reported by gc.get_stats()."""

    collections: int = 0
    collected: int = 0
    uncollectable: int = 0


@dataclass(slots=True, frozen=True)
class GCStats:
    """Garbage collector counters and recorded pauses."""

    enabled: bool = False
    threshold: tuple[int, ...] = ()
    count: tuple[int, ...] = ()
    generations: tuple[GenerationStats, ...] = ()
    num_gc: int = 0
    garbage: int = 0
    last_gc: float = 0.0  # Epoch seconds
    pause_total: float = 0.0  # Seconds
    pauses: tuple[float, ...] = ()  # Newest first

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GCStats":
        values = dict(data)
        values["threshold"] = tuple(values.get("threshold", ()))
        values["count"] = tuple(values.get("count", ()))
        values["pauses"] = tuple(values.get("pauses", ()))
        values["generations"] = tuple(
            GenerationStats(**gen) for gen in values.get("generations", ())
        )
        return cls(**values)


@dataclass(slots=True, frozen=True)
class Dependency:
    """An installed distribution visible to the interpreter."""

    path: str
    version: str


@dataclass(slots=True, frozen=True)
class BuildInfo:
    """What is running: main module, interpreter and installed distributions."""

    path: str = ""
    version: str = ""
    python_version: str = ""
    implementation: str = ""
    compiler: str = ""
    deps: tuple[Dependency, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BuildInfo":
        values = dict(data)
        values["deps"] = tuple(Dependency(**dep) for dep in values.get("deps", ()))
        return cls(**values)


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Immutable snapshot of a running process.

    Every field is populated once by the collector. Lookups that failed hold
    their zero value instead.
    """

    memory: MemoryStats = field(default_factory=MemoryStats)
    gc: GCStats = field(default_factory=GCStats)
    stack: str = ""
    build_info: BuildInfo = field(default_factory=BuildInfo)
    num_tasks: int = 0
    pid: int = 0
    uid: int = 0
    gid: int = 0
    environ: tuple[str, ...] = ()  # KEY=value
    executable: str = ""
    wd: str = ""
    hostname: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary of plain JSON types."""
        return asdict(self)

    def to_json(self, indent: int = 4) -> str:
        """Convert to an indented JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Snapshot":
        """Rebuild a snapshot from the output of to_dict()."""
        values = dict(data)
        values["memory"] = MemoryStats.from_dict(values.get("memory", {}))
        values["gc"] = GCStats.from_dict(values.get("gc", {}))
        values["build_info"] = BuildInfo.from_dict(values.get("build_info", {}))
        values["environ"] = tuple(values.get("environ", ()))
        return cls(**values)

    @classmethod
    def from_json(cls, text: str | bytes) -> "Snapshot":
        return cls.from_dict(json.loads(text))
