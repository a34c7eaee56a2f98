"""Snapshot collection for pysnap.

Collection is best-effort: every lookup that fails leaves its field at the
zero value, and collect() never raises to the caller.
"""

import importlib.metadata
import logging
import os
import platform
import socket
import sys
import traceback
from collections.abc import Callable
from typing import TypeVar

import psutil

from pysnap.inspector import PythonRuntimeInspector, RuntimeInspector
from pysnap.models import BuildInfo, Dependency, GCStats, MemoryStats, Snapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _main_module_path() -> str:
    """Name of the module or script running as __main__."""
    main = sys.modules.get("__main__")
    spec = getattr(main, "__spec__", None)
    if spec is not None and spec.name:
        return spec.name.removesuffix(".__main__")
    return getattr(main, "__file__", None) or (sys.argv[0] if sys.argv else "")


def read_build_info() -> BuildInfo:
    """Describe the main module, the interpreter and installed distributions."""
    path = _main_module_path()

    version = ""
    top_level = path.split(".")[0]
    packages = importlib.metadata.packages_distributions()
    for dist_name in packages.get(top_level, []):
        version = importlib.metadata.version(dist_name)
        break

    deps: dict[str, Dependency] = {}
    for dist in importlib.metadata.distributions():
        name = dist.metadata["Name"]
        if name and name not in deps:
            deps[name] = Dependency(path=name, version=dist.version or "")

    return BuildInfo(
        path=path,
        version=version,
        python_version=platform.python_version(),
        implementation=platform.python_implementation(),
        compiler=platform.python_compiler(),
        deps=tuple(deps[name] for name in sorted(deps, key=str.lower)),
    )


def _executable() -> str:
    try:
        return psutil.Process().exe()
    except psutil.Error:
        return sys.executable


def _current_stack() -> str:
    return "".join(traceback.format_stack())


def _environ() -> tuple[str, ...]:
    return tuple(f"{key}={value}" for key, value in os.environ.items())


def _uid() -> int:
    getuid = getattr(os, "getuid", None)
    return getuid() if getuid is not None else -1


def _gid() -> int:
    getgid = getattr(os, "getgid", None)
    return getgid() if getgid is not None else -1


class Collector:
    """
    Takes snapshots of the running process.

    Collecting should not have a noticeable impact on the host application,
    apart from the short pause the underlying runtime queries incur.
    """

    def __init__(self, inspector: RuntimeInspector | None = None) -> None:
        """
        Initialize the Collector.

        Args:
            inspector: Source of runtime state. Defaults to the CPython one.
        """
        self._inspector = inspector if inspector is not None else PythonRuntimeInspector()
        self._last_errors: dict[str, str] = {}

    @property
    def inspector(self) -> RuntimeInspector:
        return self._inspector

    @property
    def last_errors(self) -> dict[str, str]:
        """Get the lookups that failed during the most recent collect(), by field."""
        return dict(self._last_errors)

    def _lookup(self, name: str, func: Callable[[], T]) -> T | None:
        """Run one field lookup, returning None instead of raising."""
        try:
            return func()
        except Exception as exc:
            logger.debug("Could not resolve %s: %s", name, exc)
            self._last_errors[name] = f"{type(exc).__name__}: {exc}"
            return None

    def collect(self) -> Snapshot:
        """Collect a snapshot. Never raises."""
        self._last_errors = {}
        inspector = self._inspector

        memory = self._lookup("memory", inspector.memory_stats)
        gc_stats = self._lookup("gc", inspector.gc_stats)
        build_info = self._lookup("build_info", read_build_info)
        stack = self._lookup("stack", _current_stack)
        num_tasks = self._lookup("num_tasks", inspector.task_count)
        pid = self._lookup("pid", os.getpid)
        uid = self._lookup("uid", _uid)
        gid = self._lookup("gid", _gid)
        environ = self._lookup("environ", _environ)
        executable = self._lookup("executable", _executable)
        wd = self._lookup("wd", os.getcwd)
        hostname = self._lookup("hostname", socket.gethostname)

        return Snapshot(
            memory=memory if memory is not None else MemoryStats(),
            gc=gc_stats if gc_stats is not None else GCStats(),
            stack=stack or "",
            build_info=build_info if build_info is not None else BuildInfo(),
            num_tasks=num_tasks or 0,
            pid=pid or 0,
            uid=uid if uid is not None else 0,
            gid=gid if gid is not None else 0,
            environ=environ or (),
            executable=executable or "",
            wd=wd or "",
            hostname=hostname or "",
        )


def collect(inspector: RuntimeInspector | None = None) -> Snapshot:
    """
    Take a snapshot of useful statistics of the running process.

    Args:
        inspector: Source of runtime state. Defaults to the CPython one.
    """
    return Collector(inspector).collect()
