"""Full snapshot archives.

An archive is a zip file holding three entries, created in this order:

- snapshot.json: the collected Snapshot as indented JSON
- stack.txt: the stacks of all live threads
- heap.bin: a pickled tracemalloc.Snapshot
"""

import logging
import pickle
import shutil
import tempfile
import tracemalloc
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from pysnap.collector import Collector
from pysnap.errors import (
    ArchiveReadError,
    DumpWriteError,
    OpenError,
    SnapshotWriteError,
    TraceWriteError,
)
from pysnap.inspector import PythonRuntimeInspector, RuntimeInspector
from pysnap.models import Snapshot

logger = logging.getLogger(__name__)

SNAPSHOT_ENTRY = "snapshot.json"
STACK_ENTRY = "stack.txt"
HEAP_ENTRY = "heap.bin"
ENTRY_NAMES = (SNAPSHOT_ENTRY, STACK_ENTRY, HEAP_ENTRY)


class Archiver:
    """
    Writes full snapshot archives.

    Writing an archive suspends every other Python thread while the stacks
    and the heap are dumped, and the heap image can be as large as the
    memory the process currently uses. Schedule it for quiet periods.
    """

    def __init__(
        self,
        inspector: RuntimeInspector | None = None,
        indent: int = 4,
    ) -> None:
        """
        Initialize the Archiver.

        Args:
            inspector: Source of runtime state. Defaults to the CPython one.
            indent: JSON indentation of snapshot.json. Default 4.
        """
        self._inspector = inspector if inspector is not None else PythonRuntimeInspector()
        self._indent = max(0, indent)

    @property
    def indent(self) -> int:
        return self._indent

    @indent.setter
    def indent(self, value: int) -> None:
        self._indent = max(0, value)

    def write(self, path: str | Path) -> None:
        """
        Write a full snapshot archive to path, which should end in ".zip".

        Raises:
            OpenError: The file could not be created or the zip stream could
                not be started on it.
            SnapshotWriteError: snapshot.json could not be written.
            TraceWriteError: stack.txt could not be written.
            DumpWriteError: heap.bin could not be written, or the archive
                could not be finalized (heap.bin is the last entry written).

        A failure after the file was opened leaves a truncated archive behind.
        """
        try:
            out = open(path, "wb")
        except OSError as exc:
            raise OpenError(exc) from exc

        archive = None
        try:
            try:
                archive = zipfile.ZipFile(out, "w", compression=zipfile.ZIP_DEFLATED)
            except OSError as exc:
                raise OpenError(exc) from exc
            snapshot = Collector(self._inspector).collect()
            self._write_snapshot(archive, snapshot)
            self._write_stacks(archive)
            self._write_heap(archive)
        except BaseException:
            _close_quietly(archive, out)
            raise

        try:
            archive.close()
            out.close()
        except (OSError, ValueError) as exc:
            _close_quietly(archive, out)
            raise DumpWriteError(exc) from exc

        logger.info("Wrote snapshot archive %s", path)

    def _write_snapshot(self, archive: zipfile.ZipFile, snapshot: Snapshot) -> None:
        try:
            with archive.open(SNAPSHOT_ENTRY, "w") as entry:
                entry.write(snapshot.to_json(indent=self._indent).encode("utf-8"))
        except (OSError, ValueError, TypeError) as exc:
            raise SnapshotWriteError(exc) from exc

    def _write_stacks(self, archive: zipfile.ZipFile) -> None:
        try:
            stacks = self._inspector.stack_dump()
            with archive.open(STACK_ENTRY, "w") as entry:
                entry.write(stacks.encode("utf-8", errors="replace"))
        except Exception as exc:
            raise TraceWriteError(exc) from exc

    def _write_heap(self, archive: zipfile.ZipFile) -> None:
        try:
            with tempfile.TemporaryFile(prefix="heapdump-") as dump:
                self._inspector.heap_dump(dump)
                dump.seek(0)
                with archive.open(HEAP_ENTRY, "w") as entry:
                    shutil.copyfileobj(dump, entry)
        except Exception as exc:
            raise DumpWriteError(exc) from exc


def _close_quietly(archive: zipfile.ZipFile | None, out: BinaryIO) -> None:
    """Close the zip stream and the file without masking the error in flight."""
    for stream in (archive, out):
        if stream is None:
            continue
        try:
            stream.close()
        except (OSError, ValueError) as exc:
            logger.debug("Ignoring close failure after an earlier error: %s", exc)


def write_full_snapshot(
    path: str | Path,
    inspector: RuntimeInspector | None = None,
    *,
    indent: int = 4,
) -> None:
    """
    Take a full snapshot of the process and save it as a zip file at path.

    Warning: this temporarily suspends all other Python threads. The output
    is at most about the size of the memory the process uses.
    """
    Archiver(inspector, indent=indent).write(path)


@dataclass(slots=True, frozen=True)
class ArchiveContents:
    """The parsed entries of a snapshot archive."""

    snapshot: Snapshot
    stack: str
    heap: bytes

    def load_heap(self) -> tracemalloc.Snapshot:
        """Unpickle the heap image. Only load archives from trusted sources."""
        try:
            heap = pickle.loads(self.heap)
        except Exception as exc:
            raise ArchiveReadError(exc) from exc
        if not isinstance(heap, tracemalloc.Snapshot):
            raise ArchiveReadError(f"{HEAP_ENTRY} is not a tracemalloc snapshot")
        return heap


def read_full_snapshot(path: str | Path) -> ArchiveContents:
    """
    Read an archive written by write_full_snapshot().

    Raises:
        ArchiveReadError: The file is missing, not a zip, lacks an entry, or
            snapshot.json does not parse.
    """
    try:
        with zipfile.ZipFile(path) as archive:
            names = set(archive.namelist())
            missing = [name for name in ENTRY_NAMES if name not in names]
            if missing:
                raise ArchiveReadError(f"missing entries: {', '.join(missing)}")
            snapshot_text = archive.read(SNAPSHOT_ENTRY)
            stack = archive.read(STACK_ENTRY).decode("utf-8", errors="replace")
            heap = archive.read(HEAP_ENTRY)
    except (OSError, zipfile.BadZipFile) as exc:
        raise ArchiveReadError(exc) from exc

    try:
        snapshot = Snapshot.from_json(snapshot_text)
    except (ValueError, TypeError, AttributeError) as exc:
        raise ArchiveReadError(exc) from exc

    return ArchiveContents(snapshot=snapshot, stack=stack, heap=heap)


def describe_heap(contents: ArchiveContents, limit: int = 10) -> list[str]:
    """Summarize the largest allocation sites in the heap image."""
    heap = contents.load_heap()
    lines = []
    for stat in heap.statistics("lineno")[:limit]:
        lines.append(str(stat))
    return lines

