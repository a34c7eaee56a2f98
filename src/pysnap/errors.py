"""Error hierarchy for pysnap.

Only archive operations raise. Collecting a snapshot never does.
"""


class SnapshotError(Exception):
    """Base exception for all pysnap errors.

    Carries the stage that failed and the underlying cause, and renders as
    ``"<stage>: <cause>"``.
    """

    stage = "snapshot"

    def __init__(self, cause: BaseException | str):
        self.cause = cause
        super().__init__(f"{self.stage}: {cause}")


class OpenError(SnapshotError):
    """Raised when the archive file cannot be created or truncated."""

    stage = "open"


class SnapshotWriteError(SnapshotError):
    """Raised when the snapshot entry cannot be created or serialized."""

    stage = "snapshot"


class TraceWriteError(SnapshotError):
    """Raised when thread stacks cannot be captured or written."""

    stage = "trace"


class DumpWriteError(SnapshotError):
    """Raised when the heap image cannot be dumped, buffered or copied."""

    stage = "dump"


class ArchiveReadError(SnapshotError):
    """Raised when an archive is missing entries or cannot be parsed."""

    stage = "read"
