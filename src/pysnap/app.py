"""pysnap - command line and Textual archive viewer."""

import logging
from enum import Enum
from pathlib import Path

import click
from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from pysnap import __version__
from pysnap.archive import (
    ArchiveContents,
    describe_heap,
    read_full_snapshot,
    write_full_snapshot,
)
from pysnap.errors import ArchiveReadError, SnapshotError
from pysnap.inspector import PythonRuntimeInspector
from pysnap.models import Snapshot

logger = logging.getLogger(__name__)


class DetailView(Enum):
    """Views of the detail table."""

    STACKS = "stacks"
    ENVIRON = "environ"
    DEPS = "deps"
    HEAP = "heap"


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


class HeaderStats(Static):
    """Header widget showing process identity, memory and GC statistics."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._snapshot: Snapshot | None = None

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_process_info(), id="process-info"),
            Static(self._get_memory_info(), id="memory-info"),
        )

    def update_stats(self, snapshot: Snapshot) -> None:
        """Update the statistics from a snapshot."""
        self._snapshot = snapshot
        self._refresh_display()

    def _refresh_display(self) -> None:
        try:
            self.query_one("#process-info", Static).update(self._get_process_info())
            self.query_one("#memory-info", Static).update(self._get_memory_info())
        except Exception:
            pass  # Widget not mounted yet

    def _get_process_info(self) -> str:
        snapshot = self._snapshot
        if snapshot is None:
            return "No snapshot loaded"
        build = snapshot.build_info
        python = f"{build.implementation} {build.python_version}".strip() or "?"
        return (
            f"[b]{escape(build.path or '?')}[/b] {escape(build.version)}\n"
            f"PID {snapshot.pid}  UID {snapshot.uid}  GID {snapshot.gid}"
            f"  on {escape(snapshot.hostname or '?')}\n"
            f"Exe: {escape(snapshot.executable)}\n"
            f"Cwd: {escape(snapshot.wd)}\n"
            f"Python: {escape(python)}  Threads: {snapshot.num_tasks}"
        )

    def _get_memory_info(self) -> str:
        snapshot = self._snapshot
        if snapshot is None:
            return ""
        mem = snapshot.memory
        gc = snapshot.gc
        traced = (
            f"{format_bytes(mem.traced_current).strip()} "
            f"(peak {format_bytes(mem.traced_peak).strip()})"
            if mem.tracing
            else "off"
        )
        last_pause = f"{gc.pauses[0] * 1000:.2f}ms" if gc.pauses else "n/a"
        return (
            f"RSS {format_bytes(mem.rss).strip()}  VMS {format_bytes(mem.vms).strip()}\n"
            f"Blocks {mem.allocated_blocks}  Objects {mem.gc_objects}\n"
            f"Traced: {traced}\n"
            f"GC {'on' if gc.enabled else 'off'}: {gc.num_gc} collections,"
            f" {gc.garbage} garbage\n"
            f"Pauses: {len(gc.pauses)} recorded, last {last_pause},"
            f" total {gc.pause_total * 1000:.2f}ms"
        )


class DetailPanel(Container):
    """Container for the detail table."""

    DEFAULT_CSS = """
    DetailPanel {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize DetailPanel."""
        super().__init__(*args, **kwargs)
        self._view: DetailView = DetailView.STACKS
        self._contents: ArchiveContents | None = None

    @property
    def view(self) -> DetailView:
        """Get current view."""
        return self._view

    def cycle_view(self) -> DetailView:
        """Cycle to the next view and return it."""
        views = list(DetailView)
        self._view = views[(views.index(self._view) + 1) % len(views)]
        self._render_view()
        return self._view

    def compose(self) -> ComposeResult:
        """Compose the detail table."""
        yield DataTable(id="detail-table")

    def on_mount(self) -> None:
        table = self.query_one("#detail-table", DataTable)
        table.cursor_type = "row"
        self._render_view()

    def show(self, contents: ArchiveContents) -> None:
        """Display the entries of an archive."""
        self._contents = contents
        self._render_view()

    def _rows(self) -> tuple[tuple[str, ...], list[tuple[str, ...]]]:
        contents = self._contents
        if self._view is DetailView.STACKS:
            lines = contents.stack.splitlines() if contents else []
            return ("Stack",), [(line,) for line in lines]
        if self._view is DetailView.ENVIRON:
            environ = contents.snapshot.environ if contents else ()
            return ("Variable", "Value"), [tuple(item.partition("=")[::2]) for item in environ]
        if self._view is DetailView.DEPS:
            deps = contents.snapshot.build_info.deps if contents else ()
            return ("Distribution", "Version"), [(dep.path, dep.version) for dep in deps]
        if contents is None:
            return ("Allocation",), []
        try:
            return ("Allocation",), [(line,) for line in describe_heap(contents, limit=50)]
        except ArchiveReadError as exc:
            return ("Allocation",), [(f"Heap image unreadable: {exc}",)]

    def _render_view(self) -> None:
        try:
            table = self.query_one("#detail-table", DataTable)
        except Exception:
            return  # Not mounted yet
        columns, rows = self._rows()
        table.clear(columns=True)
        table.add_columns(*columns)
        for row in rows:
            table.add_row(*(Text(cell) for cell in row))


class SnapshotViewerApp(App):
    """Viewer for snapshot archives."""

    TITLE = "pysnap"
    SUB_TITLE = "Snapshot Viewer"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 7;
    }

    Horizontal {
        height: auto;
    }

    #process-info {
        width: 1fr;
        padding-right: 2;
    }

    #memory-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "cycle_view", "View"),
        ("r", "reload", "Reload"),
    ]

    def __init__(self, path: str | Path) -> None:
        """Initialize the SnapshotViewerApp."""
        super().__init__()
        self._path = Path(path)
        self._contents: ArchiveContents | None = None

    @property
    def contents(self) -> ArchiveContents | None:
        return self._contents

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield DetailPanel()
        yield Footer()

    def on_mount(self) -> None:
        self.sub_title = str(self._path)
        self.action_reload()

    def action_reload(self) -> None:
        """Read the archive from disk and refresh every widget."""
        try:
            self._contents = read_full_snapshot(self._path)
        except ArchiveReadError as exc:
            logger.error("Cannot read %s: %s", self._path, exc)
            self.notify(str(exc), title="Cannot read archive", severity="error")
            return

        self.query_one("#header-stats", HeaderStats).update_stats(self._contents.snapshot)
        self.query_one(DetailPanel).show(self._contents)

    def action_cycle_view(self) -> None:
        view = self.query_one(DetailPanel).cycle_view()
        self.notify(f"View: {view.value.upper()}")

    def action_quit(self) -> None:
        self.exit()


@click.group()
@click.version_option(version=__version__)
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(debug: bool) -> None:
    """pysnap - diagnostic snapshots of a running Python process."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def view(archive: Path) -> None:
    """Browse a snapshot archive."""
    SnapshotViewerApp(archive).run()


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--count-objects", is_flag=True, help="Count objects tracked by the GC (walks the heap)")
def capture(path: Path, count_objects: bool) -> None:
    """Write a full snapshot of this process to PATH (.zip)."""
    try:
        write_full_snapshot(path, PythonRuntimeInspector(count_objects=count_objects))
    except SnapshotError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Wrote {path}")


def main() -> None:
    """Entry point for the pysnap command."""
    cli()


if __name__ == "__main__":
    main()
