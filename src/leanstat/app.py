"""leanstat - Terminal dashboard over the collector's query interface."""

import argparse

from textual.app import App, ComposeResult
from textual.containers import Horizontal
from textual.widgets import Footer, Sparkline, Static

from leanstat.collector import Collector, get_memory_report, get_snapshot, init_collector
from leanstat.models import Snapshot
from leanstat.utils import format_bytes, format_uptime, setup_logging


def bar(percent: float, color: str, width: int = 20) -> str:
    """Render a percentage as a fixed-width bar."""
    filled = min(int(percent / (100 / width)), width)
    return f"[{color}]█[/{color}]" * filled + "[dim]░[/dim]" * (width - filled)


class HeaderStats(Static):
    """Header widget showing the latest snapshot."""

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

    @property
    def snapshot(self) -> Snapshot | None:
        return self._snapshot

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_usage_info(), id="usage-info"),
            Static(self._get_host_info(), id="host-info"),
        )

    def update_stats(self, snapshot: Snapshot) -> None:
        """Update the statistics from a snapshot."""
        self._snapshot = snapshot
        self._refresh_display()

    def _refresh_display(self) -> None:
        """Refresh the display with current data."""
        try:
            self.query_one("#usage-info", Static).update(self._get_usage_info())
            self.query_one("#host-info", Static).update(self._get_host_info())
        except Exception:
            pass  # Widget not mounted yet

    def _get_usage_info(self) -> str:
        snap = self._snapshot
        if snap is None or snap.memory_total == 0:
            return "Loading usage info..."

        # Escaped brackets for the bar containers
        return (
            f"CPU \\[{bar(snap.cpu_usage, 'green')}] {snap.cpu_usage:5.1f}%\n"
            f"Mem \\[{bar(snap.memory_usage_percent, 'cyan')}] "
            f"{format_bytes(snap.memory_used)}/{format_bytes(snap.memory_total)}\n"
            f"Dsk \\[{bar(snap.disk_usage_percent, 'yellow')}] "
            f"{format_bytes(snap.disk_total - snap.disk_free)}/{format_bytes(snap.disk_total)}\n"
            f"Net rx {format_bytes(snap.network_received)} "
            f"tx {format_bytes(snap.network_transmitted)}"
        )

    def _get_host_info(self) -> str:
        snap = self._snapshot
        if snap is None:
            return "Loading host info..."

        load = snap.system_load
        temp = f"{snap.cpu_temp:.1f}°C" if snap.cpu_temp is not None else "n/a"
        return (
            f"Host: {snap.hostname or '?'}\n"
            f"Load average: {load[0]:.2f} {load[1]:.2f} {load[2]:.2f}\n"
            f"Uptime: {format_uptime(snap.uptime)}\n"
            f"Tasks: {snap.processes_count}  CPU temp: {temp}"
        )


class LeanstatApp(App):
    """Main leanstat application."""

    TITLE = "leanstat"
    SUB_TITLE = "Budget-Aware System Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #usage-info {
        width: 1fr;
        padding-right: 2;
    }

    #host-info {
        width: 1fr;
        padding-left: 2;
    }

    #cpu-sparkline {
        height: 5;
        margin: 1 2;
    }

    #memory-report {
        padding: 1 2;
        border: solid $primary;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
    ]

    def __init__(self, collector: Collector | None = None) -> None:
        """Initialize the LeanstatApp."""
        super().__init__()
        self._collector = collector if collector is not None else Collector()

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield Sparkline([], id="cpu-sparkline")
        yield Static("Loading memory report...", id="memory-report")
        yield Footer()

    def on_mount(self) -> None:
        """Start the collector when the app is mounted."""
        self._collector.start()
        self.set_interval(1.0, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Pull the latest snapshot and refresh the UI."""
        try:
            snapshot = get_snapshot(self._collector)
            self._update_ui(snapshot)
        except Exception:
            # The dashboard must never crash on a telemetry hiccup
            pass

    def _update_ui(self, snapshot: Snapshot) -> None:
        """Update the UI with a snapshot."""
        try:
            self.query_one("#header-stats", HeaderStats).update_stats(snapshot)
            self.query_one("#cpu-sparkline", Sparkline).data = self._collector.cpu_history()
            self.query_one("#memory-report", Static).update(get_memory_report(self._collector))
        except Exception:
            pass

    def action_refresh(self) -> None:
        """Handle refresh action - redraw from the current snapshot."""
        self._check_for_updates()
        self.notify("Refreshed")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._collector.stop()
        self.exit()


def main(argv: list[str] | None = None) -> None:
    """Entry point for the leanstat application."""
    parser = argparse.ArgumentParser(prog="leanstat", description=LeanstatApp.SUB_TITLE)
    parser.add_argument("--min-bytes", type=int, default=None, help="Lower memory bound")
    parser.add_argument("--max-bytes", type=int, default=None, help="Upper memory bound")
    parser.add_argument("--interval", type=float, default=None, help="Update interval (s)")
    output = parser.add_mutually_exclusive_group()
    output.add_argument("--json", action="store_true", help="Print one snapshot as JSON")
    output.add_argument("--report", action="store_true", help="Print the memory report")
    args = parser.parse_args(argv)

    if args.json or args.report:
        setup_logging()
    else:
        setup_logging(level="error")  # Log lines would tear through the TUI
    collector = init_collector(args.min_bytes, args.max_bytes, args.interval)

    if args.json:
        print(get_snapshot(collector).to_json())
        collector.stop()
        return
    if args.report:
        get_snapshot(collector)
        print(get_memory_report(collector))
        collector.stop()
        return

    LeanstatApp(collector).run()


if __name__ == "__main__":
    main()
