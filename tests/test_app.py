"""Tests for the leanstat dashboard application."""

import json

import pytest
from textual.widgets import Sparkline

from leanstat import app as app_module
from leanstat.app import HeaderStats, LeanstatApp, bar, main
from leanstat.collector import reset_collector
from leanstat.models import Snapshot

from conftest import MIB


def test_bar_is_fixed_width():
    """Test bar renders the same number of cells at any percentage."""
    for percent in (0.0, 33.3, 100.0, 150.0):
        rendered = bar(percent, "green")
        assert rendered.count("█") + rendered.count("░") == 20


def test_bar_full_and_empty():
    assert "░" not in bar(100.0, "green")
    assert "█" not in bar(0.0, "green")


@pytest.mark.asyncio
async def test_app_creation(make_collector):
    """Test LeanstatApp can be instantiated."""
    app = LeanstatApp(make_collector())
    assert app.title == "leanstat"
    assert app.sub_title == "Budget-Aware System Monitor"


@pytest.mark.asyncio
async def test_app_compose(make_collector):
    """Test LeanstatApp composes correctly."""
    app = LeanstatApp(make_collector())
    async with app.run_test() as pilot:
        assert pilot.app.query_one("#header-stats") is not None
        assert pilot.app.query_one("#cpu-sparkline") is not None
        assert pilot.app.query_one("#memory-report") is not None


@pytest.mark.asyncio
async def test_app_starts_collector(make_collector):
    collector = make_collector()
    app = LeanstatApp(collector)
    async with app.run_test():
        assert collector.is_running


@pytest.mark.asyncio
async def test_app_quit_binding(make_collector):
    """Test that 'q' binding stops the collector and quits."""
    collector = make_collector()
    app = LeanstatApp(collector)
    async with app.run_test() as pilot:
        await pilot.press("q")
        assert pilot.app._exit
        assert not collector.is_running


@pytest.mark.asyncio
async def test_app_pulls_snapshot(make_collector):
    """Test an update pulls the snapshot and CPU history."""
    app = LeanstatApp(make_collector())
    async with app.run_test() as pilot:
        pilot.app._check_for_updates()
        await pilot.pause()

        header = pilot.app.query_one("#header-stats", HeaderStats)
        assert header.snapshot is not None
        assert header.snapshot.hostname == "alpha"
        assert pilot.app.query_one("#cpu-sparkline", Sparkline).data == [12.5]


@pytest.mark.asyncio
async def test_refresh_binding(make_collector):
    app = LeanstatApp(make_collector())
    async with app.run_test() as pilot:
        await pilot.press("r")
        await pilot.pause()

        assert pilot.app.query_one("#header-stats", HeaderStats).snapshot is not None


@pytest.mark.asyncio
async def test_header_stats_update(make_collector):
    """Test that header stats render a snapshot without a sensor."""
    app = LeanstatApp(make_collector())
    async with app.run_test() as pilot:
        header = pilot.app.query_one("#header-stats", HeaderStats)
        snapshot = Snapshot.default(50 * MIB, 200 * MIB)

        header.update_stats(snapshot)

        assert header.snapshot is snapshot
        assert "n/a" in header._get_host_info()
        assert header._get_usage_info() == "Loading usage info..."


class TestMain:
    """Tests for the one-shot command line modes."""

    @pytest.fixture(autouse=True)
    def _fake_collector(self, monkeypatch, factory, trimmer, clock):
        real_init = app_module.init_collector

        def init(min_bytes, max_bytes, update_interval):
            return real_init(
                min_bytes,
                max_bytes,
                update_interval,
                source_factory=factory,
                trimmer=trimmer,
                clock=clock,
                initial_delay=0.0,
                reclaim_pause=0.0,
            )

        monkeypatch.setattr(app_module, "init_collector", init)
        monkeypatch.setattr(app_module, "setup_logging", lambda **kwargs: None)
        reset_collector()
        yield
        reset_collector()

    def test_json_mode(self, capsys):
        main(["--json", "--min-bytes", str(50 * MIB), "--max-bytes", str(200 * MIB)])

        lines = capsys.readouterr().out.splitlines()
        payload = json.loads(next(line for line in lines if line.startswith("{")))
        assert payload["hostname"] == "alpha"
        assert payload["memory_within_bounds"] is True

    def test_report_mode(self, capsys):
        main(["--report", "--min-bytes", str(50 * MIB), "--max-bytes", str(200 * MIB)])

        out = capsys.readouterr().out
        assert "Target range: 50.0M - 200.0M" in out
