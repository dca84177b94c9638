"""Tests for ibmon.monitor: bootstrap and the line-stream surface."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Callable
from unittest.mock import MagicMock, patch

import pytest

import ibmon.config as config_mod
from ibmon.loop import Key, UpdateLoop
from ibmon.monitor import main, run_stream, start
from ibmon.sysfs import InterfaceDescriptor


@pytest.fixture(autouse=True)
def no_user_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_mod, "_DEFAULT_PATH", tmp_path / "missing.toml")


def _settings(root: Path, **overrides: Any) -> dict[str, Any]:
    return {"ignore": set(), "sysfs_root": str(root), "interval": 1.0, **overrides}


# ── start ──────────────────────────────────────────────────────────────────


class TestStart:
    def test_seeds_from_sysfs(self, sysfs_root: Path, make_port: Callable[..., Path]) -> None:
        make_port("mlx5_0", "1", rx=10, tx=20)
        loop = start(_settings(sysfs_root))
        (st,) = loop.states
        assert (st.prev_rx, st.prev_tx) == (10, 20)
        assert loop.interval == 1.0

    def test_missing_root_is_fatal(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc:
            start(_settings(tmp_path / "missing"))
        assert exc.value.code == 1
        assert "ibmon: cannot read" in capsys.readouterr().err

    def test_no_interfaces_is_fatal(
        self, sysfs_root: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit):
            start(_settings(sysfs_root))
        assert "no interfaces found" in capsys.readouterr().err

    def test_everything_ignored_is_fatal(
        self, sysfs_root: Path, make_port: Callable[..., Path]
    ) -> None:
        make_port("mlx5_0", "1")
        with pytest.raises(SystemExit):
            start(_settings(sysfs_root, ignore={"mlx5_0"}))


# ── run_stream ─────────────────────────────────────────────────────────────


class TestRunStream:
    def _loop(
        self, make_descriptor: Callable[..., InterfaceDescriptor], counters: Any
    ) -> UpdateLoop:
        counters.set("mlx5_0:1", 0, 0)
        return UpdateLoop.from_descriptors([make_descriptor()], 1.0, read_counter=counters)

    def test_header_separator_and_lines(
        self, make_descriptor: Callable[..., InterfaceDescriptor], counters: Any
    ) -> None:
        loop = self._loop(make_descriptor, counters)
        counters.set("mlx5_0:1", 1_250_000_000, 125_000_000)
        out = io.StringIO()
        written = run_stream(loop, out=out, count=2, sleep=lambda _s: None, clock=lambda: 0.0)
        lines = out.getvalue().splitlines()
        assert written == 2
        assert len(lines) == 4
        assert lines[0].startswith("time")
        assert "mlx5_0:1 [100 G]" in lines[0]
        assert set(lines[1]) == {"─"}
        assert "10.00/1.00" in lines[2]
        # Counters did not move on the second tick
        assert "0.00/0.00" in lines[3]

    def test_fixed_deadlines(
        self, make_descriptor: Callable[..., InterfaceDescriptor], counters: Any
    ) -> None:
        loop = self._loop(make_descriptor, counters)
        sleeps: list[float] = []
        run_stream(loop, out=io.StringIO(), count=3, sleep=sleeps.append, clock=lambda: 0.0)
        assert sleeps == [1.0, 2.0, 3.0]

    def test_late_ticks_run_immediately(
        self, make_descriptor: Callable[..., InterfaceDescriptor], counters: Any
    ) -> None:
        loop = self._loop(make_descriptor, counters)
        sleeps: list[float] = []
        clock = iter([0.0, 10.0, 10.0, 10.0]).__next__
        run_stream(loop, out=io.StringIO(), count=3, sleep=sleeps.append, clock=clock)
        assert sleeps == [0.0, 0.0, 0.0]
        assert loop.ticks == 3

    def test_line_stamped_with_tick_time(
        self, make_descriptor: Callable[..., InterfaceDescriptor], counters: Any
    ) -> None:
        loop = self._loop(make_descriptor, counters)
        with patch("ibmon.monitor.stream_line", return_value="") as mock_line:
            run_stream(loop, out=io.StringIO(), count=1, sleep=lambda _s: None, clock=lambda: 0.0)
        _states, timestamp = mock_line.call_args.args
        assert timestamp == loop.sampled_at

    def test_defaults_to_current_stdout(
        self,
        make_descriptor: Callable[..., InterfaceDescriptor],
        counters: Any,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        loop = self._loop(make_descriptor, counters)
        run_stream(loop, count=1, sleep=lambda _s: None, clock=lambda: 0.0)
        assert len(capsys.readouterr().out.splitlines()) == 3

    def test_stops_when_terminated(
        self, make_descriptor: Callable[..., InterfaceDescriptor], counters: Any
    ) -> None:
        loop = self._loop(make_descriptor, counters)
        loop.handle(Key("q"))
        assert run_stream(loop, out=io.StringIO(), sleep=lambda _s: None) == 0


# ── main ───────────────────────────────────────────────────────────────────


def test_main_dump_config(capsys: pytest.CaptureFixture[str]) -> None:
    main(["--dump-config"])
    assert "interval = 1.0" in capsys.readouterr().out


@patch("ibmon.monitor.configure_logging")
def test_main_runs_count_samples(
    mock_logging: MagicMock,
    sysfs_root: Path,
    make_port: Callable[..., Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    make_port("mlx5_0", "1")
    make_port("mlx5_1", "1", rate=None)
    main(["--sysfs-root", str(sysfs_root), "--interval", "10ms", "--count", "2"])
    out = capsys.readouterr().out.splitlines()
    assert len(out) == 4
    assert "mlx5_1:1 [?]" in out[0]
    mock_logging.assert_called_once_with(None, "INFO")


@patch("ibmon.monitor.configure_logging")
@patch("ibmon.monitor.run_stream", side_effect=KeyboardInterrupt)
def test_main_interrupt(
    mock_run: MagicMock,
    mock_logging: MagicMock,
    sysfs_root: Path,
    make_port: Callable[..., Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    make_port("mlx5_0", "1")
    main(["--sysfs-root", str(sysfs_root)])
    assert "stopped" in capsys.readouterr().out
    loop = mock_run.call_args.args[0]
    assert loop.terminated
