"""Full-screen InfiniBand throughput dashboard.

One row per port with receive and transmit bars, coloured by how close the
port is to its link rate. The view follows terminal resizes and scrolls
when there are more ports than lines.

Usage:
    uv run ibmon
    uv run ibmon --interval 500ms --ignore mlx5_2 --log-file /tmp/ibmon.log
"""

from __future__ import annotations

import argparse
import curses
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Any

from ibmon import configure_logging
from ibmon.config import DEFAULT_CONFIG, add_common_args, dump_default_config, resolve_settings
from ibmon.layout import FILL, HEADER, VALUE, state_segments
from ibmon.loop import Event, InterfaceState, Key, Resize, Tick, UpdateLoop
from ibmon.monitor import start
from ibmon.rates import percent_of_capacity

# Curses colour-pair IDs
C_NORMAL = 1
C_WARNING = 2
C_CRITICAL = 3
C_TITLE = 4
C_DIM = 5

_KEY_NAMES: dict[int, str] = {
    curses.KEY_UP: "up",
    curses.KEY_DOWN: "down",
    curses.KEY_PPAGE: "pgup",
    curses.KEY_NPAGE: "pgdown",
    curses.KEY_HOME: "home",
    curses.KEY_END: "end",
    3: "ctrl+c",
    ord(" "): "space",
}


# ── Colour helpers ─────────────────────────────────────────────────────────


def _init_colors() -> None:
    curses.start_color()
    curses.use_default_colors()
    curses.init_pair(C_NORMAL, curses.COLOR_GREEN, -1)
    curses.init_pair(C_WARNING, curses.COLOR_YELLOW, -1)
    curses.init_pair(C_CRITICAL, curses.COLOR_RED, -1)
    curses.init_pair(C_TITLE, curses.COLOR_CYAN, -1)
    curses.init_pair(C_DIM, curses.COLOR_WHITE, -1)


def _severity_color(value: float, warn: float, crit: float) -> int:
    if value >= crit:
        return C_CRITICAL
    if value >= warn:
        return C_WARNING
    return C_NORMAL


# ── Input and scheduling ───────────────────────────────────────────────────


def key_name(code: int) -> str | None:
    """Translate a curses key code into the update loop's key names."""
    if code in _KEY_NAMES:
        return _KEY_NAMES[code]
    if 32 < code < 127:
        return chr(code)
    return None


@dataclass
class TickSchedule:
    """Fixed-rate deadlines, independent of how long drawing takes."""

    interval: float
    next_tick: float

    @classmethod
    def starting_at(cls, now: float, interval: float) -> TickSchedule:
        return cls(interval=interval, next_tick=now + interval)

    def due(self, now: float) -> int:
        """Number of ticks whose deadline has passed; each is counted once."""
        count = 0
        while now >= self.next_tick:
            count += 1
            self.next_tick += self.interval
        return count

    def timeout_ms(self, now: float) -> int:
        return max(0, math.ceil((self.next_tick - now) * 1000))


# ── Drawing ────────────────────────────────────────────────────────────────


def _safe(win: curses.window, *args: Any) -> None:
    """addstr wrapper that swallows out-of-bounds errors."""
    try:
        win.addstr(*args)
    except curses.error:
        pass


def _draw_header(win: curses.window, w: int, loop: UpdateLoop) -> None:
    ts = time.strftime("%H:%M:%S", time.localtime(loop.sampled_at))
    attr = curses.color_pair(C_TITLE) | curses.A_REVERSE
    _safe(win, 0, 0, " " * (w - 1), attr)
    title = f"ibmon  {len(loop.states)} port(s)  every {loop.interval:g}s"
    _safe(win, 0, 1, title[: max(0, w - 2)], attr | curses.A_BOLD)
    if w > len(title) + len(ts) + 4:
        _safe(win, 0, (w - len(ts)) // 2, ts, attr)


def _draw_port_row(
    win: curses.window,
    y: int,
    state: InterfaceState,
    width: int,
    max_x: int,
    thresh: dict[str, Any],
) -> None:
    warn = float(thresh.get("warning", 0.7))
    crit = float(thresh.get("critical", 0.9))
    pcts = [
        percent_of_capacity(state.rx_rate, state.max_rate),
        percent_of_capacity(state.tx_rate, state.max_rate),
    ]
    fills = 0
    x = 0
    for seg in state_segments(state, width):
        room = max_x - 1 - x
        if room <= 0:
            break
        text = seg.text[:room]
        if seg.kind == FILL:
            attr = curses.color_pair(_severity_color(pcts[fills], warn, crit)) | curses.A_BOLD
            fills += 1
        elif seg.kind == HEADER:
            attr = curses.color_pair(C_DIM if state.stale else C_TITLE)
        elif seg.kind == VALUE:
            attr = curses.color_pair(C_DIM) | (curses.A_DIM if state.stale else curses.A_BOLD)
        else:
            attr = curses.color_pair(C_DIM)
        _safe(win, y, x, text, attr)
        x += len(text)


def _draw(stdscr: curses.window, loop: UpdateLoop, thresh: dict[str, Any]) -> None:
    stdscr.erase()
    max_y, max_x = stdscr.getmaxyx()
    _draw_header(stdscr, max_x, loop)

    # Content lines are the port rows (in state order) followed by the footer
    vp = loop.viewport
    last = min(vp.offset + vp.visible_height, len(loop.content))
    for y, index in enumerate(range(vp.offset, last), start=1):
        if y >= max_y:
            break
        if index < len(loop.states):
            _draw_port_row(stdscr, y, loop.states[index], vp.width, max_x, thresh)
        else:
            _safe(stdscr, y, 0, loop.content[index][: max(0, max_x - 1)], curses.color_pair(C_DIM))
    stdscr.refresh()


# ── Main loop ──────────────────────────────────────────────────────────────


def _dashboard_loop(stdscr: curses.window, loop: UpdateLoop, thresh: dict[str, Any]) -> None:
    _init_colors()
    curses.curs_set(0)
    stdscr.keypad(True)

    max_y, max_x = stdscr.getmaxyx()
    loop.handle(Resize(max_x, max_y))
    schedule = TickSchedule.starting_at(time.monotonic(), loop.interval)
    events: deque[Event] = deque()

    while not loop.terminated:
        _draw(stdscr, loop, thresh)
        stdscr.timeout(schedule.timeout_ms(time.monotonic()))
        code = stdscr.getch()
        if code == curses.KEY_RESIZE:
            max_y, max_x = stdscr.getmaxyx()
            events.append(Resize(max_x, max_y))
        elif code != -1:
            name = key_name(code)
            if name is not None:
                events.append(Key(name))
        for _ in range(schedule.due(time.monotonic())):
            events.append(Tick())
        while events and not loop.terminated:
            loop.handle(events.popleft())


# ── CLI entry point ────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Live InfiniBand port throughput dashboard.",
    )
    add_common_args(parser)
    args = parser.parse_args(argv)

    if args.dump_config:
        print(dump_default_config(), end="")
        return

    settings = resolve_settings(args)
    # stderr belongs to curses, so only a log file is ever enabled here
    if settings["log_file"]:
        configure_logging(settings["log_file"], settings["log_level"])
    loop = start(settings)

    thresholds: dict[str, Any] = settings.get("thresholds", DEFAULT_CONFIG["thresholds"])
    utilization = thresholds.get("utilization", DEFAULT_CONFIG["thresholds"]["utilization"])
    try:
        curses.wrapper(_dashboard_loop, loop, utilization)
    except KeyboardInterrupt:
        loop.handle(Key("ctrl+c"))


if __name__ == "__main__":
    main()
