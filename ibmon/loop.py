"""Event-driven update loop: owns all per-port and viewport state.

Surfaces feed typed events into :meth:`UpdateLoop.handle` one at a time and
read back the rendered content. The loop never schedules anything itself;
the surface owns the timer and the input source.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Union

from loguru import logger

from ibmon.layout import render_rows
from ibmon.rates import sample
from ibmon.sysfs import InterfaceDescriptor, read_counter

FOOTER = "[q/ctrl+c to quit | ↑/↓ to scroll]"
QUIT_KEYS = frozenset({"q", "Q", "ctrl+c"})

CounterReader = Callable[[str], int]


class NoInterfacesError(RuntimeError):
    """Nothing left to monitor after discovery, filtering and seeding."""


class LoopState(Enum):
    IDLE = "idle"
    SAMPLING = "sampling"
    RESIZING = "resizing"
    SCROLLING = "scrolling"
    TERMINATED = "terminated"


# ── Events ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Tick:
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class Key:
    name: str  # "q", "up", "pgdown", "ctrl+c", ...


Event = Union[Tick, Resize, Key]


# ── State records ──────────────────────────────────────────────────────────


@dataclass
class InterfaceState:
    """Counters and latest throughput for one port."""

    descriptor: InterfaceDescriptor
    prev_rx: int = 0
    prev_tx: int = 0
    rx_rate: float = 0.0
    tx_rate: float = 0.0
    stale: bool = False
    resets: int = 0

    @property
    def identifier(self) -> str:
        return self.descriptor.identifier

    @property
    def max_rate(self) -> float:
        return self.descriptor.max_rate

    def advance(self, curr_rx: int, curr_tx: int, interval: float) -> bool:
        """Consume one pair of readings. Returns False on a counter reset.

        A counter that went backwards is treated as a discontinuity: the
        previous values move to the new readings and both rates read 0.
        """
        rx_rate = sample(self.prev_rx, curr_rx, interval)
        tx_rate = sample(self.prev_tx, curr_tx, interval)
        continuous = rx_rate >= 0 and tx_rate >= 0
        if not continuous:
            rx_rate = tx_rate = 0.0
            self.resets += 1
        self.prev_rx, self.prev_tx = curr_rx, curr_tx
        self.rx_rate, self.tx_rate = rx_rate, tx_rate
        self.stale = False
        return continuous


@dataclass
class ViewportState:
    width: int = 80
    height: int = 24
    offset: int = 0

    @property
    def visible_height(self) -> int:
        # Two lines of padding below the content
        return max(1, self.height - 2)

    def max_offset(self, total_lines: int) -> int:
        return max(0, total_lines - self.visible_height)

    def scroll_to(self, offset: int, total_lines: int) -> None:
        self.offset = min(max(offset, 0), self.max_offset(total_lines))


def _scroll_target(key: str, offset: int, page: int, total: int) -> int | None:
    """New offset for a navigation key, or None if the key does not scroll."""
    if key in ("up", "k"):
        return offset - 1
    if key in ("down", "j"):
        return offset + 1
    if key in ("pgup", "b"):
        return offset - page
    if key in ("pgdown", "f", "space"):
        return offset + page
    if key in ("home", "g"):
        return 0
    if key in ("end", "G"):
        return total
    return None


# ── Loop ───────────────────────────────────────────────────────────────────


class UpdateLoop:
    """Single owner of every InterfaceState and the ViewportState."""

    def __init__(
        self,
        states: Iterable[InterfaceState],
        interval: float,
        read_counter: CounterReader = read_counter,
        viewport: ViewportState | None = None,
    ) -> None:
        if not math.isfinite(interval) or interval <= 0:
            raise ValueError(f"interval must be positive and finite, got {interval}")
        self.states: list[InterfaceState] = list(states)
        self.interval = interval
        self.viewport = viewport if viewport is not None else ViewportState()
        self.state = LoopState.IDLE
        self.ticks = 0
        self.sampled_at: float | None = None
        self.content: list[str] = []
        self._read_counter = read_counter
        self._render()

    @classmethod
    def from_descriptors(
        cls,
        descriptors: Iterable[InterfaceDescriptor],
        interval: float,
        read_counter: CounterReader = read_counter,
        viewport: ViewportState | None = None,
    ) -> UpdateLoop:
        """Seed each port's counters with an initial read.

        Ports whose counters cannot be read are dropped.

        Raises:
            NoInterfacesError: If no port could be seeded.
        """
        states: list[InterfaceState] = []
        for desc in descriptors:
            try:
                rx = read_counter(desc.rx_path)
                tx = read_counter(desc.tx_path)
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping {desc.identifier}: cannot read counters: {e}")
                continue
            states.append(InterfaceState(descriptor=desc, prev_rx=rx, prev_tx=tx))
        if not states:
            raise NoInterfacesError("no interfaces found")
        return cls(states, interval, read_counter=read_counter, viewport=viewport)

    @property
    def terminated(self) -> bool:
        return self.state is LoopState.TERMINATED

    def handle(self, event: Event) -> LoopState:
        """Process one event and return the resulting state (IDLE or TERMINATED)."""
        if self.terminated:
            return self.state
        if isinstance(event, Tick):
            self.state = LoopState.SAMPLING
            self._on_tick(event)
        elif isinstance(event, Resize):
            self.state = LoopState.RESIZING
            self._on_resize(event)
        elif isinstance(event, Key):
            if event.name in QUIT_KEYS:
                logger.info("Quit requested")
                self.state = LoopState.TERMINATED
                return self.state
            self.state = LoopState.SCROLLING
            self._on_key(event)
        else:
            raise TypeError(f"unsupported event: {event!r}")
        self.state = LoopState.IDLE
        return self.state

    def _on_tick(self, event: Tick) -> None:
        for st in self.states:
            desc = st.descriptor
            try:
                curr_rx = self._read_counter(desc.rx_path)
                curr_tx = self._read_counter(desc.tx_path)
            except (OSError, ValueError) as e:
                st.stale = True
                logger.warning(f"{st.identifier}: counter read failed, keeping last values: {e}")
                continue
            if not st.advance(curr_rx, curr_tx, self.interval):
                logger.warning(f"{st.identifier}: counter went backwards, treating as reset")
        self.ticks += 1
        self.sampled_at = event.timestamp
        self._render()

    def _on_resize(self, event: Resize) -> None:
        self.viewport.width = event.width
        self.viewport.height = event.height
        self._render()

    def _on_key(self, event: Key) -> None:
        vp = self.viewport
        target = _scroll_target(event.name, vp.offset, vp.visible_height, len(self.content))
        if target is not None:
            vp.scroll_to(target, len(self.content))

    def _render(self) -> None:
        self.content = render_rows(self.states, self.viewport.width) + ["", FOOTER]
        # Content height can change between renders
        self.viewport.scroll_to(self.viewport.offset, len(self.content))

    def visible_lines(self) -> list[str]:
        vp = self.viewport
        return self.content[vp.offset : vp.offset + vp.visible_height]
