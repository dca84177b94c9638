"""Row layout: fits two proportional bar graphs into the terminal width.

A dashboard row looks like::

    mlx5_0:1   (400 Gbps (4X NDR)): ↑ ████░░░░   50% 0200.0 Gbps   ↓ ██░░░░░░   25% 0100.0 Gbps

Everything except the two bars has a fixed width, so the bar budget is the
terminal width minus the header and that fixed overhead, split evenly.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, NamedTuple, Sequence

from ibmon.rates import COMPACT_UNIT_LABEL, normalize_label, percent_of_capacity

if TYPE_CHECKING:
    from ibmon.loop import InterfaceState

BAR_FILL = "█"
BAR_EMPTY = "░"
RX_ARROW = "↑ "
TX_ARROW = "   ↓ "
IDENT_WIDTH = 10
PCT_WIDTH = 5  # " 100%"
RATE_WIDTH = 11  # "0400.0 Gbps"
MIN_BAR_WIDTH = 10

# Per direction: arrow, bar, " ", pct, " ", rate
NON_BAR_OVERHEAD = (
    len(RX_ARROW) + 1 + PCT_WIDTH + 1 + RATE_WIDTH
    + len(TX_ARROW) + 1 + PCT_WIDTH + 1 + RATE_WIDTH
)

# Segment kinds, used by surfaces that colour parts of a row
HEADER = "header"
ARROW = "arrow"
FILL = "fill"
EMPTY = "empty"
VALUE = "value"


class Segment(NamedTuple):
    text: str
    kind: str


def format_header(identifier: str, label: str) -> str:
    return f"{identifier:<{IDENT_WIDTH}s} ({label}): "


def bar_width(terminal_width: int, header_width: int) -> int:
    """Width of each of the two bars, never below MIN_BAR_WIDTH.

    When the floor kicks in the row is wider than the terminal.
    """
    available = terminal_width - header_width - NON_BAR_OVERHEAD
    return max(available // 2, MIN_BAR_WIDTH)


def render_bar(pct: float, width: int) -> tuple[str, str]:
    """Return the filled and empty parts of a ``width``-cell bar."""
    pct = min(max(pct, 0.0), 1.0)
    filled = int(round(pct * width))
    return BAR_FILL * filled, BAR_EMPTY * (width - filled)


def format_pct(pct: float) -> str:
    return f"{int(pct * 100):4d}%"


def format_gbps(rate: float) -> str:
    return f"{rate:06.1f} Gbps"


def _direction(arrow: str, pct: float, rate: float, width: int) -> list[Segment]:
    filled, empty = render_bar(pct, width)
    return [
        Segment(arrow, ARROW),
        Segment(filled, FILL),
        Segment(empty, EMPTY),
        Segment(f" {format_pct(pct)} {format_gbps(rate)}", VALUE),
    ]


def render_segments(
    header_text: str,
    rx_pct: float,
    rx_rate: float,
    tx_pct: float,
    tx_rate: float,
    terminal_width: int,
) -> list[Segment]:
    """Lay out one row as typed segments."""
    width = bar_width(terminal_width, len(header_text))
    return [
        Segment(header_text, HEADER),
        *_direction(RX_ARROW, rx_pct, rx_rate, width),
        *_direction(TX_ARROW, tx_pct, tx_rate, width),
    ]


def render_row(
    header_text: str,
    rx_pct: float,
    rx_rate: float,
    tx_pct: float,
    tx_rate: float,
    terminal_width: int,
) -> str:
    segments = render_segments(header_text, rx_pct, rx_rate, tx_pct, tx_rate, terminal_width)
    return "".join(s.text for s in segments)


def state_segments(state: InterfaceState, terminal_width: int) -> list[Segment]:
    """Segments for one monitored port."""
    return render_segments(
        format_header(state.identifier, state.descriptor.label),
        percent_of_capacity(state.rx_rate, state.max_rate),
        state.rx_rate,
        percent_of_capacity(state.tx_rate, state.max_rate),
        state.tx_rate,
        terminal_width,
    )


def render_rows(states: Sequence[InterfaceState], terminal_width: int) -> list[str]:
    """One line per port, all sharing the same width budget."""
    return ["".join(s.text for s in state_segments(st, terminal_width)) for st in states]


# ── Line-stream surface ────────────────────────────────────────────────────

TIME_FORMAT = "%H:%M:%S"
TIME_WIDTH = 8
MIN_COLUMN_WIDTH = 15  # "0400.00/0400.00"


def short_capability(state: InterfaceState) -> str:
    """``"400 G"`` for a known capacity, ``"?"`` otherwise."""
    if state.max_rate <= 0 or not state.descriptor.capability:
        return "?"
    compact = normalize_label(state.descriptor.capability, compact=True)
    tokens = compact.split()
    if len(tokens) >= 2 and tokens[1] == COMPACT_UNIT_LABEL:
        return f"{tokens[0]} {tokens[1]}"
    return f"{state.max_rate:g} {COMPACT_UNIT_LABEL}"


def _column_titles(states: Sequence[InterfaceState]) -> list[str]:
    return [f"{st.identifier} [{short_capability(st)}]" for st in states]


def _column_widths(states: Sequence[InterfaceState]) -> list[int]:
    return [max(len(t), MIN_COLUMN_WIDTH) for t in _column_titles(states)]


def stream_header(states: Sequence[InterfaceState]) -> str:
    """Column titles: time, then ``ident [cap]`` per port (values are rx/tx Gbps)."""
    cells = [f"{'time':<{TIME_WIDTH}s}"]
    for title, width in zip(_column_titles(states), _column_widths(states)):
        cells.append(f"{title:>{width}s}")
    return "  ".join(cells)


def stream_separator(header: str) -> str:
    return "─" * len(header)


def stream_line(states: Sequence[InterfaceState], timestamp: float | None = None) -> str:
    """One line of ``rx/tx`` Gbps pairs, aligned under stream_header()."""
    ts = time.strftime(TIME_FORMAT, time.localtime(timestamp))
    cells = [f"{ts:<{TIME_WIDTH}s}"]
    for st, width in zip(states, _column_widths(states)):
        cells.append(f"{f'{st.rx_rate:.2f}/{st.tx_rate:.2f}':>{width}s}")
    return "  ".join(cells)
