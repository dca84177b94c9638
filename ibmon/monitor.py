"""Line-oriented throughput stream: one header, one separator, one line per tick.

Usage:
    uv run ibmon-stream
    uv run ibmon-stream --interval 500ms --ignore mlx5_2,mlx5_0:2 --count 60
"""

from __future__ import annotations

import argparse
import sys
import time
from typing import Any, Callable, TextIO

from loguru import logger

from ibmon import configure_logging
from ibmon.config import add_common_args, dump_default_config, resolve_settings
from ibmon.layout import stream_header, stream_line, stream_separator
from ibmon.loop import Key, NoInterfacesError, Tick, UpdateLoop, ViewportState
from ibmon.sysfs import DiscoveryError, discover_interfaces


def start(settings: dict[str, Any], viewport: ViewportState | None = None) -> UpdateLoop:
    """Discover ports and seed the update loop.

    Raises:
        SystemExit: If discovery fails or nothing is left to monitor.
    """
    try:
        descriptors = discover_interfaces(settings["ignore"], settings["sysfs_root"])
        return UpdateLoop.from_descriptors(descriptors, settings["interval"], viewport=viewport)
    except (DiscoveryError, NoInterfacesError) as e:
        logger.error(str(e))
        print(f"ibmon: {e}", file=sys.stderr)
        raise SystemExit(1) from e


def run_stream(
    loop: UpdateLoop,
    out: TextIO | None = None,
    count: int | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Print a line per tick until ``count`` lines or the loop terminates.

    Ticks follow a fixed deadline schedule; a late tick is run immediately
    rather than skipped. Returns the number of lines written.
    """
    out = out if out is not None else sys.stdout
    header = stream_header(loop.states)
    print(header, file=out)
    print(stream_separator(header), file=out, flush=True)

    written = 0
    next_tick = clock() + loop.interval
    while not loop.terminated and (count is None or written < count):
        sleep(max(0.0, next_tick - clock()))
        next_tick += loop.interval
        tick = Tick()
        loop.handle(tick)
        print(stream_line(loop.states, tick.timestamp), file=out, flush=True)
        written += 1
    return written


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Print InfiniBand port throughput (rx/tx Gbps) once per interval.",
    )
    add_common_args(parser)
    parser.add_argument(
        "--count",
        type=int,
        default=None,
        metavar="N",
        help="Exit after N samples (default: run until interrupted)",
    )
    args = parser.parse_args(argv)

    if args.dump_config:
        print(dump_default_config(), end="")
        return

    settings = resolve_settings(args)
    configure_logging(settings["log_file"] or None, settings["log_level"])
    loop = start(settings)

    try:
        run_stream(loop, count=args.count)
    except KeyboardInterrupt:
        loop.handle(Key("ctrl+c"))
        print("\nibmon: stopped.")


if __name__ == "__main__":
    main()
