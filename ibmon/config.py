"""Configuration loading for ibmon.

Loads settings from TOML config files with sensible defaults; command-line
flags override the file.
Search order: explicit --config path → ~/.config/ibmon/config.toml → defaults only.
"""

from __future__ import annotations

import argparse
import math
import re
import sys
import tomllib
from pathlib import Path
from typing import Any

from ibmon.sysfs import SYSFS_ROOT, parse_ignore_list

DEFAULT_CONFIG: dict[str, Any] = {
    "interval": 1.0,
    "ignore": [],
    "sysfs_root": SYSFS_ROOT,
    "log_file": "",
    "log_level": "INFO",
    "thresholds": {
        # Fractions of link capacity, used to colour the bars
        "utilization": {"warning": 0.7, "critical": 0.9},
    },
}

_DEFAULT_PATH = Path.home() / ".config" / "ibmon" / "config.toml"

_NUMBER_RE = re.compile(r"\d+(?:\.\d*)?|\.\d+")
# One "<number><unit>" term of a Go-style duration such as "1m30s"
_DURATION_TERM_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)\s*(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Merge overlay into base, recursing into tables present in both."""
    merged = dict(base)
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _fail(message: str) -> SystemExit:
    print(f"ibmon: {message}", file=sys.stderr)
    return SystemExit(1)


def parse_duration(text: str) -> float:
    """Parse a duration such as ``"1s"``, ``"500ms"`` or ``"1m30s"`` into seconds.

    Accepts a sequence of ``<number><unit>`` terms with units ``ns``, ``us``
    (or ``µs``), ``ms``, ``s``, ``m`` and ``h``, or a bare number of seconds.

    Raises:
        ValueError: On anything else.
    """
    stripped = text.strip()
    if _NUMBER_RE.fullmatch(stripped):
        return float(stripped)
    if not stripped:
        raise ValueError(f"invalid duration: {text!r}")
    seconds = 0.0
    pos = 0
    while pos < len(stripped):
        match = _DURATION_TERM_RE.match(stripped, pos)
        if match is None:
            raise ValueError(f"invalid duration: {text!r}")
        value, unit = match.groups()
        seconds += float(value) * _DURATION_UNITS[unit]
        pos = match.end()
    return seconds


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration, merging user TOML over defaults.

    Args:
        path: Explicit config file path (from --config). If None, tries the
              default location ~/.config/ibmon/config.toml.

    Returns:
        Merged configuration dict.

    Raises:
        SystemExit: If an explicit path doesn't exist or can't be parsed.
    """
    if path is not None:
        if not path.is_file():
            raise _fail(f"config file not found: {path}")
        try:
            user_config = tomllib.loads(path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as e:
            print(f"ibmon: invalid TOML in {path}: {e}", file=sys.stderr)
            raise SystemExit(1) from e
        return _deep_merge(DEFAULT_CONFIG, user_config)

    if _DEFAULT_PATH.is_file():
        try:
            user_config = tomllib.loads(_DEFAULT_PATH.read_text(encoding="utf-8"))
            return _deep_merge(DEFAULT_CONFIG, user_config)
        except tomllib.TOMLDecodeError:
            print(
                f"ibmon: warning: ignoring invalid TOML in {_DEFAULT_PATH}",
                file=sys.stderr,
            )

    return dict(DEFAULT_CONFIG)


def dump_default_config() -> str:
    """Return the default configuration as a TOML string."""
    ignore = ", ".join(f'"{name}"' for name in DEFAULT_CONFIG["ignore"])
    lines = [
        "# ibmon configuration",
        "# Place this file at ~/.config/ibmon/config.toml",
        "",
        "# Seconds between samples",
        f"interval = {DEFAULT_CONFIG['interval']}",
        "# Adaptors (mlx5_0) or ports (mlx5_0:1) to skip",
        f"ignore = [{ignore}]",
        f'sysfs_root = "{DEFAULT_CONFIG["sysfs_root"]}"',
        f'log_file = "{DEFAULT_CONFIG["log_file"]}"',
        f'log_level = "{DEFAULT_CONFIG["log_level"]}"',
        "",
    ]
    for metric, levels in DEFAULT_CONFIG["thresholds"].items():
        lines.append(f"[thresholds.{metric}]")
        lines.append(f"warning = {levels['warning']}")
        lines.append(f"critical = {levels['critical']}")
        lines.append("")

    return "\n".join(lines) + "\n"


# ── Command-line options shared by both surfaces ───────────────────────────


def add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--interval",
        default=None,
        metavar="DURATION",
        help="Update interval, e.g. 1s, 500ms, 2m (default: 1s)",
    )
    parser.add_argument(
        "--ignore",
        default=None,
        metavar="LIST",
        help="Comma-separated adaptors or adaptor:port pairs to ignore",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help="Path to TOML config file",
    )
    parser.add_argument(
        "--sysfs-root",
        default=None,
        metavar="PATH",
        help=f"InfiniBand class directory (default: {SYSFS_ROOT})",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        metavar="PATH",
        help="Write log messages to this file",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--dump-config",
        action="store_true",
        help="Print the default configuration as TOML and exit",
    )


def resolve_settings(args: argparse.Namespace) -> dict[str, Any]:
    """Merge parsed flags over the loaded config and validate them.

    Raises:
        SystemExit: On a malformed, non-positive or non-finite interval.
    """
    config = load_config(args.config)

    interval: Any = config["interval"]
    if args.interval is not None:
        try:
            interval = parse_duration(args.interval)
        except ValueError as e:
            raise _fail(str(e)) from e
    try:
        interval = float(interval)
    except (TypeError, ValueError) as e:
        raise _fail(f"invalid interval: {interval!r}") from e
    if not math.isfinite(interval) or interval <= 0:
        raise _fail(f"interval must be positive and finite, got {interval}")

    if args.ignore is not None:
        ignore = parse_ignore_list(args.ignore)
    else:
        configured = config["ignore"]
        if isinstance(configured, str):
            ignore = parse_ignore_list(configured)
        else:
            ignore = {str(name).strip() for name in configured if str(name).strip()}

    return {
        **config,
        "interval": interval,
        "ignore": ignore,
        "sysfs_root": args.sysfs_root or config["sysfs_root"],
        "log_file": args.log_file if args.log_file is not None else config["log_file"],
        "log_level": args.log_level or config["log_level"],
    }
