"""InfiniBand port discovery and counter reads from /sys/class/infiniband."""

from __future__ import annotations

import os
from dataclasses import dataclass

from loguru import logger

from ibmon.rates import MalformedRate, normalize_label, parse_capability

SYSFS_ROOT = "/sys/class/infiniband"
RX_COUNTER = os.path.join("counters", "port_rcv_data")
TX_COUNTER = os.path.join("counters", "port_xmit_data")
RATE_FILE = "rate"

# Label shown when a port has no readable rate file
UNKNOWN_LABEL = "N/A"


class DiscoveryError(OSError):
    """The sysfs root could not be listed."""


@dataclass(frozen=True)
class InterfaceDescriptor:
    """One monitored port, as found on disk."""

    adaptor: str
    port: str
    rx_path: str
    tx_path: str
    rate_path: str
    max_rate: float = 0.0
    label: str = UNKNOWN_LABEL
    capability: str = ""  # raw rate file text, empty when unreadable

    @property
    def identifier(self) -> str:
        return f"{self.adaptor}:{self.port}"


def read_counter(path: str) -> int:
    """Read a monotonic counter file. Raises OSError or ValueError."""
    with open(path) as f:
        return int(f.read().strip())


def read_rate(path: str) -> str:
    """Read a port's rate file, e.g. ``"400 Gb/sec (4X NDR)"``."""
    with open(path) as f:
        return f.read().strip()


def parse_ignore_list(text: str) -> set[str]:
    """Split a comma-separated ignore option into a set of names."""
    return {name.strip() for name in text.split(",") if name.strip()}


def _capability(rate_path: str) -> tuple[float, str, str]:
    """Resolve ``(max_rate, label, raw_text)`` for a port, degrading to unknown."""
    try:
        text = read_rate(rate_path)
    except OSError as e:
        logger.debug(f"No rate for {rate_path}: {e}")
        return 0.0, UNKNOWN_LABEL, ""
    try:
        max_rate, label = parse_capability(text)
    except MalformedRate as e:
        logger.warning(f"{e}; treating capacity as unknown")
        return 0.0, normalize_label(text) or UNKNOWN_LABEL, text
    return max_rate, label, text


def discover_interfaces(
    ignore: set[str] | frozenset[str] = frozenset(),
    root: str = SYSFS_ROOT,
) -> list[InterfaceDescriptor]:
    """Find every port with both traffic counters under ``root``.

    Adaptors and ports are visited in sorted order. ``ignore`` may name a
    whole adaptor (``mlx5_1``) or a single port (``mlx5_1:2``).

    Raises:
        DiscoveryError: If ``root`` itself cannot be listed.
    """
    try:
        adaptors = sorted(os.listdir(root))
    except OSError as e:
        raise DiscoveryError(f"cannot read {root}: {e}") from e

    found: list[InterfaceDescriptor] = []
    for adaptor in adaptors:
        if adaptor in ignore:
            logger.debug(f"Ignoring adaptor {adaptor}")
            continue
        # Entries are usually symlinks into /sys/devices
        adaptor_path = os.path.join(root, adaptor)
        if not os.path.isdir(adaptor_path):
            continue
        ports_dir = os.path.join(adaptor_path, "ports")
        try:
            ports = sorted(os.listdir(ports_dir))
        except OSError:
            continue

        for port in ports:
            port_path = os.path.join(ports_dir, port)
            if not os.path.isdir(port_path):
                continue
            if f"{adaptor}:{port}" in ignore:
                logger.debug(f"Ignoring port {adaptor}:{port}")
                continue
            rx_path = os.path.join(port_path, RX_COUNTER)
            tx_path = os.path.join(port_path, TX_COUNTER)
            if not (os.path.isfile(rx_path) and os.path.isfile(tx_path)):
                logger.debug(f"Skipping {adaptor}:{port}: missing counters")
                continue
            rate_path = os.path.join(port_path, RATE_FILE)
            max_rate, label, capability = _capability(rate_path)
            found.append(
                InterfaceDescriptor(
                    adaptor=adaptor,
                    port=port,
                    rx_path=rx_path,
                    tx_path=tx_path,
                    rate_path=rate_path,
                    max_rate=max_rate,
                    label=label,
                    capability=capability,
                )
            )

    logger.info(f"Discovered {len(found)} port(s) under {root}")
    return found
