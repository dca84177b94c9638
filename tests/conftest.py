"""Shared fixtures: fake /sys/class/infiniband trees and port descriptors."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from ibmon.loop import InterfaceState
from ibmon.sysfs import InterfaceDescriptor


@pytest.fixture()
def sysfs_root(tmp_path: Path) -> Path:
    root = tmp_path / "infiniband"
    root.mkdir()
    return root


@pytest.fixture()
def make_port(sysfs_root: Path) -> Callable[..., Path]:
    """Create ``<root>/<adaptor>/ports/<port>`` with counter and rate files.

    Pass ``rate=None`` to leave out the rate file, ``rx=None``/``tx=None`` to
    leave out a counter.
    """

    def _make(
        adaptor: str,
        port: str = "1",
        rx: int | None = 0,
        tx: int | None = 0,
        rate: str | None = "100 Gb/sec (4X EDR)",
    ) -> Path:
        port_dir = sysfs_root / adaptor / "ports" / port
        counters = port_dir / "counters"
        counters.mkdir(parents=True)
        if rx is not None:
            (counters / "port_rcv_data").write_text(f"{rx}\n")
        if tx is not None:
            (counters / "port_xmit_data").write_text(f"{tx}\n")
        if rate is not None:
            (port_dir / "rate").write_text(f"{rate}\n")
        return port_dir

    return _make


def descriptor(
    adaptor: str = "mlx5_0",
    port: str = "1",
    max_rate: float = 100.0,
    capability: str = "100 Gb/sec (4X EDR)",
) -> InterfaceDescriptor:
    """In-memory descriptor whose counter paths are plain keys like ``mlx5_0:1/rx``."""
    ident = f"{adaptor}:{port}"
    return InterfaceDescriptor(
        adaptor=adaptor,
        port=port,
        rx_path=f"{ident}/rx",
        tx_path=f"{ident}/tx",
        rate_path=f"{ident}/rate",
        max_rate=max_rate,
        label=capability.replace("Gb/sec", "Gbps") if capability else "N/A",
        capability=capability,
    )


@pytest.fixture()
def make_state() -> Callable[..., InterfaceState]:
    def _make(adaptor: str = "mlx5_0", port: str = "1", **kwargs: Any) -> InterfaceState:
        max_rate = float(kwargs.pop("max_rate", 100.0))
        return InterfaceState(descriptor=descriptor(adaptor, port, max_rate=max_rate), **kwargs)

    return _make


class FakeCounters:
    """Counter reader backed by a dict; missing keys raise OSError."""

    def __init__(self, values: dict[str, int] | None = None) -> None:
        self.values: dict[str, int] = dict(values or {})
        self.calls: list[str] = []

    def __call__(self, path: str) -> int:
        self.calls.append(path)
        if path not in self.values:
            raise OSError(f"No such file: {path}")
        return self.values[path]

    def set(self, ident: str, rx: int, tx: int) -> None:
        self.values[f"{ident}/rx"] = rx
        self.values[f"{ident}/tx"] = tx

    def drop(self, ident: str) -> None:
        self.values.pop(f"{ident}/rx", None)
        self.values.pop(f"{ident}/tx", None)


@pytest.fixture()
def counters() -> FakeCounters:
    return FakeCounters()


@pytest.fixture()
def make_descriptor() -> Callable[..., InterfaceDescriptor]:
    return descriptor
