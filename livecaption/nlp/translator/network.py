from __future__ import annotations

from typing import Protocol

from livecaption.contracts import NetworkPolicy


class NetworkMonitor(Protocol):
    def is_metered(self) -> bool:
        ...


class StaticNetworkMonitor:
    """Reports a fixed metering state, taken from configuration."""

    def __init__(self, metered: bool = False) -> None:
        self.metered = bool(metered)

    def is_metered(self) -> bool:
        return self.metered


def download_allowed(policy: NetworkPolicy, monitor: NetworkMonitor) -> bool:
    if policy == NetworkPolicy.ANY:
        return True
    return not monitor.is_metered()
