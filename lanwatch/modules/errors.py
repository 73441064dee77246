"""
Error types raised by the discovery engine.

Only whole-operation failures are exceptions. A host that does not answer,
or whose name or link address cannot be resolved, is an expected absence
and never raises.
"""


class LanWatchError(Exception):
    """Base class for LanWatch errors."""


class NoNetworkError(LanWatchError):
    """No non-loopback IPv4 interface is available to sweep."""

    def __init__(self, message: str = "Could not determine local network"):
        super().__init__(message)


class UnsupportedRangeError(NoNetworkError):
    """The interface netmask is not a /24; sweeping it is not supported."""

    def __init__(self, netmask: str, prefix_length: int):
        self.netmask = netmask
        self.prefix_length = prefix_length
        super().__init__(
            f"Unsupported network range: netmask {netmask} (/{prefix_length}); "
            "only /24 networks can be swept"
        )


class SweepInProgressError(LanWatchError):
    """A sweep was requested while another one is still running."""

    def __init__(self, message: str = "Scan already in progress"):
        super().__init__(message)
