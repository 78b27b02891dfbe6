"""
Exception types raised by HostSweep.

Network failures never surface as exceptions; they are folded into
`Failed`/`Closed` outcomes by the prober.
"""


class HostSweepError(Exception):
    """Base class for all HostSweep errors."""


class ConfigError(HostSweepError):
    """The configuration file could not be read or parsed."""


class AggregatorClosedError(HostSweepError):
    """A result was submitted after the result set was finalized."""


class CardinalityError(HostSweepError):
    """A completed run did not produce exactly one result per target."""
