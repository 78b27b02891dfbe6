"""
HostSweep: concurrent ping and TCP port sweeps with resilient export.
"""

__version__ = "1.0.0"
