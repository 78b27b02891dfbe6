"""
Detects whether this process may open raw ICMP sockets.
"""
import ctypes
import os
import sys
from functools import lru_cache


@lru_cache(maxsize=1)
def is_admin() -> bool:
    """True when running as root (POSIX) or as an elevated administrator (Windows)."""
    if sys.platform == "win32":
        shell32 = getattr(getattr(ctypes, "windll", None), "shell32", None)
        return bool(shell32 and shell32.IsUserAnAdmin())
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0
