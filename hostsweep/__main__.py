"""
Main entry point for HostSweep when run as `python -m hostsweep`.
"""
import sys

from hostsweep.app import main


def main_entry():
    """Runs the command-line application and exits with its status."""
    sys.exit(main())


if __name__ == "__main__":
    main_entry()
