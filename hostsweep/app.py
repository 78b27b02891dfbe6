"""
Command-line application for HostSweep.

Parses arguments, loads the configuration, runs the scan and exports the
results. Ctrl-C cancels the run; whatever was probed is still exported.
"""
import argparse
import logging
import signal
import sys
from typing import List, Optional

from . import __version__, configuration
from .controller import ScanController
from .exceptions import ConfigError
from .network import PING_METHODS, default_ping_method
from .parsing import TargetParser

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONSOLE_ONLY = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hostsweep",
        description="Concurrent ping and TCP port sweep with ';'-delimited export.",
    )
    parser.add_argument("targets", nargs="*", help="Hostnames or addresses to probe.")
    parser.add_argument("-f", "--targets-file", help="Read targets from a file, one per line ('-' for stdin).")
    parser.add_argument("-p", "--ports", help="Ports to check, e.g. '80,443'. Defaults to the config file.")
    parser.add_argument("-c", "--concurrency", type=int, help="Maximum probes in flight.")
    parser.add_argument("--ping-timeout", type=int, metavar="MS", help="Ping timeout in milliseconds.")
    parser.add_argument("--port-timeout", type=int, metavar="MS", help="Port connect timeout in milliseconds.")
    parser.add_argument("-o", "--output", help="Primary output file path.")
    parser.add_argument("--fallback", help="Fallback output file path.")
    parser.add_argument("--ping-method", choices=PING_METHODS, help="How to send the reachability probe.")
    parser.add_argument("--sort", action="store_true", default=None, help="Sort rows by target.")
    parser.add_argument("--config", default=None, help="Path to the YAML config file.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def apply_overrides(config: dict, args: argparse.Namespace) -> dict:
    """Applies command-line overrides on top of the loaded config."""
    overrides = {
        'concurrency_limit': args.concurrency,
        'ping_timeout_ms': args.ping_timeout,
        'port_timeout_ms': args.port_timeout,
        'ping_method': args.ping_method,
        'sort_by_target': args.sort,
    }
    merged = dict(config)
    merged.update({k: v for k, v in overrides.items() if v is not None})
    if args.verbose:
        merged['log_level'] = 'DEBUG'
    return merged


def make_interrupt_handler(controller: ScanController):
    """
    SIGINT handler: the first Ctrl-C during a scan cancels it. Outside a scan,
    or once cancellation is already under way, it interrupts as usual.
    """
    def _on_interrupt(signum, frame):
        if not controller.cancel():
            raise KeyboardInterrupt
    return _on_interrupt


def _log_progress(completed: int, total: int):
    logger.info("Progress: %d/%d", completed, total)


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the application."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    try:
        config = apply_overrides(configuration.load_or_create_config(args.config), args)
    except ConfigError as e:
        logger.error("%s", e)
        return EXIT_ERROR

    logging.getLogger().setLevel(getattr(logging, str(config['log_level']).upper(), logging.INFO))

    try:
        targets = TargetParser().collect(args.targets, args.targets_file)
    except OSError as e:
        logger.error("Could not read targets: %s", e)
        return EXIT_ERROR
    if not targets:
        logger.warning("No targets provided; nothing to probe.")

    try:
        controller = ScanController(config)
    except ValueError as e:
        logger.error("%s", e)
        return EXIT_ERROR
    if config['ping_method'] == 'auto':
        logger.info("Ping method: %s", default_ping_method())

    previous_handler = signal.getsignal(signal.SIGINT)
    signal.signal(signal.SIGINT, make_interrupt_handler(controller))
    try:
        report = controller.run(
            targets,
            ports=args.ports,
            primary_path=args.output,
            fallback_path=args.fallback,
            on_progress=_log_progress,
        )
    except KeyboardInterrupt:
        logger.warning("Interrupted.")
        return EXIT_INTERRUPTED
    except ValueError as e:
        logger.error("%s", e)
        return EXIT_ERROR
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    return EXIT_OK if report.outcome.written_to_file else EXIT_CONSOLE_ONLY


if __name__ == "__main__":
    sys.exit(main())
