"""Main application entry point for the NVIDIA GPU exporter."""

import argparse
import logging
import signal
import sys
import threading
from typing import Any, Dict, List, Optional

from prometheus_client import CollectorRegistry, PLATFORM_COLLECTOR, PROCESS_COLLECTOR

from .collectors.command import CommandError, NvidiaSmi
from .collectors.fields import parse_auto_query_fields, NoQueryFieldsError
from .collectors.gpu_collector import GPUCollector
from .config.loader import ConfigLoader
from .config.models import ExporterConfig
from .config.settings import Settings
from .server import start_server
from .utils.logger import setup_logger


class ExporterApp:
    """
    Main exporter application.

    Wires configuration, the GPU collector and the HTTP server together,
    and waits for a shutdown signal or a fatal scrape error.
    """

    def __init__(self, config: ExporterConfig, logger: Optional[logging.Logger] = None):
        """
        Initialize exporter application.

        Args:
            config: Validated configuration
            logger: Logger instance, created from config.log_level when omitted

        Raises:
            UnexpectedQueryFieldError: If the query fields cannot be mapped
        """
        self.config = config
        self.logger = logger or setup_logger("nvidia_gpu_exporter", config.log_level)
        self.stop_event = threading.Event()
        self.shutdown_error: Optional[Exception] = None
        self.server = None

        self.logger.info("Initializing GPU collector...")
        self.collector = GPUCollector(
            config.collector,
            self.logger,
            shutdown_callback=self._on_scrape_error,
            stop_event=self.stop_event
        )

        self.registry = CollectorRegistry()
        self.registry.register(self.collector)
        self.registry.register(PROCESS_COLLECTOR)
        self.registry.register(PLATFORM_COLLECTOR)

    def _on_scrape_error(self, error: Exception):
        """Shut the exporter down after a failed nvidia-smi run."""
        self.logger.error(f"Shutting down on scrape error: {error}")
        self.shutdown_error = error
        self.stop_event.set()

    def _signal_handler(self, signum, frame):
        """
        Handle shutdown signals.

        Args:
            signum: Signal number
            frame: Current stack frame
        """
        signal_name = signal.Signals(signum).name
        self.logger.info(f"Received {signal_name}, initiating graceful shutdown...")
        self.stop_event.set()

    def run(self) -> int:
        """
        Serve metrics until a shutdown is requested.

        Returns:
            int: Process exit code, 1 if shutdown was caused by a scrape error
        """
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        self.server = start_server(self.config.web, self.registry, self.logger)
        self.logger.info(
            f"Listening on {self.config.web.listen_address}, "
            f"metrics at {self.config.web.telemetry_path}"
        )

        try:
            while not self.stop_event.wait(timeout=1.0):
                pass
        finally:
            self.logger.info("Shutting down http server")
            self.server.shutdown()
            self.server.server_close()

        return 1 if self.shutdown_error is not None else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Prometheus exporter for NVIDIA GPU metrics collected through nvidia-smi',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Auto-detect all query fields and listen on :9835
  nvidia-gpu-exporter

  # Query a fixed set of fields
  nvidia-gpu-exporter --query-field-names fan.speed,memory.used,power.draw

  # List the query fields nvidia-smi supports
  nvidia-gpu-exporter --list-query-fields
        """
    )

    parser.add_argument('--config', help='Path to YAML configuration file')
    parser.add_argument('--web.listen-address', dest='listen_address',
                        help='Address to listen on (default: :9835)')
    parser.add_argument('--web.telemetry-path', dest='telemetry_path',
                        help='Path under which to expose metrics (default: /metrics)')
    parser.add_argument('--nvidia-smi-command', dest='nvidia_smi_command',
                        help='Path or command to be used for the nvidia-smi executable')
    parser.add_argument('--query-field-names', dest='query_field_names',
                        help='Comma-separated list of query fields, or AUTO to detect them '
                             '(see `nvidia-smi --help-query-gpu`)')
    parser.add_argument('--shutdown-on-error', dest='shutdown_on_error', action='store_true',
                        default=None,
                        help='Shut down the exporter if nvidia-smi exits with an error')
    parser.add_argument('--command-timeout', dest='command_timeout', type=float,
                        help='Seconds before an nvidia-smi run is killed (default: 10)')
    parser.add_argument('--log-level', dest='log_level', type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: INFO)')
    parser.add_argument('--list-query-fields', action='store_true',
                        help='Print the query fields supported by nvidia-smi and exit')
    return parser


def cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Turn parsed CLI flags into a nested config override dictionary."""
    sections = {
        "collector": ("nvidia_smi_command", "query_field_names", "shutdown_on_error", "command_timeout"),
        "web": ("listen_address", "telemetry_path"),
    }
    overrides: Dict[str, Any] = {}
    for section, keys in sections.items():
        values = {k: getattr(args, k) for k in keys if getattr(args, k) is not None}
        if values:
            overrides[section] = values
    if args.log_level:
        overrides["log_level"] = args.log_level
    return overrides


def load_config(args: argparse.Namespace) -> ExporterConfig:
    """
    Resolve configuration: file, then environment, then CLI flags.

    Raises:
        FileNotFoundError: If --config points to a missing file
        pydantic.ValidationError: If the result is invalid
    """
    config = ConfigLoader.load_from_file(args.config) if args.config else ExporterConfig()
    config = ConfigLoader.apply_overrides(config, Settings.overrides())
    return ConfigLoader.apply_overrides(config, cli_overrides(args))


def list_query_fields(config: ExporterConfig, logger: logging.Logger) -> int:
    nvidia_smi = NvidiaSmi(
        command=config.collector.nvidia_smi_command,
        timeout=config.collector.command_timeout,
        logger=logger
    )
    try:
        fields = parse_auto_query_fields(nvidia_smi)
    except (CommandError, NoQueryFieldsError) as e:
        logger.error(f"Failed to list query fields: {e}")
        return 1

    print("Fields:\n")
    print("\n".join(fields))
    return 0


def main(argv: Optional[List[str]] = None):
    """
    CLI entry point.

    Parses command-line arguments and starts the exporter.
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
    except Exception as e:
        logging.error(f"Failed to load configuration: {e}", exc_info=True)
        sys.exit(1)

    logger = setup_logger("nvidia_gpu_exporter", config.log_level)

    if args.list_query_fields:
        sys.exit(list_query_fields(config, logger))

    try:
        app = ExporterApp(config, logger)
    except Exception as e:
        logger.error(f"Failed to create exporter: {e}", exc_info=True)
        sys.exit(1)

    sys.exit(app.run())


if __name__ == '__main__':
    main()
