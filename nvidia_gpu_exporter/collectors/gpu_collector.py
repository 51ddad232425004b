"""NVIDIA GPU metrics collector backed by nvidia-smi."""

import logging
import queue
import threading
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric

from ..config.models import CollectorConfig
from ..utils.metrics import MetricInfo, build_fq_name, build_metric_infos
from ..utils.status import ScrapeState
from ..utils.table import Row, Table, parse_csv_into_table
from ..utils.values import ValueParseError, transform_raw_value
from .base import BaseCollector
from .command import UNKNOWN_EXIT_CODE, CommandError, CommandExitError, CommandRunner, NvidiaSmi
from .fields import REQUIRED_FIELDS, UUID, FieldMapping, resolve_fields


UUID_PREFIX = "gpu-"

ShutdownCallback = Callable[[Exception], None]


class GPUCollector(BaseCollector):
    """
    Collector exporting nvidia-smi query results as Prometheus gauges.

    The field mapping and per-field metric metadata are resolved once at
    construction and never modified afterwards. Scrapes are serialized by a
    single lock so that at most one nvidia-smi process runs at a time.
    """

    def __init__(
        self,
        config: CollectorConfig,
        logger: logging.Logger,
        runner: Optional[CommandRunner] = None,
        shutdown_callback: Optional[ShutdownCallback] = None,
        stop_event: Optional[threading.Event] = None,
        field_mapping: Optional[FieldMapping] = None
    ):
        """
        Initialize GPU collector.

        Args:
            config: Collector configuration
            logger: Logger instance
            runner: Command execution strategy (defaults to a real subprocess)
            shutdown_callback: Called with the error when nvidia-smi exits
                nonzero and config.shutdown_on_error is set
            stop_event: Once set, metric emission stops immediately
            field_mapping: Pre-resolved field mapping, resolved via nvidia-smi
                when omitted

        Raises:
            UnexpectedQueryFieldError: If the field mapping cannot be resolved
        """
        super().__init__(logger)
        self.config = config
        self.prefix = config.prefix
        self.shutdown_callback = shutdown_callback if config.shutdown_on_error else None
        self.stop_event = stop_event or threading.Event()

        self.nvidia_smi = NvidiaSmi(
            command=config.nvidia_smi_command,
            runner=runner,
            timeout=config.command_timeout,
            logger=self.logger,
            stop_event=self.stop_event
        )

        self.field_mapping = field_mapping or resolve_fields(
            config.field_spec(), self.nvidia_smi, self.logger
        )
        self.query_fields = self.field_mapping.query_fields
        self.metric_infos: Dict[str, MetricInfo] = build_metric_infos(
            self.prefix, self.field_mapping.returned_fields, self.logger
        )

        self.failed_scrapes_name = build_fq_name(self.prefix, "failed_scrapes_total")
        self.exit_code_name = build_fq_name(self.prefix, "command_exit_code")
        self.gpu_info_name = build_fq_name(self.prefix, "gpu_info")
        self.info_labels = [f.label for f in REQUIRED_FIELDS]

        self._lock = threading.Lock()
        self._failed_scrapes = 0
        self.last_exit_code = UNKNOWN_EXIT_CODE
        self.state = ScrapeState.IDLE

        self.logger.info(
            f"GPU collector initialized with {len(self.query_fields)} query fields",
            extra={"query_fields": list(self.query_fields), "prefix": self.prefix}
        )

    @property
    def failed_scrapes(self) -> int:
        return self._failed_scrapes

    def describe(self) -> List[Metric]:
        """
        Describe every metric this collector can export, without running nvidia-smi.

        Returns:
            List[Metric]: Metric families without samples
        """
        with self._lock:
            families = [
                family for family in
                (self._field_family(q, info) for q, info in self.metric_infos.items())
                if family is not None
            ]
            families.append(self._failed_scrapes_family())
            families.append(self._exit_code_family())
            families.append(self._gpu_info_family())
            return families

    def collect(self) -> Iterator[Metric]:
        """
        Scrape nvidia-smi and yield metric families.

        Nothing is scraped once the stop event is set. A failed scrape always
        yields its exit code and failure counter, even when the failure itself
        triggered a shutdown; a successful one stops between families.

        Yields:
            Metric: Exit code gauge, then either the failure counter or the
                gpu_info family followed by one family per query field
        """
        if self.stop_event.is_set():
            self.logger.info("Stop requested, skipping scrape")
            return

        families, failed = self._scrape()
        for family in families:
            if not failed and self.stop_event.is_set():
                self.logger.info("Stop requested, aborting metric emission")
                return
            yield family

    def collect_into(self, sink: "queue.Queue[Metric]", put_timeout: float = 0.1) -> int:
        """
        Scrape and push metric families onto a queue.

        Blocks while the queue is full, but gives up as soon as the stop
        event is set instead of waiting on a stuck consumer forever.

        Args:
            sink: Destination queue
            put_timeout: Seconds between stop event checks while the queue is full

        Returns:
            int: Number of families delivered
        """
        if self.stop_event.is_set():
            self.logger.info("Stop requested, skipping scrape")
            return 0

        families, failed = self._scrape()
        sent = 0
        for family in families:
            if not failed and self.stop_event.is_set():
                self.logger.info("Stop requested, aborting metric emission")
                break
            if not self._send(sink, family, put_timeout):
                self.logger.info("Stop requested, consumer is not reading, dropping metrics")
                break
            sent += 1
        return sent

    def _send(self, sink: "queue.Queue[Metric]", family: Metric, put_timeout: float) -> bool:
        while True:
            try:
                sink.put(family, timeout=put_timeout)
                return True
            except queue.Full:
                if self.stop_event.is_set():
                    return False

    def scrape(self) -> List[Metric]:
        """
        Run one scrape under the collector lock.

        Returns:
            List[Metric]: Metric families produced by this scrape
        """
        return self._scrape()[0]

    def _scrape(self) -> Tuple[List[Metric], bool]:
        with self._lock:
            self.state = ScrapeState.SCRAPING
            try:
                table = self._run_query()
            except CommandError as e:
                self.state = ScrapeState.FAILURE
                return self._handle_failure(e), True

            self.state = ScrapeState.SUCCESS
            return [self._exit_code_family(self.last_exit_code)] + self._table_families(table), False

    def _run_query(self) -> Table:
        """
        Run the nvidia-smi query and parse its output.

        Raises:
            CommandError: If nvidia-smi fails or its output does not parse
        """
        command = self.nvidia_smi.query_command(self.query_fields)
        try:
            result = self.nvidia_smi.run(command)
        except CommandError as e:
            self.last_exit_code = e.exit_code
            raise

        try:
            table = parse_csv_into_table(result.stdout, self.query_fields)
        except ValueError as e:
            self.last_exit_code = UNKNOWN_EXIT_CODE
            raise CommandError(
                f"failed to parse output: {e}",
                command=command,
                stdout=result.stdout,
                stderr=result.stderr
            ) from e

        self.last_exit_code = result.exit_code
        return table

    def _handle_failure(self, error: CommandError) -> List[Metric]:
        self._failed_scrapes += 1
        self.logger.error(
            f"Failed to collect metrics: {error}",
            extra={
                "exit_code": error.exit_code,
                "command": " ".join(error.command),
                "stdout": error.stdout,
                "stderr": error.stderr
            }
        )

        if self.shutdown_callback is not None and isinstance(error, CommandExitError):
            self.logger.error("nvidia-smi exited with an error, requesting shutdown")
            self.shutdown_callback(error)

        return [
            self._exit_code_family(self.last_exit_code),
            self._failed_scrapes_family(self._failed_scrapes)
        ]

    def _table_families(self, table: Table) -> List[Metric]:
        info_family = self._gpu_info_family()
        field_families = {
            q: family for q, family in
            ((q, self._field_family(q, info)) for q, info in self.metric_infos.items())
            if family is not None
        }

        for row in table.rows:
            uuid = self._device_uuid(row)
            info_family.add_metric(
                [uuid if f.query_field == UUID else row.raw_value(f.query_field) for f in REQUIRED_FIELDS],
                1
            )

            for cell in row.cells:
                family = field_families.get(cell.query_field)
                if family is None:
                    continue

                info = self.metric_infos[cell.query_field]
                try:
                    value = transform_raw_value(cell.raw_value, info.multiplier)
                except ValueParseError as e:
                    self.logger.debug(
                        f"Failed to transform raw value: {e}",
                        extra={"query_field": cell.query_field, "raw_value": cell.raw_value}
                    )
                    continue

                family.add_metric([uuid], value)

        return [info_family] + [field_families[q] for q in self.query_fields if q in field_families]

    @staticmethod
    def _device_uuid(row: Row) -> str:
        return row.raw_value(UUID).lower().removeprefix(UUID_PREFIX)

    def _field_family(self, query_field: str, info: MetricInfo) -> Optional[GaugeMetricFamily]:
        try:
            return GaugeMetricFamily(info.name, info.documentation, labels=["uuid"])
        except ValueError as e:
            self.logger.error(
                f"Cannot export query field {query_field!r} as {info.name!r}: {e}",
                extra={"query_field": query_field, "metric_name": info.name}
            )
            return None

    def _failed_scrapes_family(self, value: Optional[float] = None) -> CounterMetricFamily:
        return CounterMetricFamily(self.failed_scrapes_name, "Number of failed scrapes", value=value)

    def _exit_code_family(self, value: Optional[float] = None) -> GaugeMetricFamily:
        return GaugeMetricFamily(self.exit_code_name, "Exit code of the last scrape command", value=value)

    def _gpu_info_family(self) -> GaugeMetricFamily:
        return GaugeMetricFamily(
            self.gpu_info_name,
            f"A metric with a constant '1' value labeled by gpu {', '.join(self.info_labels)}.",
            labels=self.info_labels
        )
