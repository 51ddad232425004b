"""Shared pytest configuration and fixtures."""

import pytest
import threading
from pathlib import Path
from typing import List, Optional

from nvidia_gpu_exporter.collectors.catalog import FALLBACK_RETURNED_FIELDS
from nvidia_gpu_exporter.collectors.command import CommandResult
from nvidia_gpu_exporter.config.models import CollectorConfig
from nvidia_gpu_exporter.utils.logger import setup_logger


DATA_DIR = Path(__file__).parent / "data"

REFERENCE_FIELDS = (
    "uuid,name,driver_model.current,driver_model.pending,"
    "vbios_version,driver_version,fan.speed,memory.used"
)


class StubRunner:
    """
    Stands in for the subprocess runner.

    Returns help_stdout for --help-query-gpu and query_stdout for
    --query-gpu runs, and records every command it was asked to run.
    """

    def __init__(
        self,
        query_stdout: str = "",
        help_stdout: str = "",
        exit_code: int = 0,
        help_exit_code: Optional[int] = None,
        stderr: str = "",
        error: Optional[Exception] = None
    ):
        self.query_stdout = query_stdout
        self.help_stdout = help_stdout
        self.exit_code = exit_code
        self.help_exit_code = exit_code if help_exit_code is None else help_exit_code
        self.stderr = stderr
        self.error = error
        self.calls: List[List[str]] = []
        self.timeouts: List[Optional[float]] = []

    def __call__(
        self,
        command: List[str],
        timeout: Optional[float],
        stop_event: Optional[threading.Event] = None
    ) -> CommandResult:
        self.calls.append(list(command))
        self.timeouts.append(timeout)
        if self.error is not None:
            raise self.error

        if "--help-query-gpu" in command:
            return CommandResult(command=list(command), exit_code=self.help_exit_code,
                                 stdout=self.help_stdout, stderr=self.stderr)

        return CommandResult(command=list(command), exit_code=self.exit_code,
                             stdout=self.query_stdout, stderr=self.stderr)

    @property
    def query_calls(self) -> List[List[str]]:
        return [c for c in self.calls if any(a.startswith("--query-gpu=") for a in c)]


def catalog_csv(query_fields, rows) -> str:
    """Build nvidia-smi style CSV using catalog labels as the header."""
    header = ", ".join(FALLBACK_RETURNED_FIELDS[q] for q in query_fields)
    return "\n".join([header] + [", ".join(row) for row in rows]) + "\n"


@pytest.fixture
def logger():
    """Create logger for tests."""
    return setup_logger("test", "DEBUG")


@pytest.fixture(scope="session")
def help_text():
    """Sample `nvidia-smi --help-query-gpu` output."""
    return (DATA_DIR / "help_query_gpu.txt").read_text()


@pytest.fixture(scope="session")
def query_csv():
    """Sample `nvidia-smi --query-gpu=... --format=csv` output for REFERENCE_FIELDS."""
    return (DATA_DIR / "query_gpu.csv").read_text()


@pytest.fixture
def collector_config():
    """Collector configuration querying the reference fields."""
    return CollectorConfig(prefix="prefix", query_field_names=REFERENCE_FIELDS)


@pytest.fixture
def stub_runner(query_csv, help_text):
    """Runner answering with the sample outputs."""
    return StubRunner(query_stdout=query_csv, help_stdout=help_text)


@pytest.fixture
def make_runner():
    """Factory for StubRunner instances."""
    return StubRunner


@pytest.fixture
def make_csv():
    """Factory building CSV output with catalog headers."""
    return catalog_csv
