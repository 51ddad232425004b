"""Tests for the CLI, application wiring and HTTP exposition."""

import signal
import urllib.error
import urllib.request

import pytest
from unittest.mock import patch

from prometheus_client import CollectorRegistry, generate_latest

from nvidia_gpu_exporter.collectors.gpu_collector import GPUCollector
from nvidia_gpu_exporter.config.models import ExporterConfig, WebConfig
from nvidia_gpu_exporter.main import ExporterApp, build_parser, cli_overrides, load_config, main
from nvidia_gpu_exporter.server import start_server

from conftest import REFERENCE_FIELDS

# Fixtures imported from conftest.py: logger, collector_config, stub_runner, help_text, make_runner


@pytest.fixture
def restore_signals():
    """Put back signal handlers installed by ExporterApp.run."""
    handlers = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    yield
    for sig, handler in handlers.items():
        signal.signal(sig, handler)


@pytest.fixture
def clean_env(monkeypatch):
    for suffix in ("PREFIX", "LISTEN_ADDRESS", "TELEMETRY_PATH", "LOG_LEVEL",
                   "QUERY_FIELD_NAMES", "SHUTDOWN_ON_ERROR", "COMMAND_TIMEOUT", "NVIDIA_SMI_COMMAND"):
        monkeypatch.delenv(f"NVIDIA_GPU_EXPORTER_{suffix}", raising=False)


def fetch(url):
    with urllib.request.urlopen(url, timeout=5) as response:
        return response.status, response.headers.get("Content-Type"), response.read().decode("utf-8")


class TestCli:
    """Test suite for argument parsing and config resolution."""

    def test_no_flags_no_overrides(self):
        args = build_parser().parse_args([])

        assert cli_overrides(args) == {}

    def test_flags_become_overrides(self):
        args = build_parser().parse_args([
            "--web.listen-address", ":9100",
            "--web.telemetry-path", "/gpu",
            "--query-field-names", "fan.speed",
            "--shutdown-on-error",
            "--command-timeout", "3",
            "--log-level", "debug",
        ])

        assert cli_overrides(args) == {
            "collector": {"query_field_names": "fan.speed", "shutdown_on_error": True, "command_timeout": 3.0},
            "web": {"listen_address": ":9100", "telemetry_path": "/gpu"},
            "log_level": "DEBUG",
        }

    def test_cli_beats_environment_beats_file(self, tmp_path, monkeypatch, clean_env):
        path = tmp_path / "config.yaml"
        path.write_text("collector:\n  prefix: from_file\nweb:\n  telemetry_path: /file\n")
        monkeypatch.setenv("NVIDIA_GPU_EXPORTER_PREFIX", "from_env")
        monkeypatch.setenv("NVIDIA_GPU_EXPORTER_TELEMETRY_PATH", "/env")

        args = build_parser().parse_args(["--config", str(path), "--web.telemetry-path", "/cli"])
        config = load_config(args)

        assert config.collector.prefix == "from_env"
        assert config.web.telemetry_path == "/cli"

    def test_missing_config_exits(self, tmp_path, clean_env):
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(tmp_path / "missing.yaml")])

        assert exc_info.value.code == 1

    def test_list_query_fields(self, capsys, help_text, make_runner, clean_env):
        runner = make_runner(help_stdout=help_text)

        with patch("nvidia_gpu_exporter.collectors.command.run_command", runner):
            with pytest.raises(SystemExit) as exc_info:
                main(["--list-query-fields"])

        assert exc_info.value.code == 0
        output = capsys.readouterr().out
        assert "fan.speed" in output
        assert "power.draw" in output

    def test_list_query_fields_failure(self, make_runner, clean_env):
        runner = make_runner(exit_code=127)

        with patch("nvidia_gpu_exporter.collectors.command.run_command", runner):
            with pytest.raises(SystemExit) as exc_info:
                main(["--list-query-fields"])

        assert exc_info.value.code == 1


class TestServer:
    """Test suite for the HTTP exposition."""

    @pytest.fixture
    def server(self, collector_config, logger, stub_runner):
        registry = CollectorRegistry()
        registry.register(GPUCollector(collector_config, logger, runner=stub_runner))
        server = start_server(WebConfig(listen_address="127.0.0.1:0", telemetry_path="/gpu-metrics"),
                              registry, logger)
        yield server
        server.shutdown()
        server.server_close()

    def url(self, server, path):
        return f"http://127.0.0.1:{server.server_address[1]}{path}"

    def test_metrics(self, server):
        status, content_type, body = fetch(self.url(server, "/gpu-metrics"))

        assert status == 200
        assert content_type.startswith("text/plain")
        assert "prefix_command_exit_code 0.0" in body
        assert "prefix_gpu_info{" in body

    def test_landing_page(self, server):
        status, content_type, body = fetch(self.url(server, "/"))

        assert status == 200
        assert content_type.startswith("text/html")
        assert 'href="/gpu-metrics"' in body

    def test_unknown_path(self, server):
        with pytest.raises(urllib.error.HTTPError) as exc_info:
            fetch(self.url(server, "/nope"))

        assert exc_info.value.code == 404


class TestExporterApp:
    """Test suite for application wiring."""

    def make_app(self, logger, runner, shutdown_on_error=False):
        config = ExporterConfig(
            collector={"prefix": "prefix", "query_field_names": REFERENCE_FIELDS,
                       "shutdown_on_error": shutdown_on_error},
            web={"listen_address": "127.0.0.1:0"}
        )
        with patch("nvidia_gpu_exporter.collectors.command.run_command", runner):
            return ExporterApp(config, logger)

    def test_registry_contents(self, logger, stub_runner):
        app = self.make_app(logger, stub_runner)

        output = generate_latest(app.registry).decode("utf-8")

        assert "prefix_gpu_info{" in output
        assert "python_info{" in output
        assert app.stop_event.is_set() is False

    def test_scrape_error_requests_shutdown(self, logger, stub_runner):
        app = self.make_app(logger, stub_runner, shutdown_on_error=True)
        stub_runner.exit_code = 1

        app.collector.scrape()

        assert app.stop_event.is_set()
        assert app.shutdown_error is not None

    def test_collect_reports_error_that_triggers_shutdown(self, logger, stub_runner):
        """The scrape that fails in fail-fast mode still exposes its exit code."""
        app = self.make_app(logger, stub_runner, shutdown_on_error=True)
        stub_runner.exit_code = 1

        names = [family.name for family in app.collector.collect()]

        assert names == ["prefix_command_exit_code", "prefix_failed_scrapes"]
        assert app.stop_event.is_set()

    def test_exposition_reports_error_that_triggers_shutdown(self, logger, stub_runner):
        app = self.make_app(logger, stub_runner, shutdown_on_error=True)
        stub_runner.exit_code = 1

        output = generate_latest(app.registry).decode("utf-8")

        assert "prefix_command_exit_code 1.0" in output
        assert "prefix_failed_scrapes_total 1.0" in output
        assert app.shutdown_error is not None

    def test_run_returns_nonzero_after_scrape_error(self, logger, stub_runner, restore_signals):
        app = self.make_app(logger, stub_runner, shutdown_on_error=True)
        app._on_scrape_error(RuntimeError("nvidia-smi exited with 1"))

        assert app.run() == 1

    def test_run_returns_zero_on_signal(self, logger, stub_runner, restore_signals):
        app = self.make_app(logger, stub_runner)
        app._signal_handler(signal.SIGTERM, None)

        assert app.run() == 0
