"""
Tests for the command line.
"""

import logging
import signal
import threading

import click
import pytest
from click.testing import CliRunner

from conftest import FakeControlPlane
from kubesandbox.config import EnvConfigProvider
from kubesandbox.logging_config import ProbeFilter, get_logging_config
from kubesandbox.main import DURATION, cli, execute_clean
from kubesandbox.modules.cleaner import Cleaner, CleanerState


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    """Keep the handlers installed by pytest."""
    monkeypatch.setattr("kubesandbox.main.configure_logging", lambda debug: None)


class TestCommands:
    """Tests for argument validation of the sub-commands."""

    def test_run_without_directories(self, caplog):
        result = CliRunner().invoke(cli, ["run"])

        assert result.exit_code == 1
        assert "Expected at least one test to run" in caplog.text

    def test_serve_without_token(self, monkeypatch, caplog):
        monkeypatch.delenv("SANDBOX_TOKEN", raising=False)

        result = CliRunner().invoke(cli, ["serve"])

        assert result.exit_code == 1
        assert "Option '--token' is mandatory" in caplog.text

    def test_serve_with_missing_work_directory(self, tmp_path, caplog):
        result = CliRunner().invoke(
            cli, ["serve", "--token", "t", "--work", str(tmp_path / "missing")]
        )

        assert result.exit_code == 1
        assert "Can't create server" in caplog.text

    def test_serve_reads_token_from_environment(self, monkeypatch, tmp_path):
        served = []
        monkeypatch.setenv("SANDBOX_TOKEN", "from-env")
        monkeypatch.setattr(
            "kubesandbox.modules.executor.server.ExecutorServer.serve",
            lambda self, level: served.append((self.token, self.port, level)),
        )

        result = CliRunner().invoke(cli, ["serve", "--listen", ":9000", "--work", str(tmp_path)])

        assert result.exit_code == 0
        assert served == [("from-env", 9000, "INFO")]

    def test_clean_without_wait(self, caplog):
        result = CliRunner().invoke(cli, ["clean-after-delay"])

        assert result.exit_code == 1
        assert "Option '--wait' is mandatory" in caplog.text

    def test_invalid_duration(self):
        result = CliRunner().invoke(cli, ["clean-after-delay", "--wait", "soon"])

        assert result.exit_code == 2

    def test_run_invalid_cleanup_delay(self, caplog):
        result = CliRunner().invoke(cli, ["run", "--cleanup-delay", "0s", "pkg"])

        assert result.exit_code == 1
        assert "Can't create runner" in caplog.text


class TestDuration:
    @pytest.mark.parametrize("value,expected", [
        ("90", 90.0),
        ("90s", 90.0),
        ("1m", 60.0),
        ("1h30m", 5400.0),
        ("500ms", 0.5),
        ("1.5s", 1.5),
    ])
    def test_convert(self, value, expected):
        assert DURATION.convert(value, None, None) == expected

    @pytest.mark.parametrize("value", ["", "s", "1d", "1m x", "m1"])
    def test_invalid(self, value):
        with pytest.raises(click.BadParameter):
            DURATION.convert(value, None, None)


class TestExecuteClean:
    """Tests for the signal handling of the cleaner command."""

    def test_signal_stops_cleaner(self):
        fake = FakeControlPlane()
        cleaner = Cleaner.builder().wait(30).project("sandbox-x").control_plane(fake).build()
        timer = threading.Timer(0.2, signal.pthread_kill, args=(threading.get_ident(), signal.SIGTERM))
        timer.start()

        code = execute_clean(cleaner)

        assert code == 0
        assert cleaner.state == CleanerState.STOPPED
        assert fake.deleted == []


class TestAmbient:
    """Tests for the configuration and logging helpers."""

    def test_config_defaults(self, monkeypatch):
        for name in ("SANDBOX_IMAGE", "SANDBOX_SERVER_PORT", "SANDBOX_PROBE_ATTEMPTS"):
            monkeypatch.delenv(name, raising=False)
        provider = EnvConfigProvider()

        assert provider.get_sandbox_config().server_port == 8000
        assert provider.get_readiness_config().probe_attempts == 60

    def test_config_from_environment(self, monkeypatch):
        monkeypatch.setenv("SANDBOX_SERVER_PORT", "9090")
        monkeypatch.setenv("SANDBOX_PROBE_INTERVAL", "0.5")
        provider = EnvConfigProvider()

        assert provider.get_sandbox_config().server_port == 9090
        assert provider.get_readiness_config().probe_interval == 0.5

    def test_probe_filter(self):
        def record(name, message):
            return logging.LogRecord(name, logging.INFO, __file__, 1, message, None, None)

        probe_filter = ProbeFilter()

        assert not probe_filter.filter(record("uvicorn.access", '10.0.0.1 - "GET / HTTP/1.1" 404'))
        assert probe_filter.filter(record("uvicorn.access", '10.0.0.1 - "POST /api/v1/tests HTTP/1.1" 200'))
        assert probe_filter.filter(record("kubesandbox", '"GET / '))

    def test_logging_config_level(self):
        config = get_logging_config("DEBUG")

        assert config["root"]["level"] == "DEBUG"
        assert config["loggers"]["kubesandbox"]["level"] == "DEBUG"
