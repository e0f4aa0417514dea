from typing import Any

import pytest
from click.testing import CliRunner

from logpare_mcp import cli
from logpare_mcp.server.app import LogpareServices
from logpare_mcp.settings import Settings


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MCP_TRANSPORT", "http")
    monkeypatch.setenv("MCP_PORT", "8080")
    monkeypatch.setenv("MCP_ASYNC_THRESHOLD_BYTES", "2048")

    settings = Settings()

    assert settings.transport == "http"
    assert settings.port == 8080
    assert settings.async_threshold_bytes == 2048
    assert settings.task_ttl_ms == 300_000


def test_help() -> None:
    result = CliRunner().invoke(cli.main, ["--help"])

    assert result.exit_code == 0
    assert "--transport [stdio|http]" in result.output


def test_http_mode_runs_uvicorn(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []

    def fake_run(app: Any, **kwargs: Any) -> None:
        calls.append({"app": app, **kwargs})

    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)

    result = CliRunner().invoke(cli.main, ["--transport", "http", "--port", "8123", "--log-level", "debug"])

    assert result.exit_code == 0, result.output
    (call,) = calls
    assert call["host"] == "127.0.0.1"
    assert call["port"] == 8123
    assert call["log_level"] == "debug"
    assert call["app"].state.services.settings.port == 8123


def test_stdio_mode_serves_stdio(monkeypatch: pytest.MonkeyPatch) -> None:
    served = []

    async def fake_serve_stdio(server: Any) -> None:
        served.append(server)

    monkeypatch.setattr(cli, "serve_stdio", fake_serve_stdio)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)

    result = CliRunner().invoke(cli.main, [])

    assert result.exit_code == 0, result.output
    assert len(served) == 1


def test_services_can_be_created_outside_an_event_loop() -> None:
    services = LogpareServices.create(Settings(session_timeout_seconds=5))

    assert services.registry.session_timeout == 5
    assert services.registry.count() == 0
