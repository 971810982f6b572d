from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import pytest
from typer.testing import CliRunner

from cli.app import YIELD_EXIT_CODE, app


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.poll_payload: Dict[str, Any] = {
            "state": "cursor_advanced",
            "yielded": False,
            "yield_seconds": 0.0,
            "cursor_before": None,
            "cursor_after": "2014-09-30T23:59:59.000Z",
            "error": None,
            "records": [
                {
                    "content": "32",
                    "attributes": {
                        "device.id": "dev-1",
                        "stream.value.timestamp": "2014-09-09T19:15:00.563Z",
                    },
                }
            ],
        }
        self.publish_payload: Dict[str, Any] = {
            "relationship": "success",
            "status_code": 202,
            "penalized": False,
            "penalty_seconds": 0.0,
            "error": None,
        }
        self.published: List[bytes] = []
        self.closed = False

    def poll(self) -> Dict[str, Any]:
        return self.poll_payload

    def publish(self, content: bytes) -> Dict[str, Any]:
        self.published.append(content)
        return self.publish_payload

    def get_cursor(self) -> Dict[str, Any]:
        return {
            "stream_key": "http://api.test/v2/devices/dev-1/streams/temperature",
            "start_time": None,
        }

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


def _install_stub(monkeypatch, stub: StubClient) -> None:
    def factory(config):
        stub.config = config
        return stub

    monkeypatch.setattr("cli.app.ApiClient", factory)


def test_poll_prints_records(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["--base-url", "http://bridge:9000/", "poll"])

    assert result.exit_code == 0
    assert "Records (1)" in result.stdout
    assert "2014-09-09T19:15:00.563Z: 32" in result.stdout
    assert stub.config.base_url == "http://bridge:9000"
    assert stub.closed is True


def test_poll_exits_with_yield_code(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    stub.poll_payload.update(
        {"state": "fetch_failed", "yielded": True, "yield_seconds": 1.0, "records": [], "error": "HTTP 500"}
    )
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["poll"])

    assert result.exit_code == YIELD_EXIT_CODE
    assert "Yielded for 1.0s: HTTP 500" in result.stdout


def test_publish_file(monkeypatch, runner: CliRunner, tmp_path: Path) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)
    path = tmp_path / "value.txt"
    path.write_text("21.5")

    result = runner.invoke(app, ["publish", str(path)])

    assert result.exit_code == 0
    assert stub.published == [b"21.5"]
    assert "relationship: success" in result.stdout


def test_publish_value_failure_exits_non_zero(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    stub.publish_payload.update(
        {"relationship": "failure", "status_code": 503, "penalized": True, "error": "HTTP 503"}
    )
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["publish", "--value", "21.5"])

    assert result.exit_code == 1
    assert stub.published == [b"21.5"]
    assert "error: HTTP 503" in result.stdout


def test_publish_requires_exactly_one_source(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["publish"])

    assert result.exit_code != 0
    assert stub.published == []


def test_cursor_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["cursor"])

    assert result.exit_code == 0
    assert "start_time: unset" in result.stdout
    assert stub.closed is True
