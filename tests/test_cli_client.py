from __future__ import annotations

import json

import httpx
import pytest
import typer

from cli.client import RelayClient, load_readings_file
from cli.config import load_config


def _client_with(handler) -> RelayClient:
    config = load_config(base_url="http://relay.test")
    client = RelayClient(config)
    client._client = httpx.Client(base_url=config.base_url, transport=httpx.MockTransport(handler))
    return client


def test_post_readings_sends_data_envelope() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(204)

    client = _client_with(handler)
    client.post_readings("temperature", [{"timestamp": "2023-01-01T00:00:00Z", "value": "1"}])
    client.close()

    assert requests[0].url.path == "/temperature"
    assert json.loads(requests[0].content) == {
        "data": [{"timestamp": "2023-01-01T00:00:00Z", "value": "1"}]
    }


def test_error_body_is_reported_and_exits(capsys) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "data[0].value: invalid numeric value 'abc'"})

    client = _client_with(handler)
    with pytest.raises(typer.Exit) as excinfo:
        client.post_readings("/temperature", [{"timestamp": "2023-01-01T00:00:00Z", "value": "abc"}])
    client.close()

    assert excinfo.value.exit_code == 1
    assert "invalid numeric value" in capsys.readouterr().err


def test_health_returns_payload() -> None:
    client = _client_with(lambda request: httpx.Response(200, json={"ok": True}))

    assert client.health() == {"ok": True}
    client.close()


def test_load_readings_rejects_incomplete_rows(tmp_path) -> None:
    path = tmp_path / "readings.csv"
    path.write_text("timestamp,reading\n2023-01-01T00:00:00Z,1\n")

    with pytest.raises(typer.BadParameter):
        load_readings_file(path)


def test_load_readings_accepts_bare_json_list(tmp_path) -> None:
    path = tmp_path / "readings.json"
    path.write_text(json.dumps([{"timestamp": "2023-01-01T00:00:00Z", "value": "2.5"}]))

    assert load_readings_file(path) == [{"timestamp": "2023-01-01T00:00:00Z", "value": "2.5"}]


def test_unreachable_relay_is_reported_and_exits(capsys) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client_with(handler)
    with pytest.raises(typer.Exit) as excinfo:
        client.health()
    client.close()

    assert excinfo.value.exit_code == 1
    err = capsys.readouterr().err
    assert "Could not reach relay at http://relay.test" in err
    assert "connection refused" in err


def test_send_to_unreachable_relay_exits(capsys) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    client = _client_with(handler)
    with pytest.raises(typer.Exit) as excinfo:
        client.post_readings("/temperature", [{"timestamp": "2023-01-01T00:00:00Z", "value": "1"}])
    client.close()

    assert excinfo.value.exit_code == 1
    assert "timed out" in capsys.readouterr().err


def test_health_with_non_json_body_exits(capsys) -> None:
    client = _client_with(lambda request: httpx.Response(200, text="<html>proxy</html>"))

    with pytest.raises(typer.Exit) as excinfo:
        client.health()
    client.close()

    assert excinfo.value.exit_code == 1
    assert "non-JSON body" in capsys.readouterr().err
