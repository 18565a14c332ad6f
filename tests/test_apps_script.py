from __future__ import annotations

from typing import Any, Mapping

import pytest

from toolkit.services.apps_script import AppsScriptClient, AppsScriptConfig
from toolkit.services.errors import ExternalStoreError


class DummyResponse:
    def __init__(self, status_code: int = 200, *, payload: Any = None, text: str | None = None, reason: str | None = None):
        self.status_code = status_code
        self._payload = payload
        self.text = text or ""
        self.reason = reason or ""

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json payload")
        return self._payload


def _build_client(record: list[dict[str, Any]], *, response: DummyResponse | Exception, key: str | None = "sheet-key") -> AppsScriptClient:
    def _request(method: str, url: str, headers: dict[str, str], json_payload, params, timeout: int):
        record.append(
            {
                "method": method,
                "url": url,
                "headers": headers,
                "json": json_payload,
                "params": params,
                "timeout": timeout,
            }
        )
        if isinstance(response, Exception):
            raise response
        return response

    config = AppsScriptConfig(url="https://script.google.com/macros/s/abc/exec", key=key, timeout_seconds=15)
    return AppsScriptClient(config=config, request_func=_request)


def test_client_requires_url():
    with pytest.raises(ValueError):
        AppsScriptClient(config=AppsScriptConfig(url="  "))


def test_fetch_records_sends_key_and_flattens_divisions():
    calls: list[dict[str, Any]] = []
    payload: Mapping[str, Any] = {
        "wholeSchool": {"apps": [{"product": "Kami"}]},
        "elementary": {"apps": [{"product": "Seesaw"}, {"product": "kami"}]},
    }
    client = _build_client(calls, response=DummyResponse(payload=payload))

    records = client.fetch_records()

    assert [record["product"] for record in records] == ["Kami", "Seesaw"]
    assert calls[0]["method"] == "GET"
    assert calls[0]["params"] == {"api": "data", "key": "sheet-key"}
    assert calls[0]["timeout"] == 15


def test_fetch_records_rejects_empty_results_unless_allowed():
    client = _build_client([], response=DummyResponse(payload={"apps": []}))

    with pytest.raises(ExternalStoreError):
        client.fetch_records()
    assert client.fetch_records(allow_empty=True) == []


def test_write_records_posts_update_payload():
    calls: list[dict[str, Any]] = []
    client = _build_client(calls, response=DummyResponse(payload={"success": True}), key=None)

    result = client.write_records([{"product": "Kami", "spend": 100}])

    assert result == {"success": True}
    assert calls[0]["method"] == "POST"
    assert calls[0]["json"] == {"api": "update", "apps": [{"product": "Kami", "spend": 100}]}
    assert calls[0]["params"] is None


@pytest.mark.parametrize(
    "response, message",
    [
        (DummyResponse(500, payload={"error": "quota exceeded"}), "quota exceeded"),
        (DummyResponse(403, text="Forbidden"), "Forbidden"),
        (DummyResponse(200, text="<html>login</html>"), "non-JSON"),
        (DummyResponse(200, payload={"error": "Invalid key"}), "Invalid key"),
        (ConnectionError("connection reset"), "connection reset"),
    ],
)
def test_request_failures_become_external_store_errors(response, message):
    client = _build_client([], response=response)

    with pytest.raises(ExternalStoreError) as excinfo:
        client.fetch_records()

    assert message in str(excinfo.value)
    assert excinfo.value.retryable
