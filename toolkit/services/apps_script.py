from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

import requests

from toolkit.config import get_settings
from toolkit.services.errors import ExternalStoreError
from toolkit.services.transforms import extract_records

RequestFunc = Callable[[str, str, dict[str, str], dict[str, Any] | None, dict[str, Any] | None, int], Any]


@dataclass(frozen=True)
class AppsScriptConfig:
    url: str
    key: str | None = None
    timeout_seconds: int = 30


class AppsScriptClient:
    """Reads and writes the spreadsheet catalog through its Apps Script web app."""

    def __init__(
        self,
        *,
        config: AppsScriptConfig | None = None,
        request_func: RequestFunc | None = None,
    ) -> None:
        if config is None:
            settings = get_settings()
            config = AppsScriptConfig(
                url=(settings.apps_script_url or "").strip(),
                key=settings.apps_script_key,
                timeout_seconds=settings.external_timeout_seconds,
            )

        url = (config.url or "").strip()
        if not url:
            raise ValueError("Apps Script URL is required to initialize AppsScriptClient.")
        self._url = url
        self._key = (config.key or "").strip() or None
        self._timeout = max(1, config.timeout_seconds)
        self._request_func = request_func

    def fetch_records(self, *, allow_empty: bool = False) -> list[Any]:
        params: dict[str, Any] = {"api": "data"}
        if self._key:
            params["key"] = self._key
        payload = self._request("GET", params=params)
        records = extract_records(payload)
        if not records and not allow_empty:
            raise ExternalStoreError("Apps Script returned no catalog records.")
        return records

    def write_records(self, records: Sequence[Mapping[str, Any]]) -> Mapping[str, Any] | None:
        body: dict[str, Any] = {"api": "update", "apps": [dict(record) for record in records]}
        if self._key:
            body["key"] = self._key
        return self._request("POST", json_payload=body)

    def _request(
        self,
        method: str,
        *,
        json_payload: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        headers = {"Content-Type": "application/json"}
        try:
            response = self._dispatch_request(method, self._url, headers, json_payload, params)
        except ExternalStoreError:
            raise
        except Exception as exc:
            raise ExternalStoreError(f"Apps Script {method} request failed: {exc}") from exc

        if response.status_code >= 400:
            detail = self._extract_detail(response)
            raise ExternalStoreError(
                f"Apps Script {method} request failed with {response.status_code}: {detail}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalStoreError("Apps Script returned a non-JSON response.") from exc

        if isinstance(payload, Mapping) and payload.get("error"):
            raise ExternalStoreError(f"Apps Script reported an error: {payload['error']}")
        return payload

    def _dispatch_request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        json_payload: Mapping[str, Any] | None,
        params: Mapping[str, Any] | None,
    ):
        if self._request_func is not None:
            return self._request_func(
                method,
                url,
                headers,
                json_payload and dict(json_payload),
                params and dict(params),
                self._timeout,
            )
        return requests.request(
            method,
            url,
            headers=headers,
            json=json_payload,
            params=params,
            timeout=self._timeout,
        )

    @staticmethod
    def _extract_detail(response: Any) -> str:
        try:
            payload = response.json()
        except Exception:
            payload = None

        if isinstance(payload, Mapping):
            message = payload.get("error") or payload.get("message")
            if message:
                return str(message)
        text = getattr(response, "text", None)
        if text:
            return str(text).strip()[:500]
        reason = getattr(response, "reason", None)
        if reason:
            return str(reason)
        return "unknown error"


def get_external_store_client() -> AppsScriptClient:
    try:
        return AppsScriptClient()
    except ValueError as exc:
        raise ExternalStoreError(str(exc)) from exc
