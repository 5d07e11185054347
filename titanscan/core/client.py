"""Thin ``requests`` wrapper around the scanning API.

Every method decodes JSON at the boundary and translates ``requests`` failures
into the titanscan error taxonomy, so callers never see a transport exception.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

import requests

from titanscan.core.errors import (
    ConnectivityError,
    InitiationError,
    MalformedResponse,
    ScanTimeoutError,
)

LOGGER = logging.getLogger("titanscan")

CONNECT_TIMEOUT = 10
USER_AGENT = "titanscan/0.1.0"


class ApiClient:
    def __init__(self, base_url: str, timeout: float = 300, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def check_connectivity(self) -> int:
        """Probe the base URL; any HTTP status means the service is reachable."""
        try:
            resp = self.session.get(self.base_url, timeout=CONNECT_TIMEOUT)
        except requests.RequestException as exc:
            raise ConnectivityError(
                f"Cannot connect to API base URL {self.base_url}: {exc}. "
                "Check the URL, network connectivity, firewall rules and that the API service is up."
            ) from exc
        LOGGER.info("Base URL connectivity test passed (HTTP %s)", resp.status_code)
        return resp.status_code

    def initiate(self, repository_url: str) -> Dict[str, Any]:
        endpoint = self.url("initiate")
        LOGGER.info("Posting to initiate endpoint: %s", endpoint)
        try:
            resp = self.session.post(endpoint, json={"url": repository_url}, timeout=self.timeout)
        except requests.Timeout as exc:
            raise InitiationError(f"Scan initiation timed out after {self.timeout}s") from exc
        except requests.RequestException as exc:
            raise InitiationError(f"Failed to initiate scan: {exc}") from exc

        if not resp.ok:
            raise InitiationError(f"Failed to initiate scan: HTTP {resp.status_code}: {resp.text[:500]}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise InitiationError(f"Initiate endpoint returned a non-JSON body: {resp.text[:500]!r}") from exc
        if not isinstance(payload, dict):
            raise InitiationError(f"Initiate endpoint returned an unexpected payload: {payload!r}")
        return payload

    def get_json(self, path: str, timeout: float | None = None) -> Dict[str, Any]:
        endpoint = self.url(path)
        try:
            resp = self.session.get(endpoint, timeout=timeout or self.timeout)
        except requests.Timeout as exc:
            raise ScanTimeoutError(f"Request to {endpoint} timed out") from exc
        except requests.RequestException as exc:
            raise ConnectivityError(f"Request to {endpoint} failed: {exc}") from exc

        if not resp.ok:
            raise MalformedResponse(f"{endpoint} returned HTTP {resp.status_code}: {resp.text[:500]}")
        return decode_json(resp.text, endpoint)

    def group_results(self, group_id: str, timeout: float | None = None) -> Dict[str, Any]:
        return self.get_json(f"parser/groups/{group_id}/results", timeout=timeout)

    def job_results(self, job_id: str, timeout: float | None = None) -> Dict[str, Any]:
        return self.get_json(f"results/{job_id}", timeout=timeout)

    def open_stream(self, repository_url: str, read_timeout: float) -> requests.Response:
        endpoint = self.url("chat")
        try:
            resp = self.session.post(
                endpoint,
                params={"stream": "true"},
                json={"content": repository_url},
                headers={"Accept": "text/event-stream"},
                stream=True,
                timeout=(CONNECT_TIMEOUT, read_timeout),
            )
        except requests.Timeout as exc:
            raise ScanTimeoutError(f"Opening the event stream at {endpoint} timed out") from exc
        except requests.RequestException as exc:
            raise ConnectivityError(f"Failed to open event stream at {endpoint}: {exc}") from exc

        if not resp.ok:
            body = resp.text[:500]
            resp.close()
            raise InitiationError(f"Stream endpoint returned HTTP {resp.status_code}: {body}")
        return resp


def decode_json(text: str, source: str) -> Dict[str, Any]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedResponse(f"{source} returned a body that is not JSON: {text[:500]!r}") from exc
    if not isinstance(payload, dict):
        raise MalformedResponse(f"{source} returned {type(payload).__name__}, expected a JSON object")
    return payload
