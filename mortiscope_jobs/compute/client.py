import json
from typing import Any

import httpx

from mortiscope_jobs.compute.exceptions import (
    ConfigurationError,
    WorkerNetworkError,
    WorkerResponseError,
)
from mortiscope_jobs.config.settings import Settings

API_KEY_HEADER = "X-Api-Key"


class ComputeWorkerClient:
    """HTTP client for the detection / PMI / export compute worker."""

    DETECT_PATH = "/v1/detect"
    RECALCULATE_PATH = "/v1/computation/recalculate"
    EXPORT_PATH = "/v1/export/"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: float,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=timeout_seconds,
            headers={API_KEY_HEADER: api_key},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ComputeWorkerClient":
        return cls(
            base_url=settings.worker_base_url,
            api_key=settings.worker_secret_key,
            timeout_seconds=settings.worker_timeout_seconds,
        )

    def post(self, path: str, payload: dict[str, Any], *, label: str) -> dict[str, Any]:
        """POST JSON to the worker and return the decoded response body.

        Raises:
            ConfigurationError: if the worker URL or secret is missing.
            WorkerNetworkError: on connection failure or timeout.
            WorkerResponseError: on a non-2xx response; the body is kept verbatim.
        """
        client = self._get_client()
        try:
            response = client.post(path, json=payload)
        except httpx.TimeoutException as exc:
            raise WorkerNetworkError(f"{label} timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise WorkerNetworkError(f"{label} network error: {exc}") from exc

        if not response.is_success:
            raise WorkerResponseError(f"{label} failed", response.status_code, response.text)

        if not response.content:
            return {}
        try:
            body = response.json()
        except json.JSONDecodeError:
            return {}
        return body if isinstance(body, dict) else {"result": body}

    def close(self) -> None:
        self._client.close()

    def _get_client(self) -> httpx.Client:
        if not self._base_url or not self._api_key:
            raise ConfigurationError("Compute worker URL or secret key is not configured")
        return self._client
