"""Layer-decomposition inference over the fal queue API.

Submits a request, polls its status until the queue reports completion, then
fetches the result payload. The payload is returned unparsed; validation and
retries belong to the workflow step that calls this gateway.
"""

from __future__ import annotations

import time
from typing import Any, Optional

import httpx
import structlog

from layered.core.exceptions import InferenceError, InferenceTimeoutError

logger = structlog.get_logger(__name__)

COMPLETED = "COMPLETED"


class FalInferenceGateway:
    """IInferenceGateway implementation for a fal queue endpoint."""

    def __init__(
        self,
        api_key: str,
        endpoint_id: str = "fal-ai/qwen-image-layered",
        base_url: str = "https://queue.fal.run",
        poll_interval: float = 1.0,
        timeout: float = 600.0,
        request_timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._endpoint_id = endpoint_id
        self._base_url = base_url.rstrip("/")
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._client = client or httpx.Client(timeout=request_timeout)
        self._headers = {"Authorization": f"Key {api_key}"}

    def generate_layers(self, image_url: str, num_layers: int) -> dict[str, Any]:
        submitted = self._request(
            "POST",
            f"{self._base_url}/{self._endpoint_id}",
            json={"image_url": image_url, "num_layers": num_layers},
        )
        request_id = submitted.get("request_id")
        if not request_id:
            raise InferenceError(f"fal submit returned no request_id: {submitted!r}")
        requests_url = f"{self._base_url}/{self._endpoint_id}/requests/{request_id}"
        status_url = submitted.get("status_url") or f"{requests_url}/status"
        response_url = submitted.get("response_url") or requests_url
        logger.info("inference_submitted", request_id=request_id, endpoint_id=self._endpoint_id)

        deadline = time.monotonic() + self._timeout
        while True:
            status = self._request("GET", status_url).get("status")
            if status == COMPLETED:
                break
            if time.monotonic() >= deadline:
                raise InferenceTimeoutError(request_id, self._timeout)
            logger.debug("inference_pending", request_id=request_id, status=status)
            time.sleep(self._poll_interval)

        result = self._request("GET", response_url)
        logger.info("inference_completed", request_id=request_id)
        return result

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = self._client.request(method, url, headers=self._headers, **kwargs)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as exc:
            raise InferenceError(
                f"fal {method} {url} returned {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise InferenceError(f"fal {method} {url} failed: {exc}") from exc
        if not isinstance(body, dict):
            raise InferenceError(f"fal {method} {url} returned non-object body")
        return body
