"""Mock gateways for local development and testing.

Return canned responses and record every call. No network access.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Optional

from layered.core.exceptions import AssetFetchError, CaptioningError


def sample_layers_output(num_layers: int, base_url: str = "https://mock.invalid/layers") -> dict[str, Any]:
    """A well-formed inference payload with ``num_layers`` PNG layers."""
    return {
        "images": [
            {
                "url": f"{base_url}/layer-{i}.png",
                "content_type": "image/png",
                "file_name": f"layer-{i}.png",
                "file_size": None,
                "width": 1024,
                "height": 1024,
            }
            for i in range(num_layers)
        ],
        "seed": 42,
    }


class MockInferenceGateway:
    """IInferenceGateway that returns a canned payload or raises queued errors first."""

    def __init__(self, response: Optional[dict[str, Any]] = None) -> None:
        self._response = response
        self._errors: deque[Exception] = deque()
        self.calls: list[tuple[str, int]] = []

    def set_response(self, response: dict[str, Any]) -> None:
        self._response = response

    def fail_with(self, *errors: Exception) -> None:
        """Raise these errors, one per call, before returning the canned payload."""
        self._errors.extend(errors)

    def generate_layers(self, image_url: str, num_layers: int) -> dict[str, Any]:
        self.calls.append((image_url, num_layers))
        if self._errors:
            raise self._errors.popleft()
        if self._response is None:
            return sample_layers_output(num_layers)
        return self._response


class MockCaptioningGateway:
    """ICaptioningGateway returning a fixed title, or always failing."""

    def __init__(self, title: Optional[str] = "Mock Layered Image", fail: bool = False) -> None:
        self._title = title
        self._fail = fail
        self.calls: list[str] = []

    def generate_title(self, image_url: str) -> Optional[str]:
        self.calls.append(image_url)
        if self._fail:
            raise CaptioningError("mock captioning failure")
        return self._title


class MockAssetFetcher:
    """IAssetFetcher serving registered bytes; unknown URLs get deterministic placeholder bytes."""

    def __init__(self) -> None:
        self._assets: dict[str, bytes] = {}
        self._failures: dict[str, deque[Exception]] = {}
        self.calls: list[str] = []

    def add(self, url: str, data: bytes) -> None:
        self._assets[url] = data

    def fail_with(self, url: str, *errors: Exception) -> None:
        """Raise these errors, one per fetch of ``url``, before serving it."""
        self._failures.setdefault(url, deque()).extend(errors)

    def fail_always(self, url: str) -> None:
        self.fail_with(url, *(AssetFetchError(f"mock fetch failure for {url}") for _ in range(100)))

    def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        pending = self._failures.get(url)
        if pending:
            raise pending.popleft()
        return self._assets.get(url, f"bytes:{url}".encode())
