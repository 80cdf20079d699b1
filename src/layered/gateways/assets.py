"""HTTP download of output layers."""

from __future__ import annotations

from typing import Optional

import httpx

from layered.core.exceptions import AssetFetchError


class HttpAssetFetcher:
    """IAssetFetcher over httpx."""

    def __init__(self, timeout: float = 60.0, follow_redirects: bool = True,
                 client: Optional[httpx.Client] = None) -> None:
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=follow_redirects)

    def fetch(self, url: str) -> bytes:
        try:
            resp = self._client.get(url)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise AssetFetchError(f"GET {url} returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise AssetFetchError(f"GET {url} failed: {exc}") from exc
        return resp.content
