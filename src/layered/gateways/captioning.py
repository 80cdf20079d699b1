"""Project title generation via an OpenAI-compatible chat completions endpoint."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from layered.core.exceptions import CaptioningError

TITLE_INSTRUCTION = (
    "Generate a 2-4 word title for this image. Reply with just the title, nothing else."
)


class OpenAICaptioningGateway:
    """ICaptioningGateway implementation. Raises CaptioningError; callers decide what to absorb."""

    def __init__(
        self,
        api_token: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        max_tokens: int = 20,
        auth_header: str = "Authorization",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._model = model
        self._max_tokens = max_tokens
        self._headers = {auth_header: f"Bearer {api_token}"}
        self._client = client or httpx.Client(timeout=timeout)

    def _body(self, image_url: str) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "image_url", "image_url": {"url": image_url}},
                        {"type": "text", "text": TITLE_INSTRUCTION},
                    ],
                }
            ],
            "max_tokens": self._max_tokens,
        }

    def generate_title(self, image_url: str) -> Optional[str]:
        try:
            resp = self._client.post(self._url, headers=self._headers, json=self._body(image_url))
        except httpx.HTTPError as exc:
            raise CaptioningError(f"Captioning request failed: {exc}") from exc
        if resp.is_error:
            raise CaptioningError(f"Captioning returned {resp.status_code}: {resp.text}")

        try:
            choices = resp.json()["choices"]
        except (ValueError, KeyError, TypeError) as exc:
            raise CaptioningError(f"Malformed captioning response: {exc}") from exc
        if not choices:
            return None
        try:
            content = choices[0]["message"]["content"]
        except (KeyError, TypeError) as exc:
            raise CaptioningError(f"Malformed captioning choice: {exc}") from exc
        if not isinstance(content, str):
            return None
        return content.strip() or None
