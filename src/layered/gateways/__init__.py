"""External service gateways behind Protocol interfaces."""

from __future__ import annotations

from layered.core.config import AppSettings
from layered.gateways.assets import HttpAssetFetcher
from layered.gateways.captioning import OpenAICaptioningGateway
from layered.gateways.fal_inference import FalInferenceGateway
from layered.gateways.mock_gateways import (
    MockAssetFetcher,
    MockCaptioningGateway,
    MockInferenceGateway,
)


def create_gateways(settings: AppSettings | None = None):
    """Create external gateways from application settings.

    Returns:
        Tuple of (inference, captioning, assets).
    """
    if settings is None:
        settings = AppSettings()

    inference_cfg = settings.inference
    if inference_cfg.provider == "fal":
        inference = FalInferenceGateway(
            api_key=inference_cfg.api_key,
            endpoint_id=inference_cfg.endpoint_id,
            base_url=inference_cfg.base_url,
            poll_interval=inference_cfg.poll_interval_seconds,
            timeout=inference_cfg.timeout_seconds,
            request_timeout=inference_cfg.request_timeout_seconds,
        )
    else:
        inference = MockInferenceGateway()

    captioning_cfg = settings.captioning
    if captioning_cfg.provider == "openai":
        captioning = OpenAICaptioningGateway(
            api_token=captioning_cfg.api_token,
            base_url=captioning_cfg.base_url,
            model=captioning_cfg.model,
            max_tokens=captioning_cfg.max_tokens,
            auth_header=captioning_cfg.auth_header,
            timeout=captioning_cfg.timeout_seconds,
        )
    else:
        captioning = MockCaptioningGateway()

    # mock inference hands out URLs nothing can serve
    if inference_cfg.provider == "mock":
        assets = MockAssetFetcher()
    else:
        assets = HttpAssetFetcher(
            timeout=settings.assets.timeout_seconds,
            follow_redirects=settings.assets.follow_redirects,
        )

    return inference, captioning, assets
