"""Inference response shape consumed by the workflow."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from layered.core.exceptions import InvalidInferenceOutputError


ImageContentType = Literal["image/png", "image/jpeg", "image/webp", "image/gif"]


class OutputImage(BaseModel):
    """One output layer descriptor returned by the inference service."""

    url: str
    content_type: ImageContentType
    file_name: str
    file_size: Optional[int]
    width: int
    height: int

    @field_validator("url")
    @classmethod
    def _http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"not an http(s) url: {v!r}")
        return v


class Timings(BaseModel):
    model_config = ConfigDict(extra="allow")

    inference: float


class LayeredImageOutput(BaseModel):
    """Response of the layer-decomposition endpoint. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    images: list[OutputImage] = Field(min_length=1)
    timings: Optional[Timings] = None
    seed: Optional[int] = None
    has_nsfw_concepts: Optional[list[bool]] = None
    prompt: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe dict of the fields the service actually returned."""
        return self.model_dump(mode="json", exclude_unset=True)


def parse_inference_output(payload: Any) -> LayeredImageOutput:
    """Validate a raw response, raising InvalidInferenceOutputError on any mismatch."""
    try:
        return LayeredImageOutput.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInferenceOutputError(f"Malformed inference output: {exc}") from exc
