"""Type aliases used across the Layered workflow."""

from __future__ import annotations

from typing import Any

JsonDict = dict[str, Any]
JobId = str
ProjectId = str
PredictionId = str
BlobId = str
StepName = str
