"""Shared test doubles: re-export memory backends and mock gateways."""

from __future__ import annotations

from layered.gateways.mock_gateways import (
    MockAssetFetcher,
    MockCaptioningGateway,
    MockInferenceGateway,
    sample_layers_output,
)
from layered.persistence.memory_backend import (
    MemoryBlobStore,
    MemoryCheckpointStore,
    MemoryJobQueue,
    MemoryLedger,
)


class SimulatedCrash(BaseException):
    """Stands in for the process dying mid-step: nothing catches it."""


__all__ = [
    "MemoryBlobStore",
    "MemoryCheckpointStore",
    "MemoryJobQueue",
    "MemoryLedger",
    "MockAssetFetcher",
    "MockCaptioningGateway",
    "MockInferenceGateway",
    "SimulatedCrash",
    "sample_layers_output",
]
