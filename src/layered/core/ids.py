"""Row id generation.

Output blob ids are derived, never generated: a retried upload step must land
on the same id so the ledger existence check can detect work already done.
"""

from __future__ import annotations

import secrets

from layered.core.types import BlobId, PredictionId

ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
ID_LENGTH = 11
SEPARATOR = "-"


def generate_id() -> str:
    """Return a fresh random id for a new row or job."""
    return "".join(secrets.choice(ALPHABET) for _ in range(ID_LENGTH))


def derive_blob_id(prediction_id: PredictionId, index: int) -> BlobId:
    """Deterministic blob id for output ``index`` of a prediction.

    The index never contains the separator, so splitting on the last
    separator recovers the pair and distinct pairs cannot collide.
    """
    if index < 0:
        raise ValueError(f"index must be non-negative, got {index}")
    return f"{prediction_id}{SEPARATOR}{index}"
