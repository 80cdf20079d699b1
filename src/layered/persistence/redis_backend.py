"""Redis backend implementing ICheckpointStore with a TTL per checkpoint."""

from __future__ import annotations

import json
from typing import Any, Optional

import redis

from layered.core.exceptions import CheckpointError
from layered.models.ledger import utcnow
from layered.models.workflow import Checkpoint


class RedisCheckpointStore:
    """Cache-backed ICheckpointStore. Checkpoints expire after ``ttl`` seconds."""

    KEY_PREFIX = "checkpoint"

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0,
                 ttl: int = 7 * 24 * 3600) -> None:
        self._host = host
        self._port = port
        self._db = db
        self._ttl = ttl
        self._client = redis.Redis(
            host=host, port=port, db=db, decode_responses=True,
        )

    def _key(self, job_id: str, step_name: str) -> str:
        return f"{self.KEY_PREFIX}:{job_id}:{step_name}"

    def get(self, job_id: str, step_name: str) -> Optional[Checkpoint]:
        key = self._key(job_id, step_name)
        try:
            raw = self._client.get(key)
        except Exception as exc:
            raise CheckpointError(f"Redis GET failed for key={key!r}: {exc}") from exc
        if raw is None:
            return None
        data = json.loads(raw)
        return Checkpoint(job_id=job_id, step_name=step_name, **data)

    def put(self, job_id: str, step_name: str, result: Any) -> None:
        key = self._key(job_id, step_name)
        value = json.dumps({"result": result, "created_at": utcnow().isoformat()})
        try:
            self._client.setex(key, self._ttl, value)
        except Exception as exc:
            raise CheckpointError(f"Redis SETEX failed for key={key!r}: {exc}") from exc

    def list_job(self, job_id: str) -> list[Checkpoint]:
        pattern = f"{self.KEY_PREFIX}:{job_id}:*"
        prefix_len = len(pattern) - 1
        try:
            keys = list(self._client.scan_iter(match=pattern))
        except Exception as exc:
            raise CheckpointError(f"Redis SCAN failed for pattern={pattern!r}: {exc}") from exc
        checkpoints = [self.get(job_id, key[prefix_len:]) for key in keys]
        return sorted((c for c in checkpoints if c is not None), key=lambda c: c.created_at)
