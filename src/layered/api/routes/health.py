"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
async def ready(request: Request) -> dict[str, str]:
    state = request.app.state
    wired = all(hasattr(state, name) for name in ("settings", "ledger", "checkpoints"))
    return {"status": "ready" if wired else "starting"}
