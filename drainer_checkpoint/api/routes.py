"""FastAPI routes exposing the checkpoint for diagnostics."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Union

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from ..checkpoint.store import FlashCheckpoint

router = APIRouter()


def get_checkpoint(request: Request) -> FlashCheckpoint:
    checkpoint = getattr(request.app.state, "checkpoint", None)
    if checkpoint is None:
        raise HTTPException(status_code=503, detail="Checkpoint not loaded")
    return checkpoint


class PositionResponse(BaseModel):
    suffix: Union[int, str]
    offset: int


class CheckpointResponse(BaseModel):
    cluster_id: int
    commit_ts: int
    positions: Dict[str, PositionResponse]
    description: str


@router.get("/checkpoint", response_model=CheckpointResponse)
def read_checkpoint(checkpoint: FlashCheckpoint = Depends(get_checkpoint)) -> CheckpointResponse:
    commit_ts, positions = checkpoint.pos()
    return CheckpointResponse(
        cluster_id=checkpoint.cluster_id,
        commit_ts=commit_ts,
        positions={
            stream_id: PositionResponse(suffix=pos.suffix, offset=pos.offset) for stream_id, pos in positions.items()
        },
        description=str(checkpoint),
    )


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: datetime


@router.get("/health", response_model=HealthResponse, include_in_schema=False)
def health_check() -> HealthResponse:
    return HealthResponse(timestamp=datetime.now(timezone.utc))
