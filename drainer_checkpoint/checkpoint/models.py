"""Checkpoint value types and the JSON blob codec."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, Mapping, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError, field_validator

from ..errors import CheckpointDecodeError, CheckpointEncodeError

# Stored offsets are pulled back by this much so a replay after recovery
# starts before the true safe point.
SAVE_MARGIN = 5000

Suffix = Union[int, str]


@dataclass(frozen=True)
class Position:
    """Resumable offset within one upstream stream."""

    suffix: Suffix = 0
    offset: int = 0

    def with_margin(self, margin: int = SAVE_MARGIN) -> "Position":
        if self.offset > margin:
            return Position(suffix=self.suffix, offset=self.offset - margin)
        return Position(suffix=self.suffix, offset=0)

    def to_dict(self) -> Dict[str, Suffix]:
        return {"Suffix": self.suffix, "Offset": self.offset}


Positions = Dict[str, Position]


def apply_margin(positions: Mapping[str, Position], margin: int = SAVE_MARGIN) -> Positions:
    """Return a new map with every position pulled back by ``margin``."""

    return {stream_id: pos.with_margin(margin) for stream_id, pos in positions.items()}


@dataclass
class CheckpointState:
    """Mutable in-memory checkpoint guarded by the store lock."""

    commit_ts: int = 0
    positions: Positions = field(default_factory=dict)


@dataclass(frozen=True)
class CheckpointSnapshot:
    """Immutable payload written to the backend."""

    commit_ts: int
    positions: Positions

    def to_dict(self) -> Dict[str, object]:
        return {
            "commitTS": self.commit_ts,
            "positions": {stream_id: pos.to_dict() for stream_id, pos in self.positions.items()},
        }


class _PositionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    suffix: Union[StrictInt, StrictStr] = Field(0, validation_alias=AliasChoices("Suffix", "suffix"))
    offset: StrictInt = Field(0, ge=0, validation_alias=AliasChoices("Offset", "offset"))


class _CheckpointPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    commit_ts: StrictInt = Field(0, validation_alias=AliasChoices("commitTS", "committs", "CommitTS"))
    positions: Dict[str, _PositionPayload] = Field(default_factory=dict)

    @field_validator("positions", mode="before")
    @classmethod
    def _null_positions(cls, value):  # type: ignore[override]
        return {} if value is None else value


def encode_checkpoint(snapshot: CheckpointSnapshot) -> str:
    try:
        return json.dumps(snapshot.to_dict(), sort_keys=True)
    except (TypeError, ValueError) as exc:
        raise CheckpointEncodeError(f"cannot encode checkpoint at commitTS {snapshot.commit_ts}") from exc


def decode_checkpoint(blob: Union[str, bytes]) -> CheckpointSnapshot:
    """Parse a stored blob; any structural problem is a ``CheckpointDecodeError``."""

    try:
        payload = _CheckpointPayload.model_validate_json(blob)
    except ValidationError as exc:
        raise CheckpointDecodeError(f"invalid checkpoint blob: {exc.error_count()} error(s)") from exc

    positions = {
        stream_id: Position(suffix=pos.suffix, offset=pos.offset) for stream_id, pos in payload.positions.items()
    }
    return CheckpointSnapshot(commit_ts=payload.commit_ts, positions=positions)


__all__ = [
    "SAVE_MARGIN",
    "Position",
    "Positions",
    "CheckpointState",
    "CheckpointSnapshot",
    "apply_margin",
    "encode_checkpoint",
    "decode_checkpoint",
]
