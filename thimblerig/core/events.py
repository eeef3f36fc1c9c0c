from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

EventType = Literal[
    "ROUND_STARTED",
    "PEEK_OPENED",
    "PEEK_CLOSED",
    "SHUFFLE_STARTED",
    "SWAP_STARTED",
    "SWAP_COMMITTED",
    "TRAIL",
    "SHUFFLE_ENDED",
    "SLOT_OPENED",
    "ROUND_RESOLVED",
]


@dataclass(frozen=True, slots=True)
class ShuffleEvent:
    type: EventType
    round_id: int
    payload: dict[str, Any]
    ts: datetime

    @staticmethod
    def now(*, type: EventType, round_id: int, payload: dict[str, Any]) -> "ShuffleEvent":
        return ShuffleEvent(type=type, round_id=round_id, payload=payload, ts=datetime.now(timezone.utc))
