from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class ShufflePhase(StrEnum):
    idle = "idle"
    revealing = "revealing"
    shuffling = "shuffling"
    awaiting_selection = "awaiting_selection"
    resolving = "resolving"


@dataclass(slots=True)
class SlotPose:
    """Animated pose of one slot; motion tasks write to it every frame."""

    slot_id: int
    x: float
    y: float
    lifted: bool = False


class SlotView(BaseModel):
    model_config = ConfigDict(frozen=True)

    slot_id: int
    position: int
    x: float
    y: float
    lifted: bool


class SelectionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    round_id: int
    choice: int
    marked_slot: int
    won: bool
    score: int
    rounds_played: int


class ShuffleSnapshot(BaseModel):
    """Render state of a shuffle session.

    `marked_slot` is withheld (None) while the token is hidden, so the
    snapshot can be broadcast to players without giving the answer away.
    """

    model_config = ConfigDict(frozen=True)

    round_id: int
    phase: ShufflePhase
    slots: list[SlotView]
    marked_slot: int | None = None
    token_visible: bool
    can_select: bool
    swaps_done: int
    swaps_total: int
    score: int
    rounds_played: int
    message: str
    last_result: SelectionResult | None = None
