from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from thimblerig.shuffle.models import ShuffleSnapshot
from thimblerig.wagering.models import BetRecord, WagerSnapshot


class TableCreateRequest(BaseModel):
    # Fixes the table's shuffle draws; omit for a random seed.
    seed: int | None = Field(default=None, ge=1)


class BetAmountRequest(BaseModel):
    # Unvalidated on purpose: the store clamps whatever arrives.
    amount: float


class BetStepRequest(BaseModel):
    step: float | None = Field(default=None, ge=0)


class BalanceUpdateRequest(BaseModel):
    balance: float
    currency: str | int | None = None


class IdentityRequest(BaseModel):
    id: str | None = None
    provider_id: str | None = None
    currency: str | int | None = None


class SessionRequest(BaseModel):
    token: str | None = None


class BetErrorRequest(BaseModel):
    error: str = Field(..., min_length=1, max_length=2000)


class ConnectionRequest(BaseModel):
    connected: bool = True
    error: str | None = None


class SelectRequest(BaseModel):
    slot: int = Field(..., ge=0)


class PlaceBetResponse(BaseModel):
    record: BetRecord | None = None
    wager: WagerSnapshot


class TableState(BaseModel):
    table_id: UUID
    created_at: datetime
    wager: WagerSnapshot
    shuffle: ShuffleSnapshot


class TableListResponse(BaseModel):
    tables: list[TableState]
