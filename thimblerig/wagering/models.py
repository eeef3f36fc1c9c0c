from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BetRecord(BaseModel):
    """A wager handed to the enclosing application when a bet is placed."""

    model_config = ConfigDict(frozen=True)

    # The player's user id; may be absent before identity arrives.
    session: str | None = None
    bet: float = Field(..., gt=0)
    currency: str = Field(..., min_length=1)

    @field_validator("currency")
    @classmethod
    def _strip_currency(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("currency must not be blank")
        return v


class WagerSnapshot(BaseModel):
    """Everything a betting panel needs to re-render, derived flags included."""

    model_config = ConfigDict(frozen=True)

    session_token: str | None = None
    user_id: str | None = None
    provider_id: str | None = None

    balance: float
    currency: str
    bet_amount: float
    bet_in_flight: bool

    last_outcome: BetRecord | None = None
    last_error: str | None = None

    connected: bool
    connection_error: str | None = None

    is_authenticated: bool
    can_bet: bool
    can_increase: bool
    can_decrease: bool
