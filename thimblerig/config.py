from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import StrEnum


ENV_PREFIX = "THIMBLERIG_"


class MarkedSlotPolicy(StrEnum):
    # Keep the token where the previous round revealed it.
    carry_over = "carry_over"
    # Draw a fresh position at the start of every round.
    reshuffle = "reshuffle"


@dataclass(frozen=True, slots=True)
class WagerConfig:
    initial_balance: float = 1000.0
    default_currency: str = "USD"
    # Seeded into an empty bet the first time a positive balance arrives.
    default_bet: float = 10.0
    min_bet_step: float = 10.0
    # A positive bet below 1 is bumped to this amount when placed.
    min_place_bet: float = 10.0
    quick_bets: tuple[float, ...] = (10.0, 50.0, 100.0)
    # When true, only a stored session token counts as authenticated.
    require_session: bool = False


@dataclass(frozen=True, slots=True)
class ShuffleConfig:
    slot_count: int = 3
    swap_count: int = 10
    # Full swap; each leg of the arc takes half.
    swap_duration_ms: float = 170.0
    peek_lift_ms: float = 150.0
    lift_ms: float = 400.0
    peek_hold_ms: float = 1500.0
    settle_ms: float = 500.0
    reveal_pause_ms: float = 50.0
    result_delay_ms: float = 0.0
    trail_interval_ms: float | None = None
    marked_slot_policy: MarkedSlotPolicy = MarkedSlotPolicy.carry_over
    fps: int = 60

    def __post_init__(self) -> None:
        if self.slot_count < 2:
            raise ValueError("slot_count must be at least 2")
        if self.swap_count < 0:
            raise ValueError("swap_count must be >= 0")
        if self.fps <= 0:
            raise ValueError("fps must be positive")


@dataclass(frozen=True, slots=True)
class TableLayout:
    width: float = 800.0
    slot_spacing: float = 160.0
    rest_y: float = 550.0
    lift_height: float = 120.0
    # The first slot of a swap arcs higher than the second so they don't overlap.
    arc_height: float = 60.0
    arc_offset: float = 30.0

    def slot_x(self, *, position: int, slot_count: int) -> float:
        return self.width / 2 - ((slot_count - 1) * self.slot_spacing) / 2 + position * self.slot_spacing


@dataclass(frozen=True, slots=True)
class Settings:
    wager: WagerConfig = field(default_factory=WagerConfig)
    shuffle: ShuffleConfig = field(default_factory=ShuffleConfig)
    layout: TableLayout = field(default_factory=TableLayout)


def _env(name: str) -> str | None:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.casefold() in {"1", "true", "yes", "on"}


def get_log_level() -> str:
    return (_env("LOG_LEVEL") or "INFO").upper()


def load_settings() -> Settings:
    """Build settings from `THIMBLERIG_*` environment variables.

    Unset variables keep the dataclass defaults. Malformed values raise
    ValueError so a misconfigured server fails at startup instead of mid-round.
    """

    wager_defaults = WagerConfig()
    shuffle_defaults = ShuffleConfig()

    wager = WagerConfig(
        initial_balance=_env_float("INITIAL_BALANCE", wager_defaults.initial_balance),
        default_currency=_env("DEFAULT_CURRENCY") or wager_defaults.default_currency,
        default_bet=_env_float("DEFAULT_BET", wager_defaults.default_bet),
        min_bet_step=_env_float("MIN_BET_STEP", wager_defaults.min_bet_step),
        min_place_bet=_env_float("MIN_PLACE_BET", wager_defaults.min_place_bet),
        require_session=_env_bool("REQUIRE_SESSION", wager_defaults.require_session),
    )

    trail_raw = _env("TRAIL_INTERVAL_MS")
    policy_raw = _env("MARKED_SLOT_POLICY")
    try:
        policy = MarkedSlotPolicy(policy_raw) if policy_raw else MarkedSlotPolicy.carry_over
    except ValueError as e:
        allowed = ",".join(p.value for p in MarkedSlotPolicy)
        raise ValueError(f"{ENV_PREFIX}MARKED_SLOT_POLICY must be one of {allowed}") from e

    shuffle = ShuffleConfig(
        slot_count=_env_int("SLOT_COUNT", shuffle_defaults.slot_count),
        swap_count=_env_int("SWAP_COUNT", shuffle_defaults.swap_count),
        swap_duration_ms=_env_float("SWAP_DURATION_MS", shuffle_defaults.swap_duration_ms),
        peek_hold_ms=_env_float("PEEK_HOLD_MS", shuffle_defaults.peek_hold_ms),
        result_delay_ms=_env_float("RESULT_DELAY_MS", shuffle_defaults.result_delay_ms),
        trail_interval_ms=_env_float("TRAIL_INTERVAL_MS", 0.0) if trail_raw else None,
        marked_slot_policy=policy,
        fps=_env_int("FPS", shuffle_defaults.fps),
    )

    return Settings(wager=wager, shuffle=shuffle, layout=TableLayout())
