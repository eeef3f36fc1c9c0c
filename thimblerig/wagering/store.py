from __future__ import annotations

import logging
import math
from collections.abc import Callable
from typing import Any, Final

from thimblerig.config import WagerConfig
from thimblerig.core.observable import Observable, Subscription
from thimblerig.wagering.currency import normalize_currency_code
from thimblerig.wagering.models import BetRecord, WagerSnapshot

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Final = _Unset()

AuthPolicy = Callable[["WagerStore"], bool]


def always_authenticated(store: "WagerStore") -> bool:
    """Treat every player as authenticated.

    Authorization is expected to be enforced upstream by the identity provider;
    integrators relying on `can_bet` for access control should switch to
    `session_token_required`.
    """

    return True


def session_token_required(store: "WagerStore") -> bool:
    return bool(store.session_token)


def policy_for(config: WagerConfig) -> AuthPolicy:
    return session_token_required if config.require_session else always_authenticated


def _coerce_amount(value: Any, *, ceiling: float) -> float:
    """Coerce a user-supplied amount into [0, ceiling]; never raises."""

    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(amount):
        return 0.0
    return max(0.0, min(amount, ceiling))


class WagerStore:
    """Reactive wagering state: balance, bet sizing and bet lifecycle.

    Every mutator leaves the store valid (`0 <= bet_amount <= balance`,
    `connected => connection_error is None`) and then notifies subscribers
    with a `WagerSnapshot`. Out-of-range numbers are clamped, never rejected.

    `bet_in_flight` is caller-managed: after `start_betting()` exactly one of
    `confirm_bet()` / `bet_error()` must follow. There is no timeout.
    """

    def __init__(self, *, config: WagerConfig | None = None, auth_policy: AuthPolicy | None = None) -> None:
        self.config = config or WagerConfig()
        self._auth_policy = auth_policy or policy_for(self.config)
        if self._auth_policy is always_authenticated:
            logger.warning("Wager authentication policy is permissive; every player counts as authenticated")

        # Identity, stored opaquely.
        self.session_token: str | None = None
        self.user_id: str | None = None
        self.provider_id: str | None = None

        self.balance: float = _coerce_amount(self.config.initial_balance, ceiling=math.inf)
        if not math.isfinite(self.balance):
            self.balance = 0.0
        self.currency: str = self.config.default_currency

        self.bet_amount: float = 0.0
        self.bet_in_flight: bool = False
        self.last_outcome: BetRecord | None = None
        self.last_error: str | None = None

        self.connected: bool = True
        self.connection_error: str | None = None

        self._observable: Observable[WagerSnapshot] = Observable(self.snapshot, name="wager")

    # ========== Observation ==========

    def subscribe(self, callback: Callable[[WagerSnapshot], None]) -> Subscription:
        return self._observable.subscribe(callback)

    def notify(self) -> None:
        self._observable.notify()

    def snapshot(self) -> WagerSnapshot:
        return WagerSnapshot(
            session_token=self.session_token,
            user_id=self.user_id,
            provider_id=self.provider_id,
            balance=self.balance,
            currency=self.currency,
            bet_amount=self.bet_amount,
            bet_in_flight=self.bet_in_flight,
            last_outcome=self.last_outcome,
            last_error=self.last_error,
            connected=self.connected,
            connection_error=self.connection_error,
            is_authenticated=self.is_authenticated,
            can_bet=self.can_bet,
            can_increase=self.can_increase,
            can_decrease=self.can_decrease,
        )

    # ========== Derived flags ==========

    @property
    def is_authenticated(self) -> bool:
        return self._auth_policy(self)

    @property
    def can_bet(self) -> bool:
        return (
            self.is_authenticated
            and self.connected
            and self.balance > 0
            and 0 < self.bet_amount <= self.balance
            and not self.bet_in_flight
        )

    @property
    def can_increase(self) -> bool:
        return not self.bet_in_flight and self.bet_amount < self.balance

    @property
    def can_decrease(self) -> bool:
        return not self.bet_in_flight and self.bet_amount > 0

    # ========== Balance and bet sizing ==========

    def update_balance(self, balance: Any, currency: Any = None) -> None:
        balance = _coerce_amount(balance, ceiling=math.inf)
        self.balance = balance if math.isfinite(balance) else 0.0

        code = normalize_currency_code(currency)
        if code:
            self.currency = code

        if self.bet_amount == 0 and self.balance > 0:
            # One-time convenience default; a nonzero bet is never reseeded.
            self.bet_amount = min(self.config.default_bet, self.balance)
        elif self.bet_amount > self.balance:
            self.bet_amount = self.balance

        self.notify()

    def set_bet_amount(self, amount: Any) -> None:
        self.bet_amount = _coerce_amount(amount, ceiling=self.balance)
        self.notify()

    def increase_bet(self, step: float | None = None) -> None:
        step = self.config.min_bet_step if step is None else step
        self.set_bet_amount(self.bet_amount + _coerce_amount(step, ceiling=math.inf))

    def decrease_bet(self, step: float | None = None) -> None:
        step = self.config.min_bet_step if step is None else step
        self.set_bet_amount(self.bet_amount - _coerce_amount(step, ceiling=math.inf))

    def set_max_bet(self) -> None:
        self.set_bet_amount(self.balance)

    # ========== Identity ==========

    def set_identity(self, *, id: Any = UNSET, provider_id: Any = UNSET, currency: Any = UNSET) -> None:
        """Merge identity fields; omitted fields are left untouched.

        Mirrors what identity providers send: an empty id or currency is
        ignored, but an explicit `provider_id=None` clears the provider.
        """

        if id is not UNSET and id:
            self.user_id = str(id)
        if provider_id is not UNSET:
            self.provider_id = None if provider_id is None else str(provider_id)
        if currency is not UNSET:
            code = normalize_currency_code(currency)
            if code:
                self.currency = code
        self.notify()

    def set_session(self, token: str | None) -> None:
        # Opaque: validation belongs to the identity provider.
        self.session_token = token
        self.notify()

    # ========== Bet lifecycle ==========

    def start_betting(self) -> None:
        self.bet_in_flight = True
        self.notify()

    def confirm_bet(self, record: BetRecord) -> None:
        self.last_outcome = record
        self.last_error = None
        self.bet_in_flight = False
        self.notify()

    def bet_error(self, error: BaseException | str | None) -> None:
        self.bet_in_flight = False
        self.last_error = str(error) if error is not None else "unknown bet error"
        logger.warning("Bet error: %s", self.last_error)
        self.notify()

    # ========== Connectivity ==========

    def set_connected(self, connected: bool) -> None:
        self.connected = bool(connected)
        if self.connected:
            self.connection_error = None
        self.notify()

    def set_connection_error(self, error: BaseException | str | None) -> None:
        self.connection_error = str(error) if error is not None else "connection lost"
        self.connected = False
        logger.warning("Wager connection error: %s", self.connection_error)
        self.notify()
