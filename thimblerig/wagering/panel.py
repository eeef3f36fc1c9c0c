from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from thimblerig.wagering.models import BetRecord
from thimblerig.wagering.store import WagerStore

logger = logging.getLogger(__name__)


class BettingPanel:
    """Intent surface a betting UI drives.

    Applies the panel's disable-while-busy rules at the engine level, so the
    store stays consistent even when a client ignores its disabled buttons:
    sizing intents are ignored while a bet is in flight, and `place_bet`
    only fires when `can_bet` holds.
    """

    def __init__(
        self,
        *,
        store: WagerStore,
        on_place_bet: Callable[[BetRecord], None] | None = None,
        on_refresh_balance: Callable[[], None] | None = None,
    ) -> None:
        self.store = store
        self.on_place_bet = on_place_bet
        self.on_refresh_balance = on_refresh_balance

    @property
    def quick_bets(self) -> tuple[float, ...]:
        return self.store.config.quick_bets

    def set_bet_amount(self, amount: Any) -> bool:
        if self.store.bet_in_flight:
            return False
        self.store.set_bet_amount(amount)
        return True

    def increase_bet(self, step: float | None = None) -> bool:
        if not self.store.can_increase:
            return False
        self.store.increase_bet(step)
        return True

    def decrease_bet(self, step: float | None = None) -> bool:
        if not self.store.can_decrease:
            return False
        self.store.decrease_bet(step)
        return True

    def set_max_bet(self) -> bool:
        if self.store.bet_in_flight:
            return False
        self.store.set_max_bet()
        return True

    def quick_bet(self, amount: float) -> bool:
        return self.set_bet_amount(amount)

    def place_bet(self) -> BetRecord | None:
        """Start a wager and hand its record to `on_place_bet`.

        Returns None (and changes nothing) when the store can't bet. The
        enclosing application must answer with `confirm_bet` or `bet_error`.
        """

        store = self.store
        if not store.can_bet:
            return None

        amount = store.bet_amount
        if amount < 1:
            store.set_bet_amount(store.config.min_place_bet)
            amount = store.bet_amount

        record = BetRecord(session=store.user_id, bet=amount, currency=store.currency)
        store.start_betting()

        if self.on_place_bet is not None:
            try:
                self.on_place_bet(record)
            except Exception as e:
                logger.exception("on_place_bet handler failed")
                store.bet_error(e)
                return None
        return record

    def refresh_balance(self) -> bool:
        if self.store.bet_in_flight or self.on_refresh_balance is None:
            return False
        self.on_refresh_balance()
        return True
