from __future__ import annotations

import logging
import math
import random

import pytest

from thimblerig.config import WagerConfig
from thimblerig.wagering.models import BetRecord, WagerSnapshot
from thimblerig.wagering.store import (
    WagerStore,
    always_authenticated,
    policy_for,
    session_token_required,
)


def _store(**overrides: object) -> WagerStore:
    return WagerStore(config=WagerConfig(**overrides))  # type: ignore[arg-type]


def test_defaults() -> None:
    s = WagerStore()
    assert s.balance == 1000
    assert s.bet_amount == 0
    assert s.currency == "USD"
    assert s.connected is True
    assert s.connection_error is None
    assert s.bet_in_flight is False
    # Nothing to bet yet.
    assert s.can_bet is False
    assert s.can_increase is True
    assert s.can_decrease is False


def test_update_balance_seeds_default_bet() -> None:
    s = WagerStore()
    s.update_balance(1000)
    assert s.bet_amount == 10


def test_update_balance_never_reseeds_nonzero_bet() -> None:
    s = WagerStore()
    s.update_balance(1000)
    s.set_bet_amount(250)
    s.update_balance(900)
    assert s.bet_amount == 250


def test_default_bet_capped_by_small_balance() -> None:
    s = WagerStore()
    s.update_balance(4)
    assert s.bet_amount == 4


def test_balance_drop_reclamps_bet() -> None:
    s = WagerStore()
    s.update_balance(1000)
    s.set_bet_amount(800)
    s.update_balance(300)
    assert s.bet_amount == 300


def test_update_balance_with_zero_balance_keeps_bet_zero() -> None:
    s = WagerStore()
    s.update_balance(0)
    assert s.balance == 0
    assert s.bet_amount == 0
    assert s.can_bet is False


def test_update_balance_normalizes_currency() -> None:
    s = WagerStore()
    s.update_balance(100, 978)
    assert s.currency == "EUR"
    s.update_balance(100, "")
    assert s.currency == "EUR"


@pytest.mark.parametrize("bad", [math.nan, math.inf, -5, "lots", None])
def test_update_balance_coerces_bad_numbers_to_zero(bad: object) -> None:
    s = WagerStore()
    s.update_balance(bad)
    assert s.balance == 0
    assert s.bet_amount == 0


def test_set_bet_amount_clamps_to_balance() -> None:
    s = WagerStore()
    s.set_bet_amount(5000)
    assert s.bet_amount == 1000


@pytest.mark.parametrize("bad", [-1, math.nan, "abc", None])
def test_set_bet_amount_clamps_bad_input_to_zero(bad: object) -> None:
    s = WagerStore()
    s.set_bet_amount(bad)
    assert s.bet_amount == 0


def test_increase_and_decrease_use_step_and_clamp() -> None:
    s = WagerStore()
    s.update_balance(25)
    assert s.bet_amount == 10

    s.increase_bet()
    assert s.bet_amount == 20
    s.increase_bet()
    assert s.bet_amount == 25
    assert s.can_increase is False

    s.decrease_bet(step=30)
    assert s.bet_amount == 0
    assert s.can_decrease is False


def test_set_max_bet() -> None:
    s = WagerStore()
    s.update_balance(640)
    s.set_max_bet()
    assert s.bet_amount == 640


def test_bet_never_leaves_bounds_under_random_intents() -> None:
    rng = random.Random(1234)
    s = WagerStore()
    ops = [
        lambda: s.update_balance(rng.choice([0, 5, 100, 1000, -3, math.nan, 1e9])),
        lambda: s.set_bet_amount(rng.uniform(-500, 5000)),
        lambda: s.increase_bet(rng.choice([None, 1, 75])),
        lambda: s.decrease_bet(rng.choice([None, 3, 200])),
        s.set_max_bet,
    ]
    for _ in range(500):
        rng.choice(ops)()
        assert 0 <= s.bet_amount <= s.balance
        assert math.isfinite(s.balance)


def test_can_bet_false_while_in_flight_and_restored_by_confirm() -> None:
    s = WagerStore()
    s.update_balance(100)
    assert s.can_bet is True

    s.start_betting()
    assert s.bet_in_flight is True
    assert s.can_bet is False
    assert s.can_increase is False
    assert s.can_decrease is False

    record = BetRecord(session="u1", bet=10, currency="USD")
    s.confirm_bet(record)
    assert s.bet_in_flight is False
    assert s.last_outcome == record
    assert s.can_bet is True


def test_bet_error_clears_in_flight_and_records_message(caplog: pytest.LogCaptureFixture) -> None:
    s = WagerStore()
    s.update_balance(100)
    s.start_betting()

    with caplog.at_level(logging.WARNING, logger="thimblerig.wagering.store"):
        s.bet_error(RuntimeError("insufficient funds"))

    assert s.bet_in_flight is False
    assert s.last_error == "insufficient funds"
    assert "insufficient funds" in caplog.text

    s.start_betting()
    s.bet_error(None)
    assert s.last_error == "unknown bet error"

    s.start_betting()
    s.confirm_bet(BetRecord(bet=10, currency="USD"))
    assert s.last_error is None


def test_connectivity_invariant() -> None:
    s = WagerStore()
    s.update_balance(100)

    s.set_connection_error("socket closed")
    assert s.connected is False
    assert s.connection_error == "socket closed"
    assert s.can_bet is False

    s.set_connected(True)
    assert s.connected is True
    assert s.connection_error is None
    assert s.can_bet is True

    s.set_connection_error(None)
    assert s.connection_error == "connection lost"
    s.set_connected(False)
    # Going offline without an error keeps whatever error was recorded.
    assert s.connection_error == "connection lost"


def test_set_identity_merges_partial_updates() -> None:
    s = WagerStore()
    s.set_identity(id="player-7", provider_id="acme", currency=840)
    assert (s.user_id, s.provider_id, s.currency) == ("player-7", "acme", "USD")

    s.set_identity(currency="EUR")
    assert (s.user_id, s.provider_id, s.currency) == ("player-7", "acme", "EUR")

    s.set_identity(id="", currency="  ")
    assert s.user_id == "player-7"
    assert s.currency == "EUR"

    s.set_identity(provider_id=None)
    assert s.provider_id is None
    assert s.user_id == "player-7"


def test_every_mutator_notifies_with_snapshot() -> None:
    s = WagerStore()
    seen: list[WagerSnapshot] = []
    s.subscribe(seen.append)

    s.update_balance(100)
    s.set_bet_amount(20)
    s.increase_bet()
    s.decrease_bet()
    s.set_max_bet()
    s.set_identity(id="p")
    s.set_session("tok")
    s.start_betting()
    s.bet_error("nope")
    s.set_connected(True)
    s.set_connection_error("down")

    assert len(seen) == 11
    last = seen[-1]
    assert last.connected is False
    assert last.connection_error == "down"
    assert last.session_token == "tok"
    assert last.bet_amount == 100


def test_unsubscribed_listener_not_called() -> None:
    s = WagerStore()
    seen: list[WagerSnapshot] = []
    unsubscribe = s.subscribe(seen.append)
    unsubscribe()
    s.update_balance(10)
    assert seen == []


def test_permissive_auth_policy_warns_once_per_store(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="thimblerig.wagering.store"):
        s = WagerStore()
        assert s.is_authenticated is True
        assert s.is_authenticated is True
        WagerStore()
        _store(require_session=True)

    warnings = [r for r in caplog.records if "permissive" in r.getMessage()]
    assert len(warnings) == 2


def test_session_required_policy() -> None:
    s = _store(require_session=True)
    s.update_balance(100)
    assert s.is_authenticated is False
    assert s.can_bet is False

    s.set_session("opaque-token")
    assert s.is_authenticated is True
    assert s.can_bet is True

    s.set_session(None)
    assert s.can_bet is False


def test_policy_for_config() -> None:
    assert policy_for(WagerConfig()) is always_authenticated
    assert policy_for(WagerConfig(require_session=True)) is session_token_required


def test_custom_auth_policy_is_used() -> None:
    s = WagerStore(auth_policy=lambda store: store.user_id == "vip")
    s.update_balance(100)
    assert s.can_bet is False
    s.set_identity(id="vip")
    assert s.can_bet is True


def test_non_finite_initial_balance_starts_at_zero() -> None:
    s = _store(initial_balance=math.inf)
    assert s.balance == 0
