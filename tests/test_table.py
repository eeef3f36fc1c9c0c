from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from thimblerig.config import Settings, ShuffleConfig
from thimblerig.shuffle.models import ShufflePhase
from thimblerig.shuffle.motion import ManualClock, RealtimeClock
from thimblerig.table import TableClosedError, TableRegistry


class RecordingHub:
    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, object]]] = []
        self.closed: list[str] = []

    async def broadcast(self, table_id: str, payload: dict[str, object]) -> None:
        self.sent.append((table_id, payload))

    async def close_table(self, table_id: str) -> None:
        self.closed.append(table_id)


@pytest.mark.asyncio
async def test_background_round_runs_on_table_clock() -> None:
    hub = RecordingHub()
    registry = TableRegistry(settings=Settings(shuffle=ShuffleConfig(swap_count=2)), hub=hub)  # type: ignore[arg-type]
    clock = ManualClock()
    table = registry.create_table(seed=5, clock=clock)

    assert table.start_round_in_background() is True
    assert table.start_round_in_background() is False
    assert table.round_running

    assert table.round_task is not None
    assert await clock.run_until(table.round_task) is True
    await clock.settle()

    assert table.shuffle.phase == ShufflePhase.awaiting_selection
    assert not table.round_running

    types = {payload["type"] for _, payload in hub.sent}
    assert "shuffle_updated" in types
    assert {tid for tid, _ in hub.sent} == {table.id}
    # The answer never leaks while the token is hidden.
    hidden = [p["shuffle"] for _, p in hub.sent if p["type"] == "shuffle_updated" and not p["shuffle"]["token_visible"]]  # type: ignore[index]
    assert hidden
    assert all(s["marked_slot"] is None for s in hidden)  # type: ignore[index]

    await registry.close()
    assert len(registry) == 0
    assert hub.closed == [table.id]


@pytest.mark.asyncio
async def test_close_cancels_running_round() -> None:
    registry = TableRegistry(settings=Settings())
    clock = ManualClock()
    table = registry.create_table(clock=clock)

    table.start_round_in_background()
    await clock.advance(100)
    assert table.round_running

    await table.close()
    assert table.round_task is not None
    assert table.round_task.cancelled()


def test_registry_lists_newest_first() -> None:
    registry = TableRegistry(settings=Settings())
    first = registry.create_table(clock=ManualClock())
    second = registry.create_table(clock=ManualClock())

    assert registry.get_table(first.table_id) is first
    assert [t.table_id for t in registry.list_tables()][0] == second.table_id


def test_injected_idle_clock_is_kept() -> None:
    clock = ManualClock()
    table = TableRegistry(settings=Settings()).create_table(clock=clock)

    assert table.clock is clock
    assert table.shuffle.clock is clock


@pytest.mark.asyncio
async def test_closing_table_releases_waited_round() -> None:
    registry = TableRegistry(settings=Settings())
    clock = ManualClock()
    table = registry.create_table(clock=clock)

    waited = asyncio.ensure_future(table.start_round())
    await clock.advance(100)
    assert table.shuffle.phase == ShufflePhase.revealing

    assert await registry.remove_table(table.table_id) is True

    with pytest.raises(TableClosedError):
        await asyncio.wait_for(waited, 1.0)
    assert not table.round_running


@pytest.mark.asyncio
async def test_closing_table_releases_pending_selection(instant_config: Callable[..., ShuffleConfig]) -> None:
    settings = Settings(shuffle=instant_config(lift_ms=500))
    clock = ManualClock()
    table = TableRegistry(settings=settings).create_table(clock=clock)
    assert await clock.run_until(table.start_round()) is True

    picked = asyncio.ensure_future(table.select_slot(0))
    await clock.advance(50)
    assert table.shuffle.phase == ShufflePhase.resolving

    await table.close()

    with pytest.raises(TableClosedError):
        await asyncio.wait_for(picked, 1.0)


@pytest.mark.asyncio
async def test_closing_table_releases_waited_round_on_realtime_clock() -> None:
    registry = TableRegistry(settings=Settings())
    table = registry.create_table(seed=1)
    assert isinstance(table.clock, RealtimeClock)

    waited = asyncio.ensure_future(table.start_round())
    await asyncio.sleep(0.05)
    await registry.remove_table(table.table_id)

    with pytest.raises(TableClosedError):
        await asyncio.wait_for(waited, 2.0)


@pytest.mark.asyncio
async def test_closed_table_refuses_new_rounds() -> None:
    table = TableRegistry(settings=Settings()).create_table(clock=ManualClock())
    await table.close()

    with pytest.raises(TableClosedError):
        await table.start_round()
    with pytest.raises(TableClosedError):
        table.start_round_in_background()
