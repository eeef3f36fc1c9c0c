from __future__ import annotations

import pytest

from scripts.simulate_rounds import simulate
from thimblerig.config import ShuffleConfig


@pytest.mark.asyncio
async def test_simulation_is_deterministic_and_consistent() -> None:
    config = ShuffleConfig(swap_count=5)

    first = await simulate(rounds=12, seed=9, config=config)
    second = await simulate(rounds=12, seed=9, config=config)

    assert len(first) == 12
    assert first.equals(second)
    assert list(first["round_id"]) == list(range(1, 13))
    assert set(first["choice"]) <= {0, 1, 2}
