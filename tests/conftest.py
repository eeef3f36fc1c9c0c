from __future__ import annotations

from collections.abc import Callable, Generator, Iterable

import pytest
from fastapi.testclient import TestClient

from thimblerig.config import Settings, ShuffleConfig
from thimblerig.table import TableRegistry


class ScriptedRng:
    """rng stand-in that returns pre-recorded `randrange` draws in order."""

    def __init__(self, values: Iterable[int]) -> None:
        self._values = list(values)
        self.calls: list[int] = []

    def randrange(self, n: int) -> int:
        if not self._values:
            raise AssertionError("ScriptedRng ran out of draws")
        value = self._values.pop(0)
        if not 0 <= value < n:
            raise AssertionError(f"scripted draw {value} out of range for randrange({n})")
        self.calls.append(n)
        return value


@pytest.fixture()
def scripted_rng() -> Callable[..., ScriptedRng]:
    def _make(*values: int) -> ScriptedRng:
        return ScriptedRng(values)

    return _make


def instant_shuffle_config(**overrides: object) -> ShuffleConfig:
    """Every animation and pause is zero-length, so rounds complete without frames."""

    params: dict[str, object] = {
        "swap_count": 3,
        "swap_duration_ms": 0,
        "peek_lift_ms": 0,
        "lift_ms": 0,
        "peek_hold_ms": 0,
        "settle_ms": 0,
        "reveal_pause_ms": 0,
        "result_delay_ms": 0,
    }
    params.update(overrides)
    return ShuffleConfig(**params)  # type: ignore[arg-type]


@pytest.fixture()
def instant_config() -> Callable[..., ShuffleConfig]:
    return instant_shuffle_config


@pytest.fixture()
def registry() -> TableRegistry:
    from thimblerig.websocket_hub import hub

    return TableRegistry(settings=Settings(shuffle=instant_shuffle_config()), hub=hub)


@pytest.fixture()
def client(registry: TableRegistry) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to a registry whose rounds run instantly."""

    from thimblerig.api.deps import get_registry
    from thimblerig.main import app

    app.dependency_overrides[get_registry] = lambda: registry
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
