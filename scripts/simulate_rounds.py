"""Play shuffle rounds headlessly and check token tracking against a replay.

Contract
- Runs `--rounds` rounds on a ManualClock (no wall-clock waiting).
- Every round, replays the committed swap log from the round's starting
  position and fails if it disagrees with the engine's tracked position.
- Picks a slot uniformly at random, so the hit rate should approach 1/N.
- Writes one CSV row per round to `--out` (optional).

Usage:
    uv run python scripts/simulate_rounds.py --rounds 200 --seed 7 --out rounds.csv

This script is deterministic for a given seed.
"""

from __future__ import annotations

import argparse
import asyncio
import random
from pathlib import Path

import pandas as pd

from thimblerig.config import ShuffleConfig
from thimblerig.shuffle.motion import ManualClock
from thimblerig.shuffle.permutation import replay_marked
from thimblerig.shuffle.session import ShuffleSession


async def simulate(*, rounds: int, seed: int, config: ShuffleConfig) -> pd.DataFrame:
    clock = ManualClock()
    session = ShuffleSession(config=config, clock=clock, rng=random.Random(seed))
    picker = random.Random(seed + 1)

    rows: list[dict[str, object]] = []
    for _ in range(rounds):
        await clock.run_until(session.start_round())

        expected = replay_marked(start=session.initial_marked, swaps=session.swap_log)
        if expected != session.marked_slot:
            raise RuntimeError(
                f"round {session.round_id}: replay says {expected}, engine tracked {session.marked_slot}"
            )

        choice = picker.randrange(config.slot_count)
        result = await clock.run_until(session.select_slot(choice))
        if result is None:
            raise RuntimeError(f"round {session.round_id}: selection was not accepted")

        rows.append(
            {
                "round_id": result.round_id,
                "start": session.initial_marked,
                "swaps": " ".join(f"{a}{b}" for a, b in session.swap_log),
                "marked": result.marked_slot,
                "choice": result.choice,
                "won": result.won,
                "clock_ms": round(clock.elapsed_ms, 1),
            }
        )

    return pd.DataFrame(rows)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--rounds", type=int, default=100)
    parser.add_argument("--seed", type=int, default=1)
    parser.add_argument("--slots", type=int, default=3)
    parser.add_argument("--swaps", type=int, default=10)
    parser.add_argument("--out", type=Path, default=None)
    args = parser.parse_args()

    config = ShuffleConfig(slot_count=args.slots, swap_count=args.swaps)
    df = asyncio.run(simulate(rounds=args.rounds, seed=args.seed, config=config))

    hit_rate = df["won"].mean() if len(df) else 0.0
    print(f"rounds={len(df)} wins={int(df['won'].sum())} hit_rate={hit_rate:.3f} expected~{1 / args.slots:.3f}")

    if args.out is not None:
        df.to_csv(args.out, index=False)
        print(f"wrote {args.out}")


if __name__ == "__main__":
    main()
