from __future__ import annotations

import asyncio
import logging
import random
from collections import deque
from collections.abc import Callable
from typing import Any

from thimblerig.config import MarkedSlotPolicy, ShuffleConfig, TableLayout
from thimblerig.core.events import EventType, ShuffleEvent
from thimblerig.core.observable import Observable, Subscription
from thimblerig.shuffle.fsm import ShuffleFSM
from thimblerig.shuffle.models import (
    SelectionResult,
    ShufflePhase,
    ShuffleSnapshot,
    SlotPose,
    SlotView,
)
from thimblerig.shuffle.motion import FrameClock, Periodic, RealtimeClock, pause, tween
from thimblerig.shuffle.permutation import PermutationTracker

logger = logging.getLogger(__name__)

MAX_HISTORY_SIZE = 500

MSG_WELCOME = "Watch the ball, then find it after the shuffle!"
MSG_PEEK = "Watch carefully where the ball is..."
MSG_WATCH = "Now watch the cups shuffle..."
MSG_SHUFFLING = "Shuffling..."
MSG_SELECT = "Click on a cup to reveal the ball!"
MSG_WON = "You found it!"
MSG_LOST = "Wrong cup! The ball was here."


class ShuffleSession:
    """Shuffle-game engine for one table.

    Owns the permutation tracker, the slot poses and the score. Rounds run
    as coroutines on an injected `FrameClock`; randomness comes from an
    injected `random.Random`-compatible rng (only `randrange` is used).

    Out-of-phase intents are no-ops: `start_round()` returns False unless the
    session is idle, `select_slot()` returns None unless it is awaiting a
    selection. Neither notifies subscribers in that case.
    """

    def __init__(
        self,
        *,
        config: ShuffleConfig | None = None,
        layout: TableLayout | None = None,
        clock: FrameClock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or ShuffleConfig()
        self.layout = layout or TableLayout()
        self.clock = clock if clock is not None else RealtimeClock(fps=self.config.fps)

        # Seed kept for reproducing a table's draws while debugging.
        self.seed: int | None = None
        if rng is None:
            self.seed = random.SystemRandom().randint(1, 2**31 - 1)
            rng = random.Random(self.seed)
        self.rng = rng

        self.phase = ShufflePhase.idle
        self.round_id = 0
        self.score = 0
        self.rounds_played = 0
        self.message = MSG_WELCOME
        self.token_visible = False
        self.last_result: SelectionResult | None = None

        n = self.config.slot_count
        self.tracker = PermutationTracker(slot_count=n, marked=0)
        self.poses: dict[int, SlotPose] = {
            i: SlotPose(slot_id=i, x=self.layout.slot_x(position=i, slot_count=n), y=self.layout.rest_y)
            for i in range(n)
        }

        # Swaps committed this round, in order, and where the token started.
        self.swap_log: list[tuple[int, int]] = []
        self.initial_marked = 0

        self.history: deque[ShuffleEvent] = deque(maxlen=MAX_HISTORY_SIZE)
        self._state: Observable[ShuffleSnapshot] = Observable(self.snapshot, name="shuffle")
        self._events: Observable[ShuffleEvent] = Observable(name="shuffle-events")

        self._fsm = ShuffleFSM(self)

    # ========== Observation ==========

    @property
    def marked_slot(self) -> int:
        return self.tracker.marked

    @property
    def slots(self) -> tuple[int, ...]:
        return self.tracker.slots

    @property
    def can_select(self) -> bool:
        return self.phase == ShufflePhase.awaiting_selection

    def subscribe(self, callback: Callable[[ShuffleSnapshot], None]) -> Subscription:
        return self._state.subscribe(callback)

    def subscribe_events(self, callback: Callable[[ShuffleEvent], None]) -> Subscription:
        return self._events.subscribe(callback)

    def notify(self) -> None:
        self._state.notify()

    def snapshot(self) -> ShuffleSnapshot:
        views = []
        for position, slot_id in enumerate(self.tracker.slots):
            pose = self.poses[slot_id]
            views.append(SlotView(slot_id=slot_id, position=position, x=pose.x, y=pose.y, lifted=pose.lifted))

        return ShuffleSnapshot(
            round_id=self.round_id,
            phase=self.phase,
            slots=views,
            marked_slot=self.tracker.marked if self.token_visible else None,
            token_visible=self.token_visible,
            can_select=self.can_select,
            swaps_done=len(self.swap_log),
            swaps_total=self.config.swap_count,
            score=self.score,
            rounds_played=self.rounds_played,
            message=self.message,
            last_result=self.last_result,
        )

    def _emit(self, type: EventType, payload: dict[str, Any]) -> None:
        event = ShuffleEvent.now(type=type, round_id=self.round_id, payload=payload)
        self.history.append(event)
        self._events.publish(event)

    def _advance(self, event: str) -> None:
        self._fsm.send(event)
        self._fsm.sync_phase_to_model()
        logger.debug("Shuffle round %d -> %s", self.round_id, self.phase.value)

    # ========== Randomness ==========

    def _draw_index(self) -> int:
        return self.rng.randrange(len(self.tracker))

    def _draw_pair(self) -> tuple[int, int]:
        a = self._draw_index()
        b = self._draw_index()
        while b == a:
            b = self._draw_index()
        return a, b

    # ========== Round lifecycle ==========

    async def start_round(self) -> bool:
        """Reveal the token, shuffle, and stop once a selection is possible.

        Returns False without touching state unless the session is idle.
        """

        if self.phase != ShufflePhase.idle:
            return False

        self._advance("begin_round")
        self.round_id += 1

        # The very first round always draws; later rounds follow the policy.
        if self.rounds_played == 0 or self.config.marked_slot_policy == MarkedSlotPolicy.reshuffle:
            marked = self._draw_index()
        else:
            marked = self.tracker.marked

        self.tracker.reset(marked=marked)
        self._reset_poses()
        self.swap_log = []
        self.initial_marked = marked
        self.last_result = None
        self.token_visible = True
        self.message = MSG_PEEK
        self._emit("ROUND_STARTED", {"marked_slot": marked})
        self.notify()

        await self._peek(marked)

        self._advance("begin_shuffle")
        self.token_visible = False
        self.message = MSG_SHUFFLING
        self.notify()

        await self._shuffle()

        self._advance("finish_shuffle")
        self.message = MSG_SELECT
        self.notify()
        return True

    async def select_slot(self, choice: int) -> SelectionResult | None:
        """Resolve the player's pick.

        Returns None (a no-op) unless the session is awaiting a selection;
        this also covers a second click while a pick is still resolving.
        """

        if self.phase != ShufflePhase.awaiting_selection:
            return None
        if not 0 <= choice < len(self.tracker):
            raise ValueError(f"slot {choice} out of range 0..{len(self.tracker) - 1}")

        self._advance("choose")
        self.token_visible = True
        self.notify()

        await pause(self.clock, self.config.reveal_pause_ms)
        await self._open(choice, self.config.lift_ms)

        marked = self.tracker.marked
        won = choice == marked
        self.rounds_played += 1
        if won:
            self.score += 1
            self.message = MSG_WON
        else:
            self.message = MSG_LOST

        result = SelectionResult(
            round_id=self.round_id,
            choice=choice,
            marked_slot=marked,
            won=won,
            score=self.score,
            rounds_played=self.rounds_played,
        )
        self.last_result = result
        self.notify()

        if not won:
            await self._open(marked, self.config.lift_ms)

        self._emit("ROUND_RESOLVED", result.model_dump())
        logger.info(
            "Round %d resolved: choice=%d marked=%d won=%s score=%d/%d",
            self.round_id,
            choice,
            marked,
            won,
            self.score,
            self.rounds_played,
        )

        await pause(self.clock, self.config.result_delay_ms)
        self._advance("end_round")
        self.notify()
        return result

    # ========== Motion ==========

    def _pose_at(self, position: int) -> SlotPose:
        return self.poses[self.tracker.identity_at(position)]

    def _reset_poses(self) -> None:
        n = len(self.tracker)
        for slot_id, pose in self.poses.items():
            pose.x = self.layout.slot_x(position=slot_id, slot_count=n)
            pose.y = self.layout.rest_y
            pose.lifted = False

    async def _lift(self, pose: SlotPose, duration_ms: float) -> None:
        await tween(self.clock, pose, duration_ms, y=self.layout.rest_y - self.layout.lift_height)
        pose.lifted = True

    async def _lower(self, pose: SlotPose, duration_ms: float) -> None:
        await tween(self.clock, pose, duration_ms, y=self.layout.rest_y)
        pose.lifted = False

    async def _open(self, position: int, duration_ms: float) -> None:
        await self._lift(self._pose_at(position), duration_ms)
        self._emit("SLOT_OPENED", {"position": position, "slot_id": self.tracker.identity_at(position)})
        self.notify()

    async def _peek(self, position: int) -> None:
        pose = self._pose_at(position)
        await self._lift(pose, self.config.peek_lift_ms)
        self._emit("PEEK_OPENED", {"position": position})
        self.notify()

        await pause(self.clock, self.config.peek_hold_ms)

        self.message = MSG_WATCH
        await self._lower(pose, self.config.peek_lift_ms)
        self._emit("PEEK_CLOSED", {"position": position})
        self.notify()

        await pause(self.clock, self.config.settle_ms)

    async def _shuffle(self) -> None:
        total = self.config.swap_count
        self._emit("SHUFFLE_STARTED", {"swaps_total": total})
        for _ in range(total):
            a, b = self._draw_pair()
            # Strictly one swap at a time: the next draw waits for this commit.
            await self._swap(a, b)
        self._emit("SHUFFLE_ENDED", {"slots": list(self.tracker.slots)})

    async def _arc(self, pose: SlotPose, apex_y: float, to_x: float, leg_ms: float) -> None:
        await tween(self.clock, pose, leg_ms, y=apex_y)
        await tween(self.clock, pose, leg_ms, x=to_x, y=self.layout.rest_y)

    async def _swap(self, a: int, b: int) -> None:
        """Animate two slots trading places, then commit the exchange.

        The tracker is only updated after both motion tasks finish, so the
        token position never reflects a half-finished swap.
        """

        pose_a = self._pose_at(a)
        pose_b = self._pose_at(b)
        x_a, x_b = pose_a.x, pose_b.x
        leg_ms = self.config.swap_duration_ms / 2
        apex_y = self.layout.rest_y - self.layout.arc_height

        self._emit("SWAP_STARTED", {"a": a, "b": b, "slot_ids": [pose_a.slot_id, pose_b.slot_id]})
        trails = self._start_trails(pose_a, pose_b)
        try:
            await asyncio.gather(
                self._arc(pose_a, apex_y, x_b, leg_ms),
                self._arc(pose_b, apex_y + self.layout.arc_offset, x_a, leg_ms),
            )
        finally:
            for trail in trails:
                trail.cancel()

        self.tracker.swap(a, b)
        self.swap_log.append((a, b))
        logger.debug(
            "Swap %d/%d committed: %d<->%d marked=%d",
            len(self.swap_log),
            self.config.swap_count,
            a,
            b,
            self.tracker.marked,
        )
        self._emit("SWAP_COMMITTED", {"a": a, "b": b, "slots": list(self.tracker.slots)})
        self.notify()

    def _start_trails(self, *poses: SlotPose) -> list[Periodic]:
        interval = self.config.trail_interval_ms
        if not interval:
            return []

        def _emitter(pose: SlotPose) -> Callable[[], None]:
            def _emit_trail() -> None:
                self._emit("TRAIL", {"slot_id": pose.slot_id, "x": pose.x, "y": pose.y})

            return _emit_trail

        return [self.clock.every(interval, _emitter(pose)) for pose in poses]
