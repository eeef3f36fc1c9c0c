from __future__ import annotations

from collections.abc import Iterable


class PermutationTracker:
    """Tracks which slot identity sits at each position, and where the token is.

    `slots[position]` is the identity currently at that position and
    `marked` is the position of the slot holding the token. The only ways
    to move the token are `swap()` (a committed exchange) and `reset()`.
    """

    __slots__ = ("_slots", "_marked")

    def __init__(self, *, slot_count: int, marked: int = 0) -> None:
        if slot_count < 2:
            raise ValueError("slot_count must be at least 2")
        self._slots: list[int] = list(range(slot_count))
        self._marked = 0
        self.reset(marked=marked)

    def __len__(self) -> int:
        return len(self._slots)

    @property
    def slots(self) -> tuple[int, ...]:
        return tuple(self._slots)

    @property
    def marked(self) -> int:
        return self._marked

    @property
    def marked_identity(self) -> int:
        return self._slots[self._marked]

    def identity_at(self, position: int) -> int:
        self._check_position(position)
        return self._slots[position]

    def position_of(self, identity: int) -> int:
        return self._slots.index(identity)

    def reset(self, *, marked: int) -> None:
        """Re-index slots to 0..N-1 and place the token at `marked`."""

        self._check_position(marked)
        self._slots = list(range(len(self._slots)))
        self._marked = marked

    def swap(self, a: int, b: int) -> None:
        """Atomically exchange two positions; the token follows its slot."""

        self._check_position(a)
        self._check_position(b)
        if a == b:
            raise ValueError("swap positions must be distinct")

        self._slots[a], self._slots[b] = self._slots[b], self._slots[a]
        if self._marked == a:
            self._marked = b
        elif self._marked == b:
            self._marked = a

    def _check_position(self, position: int) -> None:
        if not 0 <= position < len(self._slots):
            raise ValueError(f"position {position} out of range 0..{len(self._slots) - 1}")


def replay_marked(*, start: int, swaps: Iterable[tuple[int, int]]) -> int:
    """Position of a token starting at `start` after applying `swaps` in order."""

    marked = start
    for a, b in swaps:
        if marked == a:
            marked = b
        elif marked == b:
            marked = a
    return marked
