from __future__ import annotations

from typing import TYPE_CHECKING

from statemachine import State, StateMachine

from thimblerig.shuffle.models import ShufflePhase

if TYPE_CHECKING:
    from thimblerig.shuffle.session import ShuffleSession


class ShuffleFSM(StateMachine):
    """Phase guard for a ShuffleSession.

    idle -> revealing -> shuffling -> awaiting_selection -> resolving -> idle.
    The session does the work; the FSM only guards which step may follow which.
    """

    idle = State(ShufflePhase.idle.value, value=ShufflePhase.idle.value, initial=True)
    revealing = State(ShufflePhase.revealing.value, value=ShufflePhase.revealing.value)
    shuffling = State(ShufflePhase.shuffling.value, value=ShufflePhase.shuffling.value)
    awaiting_selection = State(
        ShufflePhase.awaiting_selection.value,
        value=ShufflePhase.awaiting_selection.value,
    )
    resolving = State(ShufflePhase.resolving.value, value=ShufflePhase.resolving.value)

    begin_round = idle.to(revealing)
    begin_shuffle = revealing.to(shuffling)
    finish_shuffle = shuffling.to(awaiting_selection)
    choose = awaiting_selection.to(resolving)
    end_round = resolving.to(idle)

    def __init__(self, session: "ShuffleSession"):
        self.session = session
        super().__init__(start_value=session.phase.value)

    @property
    def phase(self) -> ShufflePhase:
        return ShufflePhase(str(self.current_state.value))

    def sync_phase_to_model(self) -> None:
        self.session.phase = self.phase
