from __future__ import annotations

from statemachine import State, StateMachine

from tictac.api.models import GameState, Phase


class SessionFSM(StateMachine):
    """FSM wrapper around a session's GameState.

    - phases: waiting -> active -> concluded -> active (reset), any seated phase -> waiting
    - fields are mutated by SessionController; the FSM only guards transitions.
    """

    waiting = State(Phase.waiting.value, value=Phase.waiting.value, initial=True)
    active = State(Phase.active.value, value=Phase.active.value)
    concluded = State(Phase.concluded.value, value=Phase.concluded.value)

    fill_seats = waiting.to(active)
    conclude = active.to(concluded)
    restart = concluded.to(active)
    vacate = active.to(waiting) | concluded.to(waiting)

    def __init__(self, game: GameState):
        self.game = game
        super().__init__(start_value=game.phase.value)

    @property
    def phase(self) -> Phase:
        return Phase(str(self.current_state.value))

    def sync_phase_to_model(self) -> None:
        self.game.phase = self.phase
