from enum import Enum
from typing import Dict


class Role(str, Enum):
    WHITE = 'white'
    BLACK = 'black'
    SPECTATOR = 'spectator'

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def opponent(self) -> 'Role':
        if self is Role.WHITE:
            return Role.BLACK
        if self is Role.BLACK:
            return Role.WHITE
        raise ValueError('spectators have no opponent')


ACTIVE_ROLES = (Role.WHITE, Role.BLACK)


class Phase(str, Enum):
    SETUP = 'setup'
    DEFENSE = 'defense'
    PAWNCAPTURE = 'pawn-capture'
    MOVE = 'move'
    IW = 'iw'
    GAMEOVER = 'gameover'


# Turn cycle once both armies are placed. GAMEOVER is reachable from any
# phase and SETUP only leaves through Session.set_army.
NEXT_PHASE: Dict[Phase, Phase] = {
    Phase.DEFENSE: Phase.PAWNCAPTURE,
    Phase.PAWNCAPTURE: Phase.MOVE,
    Phase.MOVE: Phase.IW,
    Phase.IW: Phase.DEFENSE,
}

# The turn passes to the other role only when leaving IW.
ROLE_SWAP_PHASES = frozenset({Phase.IW})
