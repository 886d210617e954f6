import copy
import logging
import math
from numbers import Number
from typing import Any, Callable, Dict, List, Mapping, Optional

from .board import PlayingBoard, Position, validate_army
from .errors import IllegalMove, InvalidMessage, InvalidRole, PhaseViolation, TurnViolation
from .phases import ACTIVE_ROLES, NEXT_PHASE, ROLE_SWAP_PHASES, Phase, Role

logger = logging.getLogger(__name__)

IW_ATTACK_TYPES = ('psyop', 'ew', 'feint')


def _valid_strength(value) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool) and math.isfinite(value) and value >= 0


class Session:
    """Authoritative state of one game: phase, turn, board and IW exchange.

    Every public mutator validates role, turn, phase and payload before it
    changes anything, so a raised :class:`GameError` leaves the session as it
    was. The board is built lazily once both armies are in.
    """

    def __init__(self, board_factory: Optional[Callable[..., Any]] = None, board_loader=None):
        self.current_phase = Phase.SETUP
        self.current_role = Role.WHITE
        self.board = None
        self.initial_armies: Dict[Role, List[Dict[str, Any]]] = {}
        self.pending_attack: Optional[Dict[str, Any]] = None
        self.last_iw: Optional[Dict[str, Any]] = None
        self.winner: Optional[Role] = None
        self._board_factory = board_factory or PlayingBoard.from_armies
        self._board_loader = board_loader or PlayingBoard.from_dict

    # ---- validation helpers ----

    @staticmethod
    def _active_role(role) -> Role:
        try:
            role = Role(role)
        except ValueError:
            raise InvalidRole(f'Invalid role: {role}')
        if role not in ACTIVE_ROLES:
            raise InvalidRole(f'Invalid role: {role.value}')
        return role

    def _require_turn(self, role) -> Role:
        role = self._active_role(role)
        if role != self.current_role:
            raise TurnViolation(f"It is {self.current_role.display_name}'s turn")
        return role

    def _require_phase(self, *phases: Phase) -> None:
        if self.current_phase not in phases:
            allowed = ', '.join(p.value for p in phases)
            raise PhaseViolation(
                f'Not allowed during the {self.current_phase.value} phase (allowed: {allowed})'
            )

    # ---- phase engine ----

    def _pawn_actions_available(self, role: Role) -> bool:
        return bool(self.board.pawn_captures(role) or self.board.upgradable_pawns(role))

    def _advance(self) -> None:
        phase = NEXT_PHASE[self.current_phase]
        if self.current_phase in ROLE_SWAP_PHASES:
            self.current_role = self.current_role.opponent
        # Pass through phases the current role has nothing to do in.
        if phase == Phase.DEFENSE and self.pending_attack is None:
            phase = Phase.PAWNCAPTURE
        if phase == Phase.PAWNCAPTURE and not self._pawn_actions_available(self.current_role):
            phase = Phase.MOVE
        logger.debug(f'[phase] {self.current_phase.value} -> {phase.value} role={self.current_role.value}')
        self.current_phase = phase

    def _end_game(self, winner: Role) -> None:
        self.current_phase = Phase.GAMEOVER
        self.winner = winner

    # ---- operations ----

    def set_army(self, role, setup) -> None:
        role = self._active_role(role)
        if self.current_phase != Phase.SETUP:
            raise PhaseViolation('Initial armies cannot be changed after the setup phase.')
        army = validate_army(role, setup)

        armies = dict(self.initial_armies)
        armies[role] = army
        board = None
        if all(r in armies for r in ACTIVE_ROLES):
            board = self._board_factory(armies[Role.WHITE], armies[Role.BLACK])

        self.initial_armies = armies
        if board is not None:
            self.board = board
            self.current_phase = Phase.MOVE
            self.current_role = Role.WHITE

    def move(self, role, src, dest):
        role = self._require_turn(role)
        self._require_phase(Phase.MOVE, Phase.PAWNCAPTURE)
        src, dest = Position(*src), Position(*dest)
        if self.current_phase == Phase.PAWNCAPTURE:
            wanted = {'src': {'x': src.x, 'y': src.y}, 'dest': {'x': dest.x, 'y': dest.y}}
            if wanted not in self.board.pawn_captures(role):
                raise IllegalMove('Only pawn captures are allowed during the pawn-capture phase')

        result = self.board.move(role, src, dest)
        winner = self.board.winner()
        if winner is not None:
            self._end_game(winner)
        else:
            self._advance()
        return result

    def end_turn(self, role) -> None:
        self._require_turn(role)
        self._require_phase(Phase.PAWNCAPTURE, Phase.MOVE, Phase.IW)
        self._advance()

    def iw_attack(self, role, attack: Mapping[str, Any]) -> bool:
        role = self._require_turn(role)
        self._require_phase(Phase.IW)
        attack_type = attack.get('type')
        if attack_type not in IW_ATTACK_TYPES:
            raise InvalidMessage(f'Unknown IW attack type: {attack_type}')
        strength = attack.get('strength', 0)
        if attack_type != 'feint':
            if not _valid_strength(strength):
                raise InvalidMessage("Protocol error: 'strength' must be a non-negative number for IW attacks")

        self.pending_attack = {
            'attacker': role.value,
            'type': attack_type,
            'strength': strength if attack_type != 'feint' else 0,
        }
        self._advance()
        return True

    def iw_defense(self, role, data: Mapping[str, Any]) -> Dict[str, Any]:
        self._require_turn(role)
        self._require_phase(Phase.DEFENSE)
        strength = (data or {}).get('strength', 0)
        if not _valid_strength(strength):
            raise InvalidMessage("Protocol error: 'strength' must be a non-negative number")

        attack = self.pending_attack
        if attack['type'] == 'feint':
            outcome = 'feint'
        elif attack['strength'] > strength:
            outcome = 'success'
        else:
            outcome = 'defended'
        self.last_iw = dict(attack, defense=strength, outcome=outcome)
        self.pending_attack = None
        self._advance()
        return dict(self.last_iw)

    def pawn_upgrade(self, role, data: Mapping[str, Any]) -> Dict[str, Any]:
        role = self._require_turn(role)
        self._require_phase(Phase.PAWNCAPTURE)
        result = self.board.upgrade(role, Position(data['x'], data['y']), data['type'])
        self._advance()
        return result

    def forfeit(self, role) -> None:
        role = self._active_role(role)
        if self.current_phase == Phase.GAMEOVER:
            raise PhaseViolation('The game is already over')
        self._end_game(role.opponent)

    def pawn_captures(self, role) -> List[Dict[str, Dict[str, int]]]:
        role = self._active_role(role)
        if self.board is None:
            return []
        return self.board.pawn_captures(role)

    def get_winner(self) -> Optional[Role]:
        return self.winner

    # ---- views and persistence ----

    def view(self, role=None) -> Dict[str, Any]:
        if role is not None:
            role = Role(role)
            if role not in ACTIVE_ROLES:
                role = None
        dto = {
            'currentPhase': self.current_phase.value,
            'currentRole': self.current_role.value,
            'winner': self.winner.value if self.winner else None,
            'ready': {r.value: r in self.initial_armies for r in ACTIVE_ROLES},
        }
        if self.current_phase == Phase.SETUP and role in self.initial_armies:
            dto['army'] = copy.deepcopy(self.initial_armies[role])
        if self.board is not None:
            dto['board'] = self.board.view(role)
        if self.pending_attack is not None:
            if role is not None and self.pending_attack['attacker'] == role.value:
                dto['pendingAttack'] = dict(self.pending_attack)
            else:
                dto['pendingAttack'] = {'attacker': self.pending_attack['attacker']}
        if self.last_iw is not None:
            dto['lastIw'] = dict(self.last_iw)
        return dto

    def snapshot(self) -> Dict[str, Any]:
        return {
            'currentPhase': self.current_phase.value,
            'currentRole': self.current_role.value,
            'board': self.board.to_dict() if self.board is not None else None,
            'initialArmies': {r.value: copy.deepcopy(a) for r, a in self.initial_armies.items()},
            'pendingAttack': copy.deepcopy(self.pending_attack),
            'lastIw': copy.deepcopy(self.last_iw),
            'winner': self.winner.value if self.winner else None,
        }

    @classmethod
    def restore(cls, snapshot: Mapping[str, Any], board_factory=None, board_loader=None) -> 'Session':
        session = cls(board_factory=board_factory, board_loader=board_loader)
        session.current_phase = Phase(snapshot['currentPhase'])
        session.current_role = session._active_role(snapshot['currentRole'])
        if snapshot.get('board') is not None:
            session.board = session._board_loader(snapshot['board'])
        session.initial_armies = {
            Role(r): copy.deepcopy(a) for r, a in (snapshot.get('initialArmies') or {}).items()
        }
        session.pending_attack = copy.deepcopy(snapshot.get('pendingAttack'))
        session.last_iw = copy.deepcopy(snapshot.get('lastIw'))
        if snapshot.get('winner'):
            session.winner = Role(snapshot['winner'])
        return session

    def clone(self) -> 'Session':
        return Session.restore(self.snapshot(), self._board_factory, self._board_loader)
