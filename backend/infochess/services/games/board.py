"""Reference playing board.

The session engine only needs a board that can be built from two armies,
apply a move for a role, report pawn captures/upgrades and a winner, render
a per-role view and round-trip through a dict. This implementation checks
ownership, bounds and occupancy; piece movement rules belong to whichever
board model is plugged into ``Session(board_factory=...)``.
"""
from collections import namedtuple
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import IllegalMove, InvalidArmy
from .phases import ACTIVE_ROLES, Role

BOARD_SIZE = 8
PIECE_TYPES = ('king', 'queen', 'rook', 'bishop', 'knight', 'pawn')
UPGRADE_TYPES = ('queen', 'rook', 'bishop', 'knight')
HIDDEN = 'unknown'

HOME_ROWS = {Role.WHITE: (0, 1), Role.BLACK: (6, 7)}
FORWARD = {Role.WHITE: 1, Role.BLACK: -1}
FAR_ROW = {Role.WHITE: BOARD_SIZE - 1, Role.BLACK: 0}

Position = namedtuple('Position', ['x', 'y'])


def _on_board(pos: Position) -> bool:
    return 0 <= pos.x < BOARD_SIZE and 0 <= pos.y < BOARD_SIZE


def _coords(pos: Position) -> Dict[str, int]:
    return {'x': pos.x, 'y': pos.y}


def validate_army(role: Role, pieces: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Normalize initial setup data for ``role``.

    Returns a new list of ``{type, x, y}`` dicts sorted by square. Raises
    :class:`InvalidArmy` when a piece is unknown, outside the role's home
    rows, stacked on another piece, or when the army lacks exactly one king.
    """
    if role not in ACTIVE_ROLES:
        raise InvalidArmy(f'No army for role {role.value}')
    army = []
    seen = set()
    for raw in pieces or []:
        piece_type = raw.get('type')
        if piece_type not in PIECE_TYPES:
            raise InvalidArmy(f'Unknown piece type: {piece_type}')
        pos = Position(raw.get('x'), raw.get('y'))
        if not all(isinstance(v, int) for v in pos) or not _on_board(pos):
            raise InvalidArmy(f'Piece placed off the board: ({pos.x}, {pos.y})')
        if pos.y not in HOME_ROWS[role]:
            raise InvalidArmy(f'{role.display_name} pieces must be placed on rows {HOME_ROWS[role]}')
        if pos in seen:
            raise InvalidArmy(f'Two pieces placed on ({pos.x}, {pos.y})')
        seen.add(pos)
        army.append({'type': piece_type, 'x': pos.x, 'y': pos.y})
    if sum(1 for p in army if p['type'] == 'king') != 1:
        raise InvalidArmy('An army needs exactly one king')
    army.sort(key=lambda p: (p['y'], p['x']))
    return army


class PlayingBoard:
    def __init__(self, pieces=None, captured=None):
        self.pieces: Dict[Position, Dict[str, Any]] = {}
        for p in pieces or []:
            self.pieces[Position(p['x'], p['y'])] = {'type': p['type'], 'role': Role(p['role'])}
        self.captured: List[Dict[str, str]] = [dict(c) for c in captured or []]

    @classmethod
    def from_armies(cls, white_army, black_army) -> 'PlayingBoard':
        pieces = [dict(p, role=Role.WHITE.value) for p in white_army]
        pieces += [dict(p, role=Role.BLACK.value) for p in black_army]
        return cls(pieces)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'PlayingBoard':
        return cls(data.get('pieces'), data.get('captured'))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pieces': [
                {'x': pos.x, 'y': pos.y, 'type': piece['type'], 'role': piece['role'].value}
                for pos, piece in sorted(self.pieces.items())
            ],
            'captured': [dict(c) for c in self.captured],
        }

    def view(self, role: Optional[Role] = None) -> Dict[str, Any]:
        """Board as seen by ``role``; piece types of every other role are hidden.

        ``role=None`` gives the neutral view where no type is revealed.
        """
        pieces = []
        for pos, piece in sorted(self.pieces.items()):
            visible = role is not None and piece['role'] == role
            pieces.append({
                'x': pos.x,
                'y': pos.y,
                'role': piece['role'].value,
                'type': piece['type'] if visible else HIDDEN,
            })
        return {'pieces': pieces, 'captured': [dict(c) for c in self.captured]}

    def _own_piece(self, role: Role, pos: Position) -> Dict[str, Any]:
        if not _on_board(pos):
            raise IllegalMove(f'Position is off the board: ({pos.x}, {pos.y})')
        piece = self.pieces.get(pos)
        if piece is None or piece['role'] != role:
            raise IllegalMove(f'No {role.value} piece at ({pos.x}, {pos.y})')
        return piece

    def move(self, role: Role, src: Position, dest: Position) -> Dict[str, Any]:
        src, dest = Position(*src), Position(*dest)
        piece = self._own_piece(role, src)
        if not _on_board(dest):
            raise IllegalMove(f'Position is off the board: ({dest.x}, {dest.y})')
        if src == dest:
            raise IllegalMove('A piece must move to a different square')
        target = self.pieces.get(dest)
        if target is not None and target['role'] == role:
            raise IllegalMove(f'({dest.x}, {dest.y}) is occupied by your own piece')

        captured = None
        if target is not None:
            captured = {'type': target['type'], 'role': target['role'].value}
            self.captured.append(captured)
        self.pieces[dest] = piece
        del self.pieces[src]
        return {
            'src': _coords(src),
            'dest': _coords(dest),
            'capture': captured['type'] if captured else None,
        }

    def pawn_captures(self, role: Role) -> List[Dict[str, Dict[str, int]]]:
        captures = []
        for pos, piece in sorted(self.pieces.items()):
            if piece['role'] != role or piece['type'] != 'pawn':
                continue
            for dx in (-1, 1):
                dest = Position(pos.x + dx, pos.y + FORWARD[role])
                target = self.pieces.get(dest)
                if target is not None and target['role'] != role:
                    captures.append({'src': _coords(pos), 'dest': _coords(dest)})
        return captures

    def upgradable_pawns(self, role: Role) -> List[Dict[str, int]]:
        return [
            _coords(pos) for pos, piece in sorted(self.pieces.items())
            if piece['role'] == role and piece['type'] == 'pawn' and pos.y == FAR_ROW[role]
        ]

    def upgrade(self, role: Role, pos: Position, new_type: str) -> Dict[str, Any]:
        pos = Position(*pos)
        if new_type not in UPGRADE_TYPES:
            raise IllegalMove(f'Pawns cannot be upgraded to {new_type}')
        piece = self._own_piece(role, pos)
        if piece['type'] != 'pawn' or pos.y != FAR_ROW[role]:
            raise IllegalMove(f'No upgradable pawn at ({pos.x}, {pos.y})')
        piece['type'] = new_type
        return {'position': _coords(pos), 'type': new_type}

    def winner(self) -> Optional[Role]:
        kings = {piece['role'] for piece in self.pieces.values() if piece['type'] == 'king'}
        if len(kings) == 1:
            return kings.pop()
        return None
