"""Typed inbound protocol messages.

Socket payloads are validated into one of the models below before anything
reaches the session; :func:`parse_message` turns any validation problem into
:class:`InvalidMessage`.
"""
import math
from typing import Annotated, Any, ClassVar, Dict, List, Type

from pydantic import BaseModel, BeforeValidator, ConfigDict, ValidationError, field_validator

from .errors import InvalidMessage
from .vote import normalize_choice


def _non_negative_number(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError('must be a number')
    if not math.isfinite(value):
        raise ValueError('must be finite')
    if value < 0:
        raise ValueError('must not be negative')
    return value


Strength = Annotated[float, BeforeValidator(_non_negative_number)]


class Coordinate(BaseModel):
    x: int
    y: int


class PiecePlacement(BaseModel):
    type: str
    x: int
    y: int


class ProtocolMessage(BaseModel):
    model_config = ConfigDict(extra='ignore', frozen=True)

    message_type: ClassVar[str]
    # Private replies go back to the sender only.
    private: ClassVar[bool] = False


class SelectArmy(ProtocolMessage):
    message_type: ClassVar[str] = 'select_army'
    pieces: List[PiecePlacement]


class Move(ProtocolMessage):
    message_type: ClassVar[str] = 'move'
    src: Coordinate
    dest: Coordinate


class EndTurn(ProtocolMessage):
    message_type: ClassVar[str] = 'end_turn'


class IwAttack(ProtocolMessage):
    message_type: ClassVar[str] = 'iw_attack'
    attack_type: ClassVar[str]

    def attack(self) -> Dict[str, Any]:
        return {'type': self.attack_type}


class Psyop(IwAttack):
    message_type: ClassVar[str] = 'psyop'
    attack_type: ClassVar[str] = 'psyop'
    strength: Strength

    def attack(self) -> Dict[str, Any]:
        return {'type': self.attack_type, 'strength': self.strength}


class ElectronicWarfare(Psyop):
    message_type: ClassVar[str] = 'ew'
    attack_type: ClassVar[str] = 'ew'


class Feint(IwAttack):
    message_type: ClassVar[str] = 'feint'
    attack_type: ClassVar[str] = 'feint'


class IwDefense(ProtocolMessage):
    message_type: ClassVar[str] = 'iw_defense'
    strength: Strength = 0


class PawnUpgrade(ProtocolMessage):
    message_type: ClassVar[str] = 'pawn_upgrade'
    x: int
    y: int
    type: str


class PawnCaptureQuery(ProtocolMessage):
    message_type: ClassVar[str] = 'pawn_capture_query'
    private: ClassVar[bool] = True


class Forfeit(ProtocolMessage):
    message_type: ClassVar[str] = 'forfeit'


class CastVote(ProtocolMessage):
    message_type: ClassVar[str] = 'vote'
    name: str
    choice: bool

    @field_validator('choice', mode='before')
    @classmethod
    def _normalize_choice(cls, value):
        return normalize_choice(value)


class RequestReset(ProtocolMessage):
    message_type: ClassVar[str] = 'request_reset'


class Chat(ProtocolMessage):
    message_type: ClassVar[str] = 'message'
    body: Any = None


PROTOCOL_MESSAGES: Dict[str, Type[ProtocolMessage]] = {
    model.message_type: model
    for model in (
        SelectArmy, Move, EndTurn, Psyop, ElectronicWarfare, Feint, IwDefense,
        PawnUpgrade, PawnCaptureQuery, Forfeit, CastVote, RequestReset, Chat,
    )
}


def _describe(message_type: str, exc: ValidationError) -> str:
    error = exc.errors()[0]
    field = '.'.join(str(part) for part in error.get('loc', ())) or 'payload'
    if error.get('type') == 'missing':
        return f"Protocol error: '{field}' must be specified for '{message_type}'"
    return f"Protocol error: '{field}' {error.get('msg', 'is invalid')}"


def parse_message(message_type: str, payload: Any) -> ProtocolMessage:
    model = PROTOCOL_MESSAGES.get(message_type)
    if model is None:
        raise InvalidMessage(f'Unknown message type: {message_type}')
    # Chat is rebroadcast verbatim, whatever its shape.
    if model is Chat:
        return Chat(body=payload)
    if payload is None:
        payload = {}
    if model is SelectArmy and isinstance(payload, list):
        payload = {'pieces': payload}
    if not isinstance(payload, dict):
        raise InvalidMessage(f"Protocol error: '{message_type}' payload must be an object")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidMessage(_describe(message_type, exc)) from exc
