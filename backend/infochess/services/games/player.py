import logging
from typing import Any, Hashable

from .errors import InvalidMessage
from .messages import PROTOCOL_MESSAGES, parse_message
from .phases import ACTIVE_ROLES, Role

logger = logging.getLogger(__name__)


class Player:
    """One live connection bound to a user identity and a role.

    The connection handle belongs to the transport; the player only keeps it
    to address outbound events. ``handle`` is the inbound entry point: it
    validates the payload against the protocol table and forwards the typed
    message to the coordinator.
    """

    def __init__(self, handle: Hashable, identity: str, role: Role, server):
        self.handle = handle
        self.identity = identity
        self.role = Role(role)
        self.server = server

    @property
    def is_active(self) -> bool:
        return self.role in ACTIVE_ROLES

    @property
    def view_role(self):
        return self.role if self.is_active else None

    @staticmethod
    def message_types():
        return tuple(PROTOCOL_MESSAGES)

    def handle_message(self, message_type: str, payload: Any = None) -> bool:
        logger.debug(f'[protocol] game={self.server.game_code} user={self.identity} type={message_type}')
        try:
            message = parse_message(message_type, payload)
        except InvalidMessage as exc:
            self.server.report_error(self, exc)
            return False
        return self.server.dispatch(self, message)

    def __repr__(self):
        return f'<Player {self.identity} role={self.role.value} handle={self.handle}>'
