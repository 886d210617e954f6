"""Errors raised by the session engine, the vote table and the coordinator.

Everything derives from :class:`GameError`; the coordinator reports any
``GameError`` to the connection that caused it and leaves shared state
untouched.
"""


class GameError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidMessage(GameError):
    """Malformed protocol payload (missing or mistyped field)."""


class InvalidRole(GameError):
    pass


class TurnViolation(GameError):
    pass


class PhaseViolation(GameError):
    pass


class IllegalMove(GameError):
    """Raised by the board when it rejects a move or upgrade."""


class InvalidArmy(GameError):
    """Raised by the board when initial setup data cannot be placed."""


class VoteInProgress(GameError):
    pass


class VoteNotFound(GameError):
    pass


class NotEligible(GameError):
    pass


class PersistenceFailure(GameError):
    """A durable write did not complete."""


class GameNotFound(GameError):
    pass
