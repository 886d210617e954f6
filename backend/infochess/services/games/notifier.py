import logging

logger = logging.getLogger(__name__)


class GameEventNotifier:
    """Reports game lifecycle events to the external game service.

    The shipped implementation records them in the application log; swap in
    a subclass to forward them elsewhere.
    """

    def __init__(self, game_code: str):
        self.game_code = game_code

    def move(self, role) -> None:
        logger.info(f'[egs-move] game={self.game_code} next={role.value}')

    def gameover(self, winner) -> None:
        logger.info(f'[egs-gameover] game={self.game_code} winner={winner.value}')

    def forfeit(self, role) -> None:
        logger.info(f'[egs-forfeit] game={self.game_code} role={role.value}')
