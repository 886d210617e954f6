import logging
import threading
from typing import Dict, Hashable, Optional

from .errors import GameError, GameNotFound
from .notifier import GameEventNotifier
from .player import Player
from .server import DEFAULT_RESET_QUESTION, SessionServer

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Live coordinators by game code, and the player bound to each connection.

    A coordinator is created (restoring any stored snapshot) when the first
    connection joins its game and disposed when the last one leaves; its
    state is already durable by then.
    """

    def __init__(self, store, emit, board_factory=None, reset_question: str = DEFAULT_RESET_QUESTION):
        self.store = store
        self.emit = emit
        self.board_factory = board_factory
        self.reset_question = reset_question
        self._servers: Dict[str, SessionServer] = {}
        self._connections: Dict[Hashable, Player] = {}
        self.lock = threading.RLock()

    def _get_or_create(self, game_code: str) -> SessionServer:
        server = self._servers.get(game_code)
        if server is None:
            if not self.store.exists(game_code):
                raise GameNotFound(f'Game not found: {game_code}')
            server = SessionServer(
                game_code,
                self.store,
                self.emit,
                board_factory=self.board_factory,
                notifier=GameEventNotifier(game_code),
                reset_question=self.reset_question,
            )
            self._servers[game_code] = server
            logger.info(f'[registry-add] game={game_code} live={len(self._servers)}')
        return server

    def _release_if_empty(self, server: SessionServer) -> None:
        if server.is_empty and self._servers.get(server.game_code) is server:
            del self._servers[server.game_code]
            server.dispose()
            logger.info(f'[registry-remove] game={server.game_code} live={len(self._servers)}')

    def join(self, handle: Hashable, game_code: str, identity: str) -> Player:
        with self.lock:
            if handle in self._connections:
                self.leave(handle)
            server = self._get_or_create(game_code.upper())
            try:
                player = server.connect(handle, identity)
            except GameError:
                self._release_if_empty(server)
                raise
            self._connections[handle] = player
            return player

    def leave(self, handle: Hashable) -> Optional[Player]:
        with self.lock:
            player = self._connections.pop(handle, None)
            if player is None:
                return None
            player.server.disconnect(player)
            self._release_if_empty(player.server)
            return player

    def player_for(self, handle: Hashable) -> Optional[Player]:
        with self.lock:
            return self._connections.get(handle)

    def peek(self, game_code: str) -> Optional[SessionServer]:
        with self.lock:
            return self._servers.get(game_code.upper())
