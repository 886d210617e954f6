"""Per-game coordinator.

A :class:`SessionServer` owns one :class:`Session`, the game's active votes
and the connected players. Everything that reads or mutates them runs under
``self.lock``, one event at a time, so two connections racing for the same
turn are simply serialized and the loser fails its turn or phase check.

Session operations are applied to a clone of the session. The clone is
persisted first and only then becomes the authoritative session and is
broadcast, so no connection ever sees state that is not durable and a
rejected or unsaved request leaves nothing half-applied.
"""
import logging
import threading
from typing import Any, Callable, Dict, Hashable, List, Optional

from .errors import GameError, NotEligible
from .messages import (
    CastVote, Chat, ElectronicWarfare, EndTurn, Feint, Forfeit, IwDefense, Move,
    PawnCaptureQuery, PawnUpgrade, Psyop, RequestReset, SelectArmy,
)
from .notifier import GameEventNotifier
from .phases import ACTIVE_ROLES, Phase, Role
from .player import Player
from .session import Session
from .vote import Vote, VoteTable

logger = logging.getLogger(__name__)

DEFAULT_RESET_QUESTION = 'Would you like to reset the game?'

# emit(event, data, to) where ``to`` is a connection handle.
Emitter = Callable[[str, Any, Hashable], None]


class Reply:
    def __init__(self, result: Any = True, persist: bool = True, after=None):
        self.result = result
        self.persist = persist
        self.after = after


class SessionServer:
    def __init__(
        self,
        game_code: str,
        store,
        emit: Emitter,
        board_factory=None,
        notifier: Optional[GameEventNotifier] = None,
        reset_question: str = DEFAULT_RESET_QUESTION,
    ):
        self.game_code = game_code
        self.store = store
        self._emit = emit
        self._board_factory = board_factory
        self.notifier = notifier or GameEventNotifier(game_code)
        self.reset_question = reset_question
        self.lock = threading.RLock()
        self.players: List[Player] = []
        self.votes = VoteTable()
        self.session = self._load_session()

        self._session_handlers = {
            SelectArmy: self._select_army,
            Move: self._move,
            EndTurn: self._end_turn,
            Psyop: self._iw_attack,
            ElectronicWarfare: self._iw_attack,
            Feint: self._iw_attack,
            IwDefense: self._iw_defense,
            PawnUpgrade: self._pawn_upgrade,
            PawnCaptureQuery: self._pawn_capture_query,
            Forfeit: self._forfeit,
        }
        self._coordinator_handlers = {
            CastVote: self._cast_vote_message,
            RequestReset: self._request_reset,
            Chat: self._chat,
        }

    def _load_session(self) -> Session:
        snapshot = self.store.load_state(self.game_code)
        if snapshot:
            logger.info(f'[restore] game={self.game_code} phase={snapshot.get("currentPhase")}')
            return Session.restore(snapshot, board_factory=self._board_factory)
        return Session(board_factory=self._board_factory)

    # ---- connections ----

    @property
    def is_empty(self) -> bool:
        return not self.players

    @property
    def connection_count(self) -> int:
        return len(self.players)

    def connect(self, handle: Hashable, identity: str) -> Player:
        """Bind a new connection, reusing the role ``identity`` already holds."""
        with self.lock:
            roles = dict(self.store.load_roles(self.game_code))
            role = next((r for r in ACTIVE_ROLES if roles.get(r.value) == identity), None)
            if role is None:
                role = next((r for r in ACTIVE_ROLES if not roles.get(r.value)), Role.SPECTATOR)
                if role is not Role.SPECTATOR:
                    roles[role.value] = identity
                    self.store.save_roles(self.game_code, roles)

            player = Player(handle, identity, role, self)
            self.players.append(player)
            logger.info(f'[connect] game={self.game_code} user={identity} role={role.value} connections={len(self.players)}')

            self._send(player, 'user_info', {'name': identity})
            self.broadcast('user_connect', {'user': identity}, source=player)
            self._send(player, 'role', role.value)
            self.refresh_board(True, [player])
            self.update_server_status()
            return player

    def disconnect(self, player: Player) -> None:
        with self.lock:
            if player not in self.players:
                return
            self.players.remove(player)
            logger.info(f'[disconnect] game={self.game_code} user={player.identity} connections={len(self.players)}')
            self.update_server_status()
            if any(p.identity == player.identity for p in self.players):
                return
            for vote in self.votes.active():
                try:
                    vote.remove_voter(player.identity)
                except GameError as exc:
                    logger.error(f'[vote-error] game={self.game_code} vote={vote.name} error={exc.message}')

    def dispose(self) -> None:
        with self.lock:
            logger.info(f'[dispose] game={self.game_code}')
            self.players = []
            self.votes = VoteTable()

    # ---- outbound ----

    def _send(self, player: Player, event: str, data: Any) -> None:
        self._emit(event, data, player.handle)

    def broadcast(self, event: str, data: Any, source: Optional[Player] = None) -> None:
        for player in list(self.players):
            if player is not source:
                self._send(player, event, data)

    def update_server_status(self) -> None:
        self.broadcast('num_connected_users', len(self.players))

    def refresh_board(self, result: Any, recipients: Optional[List[Player]] = None) -> None:
        for player in list(recipients if recipients is not None else self.players):
            self._send(player, 'update', {
                'result': result,
                'gameState': self.session.view(player.view_role),
            })

    def report_error(self, player: Player, exc: GameError) -> None:
        logger.info(f'[rejected] game={self.game_code} user={player.identity} error={type(exc).__name__}: {exc.message}')
        self._send(player, 'error', exc.message)

    def view(self, role=None) -> Dict[str, Any]:
        with self.lock:
            return self.session.view(role)

    # ---- inbound ----

    def dispatch(self, player: Player, message) -> bool:
        """Apply one validated protocol message; returns False when it was rejected."""
        with self.lock:
            coordinator_handler = self._coordinator_handlers.get(type(message))
            if coordinator_handler is not None:
                try:
                    coordinator_handler(player, message)
                except GameError as exc:
                    self.report_error(player, exc)
                    return False
                return True

            handler = self._session_handlers[type(message)]
            working = self.session.clone()
            phase_before, role_before = working.current_phase, working.current_role
            try:
                reply = handler(player, message, working)
                if reply.persist:
                    self._persist(working)
            except GameError as exc:
                self.report_error(player, exc)
                return False

            self.session = working
            logger.info(
                f'[dispatch] game={self.game_code} user={player.identity} role={player.role.value} '
                f'type={message.message_type} phase={working.current_phase.value} turn={working.current_role.value}'
            )
            self.refresh_board(reply.result, [player] if message.private else None)
            if reply.after is not None:
                reply.after()
            self._announce_transition(phase_before, role_before, forfeited=isinstance(message, Forfeit))
            return True

    def _persist(self, session: Session) -> None:
        self.store.save_state(self.game_code, session.snapshot())

    def _announce_transition(self, phase_before: Phase, role_before: Role, forfeited: bool = False) -> None:
        session = self.session
        if session.current_phase == Phase.GAMEOVER and phase_before != Phase.GAMEOVER:
            winner = session.get_winner()
            self.broadcast('gameOver', {'winner': winner.value})
            self.broadcast('message', {'user': 'game', 'message': 'Game Over'})
            self.broadcast('message', {'user': 'game', 'message': f'Winner: {winner.display_name}'})
            # A forfeit has already been reported to the game service.
            if not forfeited:
                self.notifier.gameover(winner)
        elif phase_before != Phase.SETUP and session.current_role != role_before:
            self.notifier.move(session.current_role)

    # ---- session operations (run against the working copy) ----

    def _select_army(self, player, message, session):
        session.set_army(player.role, [piece.model_dump() for piece in message.pieces])
        return Reply(True, after=lambda: self.broadcast('opponent_ready', {}, source=player))

    def _move(self, player, message, session):
        src = (message.src.x, message.src.y)
        dest = (message.dest.x, message.dest.y)
        return Reply(session.move(player.role, src, dest))

    def _end_turn(self, player, message, session):
        session.end_turn(player.role)
        return Reply(True)

    def _iw_attack(self, player, message, session):
        return Reply(session.iw_attack(player.role, message.attack()))

    def _iw_defense(self, player, message, session):
        return Reply(session.iw_defense(player.role, {'strength': message.strength}))

    def _pawn_upgrade(self, player, message, session):
        data = {'x': message.x, 'y': message.y, 'type': message.type}
        return Reply(session.pawn_upgrade(player.role, data))

    def _pawn_capture_query(self, player, message, session):
        captures = session.pawn_captures(player.role)
        return Reply({'pawn_captures': captures}, persist=False)

    def _forfeit(self, player, message, session):
        session.forfeit(player.role)

        def _after():
            self.broadcast('message', {'user': 'game', 'message': f'{player.identity} has forfeited the game.'})
            self.notifier.forfeit(player.role)
        return Reply(None, after=_after)

    # ---- votes, reset and chat ----

    def eligible_voters(self) -> set:
        return {p.identity for p in self.players if p.is_active}

    def start_vote(self, name: str, question: str, on_pass=None, on_fail=None) -> Vote:
        outcome = {}

        def _passed():
            # The verdict stands only once the passing action has been applied.
            if on_pass is not None:
                try:
                    on_pass()
                except GameError as exc:
                    logger.error(f'[vote-apply-fail] game={self.game_code} vote={name} error={exc.message}')
                    outcome['error'] = exc
                    return
            outcome['passed'] = True

        def _failed():
            outcome['passed'] = False
            if on_fail is not None:
                on_fail()

        def _completed():
            error = outcome.get('error')
            if error is not None:
                for player in list(self.players):
                    if player.is_active:
                        self._send(player, 'error', error.message)
            verdict = 'passed' if outcome.get('passed') else 'failed'
            self.broadcast('message', {'user': 'game', 'message': f'Vote "{name}" {verdict}.'})

        with self.lock:
            vote = self.votes.create(name, question, self.eligible_voters(), _passed, _failed, _completed)
            logger.info(f'[vote-start] game={self.game_code} vote={name} voters={sorted(vote.eligible_voters)}')
            if not vote.resolved:
                self.broadcast_vote(vote)
            return vote

    def broadcast_vote(self, vote: Vote) -> None:
        for player in list(self.players):
            if player.identity in vote.eligible_voters:
                self._send(player, 'getVote', vote.to_dict())

    def cast_vote(self, player: Player, name: str, choice: bool) -> Vote:
        with self.lock:
            vote = self.votes.get(name)
            if player.identity not in vote.eligible_voters:
                raise NotEligible(f'Not eligible to vote in {name!r}')
            logger.debug(f'[ballot] game={self.game_code} vote={name} user={player.identity} choice={choice}')
            return self.votes.cast_ballot(name, player.identity, choice)

    def reset_game(self) -> None:
        with self.lock:
            fresh = Session(board_factory=self._board_factory)
            self._persist(fresh)
            self.session = fresh
            logger.info(f'[reset] game={self.game_code}')
            self.refresh_board(True)

    def _cast_vote_message(self, player, message):
        self.cast_vote(player, message.name, message.choice)

    def _request_reset(self, player, message):
        if not player.is_active:
            raise NotEligible('Only players can request a reset')
        self.start_vote('reset', self.reset_question, on_pass=self.reset_game)

    def _chat(self, player, message):
        self.broadcast('message', message.body)
