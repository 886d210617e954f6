"""Durable game state backed by Flask-SQLAlchemy.

The coordinator talks to storage through four calls (load/save the session
snapshot, load/save role occupancy). Database errors are rolled back and
surface as :class:`PersistenceFailure` so a failed write never takes the
coordinator down with it.
"""
import json
import logging
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from infochess import db
from infochess.models import Game, RoleSlot
from .errors import GameNotFound, PersistenceFailure
from .phases import Phase

logger = logging.getLogger(__name__)


def status_for(snapshot: Mapping[str, Any]) -> str:
    phase = snapshot.get('currentPhase')
    if phase == Phase.SETUP.value:
        return 'waiting'
    if phase == Phase.GAMEOVER.value:
        return 'finished'
    return 'in_progress'


class SqlAlchemyGameStore:
    def _game(self, game_code: str) -> Game:
        game = Game.query.filter_by(game_code=game_code.upper()).first()
        if game is None:
            raise GameNotFound(f'Game not found: {game_code}')
        return game

    def exists(self, game_code: str) -> bool:
        try:
            return Game.query.filter_by(game_code=game_code.upper()).first() is not None
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceFailure('Could not read game') from exc

    def load_state(self, game_code: str) -> Optional[Dict[str, Any]]:
        try:
            return self._game(game_code).state
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceFailure('Could not load game state') from exc

    def save_state(self, game_code: str, snapshot: Mapping[str, Any]) -> None:
        try:
            game = self._game(game_code)
            game.game_state = json.dumps(snapshot)
            game.status = status_for(snapshot)
            game.winner = snapshot.get('winner')
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error(f'[persist-fail] game={game_code} error={exc}')
            raise PersistenceFailure('Could not save game state') from exc

    def load_roles(self, game_code: str) -> Dict[str, str]:
        try:
            return self._game(game_code).roles
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceFailure('Could not load role assignments') from exc

    def save_roles(self, game_code: str, roles: Mapping[str, Optional[str]]) -> None:
        try:
            game = self._game(game_code)
            slots = {slot.role: slot for slot in game.role_slots}
            for role, identity in roles.items():
                if not identity:
                    continue
                slot = slots.get(role)
                if slot is None:
                    db.session.add(RoleSlot(game=game, role=role, identity=identity))
                else:
                    slot.identity = identity
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error(f'[persist-fail] game={game_code} roles error={exc}')
            raise PersistenceFailure('Could not save role assignment') from exc
