import json

from flask import Blueprint, jsonify, current_app

from infochess import db
from infochess.models import Game
from infochess.services.games.session import Session


games = Blueprint('games', __name__)


@games.route('/create', methods=['POST'])
def create_game_unauthed():
    new_game = Game(game_state=json.dumps(Session().snapshot()))
    db.session.add(new_game)
    db.session.commit()
    current_app.logger.info(f'[create] game={new_game.game_code}')
    return jsonify({
        'message': 'New game created!',
        'game_code': new_game.game_code
    }), 201


@games.route('/<string:game_code>/state', methods=['GET'])
def get_game_state(game_code):
    game = Game.query.filter_by(game_code=game_code.upper()).first_or_404()
    payload = game.to_dict()
    # A live coordinator holds the authoritative session; otherwise use the stored snapshot.
    server = current_app.session_registry.peek(game.game_code)
    if server is not None:
        payload['gameState'] = server.view(None)
        payload['num_connected_users'] = server.connection_count
    else:
        session = Session.restore(game.state) if game.state else Session()
        payload['gameState'] = session.view(None)
        payload['num_connected_users'] = 0
    return jsonify(payload)


@games.route('/active', methods=['GET'])
def get_active_games():
    active = Game.query.filter(Game.status != 'finished').order_by(Game.created_at.desc()).all()
    return jsonify([game.to_dict() for game in active])
