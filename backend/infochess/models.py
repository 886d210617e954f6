from infochess import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import json
import string
import random


def _utcnow():
    return datetime.now(timezone.utc)


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


def generate_game_code(length=4):
    """Generate a unique, short game code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not Game.query.filter_by(game_code=code).first():
            return code


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    game_code = db.Column(db.String(4), unique=True, index=True)
    status = db.Column(db.String(32), default='waiting')  # waiting, in_progress, finished
    game_state = db.Column(db.Text, nullable=True)  # JSON-encoded session snapshot
    winner = db.Column(db.String(16), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    role_slots = db.relationship('RoleSlot', back_populates='game', cascade='all, delete-orphan')

    def __init__(self, **kwargs):
        super(Game, self).__init__(**kwargs)
        if not self.game_code:
            self.game_code = generate_game_code()

    @property
    def roles(self):
        return {slot.role: slot.identity for slot in self.role_slots}

    @property
    def state(self):
        return json.loads(self.game_state) if self.game_state else None

    def to_dict(self):
        return {
            'id': self.id,
            'game_code': self.game_code,
            'status': self.status,
            'winner': self.winner,
            'roles': self.roles,
        }


class RoleSlot(db.Model):
    """Which user identity holds a seat (role slug) in a game."""
    __tablename__ = 'role_slot'
    __table_args__ = (db.UniqueConstraint('game_id', 'role', name='uq_role_slot_game_role'),)
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False)
    role = db.Column(db.String(16), nullable=False)
    identity = db.Column(db.String(64), nullable=False)
    game = db.relationship('Game', back_populates='role_slots')
