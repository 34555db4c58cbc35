from scoreboard import db
from scoreboard.services.timing.scoring import get_policy, player_result, rank_session_results
from scoreboard.services.timing.sync import SyncRecord, next_logical_timestamp
from datetime import datetime, timezone
import json
import string
import random


def generate_room_code(length=6):
    """Generate a unique, short room code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not RaceSession.query.filter_by(room_code=code).first():
            return code


class RaceSession(db.Model):
    __tablename__ = 'race_session'
    id = db.Column(db.Integer, primary_key=True)
    room_code = db.Column(db.String(6), unique=True, index=True, nullable=False)
    status = db.Column(db.String(16), default='lobby', nullable=False) # lobby, recording, closed
    scoring_policy = db.Column(db.String(16), default='countdown', nullable=False)
    duration_ms = db.Column(db.Integer, nullable=True) # None: open-ended (elapsed policy only)
    start_time = db.Column(db.BigInteger, nullable=True) # epoch ms
    bonus_scores = db.Column(db.Text, nullable=True) # JSON list, one per field
    published = db.Column(db.Boolean, default=False, nullable=False)
    last_updated = db.Column(db.BigInteger, default=0, nullable=False) # logical epoch ms
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    players = db.relationship('Player', back_populates='session', order_by='Player.field_number',
                              cascade='all, delete-orphan')
    timer = db.relationship('TimerSync', back_populates='session', uselist=False,
                            cascade='all, delete-orphan')

    def __init__(self, **kwargs):
        super(RaceSession, self).__init__(**kwargs)
        if not self.room_code:
            self.room_code = generate_room_code()

    @property
    def policy(self):
        return get_policy(self.scoring_policy)

    def get_bonus_scores(self):
        try:
            return [int(b) for b in json.loads(self.bonus_scores or '[]')]
        except (TypeError, ValueError):
            return []

    def set_bonus_scores(self, values):
        self.bonus_scores = json.dumps([int(v) for v in values])

    def touch(self, now):
        """Bump lastUpdated strictly forward so pollers see every change."""
        self.last_updated = next_logical_timestamp(now, self.last_updated or None)
        self.updated_at = datetime.now(timezone.utc)

    def results(self):
        rows = [p.to_result() for p in self.players if p.bruto_score is not None]
        return rank_session_results(rows, self.policy)

    def to_dict(self):
        return {
            'roomCode': self.room_code,
            'status': self.status,
            'scoringPolicy': self.scoring_policy,
            'durationMs': self.duration_ms,
            'isRecording': self.status == 'recording',
            'recordingStartTime': self.start_time,
            'published': bool(self.published),
            'bonusScores': self.get_bonus_scores(),
            'players': [p.to_dict() for p in self.players],
            'sessionResults': self.results(),
            'lastUpdated': self.last_updated,
        }

    def to_record(self):
        return {
            'id': self.id,
            'room_code': self.room_code,
            'data': self.to_dict(),
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'field_number', name='uq_player_session_field'),
    )
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('race_session.id'), nullable=False)
    player_name = db.Column(db.String(64), nullable=False)
    field_number = db.Column(db.Integer, nullable=False)
    checkin_time = db.Column(db.BigInteger, nullable=False) # epoch ms
    bonus_score = db.Column(db.Integer, default=0, nullable=False) # seconds
    bruto_score = db.Column(db.Integer, nullable=True)
    netto_score = db.Column(db.Integer, nullable=True)
    finished_at = db.Column(db.BigInteger, nullable=True)
    auto_stopped = db.Column(db.Boolean, default=False, nullable=False)
    session = db.relationship('RaceSession', back_populates='players')

    @property
    def result(self):
        return player_result(self.bruto_score, self.netto_score)

    def to_result(self):
        return {
            'name': self.player_name,
            'fieldNumber': self.field_number,
            'brutoScore': self.bruto_score,
            'bonusScore': self.bonus_score,
            'nettoScore': self.netto_score,
            'checkinTime': self.checkin_time,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'player_name': self.player_name,
            'field_number': self.field_number,
            'checkin_time': self.checkin_time,
            'bonus_score': self.bonus_score,
            'bruto_score': self.bruto_score,
            'netto_score': self.netto_score,
            'status': self.result.status,
            'auto_stopped': bool(self.auto_stopped),
        }


class TimerSync(db.Model):
    __tablename__ = 'timer_sync'
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('race_session.id'), unique=True, nullable=False)
    timer_state = db.Column(db.String(16), default='stopped', nullable=False) # running, stopped
    start_time = db.Column(db.BigInteger, nullable=True)
    updated_at = db.Column(db.BigInteger, default=0, nullable=False) # logical epoch ms
    session = db.relationship('RaceSession', back_populates='timer')

    def to_record(self):
        return SyncRecord(timer_state=self.timer_state, start_time=self.start_time, updated_at=self.updated_at)

    def apply(self, record):
        self.timer_state = record.timer_state
        self.start_time = record.start_time
        self.updated_at = record.updated_at

    def to_dict(self):
        return dict(self.to_record().to_dict(), room_code=self.session.room_code if self.session else None)
