from scoreboard import db
from scoreboard.services.scoring.rules import WIN_SCORE_VALUES
import json

MATCH_STATUS_SCHEDULED = 1
MATCH_STATUS_ONGOING = 2
MATCH_STATUS_COMPLETED = 3
MATCH_STATUS_DISABLED = 4


class Match(db.Model):
    __tablename__ = 'match'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(128), nullable=False, default='')
    status = db.Column(db.Integer, nullable=False, default=MATCH_STATUS_SCHEDULED)
    win_score = db.Column(db.Integer, nullable=False, default=1)
    overtime_margin = db.Column(db.Integer, nullable=False, default=2)
    max_rounds = db.Column(db.Integer, nullable=False, default=3)
    scores = db.relationship('MatchScore', back_populates='match', lazy='dynamic')

    @property
    def target_score(self):
        return WIN_SCORE_VALUES.get(self.win_score, WIN_SCORE_VALUES[1])

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'status': self.status,
            'win_score': self.win_score,
            'target_score': self.target_score,
            'overtime_margin': self.overtime_margin,
            'max_rounds': self.max_rounds,
        }


class LogEntry(db.Model):
    """One row per point event; the primary key is the commit order."""
    __tablename__ = 'log_entry'
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, nullable=False, index=True)
    round = db.Column(db.Integer, nullable=False, index=True)
    team = db.Column(db.Integer, nullable=False)
    points = db.Column(db.Integer, nullable=False)
    timestamp = db.Column(db.String(40), nullable=False)


class MatchScore(db.Model):
    __tablename__ = 'match_score'
    __table_args__ = (
        db.UniqueConstraint('match_id', 'round', name='uq_match_score_match_round'),
    )
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False, index=True)
    round = db.Column(db.Integer, nullable=False)
    team1_score = db.Column(db.Integer, nullable=False, default=0)
    team2_score = db.Column(db.Integer, nullable=False, default=0)
    current_half = db.Column(db.Integer, nullable=False, default=1)
    note = db.Column(db.Text, nullable=False, default='')
    set_details = db.Column(db.Text, nullable=True)  # JSON-encoded list
    logs = db.Column(db.Text, nullable=True)  # JSON-encoded list of log entries
    match = db.relationship('Match', back_populates='scores')

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'round': self.round,
            'team1_score': self.team1_score,
            'team2_score': self.team2_score,
            'current_half': self.current_half,
            'note': self.note,
            'set_details': json.loads(self.set_details) if self.set_details else None,
            'logs': json.loads(self.logs) if self.logs else [],
        }
