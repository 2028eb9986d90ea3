from datetime import datetime, timedelta
import copy
import math
import os
import re

import pytz

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import or_
from sqlalchemy.orm import validates
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

APP_TIMEZONE = pytz.timezone(os.environ.get('APP_TIMEZONE', 'Africa/Nairobi'))

ROLES = ('admin', 'player')
TOURNAMENT_FORMATS = ('single_elimination', 'double_elimination')
TOURNAMENT_MODES = ('standard', 'realtime')
TOURNAMENT_STATUSES = ('registration', 'ongoing', 'paused', 'completed', 'cancelled')
TOURNAMENT_TRANSITIONS = {
    'registration': {'ongoing', 'cancelled'},
    'ongoing': {'paused', 'completed', 'cancelled'},
    'paused': {'ongoing', 'cancelled'},
    'completed': set(),
    'cancelled': set(),
}
REGISTRATION_STATUSES = ('registered', 'confirmed', 'cancelled')
ACTIVE_REGISTRATION_STATUSES = ('registered', 'confirmed')
MATCH_STATUSES = ('pending', 'ongoing', 'completed', 'disputed')
BRACKET_SIDES = ('winners', 'losers', 'grand_final')
ANNOUNCEMENT_TYPES = ('general', 'tournament', 'maintenance', 'urgent')
ANNOUNCEMENT_TARGETS = ('all', 'active', 'tournament', 'specific')
ANNOUNCEMENT_STATUSES = ('draft', 'scheduled', 'sent', 'failed')
MESSAGE_PRIORITIES = ('low', 'medium', 'high', 'urgent')
MESSAGE_STATUSES = ('unread', 'read', 'replied')

MIN_TOURNAMENT_SLOTS = 2
MAX_TOURNAMENT_SLOTS = 128
ACTIVE_PROFILE_WINDOW = timedelta(days=30)
LAST_SEEN_REFRESH = timedelta(minutes=5)
BYE = 'BYE'

SITE_NAME = 'GOALDEN'
DEFAULT_SITE_URL = 'https://goalden.vercel.app'
DEFAULT_POSTER_PATH = '/images/GOALDEN LOGO/GOALDEN_logo.png'


def current_time():
    """Naive UTC timestamp; every DateTime column is stored in UTC."""
    return datetime.now(pytz.utc).replace(tzinfo=None)


def to_local(value):
    if value is None:
        return None
    return pytz.utc.localize(value).astimezone(APP_TIMEZONE)


def from_local(value: str | None, fmt: str = '%Y-%m-%dT%H:%M'):
    """Parse a local wall-clock string from a form into naive UTC."""
    if not value:
        return None
    try:
        parsed = datetime.strptime(value.strip(), fmt)
    except ValueError:
        raise ValueError('Provide dates in the format YYYY-MM-DD HH:MM.')
    return APP_TIMEZONE.localize(parsed).astimezone(pytz.utc).replace(tzinfo=None)


def humanize(value: str | None) -> str:
    return (value or '').replace('_', ' ')


class Profile(db.Model):
    """Platform accounts: players and administrators."""

    __tablename__ = 'profiles'

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(120))
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='player')
    phone_number = db.Column(db.String(20))
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)
    last_seen_at = db.Column(db.DateTime)

    registrations = db.relationship('Registration', backref='player', lazy=True)
    notifications = db.relationship(
        'Notification',
        backref='user',
        lazy=True,
        cascade='all, delete-orphan',
        foreign_keys='Notification.user_id',
    )

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Profile {self.id} {self.email} role={self.role}>"

    @validates('role')
    def validate_role(self, key, value):
        if value not in ROLES:
            raise ValueError(f'Unknown role: {value}')
        return value

    @validates('email')
    def validate_email(self, key, value):
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not value or not re.match(email_pattern, value):
            raise ValueError('Valid email required')
        return value.strip().lower()

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'

    @property
    def display_name(self) -> str:
        return self.full_name or 'Unknown'

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def touch(self, now: datetime | None = None) -> bool:
        """Record activity; returns True when the timestamp moved."""
        now = now or current_time()
        if self.last_seen_at and now - self.last_seen_at < LAST_SEEN_REFRESH:
            return False
        self.last_seen_at = now
        return True

    def notify(
        self,
        message: str,
        category: str = 'info',
        kind: str = 'general',
        link_target: str = None,
        actor_id: int | None = None,
        commit: bool = False,
    ):
        """Create an in-app notification entry for this profile."""
        if actor_id is not None and actor_id == self.id:
            return None
        note = Notification(
            user_id=self.id,
            message=message,
            category=category,
            kind=kind,
            link_target=link_target,
            actor_id=actor_id,
        )
        db.session.add(note)
        if commit:
            db.session.commit()
        return note

    @classmethod
    def seen_since(cls, since: datetime):
        return cls.query.filter(cls.last_seen_at.isnot(None), cls.last_seen_at >= since)

    @classmethod
    def admins(cls):
        return cls.query.filter_by(role='admin').all()


class Notification(db.Model):
    """In-app notifications shown on the player and admin dashboards."""

    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    message = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(40), default='info')
    kind = db.Column(db.String(40), default='general')
    link_target = db.Column(db.String(255))
    is_read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=current_time)
    actor_id = db.Column(db.Integer, db.ForeignKey('profiles.id'))

    actor = db.relationship('Profile', foreign_keys=[actor_id])

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Notification {self.id} user={self.user_id} read={self.is_read}>"

    @classmethod
    def for_user(cls, user_id: int):
        return cls.query.filter_by(user_id=user_id).order_by(cls.created_at.desc(), cls.id.desc())

    @classmethod
    def unread_count(cls, user_id: int) -> int:
        return cls.query.filter_by(user_id=user_id, is_read=False).count()


class Tournament(db.Model):
    __tablename__ = 'tournaments'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    format = db.Column(db.String(30), nullable=False, default='single_elimination')
    mode = db.Column(db.String(20), nullable=False, default='standard')
    max_slots = db.Column(db.Integer, nullable=False, default=16)
    entry_fee = db.Column(db.Integer, nullable=False, default=0)
    prize_pool = db.Column(db.Integer, default=0)
    status = db.Column(db.String(20), nullable=False, default='registration')
    start_date = db.Column(db.DateTime)
    poster_url = db.Column(db.String(255))
    winner_id = db.Column(db.Integer, db.ForeignKey('profiles.id'))
    created_by = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)

    registrations = db.relationship(
        'Registration', backref='tournament', lazy=True, cascade='all, delete-orphan'
    )
    matches = db.relationship(
        'Match', backref='tournament', lazy=True, cascade='all, delete-orphan'
    )
    creator = db.relationship('Profile', foreign_keys=[created_by])
    winner = db.relationship('Profile', foreign_keys=[winner_id])

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Tournament {self.id} {self.name} status={self.status}>"

    @validates('format')
    def validate_format(self, key, value):
        if value not in TOURNAMENT_FORMATS:
            raise ValueError('Please choose a valid tournament format.')
        return value

    @validates('mode')
    def validate_mode(self, key, value):
        if value not in TOURNAMENT_MODES:
            raise ValueError('Please choose a valid tournament mode.')
        return value

    @validates('status')
    def validate_status(self, key, value):
        if value not in TOURNAMENT_STATUSES:
            raise ValueError(f'Unknown tournament status: {value}')
        return value

    @validates('max_slots')
    def validate_max_slots(self, key, value):
        if value is None or not MIN_TOURNAMENT_SLOTS <= int(value) <= MAX_TOURNAMENT_SLOTS:
            raise ValueError(
                f'Slots must be between {MIN_TOURNAMENT_SLOTS} and {MAX_TOURNAMENT_SLOTS}.'
            )
        return int(value)

    @validates('entry_fee', 'prize_pool')
    def validate_amount(self, key, value):
        if value is None:
            return 0
        if int(value) < 0:
            raise ValueError('Amounts cannot be negative.')
        return int(value)

    @property
    def status_label(self) -> str:
        return humanize(self.status)

    @property
    def format_label(self) -> str:
        return humanize(self.format)

    @property
    def is_double_elimination(self) -> bool:
        return self.format == 'double_elimination'

    @property
    def active_registrations(self):
        return [r for r in self.registrations if r.status in ACTIVE_REGISTRATION_STATUSES]

    @property
    def participants(self):
        confirmed = [r for r in self.registrations if r.status == 'confirmed']
        return sorted(confirmed, key=lambda r: (r.seed or 0, r.registered_at or current_time(), r.id))

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    @property
    def is_full(self) -> bool:
        return len(self.active_registrations) >= self.max_slots

    def registration_for(self, user_id):
        if not user_id:
            return None
        return Registration.query.filter_by(tournament_id=self.id, user_id=user_id).first()

    def is_registered(self, user_id) -> bool:
        registration = self.registration_for(user_id)
        return bool(registration and registration.status in ACTIVE_REGISTRATION_STATUSES)

    def ordered_matches(self):
        side_order = {side: idx for idx, side in enumerate(BRACKET_SIDES)}
        return sorted(
            self.matches,
            key=lambda m: (m.round or 0, side_order.get(m.bracket_side, 0), m.position or 0),
        )

    def transition(self, new_status: str) -> None:
        allowed = TOURNAMENT_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise ValueError(
                f'Cannot move tournament from {humanize(self.status)} to {humanize(new_status)}.'
            )
        self.status = new_status

    def register(self, player: 'Profile', settings: dict | None = None) -> 'Registration':
        """Enroll a player, enforcing capacity and platform switches."""
        platform = (settings or {}).get('platform', {})
        if not platform.get('tournaments_enabled', True) or not platform.get('registration_enabled', True):
            raise ValueError('Registration is currently disabled.')
        if self.status != 'registration':
            raise ValueError('Registration for this tournament is closed.')

        existing = self.registration_for(player.id)
        if existing and existing.status in ACTIVE_REGISTRATION_STATUSES:
            raise ValueError('You are already registered for this tournament.')
        if self.is_full:
            raise ValueError('This tournament is full.')

        registration = existing or Registration(tournament=self, player=player)
        registration.status = 'registered'
        registration.registered_at = current_time()
        registration.confirmed_at = None
        if not existing:
            db.session.add(registration)
        if not self.entry_fee:
            registration.confirm()
        return registration

    def page_metadata(self, site_url: str = DEFAULT_SITE_URL, admin: bool = False,
                      default_poster: str = DEFAULT_POSTER_PATH) -> dict:
        path = f'/admin/tournaments/{self.id}' if admin else f'/dashboard/tournaments/{self.id}'
        poster = self.poster_url or default_poster
        poster_url = poster if poster.startswith('http') else f'{site_url}{poster}'
        fallback = (
            f'Join {self.name} on {SITE_NAME}. Entry fee: KES {self.entry_fee}. '
            f'Prize pool: KES {self.prize_pool or 0}'
        )
        title = f'{self.name} - {SITE_NAME} Tournament'
        return {
            'title': f'{title} (Admin)' if admin else title,
            'description': self.description or fallback,
            'url': f'{site_url}{path}',
            'og_title': title,
            'image': poster_url,
            'image_alt': self.name,
            'site_name': SITE_NAME,
            'twitter_description': self.description or f'Join {self.name} on {SITE_NAME}',
        }

    def share_payload(self, site_url: str = DEFAULT_SITE_URL, admin: bool = False) -> dict:
        path = f'/admin/tournaments/{self.id}' if admin else f'/dashboard/tournaments/{self.id}'
        name = self.name or 'Tournament'
        return {
            'url': f'{site_url}{path}',
            'title': f'Join {name} on {SITE_NAME}',
            'text': f'Check out this tournament: {name}',
        }

    @staticmethod
    def missing_metadata() -> dict:
        return {
            'title': 'Tournament Not Found',
            'description': 'The tournament you are looking for does not exist.',
        }


class Registration(db.Model):
    """A player's enrollment in a tournament."""

    __tablename__ = 'registrations'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='registered')
    seed = db.Column(db.Integer)
    registered_at = db.Column(db.DateTime, default=current_time)
    confirmed_at = db.Column(db.DateTime)

    __table_args__ = (db.UniqueConstraint('tournament_id', 'user_id', name='unique_tournament_player'),)

    @validates('status')
    def validate_status(self, key, value):
        if value not in REGISTRATION_STATUSES:
            raise ValueError(f'Unknown registration status: {value}')
        return value

    def confirm(self):
        if self.status == 'cancelled':
            raise ValueError('Cancelled registrations cannot be confirmed.')
        self.status = 'confirmed'
        self.confirmed_at = current_time()

    def cancel(self):
        tournament = self.tournament or db.session.get(Tournament, self.tournament_id)
        if tournament and tournament.status != 'registration':
            raise ValueError('Registrations can only be withdrawn before the tournament starts.')
        self.status = 'cancelled'
        self.seed = None


class Match(db.Model):
    __tablename__ = 'matches'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False)
    round = db.Column(db.Integer, nullable=False, default=1)
    bracket_side = db.Column(db.String(20), nullable=False, default='winners')
    slot = db.Column(db.String(20), nullable=False)
    position = db.Column(db.Integer, default=1)
    stage = db.Column(db.String(50))
    player1_id = db.Column(db.Integer, db.ForeignKey('profiles.id'))
    player2_id = db.Column(db.Integer, db.ForeignKey('profiles.id'))
    player1_placeholder = db.Column(db.String(100))
    player2_placeholder = db.Column(db.String(100))
    player1_score = db.Column(db.Integer)
    player2_score = db.Column(db.Integer)
    winner_id = db.Column(db.Integer, db.ForeignKey('profiles.id'))
    status = db.Column(db.String(20), nullable=False, default='pending')
    winner_to_slot = db.Column(db.String(20))
    winner_to_position = db.Column(db.Integer)
    loser_to_slot = db.Column(db.String(20))
    loser_to_position = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=current_time)
    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)

    __table_args__ = (db.UniqueConstraint('tournament_id', 'slot', name='unique_tournament_slot'),)

    player1 = db.relationship('Profile', foreign_keys=[player1_id])
    player2 = db.relationship('Profile', foreign_keys=[player2_id])
    winner = db.relationship('Profile', foreign_keys=[winner_id])
    submissions = db.relationship(
        'MatchSubmission', backref='match', lazy=True, cascade='all, delete-orphan'
    )
    disputes = db.relationship('Dispute', backref='match', lazy=True, cascade='all, delete-orphan')

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Match {self.id} {self.slot} status={self.status}>"

    @validates('status')
    def validate_status(self, key, value):
        if value not in MATCH_STATUSES:
            raise ValueError(f'Unknown match status: {value}')
        return value

    @property
    def has_both_players(self) -> bool:
        return bool(self.player1_id and self.player2_id)

    @property
    def is_ready(self) -> bool:
        return self.status in ('pending', 'ongoing') and self.has_both_players

    @property
    def loser_id(self):
        if not self.winner_id:
            return None
        return self.player2_id if self.winner_id == self.player1_id else self.player1_id

    def involves(self, user_id) -> bool:
        return bool(user_id) and user_id in (self.player1_id, self.player2_id)

    def side_of(self, user_id):
        if not user_id:
            return None
        if self.player1_id == user_id:
            return 1
        if self.player2_id == user_id:
            return 2
        return None

    def is_bye(self, position: int) -> bool:
        player_id = self.player1_id if position == 1 else self.player2_id
        placeholder = self.player1_placeholder if position == 1 else self.player2_placeholder
        return player_id is None and placeholder == BYE

    def open_dispute(self):
        return next((d for d in self.disputes if d.status == 'open'), None)

    def submission_by(self, user_id):
        return next((s for s in self.submissions if s.submitted_by == user_id), None)

    @property
    def versus_display(self):
        return f"{self._display_name(1)} vs {self._display_name(2)}"

    @property
    def score_display(self) -> str:
        if self.status != 'completed':
            return 'Match not completed'
        if self.player1_score is None or self.player2_score is None:
            return 'Advanced (bye)'
        return f"{self._display_name(1)}: {self.player1_score} | {self._display_name(2)}: {self.player2_score}"

    def _display_name(self, position: int) -> str:
        player = self.player1 if position == 1 else self.player2
        placeholder = self.player1_placeholder if position == 1 else self.player2_placeholder
        if player:
            return player.display_name
        if placeholder:
            return placeholder
        return 'TBD'


class MatchSubmission(db.Model):
    """Score claimed by one participant; both must agree to close a match."""

    __tablename__ = 'match_submissions'

    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('matches.id'), nullable=False)
    submitted_by = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    player1_score = db.Column(db.Integer, nullable=False)
    player2_score = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)

    __table_args__ = (db.UniqueConstraint('match_id', 'submitted_by', name='unique_match_submitter'),)

    submitter = db.relationship('Profile', foreign_keys=[submitted_by])

    def agrees_with(self, other: 'MatchSubmission') -> bool:
        return (self.player1_score, self.player2_score) == (other.player1_score, other.player2_score)

    def as_claim(self) -> dict:
        return {
            'submitted_by': self.submitted_by,
            'player1_score': self.player1_score,
            'player2_score': self.player2_score,
        }


class Dispute(db.Model):
    """Conflicting score submissions awaiting an admin decision."""

    __tablename__ = 'disputes'

    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('matches.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='open')  # open, resolved
    claims = db.Column(db.JSON, default=list)
    resolution_note = db.Column(db.Text)
    resolved_by = db.Column(db.Integer, db.ForeignKey('profiles.id'))
    created_at = db.Column(db.DateTime, default=current_time)
    resolved_at = db.Column(db.DateTime)

    resolver = db.relationship('Profile', foreign_keys=[resolved_by])

    def resolve(self, admin: 'Profile', note: str | None = None):
        if self.status != 'open':
            raise ValueError('This dispute has already been resolved.')
        self.status = 'resolved'
        self.resolution_note = note
        self.resolved_by = admin.id
        self.resolved_at = current_time()

    @classmethod
    def open_disputes(cls):
        return cls.query.filter_by(status='open').order_by(cls.created_at.asc())


class Announcement(db.Model):
    __tablename__ = 'announcements'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(20), nullable=False, default='general')
    target = db.Column(db.String(20), nullable=False, default='all')
    target_tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'))
    status = db.Column(db.String(20), nullable=False, default='draft')
    scheduled_at = db.Column(db.DateTime)
    sent_at = db.Column(db.DateTime)
    recipients = db.Column(db.Integer, default=0)
    opened = db.Column(db.Integer, default=0)
    clicked = db.Column(db.Integer, default=0)
    created_by = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=current_time)

    author = db.relationship('Profile', foreign_keys=[created_by])
    target_tournament = db.relationship('Tournament', foreign_keys=[target_tournament_id])

    @validates('type')
    def validate_type(self, key, value):
        if value not in ANNOUNCEMENT_TYPES:
            raise ValueError('Choose a valid announcement type.')
        return value

    @validates('target')
    def validate_target(self, key, value):
        if value not in ANNOUNCEMENT_TARGETS:
            raise ValueError('Choose a valid audience.')
        return value

    @validates('status')
    def validate_status(self, key, value):
        if value not in ANNOUNCEMENT_STATUSES:
            raise ValueError(f'Unknown announcement status: {value}')
        return value

    @property
    def open_rate(self) -> int:
        return percent_of(self.opened or 0, self.recipients or 0)

    @property
    def click_rate(self) -> int:
        return percent_of(self.clicked or 0, self.recipients or 0)

    @staticmethod
    def count_recipients(target: str, tournament_id: int | None = None, now: datetime | None = None) -> int:
        now = now or current_time()
        if target == 'all':
            return Profile.query.count()
        if target == 'active':
            return Profile.seen_since(now - ACTIVE_PROFILE_WINDOW).count()
        if target == 'tournament':
            query = Registration.query.filter(Registration.status.in_(ACTIVE_REGISTRATION_STATUSES))
            if tournament_id:
                query = query.filter(Registration.tournament_id == tournament_id)
            return query.count()
        return 0

    @classmethod
    def compose(
        cls,
        author: 'Profile',
        title: str,
        content: str,
        type: str = 'general',
        target: str = 'all',
        scheduled_at: datetime | None = None,
        tournament_id: int | None = None,
        draft: bool = False,
        now: datetime | None = None,
    ) -> 'Announcement':
        """Build an announcement, deciding its delivery status up front."""
        now = now or current_time()
        title = (title or '').strip()
        content = (content or '').strip()
        if not title or not content:
            raise ValueError('Title and content are required.')
        if scheduled_at is not None and scheduled_at <= now:
            raise ValueError('Scheduled time must be in the future.')
        if target == 'tournament' and tournament_id and not db.session.get(Tournament, tournament_id):
            raise ValueError('Target tournament not found.')

        if scheduled_at is not None:
            status, sent_at = 'scheduled', None
        elif draft:
            status, sent_at = 'draft', None
        else:
            status, sent_at = 'sent', now

        announcement = cls(
            title=title,
            content=content,
            type=type,
            target=target,
            target_tournament_id=tournament_id if target == 'tournament' else None,
            status=status,
            scheduled_at=scheduled_at,
            sent_at=sent_at,
            recipients=cls.count_recipients(target, tournament_id, now=now),
            opened=0,
            clicked=0,
            created_by=author.id,
        )
        db.session.add(announcement)
        return announcement

    def record_engagement(self, opened: int = 0, clicked: int = 0) -> None:
        self.opened = (self.opened or 0) + opened
        self.clicked = (self.clicked or 0) + clicked

    def set_stats(self, opened: int | None = None, clicked: int | None = None) -> None:
        for field, value in (('opened', opened), ('clicked', clicked)):
            if value is None:
                continue
            if value < 0:
                raise ValueError('Engagement counters cannot be negative.')
            setattr(self, field, value)

    def send(self, now: datetime | None = None) -> None:
        if self.status == 'sent':
            return
        now = now or current_time()
        self.status = 'sent'
        self.sent_at = now
        self.recipients = self.count_recipients(self.target, self.target_tournament_id, now=now)

    @classmethod
    def dispatch_due(cls, now: datetime | None = None) -> list:
        now = now or current_time()
        due = cls.query.filter(
            cls.status == 'scheduled',
            cls.scheduled_at.isnot(None),
            cls.scheduled_at <= now,
        ).all()
        for announcement in due:
            announcement.send(now=now)
        return due

    @classmethod
    def published(cls):
        return cls.query.filter_by(status='sent').order_by(cls.sent_at.desc(), cls.id.desc())


class AdminMessage(db.Model):
    """Support messages sent by players to the admin team."""

    __tablename__ = 'admin_messages'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    subject = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    priority = db.Column(db.String(20), nullable=False, default='medium')
    status = db.Column(db.String(20), nullable=False, default='unread')
    reply = db.Column(db.Text)
    replied_at = db.Column(db.DateTime)
    replied_by = db.Column(db.Integer, db.ForeignKey('profiles.id'))
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)

    sender = db.relationship('Profile', foreign_keys=[user_id])
    responder = db.relationship('Profile', foreign_keys=[replied_by])

    @validates('priority')
    def validate_priority(self, key, value):
        if value not in MESSAGE_PRIORITIES:
            raise ValueError('Choose a valid priority.')
        return value

    @validates('status')
    def validate_status(self, key, value):
        if value not in MESSAGE_STATUSES:
            raise ValueError(f'Unknown message status: {value}')
        return value

    @property
    def player_name(self) -> str:
        return self.sender.full_name if self.sender and self.sender.full_name else 'Unknown'

    @property
    def player_email(self) -> str:
        return self.sender.email if self.sender else ''

    def summary(self) -> dict:
        return {
            'id': self.id,
            'player_name': self.player_name,
            'player_email': self.player_email,
            'subject': self.subject,
            'content': self.content,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'priority': self.priority,
            'user_id': self.user_id,
        }

    @classmethod
    def submit(cls, sender: 'Profile', subject: str, content: str, priority: str | None = None):
        subject = (subject or '').strip()
        content = (content or '').strip()
        if not subject or not content:
            raise ValueError('Subject and message are required.')
        message = cls(
            user_id=sender.id,
            subject=subject,
            content=content,
            priority=priority or 'medium',
            status='unread',
        )
        db.session.add(message)
        return message

    def mark_read(self) -> bool:
        if self.status != 'unread':
            return False
        self.status = 'read'
        return True

    def reply_with(self, admin: 'Profile', text: str) -> None:
        text = (text or '').strip()
        if not text:
            raise ValueError('Reply cannot be empty.')
        self.reply = text
        self.status = 'replied'
        self.replied_at = current_time()
        self.replied_by = admin.id
        if self.sender:
            self.sender.notify(
                f'An admin replied to "{self.subject}".',
                category='info',
                kind='message_reply',
                link_target='/messages',
                actor_id=admin.id,
            )


DEFAULT_SETTINGS = {
    'platform': {
        'name': SITE_NAME,
        'version': '1.2.0',
        'maintenance_mode': False,
        'registration_enabled': True,
        'tournaments_enabled': True,
    },
    'security': {
        'password_min_length': 8,
        'session_timeout': 24,
        'two_factor_enabled': False,
        'ip_whitelist': [],
    },
    'notifications': {
        'email_enabled': True,
        'sms_enabled': False,
        'push_enabled': True,
        'whatsapp_enabled': False,
    },
    'payments': {
        'mpesa_enabled': True,
        'stripe_enabled': False,
        'minimum_amount': 50,
        'maximum_amount': 10000,
    },
}
SETTINGS_SECTIONS = tuple(DEFAULT_SETTINGS)


def merge_settings(stored: dict | None) -> dict:
    merged = copy.deepcopy(DEFAULT_SETTINGS)
    for section in SETTINGS_SECTIONS:
        merged[section].update((stored or {}).get(section) or {})
    return merged


def _matches_default_type(default, value) -> bool:
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, int):
        return isinstance(value, int) and not isinstance(value, bool)
    if isinstance(default, list):
        return isinstance(value, list) and all(isinstance(item, str) for item in value)
    return isinstance(value, type(default))


def validate_settings(settings: dict) -> list[str]:
    """Validate a settings payload without touching the database."""
    errors: list[str] = []
    if not isinstance(settings, dict):
        return ['Settings must be an object']

    for section, values in settings.items():
        if section not in DEFAULT_SETTINGS:
            errors.append(f'Unknown settings section: {section}')
            continue
        if not isinstance(values, dict):
            errors.append(f'Section {section} must be an object')
            continue
        for key, value in values.items():
            if key not in DEFAULT_SETTINGS[section]:
                errors.append(f'Unknown setting: {section}.{key}')
            elif not _matches_default_type(DEFAULT_SETTINGS[section][key], value):
                errors.append(f'Invalid value for {section}.{key}')

    if not errors:
        merged = merge_settings(settings)
        security = merged['security']
        payments = merged['payments']
        if security['password_min_length'] < 6:
            errors.append('Password minimum length must be at least 6')
        if security['session_timeout'] <= 0:
            errors.append('Session timeout must be positive')
        if payments['minimum_amount'] < 0 or payments['minimum_amount'] > payments['maximum_amount']:
            errors.append('Minimum payment amount must not exceed the maximum')
    return errors


class SystemSettings(db.Model):
    """Single-row platform configuration edited from the admin panel."""

    __tablename__ = 'system_settings'

    id = db.Column(db.Integer, primary_key=True)
    platform = db.Column(db.JSON, default=dict)
    security = db.Column(db.JSON, default=dict)
    notifications = db.Column(db.JSON, default=dict)
    payments = db.Column(db.JSON, default=dict)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)
    updated_by = db.Column(db.Integer, db.ForeignKey('profiles.id'))

    SINGLETON_ID = 1

    @classmethod
    def load(cls) -> dict:
        row = db.session.get(cls, cls.SINGLETON_ID)
        if not row:
            return merge_settings(None)
        return merge_settings({section: getattr(row, section) for section in SETTINGS_SECTIONS})

    @classmethod
    def save(cls, settings: dict, actor: 'Profile | None' = None) -> dict:
        errors = validate_settings(settings)
        if errors:
            raise ValueError('; '.join(errors))

        row = db.session.get(cls, cls.SINGLETON_ID)
        if not row:
            row = cls(id=cls.SINGLETON_ID)
            db.session.add(row)

        current = merge_settings({section: getattr(row, section) for section in SETTINGS_SECTIONS})
        merged = merge_settings({
            section: {**current[section], **(settings.get(section) or {})}
            for section in SETTINGS_SECTIONS
        })
        for section in SETTINGS_SECTIONS:
            setattr(row, section, merged[section])
        row.updated_at = current_time()
        row.updated_by = actor.id if actor else None
        db.session.flush()
        return merged

    @classmethod
    def toggle_maintenance(cls, actor: 'Profile | None' = None) -> bool:
        settings = cls.load()
        enabled = not settings['platform']['maintenance_mode']
        cls.save({'platform': {'maintenance_mode': enabled}}, actor=actor)
        return enabled


def round_half_up(value: float, digits: int = 0):
    factor = 10 ** digits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if digits == 0 else rounded


def percent_of(part, whole) -> int:
    """Whole-number percentage rounded half up; 0 when there is no base."""
    if not whole:
        return 0
    return math.floor(part / whole * 100 + 0.5)


def init_default_data():
    """Seed the bootstrap administrator account."""
    email = os.environ.get('ADMIN_EMAIL', 'admin@goalden.local')
    admin = Profile.query.filter_by(email=email).first()
    if not admin:
        admin = Profile(
            full_name='GOALDEN Admin',
            email=email,
            role='admin',
        )
        admin.set_password(os.environ.get('ADMIN_PASSWORD', 'admin123'))
        db.session.add(admin)
    elif admin.role != 'admin':
        admin.role = 'admin'

    db.session.commit()
    return admin


def pending_registrations():
    return (
        Registration.query.join(Tournament, Registration.tournament_id == Tournament.id)
        .filter(Registration.status == 'registered', Tournament.status == 'registration')
        .order_by(Registration.registered_at.asc())
    )


def matches_for_player(user_id: int):
    return Match.query.filter(or_(Match.player1_id == user_id, Match.player2_id == user_id))
