from flask import Flask, render_template, request, redirect, g
from datetime import timedelta
import os
import time

import click

from models import (
    db,
    Announcement,
    DEFAULT_POSTER_PATH,
    DEFAULT_SITE_URL,
    Notification,
    Profile,
    SystemSettings,
    Tournament,
    init_default_data,
    to_local,
)
from blueprints import auth_bp, admin_bp, communication_bp, system_bp, player_bp
from blueprints.auth import load_current_user, landing_url

app = Flask(__name__)

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

# Configuration
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'goalden-dev')
app.config['SITE_URL'] = os.environ.get('SITE_URL', DEFAULT_SITE_URL)
app.config['DEFAULT_POSTER_PATH'] = os.environ.get('DEFAULT_POSTER_PATH', DEFAULT_POSTER_PATH)
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(hours=24)
app.config['STARTED_AT'] = time.time()

# Database configuration - supports both local SQLite and remote PostgreSQL
DATABASE_URL = os.environ.get('DATABASE_URL')

if DATABASE_URL:
    # Heroku PostgreSQL URL fix (postgres:// → postgresql://)
    if DATABASE_URL.startswith('postgres://'):
        DATABASE_URL = DATABASE_URL.replace('postgres://', 'postgresql://', 1)
    app.config['SQLALCHEMY_DATABASE_URI'] = DATABASE_URL
else:
    # Fallback to SQLite for local development
    default_sqlite_dir = os.path.join(BASE_DIR, 'instance')
    os.makedirs(default_sqlite_dir, exist_ok=True)
    sqlite_path = os.environ.get('SQLITE_PATH', os.path.join(default_sqlite_dir, 'goalden.db'))
    app.config['SQLALCHEMY_DATABASE_URI'] = f'sqlite:///{sqlite_path}'

app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {
    'pool_pre_ping': True,
    'pool_recycle': 300,
}

db.init_app(app)

with app.app_context():
    db.create_all()

    # Seed the bootstrap admin when no administrator exists yet
    if not Profile.query.filter_by(role='admin').first():
        init_default_data()

    app.logger.info('Database initialized at %s', app.config['SQLALCHEMY_DATABASE_URI'].split('@')[-1])

# Register blueprints
app.register_blueprint(auth_bp)
app.register_blueprint(admin_bp)
app.register_blueprint(communication_bp)
app.register_blueprint(system_bp)
app.register_blueprint(player_bp)

# Reachable while the platform is in maintenance mode
MAINTENANCE_EXEMPT_ENDPOINTS = {'auth.login', 'auth.logout', 'static'}


@app.before_request
def before_request():
    """Load current user and gate non-admin traffic during maintenance"""
    load_current_user()

    if request.endpoint in MAINTENANCE_EXEMPT_ENDPOINTS:
        return None
    if g.current_user and g.current_user.is_admin:
        return None

    settings = SystemSettings.load()
    if settings['platform']['maintenance_mode']:
        return render_template('maintenance.html', platform=settings['platform']), 503
    return None


@app.context_processor
def inject_navigation():
    unread = 0
    if getattr(g, 'current_user', None):
        unread = Notification.unread_count(g.current_user.id)
    return {'unread_notification_count': unread, 'site_name': 'GOALDEN'}


@app.template_filter('localtime')
def localtime_filter(value, fmt='%b %d, %Y %H:%M'):
    local = to_local(value)
    return local.strftime(fmt) if local else ''


@app.template_filter('kes')
def kes_filter(amount):
    return f'KES {amount or 0:,}'


@app.errorhandler(500)
def internal_error(error):
    db.session.rollback()
    return render_template('error.html', message='Something went wrong. Please try again.'), 500


@app.route('/')
def index():
    """Home page with open tournaments"""
    if g.current_user:
        return redirect(landing_url(g.current_user))

    tournaments = (
        Tournament.query.filter(Tournament.status.in_(('registration', 'ongoing')))
        .order_by(Tournament.created_at.desc())
        .all()
    )
    return render_template('index.html', tournaments=tournaments)


@app.cli.command('init-db')
def init_db_command():
    """Create tables and seed the bootstrap admin."""
    db.create_all()
    admin = init_default_data()
    click.echo(f'Database ready. Admin account: {admin.email}')


@app.cli.command('dispatch-announcements')
def dispatch_announcements_command():
    """Send every scheduled announcement that is due."""
    sent = Announcement.dispatch_due()
    db.session.commit()
    for announcement in sent:
        app.logger.info('Dispatched announcement %s to %s recipients', announcement.id, announcement.recipients)
    click.echo(f'Dispatched {len(sent)} announcement(s).')


@app.cli.command('create-profile')
@click.option('--email', required=True)
@click.option('--password', required=True)
@click.option('--name', 'full_name', default=None)
@click.option('--admin', 'is_admin', is_flag=True, default=False)
def create_profile_command(email, password, full_name, is_admin):
    """Create a player (or admin) account."""
    if Profile.query.filter_by(email=email.strip().lower()).first():
        raise click.ClickException('Email already registered')
    try:
        profile = Profile(email=email, full_name=full_name, role='admin' if is_admin else 'player')
    except ValueError as exc:
        raise click.ClickException(str(exc))
    profile.set_password(password)
    db.session.add(profile)
    db.session.commit()
    click.echo(f'Created {profile.role} {profile.email} (id {profile.id})')


if __name__ == "__main__":
    app.run(debug=True, port=5000)
