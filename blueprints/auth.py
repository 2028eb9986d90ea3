from flask import Blueprint, render_template, request, redirect, url_for, session, flash, g, jsonify, current_app
from functools import wraps
from datetime import datetime, timedelta

from models import db, Profile, SystemSettings, current_time

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def apply_session_timeout() -> timedelta:
    """Keep the session lifetime in step with security.session_timeout."""
    settings = SystemSettings.load()
    lifetime = timedelta(hours=settings['security']['session_timeout'])
    current_app.permanent_session_lifetime = lifetime
    return lifetime


# Helper function - load current user
def load_current_user():
    """Load the profile into g.current_user and record activity."""
    g.current_user = None
    lifetime = apply_session_timeout()
    user_id = session.get('user_id')
    if not user_id:
        return
    logged_in_at = session.get('logged_in_at')
    if logged_in_at and current_time() - datetime.fromisoformat(logged_in_at) > lifetime:
        current_app.logger.info('Session for profile %s expired', user_id)
        session.clear()
        return
    profile = db.session.get(Profile, user_id)
    if profile is None:
        session.clear()
        return
    g.current_user = profile
    if profile.touch():
        db.session.commit()


def unauthorized_json():
    return jsonify({'data': None, 'error': 'Unauthorized'}), 403


# Decorators for authentication
def login_required(f):
    """Require any logged-in user"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not g.current_user:
            flash('Please log in to access this page.', 'error')
            return redirect(url_for('auth.login'))
        return f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    """Require admin role"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not g.current_user:
            flash('Please log in to access this page.', 'error')
            return redirect(url_for('auth.login'))

        if not g.current_user.is_admin:
            current_app.logger.warning(
                'Profile %s denied admin access to %s', g.current_user.id, request.path
            )
            flash('Unauthorized', 'error')
            return redirect(url_for('index'))
        return f(*args, **kwargs)
    return decorated_function


def require_admin_api(f):
    """Admin-only JSON endpoints answer 403 instead of redirecting."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not g.current_user or not g.current_user.is_admin:
            return unauthorized_json()
        return f(*args, **kwargs)
    return decorated_function


def landing_url(profile: Profile) -> str:
    if profile.is_admin:
        return url_for('admin.dashboard')
    return url_for('player.dashboard')


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    """Email and password login for players and admins"""
    if request.method == 'POST':
        email = request.form.get('email', '').strip().lower()
        password = request.form.get('password', '')

        user = Profile.query.filter_by(email=email).first()

        if user and user.check_password(password):
            session.clear()
            session.permanent = True
            session['user_id'] = user.id
            session['role'] = user.role
            session['logged_in_at'] = current_time().isoformat()

            user.last_seen_at = current_time()
            db.session.commit()

            current_app.logger.info('Profile %s logged in', user.id)
            flash(f'Login successful! Welcome, {user.display_name}.', 'success')
            return redirect(landing_url(user))

        current_app.logger.warning('Failed login attempt for %s', email)
        flash('Invalid email or password.', 'error')

    return render_template('auth/login.html')


@auth_bp.route('/logout')
def logout():
    """Logout user"""
    session.clear()
    flash('You have been logged out.', 'info')
    return redirect(url_for('index'))
