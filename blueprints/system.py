from flask import Blueprint, render_template, request, redirect, url_for, flash, g, jsonify, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from datetime import timedelta
import time

from models import (
    db,
    DEFAULT_SETTINGS,
    Profile,
    ROLES,
    SystemSettings,
    Tournament,
    current_time,
)
from blueprints.auth import require_admin, require_admin_api

system_bp = Blueprint('system', __name__, url_prefix='/admin/system')

ACTIVE_USER_WINDOW_MINUTES = 30
SLOW_QUERY_MS = 1000
ROLE_PERMISSIONS = {
    'admin': ['all'],
    'player': ['tournaments', 'matches'],
}


def probe_database() -> dict:
    started = time.perf_counter()
    try:
        db.session.execute(text('SELECT 1'))
    except SQLAlchemyError:
        current_app.logger.exception('Database health probe failed')
        db.session.rollback()
        return {'status': 'disconnected', 'response_ms': None}
    elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
    return {
        'status': 'slow' if elapsed_ms > SLOW_QUERY_MS else 'connected',
        'response_ms': elapsed_ms,
    }


def system_health() -> dict:
    """Observable platform health; host metrics are not reported."""
    database = probe_database()
    overall = {'connected': 'healthy', 'slow': 'warning'}.get(database['status'], 'critical')

    active_users = concurrent = 0
    if database['status'] != 'disconnected':
        since = current_time() - timedelta(minutes=ACTIVE_USER_WINDOW_MINUTES)
        active_users = Profile.seen_since(since).count()
        concurrent = Tournament.query.filter_by(status='ongoing').count()

    return {
        'status': overall,
        'database': database,
        'active_users': active_users,
        'concurrent_tournaments': concurrent,
        'uptime_seconds': int(time.time() - current_app.config['STARTED_AT']),
        'checked_at': current_time().isoformat(),
    }


def user_roles() -> list[dict]:
    counts = {role: 0 for role in ROLES}
    for (role,) in db.session.query(Profile.role).all():
        counts[role if role in counts else 'player'] += 1
    return [
        {
            'id': role,
            'name': role.capitalize(),
            'permissions': ROLE_PERMISSIONS[role],
            'user_count': counts[role],
        }
        for role in ROLES
    ]


def settings_from_form(form) -> dict:
    """Translate the flat settings form into a sectioned payload."""
    settings: dict[str, dict] = {}
    for section, defaults in DEFAULT_SETTINGS.items():
        values = {}
        for key, default in defaults.items():
            field = f'{section}.{key}'
            if isinstance(default, bool):
                values[key] = field in form
            elif field not in form:
                continue
            elif isinstance(default, int):
                raw = form.get(field, '').strip()
                try:
                    values[key] = int(raw)
                except ValueError:
                    raise ValueError(f'{key.replace("_", " ").capitalize()} must be a whole number.')
            elif isinstance(default, list):
                raw = form.get(field, '')
                values[key] = [item.strip() for item in raw.replace('\n', ',').split(',') if item.strip()]
            else:
                values[key] = form.get(field, '').strip()
        settings[section] = values
    return settings


@system_bp.route('/')
@require_admin
def overview():
    return render_template(
        'admin/system.html',
        settings=SystemSettings.load(),
        health=system_health(),
        roles=user_roles(),
    )


@system_bp.route('/settings', methods=['POST'])
@require_admin
def update_settings():
    try:
        SystemSettings.save(settings_from_form(request.form), actor=g.current_user)
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        current_app.logger.warning('Settings update rejected: %s', exc)
        flash(str(exc), 'error')
    else:
        current_app.logger.info('Admin %s updated system settings', g.current_user.id)
        flash('Settings saved successfully!', 'success')
    return redirect(url_for('system.overview'))


@system_bp.route('/maintenance', methods=['POST'])
@require_admin
def toggle_maintenance():
    enabled = SystemSettings.toggle_maintenance(actor=g.current_user)
    db.session.commit()
    current_app.logger.info('Admin %s turned maintenance mode %s', g.current_user.id, 'on' if enabled else 'off')
    flash(f'Maintenance mode {"enabled" if enabled else "disabled"}.', 'success')
    return redirect(url_for('system.overview'))


@system_bp.route('/api/settings')
@require_admin_api
def api_settings():
    return jsonify({'data': SystemSettings.load(), 'error': None})


@system_bp.route('/api/settings', methods=['POST'])
@require_admin_api
def api_update_settings():
    payload = request.get_json(silent=True)
    try:
        settings = SystemSettings.save(payload if payload is not None else {}, actor=g.current_user)
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        return jsonify({'data': None, 'error': str(exc)}), 400
    current_app.logger.info('Admin %s updated system settings via API', g.current_user.id)
    return jsonify({'data': settings, 'error': None})


@system_bp.route('/api/health')
@require_admin_api
def api_health():
    return jsonify({'data': system_health(), 'error': None})


@system_bp.route('/api/roles')
@require_admin_api
def api_roles():
    return jsonify({'data': user_roles(), 'error': None})
