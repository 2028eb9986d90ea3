from urllib.parse import urlsplit

from flask import Blueprint, render_template, request, redirect, url_for, flash, g, jsonify, current_app

from analytics import TIME_RANGES, compute_analytics, normalize_range
from brackets import start_tournament
from matchplay import record_result, resolve_dispute
from models import (
    db,
    AdminMessage,
    Dispute,
    Match,
    Registration,
    Tournament,
    TOURNAMENT_FORMATS,
    TOURNAMENT_MODES,
    TOURNAMENT_STATUSES,
    from_local,
    humanize,
    pending_registrations,
)
from blueprints.auth import require_admin, require_admin_api

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')

# action -> (new status, statuses it may be taken from); registration only
# moves to ongoing through start_tournament
LIFECYCLE_ACTIONS = {
    'pause': ('paused', ('ongoing',)),
    'resume': ('ongoing', ('paused',)),
    'cancel': ('cancelled', ('registration', 'ongoing', 'paused')),
}


def _site_url() -> str:
    return current_app.config['SITE_URL'].rstrip('/')


def _is_local_path(url: str) -> bool:
    """Accept only same-site paths such as /admin/dashboard."""
    parts = urlsplit(url)
    if not url.startswith('/') or url.startswith('//') or '\\' in url:
        return False
    return not parts.scheme and not parts.netloc


def _int_field(name: str, default: int | None = None) -> int:
    raw = request.form.get(name, '').strip()
    if not raw:
        if default is None:
            raise ValueError(f'{name.replace("_", " ").capitalize()} is required.')
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f'{name.replace("_", " ").capitalize()} must be a whole number.')


@admin_bp.route('/dashboard')
@require_admin
def dashboard():
    """Admin overview of tournaments, disputes, registrations and inbox"""
    tournaments = Tournament.query.order_by(Tournament.created_at.desc()).all()
    status_counts = {status: 0 for status in TOURNAMENT_STATUSES}
    for tournament in tournaments:
        status_counts[tournament.status] += 1

    open_disputes = Dispute.open_disputes().all()
    waiting = pending_registrations().all()
    unread_messages = AdminMessage.query.filter_by(status='unread').count()

    return render_template(
        'admin/dashboard.html',
        tournaments=tournaments,
        status_counts=status_counts,
        open_disputes=open_disputes,
        pending_registrations=waiting,
        unread_messages=unread_messages,
    )


@admin_bp.route('/tournaments/new', methods=['GET', 'POST'])
@require_admin
def create_tournament():
    if request.method == 'POST':
        try:
            name = request.form.get('name', '').strip()
            if not name:
                raise ValueError('Tournament name is required!')
            tournament = Tournament(
                name=name,
                description=request.form.get('description', '').strip() or None,
                format=request.form.get('format', 'single_elimination'),
                mode=request.form.get('mode', 'standard'),
                max_slots=_int_field('max_slots'),
                entry_fee=_int_field('entry_fee', 0),
                prize_pool=_int_field('prize_pool', 0),
                start_date=from_local(request.form.get('start_date')),
                poster_url=request.form.get('poster_url', '').strip() or None,
                status='registration',
                created_by=g.current_user.id,
            )
            db.session.add(tournament)
            db.session.commit()
        except ValueError as exc:
            db.session.rollback()
            current_app.logger.warning('Tournament creation rejected: %s', exc)
            flash(str(exc), 'error')
            return render_template(
                'admin/tournament_form.html',
                formats=TOURNAMENT_FORMATS,
                modes=TOURNAMENT_MODES,
                form=request.form,
            )

        current_app.logger.info('Admin %s created tournament %s', g.current_user.id, tournament.id)
        flash(f'Tournament "{tournament.name}" created successfully!', 'success')
        return redirect(url_for('admin.tournament_detail', tournament_id=tournament.id))

    return render_template(
        'admin/tournament_form.html',
        formats=TOURNAMENT_FORMATS,
        modes=TOURNAMENT_MODES,
        form={},
    )


@admin_bp.route('/tournaments/<int:tournament_id>')
@require_admin
def tournament_detail(tournament_id):
    tournament = db.session.get(Tournament, tournament_id)
    if tournament is None:
        flash('Tournament not found.', 'error')
        return redirect(url_for('admin.dashboard'))

    registrations = sorted(
        tournament.registrations,
        key=lambda r: (r.status == 'cancelled', r.registered_at),
    )
    return render_template(
        'admin/tournament_detail.html',
        tournament=tournament,
        matches=tournament.ordered_matches(),
        registrations=registrations,
        meta=tournament.page_metadata(_site_url(), admin=True,
                                      default_poster=current_app.config['DEFAULT_POSTER_PATH']),
        share=tournament.share_payload(_site_url(), admin=True),
        is_registered=False,
    )


@admin_bp.route('/tournaments/<int:tournament_id>/start', methods=['POST'])
@require_admin
def start(tournament_id):
    tournament = db.get_or_404(Tournament, tournament_id)
    try:
        matches = start_tournament(tournament)
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        current_app.logger.warning('Start of tournament %s rejected: %s', tournament_id, exc)
        flash(str(exc), 'error')
    else:
        current_app.logger.info('Admin %s started tournament %s', g.current_user.id, tournament_id)
        flash(f'Tournament started with {len(matches)} matches.', 'success')
    return redirect(url_for('admin.tournament_detail', tournament_id=tournament_id))


@admin_bp.route('/tournaments/<int:tournament_id>/<action>', methods=['POST'])
@require_admin
def change_status(tournament_id, action):
    tournament = db.get_or_404(Tournament, tournament_id)
    if action not in LIFECYCLE_ACTIONS:
        flash('Unsupported status update.', 'error')
        return redirect(url_for('admin.tournament_detail', tournament_id=tournament_id))

    new_status, sources = LIFECYCLE_ACTIONS[action]
    try:
        if tournament.status not in sources:
            raise ValueError(
                f'Cannot move tournament from {humanize(tournament.status)} to {humanize(new_status)}.'
            )
        tournament.transition(new_status)
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        current_app.logger.warning('Tournament %s %s rejected: %s', tournament_id, action, exc)
        flash(str(exc), 'error')
    else:
        current_app.logger.info('Admin %s set tournament %s to %s', g.current_user.id, tournament_id, new_status)
        flash(f'{tournament.name} is now {tournament.status_label}.', 'success')
    return redirect(url_for('admin.tournament_detail', tournament_id=tournament_id))


@admin_bp.route('/registrations/<int:registration_id>/confirm', methods=['POST'])
@require_admin
def confirm_registration(registration_id):
    registration = db.get_or_404(Registration, registration_id)
    tournament = registration.tournament
    try:
        if tournament.status != 'registration':
            raise ValueError('Registrations can only be confirmed before the tournament starts.')
        registration.confirm()
        registration.player.notify(
            f'Your registration for {tournament.name} has been confirmed.',
            category='success',
            kind='registration_confirmed',
            link_target=f'/dashboard/tournaments/{tournament.id}',
            actor_id=g.current_user.id,
        )
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        flash(str(exc), 'error')
    else:
        current_app.logger.info('Admin %s confirmed registration %s', g.current_user.id, registration_id)
        flash(f'{registration.player.display_name} confirmed for {tournament.name}.', 'success')
    next_url = request.form.get('next', '')
    if _is_local_path(next_url):
        return redirect(next_url)
    return redirect(url_for('admin.tournament_detail', tournament_id=tournament.id))


@admin_bp.route('/matches/<int:match_id>/result', methods=['POST'])
@require_admin
def match_result(match_id):
    match = db.get_or_404(Match, match_id)
    try:
        record_result(
            match,
            g.current_user,
            request.form.get('player1_score'),
            request.form.get('player2_score'),
        )
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        flash(str(exc), 'error')
    else:
        flash(f'Results updated for match: {match.versus_display}', 'success')
    return redirect(url_for('admin.tournament_detail', tournament_id=match.tournament_id))


@admin_bp.route('/disputes')
@require_admin
def disputes():
    return render_template(
        'admin/disputes.html',
        open_disputes=Dispute.open_disputes().all(),
        resolved=Dispute.query.filter_by(status='resolved').order_by(Dispute.resolved_at.desc()).limit(20).all(),
    )


@admin_bp.route('/disputes/<int:dispute_id>/resolve', methods=['POST'])
@require_admin
def resolve(dispute_id):
    dispute = db.get_or_404(Dispute, dispute_id)
    try:
        resolve_dispute(
            dispute,
            g.current_user,
            request.form.get('player1_score'),
            request.form.get('player2_score'),
            request.form.get('note'),
        )
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        flash(str(exc), 'error')
    else:
        flash('Dispute resolved.', 'success')
    return redirect(url_for('admin.disputes'))


@admin_bp.route('/analytics')
@require_admin
def analytics():
    time_range = normalize_range(request.args.get('range'))
    return render_template(
        'admin/analytics.html',
        analytics=compute_analytics(time_range),
        time_range=time_range,
        time_ranges=list(TIME_RANGES),
    )


@admin_bp.route('/analytics/data')
@require_admin_api
def analytics_data():
    return jsonify({'data': compute_analytics(request.args.get('range')), 'error': None})
