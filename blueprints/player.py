from flask import Blueprint, render_template, request, redirect, url_for, flash, g, current_app

from matchplay import start_match, submit_score
from models import (
    db,
    Match,
    Notification,
    Registration,
    SystemSettings,
    Tournament,
    matches_for_player,
)
from blueprints.auth import login_required

player_bp = Blueprint('player', __name__)


def _tournament_url(tournament_id: int) -> str:
    return url_for('player.tournament_detail', tournament_id=tournament_id)


@player_bp.route('/dashboard')
@login_required
def dashboard():
    """Player overview: open tournaments, own registrations and matches"""
    user_id = g.current_user.id
    registrations = (
        Registration.query.filter(
            Registration.user_id == user_id,
            Registration.status != 'cancelled',
        )
        .order_by(Registration.registered_at.desc())
        .all()
    )
    open_tournaments = (
        Tournament.query.filter_by(status='registration')
        .order_by(Tournament.start_date.asc(), Tournament.created_at.desc())
        .all()
    )
    my_matches = (
        matches_for_player(user_id)
        .filter(Match.status.in_(('pending', 'ongoing', 'disputed')))
        .order_by(Match.round.asc())
        .all()
    )

    return render_template(
        'player/dashboard.html',
        registrations=registrations,
        open_tournaments=open_tournaments,
        matches=[m for m in my_matches if m.has_both_players],
        notifications_preview=Notification.for_user(user_id).limit(5).all(),
        unread_notification_count=Notification.unread_count(user_id),
    )


@player_bp.route('/dashboard/tournaments/<int:tournament_id>')
@login_required
def tournament_detail(tournament_id):
    tournament = db.session.get(Tournament, tournament_id)
    if tournament is None:
        flash('Tournament not found.', 'error')
        return redirect(url_for('player.dashboard'))

    user_id = g.current_user.id
    matches = tournament.ordered_matches()
    mine = [m for m in matches if m.involves(user_id)]
    site_url = current_app.config['SITE_URL'].rstrip('/')

    return render_template(
        'player/tournament_detail.html',
        tournament=tournament,
        matches=matches,
        active_match=next((m for m in mine if m.status == 'ongoing'), None),
        upcoming_matches=[m for m in mine if m.status == 'pending' and m.has_both_players],
        participants=tournament.participants,
        registration=tournament.registration_for(user_id),
        is_registered=tournament.is_registered(user_id),
        meta=tournament.page_metadata(site_url, default_poster=current_app.config['DEFAULT_POSTER_PATH']),
        share=tournament.share_payload(site_url),
    )


@player_bp.route('/dashboard/tournaments/<int:tournament_id>/register', methods=['POST'])
@login_required
def register(tournament_id):
    tournament = db.get_or_404(Tournament, tournament_id)
    try:
        registration = tournament.register(g.current_user, SystemSettings.load())
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        current_app.logger.warning(
            'Registration of profile %s for tournament %s rejected: %s',
            g.current_user.id, tournament_id, exc,
        )
        flash(str(exc), 'error')
    else:
        current_app.logger.info(
            'Profile %s registered for tournament %s (%s)',
            g.current_user.id, tournament_id, registration.status,
        )
        if registration.status == 'confirmed':
            flash(f'You are in! Registration for {tournament.name} confirmed.', 'success')
        else:
            flash(f'Registered for {tournament.name}. An admin will confirm your entry.', 'success')
    return redirect(_tournament_url(tournament_id))


@player_bp.route('/dashboard/tournaments/<int:tournament_id>/withdraw', methods=['POST'])
@login_required
def withdraw(tournament_id):
    tournament = db.get_or_404(Tournament, tournament_id)
    registration = tournament.registration_for(g.current_user.id)
    if registration is None or registration.status == 'cancelled':
        flash('You are not registered for this tournament.', 'error')
        return redirect(_tournament_url(tournament_id))
    try:
        registration.cancel()
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        flash(str(exc), 'error')
    else:
        current_app.logger.info('Profile %s withdrew from tournament %s', g.current_user.id, tournament_id)
        flash(f'You have withdrawn from {tournament.name}.', 'info')
    return redirect(_tournament_url(tournament_id))


@player_bp.route('/matches/<int:match_id>/start', methods=['POST'])
@login_required
def begin_match(match_id):
    match = db.get_or_404(Match, match_id)
    try:
        start_match(match, g.current_user)
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        flash(str(exc), 'error')
    else:
        flash(f'Match {match.versus_display} is live.', 'success')
    return redirect(_tournament_url(match.tournament_id))


@player_bp.route('/matches/<int:match_id>/submit', methods=['POST'])
@login_required
def submit_result(match_id):
    match = db.get_or_404(Match, match_id)
    try:
        outcome = submit_score(
            match,
            g.current_user,
            request.form.get('player1_score'),
            request.form.get('player2_score'),
        )
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        flash(str(exc), 'error')
        return redirect(_tournament_url(match.tournament_id))

    messages = {
        'awaiting_opponent': ('Score submitted. Waiting for your opponent to confirm.', 'info'),
        'completed': ('Both scores agree. Match completed!', 'success'),
        'disputed': ('Scores do not match. An admin will review the dispute.', 'warning'),
    }
    flash(*messages[outcome])
    return redirect(_tournament_url(match.tournament_id))


@player_bp.route('/notifications')
@login_required
def notifications():
    return render_template(
        'player/notifications.html',
        notifications=Notification.for_user(g.current_user.id).all(),
    )


@player_bp.route('/notifications/<int:notification_id>/read', methods=['POST'])
@login_required
def mark_notification_read(notification_id):
    notification = Notification.query.filter_by(id=notification_id, user_id=g.current_user.id).first_or_404()
    notification.is_read = True
    db.session.commit()
    flash('Notification updated.', 'success')
    return redirect(request.referrer or url_for('player.notifications'))


@player_bp.route('/notifications/read-all', methods=['POST'])
@login_required
def mark_all_notifications_read():
    Notification.query.filter_by(user_id=g.current_user.id, is_read=False).update({'is_read': True})
    db.session.commit()
    flash('All notifications marked as read.', 'success')
    return redirect(url_for('player.notifications'))
