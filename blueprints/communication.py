from flask import Blueprint, render_template, request, redirect, url_for, flash, g, jsonify, current_app

from models import (
    db,
    AdminMessage,
    Announcement,
    ANNOUNCEMENT_TARGETS,
    ANNOUNCEMENT_TYPES,
    MESSAGE_PRIORITIES,
    MESSAGE_STATUSES,
    Tournament,
    from_local,
    percent_of,
    round_half_up,
)
from blueprints.auth import login_required, require_admin, require_admin_api

communication_bp = Blueprint('communication', __name__)


def communication_stats() -> dict:
    """Headline numbers for the admin communication page."""
    announcements = Announcement.query.all()
    messages = AdminMessage.query.all()

    replied = [m for m in messages if m.status == 'replied']
    response_hours = [
        (m.replied_at - m.created_at).total_seconds() / 3600
        for m in replied
        if m.replied_at and m.created_at
    ]
    avg_response = round_half_up(sum(response_hours) / len(response_hours), 1) if response_hours else 0

    sent = [a for a in announcements if a.status == 'sent']
    total_recipients = sum(a.recipients or 0 for a in sent)
    total_opened = sum(a.opened or 0 for a in sent)

    return {
        'total_announcements': len(announcements),
        'total_messages': len(messages),
        'unread_messages': sum(1 for m in messages if m.status == 'unread'),
        'response_rate': percent_of(len(replied), len(messages)),
        'avg_response_time': avg_response,
        'engagement_rate': percent_of(total_opened, total_recipients),
    }


def _announcement_payload(announcement: Announcement) -> dict:
    return {
        'id': announcement.id,
        'title': announcement.title,
        'content': announcement.content,
        'type': announcement.type,
        'target': announcement.target,
        'target_tournament_id': announcement.target_tournament_id,
        'status': announcement.status,
        'scheduled_at': announcement.scheduled_at.isoformat() if announcement.scheduled_at else None,
        'sent_at': announcement.sent_at.isoformat() if announcement.sent_at else None,
        'recipients': announcement.recipients,
        'opened': announcement.opened,
        'clicked': announcement.clicked,
        'created_at': announcement.created_at.isoformat() if announcement.created_at else None,
    }


def _optional_int(value):
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError('Expected a whole number.')


def _text_field(payload, name: str):
    value = payload.get(name)
    if value is not None and not isinstance(value, str):
        raise ValueError(f'{name.replace("_", " ").capitalize()} must be text.')
    return value


def _json_object() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError('Expected a JSON object.')
    return payload


def _compose_from(payload: dict, scheduled_at) -> Announcement:
    announcement_type = payload.get('type') or 'general'
    target = payload.get('target') or 'all'
    if announcement_type not in ANNOUNCEMENT_TYPES:
        raise ValueError('Choose a valid announcement type.')
    if target not in ANNOUNCEMENT_TARGETS:
        raise ValueError('Choose a valid audience.')
    return Announcement.compose(
        g.current_user,
        _text_field(payload, 'title'),
        _text_field(payload, 'content'),
        type=announcement_type,
        target=target,
        scheduled_at=scheduled_at,
        tournament_id=_optional_int(payload.get('target_tournament_id')),
        draft=payload.get('action') == 'draft' or payload.get('draft') is True,
    )


# ---------------------------------------------------------------------------
# Admin pages
# ---------------------------------------------------------------------------

@communication_bp.route('/admin/communication')
@require_admin
def overview():
    announcements = Announcement.query.order_by(Announcement.created_at.desc(), Announcement.id.desc()).all()
    messages = AdminMessage.query.order_by(AdminMessage.created_at.desc(), AdminMessage.id.desc()).all()
    return render_template(
        'admin/communication.html',
        announcements=announcements,
        messages=messages,
        stats=communication_stats(),
        tournaments=Tournament.query.order_by(Tournament.created_at.desc()).all(),
        announcement_types=ANNOUNCEMENT_TYPES,
        announcement_targets=ANNOUNCEMENT_TARGETS,
    )


@communication_bp.route('/admin/communication/announcements', methods=['POST'])
@require_admin
def create_announcement():
    try:
        announcement = _compose_from(request.form, from_local(request.form.get('scheduled_at')))
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        current_app.logger.warning('Announcement rejected: %s', exc)
        flash(str(exc), 'error')
        return redirect(url_for('communication.overview'))

    current_app.logger.info(
        'Admin %s created announcement %s (%s, %s recipients)',
        g.current_user.id, announcement.id, announcement.status, announcement.recipients,
    )
    if announcement.status == 'scheduled':
        flash('Announcement scheduled successfully!', 'success')
    elif announcement.status == 'draft':
        flash('Announcement saved as draft.', 'success')
    else:
        flash('Announcement sent successfully!', 'success')
    return redirect(url_for('communication.overview'))


@communication_bp.route('/admin/communication/announcements/<int:announcement_id>/send', methods=['POST'])
@require_admin
def send_announcement(announcement_id):
    announcement = db.get_or_404(Announcement, announcement_id)
    if announcement.status == 'sent':
        flash('Announcement has already been sent.', 'info')
        return redirect(url_for('communication.overview'))
    announcement.send()
    db.session.commit()
    current_app.logger.info('Admin %s sent announcement %s', g.current_user.id, announcement.id)
    flash('Announcement sent successfully!', 'success')
    return redirect(url_for('communication.overview'))


@communication_bp.route('/admin/communication/announcements/<int:announcement_id>/stats', methods=['POST'])
@require_admin
def update_announcement_stats(announcement_id):
    announcement = db.get_or_404(Announcement, announcement_id)
    try:
        announcement.set_stats(
            opened=_optional_int(request.form.get('opened')),
            clicked=_optional_int(request.form.get('clicked')),
        )
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        flash(str(exc), 'error')
    else:
        flash('Announcement stats updated.', 'success')
    return redirect(url_for('communication.overview'))


@communication_bp.route('/admin/communication/messages/<int:message_id>')
@require_admin
def message_detail(message_id):
    message = db.session.get(AdminMessage, message_id)
    if message is None:
        flash('Message not found', 'error')
        return redirect(url_for('communication.overview'))
    if message.mark_read():
        db.session.commit()
    return render_template('admin/message_detail.html', message=message, statuses=MESSAGE_STATUSES)


@communication_bp.route('/admin/communication/messages/<int:message_id>/reply', methods=['POST'])
@require_admin
def reply_message(message_id):
    message = db.session.get(AdminMessage, message_id)
    if message is None:
        flash('Message not found', 'error')
        return redirect(url_for('communication.overview'))
    try:
        message.reply_with(g.current_user, request.form.get('reply'))
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        flash(str(exc), 'error')
        return redirect(url_for('communication.message_detail', message_id=message_id))

    current_app.logger.info('Admin %s replied to message %s', g.current_user.id, message_id)
    flash('Reply sent successfully!', 'success')
    return redirect(url_for('communication.overview'))


@communication_bp.route('/admin/communication/messages/<int:message_id>/status', methods=['POST'])
@require_admin
def update_message_status(message_id):
    message = db.session.get(AdminMessage, message_id)
    if message is None:
        flash('Message not found', 'error')
        return redirect(url_for('communication.overview'))
    try:
        message.status = request.form.get('status', '')
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        flash(str(exc), 'error')
    else:
        flash(f'Message marked as {message.status}.', 'success')
    return redirect(url_for('communication.message_detail', message_id=message_id))


# ---------------------------------------------------------------------------
# Admin JSON API
# ---------------------------------------------------------------------------

@communication_bp.route('/admin/communication/api/announcements')
@require_admin_api
def api_announcements():
    announcements = Announcement.query.order_by(Announcement.created_at.desc(), Announcement.id.desc()).all()
    return jsonify({'data': [_announcement_payload(a) for a in announcements], 'error': None})


@communication_bp.route('/admin/communication/api/announcements', methods=['POST'])
@require_admin_api
def api_create_announcement():
    try:
        payload = _json_object()
        scheduled = _text_field(payload, 'scheduled_at')
        scheduled_at = from_local(scheduled) if scheduled else None
        announcement = _compose_from(payload, scheduled_at)
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        return jsonify({'data': None, 'error': str(exc)}), 400
    current_app.logger.info('Admin %s created announcement %s via API', g.current_user.id, announcement.id)
    return jsonify({'data': _announcement_payload(announcement), 'error': None}), 201


@communication_bp.route('/admin/communication/api/messages')
@require_admin_api
def api_messages():
    messages = AdminMessage.query.order_by(AdminMessage.created_at.desc(), AdminMessage.id.desc()).all()
    return jsonify({'data': [m.summary() for m in messages], 'error': None})


@communication_bp.route('/admin/communication/api/messages/<int:message_id>/reply', methods=['POST'])
@require_admin_api
def api_reply_message(message_id):
    message = db.session.get(AdminMessage, message_id)
    if message is None:
        return jsonify({'data': None, 'error': 'Message not found'}), 404
    try:
        message.reply_with(g.current_user, _text_field(_json_object(), 'reply'))
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        return jsonify({'data': None, 'error': str(exc)}), 400
    return jsonify({'data': message.summary(), 'error': None})


@communication_bp.route('/admin/communication/api/stats')
@require_admin_api
def api_stats():
    return jsonify({'data': communication_stats(), 'error': None})


# ---------------------------------------------------------------------------
# Player side
# ---------------------------------------------------------------------------

@communication_bp.route('/messages', methods=['GET', 'POST'])
@login_required
def messages():
    if request.method == 'POST':
        try:
            priority = request.form.get('priority') or 'medium'
            if priority not in MESSAGE_PRIORITIES:
                raise ValueError('Choose a valid priority.')
            message = AdminMessage.submit(
                g.current_user,
                request.form.get('subject'),
                request.form.get('content'),
                priority=priority,
            )
            db.session.commit()
        except ValueError as exc:
            db.session.rollback()
            flash(str(exc), 'error')
        else:
            current_app.logger.info('Profile %s sent admin message %s', g.current_user.id, message.id)
            flash('Message sent to the admin team.', 'success')
        return redirect(url_for('communication.messages'))

    own = (
        AdminMessage.query.filter_by(user_id=g.current_user.id)
        .order_by(AdminMessage.created_at.desc(), AdminMessage.id.desc())
        .all()
    )
    return render_template('player/messages.html', messages=own, priorities=MESSAGE_PRIORITIES)


@communication_bp.route('/announcements')
@login_required
def announcements():
    return render_template('player/announcements.html', announcements=Announcement.published().all())


@communication_bp.route('/announcements/<int:announcement_id>')
@login_required
def announcement_detail(announcement_id):
    announcement = db.get_or_404(Announcement, announcement_id)
    if announcement.status != 'sent':
        flash('Announcement not available.', 'error')
        return redirect(url_for('communication.announcements'))
    announcement.record_engagement(opened=1)
    db.session.commit()
    return render_template('player/announcement_detail.html', announcement=announcement)


@communication_bp.route('/announcements/<int:announcement_id>/follow')
@login_required
def follow_announcement(announcement_id):
    announcement = db.get_or_404(Announcement, announcement_id)
    if announcement.status != 'sent':
        flash('Announcement not available.', 'error')
        return redirect(url_for('communication.announcements'))
    announcement.record_engagement(clicked=1)
    db.session.commit()
    if announcement.target_tournament_id:
        return redirect(url_for('player.tournament_detail', tournament_id=announcement.target_tournament_id))
    return redirect(url_for('communication.announcements'))
