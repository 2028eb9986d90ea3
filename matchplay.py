"""Match lifecycle: kick-off, score submissions, disputes and admin results."""
from flask import current_app

from brackets import complete_match
from models import (
    db,
    Dispute,
    Match,
    MatchSubmission,
    Profile,
    current_time,
)


def parse_scores(player1_score, player2_score) -> tuple[int, int]:
    try:
        first = int(str(player1_score).strip())
        second = int(str(player2_score).strip())
    except (TypeError, ValueError):
        raise ValueError('Scores must be whole numbers.')
    if first < 0 or second < 0:
        raise ValueError('Scores cannot be negative.')
    if first == second:
        raise ValueError('Elimination matches cannot end in a draw.')
    return first, second


def _ensure_playable(match: Match) -> None:
    tournament = match.tournament
    if tournament.status == 'paused':
        raise ValueError('This tournament is paused.')
    if tournament.status != 'ongoing':
        raise ValueError('This tournament is not in progress.')
    if match.status == 'disputed':
        raise ValueError('This match is under dispute and awaits an admin decision.')
    if not match.is_ready:
        raise ValueError('This match is not ready to be played.')


def start_match(match: Match, actor: Profile) -> None:
    _ensure_playable(match)
    if not actor.is_admin and not match.involves(actor.id):
        raise ValueError('Only the players in this match can start it.')
    if match.status != 'pending':
        raise ValueError('This match has already started.')
    match.status = 'ongoing'
    match.started_at = current_time()
    current_app.logger.info('Match %s started by profile %s', match.id, actor.id)


def submit_score(match: Match, player: Profile, player1_score, player2_score) -> str:
    """Record one participant's claim and verify it against the opponent's.

    Returns ``'awaiting_opponent'``, ``'completed'`` or ``'disputed'``.
    """
    _ensure_playable(match)
    if not match.involves(player.id):
        raise ValueError('Only the players in this match can submit scores.')
    first, second = parse_scores(player1_score, player2_score)

    submission = match.submission_by(player.id)
    if submission is None:
        submission = MatchSubmission(match=match, submitted_by=player.id,
                                     player1_score=first, player2_score=second)
        db.session.add(submission)
    else:
        submission.player1_score = first
        submission.player2_score = second
        submission.updated_at = current_time()

    if match.status == 'pending':
        match.status = 'ongoing'
        match.started_at = current_time()

    opponent_id = match.player2_id if match.player1_id == player.id else match.player1_id
    other = match.submission_by(opponent_id)
    if other is None:
        current_app.logger.info('Score submitted for match %s by profile %s', match.id, player.id)
        return 'awaiting_opponent'

    if submission.agrees_with(other):
        _finalize(match, first, second)
        current_app.logger.info('Match %s verified by both players', match.id)
        return 'completed'

    match.status = 'disputed'
    dispute = Dispute(match=match, claims=[submission.as_claim(), other.as_claim()])
    db.session.add(dispute)
    tournament = match.tournament
    for admin in Profile.admins():
        admin.notify(
            f'Score dispute in {tournament.name}: {match.versus_display}.',
            category='warning',
            kind='dispute',
            link_target='/admin/disputes',
        )
    current_app.logger.warning('Match %s disputed: submissions disagree', match.id)
    return 'disputed'


def resolve_dispute(dispute: Dispute, admin: Profile, player1_score, player2_score, note: str | None = None) -> None:
    if not admin.is_admin:
        raise ValueError('Unauthorized')
    if dispute.status != 'open':
        raise ValueError('This dispute has already been resolved.')
    if dispute.match.tournament.status != 'ongoing':
        raise ValueError('This tournament is not in progress.')
    first, second = parse_scores(player1_score, player2_score)
    match = dispute.match
    dispute.resolve(admin, (note or '').strip() or None)
    _finalize(match, first, second)
    for player_id in (match.player1_id, match.player2_id):
        player = db.session.get(Profile, player_id) if player_id else None
        if player:
            player.notify(
                f'Your disputed match {match.versus_display} was resolved by an admin.',
                category='info',
                kind='dispute_resolved',
                link_target=f'/dashboard/tournaments/{match.tournament_id}',
                actor_id=admin.id,
            )
    current_app.logger.info('Dispute %s resolved by admin %s', dispute.id, admin.id)


def record_result(match: Match, admin: Profile, player1_score, player2_score) -> None:
    """Admin override: set the final score of any unfinished, ready match."""
    if not admin.is_admin:
        raise ValueError('Unauthorized')
    if match.status == 'completed':
        raise ValueError('Results have already been entered for this match.')
    if match.tournament.status != 'ongoing':
        raise ValueError('This tournament is not in progress.')
    if not match.has_both_players:
        raise ValueError('This match is not ready to be played.')
    first, second = parse_scores(player1_score, player2_score)
    dispute = match.open_dispute()
    if dispute:
        dispute.resolve(admin, 'Result recorded by admin')
    _finalize(match, first, second)
    current_app.logger.info('Admin %s recorded result for match %s', admin.id, match.id)


def _finalize(match: Match, first: int, second: int) -> None:
    match.player1_score = first
    match.player2_score = second
    if match.started_at is None:
        match.started_at = current_time()
    winner_id = match.player1_id if first > second else match.player2_id
    complete_match(match, winner_id)
