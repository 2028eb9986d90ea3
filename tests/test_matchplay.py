"""Score submission, verification and dispute resolution."""

import pytest

from brackets import start_tournament
from matchplay import parse_scores, record_result, resolve_dispute, start_match, submit_score
from models import db, Dispute, Notification


@pytest.fixture
def live_match(tournament, player, player2, enroll):
    """Two-player tournament started so its only match is ready"""
    enroll(tournament, [player, player2])
    start_tournament(tournament)
    db.session.commit()
    return tournament.matches[0]


class TestParseScores:
    def test_valid(self):
        assert parse_scores('3', ' 1 ') == (3, 1)

    @pytest.mark.parametrize('first, second, message', [
        ('a', '1', 'whole numbers'),
        (None, '1', 'whole numbers'),
        ('-1', '2', 'negative'),
        ('2', '2', 'draw'),
    ])
    def test_invalid(self, first, second, message):
        with pytest.raises(ValueError, match=message):
            parse_scores(first, second)


class TestStartMatch:
    def test_player_starts_match(self, live_match, player):
        start_match(live_match, player)
        assert live_match.status == 'ongoing'
        assert live_match.started_at is not None

    def test_outsider_cannot_start(self, live_match, make_players):
        outsider = make_players(1)[0]
        with pytest.raises(ValueError, match='Only the players'):
            start_match(live_match, outsider)

    def test_paused_tournament_blocks_play(self, live_match, player):
        live_match.tournament.transition('paused')
        with pytest.raises(ValueError, match='paused'):
            start_match(live_match, player)


class TestSubmitScore:
    def test_first_submission_waits(self, live_match, player):
        assert submit_score(live_match, player, '3', '1') == 'awaiting_opponent'
        assert live_match.status == 'ongoing'

    def test_matching_submissions_complete_match(self, live_match, player, player2):
        submit_score(live_match, player, '3', '1')
        assert submit_score(live_match, player2, '3', '1') == 'completed'
        db.session.commit()

        assert live_match.status == 'completed'
        assert live_match.winner_id == live_match.player1_id
        assert live_match.tournament.status == 'completed'

    def test_resubmission_replaces_claim(self, live_match, player, player2):
        submit_score(live_match, player, '1', '3')
        submit_score(live_match, player, '3', '1')
        assert len(live_match.submissions) == 1
        assert submit_score(live_match, player2, '3', '1') == 'completed'

    def test_mismatch_opens_dispute(self, live_match, player, player2, admin):
        submit_score(live_match, player, '3', '1')
        assert submit_score(live_match, player2, '1', '3') == 'disputed'
        db.session.commit()

        assert live_match.status == 'disputed'
        dispute = Dispute.open_disputes().first()
        assert dispute.match_id == live_match.id
        assert len(dispute.claims) == 2
        assert Notification.for_user(admin.id).first().kind == 'dispute'

    def test_disputed_match_rejects_submissions(self, live_match, player, player2):
        submit_score(live_match, player, '3', '1')
        submit_score(live_match, player2, '1', '3')
        with pytest.raises(ValueError, match='dispute'):
            submit_score(live_match, player, '3', '1')

    def test_outsider_cannot_submit(self, live_match, make_players):
        with pytest.raises(ValueError, match='Only the players'):
            submit_score(live_match, make_players(1)[0], '3', '1')


class TestAdminDecisions:
    def test_resolve_dispute(self, live_match, player, player2, admin):
        submit_score(live_match, player, '3', '1')
        submit_score(live_match, player2, '1', '3')
        dispute = Dispute.open_disputes().first()

        resolve_dispute(dispute, admin, '1', '3', note='Video checked')
        db.session.commit()

        assert dispute.status == 'resolved'
        assert dispute.resolution_note == 'Video checked'
        assert live_match.winner_id == live_match.player2_id
        assert Notification.for_user(player.id).first().kind in ('dispute_resolved', 'tournament_won')

    def test_resolve_twice_rejected(self, live_match, player, player2, admin):
        submit_score(live_match, player, '3', '1')
        submit_score(live_match, player2, '1', '3')
        dispute = Dispute.open_disputes().first()
        resolve_dispute(dispute, admin, '3', '1')
        with pytest.raises(ValueError, match='already been resolved'):
            resolve_dispute(dispute, admin, '3', '1')

    def test_players_cannot_resolve(self, live_match, player, player2):
        submit_score(live_match, player, '3', '1')
        submit_score(live_match, player2, '1', '3')
        with pytest.raises(ValueError, match='Unauthorized'):
            resolve_dispute(Dispute.open_disputes().first(), player, '3', '1')

    def test_record_result_override(self, live_match, admin):
        record_result(live_match, admin, '2', '0')
        db.session.commit()
        assert live_match.status == 'completed'
        assert live_match.score_display.endswith(': 0')

    def test_record_result_closes_open_dispute(self, live_match, player, player2, admin):
        submit_score(live_match, player, '3', '1')
        submit_score(live_match, player2, '1', '3')
        record_result(live_match, admin, '3', '1')
        assert Dispute.query.filter_by(status='open').count() == 0

    def test_record_result_requires_running_tournament(self, live_match, admin):
        live_match.tournament.transition('paused')
        with pytest.raises(ValueError, match='not in progress'):
            record_result(live_match, admin, '2', '0')
