"""
Integration tests for the admin blueprint
Tournament creation and lifecycle, registrations, results, disputes and analytics
"""
import pytest

from brackets import start_tournament
from matchplay import submit_score
from models import db, Dispute, Match, Notification, Registration, Tournament


class TestAdminDashboard:
    def test_dashboard_loads(self, authenticated_admin, tournament):
        response = authenticated_admin.get('/admin/dashboard')
        assert response.status_code == 200
        assert b'Test Cup' in response.data

    def test_dashboard_lists_pending_registrations(self, authenticated_admin, paid_tournament, player):
        paid_tournament.register(player)
        db.session.commit()
        response = authenticated_admin.get('/admin/dashboard')
        assert b'Test Player for Paid Cup' in response.data


class TestTournamentCreation:
    def test_form_renders(self, authenticated_admin):
        response = authenticated_admin.get('/admin/tournaments/new')
        assert response.status_code == 200
        assert b'Create tournament' in response.data

    def test_create_tournament(self, authenticated_admin, admin):
        response = authenticated_admin.post('/admin/tournaments/new', data={
            'name': 'Weekend Showdown',
            'format': 'double_elimination',
            'mode': 'standard',
            'max_slots': '16',
            'entry_fee': '100',
            'prize_pool': '3000',
            'start_date': '2030-06-01T18:00',
        })
        assert response.status_code == 302

        tournament = Tournament.query.filter_by(name='Weekend Showdown').first()
        assert tournament is not None
        assert tournament.status == 'registration'
        assert tournament.created_by == admin.id
        assert tournament.is_double_elimination
        assert tournament.entry_fee == 100

    def test_missing_name_rerenders_form(self, authenticated_admin):
        response = authenticated_admin.post('/admin/tournaments/new', data={'name': '', 'max_slots': '8'})
        assert response.status_code == 200
        assert b'Tournament name is required!' in response.data
        assert Tournament.query.count() == 0

    def test_invalid_slots_rejected(self, authenticated_admin):
        response = authenticated_admin.post('/admin/tournaments/new', data={'name': 'Huge', 'max_slots': '500'})
        assert response.status_code == 200
        assert b'Slots must be between 2 and 128.' in response.data

    def test_non_numeric_fee_rejected(self, authenticated_admin):
        response = authenticated_admin.post('/admin/tournaments/new', data={
            'name': 'Odd', 'max_slots': '8', 'entry_fee': 'free',
        })
        assert b'Entry fee must be a whole number.' in response.data


class TestTournamentLifecycle:
    def test_detail_page(self, authenticated_admin, tournament):
        response = authenticated_admin.get(f'/admin/tournaments/{tournament.id}')
        assert response.status_code == 200
        assert b'(Admin)' in response.data
        assert b'Start tournament' in response.data

    def test_missing_tournament_redirects(self, authenticated_admin):
        response = authenticated_admin.get('/admin/tournaments/999')
        assert response.status_code == 302
        assert '/admin/dashboard' in response.location

    def test_start_generates_bracket(self, authenticated_admin, tournament, make_players, enroll):
        enroll(tournament, make_players(4))
        response = authenticated_admin.post(
            f'/admin/tournaments/{tournament.id}/start', follow_redirects=True
        )
        assert b'Tournament started with 3 matches.' in response.data
        db.session.expire_all()
        assert db.session.get(Tournament, tournament.id).status == 'ongoing'
        assert Match.query.filter_by(tournament_id=tournament.id).count() == 3

    def test_start_without_players_rolls_back(self, authenticated_admin, tournament):
        response = authenticated_admin.post(
            f'/admin/tournaments/{tournament.id}/start', follow_redirects=True
        )
        assert b'At least 2 confirmed players are required to start.' in response.data
        db.session.expire_all()
        assert db.session.get(Tournament, tournament.id).status == 'registration'

    def test_pause_and_resume(self, authenticated_admin, tournament, make_players, enroll):
        enroll(tournament, make_players(2))
        start_tournament(tournament)
        db.session.commit()

        authenticated_admin.post(f'/admin/tournaments/{tournament.id}/pause')
        db.session.expire_all()
        assert db.session.get(Tournament, tournament.id).status == 'paused'

        authenticated_admin.post(f'/admin/tournaments/{tournament.id}/resume')
        db.session.expire_all()
        assert db.session.get(Tournament, tournament.id).status == 'ongoing'

    def test_resume_does_not_bypass_start(self, authenticated_admin, tournament, make_players, enroll):
        enroll(tournament, make_players(4))
        response = authenticated_admin.post(
            f'/admin/tournaments/{tournament.id}/resume', follow_redirects=True
        )
        assert b'Cannot move tournament from registration to ongoing.' in response.data
        db.session.expire_all()
        assert db.session.get(Tournament, tournament.id).status == 'registration'
        assert Match.query.filter_by(tournament_id=tournament.id).count() == 0

    def test_pause_requires_ongoing(self, authenticated_admin, tournament):
        response = authenticated_admin.post(
            f'/admin/tournaments/{tournament.id}/pause', follow_redirects=True
        )
        assert b'Cannot move tournament from registration to paused.' in response.data

    def test_unknown_action(self, authenticated_admin, tournament):
        response = authenticated_admin.post(
            f'/admin/tournaments/{tournament.id}/explode', follow_redirects=True
        )
        assert b'Unsupported status update.' in response.data

    def test_cancel(self, authenticated_admin, tournament):
        authenticated_admin.post(f'/admin/tournaments/{tournament.id}/cancel')
        db.session.expire_all()
        assert db.session.get(Tournament, tournament.id).status == 'cancelled'


class TestRegistrationConfirmation:
    def test_confirm_notifies_player(self, authenticated_admin, paid_tournament, player):
        registration = paid_tournament.register(player)
        db.session.commit()

        response = authenticated_admin.post(f'/admin/registrations/{registration.id}/confirm')
        assert response.status_code == 302
        db.session.expire_all()
        assert db.session.get(Registration, registration.id).status == 'confirmed'
        assert Notification.for_user(player.id).first().kind == 'registration_confirmed'

    def test_confirm_honours_next(self, authenticated_admin, paid_tournament, player):
        registration = paid_tournament.register(player)
        db.session.commit()
        response = authenticated_admin.post(
            f'/admin/registrations/{registration.id}/confirm', data={'next': '/admin/dashboard'}
        )
        assert response.location.endswith('/admin/dashboard')

    def test_confirm_ignores_external_next(self, authenticated_admin, paid_tournament, player):
        registration = paid_tournament.register(player)
        db.session.commit()
        response = authenticated_admin.post(
            f'/admin/registrations/{registration.id}/confirm', data={'next': 'https://evil.example'}
        )
        assert f'/admin/tournaments/{paid_tournament.id}' in response.location

    def test_confirm_ignores_protocol_relative_next(self, authenticated_admin, paid_tournament, player):
        registration = paid_tournament.register(player)
        db.session.commit()
        for target in ('//evil.example/x', '/\\evil.example/x'):
            response = authenticated_admin.post(
                f'/admin/registrations/{registration.id}/confirm', data={'next': target}
            )
            assert 'evil.example' not in response.location
            assert f'/admin/tournaments/{paid_tournament.id}' in response.location


class TestResultsAndDisputes:
    @pytest.fixture
    def live_match(self, tournament, player, player2, enroll):
        enroll(tournament, [player, player2])
        start_tournament(tournament)
        db.session.commit()
        return tournament.matches[0]

    def test_record_result(self, authenticated_admin, live_match, tournament):
        response = authenticated_admin.post(
            f'/admin/matches/{live_match.id}/result',
            data={'player1_score': '4', 'player2_score': '2'},
            follow_redirects=True,
        )
        assert b'Results updated for match' in response.data
        db.session.expire_all()
        assert db.session.get(Match, live_match.id).status == 'completed'
        assert db.session.get(Tournament, tournament.id).status == 'completed'

    def test_disputes_page_and_resolution(self, authenticated_admin, live_match, player, player2):
        submit_score(live_match, player, '3', '1')
        submit_score(live_match, player2, '1', '3')
        db.session.commit()
        dispute = Dispute.open_disputes().first()

        page = authenticated_admin.get('/admin/disputes')
        assert page.status_code == 200
        assert b'Test Player vs Second Player' in page.data

        response = authenticated_admin.post(
            f'/admin/disputes/{dispute.id}/resolve',
            data={'player1_score': '3', 'player2_score': '1', 'note': 'Checked the stream'},
            follow_redirects=True,
        )
        assert b'Dispute resolved.' in response.data
        db.session.expire_all()
        assert db.session.get(Dispute, dispute.id).status == 'resolved'


class TestAnalyticsRoutes:
    def test_analytics_page(self, authenticated_admin, tournament):
        response = authenticated_admin.get('/admin/analytics?range=7d')
        assert response.status_code == 200
        assert b'Revenue' in response.data

    def test_analytics_json(self, authenticated_admin, tournament):
        response = authenticated_admin.get('/admin/analytics/data?range=bogus')
        assert response.status_code == 200
        payload = response.get_json()
        assert payload['error'] is None
        assert payload['data']['range'] == '30d'
        assert payload['data']['tournaments']['total'] == 1
