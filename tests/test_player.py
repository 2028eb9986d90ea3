"""
Integration tests for the player blueprint
Dashboard, tournament page, registration, match play and notifications
"""
import pytest

from brackets import start_tournament
from models import db, Match, Notification, Registration, SystemSettings


class TestPlayerDashboard:
    def test_dashboard_lists_open_tournaments(self, authenticated_player, tournament):
        response = authenticated_player.get('/dashboard')
        assert response.status_code == 200
        assert b'Test Cup' in response.data

    def test_index_redirects_logged_in_player(self, authenticated_player):
        response = authenticated_player.get('/')
        assert response.status_code == 302
        assert response.location.endswith('/dashboard')


class TestTournamentPage:
    def test_page_renders_header_and_meta(self, authenticated_player, tournament):
        response = authenticated_player.get(f'/dashboard/tournaments/{tournament.id}')
        assert response.status_code == 200
        assert b'Test Cup - GOALDEN Tournament' in response.data
        assert b'og:title' in response.data
        assert b'data-share-url' in response.data
        assert b'0/8' in response.data
        assert b'Register' in response.data

    def test_missing_tournament_redirects(self, authenticated_player):
        response = authenticated_player.get('/dashboard/tournaments/999')
        assert response.status_code == 302
        assert response.location.endswith('/dashboard')

    def test_registered_player_sees_withdraw(self, authenticated_player, tournament, player, enroll):
        enroll(tournament, [player])
        response = authenticated_player.get(f'/dashboard/tournaments/{tournament.id}')
        assert b'Withdraw' in response.data
        assert b'1/8' in response.data


class TestRegistration:
    def test_register_for_free_tournament(self, authenticated_player, tournament, player):
        response = authenticated_player.post(
            f'/dashboard/tournaments/{tournament.id}/register', follow_redirects=True
        )
        assert response.status_code == 200
        assert b'confirmed' in response.data
        registration = Registration.query.filter_by(tournament_id=tournament.id, user_id=player.id).first()
        assert registration.status == 'confirmed'

    def test_register_for_paid_tournament(self, authenticated_player, paid_tournament, player):
        response = authenticated_player.post(
            f'/dashboard/tournaments/{paid_tournament.id}/register', follow_redirects=True
        )
        assert b'An admin will confirm your entry' in response.data
        registration = paid_tournament.registration_for(player.id)
        assert registration.status == 'registered'

    def test_register_twice_flashes_error(self, authenticated_player, tournament, player, enroll):
        enroll(tournament, [player])
        response = authenticated_player.post(
            f'/dashboard/tournaments/{tournament.id}/register', follow_redirects=True
        )
        assert b'You are already registered for this tournament.' in response.data

    def test_register_blocked_when_disabled(self, authenticated_player, tournament, admin):
        SystemSettings.save({'platform': {'registration_enabled': False}}, actor=admin)
        db.session.commit()
        response = authenticated_player.post(
            f'/dashboard/tournaments/{tournament.id}/register', follow_redirects=True
        )
        assert b'Registration is currently disabled.' in response.data

    def test_withdraw(self, authenticated_player, tournament, player, enroll):
        registration = enroll(tournament, [player])[0]
        response = authenticated_player.post(f'/dashboard/tournaments/{tournament.id}/withdraw')
        assert response.status_code == 302
        db.session.expire_all()
        assert db.session.get(Registration, registration.id).status == 'cancelled'

    def test_withdraw_without_registration(self, authenticated_player, tournament):
        response = authenticated_player.post(
            f'/dashboard/tournaments/{tournament.id}/withdraw', follow_redirects=True
        )
        assert b'You are not registered for this tournament.' in response.data


class TestMatchRoutes:
    @pytest.fixture
    def live_match(self, tournament, player, player2, enroll):
        enroll(tournament, [player, player2])
        start_tournament(tournament)
        db.session.commit()
        return tournament.matches[0]

    def test_start_match(self, authenticated_player, live_match):
        response = authenticated_player.post(f'/matches/{live_match.id}/start')
        assert response.status_code == 302
        db.session.expire_all()
        assert db.session.get(Match, live_match.id).status == 'ongoing'

    def test_first_submission_waits_for_opponent(self, authenticated_player, live_match):
        response = authenticated_player.post(
            f'/matches/{live_match.id}/submit',
            data={'player1_score': '3', 'player2_score': '1'},
            follow_redirects=True,
        )
        assert b'Waiting for your opponent to confirm.' in response.data

    def test_invalid_score_flashes_error(self, authenticated_player, live_match):
        response = authenticated_player.post(
            f'/matches/{live_match.id}/submit',
            data={'player1_score': '2', 'player2_score': '2'},
            follow_redirects=True,
        )
        assert b'Elimination matches cannot end in a draw.' in response.data

    def test_active_match_form_shown(self, authenticated_player, live_match, tournament):
        authenticated_player.post(f'/matches/{live_match.id}/start')
        response = authenticated_player.get(f'/dashboard/tournaments/{tournament.id}')
        assert b'Submit score' in response.data


class TestNotifications:
    def test_notifications_page(self, authenticated_player, player):
        player.notify('Welcome aboard', commit=True)
        response = authenticated_player.get('/notifications')
        assert response.status_code == 200
        assert b'Welcome aboard' in response.data

    def test_mark_read(self, authenticated_player, player):
        note = player.notify('Read me', commit=True)
        authenticated_player.post(f'/notifications/{note.id}/read')
        db.session.expire_all()
        assert db.session.get(Notification, note.id).is_read is True

    def test_mark_all_read(self, authenticated_player, player):
        player.notify('One', commit=True)
        player.notify('Two', commit=True)
        authenticated_player.post('/notifications/read-all')
        db.session.expire_all()
        assert Notification.unread_count(player.id) == 0

    def test_cannot_touch_other_users_notifications(self, authenticated_player, player2):
        note = player2.notify('Private', commit=True)
        response = authenticated_player.post(f'/notifications/{note.id}/read')
        assert response.status_code == 404
