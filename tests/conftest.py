import os

os.environ['DATABASE_URL'] = 'sqlite:///:memory:'

import pytest
from app import app
from models import db, Profile, Registration, Tournament, init_default_data


@pytest.fixture
def flask_app():
    """Create test application with in-memory SQLite database"""
    app.config['TESTING'] = True
    app.config['SECRET_KEY'] = 'test-secret-key'

    with app.app_context():
        db.create_all()
        # Seeds the bootstrap admin (admin@goalden.local)
        init_default_data()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(flask_app):
    """Test client"""
    return flask_app.test_client()


@pytest.fixture
def admin(flask_app):
    return Profile.query.filter_by(email='admin@goalden.local').first()


def _make_profile(email, name, password='Player@123', role='player'):
    profile = Profile(email=email, full_name=name, role=role)
    profile.set_password(password)
    db.session.add(profile)
    db.session.commit()
    return profile


@pytest.fixture
def player(flask_app):
    """Create a test player"""
    return _make_profile('player@test.com', 'Test Player')


@pytest.fixture
def player2(flask_app):
    return _make_profile('player2@test.com', 'Second Player')


@pytest.fixture
def make_players(flask_app):
    """Factory for a batch of numbered players"""
    def factory(count, start=1):
        return [
            _make_profile(f'p{idx}@test.com', f'Player {idx}')
            for idx in range(start, start + count)
        ]
    return factory


@pytest.fixture
def tournament(flask_app, admin):
    """Free single elimination tournament open for registration"""
    tournament = Tournament(
        name='Test Cup',
        format='single_elimination',
        max_slots=8,
        entry_fee=0,
        prize_pool=5000,
        status='registration',
        created_by=admin.id,
    )
    db.session.add(tournament)
    db.session.commit()
    return tournament


@pytest.fixture
def paid_tournament(flask_app, admin):
    tournament = Tournament(
        name='Paid Cup',
        format='single_elimination',
        max_slots=4,
        entry_fee=200,
        prize_pool=1000,
        status='registration',
        created_by=admin.id,
    )
    db.session.add(tournament)
    db.session.commit()
    return tournament


@pytest.fixture
def enroll(flask_app):
    """Confirm a list of players into a tournament, in order"""
    def factory(tournament, players):
        registrations = []
        for player in players:
            registration = Registration(tournament=tournament, player=player, status='confirmed')
            db.session.add(registration)
            db.session.flush()
            registrations.append(registration)
        db.session.commit()
        return registrations
    return factory


@pytest.fixture
def authenticated_admin(client, admin):
    """Client logged in as the bootstrap admin"""
    with client.session_transaction() as sess:
        sess['user_id'] = admin.id
        sess['role'] = 'admin'
    return client


@pytest.fixture
def authenticated_player(client, player):
    """Client logged in as a player"""
    with client.session_transaction() as sess:
        sess['user_id'] = player.id
        sess['role'] = 'player'
    return client
