"""
Database initialization script for deployment
Run with: python init_db.py
"""

from app import app, db
from models import init_default_data


def initialize_database():
    """Initialize database tables and the bootstrap admin"""
    with app.app_context():
        app.logger.info('Creating database tables...')
        db.create_all()

        admin = init_default_data()
        app.logger.info('Bootstrap admin ready: %s', admin.email)


if __name__ == "__main__":
    initialize_database()
