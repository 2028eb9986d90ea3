"""
Blueprints package for the GOALDEN application
Contains modular route blueprints for different features
"""

from .auth import auth_bp
from .admin import admin_bp
from .communication import communication_bp
from .system import system_bp
from .player import player_bp

__all__ = ['auth_bp', 'admin_bp', 'communication_bp', 'system_bp', 'player_bp']
