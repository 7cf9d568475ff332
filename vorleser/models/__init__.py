# Import all models here so SQLAlchemy can set up relationships
from vorleser.models.library import Library
from vorleser.models.audiobook import Audiobook, Chapter  # Both live in audiobook.py
from vorleser.models.playstate import Playstate
from vorleser.models.user import User, ApiToken, library_permissions

# This ensures all models are loaded before relationships are configured
__all__ = [
    'Library',
    'Audiobook', 'Chapter',
    'Playstate',
    'User', 'ApiToken', 'library_permissions',
]
