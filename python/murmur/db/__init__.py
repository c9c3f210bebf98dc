"""Database module for Murmur.

Provides engine creation, session management, and ORM models.
"""

from murmur.db.engine import create_db_engine, get_engine
from murmur.db.models import Base, Conversation, Message
from murmur.db.session import create_session_factory, get_db

__all__ = [
    # Engine and session
    "create_db_engine",
    "create_session_factory",
    "get_engine",
    "get_db",
    # Base
    "Base",
    # Models
    "Conversation",
    "Message",
]
