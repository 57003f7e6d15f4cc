"""Database layer: declarative base, engine/session management, listeners."""
