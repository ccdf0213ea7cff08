"""
Database layer: SQLAlchemy engine/session management and models.
"""

from carbonledger.db.base import Base, get_engine, get_session, init_db, reset_engine

__all__ = ["Base", "get_engine", "get_session", "init_db", "reset_engine"]
