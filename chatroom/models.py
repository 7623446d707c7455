"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import BigInteger, Column, Integer, String, Text

from chatroom.storage import Base


class Participant(Base):
    """
    SQLAlchemy model for a participant currently in the room.

    Table: participants
    Primary Key: name (enforces unique names among active participants)
    """
    __tablename__ = "participants"

    name = Column(String, primary_key=True)
    last_heartbeat = Column(BigInteger, nullable=False, index=True)  # epoch milliseconds


class Message(Base):
    """
    SQLAlchemy model for a chat event.

    Table: messages
    Primary Key: seq (insertion order is authoritative)
    """
    __tablename__ = "messages"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True, index=True)
    from_name = Column(String, nullable=False, index=True)
    to_name = Column(String, nullable=False, index=True)
    text = Column(Text, nullable=False)
    type = Column(String, nullable=False, index=True)
    time = Column(String, nullable=False)  # human-readable, not used for ordering
    # Idempotency key of the presence transition that produced a status message
    transition_key = Column(String, nullable=True, unique=True)
