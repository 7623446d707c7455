import logging
import uuid
from typing import Generator, Optional

from sqlalchemy import create_engine, inspect, or_, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from chatroom.config import settings

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to be shared between
# request handlers and the sweeper thread
_url = make_url(settings.DATABASE_URL)
_connect_args = {"check_same_thread": False} if _url.drivername.startswith("sqlite") else {}

# One long-lived pooled engine; every logical operation checks out its own session
engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args,
    pool_pre_ping=True,
    echo=False,
)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()

# Message types
MESSAGE = "message"
PRIVATE_MESSAGE = "private_message"
STATUS = "status"


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from chatroom.models import Message, Participant  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and both tables exist, False otherwise.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            inspector = inspect(conn)
            for table in ("participants", "messages"):
                if not inspector.has_table(table):
                    logger.error(f"Database schema not applied: '{table}' table not found")
                    return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Message Log Functions
# =============================================================================

def new_message(
    from_name: str,
    to_name: str,
    text: str,
    type: str,
    time: str,
    transition_key: Optional[str] = None,
):
    """
    Build an unsaved Message row with a fresh opaque id.

    Callers add it to their own session so it can share a transaction
    with a registry change.
    """
    from chatroom.models import Message

    return Message(
        id=uuid.uuid4().hex,
        from_name=from_name,
        to_name=to_name,
        text=text,
        type=type,
        time=time,
        transition_key=transition_key,
    )


def create_message(db: Session, from_name: str, to_name: str, text: str, type: str, time: str):
    """
    Append a client-authored message to the log.

    Returns:
        The stored Message
    """
    message = new_message(from_name, to_name, text, type, time)
    logger.info(f"Creating message: id={message.id}, from={from_name}, to={to_name}, type={type}")
    try:
        db.add(message)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return message


def get_message_by_id(db: Session, message_id: str):
    """
    Retrieve a message by its ID.

    Returns:
        Message object if found, None otherwise
    """
    from chatroom.models import Message

    result = db.query(Message).filter(Message.id == message_id).first()
    logger.debug(f"Message lookup {message_id}: {'found' if result else 'not found'}")
    return result


def get_visible_messages(db: Session, viewer: Optional[str], limit: Optional[int] = None) -> list:
    """
    Retrieve the messages a viewer may see, in insertion order.

    A viewer sees everything they sent or received plus every public
    message and status event. When `limit` is given, only the last `limit`
    entries of that filtered sequence are returned.

    Args:
        db: Database session
        viewer: Sanitized identity of the viewer (None sees public traffic only)
        limit: Optional positive number of trailing messages

    Returns:
        List of Message objects ordered oldest first
    """
    from chatroom.models import Message

    conditions = [Message.type == MESSAGE, Message.type == STATUS]
    if viewer:
        conditions += [Message.from_name == viewer, Message.to_name == viewer]
    query = db.query(Message).filter(or_(*conditions))

    if limit is None:
        return query.order_by(Message.seq.asc()).all()

    # Take the newest `limit` rows, then restore chronological order
    newest = query.order_by(Message.seq.desc()).limit(limit).all()
    newest.reverse()
    return newest


def update_message_text(db: Session, message, text: str, time: str):
    """Replace the text and time of a stored message, keeping id, author and recipient."""
    logger.info(f"Updating message text: id={message.id}")
    try:
        message.text = text
        message.time = time
        db.commit()
    except Exception:
        db.rollback()
        raise
    return message


def delete_message(db: Session, message) -> None:
    """Permanently remove a message from the log."""
    logger.info(f"Deleting message: id={message.id}")
    try:
        db.delete(message)
        db.commit()
    except Exception:
        db.rollback()
        raise
