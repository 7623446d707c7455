"""
Session gateway: the request-facing coordinator of the chat room.

Validates and authorizes every request before touching the presence
registry or the message log. The sender identity is the name a caller
claims; it is trusted as-is once it resolves to an active participant.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from chatroom import storage
from chatroom.errors import Forbidden, NotFound, ValidationError
from chatroom.presence import PresenceRegistry
from chatroom.schemas import MessageRequest
from chatroom.utils import sanitize_text

logger = logging.getLogger(__name__)


class SessionGateway:
    def __init__(self, registry: PresenceRegistry) -> None:
        self.registry = registry

    # =========================================================================
    # Presence
    # =========================================================================

    def join(self, db: Session, raw_name):
        return self.registry.join(db, raw_name)

    def list_participants(self, db: Session) -> list:
        return self.registry.list(db)

    def refresh_status(self, db: Session, identity):
        """
        Record a heartbeat for the caller.

        Raises:
            NotFound: The identity is not an active participant
        """
        name = sanitize_text(identity)
        if not name:
            raise NotFound("participant not found")
        return self.registry.heartbeat(db, name)

    # =========================================================================
    # Message Log
    # =========================================================================

    def _require_participant(self, db: Session, identity) -> str:
        sender = sanitize_text(identity)
        if not sender or self.registry.get(db, sender) is None:
            raise ValidationError("sender is not an active participant")
        return sender

    def post_message(self, db: Session, identity, payload: MessageRequest):
        """
        Append a message authored by the caller.

        The author is always the caller; `payload` has already been
        sanitized and validated by MessageRequest.

        Raises:
            ValidationError: The caller is not an active participant
        """
        sender = self._require_participant(db, identity)
        now = self.registry.now()
        return storage.create_message(
            db,
            from_name=sender,
            to_name=payload.to,
            text=payload.text,
            type=payload.type,
            time=self.registry.format_time(now),
        )

    def list_messages(self, db: Session, viewer, limit: Optional[int] = None) -> list:
        """
        Messages visible to `viewer`, oldest first.

        Private messages are visible only to their author and recipient;
        broadcast messages and status events are visible to everyone.
        """
        name = sanitize_text(viewer) or None
        return storage.get_visible_messages(db, name, limit)

    def _authored_message(self, db: Session, sender: str, message_id: str):
        message = storage.get_message_by_id(db, message_id)
        if message is None:
            raise NotFound(f"message not found: {message_id}")
        if message.from_name != sender:
            logger.info(f"{sender} is not the author of message {message_id}")
            raise Forbidden("only the author may change this message")
        if message.type == storage.STATUS:
            raise Forbidden("status events cannot be changed")
        return message

    def edit_message(self, db: Session, identity, message_id: str, payload: MessageRequest):
        """
        Replace the text of one of the caller's messages.

        Only `text` and `time` change; id, author, recipient and type are kept.

        Raises:
            ValidationError: The caller is not an active participant
            NotFound: No message has this id
            Forbidden: The caller is not the author
        """
        sender = self._require_participant(db, identity)
        message = self._authored_message(db, sender, message_id)
        now = self.registry.now()
        return storage.update_message_text(db, message, payload.text, self.registry.format_time(now))

    def delete_message(self, db: Session, identity, message_id: str) -> None:
        """
        Remove one of the caller's messages.

        Raises:
            NotFound: No message has this id
            Forbidden: The caller is not the author
        """
        sender = sanitize_text(identity)
        message = self._authored_message(db, sender, message_id)
        storage.delete_message(db, message)
