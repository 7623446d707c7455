"""
Presence registry: who is currently in the room.

Every presence transition (arrival or departure) changes the participants
table and appends a status message to the log in the same transaction, so a
reader never sees a participant without its arrival event, or an eviction
without its departure event. Status messages carry a unique transition key
so a retried transition cannot append a second event.
"""

import logging
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chatroom.config import settings
from chatroom.errors import NameConflict, NotFound, ValidationError
from chatroom.models import Participant
from chatroom.storage import STATUS, new_message
from chatroom.utils import Clock, format_clock_time, now_ms, sanitize_text

logger = logging.getLogger(__name__)

ARRIVAL_TEXT = "entered the room"
DEPARTURE_TEXT = "left the room"

JOINED = "joined"
LEFT = "left"


class PresenceRegistry:
    """
    Tracks active participants and their last heartbeat.

    Args:
        clock: Returns the current time in epoch milliseconds
        stale_after_ms: Heartbeat age after which a participant is evicted
        broadcast_target: Recipient used for status messages
        time_format: strftime format of the human-readable message time
    """

    def __init__(
        self,
        clock: Clock = now_ms,
        stale_after_ms: Optional[int] = None,
        broadcast_target: Optional[str] = None,
        time_format: Optional[str] = None,
    ) -> None:
        self.clock = clock
        self.stale_after_ms = stale_after_ms if stale_after_ms is not None else settings.STALE_AFTER_MS
        self.broadcast_target = broadcast_target or settings.BROADCAST_TARGET
        self.time_format = time_format or settings.TIME_FORMAT

    def now(self) -> int:
        return self.clock()

    def format_time(self, timestamp_ms: int) -> str:
        return format_clock_time(timestamp_ms, self.time_format)

    def transition_key(self, name: str, transition: str, timestamp_ms: int) -> str:
        """
        Idempotency key of a presence transition.

        Two transitions of the same kind for one name are always more than
        `stale_after_ms` apart, so they never share a bucket.
        """
        bucket = timestamp_ms // max(self.stale_after_ms, 1)
        return f"{name}:{transition}:{bucket}"

    def get(self, db: Session, name: str) -> Optional[Participant]:
        return db.get(Participant, name)

    def join(self, db: Session, raw_name) -> Participant:
        """
        Register a participant and announce the arrival.

        Raises:
            ValidationError: The name is empty after sanitization
            NameConflict: An active participant already holds the name
        """
        name = sanitize_text(raw_name)
        if not name:
            raise ValidationError("name must not be empty")

        if self.get(db, name) is not None:
            logger.info(f"Join rejected, name taken: {name}")
            raise NameConflict(f"name already in use: {name}")

        now = self.now()
        participant = Participant(name=name, last_heartbeat=now)
        arrival = new_message(
            from_name=name,
            to_name=self.broadcast_target,
            text=ARRIVAL_TEXT,
            type=STATUS,
            time=self.format_time(now),
            transition_key=self.transition_key(name, JOINED, now),
        )

        try:
            db.add(participant)
            # Participant row first so the name constraint decides a concurrent join
            db.flush()
            db.add(arrival)
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(f"Join lost a concurrent race for name: {name}")
            raise NameConflict(f"name already in use: {name}")
        except Exception:
            db.rollback()
            raise

        logger.info(f"Participant joined: {name}")
        return participant

    def heartbeat(self, db: Session, name: str) -> Participant:
        """
        Refresh a participant's last heartbeat.

        The stored heartbeat never moves backwards.

        Raises:
            NotFound: No active participant holds the name
        """
        now = self.now()
        try:
            db.execute(
                update(Participant)
                .where(Participant.name == name, Participant.last_heartbeat <= now)
                .values(last_heartbeat=now)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        participant = self.get(db, name)
        if participant is None:
            raise NotFound(f"participant not found: {name}")
        db.refresh(participant)
        logger.debug(f"Heartbeat: {name} at {participant.last_heartbeat}")
        return participant

    def find_stale(self, db: Session, now: int) -> list:
        """Participants whose last heartbeat is older than the staleness threshold."""
        cutoff = now - self.stale_after_ms
        return (
            db.query(Participant)
            .filter(Participant.last_heartbeat < cutoff)
            .order_by(Participant.name.asc())
            .all()
        )

    def evict(self, db: Session, name: str, seen_heartbeat: int, now: int) -> bool:
        """
        Remove a stale participant and announce the departure.

        The row is deleted only if its heartbeat is still the one the sweep
        observed and still stale, so a heartbeat committed first always wins.

        Returns:
            True if this call evicted the participant, False if a concurrent
            heartbeat or another sweep got there first
        """
        cutoff = now - self.stale_after_ms
        departure = new_message(
            from_name=name,
            to_name=self.broadcast_target,
            text=DEPARTURE_TEXT,
            type=STATUS,
            time=self.format_time(now),
            transition_key=self.transition_key(name, LEFT, seen_heartbeat),
        )

        try:
            result = db.execute(
                delete(Participant).where(
                    Participant.name == name,
                    Participant.last_heartbeat == seen_heartbeat,
                    Participant.last_heartbeat < cutoff,
                )
            )
            if result.rowcount == 0:
                db.rollback()
                logger.info(f"Eviction skipped, participant refreshed or gone: {name}")
                return False

            db.add(departure)
            db.commit()
        except IntegrityError:
            # The departure was already recorded by an earlier attempt
            db.rollback()
            logger.warning(f"Departure already recorded for {name}, removing participant only")
            db.execute(
                delete(Participant).where(
                    Participant.name == name,
                    Participant.last_heartbeat == seen_heartbeat,
                )
            )
            db.commit()
            return True
        except Exception:
            db.rollback()
            raise

        logger.info(f"Participant evicted: {name} (last heartbeat {seen_heartbeat})")
        return True

    def list(self, db: Session) -> list:
        """Snapshot of all active participants, ordered by name."""
        return db.query(Participant).order_by(Participant.name.asc()).all()
