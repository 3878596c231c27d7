"""Durable session store backed by SQLAlchemy.

Thin layer between the session manager and the ORM models. Writes are
append-only with respect to turns: only turns newer than the highest
stored sequence are inserted, so replaying a write is harmless.
"""

import json
import logging
from datetime import datetime
from typing import Callable, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DbSession

from taskrelay.db.models import RelaySession, RelayTurn
from taskrelay.orchestrator.models.analysis import Intent
from taskrelay.orchestrator.models.routing import Category, Skill
from taskrelay.orchestrator.models.session import Session, Turn

logger = logging.getLogger(__name__)


class DurableSessionStore(Protocol):
    """Contract for the durable session tier."""

    def read(self, tenant_id: str, conversation_id: str) -> Session | None:
        """Load a session, or None when it was never stored."""
        ...

    def write(self, tenant_id: str, conversation_id: str, session: Session) -> bool:
        """Persist a session. Returns False on failure instead of raising."""
        ...


def _turn_to_row(turn: Turn) -> RelayTurn:
    return RelayTurn(
        sequence=turn.sequence,
        text=turn.text,
        intent=turn.intent.value,
        entity_signature=json.dumps([list(pair) for pair in turn.entity_signature]),
        category=turn.category.value,
        skills=json.dumps(sorted(skill.value for skill in turn.skills)),
        result_summary=turn.result_summary,
        channel=turn.channel,
        created_at=turn.timestamp.isoformat(),
    )


def _row_to_turn(row: RelayTurn) -> Turn:
    return Turn(
        sequence=row.sequence,
        text=row.text,
        intent=Intent(row.intent),
        entity_signature=tuple(
            (str(pair[0]), str(pair[1])) for pair in json.loads(row.entity_signature)
        ),
        category=Category(row.category),
        skills=frozenset(Skill(value) for value in json.loads(row.skills)),
        result_summary=row.result_summary,
        channel=row.channel,
        timestamp=datetime.fromisoformat(row.created_at),
    )


class SqlSessionStore:
    """SQLAlchemy implementation of the durable session store.

    Args:
        session_factory: Callable returning a new SQLAlchemy session
            (e.g. ``SessionLocal``).
    """

    def __init__(self, session_factory: Callable[[], DbSession]) -> None:
        self._session_factory = session_factory

    def _find(self, db: DbSession, tenant_id: str, conversation_id: str) -> RelaySession | None:
        return db.execute(
            select(RelaySession).where(
                RelaySession.tenant_id == tenant_id,
                RelaySession.conversation_id == conversation_id,
            )
        ).scalar_one_or_none()

    def read(self, tenant_id: str, conversation_id: str) -> Session | None:
        """Load a session with all of its turns.

        Args:
            tenant_id: Tenant identifier.
            conversation_id: Conversation identifier.

        Returns:
            The session, or None if not stored.
        """
        with self._session_factory() as db:
            row = self._find(db, tenant_id, conversation_id)
            if row is None:
                return None
            return Session(
                tenant_id=row.tenant_id,
                conversation_id=row.conversation_id,
                turns=[_row_to_turn(t) for t in row.turns],
                created_at=datetime.fromisoformat(row.created_at),
                last_active=datetime.fromisoformat(row.last_active),
                continuity_score=row.continuity_score,
            )

    def max_sequence(self, tenant_id: str, conversation_id: str) -> int:
        """Highest stored turn sequence for a session; 0 when none."""
        with self._session_factory() as db:
            row = self._find(db, tenant_id, conversation_id)
            if row is None:
                return 0
            value = db.execute(
                select(func.max(RelayTurn.sequence)).where(RelayTurn.session_id == row.id)
            ).scalar()
            return value or 0

    def write(self, tenant_id: str, conversation_id: str, session: Session) -> bool:
        """Persist session metadata and any turns not yet stored.

        Args:
            tenant_id: Tenant identifier.
            conversation_id: Conversation identifier.
            session: Session to persist.

        Returns:
            True on success, False if the database rejected the write.
        """
        with self._session_factory() as db:
            try:
                row = self._find(db, tenant_id, conversation_id)
                if row is None:
                    row = RelaySession(
                        tenant_id=tenant_id,
                        conversation_id=conversation_id,
                        created_at=session.created_at.isoformat(),
                    )
                    db.add(row)
                    db.flush()
                    stored_max = 0
                else:
                    stored_max = db.execute(
                        select(func.max(RelayTurn.sequence)).where(
                            RelayTurn.session_id == row.id
                        )
                    ).scalar() or 0

                new_turns = [t for t in session.turns if t.sequence > stored_max]
                for turn in new_turns:
                    turn_row = _turn_to_row(turn)
                    turn_row.session_id = row.id
                    db.add(turn_row)

                row.continuity_score = session.continuity_score
                row.last_active = session.last_active.isoformat()
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning(
                    "Durable write failed for %s/%s: %s", tenant_id, conversation_id, e
                )
                return False
        logger.debug(
            "Persisted %d new turn(s) for %s/%s",
            len(new_turns),
            tenant_id,
            conversation_id,
        )
        return True
