# backend/tanker/repositories/remote/gateway.py
"""
Table gateway for the remote store.

All SQL runs synchronously in a worker thread (one session per call, one
commit per call). Change events collected during the call are published to
the change feed only after the commit succeeded, so subscribers never see a
change that was rolled back.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from sqlalchemy import func, select, table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...core.exceptions import ConflictException, TransientStorageException
from ...core.resolution import OrderedResolver
from ...realtime.change_feed import BroadcastChangeFeed, ChangeEvent
from .database import Base, make_session_factory
from .tables import ALL_TABLES, UserRow

R = TypeVar("R")

Work = Callable[[Session, List[ChangeEvent]], R]

logger = logging.getLogger(__name__)


class RemoteGateway:
    def __init__(self, engine: Engine, feed: Optional[BroadcastChangeFeed] = None):
        self.engine = engine
        self.session_factory = make_session_factory(engine)
        self.feed = feed

    async def run(self, operation: str, work: Work[R]) -> R:
        """
        Execute `work(session, events)` in a worker thread inside one transaction.

        Raises:
            ConflictException: On a unique or foreign-key constraint violation
            TransientStorageException: On any other database failure
        """
        events: List[ChangeEvent] = []
        result = await asyncio.to_thread(self._execute, operation, work, events)
        await self._publish(events)
        return result

    def _execute(self, operation: str, work: Work[R], events: List[ChangeEvent]) -> R:
        with self.session_factory() as session:
            try:
                result = work(session, events)
                session.commit()
                return result
            except IntegrityError as e:
                session.rollback()
                events.clear()
                logger.info("Constraint violation in %s: %s", operation, str(e.orig))
                raise ConflictException(
                    "Record conflicts with existing data",
                    code="CONFLICT",
                    details={"operation": operation, "reason": str(e.orig)},
                ) from e
            except SQLAlchemyError as e:
                session.rollback()
                events.clear()
                logger.error("Database error in %s: %s", operation, str(e))
                raise TransientStorageException(
                    f"Remote store operation failed: {operation}", operation=operation
                ) from e
            except Exception:
                session.rollback()
                events.clear()
                raise

    async def _publish(self, events: Sequence[ChangeEvent]) -> None:
        if not events or self.feed is None:
            return
        for change in events:
            try:
                await self.feed.publish(change)
            except Exception as e:
                # The write is committed; subscribers catch up on their next change
                logger.error("Failed to publish %s change on %s: %s", change.type.value, change.table, str(e))

    async def create_schema(self) -> None:
        await asyncio.to_thread(Base.metadata.create_all, self.engine)

    async def row_counts(self, tables: Sequence[str] = ALL_TABLES) -> Dict[str, int]:
        def work(session: Session, events: List[ChangeEvent]) -> Dict[str, int]:
            return {
                name: session.scalar(select(func.count()).select_from(table(name))) or 0
                for name in tables
            }

        return await self.run("row_counts", work)


def user_id_resolver(session: Session) -> OrderedResolver:
    """External user id -> users.id: linked identity first, then the row id."""
    return OrderedResolver(
        [
            ("auth_id", lambda key: session.scalar(select(UserRow.id).where(UserRow.auth_id == key))),
            ("id", lambda key: session.scalar(select(UserRow.id).where(UserRow.id == key))),
        ]
    )


def external_ids(session: Session, internal_ids: Sequence[Optional[str]]) -> Dict[str, str]:
    """users.id -> id callers see, for every id that exists."""
    wanted = {i for i in internal_ids if i}
    if not wanted:
        return {}
    rows = session.execute(select(UserRow.id, UserRow.auth_id).where(UserRow.id.in_(wanted)))
    return {row.id: row.auth_id or row.id for row in rows}
