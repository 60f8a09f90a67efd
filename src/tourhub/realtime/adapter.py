"""Database-backed Socket.IO client manager.

Several gateway processes share presence and delivery by relaying every
manager message (emits, room joins, disconnects) through the
``realtime_event`` table. Each process appends its outgoing messages and
polls for rows written by the other hosts, which the python-socketio
pub/sub base class then re-emits to the local sockets.

Row ids are assigned when a row is inserted but only become visible when
its transaction commits, so a lower id can appear after a higher one was
read. Every poll therefore re-reads a trailing window of ids below the
cursor and skips the ids it has already relayed.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from socketio.async_pubsub_manager import AsyncPubSubManager
from sqlalchemy import delete, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from tourhub.core.settings import settings
from tourhub.db.time import seconds_ago
from tourhub.models import RealtimeEvent

logger = logging.getLogger(__name__)

# Prune expired relay rows once every this many polls.
PRUNE_EVERY_POLLS = 120
FETCH_BATCH_SIZE = 100
# Ids below the cursor that are re-read on every poll.
RESCAN_WINDOW = 500
MAX_RETRY_DELAY_SECONDS = 30.0


class DatabaseClientManager(AsyncPubSubManager):
    """Socket.IO pub/sub manager that uses a relational table as the relay."""

    name = "asyncdatabase"

    def __init__(
        self,
        engine: Engine,
        channel: str | None = None,
        write_only: bool = False,
        logger: logging.Logger | None = None,
        poll_interval: float | None = None,
        retention_seconds: int | None = None,
    ) -> None:
        super().__init__(
            channel=channel or settings.realtime_channel,
            write_only=write_only,
            logger=logger,
        )
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        self.poll_interval = max(
            0.05,
            float(poll_interval if poll_interval is not None else settings.realtime_poll_interval_seconds),
        )
        self.retention_seconds = (
            retention_seconds
            if retention_seconds is not None
            else settings.realtime_event_retention_seconds
        )
        self.cursor: int | None = None
        self._seen_ids: set[int] = set()
        self._polls = 0
        self._check_connection()

    def _check_connection(self) -> None:
        """Verify the database is reachable and the relay table exists."""
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        RealtimeEvent.__table__.create(bind=self.engine, checkfirst=True)

    async def _publish(self, data: Any) -> None:
        payload = json.dumps(data, default=str)
        await asyncio.to_thread(self._insert_event, payload)

    def _insert_event(self, payload: str) -> None:
        with self._session_factory() as db:
            db.add(RealtimeEvent(channel=self.channel, host_id=self.host_id, payload=payload))
            db.commit()

    async def _listen(self) -> AsyncIterator[dict[str, Any]]:
        failures = 0
        while True:
            try:
                if self.cursor is None:
                    await asyncio.to_thread(self.prime)
                events = await asyncio.to_thread(self._fetch_since, self._scan_floor())
            except SQLAlchemyError as exc:
                failures += 1
                delay = self.retry_delay(failures)
                logger.warning(
                    "Realtime relay poll failed (attempt %d), retrying in %.2fs: %s",
                    failures,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)
                continue

            if failures:
                logger.info("Realtime relay poll recovered after %d failed attempts", failures)
                failures = 0

            for event_id, payload in events:
                if event_id in self._seen_ids:
                    continue
                self._seen_ids.add(event_id)
                self.cursor = max(self.cursor or 0, event_id)
                try:
                    message = json.loads(payload)
                except ValueError:
                    logger.warning("Skipping undecodable realtime event %s", event_id)
                    continue
                yield message

            floor = self._scan_floor()
            self._seen_ids = {event_id for event_id in self._seen_ids if event_id > floor}

            self._polls += 1
            if self._polls % PRUNE_EVERY_POLLS == 0:
                try:
                    await asyncio.to_thread(self.prune)
                except SQLAlchemyError as exc:
                    logger.warning("Failed to prune realtime events: %s", exc)

            if len(events) < RESCAN_WINDOW + FETCH_BATCH_SIZE:
                await asyncio.sleep(self.poll_interval)

    def retry_delay(self, failures: int) -> float:
        """Exponential backoff for consecutive failed polls, capped."""
        return min(self.poll_interval * 2 ** failures, MAX_RETRY_DELAY_SECONDS)

    def prime(self) -> None:
        """Start listening after the newest row; earlier rows are history."""
        latest = self._latest_event_id()
        with self._session_factory() as db:
            recent = db.execute(
                select(RealtimeEvent.id).where(
                    RealtimeEvent.channel == self.channel,
                    RealtimeEvent.id > latest - RESCAN_WINDOW,
                    RealtimeEvent.id <= latest,
                )
            ).scalars()
            self._seen_ids = set(recent)
        self.cursor = latest

    def _scan_floor(self) -> int:
        return max(0, (self.cursor or 0) - RESCAN_WINDOW)

    def _latest_event_id(self) -> int:
        with self._session_factory() as db:
            latest = db.execute(
                select(func.max(RealtimeEvent.id)).where(RealtimeEvent.channel == self.channel)
            ).scalar()
            return int(latest or 0)

    def _fetch_since(self, after_id: int) -> list[tuple[int, str]]:
        with self._session_factory() as db:
            rows = db.execute(
                select(RealtimeEvent.id, RealtimeEvent.payload)
                .where(
                    RealtimeEvent.channel == self.channel,
                    RealtimeEvent.id > after_id,
                    RealtimeEvent.host_id != self.host_id,
                )
                .order_by(RealtimeEvent.id)
                .limit(RESCAN_WINDOW + FETCH_BATCH_SIZE)
            ).all()
            return [(row.id, row.payload) for row in rows]

    def prune(self) -> int:
        """Delete relay rows older than the retention window."""
        cutoff = seconds_ago(self.retention_seconds)
        with self._session_factory() as db:
            result = db.execute(
                delete(RealtimeEvent).where(
                    RealtimeEvent.channel == self.channel,
                    RealtimeEvent.created_at < cutoff,
                )
            )
            db.commit()
        removed = int(result.rowcount or 0)
        if removed:
            logger.debug("Pruned %d expired realtime events", removed)
        return removed


def build_client_manager(engine: Engine) -> DatabaseClientManager | None:
    """Create the cross-process manager, or None to run single-process.

    Setup failures are logged and never fatal: the gateway keeps working
    for sockets connected to this process.
    """
    if not settings.realtime_db_adapter_enabled:
        logger.info("Realtime database adapter disabled; running single-process")
        return None

    try:
        manager = DatabaseClientManager(engine)
    except SQLAlchemyError:
        logger.exception("Error setting up realtime database adapter; running single-process")
        return None

    logger.info("Realtime database adapter set on channel %s", manager.channel)
    return manager
