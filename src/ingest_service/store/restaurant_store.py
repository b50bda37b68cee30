"""
restaurant_store.py
--------------------
Local store for consolidated restaurants.

Every refresh replaces the whole restaurant set; there is no diffing or
incremental update. The time of the last successful refresh is kept in the
sync_state table so callers can decide when the data is stale.

The same row carries the refresh claim. Only the holder of the claim may
write restaurants, so two processes sharing one database never refresh at
the same time.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ingest_service import config
from ingest_service.db.models import RestaurantRow, SyncState, create_tables
from ingest_service.errors import StorageError
from ingest_service.models import Restaurant
from ingest_service.snapshot import load_snapshot

logger = logging.getLogger(__name__)

SYNC_STATE_ID = 1


class RestaurantStore:
    """
    Reads and writes restaurants through a SQLAlchemy session factory.

    Usage:
        store = RestaurantStore(SessionLocal, engine)
        store.replace_all(restaurants)
        store.load_all()
    """

    def __init__(self, session_factory, engine=None):
        self.session_factory = session_factory
        if engine is not None:
            create_tables(engine)

    def _write(self, action, work):
        """Run work(session) in one transaction, wrapping database errors."""
        session = self.session_factory()
        try:
            result = work(session)
            session.commit()
            return result
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise StorageError(f"Failed to {action}: {e}") from e
        finally:
            session.close()

    def _read(self, action, work):
        session = self.session_factory()
        try:
            return work(session)
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action}: {e}")
            raise StorageError(f"Failed to {action}: {e}") from e
        finally:
            session.close()

    # Reads

    def load_all(self) -> List[Restaurant]:
        rows = self._read(
            "load restaurants",
            lambda session: session.scalars(select(RestaurantRow).order_by(RestaurantRow.id)).all(),
        )
        restaurants = [row.to_restaurant() for row in rows]
        logger.info(f"Loaded {len(restaurants)} restaurants from storage")
        return restaurants

    def get(self, restaurant_id) -> Optional[Restaurant]:
        row = self._read(
            f"load restaurant {restaurant_id}",
            lambda session: session.get(RestaurantRow, restaurant_id),
        )
        return row.to_restaurant() if row is not None else None

    def count(self) -> int:
        return self._read(
            "count restaurants",
            lambda session: session.scalar(select(func.count()).select_from(RestaurantRow)),
        )

    def is_empty(self) -> bool:
        return self.count() == 0

    def last_sync_time(self) -> Optional[datetime]:
        def work(session):
            state = session.get(SyncState, SYNC_STATE_ID)
            return state.last_sync_time if state is not None else None
        return self._read("read last sync time", work)

    # Writes

    def replace_all(self, restaurants: Iterable[Restaurant], synced_at: Optional[datetime] = None):
        """Clear the table and write restaurants plus the sync time in one transaction."""
        restaurants = list(restaurants)
        synced_at = synced_at or datetime.now()

        def work(session):
            session.execute(delete(RestaurantRow))
            session.add_all(RestaurantRow.from_restaurant(r) for r in restaurants)
            self._set_sync_time(session, synced_at)

        self._write("replace restaurants", work)
        logger.info(f"Saved {len(restaurants)} restaurants to storage")

    def begin_refresh(self):
        """Drop all restaurants ahead of a paged refresh. The sync time is kept."""
        self._write("clear restaurants", lambda session: session.execute(delete(RestaurantRow)))
        logger.info("Cleared restaurants for a full refresh")

    def append(self, restaurants: Iterable[Restaurant]) -> int:
        """Write one page of restaurants as its own committed checkpoint."""
        rows = [RestaurantRow.from_restaurant(r) for r in restaurants]
        self._write("save restaurant page", lambda session: session.add_all(rows))
        logger.info(f"Saved {len(rows)} restaurants to storage")
        return len(rows)

    def mark_synced(self, synced_at: Optional[datetime] = None):
        synced_at = synced_at or datetime.now()
        self._write("record sync time", lambda session: self._set_sync_time(session, synced_at))

    def clear(self):
        """Remove every restaurant and forget the last sync time. A refresh claim is kept."""
        def work(session):
            session.execute(delete(RestaurantRow))
            session.execute(
                update(SyncState)
                .where(SyncState.id == SYNC_STATE_ID)
                .values(last_sync_time=None)
            )
        self._write("clear all data", work)
        logger.info("Cleared all restaurant data")

    # Refresh claim

    def _ensure_sync_state(self):
        session = self.session_factory()
        try:
            if session.get(SyncState, SYNC_STATE_ID) is None:
                session.add(SyncState(id=SYNC_STATE_ID))
                session.commit()
        except IntegrityError:
            # Another process inserted the row first
            session.rollback()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to create sync state: {e}")
            raise StorageError(f"Failed to create sync state: {e}") from e
        finally:
            session.close()

    def claim_refresh(self, owner: str, now: Optional[datetime] = None,
                      stale_after: Optional[timedelta] = None) -> bool:
        """
        Try to take the store-wide refresh claim for owner.

        The claim is taken with one conditional UPDATE, so only one caller
        can win it even across processes. A claim older than stale_after
        is taken over. Returns True if owner now holds the claim.
        """
        now = now or datetime.now()
        if stale_after is None:
            stale_after = timedelta(seconds=config.REFRESH_CLAIM_TIMEOUT_SECONDS)
        self._ensure_sync_state()

        def work(session):
            result = session.execute(
                update(SyncState)
                .where(SyncState.id == SYNC_STATE_ID)
                .where(or_(
                    SyncState.refresh_owner.is_(None),
                    SyncState.refresh_started_at < now - stale_after,
                ))
                .values(refresh_owner=owner, refresh_started_at=now)
            )
            return result.rowcount == 1

        claimed = self._write("claim refresh", work)
        if claimed:
            logger.info(f"Refresh {owner} claimed the store")
        else:
            logger.warning(f"Refresh {owner} rejected, another refresh holds the store")
        return claimed

    def release_refresh(self, owner: str):
        """Drop the refresh claim if owner still holds it."""
        self._write("release refresh", lambda session: session.execute(
            update(SyncState)
            .where(SyncState.id == SYNC_STATE_ID)
            .where(SyncState.refresh_owner == owner)
            .values(refresh_owner=None, refresh_started_at=None)
        ))

    def is_refreshing(self) -> bool:
        """True while any process holds the refresh claim."""
        def work(session):
            state = session.get(SyncState, SYNC_STATE_ID)
            return state is not None and state.refresh_owner is not None
        return self._read("read refresh claim", work)

    @staticmethod
    def _set_sync_time(session, synced_at):
        state = session.get(SyncState, SYNC_STATE_ID)
        if state is None:
            session.add(SyncState(id=SYNC_STATE_ID, last_sync_time=synced_at))
        else:
            state.last_sync_time = synced_at

    # First run

    def bootstrap_from_snapshot(self, path) -> int:
        """
        Seed an untouched store from the bundled snapshot file.

        Only runs when there are no restaurants and no sync time yet.
        Returns the number of restaurants written (0 if skipped).
        """
        if self.last_sync_time() is not None or not self.is_empty():
            return 0

        restaurants = load_snapshot(path)
        if not restaurants:
            return 0

        self.replace_all(restaurants)
        logger.info(f"Loaded {len(restaurants)} restaurants from bundled data")
        return len(restaurants)
