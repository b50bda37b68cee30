"""
state.py
---------
Application state for the read service.

One AppState owns the in-memory restaurant list loaded from the local
store. Consumers get it passed in and call its methods; nothing observes
its fields directly. The list is swapped as a whole on reload, so readers
holding an older snapshot keep a consistent view.
"""

import logging
import threading
from datetime import datetime
from typing import List, Optional

from ingest_service.models import Restaurant

logger = logging.getLogger(__name__)


class AppState:
    """
    Args:
        store: RestaurantStore the restaurants are loaded from
    """

    def __init__(self, store):
        self.store = store
        self._restaurants: List[Restaurant] = []
        self._by_id = {}
        self.last_update_time: Optional[datetime] = None
        self.loaded = False
        self._lock = threading.Lock()

    def load(self) -> int:
        """(Re)load every restaurant from the store."""
        restaurants = self.store.load_all()
        last_sync = self.store.last_sync_time()
        with self._lock:
            self._restaurants = restaurants
            self._by_id = {r.id: r for r in restaurants}
            self.last_update_time = last_sync
            self.loaded = True
        logger.info(f"App state holds {len(restaurants)} restaurants (last sync {last_sync})")
        return len(restaurants)

    def reload_if_changed(self) -> bool:
        """Reload when the store was synced since the last load. Returns True if reloaded."""
        if not self.loaded:
            self.load()
            return True
        last_sync = self.store.last_sync_time()
        if last_sync != self.last_update_time:
            logger.info(f"Store synced at {last_sync}, reloading restaurants")
            self.load()
            return True
        return False

    def snapshot(self) -> List[Restaurant]:
        """The current restaurant list. Callers must not mutate it."""
        with self._lock:
            return self._restaurants

    def get(self, restaurant_id) -> Optional[Restaurant]:
        with self._lock:
            return self._by_id.get(restaurant_id)

    def clear_all(self):
        """Clear the store and the in-memory list."""
        self.store.clear()
        with self._lock:
            self._restaurants = []
            self._by_id = {}
            self.last_update_time = None
        logger.info("Cleared all restaurant data")
