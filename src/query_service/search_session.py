"""
search_session.py
------------------
Incremental, paged search over one borough.

Filtering and sorting run on a worker thread. Every new search bumps a
generation counter and cancels the previous task; when a task finishes,
its results are only applied if its generation is still the latest one.

The read API keeps one SearchSession per client in a SearchSessionRegistry,
so a client typing into a search box gets the results of its newest query
and never those of a query it has already replaced.
"""

import logging
import threading
import uuid
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

from ingest_service.models import Restaurant
from query_service.processors.restaurant_query import filter_restaurants, sort_restaurants

logger = logging.getLogger(__name__)


class SearchSession:
    """
    Usage:
        session = SearchSession(state, executor)
        session.search("Manhattan", "pizza").result()
        first_page = session.results
        session.load_more()
    """

    def __init__(self, state, executor: Optional[ThreadPoolExecutor] = None, page_size: int = 50):
        self.state = state
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="search")
        self.page_size = page_size

        self.borough: Optional[str] = None
        self.search_text = ""
        self.results: List[Restaurant] = []
        self.has_more = False

        self._matches: List[Restaurant] = []
        self._generation = 0
        self._future = None
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def total(self) -> int:
        return len(self._matches)

    def search(self, borough: Optional[str], search_text: str = ""):
        """
        Start a new search, superseding any search still running.
        Returns the Future of the worker task; its result is True if the
        task's results were applied.
        """
        return self.start(borough, search_text)[1]

    def start(self, borough: Optional[str], search_text: str = ""):
        """Like search(), but also returns the generation of the new search."""
        with self._lock:
            self._generation += 1
            generation = self._generation
            if self._future is not None:
                self._future.cancel()
            self.borough = borough
            self.search_text = search_text
            self._future = self.executor.submit(self._run, generation, borough, search_text)
            return generation, self._future

    def _run(self, generation, borough, search_text):
        restaurants = self.state.snapshot()
        matches = sort_restaurants(filter_restaurants(restaurants, borough, search_text), search_text)
        return self._apply(generation, matches)

    def _apply(self, generation, matches) -> bool:
        """Publish results from a finished task unless a newer search was issued."""
        with self._lock:
            if generation != self._generation:
                logger.debug(f"Discarding results of superseded search {generation}")
                return False
            self._matches = matches
            self.results = matches[:self.page_size]
            self.has_more = len(matches) > self.page_size
            return True

    def current_page(self) -> Tuple[int, List[Restaurant], int, bool]:
        """(generation, results, total, has_more) read together."""
        with self._lock:
            return self._generation, self.results, len(self._matches), self.has_more

    def load_more(self) -> List[Restaurant]:
        """Append the next page of cached matches to results and return it."""
        with self._lock:
            start = len(self.results)
            page = self._matches[start:start + self.page_size]
            self.results = self.results + page
            self.has_more = len(self.results) < len(self._matches)
            return page

    def reset(self):
        """Cancel any running search and drop the current results."""
        with self._lock:
            self._generation += 1
            if self._future is not None:
                self._future.cancel()
            self._future = None
            self._matches = []
            self.results = []
            self.has_more = False


class SearchSessionRegistry:
    """
    Search sessions by id, sharing one worker pool.
    The least recently used session is dropped beyond max_sessions.
    """

    def __init__(self, state, executor: Optional[ThreadPoolExecutor] = None,
                 page_size: int = 50, max_sessions: int = 256):
        self.state = state
        self.executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="search")
        self.page_size = page_size
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, SearchSession]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, session_id) -> Optional[SearchSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions.move_to_end(session_id)
            return session

    def get_or_create(self, session_id=None) -> Tuple[str, SearchSession]:
        with self._lock:
            if session_id and session_id in self._sessions:
                self._sessions.move_to_end(session_id)
                return session_id, self._sessions[session_id]

            session_id = session_id or uuid.uuid4().hex
            session = SearchSession(self.state, self.executor, self.page_size)
            self._sessions[session_id] = session
            while len(self._sessions) > self.max_sessions:
                evicted_id, evicted = self._sessions.popitem(last=False)
                evicted.reset()
                logger.debug(f"Dropped search session {evicted_id}")
            return session_id, session
