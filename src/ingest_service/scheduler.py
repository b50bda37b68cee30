"""
scheduler.py
-------------
Periodic background refresh.

A single timer (identified by REFRESH_TASK_ID) wakes up, re-arms itself for
the next run, then performs a full refresh under a time budget. When the
budget runs out the refresh is told to stop through its cancellation event.
The completion callback always runs exactly once per wake-up, whether the
refresh succeeded, failed or expired.
"""

import logging
import threading
from datetime import datetime, timedelta

from ingest_service import config
from ingest_service.errors import ABCEatsError

logger = logging.getLogger(__name__)


def next_fire_time(now=None, mode=None, interval_hours=None, daily_hour=None):
    """
    When the next background refresh should run.

    "interval" mode: interval_hours after now.
    "daily" mode: the next occurrence of daily_hour:00 local time.
    """
    now = now or datetime.now()
    mode = mode or config.REFRESH_MODE
    if mode == "daily":
        hour = config.REFRESH_DAILY_HOUR if daily_hour is None else daily_hour
        candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    hours = config.REFRESH_INTERVAL_HOURS if interval_hours is None else interval_hours
    return now + timedelta(hours=hours)


class BackgroundRefresher:
    """
    Usage:
        refresher = BackgroundRefresher(refresh_service)
        refresher.schedule()
        ...
        refresher.cancel()
    """

    def __init__(self, refresh_service, task_id=None, budget_seconds=None, on_complete=None, mode=None):
        self.refresh_service = refresh_service
        self.task_id = task_id or config.REFRESH_TASK_ID
        self.budget_seconds = config.BACKGROUND_BUDGET_SECONDS if budget_seconds is None else budget_seconds
        self.on_complete = on_complete
        self.mode = mode
        self.next_run = None
        self._timer = None
        self._lock = threading.Lock()

    def schedule(self, now=None):
        """Arm the timer for the next wake-up, replacing any pending one."""
        now = now or datetime.now()
        fire_at = next_fire_time(now, mode=self.mode)
        delay = max((fire_at - now).total_seconds(), 0)

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(delay, self.run_once)
            self._timer.daemon = True
            self._timer.start()
            self.next_run = fire_at

        logger.info(f"Background refresh '{self.task_id}' scheduled for {fire_at.isoformat()}")
        return fire_at

    def cancel(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self.next_run = None

    def run_once(self):
        """Handle one wake-up: reschedule, refresh within the budget, signal completion."""
        logger.info(f"Background refresh '{self.task_id}' started")
        self.schedule()

        expired = threading.Event()
        deadline = threading.Timer(self.budget_seconds, expired.set)
        deadline.daemon = True
        deadline.start()

        success = False
        try:
            self.refresh_service.refresh(cancel_event=expired)
            success = True
        except ABCEatsError as e:
            if expired.is_set():
                logger.warning(f"Background refresh '{self.task_id}' expired: {e}")
            else:
                logger.error(f"Background refresh '{self.task_id}' failed: {e}")
        finally:
            deadline.cancel()
            logger.info(f"Background refresh completed: {'success' if success else 'failed'}")
            if self.on_complete is not None:
                self.on_complete(success)

        return success
