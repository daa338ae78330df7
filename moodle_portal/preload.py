"""
Background preload of enrolled courses

Sign-in starts fetching the user's enrolled courses on a daemon thread. The
result is held here, per Moodle user id, until the next request that needs it
takes it. One CoursePreloader lives on the application registry, so results
are shared across requests within one server process.
"""

import logging
from threading import Event, Lock, Thread

log = logging.getLogger(__name__)


class _Pending:
    def __init__(self):
        self.done = Event()
        self.courses = None


class CoursePreloader:

    def __init__(self, wait_seconds=10.0):
        self.wait_seconds = wait_seconds
        self._pending = {}
        self._lock = Lock()

    def start(self, user_id, fetch):
        """Run fetch(user_id) in the background; failures are only logged"""
        pending = _Pending()

        def run():
            try:
                pending.courses = fetch(user_id)
            except Exception as e:
                log.warning(f"Background load of user courses failed: {str(e)}")
            finally:
                pending.done.set()

        with self._lock:
            self._pending[user_id] = pending
        thread = Thread(target=run, name=f"preload-courses-{user_id}", daemon=True)
        thread.start()
        return thread

    def take(self, user_id):
        """
        Hand over the preloaded courses for user_id, at most once

        Waits up to wait_seconds for a preload still in flight. Returns None
        when there was no preload, it failed, or it did not finish in time.
        """
        with self._lock:
            pending = self._pending.pop(user_id, None)
        if pending is None:
            return None
        if not pending.done.wait(self.wait_seconds):
            log.info(f"Preload for user {user_id} still running; fetching directly")
            return None
        return pending.courses

    def discard(self, user_id):
        with self._lock:
            self._pending.pop(user_id, None)
