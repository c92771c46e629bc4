"""Background runner for periodic maintenance jobs."""
import logging
import threading
import schedule

logger = logging.getLogger("governor.scheduler")


class PeriodicJob:
    """Runs ``func`` every ``interval_seconds`` on a daemon thread until stopped.

    Each job owns its own ``schedule.Scheduler`` so stopping one job never
    clears another's schedule.
    """

    def __init__(self, name, interval_seconds, func, poll_seconds=1.0):
        self.name = name
        self.interval = interval_seconds
        self.func = func
        self.poll_seconds = min(poll_seconds, interval_seconds)
        self._scheduler = schedule.Scheduler()
        self._thread = None
        self._stop = threading.Event()
        self._consecutive_failures = 0
        self.runs = 0

    @property
    def is_running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.is_running:
            return
        self._stop.clear()
        self._scheduler.clear()
        self._scheduler.every(self.interval).seconds.do(self.run_now)

        self._thread = threading.Thread(target=self._run_loop, name=f"job-{self.name}", daemon=True)
        self._thread.start()
        logger.info(f"Job {self.name} started (every {self.interval}s)")

    def stop(self, timeout=5):
        self._stop.set()
        self._scheduler.clear()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info(f"Job {self.name} stopped")

    def _run_loop(self):
        while not self._stop.is_set():
            self._scheduler.run_pending()
            self._stop.wait(self.poll_seconds)

    def run_now(self):
        """Run the job once on the calling thread; errors are logged, not raised."""
        self.runs += 1
        try:
            result = self.func()
            self._consecutive_failures = 0
            return result
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Job {self.name} failed ({self._consecutive_failures} consecutive): {e}")
            if self._consecutive_failures >= 5:
                logger.critical(f"Job {self.name}: 5+ consecutive failures!")
            return None
