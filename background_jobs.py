import threading
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler

from backend.recurrence_runner import process_all_recurring
from models import db

DEFAULT_INTERVAL_MINUTES = 60


def start_daemon_thread(target, args=(), kwargs=None):
    """Start a daemon thread with a consistent helper API."""
    thread = threading.Thread(target=target, args=args, kwargs=kwargs or {}, daemon=True)
    thread.start()
    return thread


def start_app_context_job(app, target, args=(), kwargs=None, on_error=None):
    """
    Run a callable in a daemon thread inside the provided Flask app context.
    """

    def _run():
        with app.app_context():
            try:
                target(*args, **(kwargs or {}))
            except Exception as exc:
                if on_error:
                    on_error(exc)

    return start_daemon_thread(_run)


class RecurrenceScheduler:
    """
    Owns the periodic recurrence sweep.

    The sweep runs once when started and then every ``interval_minutes``.
    ``tick()`` performs a single sweep synchronously, so tests can drive the
    schedule without waiting on wall-clock timers.
    """

    JOB_ID = 'process_all_recurring'

    def __init__(self, app, interval_minutes=None, clock=None, scheduler_factory=BackgroundScheduler):
        self.app = app
        if interval_minutes is None:
            interval_minutes = int(app.config.get('RECURRENCE_INTERVAL_MINUTES', DEFAULT_INTERVAL_MINUTES))
        self.interval_minutes = interval_minutes
        self.clock = clock or datetime.now
        self.scheduler_factory = scheduler_factory
        self.last_report = None
        self._scheduler = None

    @property
    def running(self):
        return bool(self._scheduler and self._scheduler.running)

    def _sweep(self):
        self.last_report = process_all_recurring(clock=self.clock)
        return self.last_report

    def _log_failure(self, exc):
        self.app.logger.error(f"Recurrence sweep failed: {exc}")
        db.session.rollback()

    def tick(self):
        with self.app.app_context():
            try:
                return self._sweep()
            except Exception as exc:
                self._log_failure(exc)
                return None

    def start(self, run_now=True, run_in_background=False):
        if self.running:
            return self
        if run_now:
            if run_in_background:
                start_app_context_job(self.app, self._sweep, on_error=self._log_failure)
            else:
                self.tick()
        self._scheduler = self.scheduler_factory()
        self._scheduler.add_job(
            self.tick,
            'interval',
            minutes=self.interval_minutes,
            id=self.JOB_ID,
            replace_existing=True,
        )
        self._scheduler.start()
        self.app.logger.info(f"Recurrence processing scheduled every {self.interval_minutes} minutes")
        return self

    def stop(self, wait=False):
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            self.app.logger.info("Recurrence processing stopped")
        self._scheduler = None

    def get_job(self):
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(self.JOB_ID)
