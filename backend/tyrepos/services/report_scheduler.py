# Overview: In-process scheduler for daily report emails; one cancellable timer per active subscription.

"""
Report scheduler

One ReportScheduler is built in create_app and stored in
app.extensions["report_scheduler"]. It owns an explicit map of
subscription id -> ScheduledJob.

- Only active subscriptions hold a job.
- schedule() always cancels the existing job for that id first, so
  re-registering the same subscription never produces duplicate timers.
- start() re-reads every active subscription; the database is the only
  record of which jobs should exist. A firing missed while the process
  was down is skipped.
- When REPORT_SCHEDULER_THREADS is on, each job has a daemon worker that
  sleeps on its cancel Event until the next HH:MM in BUSINESS_TIMEZONE.
  Otherwise jobs only fire through run_due() / fire().
- A failed delivery is logged; the job stays scheduled.
"""

from __future__ import annotations

import atexit
import logging
import threading
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import EmailSubscription
from tyrepos.time_utils import business_tz, local_to_utc_naive, to_local, to_utc_z, utcnow
from . import email_service

logger = logging.getLogger(__name__)

EXTENSION_KEY = "report_scheduler"


def next_run_after(schedule_time: str, now: datetime, tz: ZoneInfo) -> datetime:
    """
    First wall-clock occurrence of schedule_time ("HH:MM" in tz) strictly
    after now. now and the result are UTC-naive.
    """
    hour, minute = (int(part) for part in schedule_time.split(":"))
    local_now = to_local(now, tz)
    candidate = datetime.combine(local_now.date(), time(hour, minute), tzinfo=tz)
    if candidate <= local_now:
        candidate = datetime.combine(local_now.date() + timedelta(days=1), time(hour, minute), tzinfo=tz)
    return local_to_utc_naive(candidate)


@dataclass
class ScheduledJob:
    subscription_id: int
    email: str
    schedule_time: str
    cancel_event: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()


class ReportScheduler:
    def __init__(self, app=None):
        self.app = None
        self._jobs: dict[int, ScheduledJob] = {}
        self._lock = threading.Lock()
        self._initialized = False
        self._atexit_registered = False
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.app = app
        app.extensions[EXTENSION_KEY] = self

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _use_threads(self) -> bool:
        return bool(self.app.config.get("REPORT_SCHEDULER_THREADS", True))

    def _context(self):
        if has_app_context() and current_app._get_current_object() is self.app:
            return nullcontext()
        return self.app.app_context()

    def start(self) -> int:
        """
        Install jobs for every active subscription. Safe to call again:
        existing jobs are replaced, not duplicated.

        Returns the number of scheduled jobs.
        """
        with self._context():
            try:
                subscriptions = (
                    db.session.query(EmailSubscription)
                    .filter(EmailSubscription.is_active.is_(True))
                    .order_by(EmailSubscription.id.asc())
                    .all()
                )
            except SQLAlchemyError:
                db.session.rollback()
                logger.warning("Report scheduler not started: subscriptions table unavailable", exc_info=True)
                return 0

            for sub in subscriptions:
                self.schedule(sub)

        self._initialized = True
        if self._use_threads() and not self._atexit_registered:
            atexit.register(self.shutdown)
            self._atexit_registered = True
        logger.info("Report scheduler started with %s job(s)", len(self._jobs))
        return len(self._jobs)

    def shutdown(self) -> None:
        """Cancel every job and wait briefly for workers to exit."""
        with self._lock:
            jobs = list(self._jobs.values())
            self._jobs.clear()
            self._initialized = False
        for job in jobs:
            job.cancel()
        for job in jobs:
            if job.thread is not None and job.thread is not threading.current_thread():
                job.thread.join(timeout=1.0)

    # ------------------------------------------------------------------
    # registration
    # ------------------------------------------------------------------

    def schedule(self, subscription: EmailSubscription) -> ScheduledJob | None:
        """
        (Re)register the job for subscription. Any previous job for the same
        id is cancelled first; inactive subscriptions end up with no job.
        """
        with self._lock:
            previous = self._jobs.pop(subscription.id, None)
            if previous is not None:
                previous.cancel()
            if not subscription.is_active:
                return None

            job = ScheduledJob(
                subscription_id=subscription.id,
                email=subscription.email,
                schedule_time=subscription.schedule_time,
            )
            self._jobs[subscription.id] = job

            if self._use_threads():
                job.thread = threading.Thread(
                    target=self._run_job,
                    args=(job,),
                    name=f"report-subscription-{subscription.id}",
                    daemon=True,
                )
                job.thread.start()

        logger.info(
            "Scheduled report for %s at %s (subscription %s)",
            job.email, job.schedule_time, job.subscription_id,
        )
        return job

    reschedule = schedule

    def unschedule(self, subscription_id: int) -> bool:
        with self._lock:
            job = self._jobs.pop(subscription_id, None)
        if job is None:
            return False
        job.cancel()
        logger.info("Unscheduled report for subscription %s", subscription_id)
        return True

    def get_job(self, subscription_id: int) -> ScheduledJob | None:
        with self._lock:
            return self._jobs.get(subscription_id)

    def status(self) -> dict:
        with self._context():
            tz = business_tz()
            now = utcnow()
            with self._lock:
                jobs = list(self._jobs.values())
            return {
                "is_initialized": self._initialized,
                "total_scheduled_jobs": len(jobs),
                "scheduled_subscriptions": [
                    {
                        "subscription_id": job.subscription_id,
                        "email": job.email,
                        "schedule_time": job.schedule_time,
                        "next_run_at": to_utc_z(next_run_after(job.schedule_time, now, tz)),
                    }
                    for job in jobs
                ],
            }

    # ------------------------------------------------------------------
    # firing
    # ------------------------------------------------------------------

    def _run_job(self, job: ScheduledJob) -> None:
        last_fired: datetime | None = None
        while not job.cancelled:
            with self.app.app_context():
                now = utcnow()
                # Event.wait may wake a hair early; never re-fire the same minute
                base = now if last_fired is None else max(now, last_fired)
                next_at = next_run_after(job.schedule_time, base, business_tz())
            delay = max((next_at - now).total_seconds(), 0)
            if job.cancel_event.wait(delay):
                break
            self.fire(job.subscription_id, now=next_at)
            last_fired = next_at

    def fire(self, subscription_id: int, now: datetime | None = None) -> dict | None:
        """
        Send the daily report for one subscription.

        The subscription is re-read first: a deleted or deactivated
        subscription is skipped and its job dropped.
        """
        with self._context():
            sub = db.session.get(EmailSubscription, subscription_id)
            if sub is None or not sub.is_active:
                logger.info("Skipping report for subscription %s: missing or inactive", subscription_id)
                self.unschedule(subscription_id)
                return None
            try:
                return email_service.deliver_report([sub], now=now)
            except Exception:
                db.session.rollback()
                logger.exception("Scheduled report for subscription %s failed", subscription_id)
                return None

    def run_due(self, now: datetime | None = None) -> list[dict]:
        """
        Fire every job whose HH:MM equals now's wall-clock minute in the
        business timezone. Returns one entry per fired job.
        """
        with self._context():
            now = now or utcnow()
            minute = to_local(now, business_tz()).strftime("%H:%M")
            with self._lock:
                due = [job.subscription_id for job in self._jobs.values() if job.schedule_time == minute]

            results = []
            for subscription_id in due:
                result = self.fire(subscription_id, now=now)
                results.append({"subscription_id": subscription_id, "result": result})
            return results


def get_scheduler() -> ReportScheduler:
    return current_app.extensions[EXTENSION_KEY]
