"""
Report subscription and scheduler tests.

The test app runs the scheduler without worker threads: jobs are
registered and only fire through run_due() / fire(). TestWorkerThreads
turns threads on with a sub-second timer. Mail sending is suppressed and
captured with Flask-Mail's record_messages().
"""

import threading
import time
from datetime import datetime, timedelta

import pytest

from tyrepos.extensions import mail
from tyrepos.models import EmailSubscription
from tyrepos.services import email_service, report_scheduler, subscription_service
from tyrepos.services.report_scheduler import next_run_after
from tyrepos.time_utils import business_tz

# 08:00 on 2026-03-18 in Asia/Colombo
MORNING = datetime(2026, 3, 18, 2, 30)


@pytest.fixture
def scheduler(app, db_session):
    return app.extensions["report_scheduler"]


def _subscribe(user, email, schedule_time="18:00", is_active=True):
    return subscription_service.create_subscription(
        payload={"email": email, "schedule_time": schedule_time, "is_active": is_active},
        user=user,
    )


class TestNextRunAfter:
    @pytest.mark.parametrize(
        "schedule_time,expected",
        [
            ("18:00", datetime(2026, 3, 18, 12, 30)),  # later today
            ("08:00", datetime(2026, 3, 19, 2, 30)),   # already passed today
            ("12:00", datetime(2026, 3, 19, 6, 30)),   # exactly now rolls to tomorrow
        ],
    )
    def test_next_occurrence(self, app, schedule_time, expected):
        now = datetime(2026, 3, 18, 6, 30)  # 12:00 local
        assert next_run_after(schedule_time, now, business_tz()) == expected


class TestScheduleRegistration:
    def test_create_registers_one_job(self, scheduler, manager_user):
        sub = _subscribe(manager_user, "owner@shop.test", "7:30")
        assert sub.schedule_time == "07:30"
        job = scheduler.get_job(sub.id)
        assert job is not None
        assert (job.email, job.schedule_time) == ("owner@shop.test", "07:30")

    def test_reschedule_replaces_previous_job(self, scheduler, manager_user):
        sub = _subscribe(manager_user, "owner@shop.test")
        first = scheduler.get_job(sub.id)
        second = scheduler.schedule(sub)
        assert first.cancelled
        assert not second.cancelled
        assert scheduler.status()["total_scheduled_jobs"] == 1

    def test_inactive_subscription_has_no_job(self, scheduler, manager_user):
        sub = _subscribe(manager_user, "owner@shop.test", is_active=False)
        assert scheduler.get_job(sub.id) is None

    def test_start_loads_active_subscriptions(self, scheduler, manager_user):
        _subscribe(manager_user, "a@shop.test")
        _subscribe(manager_user, "b@shop.test", is_active=False)
        scheduler.shutdown()
        assert scheduler.status()["total_scheduled_jobs"] == 0

        assert scheduler.start() == 1
        assert scheduler.is_initialized
        assert scheduler.start() == 1

    def test_duplicate_subscription_conflicts(self, client, manager_headers):
        body = {"email": "owner@shop.test", "schedule_time": "18:00"}
        assert client.post("/api/email-subscriptions/sales-reports", json=body, headers=manager_headers).status_code == 201
        resp = client.post("/api/email-subscriptions/sales-reports", json=body, headers=manager_headers)
        assert resp.status_code == 409

    @pytest.mark.parametrize("schedule_time", ["24:00", "18:60", "6pm", "7"])
    def test_bad_schedule_time(self, client, manager_headers, schedule_time):
        resp = client.post(
            "/api/email-subscriptions/sales-reports",
            json={"email": "owner@shop.test", "schedule_time": schedule_time},
            headers=manager_headers,
        )
        assert resp.status_code == 400


class TestRoutesKeepSchedulerInSync:
    def test_update_and_delete(self, client, scheduler, manager_headers):
        resp = client.post(
            "/api/email-subscriptions/sales-reports",
            json={"email": "owner@shop.test", "schedule_time": "18:00"},
            headers=manager_headers,
        )
        sub_id = resp.get_json()["id"]
        assert resp.get_json()["created_by"]["name"] == "Manager"

        resp = client.put(
            f"/api/email-subscriptions/sales-reports/{sub_id}",
            json={"schedule_time": "09:15"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert scheduler.get_job(sub_id).schedule_time == "09:15"

        client.put(
            f"/api/email-subscriptions/sales-reports/{sub_id}",
            json={"is_active": False},
            headers=manager_headers,
        )
        assert scheduler.get_job(sub_id) is None

        client.put(
            f"/api/email-subscriptions/sales-reports/{sub_id}",
            json={"is_active": True},
            headers=manager_headers,
        )
        assert scheduler.get_job(sub_id) is not None

        resp = client.delete(f"/api/email-subscriptions/sales-reports/{sub_id}", headers=manager_headers)
        assert resp.status_code == 200
        assert scheduler.get_job(sub_id) is None

        resp = client.delete(f"/api/email-subscriptions/sales-reports/{sub_id}", headers=manager_headers)
        assert resp.status_code == 404

    def test_status_route(self, client, manager_headers, manager_user):
        _subscribe(manager_user, "owner@shop.test", "18:00")
        resp = client.get("/api/email-subscriptions/scheduler-status", headers=manager_headers)
        body = resp.get_json()
        assert body["total_scheduled_jobs"] == 1
        assert body["scheduled_subscriptions"][0]["email"] == "owner@shop.test"
        assert body["scheduled_subscriptions"][0]["next_run_at"].endswith("Z")


class TestFiring:
    def test_run_due_sends_matching_minute_only(self, db_session, scheduler, manager_user, make_item, make_sale):
        item = make_item(quantity=5)
        sale = make_sale([(item, 2, 150)])
        sale.created_at = datetime(2026, 3, 18, 1, 0)  # 06:30 local
        db_session.commit()

        morning = _subscribe(manager_user, "morning@shop.test", "08:00")
        _subscribe(manager_user, "evening@shop.test", "18:00")

        with mail.record_messages() as outbox:
            results = scheduler.run_due(now=MORNING)

        assert [r["subscription_id"] for r in results] == [morning.id]
        assert results[0]["result"]["successful_emails"] == 1
        assert results[0]["result"]["report_date"] == "2026-03-18"
        assert results[0]["result"]["total_sales"] == 300.0

        assert len(outbox) == 1
        message = outbox[0]
        assert message.recipients == ["morning@shop.test"]
        assert message.subject == "Daily Sales Report - 2026-03-18"
        assert sale.bill_number in message.html

        db_session.refresh(morning)
        assert morning.last_sent_at == MORNING

    def test_run_due_fires_every_subscription_at_that_minute(self, db_session, scheduler, manager_user):
        first = _subscribe(manager_user, "owner@shop.test", "08:00")
        second = _subscribe(manager_user, "manager@shop.test", "8:00")

        with mail.record_messages() as outbox:
            results = scheduler.run_due(now=MORNING)

        assert sorted(r["subscription_id"] for r in results) == sorted([first.id, second.id])
        assert sorted(m.recipients[0] for m in outbox) == ["manager@shop.test", "owner@shop.test"]
        for sub in (first, second):
            db_session.refresh(sub)
            assert sub.last_sent_at == MORNING

    def test_fire_skips_deleted_subscription(self, db_session, scheduler, manager_user):
        sub = _subscribe(manager_user, "owner@shop.test", "08:00")
        sub_id = sub.id
        db_session.delete(sub)
        db_session.commit()

        with mail.record_messages() as outbox:
            assert scheduler.fire(sub_id, now=MORNING) is None
        assert outbox == []
        assert scheduler.get_job(sub_id) is None

    def test_failed_delivery_keeps_job(self, app, db_session, scheduler, manager_user, monkeypatch):
        monkeypatch.setitem(app.config, "MAIL_SUPPRESS_SEND", False)
        monkeypatch.setitem(app.config, "MAIL_SERVER", None)
        sub = _subscribe(manager_user, "owner@shop.test", "08:00")

        result = scheduler.fire(sub.id, now=MORNING)
        assert result["successful_emails"] == 0
        assert result["failed_emails"] == ["owner@shop.test"]
        assert scheduler.get_job(sub.id) is not None

        db_session.refresh(sub)
        assert sub.last_sent_at is None


class TestSendNow:
    def test_no_subscriptions(self, client, manager_headers):
        resp = client.post("/api/email-subscriptions/send-report-now", headers=manager_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "No active email subscriptions found"

    def test_sends_to_active_only(self, client, db_session, manager_headers, manager_user):
        _subscribe(manager_user, "a@shop.test")
        _subscribe(manager_user, "b@shop.test")
        _subscribe(manager_user, "off@shop.test", is_active=False)

        with mail.record_messages() as outbox:
            resp = client.post("/api/email-subscriptions/send-report-now", headers=manager_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["total_emails"] == 2
        assert body["successful_emails"] == 2
        assert sorted(m.recipients[0] for m in outbox) == ["a@shop.test", "b@shop.test"]
        assert db_session.query(EmailSubscription).filter(EmailSubscription.last_sent_at.isnot(None)).count() == 2


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


def _live_workers(subscription_id):
    name = f"report-subscription-{subscription_id}"
    return [t for t in threading.enumerate() if t.name == name and t.is_alive()]


class TestWorkerThreads:
    """Real timer threads; the next run is pulled in to a fraction of a second."""

    @pytest.fixture
    def threaded(self, app, scheduler, monkeypatch):
        monkeypatch.setitem(app.config, "REPORT_SCHEDULER_THREADS", True)
        monkeypatch.setattr(
            report_scheduler,
            "next_run_after",
            lambda schedule_time, now, tz: now + timedelta(seconds=0.3),
        )
        yield scheduler
        scheduler.shutdown()

    def test_worker_survives_failure_and_stops_on_unschedule(self, threaded, manager_user, monkeypatch):
        real_deliver = email_service.deliver_report
        calls = []

        def flaky_deliver(subscriptions, now=None):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("SMTP unavailable")
            return real_deliver(subscriptions, now=now)

        monkeypatch.setattr(email_service, "deliver_report", flaky_deliver)

        with mail.record_messages() as outbox:
            sub = _subscribe(manager_user, "owner@shop.test")
            job = threaded.get_job(sub.id)
            assert job.thread is not None and job.thread.is_alive()

            # First firing raises; the loop keeps going and the next one delivers
            assert _wait_for(lambda: len(outbox) >= 1)
            assert len(calls) >= 2
            assert outbox[0].recipients == ["owner@shop.test"]

            assert threaded.unschedule(sub.id) is True
            job.thread.join(timeout=2.0)
            assert not job.thread.is_alive()

            delivered = len(outbox)
            time.sleep(0.6)
            assert len(outbox) == delivered

    def test_reschedule_leaves_one_live_worker(self, threaded, manager_user, monkeypatch):
        monkeypatch.setattr(
            report_scheduler,
            "next_run_after",
            lambda schedule_time, now, tz: now + timedelta(seconds=30),
        )
        sub = _subscribe(manager_user, "owner@shop.test")
        first = threaded.get_job(sub.id)
        second = threaded.schedule(sub)

        first.thread.join(timeout=2.0)
        assert not first.thread.is_alive()
        assert _live_workers(sub.id) == [second.thread]

        threaded.shutdown()
        second.thread.join(timeout=2.0)
        assert _live_workers(sub.id) == []
