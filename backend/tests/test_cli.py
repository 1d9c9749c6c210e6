"""
CLI command tests (flask system / users / reports).
"""

import pytest

from tyrepos import create_app
from tyrepos.models import Category, User
from tyrepos.services.report_scheduler import ReportScheduler


def _invoke(app, *args):
    return app.test_cli_runner().invoke(args=list(args))


class TestSystemInit:
    def test_init_is_idempotent(self, app, db_session):
        first = _invoke(app, "system", "init", "--admin-email", "Owner@Shop.test", "--admin-password", "owner123")
        assert first.exit_code == 0
        assert "PASS Created admin: owner@shop.test" in first.output
        assert "PASS Created category: Tyres" in first.output

        second = _invoke(app, "system", "init", "--admin-email", "owner@shop.test", "--admin-password", "owner123")
        assert second.exit_code == 0
        assert "WARN  User 'owner@shop.test' already exists" in second.output
        assert "WARN  Category 'Tyres' already exists" in second.output

        admins = db_session.query(User).filter_by(email="owner@shop.test").all()
        assert len(admins) == 1
        assert admins[0].role == "admin"
        assert db_session.query(Category).filter_by(name="Tyres").count() == 1

    def test_short_admin_password_reported(self, app, db_session):
        result = _invoke(app, "system", "init", "--admin-password", "abc")
        assert result.exit_code == 0
        assert "FAIL Failed to create admin" in result.output
        assert db_session.query(User).count() == 0


class TestUsersCommands:
    def test_list(self, app, admin_user, cashier_user):
        result = _invoke(app, "users", "list")
        assert result.exit_code == 0
        assert "admin@shop.test" in result.output
        assert "cashier@shop.test" in result.output

    def test_list_empty(self, app, db_session):
        assert "No users found." in _invoke(app, "users", "list").output

    def test_create_accepts_user_as_cashier(self, app, db_session):
        result = _invoke(
            app, "users", "create",
            "--name", "Nimal", "--email", "nimal@shop.test", "--password", "secret1", "--role", "user",
        )
        assert "PASS Created user: Nimal (nimal@shop.test) with role 'cashier'" in result.output


class TestReportsCommands:
    def test_send_now_without_subscriptions(self, app, db_session):
        result = _invoke(app, "reports", "send-now")
        assert result.exit_code == 0
        assert "FAIL No active email subscriptions found" in result.output


class TestSchedulerStartup:
    CONFIG = {
        "TESTING": True,
        "SECRET_KEY": "test",
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "REPORT_SCHEDULER_ENABLED": True,
        "REPORT_SCHEDULER_THREADS": False,
    }

    @pytest.fixture
    def starts(self, monkeypatch):
        calls = []
        monkeypatch.setattr(ReportScheduler, "start", lambda scheduler: calls.append(scheduler) or 0)
        return calls

    def test_flask_command_does_not_start_scheduler(self, starts, monkeypatch):
        monkeypatch.setenv("FLASK_RUN_FROM_CLI", "true")
        built = create_app(self.CONFIG)
        assert starts == []
        assert not built.extensions["report_scheduler"].is_initialized

    def test_server_start_runs_scheduler(self, starts, monkeypatch):
        monkeypatch.delenv("FLASK_RUN_FROM_CLI", raising=False)
        built = create_app(self.CONFIG)
        assert starts == [built.extensions["report_scheduler"]]
