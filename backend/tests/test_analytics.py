"""
Analytics tests: period windows, bucket keys, rollups, dashboard and item balance.

Fixed clock: 2026-03-18 (a Wednesday), 12:00 in Asia/Colombo = 06:30 UTC.
"""

from datetime import date, datetime

import pytest

from tyrepos.models import StockPurchase
from tyrepos.services import dashboard_service, reporting_service, stock_service
from tyrepos.services.reporting_service import Granularity, Period, ReportError
from tyrepos.time_utils import business_tz

NOW = datetime(2026, 3, 18, 6, 30)


def _at(session, sale, when):
    sale.created_at = when
    session.commit()
    return sale


class TestPeriodWindows:
    @pytest.mark.parametrize(
        "period,start,end",
        [
            (Period.TODAY, datetime(2026, 3, 17, 18, 30), datetime(2026, 3, 18, 18, 30)),
            (Period.WEEK, datetime(2026, 3, 11, 6, 30), datetime(2026, 3, 18, 6, 30)),
            (Period.MONTH, datetime(2026, 2, 28, 18, 30), datetime(2026, 3, 31, 18, 30)),
            (Period.QUARTER, datetime(2025, 12, 31, 18, 30), datetime(2026, 3, 31, 18, 30)),
            (Period.YEAR, datetime(2025, 12, 31, 18, 30), datetime(2026, 12, 31, 18, 30)),
        ],
    )
    def test_window(self, app, period, start, end):
        assert period.window(NOW, business_tz()) == (start, end)

    def test_december_month_rolls_year(self, app):
        start, end = Period.MONTH.window(datetime(2026, 12, 10), business_tz())
        assert end == datetime(2026, 12, 31, 18, 30)
        assert start == datetime(2026, 11, 30, 18, 30)

    def test_parse(self):
        assert Period.parse(None, Period.MONTH) is Period.MONTH
        assert Period.parse("Week", Period.MONTH) is Period.WEEK
        with pytest.raises(ReportError):
            Period.parse("fortnight", Period.MONTH)


class TestGranularity:
    @pytest.mark.parametrize(
        "granularity,key",
        [
            (Granularity.HOUR, "2026-03-18 12:00"),
            (Granularity.DAY, "2026-03-18"),
            (Granularity.WEEK, "2026-W12"),
            (Granularity.MONTH, "2026-03"),
        ],
    )
    def test_bucket(self, granularity, key):
        assert granularity.bucket(datetime(2026, 3, 18, 12, 5)) == key

    def test_parse_rejects_unknown(self):
        with pytest.raises(ReportError):
            Granularity.parse("minute", Granularity.DAY)


class TestRollups:
    @pytest.fixture
    def sales(self, db_session, make_item, make_sale):
        tyre = make_item("Dunlop 175/70 R13", quantity=50, purchase_price="9000.00")
        tube = make_item("Tube 13", quantity=50, purchase_price="400.00")
        return {
            "tyre": tyre,
            "tube": tube,
            # 10:00 local, walk-in
            "a": _at(db_session, make_sale([(tyre, 1, 12000)]), datetime(2026, 3, 18, 4, 30)),
            # 11:00 local, named customer, card
            "b": _at(
                db_session,
                make_sale([(tube, 2, 650)], customer_name="Ruwan", customer_nic="901234567V", payment_method="card"),
                datetime(2026, 3, 18, 5, 30),
            ),
            # same customer earlier in the month
            "c": _at(
                db_session,
                make_sale([(tube, 1, 650)], customer_name="Ruwan", customer_nic="901234567V"),
                datetime(2026, 3, 2, 5, 30),
            ),
            # pending sales never count
            "d": _at(db_session, make_sale([(tyre, 1, 12000)], payment_status="pending"), datetime(2026, 3, 18, 4, 0)),
        }

    def test_real_time_today(self, sales):
        result = reporting_service.real_time_sales(period=Period.TODAY, now=NOW)
        assert result["summary"] == {
            "total_sales": 13300.0,
            "total_transactions": 2,
            "average_transaction": 6650.0,
            "total_items_sold": 3,
        }
        hours = {h["hour"]: h for h in result["hourly_sales"] if h["transactions"]}
        assert set(hours) == {10, 11}
        assert [t["bill_number"] for t in result["recent_transactions"]] == [
            sales["b"].bill_number, sales["a"].bill_number,
        ]

    def test_profit_loss_month_by_day(self, sales):
        result = reporting_service.profit_loss(period=Period.MONTH, granularity=Granularity.DAY, now=NOW)
        assert result["summary"]["revenue"] == 12000 + 1300 + 650
        assert result["summary"]["cost"] == 9000 + 1200
        assert result["summary"]["profit"] == 3750.0
        assert result["summary"]["transactions"] == 3
        assert [row["bucket"] for row in result["timeline"]] == ["2026-03-02", "2026-03-18"]
        assert result["top_products"][0]["item_code"] == sales["tyre"].item_code
        assert result["profit_by_category"][0]["category"] == "Tyres"

    def test_profit_uses_snapshot_cost(self, db_session, sales):
        sales["tube"].purchase_price = 1
        db_session.commit()
        result = reporting_service.profit_loss(period=Period.MONTH, now=NOW)
        assert result["summary"]["cost"] == 9000 + 1200

    def test_customer_behavior(self, sales):
        result = reporting_service.customer_behavior(period=Period.MONTH, now=NOW)
        assert result["repeat_customer_stats"] == {
            "total_customers": 1,
            "repeat_customers": 1,
            "one_time_customers": 0,
            "repeat_rate": 100.0,
        }
        assert result["customer_frequency"][0]["purchases"] == 2
        methods = {m["payment_method"]: m["count"] for m in result["payment_method_stats"]}
        assert methods == {"cash": 2, "card": 1}
        wednesday = next(d for d in result["purchase_patterns_by_day"] if d["day"] == "Wednesday")
        assert wednesday["transactions"] == 2

    def test_peak_hours_week_is_trailing_seven_days(self, sales):
        result = reporting_service.peak_hours(period=Period.WEEK, now=NOW)
        # the 2nd of March is outside the trailing week
        assert sum(h["transactions"] for h in result["hourly_analysis"]) == 2
        assert result["peak_hours"][0]["hour"] == 10
        assert result["peak_days"][0]["day"] == "Wednesday"
        assert result["staff_performance"][0]["name"] == "Cashier"
        assert result["recommendations"]

    def test_empty_period_has_recommendation(self, db_session):
        result = reporting_service.peak_hours(period=Period.WEEK, now=NOW)
        assert result["peak_hours"] == []
        assert result["recommendations"] == ["Not enough sales in this period to suggest staffing changes."]

    def test_dashboard_summary(self, sales):
        result = reporting_service.dashboard_summary(day=date(2026, 3, 18), now=NOW)
        assert result["today"]["transactions"] == 2
        assert result["week"]["transactions"] == 2
        assert result["month"]["transactions"] == 3
        assert result["top_items_today"][0]["item_code"] == sales["tyre"].item_code


class TestAnalyticsRoutes:
    def test_invalid_period(self, client, manager_headers):
        resp = client.get("/api/analytics/real-time-sales?period=decade", headers=manager_headers)
        assert resp.status_code == 400

    def test_invalid_group_by(self, client, manager_headers):
        resp = client.get("/api/analytics/profit-loss?group_by=minute", headers=manager_headers)
        assert resp.status_code == 400

    @pytest.mark.parametrize(
        "path",
        [
            "/api/analytics/real-time-sales",
            "/api/analytics/profit-loss?period=year&group_by=month",
            "/api/analytics/customer-behavior",
            "/api/analytics/peak-hours",
            "/api/analytics/dashboard-summary?date=2026-03-18",
        ],
    )
    def test_routes_respond(self, client, manager_headers, path):
        resp = client.get(path, headers=manager_headers)
        assert resp.status_code == 200

    def test_dashboard_summary_bad_date(self, client, manager_headers):
        resp = client.get("/api/analytics/dashboard-summary?date=18/03/2026", headers=manager_headers)
        assert resp.status_code == 400


class TestDashboard:
    def test_stats(self, client, db_session, cashier_headers, make_item, make_sale):
        low = make_item("Tube 13", quantity=3, retail_price="100.00")  # under the default limit of 10
        make_item("Dunlop 175/70 R13", quantity=20, retail_price="200.00", lower_limit=5)
        make_sale([(low, 1, 100)])
        make_sale([(low, 1, 100)], payment_status="pending")

        resp = client.get("/api/dashboard/stats", headers=cashier_headers)
        body = resp.get_json()
        assert body["stats"]["today_sales"] == 100.0
        assert body["stats"]["total_sales"] == 100.0
        assert body["stats"]["inventory_value"] == 1 * 100 + 20 * 200
        assert [i["name"] for i in body["low_stock_items"]] == ["Tube 13"]
        assert body["low_stock_items"][0]["lower_limit"] == 10
        assert len(body["recent_sales"]) == 2
        assert len(body["sales_trend"]) == 7
        assert body["sales_trend"][-1]["total"] == 100.0


class TestLowStock:
    @pytest.fixture
    def stock(self, db_session, make_item):
        return {
            "empty": make_item("Tube 13", quantity=0),
            "at_limit": make_item("Valve", quantity=2, lower_limit=2),
            "plenty": make_item("Dunlop 175/70 R13", quantity=11),
        }

    def test_dashboard_views_agree(self, stock):
        stats = dashboard_service.dashboard_stats()["low_stock_items"]
        summary = reporting_service.dashboard_summary(now=NOW)["low_stock_items"]
        assert stats == summary
        assert [(i["name"], i["quantity_in_stock"], i["lower_limit"]) for i in summary] == [
            ("Tube 13", 0, 10),
            ("Valve", 2, 2),
        ]

    def test_historical_day_lists_no_low_stock(self, stock):
        result = reporting_service.dashboard_summary(day=date(2026, 3, 18), now=NOW)
        assert result["low_stock_items"] == []

    def test_summary_route(self, client, manager_headers, stock):
        current = client.get("/api/analytics/dashboard-summary", headers=manager_headers).get_json()
        assert [i["name"] for i in current["low_stock_items"]] == ["Tube 13", "Valve"]

        dated = client.get("/api/analytics/dashboard-summary?date=2026-03-18", headers=manager_headers).get_json()
        assert dated["low_stock_items"] == []


class TestItemBalance:
    def test_balance_window(self, client, db_session, manager_headers, make_item, make_sale):
        item = make_item(quantity=0, purchase_price="100.00")
        stock_service.adjust_stock(item_code=item.item_code, payload={"quantity": 10})
        old = stock_service.adjust_stock(item_code=item.item_code, payload={"quantity": 5})
        make_sale([(item, 4, 150)])

        # Purchases older than the window are ignored
        purchase = db_session.get(StockPurchase, old["purchase"]["id"])
        purchase.created_at = datetime(2020, 1, 1)
        db_session.commit()

        resp = client.get(f"/api/item-balance/{item.id}", headers=manager_headers)
        row = resp.get_json()["item"]
        assert row["current_stock"] == 11
        assert row["last_month_purchases"] == {"quantity": 10, "value": 1000.0}
        assert row["last_month_sales"] == {"quantity": 4, "value": 600.0}
        assert row["remaining_balance"] == 6
        assert row["category"] == "Tyres"

        resp = client.get("/api/item-balance", headers=manager_headers)
        assert resp.get_json()["count"] == 1

        resp = client.get("/api/item-balance/424242", headers=manager_headers)
        assert resp.status_code == 404

    def test_service_window_bounds(self, app):
        start, end = dashboard_service._balance_window(NOW)
        assert start == datetime(2026, 2, 15, 18, 30)
        assert end == datetime(2026, 3, 18, 18, 30)
