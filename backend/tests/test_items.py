"""
Catalog tests: categories, items, bulk upload and export.
"""

import io

from openpyxl import load_workbook

from tyrepos.models import Item, StockEditLog


class TestCategories:
    def test_create_and_list(self, client, admin_headers):
        resp = client.post("/api/categories", json={"name": "Tubes"}, headers=admin_headers)
        assert resp.status_code == 201

        resp = client.get("/api/categories", headers=admin_headers)
        names = [c["name"] for c in resp.get_json()["items"]]
        assert names == ["Tubes"]

    def test_duplicate_name_conflicts(self, client, admin_headers, category):
        resp = client.post("/api/categories", json={"name": "Tyres"}, headers=admin_headers)
        assert resp.status_code == 409

    def test_delete_in_use_category_conflicts(self, client, admin_headers, category, make_item):
        make_item()
        resp = client.delete(f"/api/categories/{category.id}", headers=admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "Category is used by existing items"


class TestItemCreate:
    def test_codes_are_sequential(self, client, cashier_headers, category):
        codes = []
        for name in ("Bridgestone 185/65 R15", "Dunlop 175/70 R13"):
            resp = client.post(
                "/api/items",
                json={"name": name, "category_id": category.id, "purchase_price": 18500, "retail_price": 22500},
                headers=cashier_headers,
            )
            assert resp.status_code == 201
            codes.append(resp.get_json()["item_code"])
        assert codes == ["RT0001", "RT0002"]

    def test_category_by_name(self, client, admin_headers, category):
        resp = client.post(
            "/api/items",
            json={"name": "Tube 13", "category": "tyres", "purchase_price": 500, "retail_price": 750},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["category_name"] == "Tyres"

    def test_missing_required_fields(self, client, admin_headers, category):
        resp = client.post("/api/items", json={"name": "Nameless"}, headers=admin_headers)
        assert resp.status_code == 400
        assert "Missing required fields" in resp.get_json()["error"]

    def test_duplicate_name_conflicts(self, client, admin_headers, make_item, category):
        make_item("Michelin 195/55 R16")
        resp = client.post(
            "/api/items",
            json={"name": "michelin 195/55 r16", "category_id": category.id, "purchase_price": 1, "retail_price": 2},
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_negative_price_rejected(self, client, admin_headers, category):
        resp = client.post(
            "/api/items",
            json={"name": "Bad", "category_id": category.id, "purchase_price": -1, "retail_price": 2},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_unknown_field_rejected(self, client, admin_headers, category):
        resp = client.post(
            "/api/items",
            json={"name": "Bad", "category_id": category.id, "purchase_price": 1, "retail_price": 2, "item_code": "X1"},
            headers=admin_headers,
        )
        assert resp.status_code == 400


class TestItemLookup:
    def test_lookup_by_code_and_barcode(self, client, cashier_headers, make_item):
        item = make_item("Yokohama 205/55 R16", barcode="YK2055516")

        resp = client.get(f"/api/items/code/{item.item_code.lower()}", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.get_json()["id"] == item.id

        resp = client.get("/api/items/barcode/YK2055516", headers=cashier_headers)
        assert resp.get_json()["item_code"] == item.item_code

        resp = client.get("/api/items/code/RT9999", headers=cashier_headers)
        assert resp.status_code == 404

    def test_search(self, client, cashier_headers, make_item):
        make_item("Yokohama 205/55 R16")
        make_item("Dunlop 175/70 R13")

        resp = client.get("/api/items/search?q=yoko", headers=cashier_headers)
        assert [i["name"] for i in resp.get_json()["items"]] == ["Yokohama 205/55 R16"]

        resp = client.get("/api/items/search?q=", headers=cashier_headers)
        assert resp.status_code == 400

    def test_low_stock_filter_and_pagination(self, client, cashier_headers, make_item):
        make_item("A tyre", quantity=2, lower_limit=5)
        make_item("B tyre", quantity=20, lower_limit=5)
        make_item("C tyre", quantity=0)

        resp = client.get("/api/items?low_stock=true", headers=cashier_headers)
        assert [i["name"] for i in resp.get_json()["items"]] == ["A tyre"]
        assert resp.get_json()["items"][0]["is_low_stock"] is True

        resp = client.get("/api/items?page=2&per_page=2", headers=cashier_headers)
        body = resp.get_json()
        assert body["count"] == 1
        assert body["pagination"]["total"] == 3
        assert body["pagination"]["has_prev"] is True
        assert body["pagination"]["has_next"] is False


class TestItemUpdate:
    def test_price_change_writes_stock_edit(self, client, db_session, manager_headers, make_item):
        item = make_item(retail_price="150.00")
        resp = client.put(f"/api/items/{item.id}", json={"retail_price": 175}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["retail_price"] == 175.0

        log = db_session.query(StockEditLog).filter_by(item_id=item.id).one()
        assert log.operation == "price_update"
        assert float(log.old_retail_price) == 150.0
        assert float(log.new_retail_price) == 175.0

    def test_multiple_tracked_changes_are_general_update(self, client, db_session, manager_headers, make_item):
        item = make_item()
        client.put(
            f"/api/items/{item.id}",
            json={"retail_price": 175, "discount": 5, "reason": "Promo"},
            headers=manager_headers,
        )
        log = db_session.query(StockEditLog).filter_by(item_id=item.id).one()
        assert log.operation == "general_update"
        assert log.reason == "Promo"

    def test_location_change_writes_no_stock_edit(self, client, db_session, manager_headers, make_item):
        item = make_item()
        client.put(f"/api/items/{item.id}", json={"location": "Rack B"}, headers=manager_headers)
        assert db_session.query(StockEditLog).count() == 0


class TestItemDelete:
    def test_unused_item_is_deleted(self, client, db_session, admin_headers, make_item):
        item = make_item()
        item_id = item.id
        resp = client.delete(f"/api/items/{item_id}", headers=admin_headers)
        assert resp.get_json()["deleted"] is True
        assert db_session.get(Item, item_id) is None

    def test_item_with_history_is_deactivated(self, client, db_session, admin_headers, make_item, make_sale):
        item = make_item()
        make_sale([(item, 1, 150)])

        resp = client.delete(f"/api/items/code/{item.item_code}", headers=admin_headers)
        body = resp.get_json()
        assert body == {"item_code": item.item_code, "deleted": False, "deactivated": True}

        resp = client.get("/api/items", headers=admin_headers)
        assert resp.get_json()["count"] == 0
        resp = client.get("/api/items?include_inactive=true", headers=admin_headers)
        assert resp.get_json()["count"] == 1


class TestBulkItems:
    def test_bad_rows_do_not_abort_batch(self, client, admin_headers, category):
        rows = [
            {"name": "Good 1", "category_id": category.id, "purchase_price": 10, "retail_price": 12},
            {"name": "Missing prices", "category_id": category.id},
            {"name": "Good 2", "category": "Tyres", "purchase_price": 10, "retail_price": 12},
            {"name": "Bad category", "category": "Rims", "purchase_price": 10, "retail_price": 12},
        ]
        resp = client.post("/api/items/bulk", json={"items": rows}, headers=admin_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["total_processed"] == 4
        assert body["successful"] == 2
        assert [f["row"] for f in body["failed_items"]] == [2, 4]
        assert body["failed_items"][1]["error"] == "Category not found: Rims"

    def test_csv_upload(self, client, admin_headers, category):
        data = (
            "Item Name,Category,Cost,Selling Price,Stock,Reorder Level\n"
            "Tube 13,Tyres,400,650,12,3\n"
            ",,,,,\n"
            "Tube 14,Tyres,420,690,8,3\n"
        ).encode("utf-8")
        resp = client.post(
            "/api/items/bulk/upload",
            data={"file": (io.BytesIO(data), "items.csv")},
            content_type="multipart/form-data",
            headers=admin_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["successful"] == 2
        assert body["successful_items"][0]["quantity_in_stock"] == 12
        assert body["successful_items"][0]["lower_limit"] == 3

    def test_unsupported_upload(self, client, admin_headers):
        resp = client.post(
            "/api/items/bulk/upload",
            data={"file": (io.BytesIO(b"x"), "items.txt")},
            content_type="multipart/form-data",
            headers=admin_headers,
        )
        assert resp.status_code == 400


class TestExport:
    def test_export_xlsx(self, client, manager_headers, make_item):
        make_item("Dunlop 175/70 R13", quantity=4)
        make_item("Bridgestone 185/65 R15", quantity=6)

        resp = client.get("/api/items/export", headers=manager_headers)
        assert resp.status_code == 200
        assert "inventory_" in resp.headers["Content-Disposition"]

        wb = load_workbook(io.BytesIO(resp.data))
        rows = list(wb.active.iter_rows(values_only=True))
        assert rows[0][0] == "Item Code"
        assert [r[0] for r in rows[1:]] == ["RT0001", "RT0002"]
        assert rows[1][5] == 4
