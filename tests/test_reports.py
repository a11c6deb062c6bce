"""Low-stock, valuation, inventory and activity reports."""

import pytest

from stockledger.exceptions import ProductNotFoundError
from stockledger.services import product_service, report_service, stock_service


class TestLowStock:
    def test_ordered_by_deficit(self, db, admin, make_product):
        near = make_product(name="Near", stock=9, minimum=10)
        far = make_product(name="Far", stock=10, minimum=10)
        stock_service.apply_movement(db, far.id, "adjustment", 7, "recount", admin.id)
        make_product(name="Healthy", stock=20, minimum=10)

        low = report_service.low_stock(db)
        assert [p.id for p in low] == [far.id, near.id]
        assert [p.deficit for p in low] == [3, 1]

    def test_at_minimum_counts_as_low(self, db, make_product):
        product = make_product(stock=5, minimum=5)
        assert [p.id for p in report_service.low_stock(db)] == [product.id]

    def test_ties_by_name(self, db, make_product):
        make_product(name="Bolt", stock=0, minimum=2)
        make_product(name="Anchor", stock=0, minimum=2)
        assert [p.name for p in report_service.low_stock(db)] == ["Anchor", "Bolt"]

    def test_inactive_excluded(self, db, make_product):
        product = make_product(stock=1, minimum=5)
        product_service.deactivate_product(db, product.id)
        assert report_service.low_stock(db) == []


class TestValuation:
    def test_sum_of_price_times_stock(self, db, make_product):
        make_product(name="A", stock=3, price=2.50)
        make_product(name="B", stock=4, price=10.0)
        make_product(name="C", stock=0, price=99.0)
        assert report_service.valuation(db) == 47.5

    def test_empty(self, db):
        assert report_service.valuation(db) == 0.0


class TestStockStatus:
    @pytest.mark.parametrize(
        "stock, minimum, expected",
        [(0, 5, "out_of_stock"), (5, 5, "low_stock"), (6, 5, "normal"), (0, 0, "out_of_stock")],
    )
    def test_status(self, db, make_product, stock, minimum, expected):
        product = make_product(stock=stock, minimum=minimum)
        assert report_service.stock_status(product) == expected


class TestInventoryReport:
    def test_orders_and_groups(self, db, make_product, category):
        make_product(name="Cable", stock=30, price=2.0, category_id=category.id)
        make_product(name="Adapter", stock=5, price=8.0, category_id=category.id)
        make_product(name="Broom", stock=12, price=4.0)

        by_name = report_service.inventory_report(db)
        assert [p["name"] for p in by_name["products"]] == ["Adapter", "Broom", "Cable"]

        by_stock = report_service.inventory_report(db, order="stock")
        assert [p["stock_current"] for p in by_stock["products"]] == [5, 12, 30]

        by_price = report_service.inventory_report(db, order="price")
        assert [p["price"] for p in by_price["products"]] == [8.0, 4.0, 2.0]

        groups = {g["category"]: g for g in by_name["by_category"]}
        assert groups["Electronics"]["product_count"] == 2
        assert groups["Electronics"]["total_value"] == 100.0
        assert groups["Uncategorized"]["total_units"] == 12

    def test_filters(self, db, make_product, category):
        make_product(name="Cable", stock=30, category_id=category.id)
        make_product(name="Adapter", stock=5, category_id=category.id)
        make_product(name="Broom", stock=2)

        report = report_service.inventory_report(db, category_id=category.id, max_stock=10)
        assert [p["name"] for p in report["products"]] == ["Adapter"]
        assert report["total_products"] == 1

    def test_unknown_order(self, db):
        with pytest.raises(ValueError):
            report_service.inventory_report(db, order="colour")


class TestActivity:
    def test_by_product(self, db, admin, make_product):
        a = make_product(name="A", stock=10)
        b = make_product(name="B", stock=10)
        stock_service.apply_movement(db, a.id, "exit", 4, None, admin.id)
        stock_service.apply_movement(db, a.id, "exit", 1, None, admin.id)
        stock_service.apply_movement(db, b.id, "adjustment", 3, None, admin.id)

        rows = report_service.activity(db, days=30, group_by="product")
        assert [r["name"] for r in rows] == ["A", "B"]
        assert (rows[0]["movements"], rows[0]["entries"], rows[0]["exits"]) == (3, 10, 5)
        assert (rows[1]["movements"], rows[1]["entries"], rows[1]["exits"]) == (2, 10, 0)

    def test_by_user(self, db, admin, staff, make_product):
        product = make_product(stock=10)
        stock_service.apply_movement(db, product.id, "exit", 2, None, staff.id)
        rows = report_service.activity(db, group_by="user")
        assert {r["name"]: r["exits"] for r in rows} == {"admin": 0, "clerk": 2}

    def test_by_category_skips_uncategorized(self, db, make_product, category):
        make_product(name="Cable", stock=3, category_id=category.id)
        make_product(name="Broom", stock=3)
        rows = report_service.activity(db, group_by="category")
        assert [r["name"] for r in rows] == ["Electronics"]

    def test_limit(self, db, make_product):
        for name in ("A", "B", "C"):
            make_product(name=name, stock=1)
        assert len(report_service.activity(db, limit=2)) == 2

    def test_unknown_grouping(self, db):
        with pytest.raises(ValueError):
            report_service.activity(db, group_by="warehouse")


class TestSummaries:
    def test_inventory_summary(self, db, make_product):
        make_product(name="A", stock=0, minimum=1, price=5.0)
        make_product(name="B", stock=4, minimum=1, price=5.0)

        summary = report_service.inventory_summary(db)
        assert summary["total_products"] == 2
        assert summary["total_units_in_stock"] == 4
        assert summary["total_inventory_value"] == 20.0
        assert summary["low_stock_count"] == 1
        assert summary["out_of_stock_count"] == 1
        assert summary["movements_today"] == 1

    def test_dashboard_sections(self, db, admin, make_product, category):
        make_product(name="Cable", stock=3, category_id=category.id)

        dash = report_service.dashboard(db)
        assert dash["general"]["total_categories"] == 1
        assert dash["users"] == {"total_users": 1, "active_users": 1}
        assert dash["today"]["entry"] == {"count": 1, "quantity": 3}
        assert dash["top_categories"][0]["name"] == "Electronics"
        assert dash["top_users"][0]["username"] == "admin"

    def test_trends(self, db, make_product):
        make_product(stock=2)
        trends = report_service.trends(db, days=7)
        assert trends["days"] == 7
        assert trends["daily"][0]["entries"] == 1


class TestVerifyLedger:
    def test_consistent_history(self, db, admin, make_product):
        product = make_product(stock=8)
        stock_service.apply_movement(db, product.id, "exit", 3, None, admin.id)
        check = report_service.verify_ledger(db, product.id)
        assert check["consistent"]
        assert check["movements"] == 2
        assert check["stock_current"] == 5

    def test_detects_stock_written_outside_ledger(self, db, make_product):
        product = make_product(stock=8)
        product_service.set_stock(db, product.id, 11)
        db.commit()
        check = report_service.verify_ledger(db, product.id)
        assert not check["consistent"]
        assert check["problems"][0]["issue"] == "stock_current differs from last stock_after"

    def test_missing_product(self, db):
        with pytest.raises(ProductNotFoundError):
            report_service.verify_ledger(db, 404)
