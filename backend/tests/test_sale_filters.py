"""
Sale search tests.

Verifies:
- Predicates are built from raw search inputs, malformed ones dropped
- Receipt numbers map to sale ids
- search_sales applies the filters, orders newest first and reports totals returned
"""

from datetime import datetime

import pytest

from posdesk.services import return_service
from posdesk.services.sale_filters import (
    AnyOf,
    Predicate,
    build_sale_filters,
    compile_predicate,
    format_receipt_number,
    receipt_number_to_sale_id,
)


# =============================================================================
# PREDICATE BUILDING
# =============================================================================


class TestReceiptNumbers:

    def test_format(self):
        assert format_receipt_number(123) == "RCP-000123"
        assert format_receipt_number(1234567, prefix="R") == "R-1234567"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("RCP-000123", 123),
            ("#42", 42),
            ("000007", 7),
            ("rcp 12", 12),
            ("RCP-", None),
            ("", None),
            (None, None),
            ("9" * 19, None),
        ],
    )
    def test_parse(self, raw, expected):
        assert receipt_number_to_sale_id(raw) == expected


class TestBuildSaleFilters:

    def test_no_inputs_no_filters(self):
        assert build_sale_filters() == ([], [])
        assert build_sale_filters(term="  ", date_from="", receipt_number=" ") == ([], [])

    def test_text_term_searches_contact_fields(self):
        filters, dropped = build_sale_filters(term="jane")

        assert dropped == []
        assert filters == [AnyOf((
            Predicate("customer_name", "contains", "jane"),
            Predicate("customer_phone", "contains", "jane"),
            Predicate("customer_email", "contains", "jane"),
        ))]

    @pytest.mark.parametrize("term", ["RCP-000123", "#123", "123"])
    def test_receipt_like_term_also_matches_id(self, term):
        filters, _ = build_sale_filters(term=term)
        assert Predicate("id", "eq", 123) in filters[0].predicates

    def test_calendar_date_to_covers_whole_day(self):
        filters, _ = build_sale_filters(date_from="2026-03-01", date_to="2026-03-01")
        assert filters == [
            Predicate("created_at", "gte", datetime(2026, 3, 1)),
            Predicate("created_at", "lt", datetime(2026, 3, 2)),
        ]

    def test_datetime_date_to_is_inclusive(self):
        filters, _ = build_sale_filters(date_to="2026-03-01T15:30:00Z")
        assert filters == [Predicate("created_at", "lte", datetime(2026, 3, 1, 15, 30))]

    def test_malformed_inputs_dropped(self):
        filters, dropped = build_sale_filters(
            date_from="yesterday",
            date_to="2026-13-45",
            receipt_number="RCP-",
        )
        assert filters == []
        assert dropped == ["date_from", "date_to", "receipt_number"]

    def test_last_representable_day_dropped_as_upper_bound(self):
        filters, dropped = build_sale_filters(date_from="9999-12-31", date_to="9999-12-31")
        assert filters == [Predicate("created_at", "gte", datetime(9999, 12, 31))]
        assert dropped == ["date_to"]

    def test_receipt_number_filter(self):
        filters, dropped = build_sale_filters(receipt_number="RCP-000042")
        assert filters == [Predicate("id", "eq", 42)]
        assert dropped == []

    def test_unknown_field_refused(self):
        with pytest.raises(ValueError):
            compile_predicate(Predicate("password_hash", "eq", "x"))

    def test_unknown_operator_refused(self):
        with pytest.raises(ValueError):
            compile_predicate(Predicate("customer_name", "regex", "x"))


# =============================================================================
# SEARCH
# =============================================================================


@pytest.fixture
def sales(make_product, make_sale):
    """Three sales on consecutive days, newest last."""
    widget = make_product("SKU-W", "Widget", price_cents=1000, stock_quantity=10)
    first = make_sale(
        [(widget, 1, 1000)],
        created_at=datetime(2026, 3, 1, 9, 0),
        customer_name="Alice Smith",
        customer_phone="555-000-1111",
        customer_email="alice@example.com",
    )
    second = make_sale(
        [(widget, 2, 1000)],
        created_at=datetime(2026, 3, 2, 23, 59),
        customer_name="Bob 100% Jones",
        customer_phone="555-000-2222",
    )
    third = make_sale([(widget, 3, 1000)], created_at=datetime(2026, 3, 3, 8, 0))
    return first, second, third


class TestSearchSales:

    def test_no_filters_returns_recent_sales(self, db_session, sales):
        result = return_service.search_sales()

        assert result["count"] == 3
        assert [s["id"] for s in result["sales"]] == [sales[2].id, sales[1].id, sales[0].id]
        assert result["ignored_filters"] == []

    def test_limit_caps_results(self, db_session, sales):
        result = return_service.search_sales(limit=2)
        assert [s["id"] for s in result["sales"]] == [sales[2].id, sales[1].id]

    def test_default_limit_from_config(self, app, db_session, sales):
        app.config["RETURN_SEARCH_LIMIT"] = 1
        try:
            assert return_service.search_sales()["count"] == 1
        finally:
            app.config["RETURN_SEARCH_LIMIT"] = 50

    def test_term_is_case_insensitive(self, db_session, sales):
        result = return_service.search_sales(term="ALICE")
        assert [s["id"] for s in result["sales"]] == [sales[0].id]

    def test_term_matches_email(self, db_session, sales):
        result = return_service.search_sales(term="alice@example")
        assert [s["id"] for s in result["sales"]] == [sales[0].id]

    def test_like_wildcards_are_literal(self, db_session, sales):
        result = return_service.search_sales(term="100%")
        assert [s["id"] for s in result["sales"]] == [sales[1].id]

    def test_term_matches_receipt_number(self, db_session, sales):
        result = return_service.search_sales(term=format_receipt_number(sales[2].id))
        assert [s["id"] for s in result["sales"]] == [sales[2].id]

    def test_receipt_number_filter(self, db_session, sales):
        result = return_service.search_sales(receipt_number=f"#{sales[1].id}")
        assert [s["receipt_number"] for s in result["sales"]] == [format_receipt_number(sales[1].id)]

    def test_date_range_includes_whole_last_day(self, db_session, sales):
        result = return_service.search_sales(date_from="2026-03-02", date_to="2026-03-02")
        assert [s["id"] for s in result["sales"]] == [sales[1].id]

    def test_filters_are_combined(self, db_session, sales):
        result = return_service.search_sales(term="555-000", date_to="2026-03-01")
        assert [s["id"] for s in result["sales"]] == [sales[0].id]

    def test_malformed_filter_ignored_not_raised(self, db_session, sales, caplog):
        result = return_service.search_sales(date_from="not-a-date", date_to="9999-12-31")

        assert result["count"] == 3
        assert result["ignored_filters"] == ["date_from", "date_to"]
        assert any("Ignoring malformed sale search filters" in r.getMessage() for r in caplog.records)

    def test_total_returned_annotation(self, db_session, sales):
        second = sales[1]
        return_service.submit_return(
            sale_id=second.id,
            return_type="refund",
            refund_method="cash",
            reason="changed_mind",
            items=[{"sale_line_item_id": second.lines[0].id, "quantity": 1, "condition": "new"}],
        )

        by_id = {s["id"]: s for s in return_service.search_sales()["sales"]}

        assert by_id[second.id]["total_returned"] == "10.00"
        assert by_id[second.id]["total_returned_cents"] == 1000
        assert by_id[sales[0].id]["total_returned"] == "0.00"
        assert by_id[second.id]["final_amount"] == "20.00"

    def test_contact_masked_in_results(self, db_session, sales):
        result = return_service.search_sales(term="alice")
        assert result["sales"][0]["customer_phone"] == "***-***-1111"
        assert result["sales"][0]["customer_email"] == "a****@example.com"

    def test_no_matches(self, db_session, sales):
        result = return_service.search_sales(term="nobody")
        assert result == {"sales": [], "count": 0, "ignored_filters": []}
