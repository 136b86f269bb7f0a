from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.tcms.pagination import clamp_page, page_url_builder, paginate, parse_page_arg, search_filter
from app.tcms.utils import format_money, parse_csv_list, parse_decimal, percent


def test_paginate_list_slices_and_counts():
    page = paginate(list(range(25)), page=2, per_page=10)
    assert page.items == list(range(10, 20))
    assert page.total == 25
    assert page.total_pages == 3
    assert page.has_next and page.has_previous
    assert (page.start_index, page.end_index) == (11, 20)


def test_paginate_clamps_out_of_range_pages():
    assert paginate(list(range(5)), page=9, per_page=2).page == 3
    assert paginate(list(range(5)), page=0, per_page=2).page == 1

    empty = paginate([], page=4, per_page=10)
    assert empty.page == 1
    assert empty.items == []
    assert (empty.start_index, empty.end_index) == (0, 0)
    assert not empty.has_next


def test_paginate_rejects_bad_page_size():
    with pytest.raises(ValueError):
        paginate([1, 2], per_page=0)


def test_clamp_page():
    assert clamp_page(3, total=0, per_page=10) == 1
    assert clamp_page(-1, total=30, per_page=10) == 1
    assert clamp_page(7, total=30, per_page=10) == 3


def test_search_filter_walks_dotted_paths():
    rows = [
        SimpleNamespace(code="A1", user=SimpleNamespace(profile=SimpleNamespace(full_name="Alice Uwase"))),
        SimpleNamespace(code="B2", user=SimpleNamespace(profile=None)),
        {"code": "C3", "name": "carol"},
    ]
    assert search_filter(rows, "uwase", "user.profile.full_name") == [rows[0]]
    assert search_filter(rows, "b2", "code", "user.profile.full_name") == [rows[1]]
    assert search_filter(rows, "CAROL", "name") == [rows[2]]
    assert search_filter(rows, "  ", "code") == rows


def test_page_args_and_urls_keep_filters(app):
    with app.test_request_context("/admin/students?q=ann&page=3"):
        assert parse_page_arg() == 3
        build_url = page_url_builder("students.students_list")
        url = build_url(4)
        assert "q=ann" in url
        assert "page=4" in url

    with app.test_request_context("/admin/students?page=-2"):
        assert parse_page_arg() == 1


def test_money_and_number_helpers():
    assert format_money(Decimal("1234567.4")) == "RWF 1,234,567"
    assert format_money(None, "USD") == "USD 0"
    assert parse_decimal("1,500.50") == Decimal("1500.50")
    assert parse_decimal("  ") is None
    with pytest.raises(ValueError):
        parse_decimal("abc")
    assert parse_csv_list("python, sql,, git ") == ["python", "sql", "git"]


@pytest.mark.parametrize("raw", ["NaN", "nan", "Infinity", "-inf", "1e30", "10000000000", Decimal("NaN")])
def test_parse_decimal_rejects_values_a_money_column_cannot_hold(raw):
    with pytest.raises(ValueError):
        parse_decimal(raw)


def test_parse_decimal_accepts_largest_storable_amount():
    assert parse_decimal("9999999999.99") == Decimal("9999999999.99")


def test_percent_rounds_halves_up():
    assert percent(1, 8) == 13
    assert percent(3, 8) == 38
    assert percent(Decimal("1"), Decimal("3")) == 33
    assert percent(5, 0) == 0
