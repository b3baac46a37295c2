from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from sheetcms.errors import FieldTypeError, InvalidQueryError
from sheetcms.schema import Sheet
from sheetcms.validate import to_cells, to_python


def test_to_cells_canonicalises_by_column_type():
    cells = to_cells(
        Sheet.PRODUCTS,
        {
            "name": "Mug",
            "price": 12.5,
            "stock": "7",
            "gallery_urls": ["a.png", "b.png"],
            "extra": "passed through",
        },
    )
    assert cells == {
        "name": "Mug",
        "price": "12.5",
        "stock": "7",
        "gallery_urls": '["a.png","b.png"]',
        "extra": "passed through",
    }


def test_to_cells_handles_dates_and_empties():
    cells = to_cells(
        Sheet.BLOG_POSTS,
        {"date": datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc), "views": None, "title": ""},
    )
    assert cells == {"date": "2024-05-01", "views": "", "title": ""}


def test_timestamp_accepts_zulu_suffix():
    cells = to_cells(Sheet.ADMIN_USERS, {"last_login": "2024-01-02T03:04:05Z"})
    assert cells["last_login"] == "2024-01-02T03:04:05+00:00"


@pytest.mark.parametrize(
    "field,value",
    [("stock", "seven"), ("stock", True), ("price", "NaN"), ("date", "tomorrow")],
)
def test_to_cells_rejects_mistyped_values(field, value):
    sheet = Sheet.BLOG_POSTS if field == "date" else Sheet.PRODUCTS
    with pytest.raises(FieldTypeError) as exc:
        to_cells(sheet, {field: value})
    assert exc.value.field == field
    assert str(exc.value).startswith(f"type_error:{field}:")
    assert isinstance(exc.value, InvalidQueryError)


def test_to_python_parses_and_keeps_malformed_text():
    record = {
        "id": "prd_1",
        "price": "9.99",
        "stock": "lots",
        "gallery_urls": "[]",
        "created_at": "2024-01-01T00:00:00+00:00",
    }
    typed = to_python(Sheet.PRODUCTS, record)
    assert typed["price"] == Decimal("9.99")
    assert typed["stock"] == "lots"
    assert typed["gallery_urls"] == []
    assert typed["created_at"] == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert typed["sku"] is None


def test_to_python_dates():
    typed = to_python(Sheet.BLOG_POSTS, {"date": "2024-02-29", "views": "12"})
    assert typed["date"] == date(2024, 2, 29)
    assert typed["views"] == 12
