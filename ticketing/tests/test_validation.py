import pytest
from datetime import datetime, timezone

from ticketing.common.errors import ValidationError
from ticketing.common.pagination import Page
from ticketing.common.validation import (
    build_patch,
    parse_dt,
    parse_positive_int,
    require_fields,
)


def test_parse_dt_variants():
    assert parse_dt("2026-05-01T10:00:00Z") == datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert parse_dt("2026-05-01T10:00") == datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert parse_dt("2026-05-01T12:00:00+02:00") == datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", [None, "", "tomorrow", "2026-13-45", 20260501])
def test_parse_dt_invalid(value):
    assert parse_dt(value) is None


def test_require_fields_names_the_set():
    with pytest.raises(ValidationError) as exc:
        require_fields({"a": "x", "b": ""}, ("a", "b", "c"))
    assert exc.value.message == "Missing required fields: a, b, c"

    require_fields({"a": "x"}, ("a",))


def test_build_patch_keeps_only_present_values():
    data = {"venue": "Hall B", "event_name": "", "category": None, "unknown": "x"}

    assert build_patch(data, ("venue", "event_name", "category", "event_date")) == {"venue": "Hall B"}


def test_parse_positive_int():
    assert parse_positive_int(None, "page", 1) == 1
    assert parse_positive_int("3", "page", 1) == 3
    with pytest.raises(ValidationError):
        parse_positive_int("0", "page", 1)
    with pytest.raises(ValidationError):
        parse_positive_int("1.5", "limit", 50)


def test_page_arithmetic():
    page = Page(page=2, limit=50)

    assert page.offset == 50
    assert page.last_index == 99
    assert page.summary(125) == {
        "total": 125,
        "page": 2,
        "limit": 50,
        "totalPages": 3,
        "hasNextPage": True,
        "hasPrevPage": True,
    }


def test_page_last_and_empty():
    assert Page(page=3, limit=50).summary(125)["hasNextPage"] is False
    empty = Page().summary(None)
    assert empty["total"] == 0
    assert empty["totalPages"] == 0
    assert empty["hasNextPage"] is False
    assert empty["hasPrevPage"] is False
