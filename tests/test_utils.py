"""
Tests for input sanitization and query parsing helpers.
"""

import pytest

from chatroom.errors import ChatError, Forbidden, NameConflict, NotFound, ValidationError
from chatroom.utils import format_clock_time, parse_limit, sanitize_text


@pytest.mark.parametrize("raw, expected", [
    ("Ana", "Ana"),
    ("  Ana  ", "Ana"),
    ("<b>Ana</b>", "Ana"),
    ("<a href='x'>click</a> me", "click me"),
    ("Tom &amp; Jerry", "Tom & Jerry"),
    ("<p> </p>", ""),
    ("<script>alert(1)</script>hi", "hi"),
    ("<style>b { color: red }</style>Ana", "Ana"),
    ("<b>Ana</b><script>steal()</script>", "Ana"),
    ("", ""),
    (None, ""),
])
def test_sanitize_text(raw, expected):
    assert sanitize_text(raw) == expected


@pytest.mark.parametrize("raw, expected", [
    (None, None),
    ("5", 5),
    (" 12 ", 12),
    ("0", None),
    ("-3", None),
    ("abc", None),
    ("2.5", None),
    ("", None),
])
def test_parse_limit(raw, expected):
    assert parse_limit(raw) == expected


def test_format_clock_time_shape():
    formatted = format_clock_time(1_700_000_000_000)

    assert len(formatted) == 8
    assert formatted.count(":") == 2


def test_error_status_codes():
    assert ValidationError("x").status_code == 422
    assert NameConflict("x").status_code == 409
    assert NotFound("x").status_code == 404
    assert Forbidden("x").status_code == 401


def test_error_result_labels():
    assert ChatError("x").result == "error"
    assert ValidationError("x").result == "validation_error"
    assert NameConflict("x").result == "name_conflict"
    assert NotFound("x").result == "not_found"
    assert Forbidden("x").result == "forbidden"
