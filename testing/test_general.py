import logging
import time

import pytest

from streamscope.helpers.General_helper import (parse_float, is_number, format_bytes, format_hex, format_time,
                                                parse_time, now_ms, setup_logger, log_prefix)


@pytest.mark.parametrize("token, value", [
    ("23.5", 23.5),
    ("  -4", -4.0),
    ("+1e3", 1000.0),
    ("25.5C", 25.5),
    ("12,", 12.0),
    (".5", 0.5),
    ("7.", 7.0),
])
def test_parse_float(token, value):
    assert parse_float(token) == value

@pytest.mark.parametrize("token", [None, "", "abc", "C25", "-", "1e999", "nan", "inf"])
def test_parse_float_rejects(token):
    assert parse_float(token) is None

@pytest.mark.parametrize("value, expected", [
    (1, True),
    (2.5, True),
    (True, False),
    (float("nan"), False),
    (float("inf"), False),
    ("1", False),
    (None, False),
    (10 ** 400, False),
])
def test_is_number(value, expected):
    assert is_number(value) is expected

@pytest.mark.parametrize("num_bytes, text", [
    (0, "0 B"),
    (512, "512 B"),
    (1024, "1 KB"),
    (1536, "1.5 KB"),
    (1024 ** 2, "1 MB"),
    (int(2.25 * 1024 ** 2), "2.25 MB"),
    (5 * 1024 ** 4, "5120 GB"),
])
def test_format_bytes(num_bytes, text):
    assert format_bytes(num_bytes) == text

def test_format_hex():
    assert format_hex(b"Hello") == "48 65 6C 6C 6F"
    assert format_hex(b"", "ü") == "C3 BC"
    assert format_hex(None) == ""

def test_format_time():
    assert format_time(1738324801123) == "2025-01-31T12:00:01.123"
    assert format_time(1738324801005.9, with_date=False) == "12:00:01.005"
    assert parse_time("2025-01-31T12:00:01.123") == 1738324801123
    assert parse_time("2025-01-31T12:00:01") == 1738324801000

def test_now_ms_round_trips_through_format_time():
    before = time.time() * 1000.
    stamp = now_ms()
    assert isinstance(stamp, int)
    assert before - 1 <= stamp <= time.time() * 1000.
    assert parse_time(format_time(stamp)) == stamp

def test_setup_logger():
    given = logging.getLogger("given")
    assert setup_logger("Anything", logger=given) is given

    logger = setup_logger("LongInstanceName", logging.WARNING)
    assert logger.name == "LongInstan"
    assert logger.level == logging.WARNING
    assert not logger.propagate
    assert len(setup_logger("LongInstanceName").handlers) == 1

def test_log_prefix():
    assert log_prefix("Short") == "[Short          ]:"
    assert log_prefix("AVeryLongInstanceName") == "[AVeryLongInstan]:"
