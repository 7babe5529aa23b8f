import time

import pytest

from streamscope.helpers.Config_helper import ParseConfig, FieldConfig
from streamscope.helpers.Extractor_helper import (parse_with_json, parse_with_regex, parse_with_delimiter,
                                                  parse_auto, extract)


# JSON
# ----------------------------------------

def test_json_keeps_numeric_members():
    result = parse_with_json('{"t": 23.5, "h": 60, "name": "x", "ok": true, "n": null}')
    assert result.success
    assert result.method_used == "json"
    assert result.data_point.values == {"t": 23.5, "h": 60.0}

def test_json_with_keys():
    result = parse_with_json('{"t": 23.5, "h": 60}', ["h", "missing"])
    assert result.data_point.values == {"h": 60.0}

@pytest.mark.parametrize("text", ["[1, 2]", "42", "hello", '{"name": "x"}', "{}", '{"v": NaN}'])
def test_json_failures(text):
    result = parse_with_json(text)
    assert not result.success
    assert result.data_point is None
    assert result.error

def test_json_deeply_nested_line_fails_without_raising():
    nested = "[" * 100000
    result = parse_with_json(nested)
    assert not result.success
    assert result.error.startswith("JSON parse error")
    assert not extract(nested, ParseConfig(enabled=True)).success

# Regex
# ----------------------------------------

def test_regex_named_groups():
    result = parse_with_regex("T=23.5C H=60.1%", r"T=(?P<t>[-\d.]+)C H=(?P<h>\S+)%")
    assert result.success
    assert result.method_used == "regex"
    assert result.data_point.values == {"t": 23.5, "h": 60.1}

def test_regex_angle_bracket_group_names():
    result = parse_with_regex("speed 12 rpm", r"speed (?<rpm>\d+)")
    assert result.data_point.values == {"rpm": 12.0}

def test_regex_flags():
    assert not parse_with_regex("TEMP=5", r"temp=(?P<t>\S+)").success
    assert parse_with_regex("TEMP=5", r"temp=(?P<t>\S+)", "gi").data_point.values == {"t": 5.0}

def test_regex_captures_parse_leading_number():
    result = parse_with_regex("v=25.5C w=abc", r"v=(?P<v>\S+) w=(?P<w>\S+)")
    assert result.data_point.values == {"v": 25.5}

@pytest.mark.parametrize("text, pattern", [
    ("T=1", r"T=(\d+)"),                                                       # no named group
    ("no match here", r"T=(?P<t>\d+)"),
    ("T=abc", r"T=(?P<t>\w+)"),                                                # nothing numeric
    ("T=1", r"T=(?P<t>\d+"),                                                   # malformed
])
def test_regex_failures_do_not_raise(text, pattern):
    result = parse_with_regex(text, pattern)
    assert not result.success
    assert result.error

# Delimiter
# ----------------------------------------

def test_delimiter_fields():
    fields = [FieldConfig(0, "a"), FieldConfig(1, "b"), FieldConfig(2, "c"), FieldConfig(7, "far")]
    result = parse_with_delimiter("1.5, 2.5,abc", ",", fields)
    assert result.success
    assert result.method_used == "delimiter"
    assert result.data_point.values == {"a": 1.5, "b": 2.5}

def test_delimiter_disabled_field_is_skipped():
    fields = [FieldConfig(0, "a", enabled=False), FieldConfig(1, "b")]
    assert parse_with_delimiter("1;2", ";", fields).data_point.values == {"b": 2.0}

def test_delimiter_without_numbers_fails():
    assert not parse_with_delimiter("a,b", ",", [FieldConfig(0, "a"), FieldConfig(1, "b")]).success
    assert not parse_with_delimiter("1,2", ",", [FieldConfig(5, "x")]).success

# Auto and entry point
# ----------------------------------------

def auto_config(**changes):
    config = ParseConfig(enabled=True, mode="auto", json_enabled=True,
                         regex_enabled=True, regex_pattern=r"T=(?P<t>\S+)",
                         delimiter_enabled=True, delimiter=",", fields=[FieldConfig(0, "a"), FieldConfig(1, "b")])
    return config.replace(**changes) if changes else config

def test_auto_priority():
    config = auto_config()
    assert parse_auto('{"x": 1}', config).method_used == "json"
    assert parse_auto("T=4", config).method_used == "regex"
    assert parse_auto("3,4", config).method_used == "delimiter"
    assert not parse_auto("hello world", config).success

def test_auto_skips_strategies_that_are_not_configured():
    config = auto_config(json_enabled=False, regex_enabled=False)
    result = parse_auto('{"x": 1}', config)
    assert not result.success
    assert parse_auto("5", config).data_point.values == {"a": 5.0}

@pytest.mark.parametrize("text", ["", "hello", "{}", "[]", "a,b", "T=x", '{"a": "1"}', ",,,", "1,", "T=", "null"])
def test_auto_never_succeeds_without_values(text):
    result = extract(text, auto_config())
    assert result.success == bool(result.data_point and result.data_point.values)

def test_extract_timestamp_is_extraction_time():
    before = int(time.time() * 1000)
    result = extract('{"x": 1}', auto_config())
    after = time.time() * 1000.
    assert isinstance(result.data_point.timestamp_ms, int)
    assert before <= result.data_point.timestamp_ms <= after

def test_extract_disabled():
    assert not extract('{"x": 1}', ParseConfig(enabled=False)).success

def test_extract_explicit_modes():
    config = auto_config(mode="json")
    assert extract('{"x": 1}', config).method_used == "json"
    assert not extract("1,2", config).success

    config = auto_config(mode="delimiter")
    assert extract("1,2", config).data_point.values == {"a": 1.0, "b": 2.0}

    config = auto_config(mode="regex", regex_enabled=False)
    result = extract("T=1", config)
    assert not result.success
    assert result.method_used == "regex"
