############################################################################################################################################
# Structured Extractor
#
# Extracts named numeric values from a line of text.
#
#   parse_with_json(text, keys)                  {"t": 23.5, "h": 60}
#   parse_with_regex(text, pattern, flags)       T=(?P<t>\S+) H=(?P<h>\S+)
#   parse_with_delimiter(text, delimiter, fields) 23.5,60
#   parse_auto(text, config)                     json, then regex, then delimiter, first success wins
#   extract(text, config)                        selects the strategy from config.mode
#
# Most lines of a device log are plain text. A failed extraction is a normal outcome and is returned
# as ParseResult(success=False), nothing here raises for bad input.
#
# Maintainer: Urs Utzinger
############################################################################################################################################
#
import json
from typing import Iterable, List, Optional
#
from streamscope.helpers.Stream_models import DataPoint, ParseResult
from streamscope.helpers.Config_helper import ParseConfig, FieldConfig, ConfigurationError, compile_regex
from streamscope.helpers.General_helper import parse_float, is_number, now_ms
#
# Profiling
# ----------------------------------------
try:
    profile                                                                    # provided by kernprof at runtime
except NameError:
    def profile(func):                                                         # no-op when not profiling
        return func

NO_VALUES = "No numeric values extracted."

def _result(values: dict, method: str) -> ParseResult:
    if not values:
        return ParseResult.fail(NO_VALUES, method)
    return ParseResult.ok(DataPoint(now_ms(), values), method)

# ==============================================================================
# Strategies
# ==============================================================================

def parse_with_json(text: str, keys: Optional[Iterable[str]] = None) -> ParseResult:
    """
    Line is a JSON object, numeric members become values.
    With keys only those members are considered.
    """
    try:
        data = json.loads(text)
    except (ValueError, RecursionError) as e:                               # deeply nested input
        return ParseResult.fail(f"JSON parse error: {e}", "json")

    if not isinstance(data, dict):
        return ParseResult.fail("JSON data is not an object.", "json")

    target_keys = list(keys) if keys else list(data.keys())
    values = {}
    for key in target_keys:
        value = data.get(key)
        if is_number(value):
            values[key] = float(value)

    return _result(values, "json")

def parse_with_regex(text: str, pattern: str, flags: str = "") -> ParseResult:
    """
    First match of pattern in text, named groups that start with a number become values.
    A bad pattern fails the line, it does not raise.
    """
    try:
        regex = compile_regex(pattern, flags)
    except ConfigurationError as e:
        return ParseResult.fail(str(e), "regex")

    if not regex.groupindex:
        return ParseResult.fail("Regex has no named groups.", "regex")

    match = regex.search(text)
    if match is None:
        return ParseResult.fail("Regex did not match.", "regex")

    values = {}
    for name, captured in match.groupdict().items():
        value = parse_float(captured)
        if value is not None:
            values[name] = value

    return _result(values, "regex")

def parse_with_delimiter(text: str, delimiter: str, fields: List[FieldConfig]) -> ParseResult:
    """
    Split text on delimiter, every enabled field reads its token.
    Fields that point past the last token are skipped.
    """
    if not delimiter:
        return ParseResult.fail("Delimiter is empty.", "delimiter")

    parts = text.split(delimiter)
    values = {}
    for field in fields:
        if not field.enabled or field.index < 0 or field.index >= len(parts):
            continue
        value = parse_float(parts[field.index].strip())
        if value is not None:
            values[field.name] = value

    return _result(values, "delimiter")

def parse_auto(text: str, config: ParseConfig) -> ParseResult:
    ''' json, regex and delimiter in this order, only the strategies that are configured '''
    if config.json_enabled:
        result = parse_with_json(text, config.json_keys)
        if result.success:
            return result

    if config.regex_configured:
        result = parse_with_regex(text, config.regex_pattern, config.regex_flags)
        if result.success:
            return result

    if config.delimiter_configured:
        result = parse_with_delimiter(text, config.delimiter, config.fields)
        if result.success:
            return result

    return ParseResult.fail("All parse methods failed.")

# ==============================================================================
# Entry point
# ==============================================================================

@profile
def extract(text: str, config: ParseConfig) -> ParseResult:
    """
    Extract a data point from one line with the strategy selected by config.mode.

    A successful result always has a data point with at least one value and the
    time of extraction as timestamp.
    """
    if not config.enabled:
        return ParseResult.fail("Chart parsing is disabled.")

    mode = config.mode

    if mode == "json":
        if not config.json_enabled:
            return ParseResult.fail("JSON parsing is disabled.", "json")
        return parse_with_json(text, config.json_keys)

    if mode == "regex":
        if not config.regex_configured:
            return ParseResult.fail("Regex is not configured.", "regex")
        return parse_with_regex(text, config.regex_pattern, config.regex_flags)

    if mode == "delimiter":
        if not config.delimiter_configured:
            return ParseResult.fail("Delimiter configuration is incomplete.", "delimiter")
        return parse_with_delimiter(text, config.delimiter, config.fields)

    if mode == "auto":
        return parse_auto(text, config)

    return ParseResult.fail(f"Unknown parse mode {mode!r}.")
