############################################################################################################################################
# Configuration Objects
#
# The ingestion core is constructed with explicit configuration objects. Loading and saving them is left
# to the caller, to_dict()/from_dict() produce plain JSON compatible dictionaries for that purpose.
#
#   FieldConfig    binds token <index> of a delimited line to a value name
#   SeriesConfig   binds a value name to a plotted trace
#   ParseConfig    how numbers are extracted from lines and how they are charted
#   ColorTag       style rule for the markup renderer
#   MarkupConfig   tag syntax and tag table of the markup renderer
#   StreamConfig   history size, encoding, batching
#
# validate() raises ConfigurationError, this is the only place where the core rejects input.
#
# Maintainer: Urs Utzinger
############################################################################################################################################
#
import re
import codecs
from copy import deepcopy
from functools import lru_cache
from typing import List, Optional
#
from streamscope.config import (PARSE_MODES, CHART_KINDS, PARSE_DEFAULT_MODE, CHART_DEFAULT_KIND,
                                MAX_DATA_POINTS, MAX_LINES, CHART_UPDATE_INTERVAL, ENCODING,
                                FLUSH_INTERVAL_MS, FLUSH_ON_STOP, DETECTION_SAMPLE_LINES,
                                TAG_OPEN, TAG_CLOSE, TAG_CLOSE_MARKER, DEFAULT_COLOR_TAGS, STYLE_KEYS)
#

class ConfigurationError(ValueError):
    ''' A configuration can not be applied '''
    pass

# ==============================================================================
# Regular expression support
# ==============================================================================

# Flags as typed by operators, g/u/y/d have no meaning for a single line match
REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    "g": 0,
    "u": 0,
    "y": 0,
    "d": 0,
}

# (?<name>...) is written (?P<name>...) in Python, lookbehind (?<= and (?<! stay untouched
NAMED_GROUP_RE = re.compile(r'\(\?<(?![=!])')

@lru_cache(maxsize=64)
def compile_regex(pattern: str, flags: str = "") -> re.Pattern:
    """
    Compile an operator supplied pattern with flag letters.
    Raises ConfigurationError on unknown flags or invalid patterns.
    """
    re_flags = 0
    for letter in flags or "":
        if letter not in REGEX_FLAGS:
            raise ConfigurationError(f"Unknown regex flag {letter!r}.")
        re_flags |= REGEX_FLAGS[letter]
    try:
        return re.compile(NAMED_GROUP_RE.sub("(?P<", pattern), re_flags)
    except re.error as e:
        raise ConfigurationError(f"Invalid regular expression {pattern!r}: {e}") from e

# ==============================================================================
# Parse configuration
# ==============================================================================

class FieldConfig:
    ''' Token <index> of a delimited line becomes value <name> '''

    def __init__(self, index: int, name: str, enabled: bool = True):
        self.index   = int(index)
        self.name    = name
        self.enabled = bool(enabled)

    def to_dict(self) -> dict:
        return {"index": self.index, "name": self.name, "enabled": self.enabled}

    @classmethod
    def from_dict(cls, d: dict) -> "FieldConfig":
        return cls(d["index"], d["name"], d.get("enabled", True))

    def __eq__(self, other):
        return isinstance(other, FieldConfig) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"FieldConfig({self.index}, {self.name!r}, enabled={self.enabled})"


class SeriesConfig:
    ''' Value <key> is drawn as a trace '''

    def __init__(self, key: str, display_name: Optional[str] = None, color: str = "#3b82f6",
                 visible: bool = True, unit: Optional[str] = None):
        self.key          = key
        self.display_name = display_name if display_name else key
        self.color        = color
        self.visible      = bool(visible)
        self.unit         = unit

    def to_dict(self) -> dict:
        return {"key": self.key, "display_name": self.display_name, "color": self.color,
                "visible": self.visible, "unit": self.unit}

    @classmethod
    def from_dict(cls, d: dict) -> "SeriesConfig":
        return cls(d["key"], d.get("display_name"), d.get("color", "#3b82f6"), d.get("visible", True), d.get("unit"))

    def __eq__(self, other):
        return isinstance(other, SeriesConfig) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"SeriesConfig({self.key!r}, color={self.color}, visible={self.visible})"


class ParseConfig:
    """
    How numbers are extracted from lines.

    mode selects the strategy: "json", "regex", "delimiter" or "auto".
    In auto mode json is tried when json_enabled, regex when regex_enabled and a pattern is set,
    delimiter when delimiter_enabled and fields are defined.
    """

    FIELDS = ("enabled", "mode",
              "regex_enabled", "regex_pattern", "regex_flags",
              "delimiter_enabled", "delimiter", "fields",
              "json_enabled", "json_keys",
              "chart_kind", "series", "max_data_points", "update_interval_ms", "x_axis_field")

    def __init__(self,
                 enabled: bool = False,
                 mode: str = PARSE_DEFAULT_MODE,
                 regex_enabled: bool = False,
                 regex_pattern: str = "",
                 regex_flags: str = "",
                 delimiter_enabled: bool = False,
                 delimiter: str = ",",
                 fields: Optional[List[FieldConfig]] = None,
                 json_enabled: bool = True,
                 json_keys: Optional[List[str]] = None,
                 chart_kind: str = CHART_DEFAULT_KIND,
                 series: Optional[List[SeriesConfig]] = None,
                 max_data_points: int = MAX_DATA_POINTS,
                 update_interval_ms: int = CHART_UPDATE_INTERVAL,
                 x_axis_field: Optional[str] = None):

        self.enabled            = bool(enabled)
        self.mode               = mode
        self.regex_enabled      = bool(regex_enabled)
        self.regex_pattern      = regex_pattern or ""
        self.regex_flags        = regex_flags or ""
        self.delimiter_enabled  = bool(delimiter_enabled)
        self.delimiter          = delimiter
        self.fields             = list(fields) if fields else []
        self.json_enabled       = bool(json_enabled)
        self.json_keys          = list(json_keys) if json_keys else []
        self.chart_kind         = chart_kind
        self.series             = list(series) if series else []
        self.max_data_points    = int(max_data_points)
        self.update_interval_ms = int(update_interval_ms)
        self.x_axis_field       = x_axis_field

    # Derived properties
    # ----------------------------------------

    @property
    def regex_configured(self) -> bool:
        return self.regex_enabled and bool(self.regex_pattern)

    @property
    def delimiter_configured(self) -> bool:
        return self.delimiter_enabled and bool(self.fields)

    @property
    def enabled_fields(self) -> List[FieldConfig]:
        return [f for f in self.fields if f.enabled]

    @property
    def visible_series(self) -> List[SeriesConfig]:
        return [s for s in self.series if s.visible]

    # Copy and validation
    # ----------------------------------------

    def replace(self, **changes) -> "ParseConfig":
        ''' New configuration with some fields changed, self stays untouched '''
        unknown = set(changes) - set(self.FIELDS)
        if unknown:
            raise ConfigurationError(f"Unknown parse configuration fields: {sorted(unknown)}")
        kwargs = {name: deepcopy(getattr(self, name)) for name in self.FIELDS}
        kwargs.update(deepcopy(changes))
        return ParseConfig(**kwargs)

    def validate(self) -> "ParseConfig":
        """
        Check the configuration before it is applied, returns self.
        Raises ConfigurationError with a message for the operator.
        """
        if self.mode not in PARSE_MODES:
            raise ConfigurationError(f"Unknown parse mode {self.mode!r}, expected one of {PARSE_MODES}.")
        if self.chart_kind not in CHART_KINDS:
            raise ConfigurationError(f"Unknown chart kind {self.chart_kind!r}, expected one of {CHART_KINDS}.")
        if self.max_data_points < 1:
            raise ConfigurationError("Maximum number of data points must be at least 1.")
        if self.update_interval_ms < 1:
            raise ConfigurationError("Chart update interval must be at least 1 ms.")

        # Explicit modes need their strategy switched on
        if self.mode == "json" and not self.json_enabled:
            raise ConfigurationError("JSON mode selected but JSON parsing is disabled.")
        if self.mode == "regex" and not self.regex_enabled:
            raise ConfigurationError("Regex mode selected but regex parsing is disabled.")
        if self.mode == "delimiter" and not self.delimiter_enabled:
            raise ConfigurationError("Delimiter mode selected but delimiter parsing is disabled.")

        # Regex
        if self.mode == "regex" and not self.regex_pattern:
            raise ConfigurationError("Regex mode needs a pattern.")
        if self.mode == "regex" or (self.mode == "auto" and self.regex_configured):
            regex = compile_regex(self.regex_pattern, self.regex_flags)
            if not regex.groupindex:
                raise ConfigurationError(
                    "Regex pattern has no named groups, use (?P<name>...) to name the values.")

        # Delimiter
        if self.mode == "delimiter" or (self.mode == "auto" and self.delimiter_enabled):
            if not self.delimiter:
                raise ConfigurationError("Delimiter must not be empty.")
            if self.mode == "delimiter" and not self.fields:
                raise ConfigurationError("Delimiter mode needs at least one field.")
            for f in self.fields:
                if f.index < 0:
                    raise ConfigurationError(f"Field {f.name!r} has a negative index.")
                if not f.name:
                    raise ConfigurationError(f"Field at index {f.index} has no name.")

        # Series
        for s in self.series:
            if not s.key:
                raise ConfigurationError("Series key must not be empty.")
        if self.chart_kind == "xy-scatter" and not self.x_axis_field:
            raise ConfigurationError("XY scatter chart needs an x axis field.")

        return self

    # Persistence support
    # ----------------------------------------

    def to_dict(self) -> dict:
        d = {name: deepcopy(getattr(self, name)) for name in self.FIELDS}
        d["fields"] = [f.to_dict() for f in self.fields]
        d["series"] = [s.to_dict() for s in self.series]
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "ParseConfig":
        ''' Saved settings merged with defaults, unknown keys are ignored '''
        kwargs = {k: v for k, v in d.items() if k in cls.FIELDS}
        kwargs["fields"] = [f if isinstance(f, FieldConfig) else FieldConfig.from_dict(f) for f in d.get("fields", [])]
        kwargs["series"] = [s if isinstance(s, SeriesConfig) else SeriesConfig.from_dict(s) for s in d.get("series", [])]
        return cls(**kwargs)

    def __eq__(self, other):
        return isinstance(other, ParseConfig) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"ParseConfig(enabled={self.enabled}, mode={self.mode}, chart={self.chart_kind}, "
                f"series={[s.key for s in self.series]})")

# ==============================================================================
# Markup configuration
# ==============================================================================

TAG_NAME_RE = re.compile(r'^[\w-]+$')

class ColorTag:
    ''' Named style rule, only the attributes that are set override the current style '''

    def __init__(self, name: str, color: Optional[str] = None, background_color: Optional[str] = None,
                 font_weight: Optional[str] = None, font_style: Optional[str] = None,
                 text_decoration: Optional[str] = None):
        self.name             = name
        self.color            = color
        self.background_color = background_color
        self.font_weight      = font_weight
        self.font_style       = font_style
        self.text_decoration  = text_decoration

    @property
    def style(self) -> dict:
        ''' Only the attributes that are set '''
        return {k: getattr(self, k) for k in STYLE_KEYS if getattr(self, k)}

    def to_dict(self) -> dict:
        d = {"name": self.name}
        d.update(self.style)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "ColorTag":
        return cls(d["name"], **{k: d.get(k) for k in STYLE_KEYS})

    def __eq__(self, other):
        return isinstance(other, ColorTag) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"ColorTag({self.name!r}, {self.style})"


def default_color_tags() -> List[ColorTag]:
    return [ColorTag.from_dict(d) for d in DEFAULT_COLOR_TAGS]


class MarkupConfig:
    ''' Custom tag syntax: <tag_open>name<tag_close> ... <tag_open><close_marker>[name]<tag_close> '''

    def __init__(self, enabled: bool = True, tag_open: str = TAG_OPEN, tag_close: str = TAG_CLOSE,
                 close_marker: str = TAG_CLOSE_MARKER, tags: Optional[List[ColorTag]] = None):
        self.enabled      = bool(enabled)
        self.tag_open     = tag_open
        self.tag_close    = tag_close
        self.close_marker = close_marker
        self.tags         = list(tags) if tags is not None else default_color_tags()

    @property
    def tag_map(self) -> dict:
        return {tag.name: tag for tag in self.tags}

    def validate(self) -> "MarkupConfig":
        if not self.tag_open or not self.tag_close:
            raise ConfigurationError("Tag delimiters must not be empty.")
        if not self.close_marker:
            raise ConfigurationError("Close marker must not be empty.")
        for tag in self.tags:
            if not tag.name or not TAG_NAME_RE.match(tag.name):
                raise ConfigurationError(f"Invalid tag name {tag.name!r}, use letters, digits, '_' or '-'.")
        return self

    def to_dict(self) -> dict:
        return {"enabled": self.enabled, "tag_open": self.tag_open, "tag_close": self.tag_close,
                "close_marker": self.close_marker, "tags": [t.to_dict() for t in self.tags]}

    @classmethod
    def from_dict(cls, d: dict) -> "MarkupConfig":
        tags = d.get("tags")
        return cls(enabled      = d.get("enabled", True),
                   tag_open     = d.get("tag_open", TAG_OPEN),
                   tag_close    = d.get("tag_close", TAG_CLOSE),
                   close_marker = d.get("close_marker", TAG_CLOSE_MARKER),
                   tags         = [ColorTag.from_dict(t) for t in tags] if tags else None)

# ==============================================================================
# Stream configuration
# ==============================================================================

class StreamConfig:
    ''' History size, decoding and batching of the ingestion pipeline '''

    def __init__(self, max_lines: int = MAX_LINES, encoding: str = ENCODING,
                 flush_interval_ms: int = FLUSH_INTERVAL_MS, flush_on_stop: bool = FLUSH_ON_STOP,
                 detection_sample_lines: int = DETECTION_SAMPLE_LINES):
        self.max_lines              = int(max_lines)
        self.encoding               = encoding
        self.flush_interval_ms      = int(flush_interval_ms)
        self.flush_on_stop          = bool(flush_on_stop)
        self.detection_sample_lines = int(detection_sample_lines)

    def validate(self) -> "StreamConfig":
        if self.max_lines < 1:
            raise ConfigurationError("Maximum number of lines must be at least 1.")
        if self.flush_interval_ms < 0:
            raise ConfigurationError("Flush interval must not be negative.")
        if self.detection_sample_lines < 1:
            raise ConfigurationError("Detection needs at least one sample line.")
        try:
            codecs.lookup(self.encoding)
        except LookupError as e:
            raise ConfigurationError(f"Unknown encoding {self.encoding!r}.") from e
        return self

    def to_dict(self) -> dict:
        return {"max_lines": self.max_lines, "encoding": self.encoding,
                "flush_interval_ms": self.flush_interval_ms, "flush_on_stop": self.flush_on_stop,
                "detection_sample_lines": self.detection_sample_lines}

    @classmethod
    def from_dict(cls, d: dict) -> "StreamConfig":
        keys = ("max_lines", "encoding", "flush_interval_ms", "flush_on_stop", "detection_sample_lines")
        return cls(**{k: d[k] for k in keys if k in d})
