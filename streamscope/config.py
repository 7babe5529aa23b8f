################################################################################################################################
# Constants for StreamScope
################################################################################################################################
import logging
import re
################################################################################################################################
# Constants General
VERSION                 = "0.5.0"                # this version
AUTHOR                  = "Urs Utzinger"         # me
DATE                    = "2025"                 # year of last update
################################################################################################################################
# Debug and Profiling
PROFILEME               = False                  # enable/disable profiling (measure execution time of functions)
DEBUGSTREAM             = False                  # enable/disable low level stream debugging (chunks, fragments, flushes)
DEBUGEXTRACT            = False                  # enable/disable logging of every failed extraction
################################################################################################################################
# Constants Text History
MAX_LINES               = 10_000                 # default number of lines kept in the line history
ENCODING                = "utf-8"                # default encoding for decoding received bytes
LINE_DELIMITER          = b"\n"                  # lines are terminated by \n, a preceding \r is stripped
CARRIAGE_RETURN         = b"\r"
################################################################################################################################
# Constants Batching
FLUSH_INTERVAL_MS       = 16                     # [ms] ~60 Hz, one render frame. Received data is buffered in between
FLUSH_ON_STOP           = True                   # emit trailing partial lines when the stream stops
################################################################################################################################
# Constants Chart
MAX_DATA_POINTS         = 1_000                  # default number of data points kept for the chart
CHART_UPDATE_INTERVAL   = 100                    # [ms] chart refresh suggested to the rendering side
DEF_COLS                = 2                      # initial columns of the data point ring, grows on demand
AXIS_MARGIN             = 0.1                    # 10% margin around the data range
AXIS_FALLBACK_RANGE     = 10.0                   # half range used when all values are 0
PARSE_MODES             = ("regex", "delimiter", "json", "auto")
CHART_KINDS             = ("line", "bar", "scatter", "xy-scatter")
PARSE_DEFAULT_MODE      = "auto"
CHART_DEFAULT_KIND      = "line"
# Preset colors, cycled when series are created automatically
PRESET_COLORS = [
    "#3b82f6",                                   # blue
    "#ef4444",                                   # red
    "#10b981",                                   # green
    "#f59e0b",                                   # amber
    "#8b5cf6",                                   # violet
    "#ec4899",                                   # pink
    "#06b6d4",                                   # cyan
    "#f97316",                                   # orange
    "#84cc16",                                   # lime
    "#6366f1",                                   # indigo
]
################################################################################################################################
# Constants Auto Detection
DETECTION_SAMPLE_LINES  = 20                     # number of most recent lines sampled for format detection
DETECTION_THRESHOLD     = 0.8                    # single-value, xy-data and json must exceed this confidence
DETECTION_CSV_THRESHOLD = 0.6                    # csv must exceed this confidence
DETECTION_DELIMITERS    = (",", "\t", " ", ";")  # candidates, earlier wins on ties
DELIMITER_NAMES         = {",": "comma", "\t": "tab", " ": "space", ";": "semicolon"}
NUMBER_RE               = re.compile(r"^[-+]?\d+\.?\d*$")
################################################################################################################################
# Constants Line Levels
# Ordered, first match wins. Markers are matched case insensitive anywhere in the line.
LEVEL_MARKERS = (
    ("error", ("[error]", "[err]", "error:")),
    ("warn",  ("[warn]", "[warning]", "warning:")),
    ("debug", ("[debug]", "[dbg]")),
)
LEVEL_DEFAULT           = "info"
################################################################################################################################
# Constants Markup
# Escape sequences, SGR (Select Graphic Rendition) is rendered, everything else is removed
ANSI_SGR                = re.compile(r"\x1b\[([0-9;]*)m")
ANSI_ESCAPE             = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')
ANSI_FOREGROUND = {
    "30": "#111827", "31": "#ef4444", "32": "#22c55e", "33": "#eab308",
    "34": "#3b82f6", "35": "#a855f7", "36": "#06b6d4", "37": "#f3f4f6",
    "90": "#6b7280", "91": "#f87171", "92": "#4ade80", "93": "#facc15",
    "94": "#60a5fa", "95": "#c084fc", "96": "#22d3ee", "97": "#ffffff",
}
ANSI_BACKGROUND = {
    "40": "#111827", "41": "#ef4444", "42": "#22c55e", "43": "#eab308",
    "44": "#3b82f6", "45": "#a855f7", "46": "#06b6d4", "47": "#f3f4f6",
    "100": "#6b7280", "101": "#f87171", "102": "#4ade80", "103": "#facc15",
    "104": "#60a5fa", "105": "#c084fc", "106": "#22d3ee", "107": "#ffffff",
}
# Custom tags: [name]text[/name] or [name]text[/]
TAG_OPEN                = "["
TAG_CLOSE               = "]"
TAG_CLOSE_MARKER        = "/"
STYLE_KEYS              = ("color", "background_color", "font_weight", "font_style", "text_decoration")
DEFAULT_COLOR_TAGS = [
    # colors
    {"name": "red",       "color": "#ef4444"},
    {"name": "green",     "color": "#22c55e"},
    {"name": "blue",      "color": "#3b82f6"},
    {"name": "yellow",    "color": "#eab308"},
    {"name": "cyan",      "color": "#06b6d4"},
    {"name": "magenta",   "color": "#d946ef"},
    {"name": "white",     "color": "#f8fafc"},
    {"name": "gray",      "color": "#94a3b8"},
    {"name": "black",     "color": "#0f172a"},
    # backgrounds
    {"name": "bg-red",    "background_color": "#ef4444", "color": "#ffffff"},
    {"name": "bg-green",  "background_color": "#22c55e", "color": "#ffffff"},
    {"name": "bg-blue",   "background_color": "#3b82f6", "color": "#ffffff"},
    {"name": "bg-yellow", "background_color": "#eab308", "color": "#000000"},
    # styles
    {"name": "bold",      "font_weight": "bold"},
    {"name": "italic",    "font_style": "italic"},
    {"name": "underline", "text_decoration": "underline"},
    # semantic
    {"name": "error",     "color": "#ef4444", "font_weight": "bold"},
    {"name": "warn",      "color": "#eab308"},
    {"name": "info",      "color": "#3b82f6"},
    {"name": "success",   "color": "#22c55e"},
    {"name": "debug",     "color": "#94a3b8"},
]
###############################################################################################################################
# Constants Export
EXPORT_TIME_FORMAT      = "%Y-%m-%dT%H:%M:%S"    # UTC, milliseconds are appended
EXPORT_LINE_RE          = re.compile(r"^\[([^\]]+)\] \[([^\]]*)\] (.*)$")
CHANNEL_PREFIX          = "CH"                   # integer source keys are written as CH<n>
LABEL_ESCAPE            = "\\"                   # prefix of text source keys that would read back as something else
###############################################################################################################################
# Constants LOGLEVEL Options
LOG_OPTIONS = {
    "NONE"     : logging.NOTSET,
    "DEBUG"    : logging.DEBUG,
    "INFO"     : logging.INFO,
    "WARNING"  : logging.WARNING,
    "ERROR"    : logging.ERROR,
    "CRITICAL" : logging.CRITICAL
}
LOG_DEFAULT_LABEL = "INFO"
LOG_DEFAULT_NAME = LOG_OPTIONS[LOG_DEFAULT_LABEL]
LOG_FORMAT = "[%(levelname)-8s] [%(name)-10s] %(message)s"
DEBUG_LEVEL = LOG_DEFAULT_NAME
