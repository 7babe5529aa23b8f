############################################################################################################################################
# Export
#
# Line history as flat text, one line per entry:
#   [2025-01-31T12:00:01.123] [CH0] temperature 23.5
#   [2025-01-31T12:00:01.150] [rx] OK
# Integer source keys (trace channels) are written as CH<n>, other keys as they are. Text keys that look like
# CH<n> or start with a backslash get a leading backslash, so every key reads back unchanged. Keys must not
# contain "]". Time is UTC with ms.
#
# Data point history as columns:
#   timestamp,relative_s,t,h
#   1738324801123,0.000,23.5,60.1
# Missing values are nan.
#
# Export is a read only snapshot of what is currently buffered.
#
# Maintainer: Urs Utzinger
############################################################################################################################################
#
import io
import re
import time
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union
#
import numpy as np
#
from streamscope.config import EXPORT_LINE_RE, CHANNEL_PREFIX, LABEL_ESCAPE
from streamscope.helpers.Stream_models import Line, SourceKey
from streamscope.helpers.History_helper import DataPointHistory
from streamscope.helpers.General_helper import format_time, parse_time
#

CHANNEL_RE = re.compile(rf"^{CHANNEL_PREFIX}(-?\d+)$")


# ==============================================================================
# Lines
# ==============================================================================

def format_source_key(source_key: SourceKey) -> str:
    if isinstance(source_key, int) and not isinstance(source_key, bool):
        return f"{CHANNEL_PREFIX}{source_key}"
    label = str(source_key)
    if label.startswith(LABEL_ESCAPE) or CHANNEL_RE.match(label):
        return LABEL_ESCAPE + label
    return label

def parse_source_key(label: str) -> SourceKey:
    if label.startswith(LABEL_ESCAPE):
        return label[len(LABEL_ESCAPE):]
    match = CHANNEL_RE.match(label)
    if match:
        return int(match.group(1))
    return label

def export_lines_text(lines: Iterable[Line]) -> str:
    ''' Flat text of the lines, oldest first '''
    return "\n".join(
        f"[{format_time(line.timestamp_ms)}] [{format_source_key(line.source_key)}] {line.text}"
        for line in lines
    )

def parse_lines_text(text: str) -> List[Tuple[int, SourceKey, str]]:
    """
    Read text written by export_lines_text.
    Returns (timestamp_ms, source_key, text) per line, raises ValueError on lines in another format.
    """
    entries = []
    for number, row in enumerate(text.split("\n"), start=1):                  # not splitlines, text may hold \x0b, \x1c ...
        if not row:
            continue
        match = EXPORT_LINE_RE.match(row)
        if match is None:
            raise ValueError(f"Line {number} is not an exported line: {row!r}")
        stamp, label, body = match.groups()
        entries.append((parse_time(stamp), parse_source_key(label), body))
    return entries

# ==============================================================================
# Data points
# ==============================================================================

def export_points_csv(history: DataPointHistory, keys: Optional[List[str]] = None, delimiter: str = ",") -> str:
    """
    Columns: timestamp [ms], time relative to the first point [s], one column per key.
    Without keys all value names are exported.
    """
    keys = list(keys) if keys is not None else history.keys
    header = delimiter.join(["timestamp", "relative_s"] + keys)

    timestamps = history.timestamps()
    if timestamps.size == 0:
        return header + "\n"

    columns = [timestamps, (timestamps - timestamps[0]) / 1000.]
    columns.extend(history.column(key) for key in keys)
    data = np.column_stack(columns)

    out = io.StringIO()
    fmt = ["%d", "%.3f"] + ["%.10g"] * len(keys)
    np.savetxt(out, data, delimiter=delimiter, header=header, comments="", fmt=fmt)
    return out.getvalue()

# ==============================================================================
# Files
# ==============================================================================

def export_file_name(prefix: str, extension: str, timestamp: Optional[float] = None) -> str:
    ''' e.g. rtt-log-2025-01-31T12-00-01.txt '''
    stamp = time.strftime("%Y-%m-%dT%H-%M-%S", time.gmtime(timestamp if timestamp is not None else time.time()))
    return f"{prefix}-{stamp}.{extension.lstrip('.')}"

def write_lines_text(path: Union[str, Path], lines: Iterable[Line], encoding: str = "utf-8") -> Path:
    path = Path(path)
    path.write_text(export_lines_text(lines) + "\n", encoding=encoding)
    return path

def write_points_csv(path: Union[str, Path], history: DataPointHistory, keys: Optional[List[str]] = None,
                     delimiter: str = ",") -> Path:
    path = Path(path)
    path.write_text(export_points_csv(history, keys, delimiter), encoding="utf-8")
    return path
