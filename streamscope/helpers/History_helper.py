############################################################################################################################################
# Bounded History Store
#
# LineHistory       rolling window of Lines, deque, oldest lines are dropped first
# DataPointHistory  rolling window of DataPoints on a numpy CircularBuffer
#                   column 0 is the time stamp, every value name gets its own column on first sight
#                   a value name without a value in the retained points loses its column on eviction
# HistoryStore      both histories plus byte and parse counters
#
# Coupled resets:
#   clear_lines() also resets the byte counters
#   clear_chart() also resets the parse success/fail counters
#
# Line ids are handed out by the HistoryStore and are never reused, not even after a clear.
#
# Maintainer: Urs Utzinger
############################################################################################################################################
#
import logging
import math
from collections import deque
from typing import Dict, Iterable, List, Optional, Tuple
#
import numpy as np
#
from streamscope.config import (MAX_LINES, MAX_DATA_POINTS, DEF_COLS, AXIS_MARGIN, AXIS_FALLBACK_RANGE,
                                DETECTION_SAMPLE_LINES)
from streamscope.helpers.Stream_models import Line, RawLine, DataPoint, SourceKey
from streamscope.helpers.Circular_Buffer import CircularBuffer
from streamscope.helpers.General_helper import setup_logger, log_prefix
#

# ==============================================================================
# Line history
# ==============================================================================

class LineHistory:
    ''' Append only window of lines, at most max_lines '''

    def __init__(self, max_lines: int = MAX_LINES):
        if max_lines < 1:
            raise ValueError("max_lines must be >= 1")
        self.max_lines = int(max_lines)
        self._lines = deque()

    def _trim(self) -> int:
        evicted = 0
        lines = self._lines
        while len(lines) > self.max_lines:
            lines.popleft()
            evicted += 1
        return evicted

    def append(self, lines: Iterable[Line]) -> int:
        ''' Append lines in order, returns the number of evicted lines '''
        self._lines.extend(lines)
        return self._trim()

    def set_max_lines(self, max_lines: int) -> int:
        if max_lines < 1:
            raise ValueError("max_lines must be >= 1")
        self.max_lines = int(max_lines)
        return self._trim()

    def clear(self) -> None:
        self._lines.clear()

    def last(self, n: int) -> List[Line]:
        if n <= 0:
            return []
        n = min(n, len(self._lines))
        return [self._lines[i] for i in range(len(self._lines) - n, len(self._lines))]

    def snapshot(self) -> List[Line]:
        return list(self._lines)

    def __len__(self):
        return len(self._lines)

    def __iter__(self):
        return iter(list(self._lines))

# ==============================================================================
# Data point history
# ==============================================================================

class DataPointHistory:
    """
    Window of data points, at most max_data_points.

    Values are stored in a CircularBuffer, one row per point, column 0 holds the time stamp.
    A value that a point does not have is NaN.
    """

    def __init__(self, max_data_points: int = MAX_DATA_POINTS):
        if max_data_points < 1:
            raise ValueError("max_data_points must be >= 1")
        self.max_data_points = int(max_data_points)
        self._buffer  = CircularBuffer(self.max_data_points, DEF_COLS + 1)
        self._columns: Dict[str, int] = {}                                     # value name -> column

    def _column(self, key: str) -> int:
        column = self._columns.get(key)
        if column is None:
            column = len(self._columns) + 1
            self._columns[key] = column
        return column

    def append(self, points: Iterable[DataPoint]) -> int:
        ''' Append points in order, returns the number of evicted points '''
        points = list(points)
        if not points:
            return 0
        for point in points:
            for key in point.values:
                self._column(key)

        rows = np.full((len(points), len(self._columns) + 1), np.nan)
        for i, point in enumerate(points):
            rows[i, 0] = point.timestamp_ms
            for key, value in point.values.items():
                rows[i, self._columns[key]] = value
        evicted = self._buffer.push(rows)
        if evicted:
            self._drop_dead_columns()
        return evicted

    def set_max_data_points(self, max_data_points: int) -> int:
        if max_data_points < 1:
            raise ValueError("max_data_points must be >= 1")
        self.max_data_points = int(max_data_points)
        dropped = self._buffer.resize(self.max_data_points)
        if dropped:
            self._drop_dead_columns()
        return dropped

    def _drop_dead_columns(self) -> int:
        ''' Forget the value names that no retained point carries, returns how many '''
        data = self._buffer.data
        if data.shape[0] == 0 or not self._columns:
            return 0
        alive = ~np.all(np.isnan(data[:, 1:len(self._columns) + 1]), axis=0)
        if alive.all():
            return 0
        names = [name for name, keep in zip(self._columns, alive) if keep]
        self._buffer.select_columns([0] + [self._columns[name] for name in names])
        self._columns = {name: i + 1 for i, name in enumerate(names)}
        return int(alive.size - len(names))

    def clear(self) -> None:
        self._buffer.clear()
        self._columns = {}

    @property
    def keys(self) -> List[str]:
        ''' Value names in order of first appearance '''
        return list(self._columns)

    @property
    def array(self) -> np.ndarray:
        ''' [points x (1 + keys)] oldest first, column 0 is the time stamp '''
        data = self._buffer.data
        width = len(self._columns) + 1
        if data.shape[1] < width:
            data = np.hstack((data, np.full((data.shape[0], width - data.shape[1]), np.nan)))
        return data[:, :width]

    def timestamps(self) -> np.ndarray:
        return self.array[:, 0]

    def column(self, key: str) -> np.ndarray:
        ''' Values of key, NaN where a point had no such value '''
        data = self.array
        column = self._columns.get(key)
        if column is None:
            return np.full(data.shape[0], np.nan)
        return data[:, column]

    def points(self) -> List[DataPoint]:
        ''' Rebuild the stored DataPoints, oldest first '''
        data = self.array
        names = self.keys
        result = []
        for row in data:
            values = {name: float(row[i + 1]) for i, name in enumerate(names) if not np.isnan(row[i + 1])}
            result.append(DataPoint(float(row[0]), values))
        return result

    def __len__(self):
        return len(self._buffer)

# ==============================================================================
# History store
# ==============================================================================

class HistoryStore:
    """
    Line and data point histories of one stream with their counters.

    Rendering collaborators read snapshots, only the ingestion pipeline appends.
    """

    def __init__(self, max_lines: int = MAX_LINES, max_data_points: int = MAX_DATA_POINTS,
                 logger: logging.Logger = None):
        self.instance_name = self.__class__.__name__
        self.logger = setup_logger(self.instance_name, logger=logger)

        self.lines  = LineHistory(max_lines)
        self.points = DataPointHistory(max_data_points)

        self._next_id = 1
        self.bytes_by_source: Dict[SourceKey, int] = {}
        self.total_bytes   = 0
        self.parse_success = 0
        self.parse_fail    = 0
        self.chart_paused  = False

    # Appending
    # ----------------------------------------

    def append_lines(self, raw_lines: Iterable[RawLine]) -> Tuple[List[Line], int]:
        ''' Give the lines their ids and store them, returns (stored lines, evicted count) '''
        lines = []
        for raw in raw_lines:
            lines.append(Line.from_raw(self._next_id, raw))
            self._next_id += 1
        evicted = self.lines.append(lines)
        return lines, evicted

    def append_points(self, points: Iterable[DataPoint]) -> int:
        ''' Store data points unless the chart is paused, returns evicted count '''
        if self.chart_paused:
            return 0
        return self.points.append(points)

    def add_bytes(self, source_key: SourceKey, num_bytes: int) -> None:
        self.bytes_by_source[source_key] = self.bytes_by_source.get(source_key, 0) + num_bytes
        self.total_bytes += num_bytes

    def count_parse(self, success: int = 0, fail: int = 0) -> None:
        self.parse_success += success
        self.parse_fail    += fail

    # Capacity and clearing
    # ----------------------------------------

    def set_max_lines(self, max_lines: int) -> int:
        evicted = self.lines.set_max_lines(max_lines)
        self.logger.log(logging.DEBUG,
            f"{log_prefix(self.instance_name)} Line history limited to {max_lines} lines, {evicted} evicted."
        )
        return evicted

    def set_max_data_points(self, max_data_points: int) -> int:
        evicted = self.points.set_max_data_points(max_data_points)
        self.logger.log(logging.DEBUG,
            f"{log_prefix(self.instance_name)} Chart history limited to {max_data_points} points, {evicted} evicted."
        )
        return evicted

    def clear_lines(self) -> None:
        ''' Empty the line history and reset the byte counters '''
        self.lines.clear()
        self.bytes_by_source = {}
        self.total_bytes = 0

    def clear_chart(self) -> None:
        ''' Empty the data point history and reset the parse counters '''
        self.points.clear()
        self.parse_success = 0
        self.parse_fail    = 0

    # Queries
    # ----------------------------------------

    @property
    def next_line_id(self) -> int:
        return self._next_id

    def filtered_lines(self, source_key: Optional[SourceKey] = None, query: Optional[str] = None) -> List[Line]:
        ''' Lines of one source and/or containing query (case insensitive) '''
        needle = query.lower() if query else None
        result = []
        for line in self.lines:
            if source_key is not None and line.source_key != source_key:
                continue
            if needle and needle not in line.text.lower():
                continue
            result.append(line)
        return result

    def sample_texts(self, n: int = DETECTION_SAMPLE_LINES) -> List[str]:
        ''' Texts of the newest n lines, input for format detection '''
        return [line.text for line in self.lines.last(n)]

    def series_statistics(self, keys: Optional[Iterable[str]] = None) -> Dict[str, dict]:
        """
        min, max, mean and latest value per key.
        Keys without any value are left out.
        """
        stats = {}
        for key in (keys if keys is not None else self.points.keys):
            values = self.points.column(key)
            values = values[~np.isnan(values)]
            if values.size == 0:
                continue
            stats[key] = {
                "min":    float(np.min(values)),
                "max":    float(np.max(values)),
                "mean":   float(np.mean(values)),
                "latest": float(values[-1]),
                "count":  int(values.size),
            }
        return stats

    def value_range(self, keys: Optional[Iterable[str]] = None, exclude: Optional[Iterable[str]] = None) -> Optional[Tuple[float, float]]:
        """
        Axis range covering the values of keys with a margin.
        If all values are equal the range is widened by 10% of the value, or by
        AXIS_FALLBACK_RANGE when the value is 0. Returns None without data.
        """
        excluded = set(exclude) if exclude else set()
        keys = [k for k in (keys if keys is not None else self.points.keys) if k not in excluded]
        if not keys:
            return None
        columns = np.concatenate([self.points.column(k) for k in keys])
        columns = columns[~np.isnan(columns)]
        if columns.size == 0:
            return None

        low, high = float(np.min(columns)), float(np.max(columns))
        if low == high:
            spread = abs(low) * AXIS_MARGIN or AXIS_FALLBACK_RANGE
            return (math.floor(low - spread), math.ceil(high + spread))
        margin = (high - low) * AXIS_MARGIN
        return (math.floor(low - margin), math.ceil(high + margin))

    def stats(self) -> dict:
        ''' Counters for status displays '''
        return {
            "lines":           len(self.lines),
            "max_lines":       self.lines.max_lines,
            "data_points":     len(self.points),
            "max_data_points": self.points.max_data_points,
            "total_bytes":     self.total_bytes,
            "bytes_by_source": dict(self.bytes_by_source),
            "parse_success":   self.parse_success,
            "parse_fail":      self.parse_fail,
            "chart_paused":    self.chart_paused,
        }
