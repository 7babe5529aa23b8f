############################################################################################################################################
# Stream Data Model
#
# Objects exchanged between the reassembler, extractor, detector, history and the collaborators.
#
#   Chunk            bytes received from one source (trace channel or RX/TX direction)
#   PendingFragment  undelimited tail of a source, text and raw bytes
#   RawLine          completed and classified line, not yet stored
#   Line             stored line with id
#   DataPoint        numeric values extracted from one line
#   ParseResult      outcome of one extraction
#   DetectionResult  outcome of format detection
#   TextSpan         styled piece of text from the markup renderer
#   BatchUpdate      what one flush of the batch scheduler changed
#
# Instances are not modified after creation, producers create new objects instead.
#
# Maintainer: Urs Utzinger
############################################################################################################################################
#
from typing import Dict, List, Optional, Union
#
SourceKey = Union[int, str]                                                    # channel index or "rx"/"tx"


class Chunk:
    ''' Raw bytes from a transport, tagged with source and arrival time '''
    __slots__ = ("source_key", "data", "timestamp_ms")

    def __init__(self, source_key: SourceKey, data: bytes, timestamp_ms: float):
        self.source_key   = source_key
        self.data         = bytes(data)
        self.timestamp_ms = timestamp_ms

    def __repr__(self):
        return f"Chunk({self.source_key!r}, {len(self.data)} bytes, t={self.timestamp_ms})"


class PendingFragment:
    ''' Undelimited tail of a source. text is the decoding of raw_bytes. '''
    __slots__ = ("text", "raw_bytes")

    def __init__(self, text: str = "", raw_bytes: bytes = b""):
        self.text      = text
        self.raw_bytes = bytes(raw_bytes)

    def __bool__(self):
        return bool(self.raw_bytes)

    def __eq__(self, other):
        if not isinstance(other, PendingFragment):
            return NotImplemented
        return self.text == other.text and self.raw_bytes == other.raw_bytes

    def __repr__(self):
        return f"PendingFragment({self.text!r}, {self.raw_bytes!r})"

EMPTY_FRAGMENT = PendingFragment()


class RawLine:
    ''' A completed line with its severity, waiting to be stored '''
    __slots__ = ("source_key", "timestamp_ms", "text", "level", "raw_bytes")

    def __init__(self, source_key: SourceKey, timestamp_ms: float, text: str, level: str, raw_bytes: bytes = b""):
        self.source_key   = source_key
        self.timestamp_ms = timestamp_ms
        self.text         = text
        self.level        = level
        self.raw_bytes    = raw_bytes

    def __eq__(self, other):
        if not isinstance(other, RawLine):
            return NotImplemented
        return (self.source_key, self.timestamp_ms, self.text, self.level, self.raw_bytes) == \
               (other.source_key, other.timestamp_ms, other.text, other.level, other.raw_bytes)

    def __repr__(self):
        return f"RawLine({self.source_key!r}, {self.text!r}, {self.level})"


class Line(RawLine):
    ''' A stored line, id is unique and increasing for the lifetime of a history '''
    __slots__ = ("id",)

    def __init__(self, line_id: int, source_key: SourceKey, timestamp_ms: float, text: str, level: str, raw_bytes: bytes = b""):
        super().__init__(source_key, timestamp_ms, text, level, raw_bytes)
        self.id = line_id

    @classmethod
    def from_raw(cls, line_id: int, raw: RawLine) -> "Line":
        return cls(line_id, raw.source_key, raw.timestamp_ms, raw.text, raw.level, raw.raw_bytes)

    def __eq__(self, other):
        if not isinstance(other, Line):
            return NotImplemented
        return self.id == other.id and RawLine.__eq__(self, other)

    def __repr__(self):
        return f"Line({self.id}, {self.source_key!r}, {self.text!r}, {self.level})"


class DataPoint:
    ''' Named numeric values extracted from a single line '''
    __slots__ = ("timestamp_ms", "values")

    def __init__(self, timestamp_ms: float, values: Dict[str, float]):
        self.timestamp_ms = timestamp_ms
        self.values       = dict(values)

    def __eq__(self, other):
        if not isinstance(other, DataPoint):
            return NotImplemented
        return self.timestamp_ms == other.timestamp_ms and self.values == other.values

    def __repr__(self):
        return f"DataPoint(t={self.timestamp_ms}, {self.values})"


class ParseResult:
    '''
    Outcome of an extraction.
    success=True always comes with a data_point that has at least one value.
    '''
    __slots__ = ("success", "data_point", "error", "method_used")

    def __init__(self, success: bool, data_point: Optional[DataPoint] = None,
                 error: Optional[str] = None, method_used: Optional[str] = None):
        self.success     = success
        self.data_point  = data_point
        self.error       = error
        self.method_used = method_used

    @classmethod
    def ok(cls, data_point: DataPoint, method: str) -> "ParseResult":
        return cls(True, data_point=data_point, method_used=method)

    @classmethod
    def fail(cls, error: str, method: Optional[str] = None) -> "ParseResult":
        return cls(False, error=error, method_used=method)

    def __bool__(self):
        return self.success

    def __repr__(self):
        if self.success:
            return f"ParseResult(ok, {self.method_used}, {self.data_point})"
        return f"ParseResult(fail, {self.error!r})"


class DetectionResult:
    '''
    Proposed parse configuration for a sample of lines.

    suggested_config holds only the ParseConfig fields the detector wants to change,
    use Detector_helper.apply_detection to merge it into an existing configuration.
    '''
    __slots__ = ("format", "suggested_config", "detected_keys", "confidence", "description")

    def __init__(self, format: str, suggested_config: Optional[dict] = None, detected_keys: Optional[List[str]] = None,
                 confidence: float = 0.0, description: str = ""):
        self.format           = format
        self.suggested_config = suggested_config if suggested_config is not None else {}
        self.detected_keys    = detected_keys if detected_keys is not None else []
        self.confidence       = confidence
        self.description      = description

    def __repr__(self):
        return f"DetectionResult({self.format}, confidence={self.confidence:.2f}, keys={self.detected_keys})"


class TextSpan:
    ''' Piece of text with a style dict (color, background_color, font_weight, font_style, text_decoration) '''
    __slots__ = ("text", "style")

    def __init__(self, text: str, style: Optional[dict] = None):
        self.text  = text
        self.style = style if style is not None else {}

    def __eq__(self, other):
        if not isinstance(other, TextSpan):
            return NotImplemented
        return self.text == other.text and self.style == other.style

    def __repr__(self):
        return f"TextSpan({self.text!r}, {self.style})"


class BatchUpdate:
    ''' Summary of one flush, handed to listeners of the ingestor '''
    __slots__ = ("lines", "data_points", "evicted_lines", "evicted_points", "bytes_by_source",
                 "parse_success", "parse_fail")

    def __init__(self, lines: List[Line], data_points: List[DataPoint], evicted_lines: int = 0, evicted_points: int = 0,
                 bytes_by_source: Optional[Dict[SourceKey, int]] = None, parse_success: int = 0, parse_fail: int = 0):
        self.lines           = lines
        self.data_points     = data_points
        self.evicted_lines   = evicted_lines
        self.evicted_points  = evicted_points
        self.bytes_by_source = bytes_by_source if bytes_by_source is not None else {}
        self.parse_success   = parse_success
        self.parse_fail      = parse_fail

    @property
    def num_bytes(self) -> int:
        return sum(self.bytes_by_source.values())

    def __repr__(self):
        return (f"BatchUpdate({len(self.lines)} lines, {len(self.data_points)} points, "
                f"{self.num_bytes} bytes, evicted {self.evicted_lines}/{self.evicted_points})")
