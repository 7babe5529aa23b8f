############################################################################################################################################
# Line Reassembler and Line Classifier
#
# Byte chunks arrive with arbitrary boundaries. The reassembler keeps the undelimited tail of every source
# (trace channel or RX/TX direction) and emits complete lines as soon as a line terminator arrives.
#
# Splitting is done on the bytes, \n terminates a line, a \r in front of it belongs to the terminator.
# Completed lines are decoded after splitting so that multi byte characters that were cut by a chunk boundary
# are decoded correctly. Empty and whitespace only lines are dropped.
#
# The fragment map is never modified in place, reassemble() returns a new map.
#
#   reassemble(source_key, chunk, pending_fragments) -> (lines, fragments)
#   classify_level(text) -> "error" | "warn" | "debug" | "info"
#
#   LineReassembler
#     feed(chunk)                  -> list of RawLine
#     flush_pending(source_key)    -> list of RawLine, the trailing partial lines
#     reset(source_key)            discard fragments
#     fragments                    -> copy of the fragment map
#
# Maintainer: Urs Utzinger
############################################################################################################################################
#
import logging
import time
from typing import Dict, List, Optional, Tuple
#
from streamscope.config import (PROFILEME, DEBUGSTREAM, ENCODING, LINE_DELIMITER, CARRIAGE_RETURN,
                                LEVEL_MARKERS, LEVEL_DEFAULT)
from streamscope.helpers.Stream_models import Chunk, PendingFragment, RawLine, SourceKey, EMPTY_FRAGMENT
from streamscope.helpers.General_helper import setup_logger, log_prefix, now_ms
#
# Profiling
# ----------------------------------------
try:
    profile                                                                    # provided by kernprof at runtime
except NameError:
    def profile(func):                                                         # no-op when not profiling
        return func

# ==============================================================================
# Line Classifier
# ==============================================================================

def classify_level(text: str) -> str:
    """
    Severity of a line from embedded markers, first match wins.

    [error] [err] error:      -> error
    [warn] [warning] warning: -> warn
    [debug] [dbg]             -> debug
    anything else             -> info
    """
    lowered = text.lower()
    for level, markers in LEVEL_MARKERS:
        for marker in markers:
            if marker in lowered:
                return level
    return LEVEL_DEFAULT

# ==============================================================================
# Reassembly
# ==============================================================================

def _make_line(source_key: SourceKey, timestamp_ms: float, raw: bytes, encoding: str) -> Optional[RawLine]:
    ''' Decode and classify one terminated line, None if there is nothing to show '''
    if raw.endswith(CARRIAGE_RETURN):
        raw = raw[:-1]
    text = raw.decode(encoding, errors="replace")
    if not text.strip():
        return None
    return RawLine(source_key, timestamp_ms, text, classify_level(text), raw)

def reassemble(source_key: SourceKey, chunk: Chunk,
               pending_fragments: Optional[Dict[SourceKey, PendingFragment]] = None,
               encoding: str = ENCODING) -> Tuple[List[RawLine], Dict[SourceKey, PendingFragment]]:
    """
    Append a chunk to the fragment of its source and cut off the completed lines.

    Returns the completed lines in arrival order and a new fragment map, the map that was handed in
    is not changed. Only the fragment of source_key is touched.
    """
    fragments = dict(pending_fragments) if pending_fragments else {}
    previous  = fragments.get(source_key, EMPTY_FRAGMENT)

    buffer = previous.raw_bytes + chunk.data if previous else chunk.data
    parts  = buffer.split(LINE_DELIMITER)
    tail   = parts.pop()                                                       # last part is never terminated, may be empty

    lines = []
    for part in parts:
        line = _make_line(source_key, chunk.timestamp_ms, part, encoding)
        if line is not None:
            lines.append(line)

    if tail:
        fragments[source_key] = PendingFragment(tail.decode(encoding, errors="replace"), tail)
    else:
        fragments.pop(source_key, None)

    return lines, fragments


class LineReassembler:
    """
    Keeps the fragment map of all sources of one stream.

    There is no idle timeout, a partial line waits for its terminator until flush_pending()
    or reset() is called.
    """

    def __init__(self, encoding: str = ENCODING, logger: logging.Logger = None):
        self.instance_name = self.__class__.__name__
        self.logger = setup_logger(self.instance_name, logger=logger)
        self.encoding = encoding
        self._fragments: Dict[SourceKey, PendingFragment] = {}
        self.mtoc_feed = 0.

    @profile
    def feed(self, chunk: Chunk) -> List[RawLine]:
        ''' Reassemble one chunk, returns the lines it completed '''
        if PROFILEME:
            tic = time.perf_counter()

        lines, self._fragments = reassemble(chunk.source_key, chunk, self._fragments, self.encoding)

        if DEBUGSTREAM:
            fragment = self._fragments.get(chunk.source_key, EMPTY_FRAGMENT)
            self.logger.log(logging.DEBUG,
                f"{log_prefix(self.instance_name)} source {chunk.source_key!r}: {len(chunk.data)} bytes, "
                f"{len(lines)} lines, {len(fragment.raw_bytes)} bytes pending."
            )

        if PROFILEME:
            toc = time.perf_counter()
            self.mtoc_feed = max((toc - tic), self.mtoc_feed)

        return lines

    def flush_pending(self, source_key: Optional[SourceKey] = None, timestamp_ms: Optional[float] = None) -> List[RawLine]:
        """
        Emit the partial line of one source, or of all sources when source_key is None,
        as if a terminator had arrived. The fragments are removed.
        """
        if timestamp_ms is None:
            timestamp_ms = now_ms()
        keys = list(self._fragments) if source_key is None else [source_key]

        fragments = dict(self._fragments)
        lines = []
        for key in keys:
            fragment = fragments.pop(key, None)
            if not fragment:
                continue
            line = _make_line(key, timestamp_ms, fragment.raw_bytes, self.encoding)
            if line is not None:
                lines.append(line)
        self._fragments = fragments

        if lines:
            self.logger.log(logging.DEBUG,
                f"{log_prefix(self.instance_name)} Flushed {len(lines)} partial line(s)."
            )
        return lines

    def reset(self, source_key: Optional[SourceKey] = None) -> None:
        ''' Discard the fragment of one source, or all fragments '''
        if source_key is None:
            self._fragments = {}
        elif source_key in self._fragments:
            fragments = dict(self._fragments)
            del fragments[source_key]
            self._fragments = fragments

    def fragment(self, source_key: SourceKey) -> PendingFragment:
        return self._fragments.get(source_key, EMPTY_FRAGMENT)

    @property
    def fragments(self) -> Dict[SourceKey, PendingFragment]:
        return dict(self._fragments)

    @property
    def pending_bytes(self) -> int:
        return sum(len(f.raw_bytes) for f in self._fragments.values())
