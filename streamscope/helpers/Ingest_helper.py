############################################################################################################################################
# Stream Ingestion Pipeline with Batch Scheduling
#
# chunk -> LineReassembler -> classified lines ---------------------> side buffer -> flush -> HistoryStore
#                                  \-> extract() (chart enabled) -> data points /
#
# A device can produce thousands of lines per second. Arrivals are accumulated in a side buffer and the
# coalescing scheduler flushes the side buffer into the history at most once per render frame.
# Listeners receive one BatchUpdate per flush.
#
# The transport collaborator calls
#   on_chunk(source_key, data, timestamp_ms)
#   on_running_changed(running)
#   on_fatal_error(message)
# Running state and fatal errors are forwarded to the status listeners unchanged.
#
# teardown() runs a scheduled flush synchronously, accumulated data is delivered exactly once.
#
# Maintainer: Urs Utzinger
############################################################################################################################################
#
import logging
import time
from typing import Callable, Dict, List, Optional
#
from streamscope.config import PROFILEME, DEBUGSTREAM, DEBUGEXTRACT
from streamscope.helpers.Stream_models import Chunk, RawLine, DataPoint, BatchUpdate, DetectionResult, SourceKey
from streamscope.helpers.Config_helper import ParseConfig, StreamConfig
from streamscope.helpers.Reassembler_helper import LineReassembler
from streamscope.helpers.Extractor_helper import extract
from streamscope.helpers.Detector_helper import detect_format, apply_detection
from streamscope.helpers.History_helper import HistoryStore
from streamscope.helpers.Scheduler_helper import CoalescingScheduler, ManualScheduler
from streamscope.helpers.General_helper import setup_logger, log_prefix, format_bytes, now_ms
#
# Profiling
# ----------------------------------------
try:
    profile                                                                    # provided by kernprof at runtime
except NameError:
    def profile(func):                                                         # no-op when not profiling
        return func

BatchListener  = Callable[[BatchUpdate], None]
StatusListener = Callable[[str, object], None]                                 # ("running", bool) or ("fatal_error", str)


class StreamIngestor:
    """
    Ingestion pipeline of one stream (all sources of one transport).

    Construction takes explicit configuration objects, nothing is loaded from storage.
    Without a scheduler a ManualScheduler is used and the owner calls scheduler.tick() or flush().
    """

    def __init__(self,
                 stream_config: Optional[StreamConfig] = None,
                 parse_config: Optional[ParseConfig] = None,
                 scheduler: Optional[CoalescingScheduler] = None,
                 history: Optional[HistoryStore] = None,
                 logger: logging.Logger = None):

        self.instance_name = self.__class__.__name__
        self.logger = setup_logger(self.instance_name, logger=logger)

        self.stream_config = (stream_config if stream_config is not None else StreamConfig()).validate()
        self.parse_config  = (parse_config if parse_config is not None else ParseConfig()).validate()
        self.scheduler     = scheduler if scheduler is not None else ManualScheduler()
        self.history       = history if history is not None else HistoryStore(
                                 self.stream_config.max_lines, self.parse_config.max_data_points, logger=self.logger)
        self.reassembler   = LineReassembler(self.stream_config.encoding, logger=self.logger)

        # Side buffer, emptied by flush()
        self._pending_lines: List[RawLine] = []
        self._pending_points: List[DataPoint] = []
        self._pending_bytes: Dict[SourceKey, int] = {}
        self._pending_success = 0
        self._pending_fail    = 0

        self.paused     = False                                                # incoming chunks are dropped while paused
        self.running    = False
        self.last_error: Optional[str] = None
        self.torn_down  = False

        self._listeners: List[BatchListener] = []
        self._status_listeners: List[StatusListener] = []

        self.mtoc_on_chunk = 0.
        self.mtoc_flush = 0.

    # Listeners
    # ----------------------------------------

    def add_listener(self, listener: BatchListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: BatchListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def add_status_listener(self, listener: StatusListener) -> None:
        if listener not in self._status_listeners:
            self._status_listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener) -> None:
        if listener in self._status_listeners:
            self._status_listeners.remove(listener)

    def _notify_status(self, event: str, value) -> None:
        for listener in list(self._status_listeners):
            listener(event, value)

    # Transport side
    # ----------------------------------------

    @profile
    def on_chunk(self, source_key: SourceKey, data: bytes, timestamp_ms: Optional[float] = None) -> int:
        """
        Accept bytes from the transport, returns the number of lines they completed.
        Never blocks, the side buffer is flushed later by the scheduler.
        """
        if self.torn_down or self.paused or not data:
            return 0

        if PROFILEME:
            tic = time.perf_counter()

        if timestamp_ms is None:
            timestamp_ms = now_ms()
        lines = self.reassembler.feed(Chunk(source_key, data, timestamp_ms))
        self._accept(source_key, len(data), lines)

        if PROFILEME:
            toc = time.perf_counter()
            self.mtoc_on_chunk = max((toc - tic), self.mtoc_on_chunk)

        return len(lines)

    def on_running_changed(self, running: bool) -> None:
        ''' Forward the running state, trailing partial lines are flushed on stop if configured '''
        running = bool(running)
        self.running = running
        self._notify_status("running", running)
        if running:
            self.last_error = None
            return
        if self.stream_config.flush_on_stop:
            lines = self.reassembler.flush_pending()
            if lines:
                self._accept(None, 0, lines)
        self.scheduler.cancel_and_flush()

    def on_fatal_error(self, message: str) -> None:
        ''' Transport failed, forward the error and end the running state '''
        self.last_error = message
        self.logger.log(logging.ERROR, f"{log_prefix(self.instance_name)} Transport error: {message}")
        self._notify_status("fatal_error", message)
        self.on_running_changed(False)

    # Side buffer
    # ----------------------------------------

    def _accept(self, source_key: Optional[SourceKey], num_bytes: int, lines: List[RawLine]) -> None:
        if num_bytes:
            self._pending_bytes[source_key] = self._pending_bytes.get(source_key, 0) + num_bytes
        if lines:
            self._pending_lines.extend(lines)
            config = self.parse_config
            if config.enabled and not self.history.chart_paused:
                for line in lines:
                    result = extract(line.text, config)
                    if result.success:
                        self._pending_points.append(result.data_point)
                        self._pending_success += 1
                    else:
                        self._pending_fail += 1
                        if DEBUGEXTRACT:
                            self.logger.log(logging.DEBUG,
                                f"{log_prefix(self.instance_name)} No data in {line.text!r}: {result.error}"
                            )
        if self.has_pending:
            self.scheduler.schedule(self.flush)

    @property
    def has_pending(self) -> bool:
        return bool(self._pending_lines or self._pending_points or self._pending_bytes
                    or self._pending_success or self._pending_fail)

    @profile
    def flush(self) -> Optional[BatchUpdate]:
        """
        Move the side buffer into the history as one update and notify the listeners.
        Returns the update, or None if there was nothing to flush.
        """
        if not self.has_pending:
            return None

        if PROFILEME:
            tic = time.perf_counter()

        raw_lines, self._pending_lines   = self._pending_lines, []
        points, self._pending_points     = self._pending_points, []
        num_bytes, self._pending_bytes   = self._pending_bytes, {}
        success, self._pending_success   = self._pending_success, 0
        fail, self._pending_fail         = self._pending_fail, 0

        history = self.history
        for key, n in num_bytes.items():
            history.add_bytes(key, n)
        history.count_parse(success, fail)
        lines, evicted_lines = history.append_lines(raw_lines)
        evicted_points = history.append_points(points)

        update = BatchUpdate(lines, points, evicted_lines, evicted_points, num_bytes, success, fail)

        if DEBUGSTREAM:
            self.logger.log(logging.DEBUG,
                f"{log_prefix(self.instance_name)} Flush {update}, total {format_bytes(history.total_bytes)}."
            )

        for listener in list(self._listeners):
            listener(update)

        if PROFILEME:
            toc = time.perf_counter()
            self.mtoc_flush = max((toc - tic), self.mtoc_flush)

        return update

    def teardown(self) -> None:
        ''' Stop accepting data, a scheduled flush runs now '''
        if self.torn_down:
            return
        self.scheduler.cancel_and_flush()
        self.torn_down = True
        self.logger.log(logging.DEBUG, f"{log_prefix(self.instance_name)} Torn down.")

    # Configuration side
    # ----------------------------------------

    def apply_parse_config(self, config: ParseConfig) -> ParseConfig:
        """
        Validate and use a new parse configuration.
        Raises ConfigurationError, the previous configuration stays in place in that case.
        """
        config.validate()
        if config.max_data_points != self.history.points.max_data_points:
            self.history.set_max_data_points(config.max_data_points)
        self.parse_config = config
        self.logger.log(logging.INFO,
            f"{log_prefix(self.instance_name)} Parse configuration applied: {config}."
        )
        return config

    def apply_stream_config(self, config: StreamConfig) -> StreamConfig:
        ''' Validate and use a new stream configuration, raises ConfigurationError '''
        config.validate()
        if config.max_lines != self.history.lines.max_lines:
            self.history.set_max_lines(config.max_lines)
        self.reassembler.encoding = config.encoding
        self.scheduler.set_interval(config.flush_interval_ms)
        self.stream_config = config
        return config

    def detect_format(self, num_lines: Optional[int] = None) -> DetectionResult:
        ''' Run format detection on the newest lines of the history '''
        n = num_lines if num_lines is not None else self.stream_config.detection_sample_lines
        result = detect_format(self.history.sample_texts(n))
        self.logger.log(logging.INFO,
            f"{log_prefix(self.instance_name)} Format detection: {result.description}"
        )
        return result

    def auto_configure(self, num_lines: Optional[int] = None) -> DetectionResult:
        ''' Detect the format and apply the suggestion, an unknown format changes nothing '''
        result = self.detect_format(num_lines)
        if result.format != "unknown":
            self.apply_parse_config(apply_detection(self.parse_config, result))
        return result

    # Operator actions
    # ----------------------------------------

    def set_paused(self, paused: bool) -> None:
        self.paused = bool(paused)

    def set_chart_paused(self, paused: bool) -> None:
        self.history.chart_paused = bool(paused)

    def clear_lines(self) -> None:
        self.history.clear_lines()

    def clear_chart(self) -> None:
        self.history.clear_chart()

    def reparse_history(self) -> int:
        """
        Clear the chart and extract the lines of the history again with the current parse
        configuration, e.g. after auto_configure(). Points carry the time of their line.
        Returns the number of points.
        """
        self.history.clear_chart()
        config = self.parse_config
        if not config.enabled:
            return 0
        points = []
        fail = 0
        for line in self.history.lines:
            result = extract(line.text, config)
            if result.success:
                points.append(DataPoint(line.timestamp_ms, result.data_point.values))
            else:
                fail += 1
        self.history.count_parse(len(points), fail)
        self.history.append_points(points)
        return len(points)

    def reset_source(self, source_key: Optional[SourceKey] = None) -> None:
        ''' Discard partial lines of one source or all sources '''
        self.reassembler.reset(source_key)
