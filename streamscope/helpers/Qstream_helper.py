############################################################################################################################################
# QStream: Qt adapter of the ingestion pipeline
#
# Transport workers (serial port, trace probe) run in their own thread and emit signals with the bytes they
# received. QStreamIngestor lives in the thread of the event loop that renders, receives those signals in its
# slots and emits one batch per render frame. The flush is driven by a single shot precise QTimer.
#
# Signals
#   batchReady(object)        BatchUpdate
#   linesReady(object)         new Lines of a batch
#   pointsReady(object)        new DataPoints of a batch
#   runningChanged(bool)      forwarded from the transport
#   fatalError(str)           forwarded from the transport
#   detectionReady(object)    DetectionResult after a detect request
#   logSignal(int, str)       log level, message
#
# Slots
#   on_receivedChunk(source_key, bytes)
#   on_runningChanged(bool)
#   on_fatalError(str)
#   on_detectRequest()
#   on_mtocRequest()
#
# Maintainer: Urs Utzinger
############################################################################################################################################
#
import logging
import time
from typing import Optional
#
from streamscope.config import PROFILEME, DEBUGSTREAM
from streamscope.helpers.Config_helper import ParseConfig, StreamConfig, ConfigurationError
from streamscope.helpers.Stream_models import BatchUpdate
from streamscope.helpers.Scheduler_helper import QtFrameScheduler
from streamscope.helpers.Ingest_helper import StreamIngestor
from streamscope.helpers.General_helper import setup_logger, log_prefix, now_ms
#
# QT Libraries
# ----------------------------------------
try:
    from PyQt6.QtCore import QObject, QThread, pyqtSignal, pyqtSlot
except Exception:
    from PyQt5.QtCore import QObject, QThread, pyqtSignal, pyqtSlot
#
# Profiling
# ----------------------------------------
try:
    profile                                                                    # provided by kernprof at runtime
except NameError:
    def profile(func):                                                         # no-op when not profiling
        return func


class QStreamIngestor(QObject):
    """
    Signal/slot front end of StreamIngestor.

    Configuration errors are reported through logSignal and re-raised to the caller of
    apply_parse_config, nothing else in the data path raises.
    """

    batchReady      = pyqtSignal(object)                                       # BatchUpdate
    linesReady      = pyqtSignal(object)                                        # list of Line
    pointsReady     = pyqtSignal(object)                                        # list of DataPoint
    runningChanged  = pyqtSignal(bool)                                         # transport started/stopped
    fatalError      = pyqtSignal(str)                                          # transport failed
    detectionReady  = pyqtSignal(object)                                       # DetectionResult
    logSignal       = pyqtSignal(int, str)                                     # Logging

    def __init__(self, parent=None, stream_config: Optional[StreamConfig] = None,
                 parse_config: Optional[ParseConfig] = None):

        super().__init__(parent)

        self.instance_name = self.objectName() if self.objectName() else self.__class__.__name__
        self.thread_id = int(QThread.currentThreadId()) if QThread.currentThreadId() else -1

        self.logger = setup_logger(self.instance_name)
        self.logSignal.connect(self.on_logSignal)

        stream_config = stream_config if stream_config is not None else StreamConfig()
        self.scheduler = QtFrameScheduler(stream_config.flush_interval_ms, parent=self)
        self.ingestor  = StreamIngestor(stream_config, parse_config, scheduler=self.scheduler, logger=self.logger)
        self.ingestor.add_listener(self._on_batch)
        self.ingestor.add_status_listener(self._on_status)

        self.mtoc_on_receivedChunk = 0.
        self.mtoc_emit_batch = 0.

    @property
    def history(self):
        return self.ingestor.history

    # ==========================================================================
    # Slots
    # ==========================================================================

    @pyqtSlot(int, str)
    def on_logSignal(self, level: int, message: str) -> None:
        """pickup log messages"""
        self.logger.log(level, message)

    @pyqtSlot(object, bytes)
    @profile
    def on_receivedChunk(self, source_key, data: bytes) -> None:
        """
        Bytes from a transport, source_key is a channel number or "rx"/"tx".
        Time stamped on arrival.
        """
        if PROFILEME:
            tic = time.perf_counter()

        self.ingestor.on_chunk(source_key, data, now_ms())

        if PROFILEME:
            toc = time.perf_counter()
            self.mtoc_on_receivedChunk = max((toc - tic), self.mtoc_on_receivedChunk)

    @pyqtSlot(bool)
    def on_runningChanged(self, running: bool) -> None:
        self.logSignal.emit(logging.INFO,
            f"{log_prefix(self.instance_name)} Stream is {'on' if running else 'off'}."
        )
        self.ingestor.on_running_changed(running)

    @pyqtSlot(str)
    def on_fatalError(self, message: str) -> None:
        self.ingestor.on_fatal_error(message)

    @pyqtSlot()
    def on_detectRequest(self) -> None:
        ''' Detect the format of the newest lines, the result is emitted, not applied '''
        result = self.ingestor.detect_format()
        self.detectionReady.emit(result)

    @pyqtSlot()
    def on_mtocRequest(self) -> None:
        """Emit the worst case timings in a single log call."""
        log_message = (
            f"{log_prefix(self.instance_name)} Profiling:\n"
            f"    on_receivedChunk        took {self.mtoc_on_receivedChunk*1000:.2f} ms.\n"
            f"    emit batch              took {self.mtoc_emit_batch*1000:.2f} ms.\n"
            f"    ingest chunk            took {self.ingestor.mtoc_on_chunk*1000:.2f} ms.\n"
            f"    reassemble              took {self.ingestor.reassembler.mtoc_feed*1000:.2f} ms.\n"
            f"    flush                   took {self.ingestor.mtoc_flush*1000:.2f} ms."
        )
        self.logSignal.emit(logging.INFO, log_message)

        self.mtoc_on_receivedChunk = 0.
        self.mtoc_emit_batch = 0.
        self.ingestor.mtoc_on_chunk = 0.
        self.ingestor.mtoc_flush = 0.
        self.ingestor.reassembler.mtoc_feed = 0.

    # ==========================================================================
    # Configuration
    # ==========================================================================

    def apply_parse_config(self, config: ParseConfig) -> ParseConfig:
        try:
            return self.ingestor.apply_parse_config(config)
        except ConfigurationError as e:
            self.logSignal.emit(logging.ERROR,
                f"{log_prefix(self.instance_name)} Parse configuration rejected: {e}"
            )
            raise

    def set_paused(self, paused: bool) -> None:
        self.ingestor.set_paused(paused)

    def set_chart_paused(self, paused: bool) -> None:
        self.ingestor.set_chart_paused(paused)

    # ==========================================================================
    # Pipeline callbacks
    # ==========================================================================

    def _on_batch(self, update: BatchUpdate) -> None:
        if PROFILEME:
            tic = time.perf_counter()

        if DEBUGSTREAM:
            self.logSignal.emit(logging.DEBUG, f"{log_prefix(self.instance_name)} {update}.")

        self.batchReady.emit(update)
        if update.lines:
            self.linesReady.emit(update.lines)
        if update.data_points:
            self.pointsReady.emit(update.data_points)

        if PROFILEME:
            toc = time.perf_counter()
            self.mtoc_emit_batch = max((toc - tic), self.mtoc_emit_batch)

    def _on_status(self, event: str, value) -> None:
        if event == "running":
            self.runningChanged.emit(value)
        elif event == "fatal_error":
            self.fatalError.emit(value)

    def cleanup(self) -> None:
        """
        Deliver what is buffered and stop the flush timer.
        """
        self.logSignal.emit(logging.INFO,
            f"{log_prefix(self.instance_name)} Cleaning up stream ingestor."
        )
        self.ingestor.teardown()
        self.scheduler.cancel()
