############################################################################################################################################
# Stream Monitor
#
# Headless front end of the ingestion pipeline. Replays a capture (file or stdin) in chunks through the
# pipeline, prints the lines, optionally detects the data format and exports the histories.
#
#   streamscope-monitor capture.bin --chunk-size 17 --detect --export-csv data.csv
#   cat /dev/ttyACM0 | streamscope-monitor - --source rx
#   streamscope-monitor capture.bin --qt              # same, driven by the Qt event loop
#
# Maintainer: Urs Utzinger
############################################################################################################################################
#
import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Iterator, Optional
#
from streamscope import __version__
from streamscope.config import (LOG_OPTIONS, LOG_DEFAULT_LABEL, LOG_FORMAT, MAX_LINES, FLUSH_INTERVAL_MS,
                                DETECTION_SAMPLE_LINES)
from streamscope.helpers.Config_helper import ParseConfig, StreamConfig, MarkupConfig, ConfigurationError
from streamscope.helpers.Stream_models import BatchUpdate, SourceKey
from streamscope.helpers.Ingest_helper import StreamIngestor
from streamscope.helpers.Markup_helper import strip_markup
from streamscope.helpers.Export_helper import format_source_key, write_lines_text, write_points_csv
from streamscope.helpers.General_helper import format_time, format_bytes, format_hex
#

def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="streamscope-monitor",
                                description="Replay a captured byte stream through the ingestion pipeline.")
    p.add_argument("capture", help="capture file, - for stdin")
    p.add_argument("--source", default="0", help="source key, a number is a trace channel (default 0)")
    p.add_argument("--chunk-size", type=int, default=64, help="bytes per chunk (default 64)")
    p.add_argument("--chunks-per-frame", type=int, default=4, help="chunks between two flushes (default 4)")
    p.add_argument("--max-lines", type=int, default=MAX_LINES)
    p.add_argument("--encoding", default="utf-8")
    p.add_argument("--parse-config", type=Path, help="parse configuration as JSON (ParseConfig.to_dict)")
    p.add_argument("--detect", action="store_true", help="detect the data format at the end and apply it")
    p.add_argument("--no-flush-on-stop", action="store_true", help="drop a trailing partial line")
    p.add_argument("--quiet", action="store_true", help="do not print lines")
    p.add_argument("--hex", action="store_true", help="print the raw bytes of the lines in hex")
    p.add_argument("--export-lines", type=Path, help="write the line history as text")
    p.add_argument("--export-csv", type=Path, help="write the data point history as csv")
    p.add_argument("--qt", action="store_true", help="drive the pipeline from a Qt event loop")
    p.add_argument("--log-level", choices=list(LOG_OPTIONS), default=LOG_DEFAULT_LABEL)
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p.parse_args(argv)

def source_key_from_arg(text: str) -> SourceKey:
    return int(text) if text.isdigit() else text

def read_chunks(capture: str, chunk_size: int) -> Iterator[bytes]:
    ''' Capture in chunks of chunk_size bytes '''
    stream = sys.stdin.buffer if capture == "-" else open(capture, "rb")
    try:
        while True:
            data = stream.read(chunk_size)
            if not data:
                break
            yield data
    finally:
        if stream is not sys.stdin.buffer:
            stream.close()

def load_parse_config(path: Optional[Path]) -> ParseConfig:
    if path is None:
        return ParseConfig()
    with open(path, "r", encoding="utf-8") as f:
        return ParseConfig.from_dict(json.load(f))

def print_batch(update: BatchUpdate, markup: MarkupConfig, hex_view: bool = False) -> None:
    for line in update.lines:
        body = format_hex(line.raw_bytes, line.text) if hex_view else strip_markup(line.text, markup)
        print(f"[{format_time(line.timestamp_ms, with_date=False)}] [{format_source_key(line.source_key)}] "
              f"[{line.level:<5}] {body}")

def run_manual(ingestor: StreamIngestor, args) -> None:
    ''' Fixed number of chunks per frame, the frame ends with a scheduler tick '''
    source_key = source_key_from_arg(args.source)
    ingestor.on_running_changed(True)
    for count, data in enumerate(read_chunks(args.capture, args.chunk_size), start=1):
        ingestor.on_chunk(source_key, data)
        if count % args.chunks_per_frame == 0:
            ingestor.scheduler.tick()
    ingestor.on_running_changed(False)

def run_qt(args, stream_config: StreamConfig, parse_config: ParseConfig, on_batch) -> StreamIngestor:
    ''' Chunks are fed from a QTimer, the flushes come from the frame scheduler '''
    try:
        from PyQt6.QtCore import QCoreApplication, QTimer
    except Exception:
        from PyQt5.QtCore import QCoreApplication, QTimer
    from streamscope.helpers.Qstream_helper import QStreamIngestor

    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    qstream = QStreamIngestor(stream_config=stream_config, parse_config=parse_config)
    qstream.ingestor.add_listener(on_batch)

    source_key = source_key_from_arg(args.source)
    chunks = read_chunks(args.capture, args.chunk_size)

    def feed():
        data = next(chunks, None)
        if data is None:
            feeder.stop()
            qstream.on_runningChanged(False)
            qstream.cleanup()
            app.quit()
            return
        qstream.on_receivedChunk(source_key, data)

    feeder = QTimer()
    feeder.setInterval(max(1, FLUSH_INTERVAL_MS // max(1, args.chunks_per_frame)))
    feeder.timeout.connect(feed)

    qstream.on_runningChanged(True)
    feeder.start()
    try:
        app.exec()                                                             # PyQt6
    except AttributeError:
        app.exec_()                                                            # PyQt5
    return qstream.ingestor

def main(argv=None) -> int:
    args = parse_args(argv)

    # Logging
    logger = logging.getLogger("StreamMon")
    logger.setLevel(LOG_OPTIONS[args.log_level])
    if not logger.handlers:
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(sh)
    logger.propagate = False

    try:
        stream_config = StreamConfig(max_lines=args.max_lines, encoding=args.encoding,
                                     flush_on_stop=not args.no_flush_on_stop).validate()
        parse_config = load_parse_config(args.parse_config).validate()
    except (ConfigurationError, OSError, ValueError) as e:
        logger.log(logging.ERROR, f"Invalid configuration: {e}")
        return 2

    if args.capture != "-" and not Path(args.capture).is_file():
        logger.log(logging.ERROR, f"Capture {args.capture} not found.")
        return 1
    if args.chunk_size < 1 or args.chunks_per_frame < 1:
        logger.log(logging.ERROR, "Chunk size and chunks per frame must be at least 1.")
        return 2

    markup = MarkupConfig()
    on_batch = (lambda update: None) if args.quiet else (lambda update: print_batch(update, markup, args.hex))

    tic = time.perf_counter()
    try:
        if args.qt:
            ingestor = run_qt(args, stream_config, parse_config, on_batch)
        else:
            ingestor = StreamIngestor(stream_config, parse_config, logger=logger)
            ingestor.add_listener(on_batch)
            run_manual(ingestor, args)
            ingestor.teardown()
    except OSError as e:
        logger.log(logging.ERROR, f"Could not read {args.capture}: {e}")
        return 1
    toc = time.perf_counter()

    if args.detect:
        result = ingestor.auto_configure(DETECTION_SAMPLE_LINES)
        print(f"Detected format: {result.format} ({result.confidence:.0%}) {result.description}")
        if result.format != "unknown":
            ingestor.reparse_history()
            for key, s in ingestor.history.series_statistics().items():
                print(f"  {key:<12} min {s['min']:.4g} max {s['max']:.4g} mean {s['mean']:.4g} latest {s['latest']:.4g}")

    stats = ingestor.history.stats()
    logger.log(logging.INFO,
        f"{stats['lines']} lines, {stats['data_points']} data points, {format_bytes(stats['total_bytes'])} "
        f"in {toc - tic:.3f} s, parsed {stats['parse_success']} / failed {stats['parse_fail']}."
    )

    try:
        if args.export_lines:
            write_lines_text(args.export_lines, ingestor.history.lines)
            logger.log(logging.INFO, f"Lines saved: {args.export_lines}")
        if args.export_csv:
            write_points_csv(args.export_csv, ingestor.history.points)
            logger.log(logging.INFO, f"Chart data saved: {args.export_csv}")
    except OSError as e:
        logger.log(logging.ERROR, f"Could not export: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
