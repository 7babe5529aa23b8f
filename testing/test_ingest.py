import pytest

from streamscope.helpers.Config_helper import ParseConfig, StreamConfig, FieldConfig, ConfigurationError
from streamscope.helpers.Ingest_helper import StreamIngestor
from streamscope.helpers.Stream_models import DataPoint
from streamscope.helpers.Export_helper import export_lines_text, parse_lines_text


def json_config(**changes):
    config = ParseConfig(enabled=True, mode="auto", json_enabled=True)
    return config.replace(**changes) if changes else config

def make_ingestor(parse_config=None, **stream):
    ingestor = StreamIngestor(StreamConfig(**stream), parse_config)
    updates = []
    ingestor.add_listener(updates.append)
    return ingestor, updates


# Batching
# ----------------------------------------

def test_chunks_are_flushed_once_per_tick():
    ingestor, updates = make_ingestor()
    assert ingestor.on_chunk(0, b"hel", 1.0) == 0
    assert ingestor.on_chunk(0, b"lo\nworld\n", 2.0) == 2
    assert updates == []
    assert ingestor.scheduler.num_scheduled == 1

    assert ingestor.scheduler.tick()
    assert len(updates) == 1
    update = updates[0]
    assert [line.text for line in update.lines] == ["hello", "world"]
    assert [line.id for line in update.lines] == [1, 2]
    assert update.bytes_by_source == {0: 12}
    assert update.num_bytes == 12
    assert not ingestor.scheduler.tick()

def test_flush_without_data():
    ingestor, updates = make_ingestor()
    assert ingestor.flush() is None
    assert updates == []

def test_bytes_without_lines_are_still_counted():
    ingestor, updates = make_ingestor()
    ingestor.on_chunk("rx", b"partial", 0.0)
    ingestor.scheduler.tick()
    assert updates[0].lines == []
    assert ingestor.history.bytes_by_source == {"rx": 7}

def test_teardown_delivers_exactly_once():
    ingestor, updates = make_ingestor()
    ingestor.on_chunk(0, b"a\nb\n", 0.0)
    ingestor.teardown()
    assert len(updates) == 1
    assert len(updates[0].lines) == 2
    ingestor.teardown()
    ingestor.scheduler.tick()
    assert len(updates) == 1

def test_input_after_teardown_is_ignored():
    ingestor, updates = make_ingestor()
    ingestor.teardown()
    assert ingestor.on_chunk(0, b"late\n", 0.0) == 0
    assert not ingestor.has_pending
    assert len(ingestor.history.lines) == 0

def test_paused_drops_chunks():
    ingestor, updates = make_ingestor()
    ingestor.set_paused(True)
    ingestor.on_chunk(0, b"dropped\n", 0.0)
    ingestor.set_paused(False)
    ingestor.on_chunk(0, b"kept\n", 0.0)
    ingestor.flush()
    assert [line.text for line in ingestor.history.lines] == ["kept"]

def test_evictions_are_reported():
    ingestor, updates = make_ingestor(json_config(max_data_points=2), max_lines=3)
    ingestor.on_chunk(0, b"".join(b'{"v": %d}\n' % i for i in range(5)), 0.0)
    update = ingestor.flush()
    assert update.evicted_lines == 2
    assert update.evicted_points == 3
    assert len(ingestor.history.lines) == 3
    assert len(ingestor.history.points) == 2

# Extraction
# ----------------------------------------

def test_data_points_and_parse_counters():
    ingestor, updates = make_ingestor(json_config())
    ingestor.on_chunk(0, b'{"t": 1.5}\nboot\n{"t": 2}\n', 10.0)
    update = ingestor.flush()
    assert [p.values for p in update.data_points] == [{"t": 1.5}, {"t": 2.0}]
    assert (update.parse_success, update.parse_fail) == (2, 1)
    assert (ingestor.history.parse_success, ingestor.history.parse_fail) == (2, 1)
    assert ingestor.history.points.keys == ["t"]

def test_disabled_parsing_produces_no_points():
    ingestor, updates = make_ingestor(ParseConfig(enabled=False))
    ingestor.on_chunk(0, b'{"t": 1}\n', 0.0)
    update = ingestor.flush()
    assert update.data_points == []
    assert (update.parse_success, update.parse_fail) == (0, 0)

def test_deeply_nested_line_is_a_parse_failure():
    ingestor, updates = make_ingestor(ParseConfig(enabled=True))
    assert ingestor.on_chunk(0, b"[" * 100000 + b"\n{\"t\": 1}\n", 0.0) == 2
    assert ingestor.scheduler.num_scheduled == 1
    assert ingestor.scheduler.tick()
    update = updates[0]
    assert len(update.lines) == 2
    assert (update.parse_success, update.parse_fail) == (1, 1)

def test_varying_keys_keep_chart_bounded():
    ingestor, updates = make_ingestor(json_config(max_data_points=10))
    for i in range(500):
        ingestor.on_chunk(0, b'{"k%d": 1}\n' % i, 0.0)
        if i % 50 == 49:
            ingestor.flush()
    assert len(ingestor.history.points) == 10
    assert ingestor.history.points.keys == [f"k{i}" for i in range(490, 500)]
    assert len(ingestor.history.series_statistics()) == 10

def test_chart_paused_keeps_lines():
    ingestor, updates = make_ingestor(json_config())
    ingestor.set_chart_paused(True)
    ingestor.on_chunk(0, b'{"t": 1}\n', 0.0)
    update = ingestor.flush()
    assert len(update.lines) == 1
    assert update.data_points == []
    assert len(ingestor.history.points) == 0

# Transport status
# ----------------------------------------

def test_stop_flushes_partial_line():
    ingestor, updates = make_ingestor()
    events = []
    ingestor.add_status_listener(lambda event, value: events.append((event, value)))
    ingestor.on_running_changed(True)
    ingestor.on_chunk(0, b"complete\nno newline", 0.0)
    ingestor.on_running_changed(False)
    assert events == [("running", True), ("running", False)]
    assert len(updates) == 1
    assert [line.text for line in updates[0].lines] == ["complete", "no newline"]

def test_stop_keeps_partial_line_when_configured():
    ingestor, updates = make_ingestor(flush_on_stop=False)
    ingestor.on_chunk(0, b"complete\nno newline", 0.0)
    ingestor.on_running_changed(False)
    assert [line.text for line in updates[0].lines] == ["complete"]
    assert ingestor.reassembler.fragment(0).text == "no newline"

def test_fatal_error_is_forwarded_then_stops():
    ingestor, updates = make_ingestor()
    events = []
    ingestor.add_status_listener(lambda event, value: events.append((event, value)))
    ingestor.on_running_changed(True)
    ingestor.on_chunk(1, b"last words", 0.0)
    ingestor.on_fatal_error("port vanished")
    assert events == [("running", True), ("fatal_error", "port vanished"), ("running", False)]
    assert ingestor.last_error == "port vanished"
    assert not ingestor.running
    assert [line.text for line in ingestor.history.lines] == ["last words"]

def test_removed_listener_is_not_called():
    ingestor, updates = make_ingestor()
    ingestor.remove_listener(updates.append)
    ingestor.on_chunk(0, b"x\n", 0.0)
    ingestor.flush()
    assert updates == []

# Configuration
# ----------------------------------------

def test_invalid_parse_config_keeps_previous():
    ingestor, _ = make_ingestor(json_config())
    previous = ingestor.parse_config
    with pytest.raises(ConfigurationError):
        ingestor.apply_parse_config(ParseConfig(enabled=True, mode="regex", regex_enabled=True, regex_pattern="(?P<x"))
    assert ingestor.parse_config is previous

def test_invalid_construction():
    with pytest.raises(ConfigurationError):
        StreamIngestor(StreamConfig(encoding="no-such-codec"))
    with pytest.raises(ConfigurationError):
        StreamIngestor(parse_config=ParseConfig(mode="csv"))

def test_apply_parse_config_resizes_chart_history():
    ingestor, _ = make_ingestor(json_config())
    ingestor.on_chunk(0, b"".join(b'{"v": %d}\n' % i for i in range(10)), 0.0)
    ingestor.flush()
    ingestor.apply_parse_config(json_config(max_data_points=4))
    assert len(ingestor.history.points) == 4
    assert ingestor.history.points.max_data_points == 4

def test_apply_stream_config_trims_lines():
    ingestor, _ = make_ingestor()
    ingestor.on_chunk(0, b"1\n2\n3\n4\n", 0.0)
    ingestor.flush()
    ingestor.apply_stream_config(StreamConfig(max_lines=2))
    assert [line.text for line in ingestor.history.lines] == ["3", "4"]

def test_apply_stream_config_sets_flush_interval(qapp):
    from streamscope.helpers.Qstream_helper import QStreamIngestor

    qstream = QStreamIngestor(stream_config=StreamConfig(flush_interval_ms=5))
    qstream.ingestor.apply_stream_config(StreamConfig(flush_interval_ms=40))
    assert qstream.scheduler.interval_ms == 40
    assert qstream.ingestor.stream_config.flush_interval_ms == 40
    qstream.cleanup()

def test_auto_configure_and_reparse():
    ingestor, _ = make_ingestor()
    ingestor.on_chunk(0, b"23.5,60.1\n24.0,59.8\n", 5.0)
    ingestor.flush()
    assert len(ingestor.history.points) == 0

    result = ingestor.auto_configure()
    assert result.format == "xy-data"
    assert ingestor.parse_config.mode == "delimiter"
    assert ingestor.parse_config.fields == [FieldConfig(0, "x"), FieldConfig(1, "y")]

    assert ingestor.reparse_history() == 2
    assert ingestor.history.points.points() == [DataPoint(5.0, {"x": 23.5, "y": 60.1}),
                                                DataPoint(5.0, {"x": 24.0, "y": 59.8})]
    assert ingestor.history.parse_success == 2

def test_auto_configure_unknown_changes_nothing():
    ingestor, _ = make_ingestor()
    ingestor.on_chunk(0, b"boot\nready\n", 0.0)
    ingestor.flush()
    before = ingestor.parse_config
    assert ingestor.auto_configure().format == "unknown"
    assert ingestor.parse_config is before

def test_arrival_time_stamps_survive_export():
    ingestor, _ = make_ingestor()
    ingestor.on_running_changed(True)
    ingestor.on_chunk(0, b"hello\nworld\n")
    ingestor.on_chunk("rx", b"tail")
    ingestor.on_running_changed(False)
    lines = list(ingestor.history.lines)
    assert [line.text for line in lines] == ["hello", "world", "tail"]
    assert all(isinstance(line.timestamp_ms, int) for line in lines)
    expected = [(line.timestamp_ms, line.source_key, line.text) for line in lines]
    assert parse_lines_text(export_lines_text(lines)) == expected

def test_reset_source_discards_fragment():
    ingestor, _ = make_ingestor()
    ingestor.on_chunk(0, b"stale", 0.0)
    ingestor.reset_source(0)
    ingestor.on_chunk(0, b"fresh\n", 0.0)
    ingestor.flush()
    assert [line.text for line in ingestor.history.lines] == ["fresh"]

# Qt front end
# ----------------------------------------

def test_qt_ingestor_emits_one_batch(qapp, wait_until):
    from streamscope.helpers.Qstream_helper import QStreamIngestor

    qstream = QStreamIngestor(stream_config=StreamConfig(flush_interval_ms=5), parse_config=json_config())
    batches, lines, points = [], [], []
    qstream.batchReady.connect(batches.append)
    qstream.linesReady.connect(lines.extend)
    qstream.pointsReady.connect(points.extend)

    qstream.on_receivedChunk(0, b'{"t": 1}\n{"t"')
    qstream.on_receivedChunk(0, b': 2}\n')
    assert wait_until(lambda: len(batches) == 1)
    assert [line.text for line in lines] == ['{"t": 1}', '{"t": 2}']
    assert [p.values for p in points] == [{"t": 1.0}, {"t": 2.0}]
    qstream.cleanup()

def test_qt_ingestor_cleanup_delivers_pending(qapp):
    from streamscope.helpers.Qstream_helper import QStreamIngestor

    qstream = QStreamIngestor(stream_config=StreamConfig(flush_interval_ms=1000))
    batches = []
    qstream.batchReady.connect(batches.append)
    qstream.on_receivedChunk("tx", b"bye\n")
    qstream.cleanup()
    assert len(batches) == 1
    assert batches[0].lines[0].source_key == "tx"

def test_qt_ingestor_forwards_status(qapp):
    from streamscope.helpers.Qstream_helper import QStreamIngestor

    qstream = QStreamIngestor()
    running, errors = [], []
    qstream.runningChanged.connect(running.append)
    qstream.fatalError.connect(errors.append)
    qstream.on_runningChanged(True)
    qstream.on_fatalError("gone")
    assert running == [True, False]
    assert errors == ["gone"]
    qstream.cleanup()
