import json

from streamscope.StreamMonitor import main, source_key_from_arg
from streamscope.helpers.Config_helper import ParseConfig
from streamscope.helpers.Export_helper import parse_lines_text

DATA = [b"%d.5,%d.0\n" % (20 + i, 60 - i) for i in range(20)]
CAPTURE = b"boot ok\r\n" + b"".join(DATA[:10]) + b"WARNING: hot\n" + b"".join(DATA[10:]) + b"partial"


def test_source_key_from_arg():
    assert source_key_from_arg("3") == 3
    assert source_key_from_arg("rx") == "rx"

def test_replay_detect_and_export(tmp_path, capsys):
    capture = tmp_path / "capture.bin"
    capture.write_bytes(CAPTURE)
    lines_path = tmp_path / "lines.txt"
    csv_path = tmp_path / "points.csv"

    code = main([str(capture), "--chunk-size", "5", "--detect", "--source", "rx",
                 "--export-lines", str(lines_path), "--export-csv", str(csv_path)])
    assert code == 0

    out = capsys.readouterr().out
    assert "[rx] [warn ] WARNING: hot" in out
    assert "Detected format: xy-data" in out

    entries = parse_lines_text(lines_path.read_text(encoding="utf-8"))
    assert len(entries) == 23
    assert entries[-1][2] == "partial"
    assert {key for _, key, _ in entries} == {"rx"}

    rows = csv_path.read_text(encoding="utf-8").splitlines()
    assert rows[0] == "timestamp,relative_s,x,y"
    assert len(rows) == 1 + 20
    assert rows[1].endswith(",20.5,60")

def test_parse_config_file(tmp_path, capsys):
    capture = tmp_path / "capture.bin"
    capture.write_bytes(b'{"t": 1}\n{"t": 2}\n')
    config_path = tmp_path / "parse.json"
    config_path.write_text(json.dumps(ParseConfig(enabled=True, mode="json").to_dict()), encoding="utf-8")
    csv_path = tmp_path / "points.csv"

    assert main([str(capture), "--quiet", "--parse-config", str(config_path), "--export-csv", str(csv_path)]) == 0
    assert capsys.readouterr().out == ""
    rows = csv_path.read_text(encoding="utf-8").splitlines()
    assert rows[0] == "timestamp,relative_s,t"
    assert [row.split(",")[-1] for row in rows[1:]] == ["1", "2"]

def test_missing_capture(tmp_path):
    assert main([str(tmp_path / "missing.bin")]) == 1

def test_invalid_configuration(tmp_path):
    capture = tmp_path / "capture.bin"
    capture.write_bytes(b"x\n")
    assert main([str(capture), "--encoding", "no-such-codec"]) == 2
    assert main([str(capture), "--chunk-size", "0"]) == 2

def test_hex_view(tmp_path, capsys):
    capture = tmp_path / "capture.bin"
    capture.write_bytes(b"Hi\r\n")
    assert main([str(capture), "--hex"]) == 0
    assert "[CH0] [info ] 48 69" in capsys.readouterr().out
