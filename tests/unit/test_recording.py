import gzip
import json

import lz4.block
import lz4.frame
import pytest

from gaitauth.exceptions import RecordingFormatError
from gaitauth.sensors.decompression import RecordingDecompressor
from gaitauth.sensors.models import SensorKind
from gaitauth.sensors.recording import load_recording, parse_recording


def _packet(seq, readings):
    return json.dumps({"packet_seq_no": seq, "type": "sensor", "sensor_data": readings})


def _reading(sensor_type, ts, x=0.1, y=0.2, z=0.3):
    return {"sensor_type": sensor_type, "timestamp_ns": ts, "values": {"x": x, "y": y, "z": z}}


SAMPLE = "\n".join(
    [
        _packet(0, [_reading(1, 30), _reading(4, 10), _reading(18, 20)]),
        _packet(1, [_reading(2, 15), {"sensor_name": "Gyroscope", "timestamp_ns": 5, "values": {"x": 1, "y": 2, "z": 3}}]),
        "",
    ]
)


class TestParseRecording:
    def test_events_are_sorted_and_unknown_sensors_skipped(self):
        events = parse_recording(SAMPLE)

        assert [e.timestamp_ns for e in events] == [5, 10, 20, 30]
        assert [e.kind for e in events] == [
            SensorKind.GYROSCOPE,
            SensorKind.GYROSCOPE,
            SensorKind.STEP_DETECTOR,
            SensorKind.ACCELEROMETER,
        ]
        assert events[2].values == (1.0,)
        assert events[3].values == (0.1, 0.2, 0.3)

    def test_invalid_json_line_raises(self):
        with pytest.raises(RecordingFormatError):
            parse_recording("{broken")

    def test_negative_timestamp_raises(self):
        with pytest.raises(RecordingFormatError):
            parse_recording(_packet(0, [_reading(1, -1)]))

    def test_missing_axis_raises(self):
        line = _packet(0, [{"sensor_type": 1, "timestamp_ns": 1, "values": {"x": 1.0}}])
        with pytest.raises(RecordingFormatError):
            parse_recording(line)


class TestLoadRecording:
    def test_plain_file(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_text(SAMPLE, encoding="utf-8")
        assert len(load_recording(path)) == 4

    def test_gzip_file(self, tmp_path):
        path = tmp_path / "session.jsonl.gz"
        path.write_bytes(gzip.compress(SAMPLE.encode("utf-8")))
        assert len(load_recording(path)) == 4

    def test_lz4_file(self, tmp_path):
        path = tmp_path / "session.jsonl.lz4"
        path.write_bytes(lz4.frame.compress(SAMPLE.encode("utf-8")))
        assert len(load_recording(path)) == 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_recording(tmp_path / "nope.jsonl")


class TestRecordingDecompressor:
    @pytest.fixture
    def decompressor(self):
        return RecordingDecompressor()

    def test_auto_detect_lz4(self, decompressor):
        original = b"lz4 detection" * 10
        assert decompressor.decompress(lz4.frame.compress(original)) == original

    def test_plain_data_is_passed_through(self, decompressor):
        assert decompressor.decompress(b'{"a": 1}') == b'{"a": 1}'

    def test_empty_data_raises(self, decompressor):
        with pytest.raises(RecordingFormatError):
            decompressor.decompress(b"")

    def test_wrong_hint_raises(self, decompressor):
        with pytest.raises(RecordingFormatError):
            decompressor.decompress(b"not gzip at all", "gzip")

    def test_bare_lz4_block_is_rejected(self, decompressor):
        original = b'{"sensor_data": []}' * 20
        block = len(original).to_bytes(4, "big") + lz4.block.compress(original, store_size=False)

        with pytest.raises(RecordingFormatError):
            decompressor.decompress(block, "lz4")
