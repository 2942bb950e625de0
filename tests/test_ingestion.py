"""Unit tests for audio ingestion and output encoding."""
import pytest
import numpy as np
from soundman.audio.models import AudioFrame
from soundman.audio.ingestion import bytes_to_audio_frame, bytes_to_pcm, decode_audio_data, validate_audio_data
from soundman.audio.streaming import frame_to_bytes
from soundman.core.config import settings


def test_bytes_to_pcm_little_endian():
    pcm = bytes_to_pcm(b"\x01\x00\xff\xff")
    assert pcm.dtype == np.int16
    assert pcm.tolist() == [1, -1]


def test_bytes_to_pcm_drops_odd_byte():
    assert bytes_to_pcm(b"\x01\x00\x02").tolist() == [1]


def test_bytes_to_audio_frame_defaults():
    frame = bytes_to_audio_frame(b"\x01\x00\x02\x00", "stream-1")
    assert frame.sample_rate == settings.sample_rate
    assert frame.stream_id == "stream-1"
    assert frame.byte_length == 4
    assert frame.pcm_data.tolist() == [1, 2]


def test_frame_to_bytes_keeps_input_length():
    """Odd-length payloads come back at their original size."""
    frame = bytes_to_audio_frame(b"\x01\x00\x02", "stream-2")
    data = frame_to_bytes(frame)
    assert len(data) == 3
    assert data.startswith(b"\x01\x00")


def test_frame_to_bytes_round_trip():
    data = np.array([0, 32767, -32768, 123], dtype=np.int16).tobytes()
    assert frame_to_bytes(bytes_to_audio_frame(data, "stream-3")) == data


def test_validate_audio_data():
    assert validate_audio_data(b"") is False
    assert validate_audio_data(b"\x00\x00", expected_size=4) is False
    assert validate_audio_data(b"\x00\x00\x00") is True
    assert validate_audio_data(b"\x00\x00\x00\x00", expected_size=4) is True


def test_audio_frame_rejects_wrong_dtype():
    with pytest.raises(ValueError):
        AudioFrame(
            pcm_data=np.zeros(4, dtype=np.float32),
            sample_rate=44100,
            timestamp=0.0,
            stream_id="bad"
        )


def test_decode_audio_data():
    assert decode_audio_data(b"", "s1") is None

    frame = decode_audio_data(b"\x01\x00\x02\x00\x03", "s1")
    assert frame.stream_id == "s1"
    assert frame.pcm_data.tolist() == [1, 2]
    assert frame.byte_length == 5
