"""Helper functions for streaming processed audio output."""
from soundman.audio.models import AudioFrame


def frame_to_bytes(frame: AudioFrame) -> bytes:
    """
    Convert an AudioFrame to raw little-endian PCM bytes.

    Frames decoded from an odd-length payload are zero-padded back to the
    original byte length, so output always matches input size.

    Args:
        frame: Audio frame to convert

    Returns:
        Raw PCM bytes (int16)
    """
    data = frame.pcm_data.astype("<i2").tobytes()
    if frame.byte_length is not None and len(data) < frame.byte_length:
        data += b"\x00" * (frame.byte_length - len(data))
    return data
