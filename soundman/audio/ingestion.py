"""Helper functions for ingesting and converting incoming audio data."""
import numpy as np
import time
from typing import Optional
from soundman.audio.models import AudioFrame
from soundman.core.config import settings
from soundman.core.logging import logger


def bytes_to_pcm(data: bytes) -> np.ndarray:
    """
    Decode little-endian 16-bit PCM bytes into an int16 array.

    A trailing odd byte (truncated sample) is dropped rather than rejected.

    Args:
        data: Raw PCM int16 bytes

    Returns:
        1-D int16 numpy array
    """
    if len(data) % 2 != 0:
        logger.debug(f"Dropping trailing byte from odd-length frame ({len(data)} bytes)")
        data = data[:-1]
    return np.frombuffer(data, dtype="<i2").astype(np.int16)


def bytes_to_audio_frame(
    data: bytes,
    stream_id: str,
    sample_rate: Optional[int] = None
) -> AudioFrame:
    """
    Convert raw PCM bytes to an AudioFrame.

    Args:
        data: Raw PCM int16 bytes
        stream_id: Unique identifier for the stream
        sample_rate: Sample rate (defaults to config value)

    Returns:
        AudioFrame object
    """
    if sample_rate is None:
        sample_rate = settings.sample_rate

    pcm_array = bytes_to_pcm(data)

    return AudioFrame(
        pcm_data=pcm_array,
        sample_rate=sample_rate,
        timestamp=time.time(),
        stream_id=stream_id,
        byte_length=len(data)
    )


def validate_audio_data(data: bytes, expected_size: Optional[int] = None) -> bool:
    """
    Validate incoming audio data.

    Odd-length payloads are accepted (the last byte is dropped on decode);
    only empty payloads and explicit size mismatches are rejected.

    Args:
        data: Raw audio bytes
        expected_size: Expected size in bytes (optional)

    Returns:
        True if valid, False otherwise
    """
    if len(data) == 0:
        logger.warning("Received empty audio data")
        return False

    if expected_size and len(data) != expected_size:
        logger.warning(f"Audio data size {len(data)} != expected {expected_size}")
        return False

    return True


def decode_audio_data(data: bytes, stream_id: str) -> Optional[AudioFrame]:
    """
    Validate and decode one incoming payload.

    Args:
        data: Raw PCM int16 bytes
        stream_id: Unique identifier for the stream

    Returns:
        AudioFrame, or None if the payload was rejected
    """
    if not validate_audio_data(data):
        logger.warning(f"Invalid audio data from stream {stream_id}")
        return None

    try:
        return bytes_to_audio_frame(data, stream_id)
    except Exception as e:
        logger.error(f"Error converting audio data for stream {stream_id}: {e}")
        return None
