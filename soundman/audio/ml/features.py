"""Feature extraction from audio frames for sound matching."""
import numpy as np
from typing import Union
from soundman.audio.models import AudioFrame, FeatureVector
from soundman.audio.ingestion import bytes_to_pcm
from soundman.core.logging import logger

FEATURE_NAMES = (
    "rms",
    "zero_crossing_rate",
    "spectral_centroid",
    "spectral_rolloff",
    "mean_amplitude",
    "amplitude_std",
    "peak_amplitude",
)
FEATURE_DIMENSIONS = len(FEATURE_NAMES)

# Spectral estimators only look at the head of the frame to bound per-frame cost
SPECTRAL_WINDOW = 1024
ROLLOFF_FRACTION = 0.85
PCM_SCALE = 32767.0

PcmInput = Union[bytes, bytearray, np.ndarray, AudioFrame]


def to_float_samples(pcm: PcmInput) -> np.ndarray:
    """
    Normalize PCM input to float64 samples in [-1, 1].

    Accepts raw little-endian bytes, an int16 array or an AudioFrame.

    Args:
        pcm: PCM input

    Returns:
        1-D float64 array (empty for empty input)
    """
    if isinstance(pcm, AudioFrame):
        pcm = pcm.pcm_data
    if isinstance(pcm, (bytes, bytearray)):
        pcm = bytes_to_pcm(bytes(pcm))
    samples = np.asarray(pcm).reshape(-1)
    return samples.astype(np.float64) / PCM_SCALE


def extract_rms(samples: np.ndarray) -> float:
    """Root-mean-square energy of normalized samples."""
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples ** 2)))


def extract_zero_crossing_rate(samples: np.ndarray) -> float:
    """
    Extract zero-crossing rate (ZCR).

    A crossing is any pair of consecutive samples on different sides of zero,
    with zero itself counted as non-negative.

    Args:
        samples: Normalized samples

    Returns:
        Crossings divided by the sample count (0.0 to 1.0)
    """
    if samples.size < 2:
        return 0.0
    non_negative = samples >= 0
    crossings = np.count_nonzero(non_negative[1:] != non_negative[:-1])
    return float(crossings) / samples.size


def extract_spectral_centroid(window: np.ndarray) -> float:
    """
    Simplified spectral centroid: magnitude-weighted mean sample index.

    This is a cheap time-domain stand-in for the FFT centroid; values are in
    index units of the truncated window, not Hz.
    """
    magnitude = np.abs(window)
    magnitude_sum = float(np.sum(magnitude))
    if magnitude_sum <= 0:
        return 0.0
    indices = np.arange(window.size, dtype=np.float64)
    return float(np.sum(indices * magnitude)) / magnitude_sum


def extract_spectral_rolloff(window: np.ndarray, fraction: float = ROLLOFF_FRACTION) -> float:
    """
    Normalized index at which cumulative magnitude first reaches `fraction` of the total.

    Args:
        window: Truncated normalized samples
        fraction: Share of total magnitude (default 0.85)

    Returns:
        Rolloff position in [0, 1)
    """
    if window.size == 0:
        return 0.0
    magnitude = np.abs(window)
    total = float(np.sum(magnitude))
    cumulative = np.cumsum(magnitude)
    reached = np.nonzero(cumulative >= total * fraction)[0]
    index = int(reached[0]) if reached.size else 0
    return index / window.size


def extract_features(pcm: PcmInput) -> FeatureVector:
    """
    Convert one PCM frame into a fixed-length feature vector.

    Features, in order:
    - RMS energy
    - Zero-crossing rate
    - Spectral centroid (first 1024 samples)
    - Spectral rolloff (first 1024 samples)
    - Mean amplitude
    - Amplitude standard deviation
    - Peak absolute amplitude

    Degenerate input (empty or a single sample) never raises; every
    undefined statistic becomes 0.

    Args:
        pcm: Raw PCM bytes, int16 array or AudioFrame

    Returns:
        float64 array of length FEATURE_DIMENSIONS
    """
    samples = to_float_samples(pcm)
    if samples.size == 0:
        return np.zeros(FEATURE_DIMENSIONS, dtype=np.float64)

    window = samples[:SPECTRAL_WINDOW]
    mean = float(np.mean(samples))

    features = np.array([
        extract_rms(samples),
        extract_zero_crossing_rate(samples),
        extract_spectral_centroid(window),
        extract_spectral_rolloff(window),
        mean,
        float(np.sqrt(np.mean((samples - mean) ** 2))),
        float(np.max(np.abs(samples))),
    ], dtype=np.float64)

    if not np.all(np.isfinite(features)):
        logger.debug("Non-finite feature values replaced with 0")
        features = np.nan_to_num(features, nan=0.0, posinf=0.0, neginf=0.0)

    return features


def estimate_frequency(pcm: PcmInput, sample_rate: int) -> float:
    """
    Estimate the dominant frequency from the zero-crossing count.

    Args:
        pcm: PCM input
        sample_rate: Sample rate of the input in Hz

    Returns:
        Frequency in Hz, clamped to [0, Nyquist]
    """
    samples = to_float_samples(pcm)
    if samples.size == 0 or sample_rate <= 0:
        return 0.0
    non_negative = samples >= 0
    crossings = np.count_nonzero(non_negative[1:] != non_negative[:-1])
    frequency = (crossings / 2.0) / (samples.size / float(sample_rate))
    return float(min(max(frequency, 0.0), sample_rate / 2.0))


def estimate_duration_ms(pcm: PcmInput, sample_rate: int) -> int:
    """Frame duration in whole milliseconds at the given sample rate."""
    samples = to_float_samples(pcm)
    if sample_rate <= 0:
        return 0
    return int(samples.size / float(sample_rate) * 1000)
