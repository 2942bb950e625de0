"""Playback transforms: mute, volume scaling and reverse tone (phase inversion)."""
import numpy as np
from typing import Optional
from soundman.audio.models import TransformSettings
from soundman.core.config import settings as app_settings

INT16_MIN = np.iinfo(np.int16).min
INT16_MAX = np.iinfo(np.int16).max

INVERT_MODE = "invert"
BLEND_MODE = "blend"
BLEND_CURRENT_WEIGHT = 0.9
BLEND_PREVIOUS_WEIGHT = 0.1


def silence(pcm: np.ndarray) -> np.ndarray:
    """Zero-filled frame of the same length."""
    return np.zeros(len(pcm), dtype=np.int16)


def apply_volume(pcm: np.ndarray, multiplier: float) -> np.ndarray:
    """
    Scale samples by `multiplier` with a hard clip to the int16 range.

    A multiplier of exactly 1.0 returns the input untouched.

    Args:
        pcm: int16 samples
        multiplier: Volume multiplier (0.0 - 2.0)

    Returns:
        int16 samples
    """
    if multiplier == 1.0:
        return pcm

    scaled = np.trunc(pcm.astype(np.float64) * multiplier)
    return np.clip(scaled, INT16_MIN, INT16_MAX).astype(np.int16)


def apply_reverse_tone(
    pcm: np.ndarray,
    mode: str = INVERT_MODE,
    previous_sample: Optional[int] = None,
) -> np.ndarray:
    """
    Phase-invert a frame to approximate cancellation of the sound.

    "invert": two's-complement int16 negation; -32768 maps to itself, so
    applying it twice restores the frame exactly.

    "blend": each output is 0.9 of the negated sample plus 0.1 of the previous
    input sample, truncated and clipped. Inside `transform` the input is the
    volume-scaled frame, so `previous_sample` must be in the same units (see
    last_blend_sample). The first sample is purely negated when no
    previous_sample is given.

    Args:
        pcm: int16 samples
        mode: "invert" or "blend"
        previous_sample: Input sample preceding this frame (blend mode only)

    Returns:
        int16 samples of the same length
    """
    if mode == INVERT_MODE:
        return np.negative(pcm.astype(np.int16))

    if mode != BLEND_MODE:
        raise ValueError(f"Unknown reverse tone mode: {mode}")

    if len(pcm) == 0:
        return pcm.astype(np.int16)

    raw = pcm.astype(np.float64)
    previous = np.empty_like(raw)
    previous[1:] = raw[:-1]
    previous[0] = 0.0 if previous_sample is None else float(previous_sample)

    blended = np.trunc(-BLEND_CURRENT_WEIGHT * raw + BLEND_PREVIOUS_WEIGHT * previous)
    if previous_sample is None:
        blended[0] = -raw[0]
    return np.clip(blended, INT16_MIN, INT16_MAX).astype(np.int16)


def transform(
    pcm: np.ndarray,
    settings: TransformSettings,
    previous_sample: Optional[int] = None,
    reverse_tone_mode: Optional[str] = None,
) -> np.ndarray:
    """
    Apply playback settings to one frame. Pure; output length equals input length.

    Order is fixed: mute short-circuits, then volume, then reverse tone.

    Args:
        pcm: int16 samples
        settings: Transform settings for the classified label or person
        previous_sample: Last volume-scaled sample of the previous frame (blend mode)
        reverse_tone_mode: "invert" or "blend" (defaults to config value)

    Returns:
        Transformed int16 samples
    """
    if settings.is_muted:
        return silence(pcm)

    processed = apply_volume(pcm, settings.volume_multiplier)

    if settings.reverse_tone_enabled:
        mode = reverse_tone_mode or app_settings.reverse_tone_mode
        processed = apply_reverse_tone(processed, mode=mode, previous_sample=previous_sample)

    return processed


def last_blend_sample(pcm: np.ndarray, settings: Optional[TransformSettings]) -> Optional[int]:
    """
    Last sample of a frame as the blend saw it: after mute and volume, before reverse tone.

    Carried into the next frame as `previous_sample`, so the blend stays
    continuous across frame boundaries at any volume.

    Args:
        pcm: int16 samples of the input frame
        settings: Settings the frame was transformed with (None for pass-through)

    Returns:
        The sample, or None for an empty frame
    """
    if len(pcm) == 0:
        return None
    if settings is None:
        return int(pcm[-1])
    if settings.is_muted:
        return 0
    return int(apply_volume(pcm[-1:], settings.volume_multiplier)[0])
