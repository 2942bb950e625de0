"""Unit tests for playback transforms (mute, volume, reverse tone)."""
import pytest
import numpy as np
from soundman.audio.models import TransformSettings
from soundman.audio.dsp.output import apply_reverse_tone, apply_volume, last_blend_sample, transform


def test_unity_volume_is_byte_identical():
    pcm = np.array([1, -2, 32767, -32768], dtype=np.int16)
    result = transform(pcm, TransformSettings(volume_multiplier=1.0))
    assert result.tobytes() == pcm.tobytes()


def test_volume_scales_and_truncates():
    pcm = np.array([1000, -1000, 3, -3], dtype=np.int16)
    result = apply_volume(pcm, 0.5)
    assert result.dtype == np.int16
    assert result.tolist() == [500, -500, 1, -1]


def test_volume_clips_to_int16_range():
    """Amplification hard-clips instead of wrapping."""
    pcm = np.array([20000, -20000, 100], dtype=np.int16)
    result = apply_volume(pcm, 2.0)
    assert result.tolist() == [32767, -32768, 200]


def test_zero_volume_silences():
    pcm = np.array([1000, -1000], dtype=np.int16)
    assert apply_volume(pcm, 0.0).tolist() == [0, 0]


def test_mute_overrides_everything():
    pcm = np.array([1000, -1000, 5], dtype=np.int16)
    settings = TransformSettings(volume_multiplier=1.5, is_muted=True, reverse_tone_enabled=True)
    result = transform(pcm, settings)
    assert result.tolist() == [0, 0, 0]
    assert len(result) == len(pcm)


def test_invert_is_an_involution():
    """Inverting twice restores every sample, including -32768."""
    pcm = np.array([0, 1, -1, 32767, -32768, 1234], dtype=np.int16)
    once = apply_reverse_tone(pcm, mode="invert")
    twice = apply_reverse_tone(once, mode="invert")

    assert once.tolist() == [0, -1, 1, -32767, -32768, -1234]
    assert np.array_equal(twice, pcm)


def test_blend_is_deterministic():
    pcm = np.array([1000, 2000, -1000], dtype=np.int16)
    first = apply_reverse_tone(pcm, mode="blend")
    second = apply_reverse_tone(pcm, mode="blend")

    assert np.array_equal(first, second)
    # First sample purely negated, then -0.9 * x + 0.1 * previous raw sample
    assert first.tolist() == [-1000, -1700, 1100]


def test_blend_uses_previous_frame_sample():
    pcm = np.array([1000, 2000], dtype=np.int16)
    result = apply_reverse_tone(pcm, mode="blend", previous_sample=500)
    assert result.tolist() == [-850, -1700]


def test_unknown_reverse_mode():
    with pytest.raises(ValueError):
        apply_reverse_tone(np.zeros(2, dtype=np.int16), mode="shift")


def test_volume_then_reverse_order():
    pcm = np.array([1000, -400], dtype=np.int16)
    settings = TransformSettings(volume_multiplier=0.5, reverse_tone_enabled=True)
    result = transform(pcm, settings, reverse_tone_mode="invert")
    assert result.tolist() == [-500, 200]


def test_empty_frame():
    pcm = np.array([], dtype=np.int16)
    settings = TransformSettings(volume_multiplier=1.5, reverse_tone_enabled=True)
    assert len(transform(pcm, settings, reverse_tone_mode="blend")) == 0
    assert len(transform(pcm, TransformSettings(is_muted=True))) == 0


def test_blend_previous_sample_is_in_scaled_units():
    """A constant signal stays constant across the frame boundary after volume scaling."""
    pcm = np.full(4, 100, dtype=np.int16)
    settings = TransformSettings(volume_multiplier=2.0, reverse_tone_enabled=True)
    previous = last_blend_sample(pcm, settings)
    assert previous == 200

    result = transform(pcm, settings, previous_sample=previous, reverse_tone_mode="blend")
    assert result.tolist() == [-160, -160, -160, -160]


def test_last_blend_sample():
    pcm = np.array([5, -300], dtype=np.int16)
    assert last_blend_sample(pcm, None) == -300
    assert last_blend_sample(pcm, TransformSettings(volume_multiplier=0.5)) == -150
    assert last_blend_sample(pcm, TransformSettings(is_muted=True)) == 0
    assert last_blend_sample(np.array([], dtype=np.int16), None) is None
