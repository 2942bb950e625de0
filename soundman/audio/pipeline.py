"""Output stage orchestrator: picks playback settings for a classification and applies them."""
import time
from typing import Optional, Sequence
from soundman.audio.models import (
    AudioFrame,
    DetectionResult,
    MatchKind,
    PersonLabel,
    SoundLabel,
    TransformSettings,
)
from soundman.audio.dsp.output import transform
from soundman.core.config import settings
from soundman.core.logging import logger


def resolve_transform_settings(
    result: DetectionResult,
    labels: Sequence[SoundLabel],
    persons: Sequence[PersonLabel],
) -> Optional[TransformSettings]:
    """
    Find the playback settings for a classification result.

    Unknown sounds and inactive labels/persons get no settings (pass-through).

    Args:
        result: Classification result
        labels: Label records the frame was classified against
        persons: Person records the frame was classified against

    Returns:
        TransformSettings or None for pass-through
    """
    if result.kind == MatchKind.LABEL_MATCH:
        label = next((l for l in labels if l.name == result.label), None)
        if label is not None and label.is_active:
            return TransformSettings.from_label(label)
    elif result.kind == MatchKind.PERSON_MATCH:
        person = next((p for p in persons if p.id == result.person_id), None)
        if person is not None and person.is_active:
            return TransformSettings.from_person(person)
    return None


def process_audio_frame(
    frame: AudioFrame,
    result: DetectionResult,
    labels: Sequence[SoundLabel] = (),
    persons: Sequence[PersonLabel] = (),
    previous_sample: Optional[int] = None,
    reverse_tone_mode: Optional[str] = None,
) -> AudioFrame:
    """
    Apply the classified label's or person's playback settings to a frame.

    Pipeline steps (see dsp.output.transform):
    1. Mute (short-circuits to silence)
    2. Volume scaling with hard clipping
    3. Reverse tone for labels that enable it

    Args:
        frame: Input audio frame
        result: Classification result for this frame
        labels: Label records (settings source)
        persons: Person records (settings source)
        previous_sample: Last volume-scaled sample of the previous frame (blend reverse tone)
        reverse_tone_mode: "invert" or "blend" (defaults to config value)

    Returns:
        Processed audio frame with same format (PCM int16, same length)
    """
    start_time = time.time()

    try:
        transform_settings = resolve_transform_settings(result, labels, persons)
        if transform_settings is None:
            return frame

        pcm = transform(
            frame.pcm_data,
            transform_settings,
            previous_sample=previous_sample,
            reverse_tone_mode=reverse_tone_mode,
        )

        # Verify output format matches input
        if len(pcm) != len(frame.pcm_data):
            logger.warning(f"Frame length mismatch: {len(frame.pcm_data)} -> {len(pcm)}")
            return frame

        processing_time = (time.time() - start_time) * 1000
        if processing_time > settings.processing_timeout_ms:
            logger.warning(f"Frame transform took {processing_time:.2f}ms (target: {settings.processing_timeout_ms}ms)")

    except Exception as e:
        logger.error(f"Error transforming frame for stream {frame.stream_id}: {e}", exc_info=True)
        # Return original frame on error to maintain stream continuity
        return frame

    if pcm is frame.pcm_data:
        return frame

    return AudioFrame(
        pcm_data=pcm,
        sample_rate=frame.sample_rate,
        timestamp=frame.timestamp,
        stream_id=frame.stream_id,
        byte_length=frame.byte_length
    )
