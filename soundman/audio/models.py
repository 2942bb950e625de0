"""Audio data models and structures."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import numpy as np
import time

# Fixed-length float64 vector produced by the feature extractor
FeatureVector = np.ndarray


@dataclass
class AudioFrame:
    """Represents a single audio frame with metadata."""
    pcm_data: np.ndarray  # int16 PCM samples
    sample_rate: int
    timestamp: float  # Unix timestamp when frame was received
    stream_id: str
    byte_length: Optional[int] = None  # Wire payload size when decoded from bytes

    def __post_init__(self):
        """Validate frame data."""
        if self.pcm_data.dtype != np.int16:
            raise ValueError(f"Expected int16 PCM, got {self.pcm_data.dtype}")
        if len(self.pcm_data.shape) != 1:
            raise ValueError(f"Expected mono (1D array), got shape {self.pcm_data.shape}")
        if self.sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {self.sample_rate}")


@dataclass
class SoundLabel:
    """A user-defined sound category and its playback settings."""
    name: str
    id: Optional[int] = None
    confidence_threshold: float = 0.7
    volume_multiplier: float = 1.0
    is_muted: bool = False
    reverse_tone_enabled: bool = False
    is_active: bool = True
    detection_count: int = 0
    created_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.name:
            raise ValueError("Label name must not be empty")
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError(f"confidence_threshold must be within [0, 1], got {self.confidence_threshold}")
        if not 0.0 <= self.volume_multiplier <= 2.0:
            raise ValueError(f"volume_multiplier must be within [0, 2], got {self.volume_multiplier}")


@dataclass
class PersonLabel:
    """A known human voice and its playback settings."""
    id: int
    name: str
    volume_multiplier: float = 1.0
    is_muted: bool = False
    is_active: bool = True
    detection_count: int = 0
    transcription: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if not 0.0 <= self.volume_multiplier <= 2.0:
            raise ValueError(f"volume_multiplier must be within [0, 2], got {self.volume_multiplier}")

    def append_transcription(self, text: str) -> None:
        """Append recognized text, tagging every entry after the first with the person name."""
        if not text or not text.strip():
            return
        if not self.transcription:
            self.transcription = text
        else:
            self.transcription = f"{self.transcription}\n[{self.name}]: {text}"


class MatchKind(str, Enum):
    """Mutually exclusive per-frame classification outcomes."""
    NO_MATCH = "no_match"
    PERSON_MATCH = "person_match"
    LABEL_MATCH = "label_match"


@dataclass
class DetectionResult:
    """Outcome of classifying one frame."""
    kind: MatchKind = MatchKind.NO_MATCH
    label: Optional[str] = None
    person_id: Optional[int] = None
    confidence: float = 0.0
    cluster_id: Optional[str] = None
    frequency: Optional[float] = None  # Hz
    duration_ms: Optional[int] = None
    source: str = "patterns"

    @property
    def is_person(self) -> bool:
        return self.kind == MatchKind.PERSON_MATCH

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "label": self.label,
            "person_id": self.person_id,
            "confidence": round(float(self.confidence), 4),
            "cluster_id": self.cluster_id,
            "frequency": None if self.frequency is None else round(float(self.frequency), 1),
            "duration_ms": self.duration_ms,
            "source": self.source,
        }


@dataclass(frozen=True)
class DetectionEvent:
    """Immutable record of one classification outcome kept in the session history."""
    detection_id: int
    timestamp: float
    confidence: float
    audio: bytes
    label: Optional[str] = None
    person_id: Optional[int] = None
    cluster_id: Optional[str] = None
    frequency: Optional[float] = None
    duration_ms: Optional[int] = None
    transcription: Optional[str] = None
    is_person: bool = False

    @property
    def is_unknown(self) -> bool:
        return self.label is None and self.cluster_id is not None


@dataclass(frozen=True)
class TransformSettings:
    """Playback settings applied to a classified frame."""
    volume_multiplier: float = 1.0
    is_muted: bool = False
    reverse_tone_enabled: bool = False

    @classmethod
    def from_label(cls, label: SoundLabel) -> "TransformSettings":
        return cls(
            volume_multiplier=label.volume_multiplier,
            is_muted=label.is_muted,
            reverse_tone_enabled=label.reverse_tone_enabled,
        )

    @classmethod
    def from_person(cls, person: PersonLabel) -> "TransformSettings":
        # Phase inversion is never applied to voices
        return cls(
            volume_multiplier=person.volume_multiplier,
            is_muted=person.is_muted or person.volume_multiplier == 0.0,
            reverse_tone_enabled=False,
        )


@dataclass
class LabelingRequest:
    """User request to name an unknown sound (and its cluster)."""
    label_name: str
    use_existing_label: bool = False
    existing_label_name: Optional[str] = None
    detection_id: Optional[int] = None  # Defaults to the most recent unknown detection


@dataclass
class StreamState:
    """Tracks state for an active audio stream."""
    stream_id: str
    created_at: float
    last_frame_time: float
    frame_count: int
    last_result: Optional[DetectionResult] = None
    result_updated_at: Optional[float] = None

    def update_result(self, result: DetectionResult) -> None:
        """Record the latest classification result for this stream."""
        self.last_result = result
        self.result_updated_at = time.time()
