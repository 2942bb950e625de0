"""Configuration settings for the SoundMan detection backend."""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    # Audio settings
    sample_rate: int = 44100  # Hz, native capture rate

    # Pattern learning
    pattern_capacity: int = 50  # Feature vectors kept per label / person
    person_match_threshold: float = 0.6  # Stricter floor for voices
    default_label_threshold: float = 0.7  # Threshold for newly created labels

    # Unknown sound clustering
    cluster_strategy: str = "similarity"  # "similarity" or "summary"
    cluster_capacity: int = 20  # Feature vectors kept per cluster
    cluster_similarity_threshold: float = 0.7
    summary_frequency_tolerance: float = 0.10  # Relative frequency difference
    summary_duration_tolerance: float = 0.20  # Relative duration difference

    # Output transforms
    reverse_tone_mode: str = "invert"  # "invert" or "blend"

    # Optional acoustic classifier backend (ONNX)
    enable_acoustic_backend: bool = False
    acoustic_model_path: Optional[str] = "models/sound_classifier.onnx"
    acoustic_labels_path: Optional[str] = "models/sound_classifier_labels.txt"
    acoustic_confidence_floor: float = 0.3  # Minimum backend score for a label match

    # Session / streaming
    history_size: int = 500  # Detection events kept for relabeling
    stream_buffer_frames: int = 500

    # Performance settings
    processing_timeout_ms: int = 20  # Target per-frame processing time

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
