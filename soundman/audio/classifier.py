"""Per-frame sound classification: person voices, learned labels, unknown clusters."""
from typing import Hashable, Optional, Sequence
from soundman.audio.models import (
    AudioFrame,
    DetectionResult,
    FeatureVector,
    MatchKind,
    PersonLabel,
    SoundLabel,
)
from soundman.audio.clusters import ClusterManager
from soundman.audio.patterns import PatternStore
from soundman.audio.ml.backends import AcousticBackend, UnavailableAcousticBackend, is_speech_category
from soundman.audio.ml.features import (
    estimate_duration_ms,
    estimate_frequency,
    extract_features,
    to_float_samples,
)
from soundman.core.config import settings
from soundman.core.logging import logger


class SoundClassifier:
    """
    Decides one outcome per frame, in precedence order:

    1. Person voice: best person whose voice patterns score above the person threshold.
    2. Learned label: best label whose patterns score above that label's threshold.
    3. Acoustic backend (when available): top category naming a known label,
       above the global confidence floor and not speech-like.
    4. No match: the frame joins (or starts) an unknown cluster.

    Ties keep the first candidate in the order the records were supplied.
    """

    def __init__(
        self,
        sound_patterns: Optional[PatternStore] = None,
        voice_patterns: Optional[PatternStore] = None,
        clusters: Optional[ClusterManager] = None,
        acoustic_backend: Optional[AcousticBackend] = None,
        person_threshold: Optional[float] = None,
        acoustic_floor: Optional[float] = None,
    ):
        self.sound_patterns = sound_patterns if sound_patterns is not None else PatternStore()
        self.voice_patterns = voice_patterns if voice_patterns is not None else PatternStore()
        self.clusters = clusters if clusters is not None else ClusterManager()
        self.acoustic_backend = acoustic_backend or UnavailableAcousticBackend()
        self.person_threshold = (
            person_threshold if person_threshold is not None else settings.person_match_threshold
        )
        self.acoustic_floor = (
            acoustic_floor if acoustic_floor is not None else settings.acoustic_confidence_floor
        )

    def learn_sound(self, label_name: str, pcm) -> FeatureVector:
        """Learn one example frame for a label. Returns the stored feature vector."""
        features = extract_features(pcm)
        self.sound_patterns.learn(label_name, features)
        return features

    def learn_person_voice(self, person_id: Hashable, pcm) -> FeatureVector:
        """Learn one example frame of a person's voice."""
        features = extract_features(pcm)
        self.voice_patterns.learn(person_id, features)
        return features

    def classify(
        self,
        frame: AudioFrame,
        labels: Sequence[SoundLabel],
        persons: Sequence[PersonLabel],
    ) -> DetectionResult:
        """
        Classify one frame against the supplied label and person snapshots.

        Never raises: any failure is logged and reported as a zero-confidence
        NoMatch without a cluster.

        Args:
            frame: Input audio frame
            labels: Label records, in tie-break order
            persons: Person records, in tie-break order

        Returns:
            DetectionResult with frequency and duration estimates
        """
        frequency: Optional[float] = None
        duration_ms: Optional[int] = None
        try:
            frequency = estimate_frequency(frame, frame.sample_rate)
            duration_ms = estimate_duration_ms(frame, frame.sample_rate)
            features = extract_features(frame)
            # Every frame feeds the backend so its windows are contiguous audio
            prediction = self._observe_backend(frame)

            person_match = self.voice_patterns.match(
                features, [(person.id, self.person_threshold) for person in persons]
            )
            if person_match is not None:
                person_id, score = person_match
                person = next(p for p in persons if p.id == person_id)
                return DetectionResult(
                    kind=MatchKind.PERSON_MATCH,
                    label=person.name,
                    person_id=person.id,
                    confidence=score,
                    frequency=frequency,
                    duration_ms=duration_ms,
                )

            label_match = self.sound_patterns.match(
                features, [(label.name, label.confidence_threshold) for label in labels]
            )
            if label_match is not None:
                label_name, score = label_match
                return DetectionResult(
                    kind=MatchKind.LABEL_MATCH,
                    label=label_name,
                    confidence=score,
                    frequency=frequency,
                    duration_ms=duration_ms,
                )

            backend_result = self._backend_label(prediction, labels)
            if backend_result is not None:
                label_name, score = backend_result
                return DetectionResult(
                    kind=MatchKind.LABEL_MATCH,
                    label=label_name,
                    confidence=score,
                    frequency=frequency,
                    duration_ms=duration_ms,
                    source="acoustic_backend",
                )

            cluster_id = self.clusters.assign(features, frequency, duration_ms)
            return DetectionResult(
                kind=MatchKind.NO_MATCH,
                confidence=0.0,
                cluster_id=cluster_id,
                frequency=frequency,
                duration_ms=duration_ms,
            )

        except Exception as e:
            logger.error(f"Error classifying frame for stream {frame.stream_id}: {e}", exc_info=True)
            return DetectionResult(frequency=frequency, duration_ms=duration_ms)

    def _observe_backend(self, frame: AudioFrame):
        if not self.acoustic_backend.available:
            return None
        try:
            return self.acoustic_backend.classify(to_float_samples(frame), frame.sample_rate)
        except Exception as e:
            logger.error(f"Acoustic backend failed for stream {frame.stream_id}: {e}")
            return None

    def _backend_label(self, prediction, labels: Sequence[SoundLabel]):
        if prediction is None:
            return None

        category, score = prediction
        if score <= self.acoustic_floor or is_speech_category(category):
            logger.debug(f"Rejected backend category {category} (score: {score:.2f})")
            return None

        for label in labels:
            if label.name.lower() == category.lower():
                return label.name, min(1.0, max(0.0, score))
        logger.debug(f"Backend category {category} has no matching label")
        return None
