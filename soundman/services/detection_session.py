"""Detection session: owned classification state, detection history and the labeling flow."""
import threading
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Deque, List, Optional, Sequence
from soundman.audio.classifier import SoundClassifier
from soundman.audio.clusters import ClusterManager
from soundman.audio.ml.backends import AcousticBackend
from soundman.audio.models import (
    AudioFrame,
    DetectionEvent,
    DetectionResult,
    LabelingRequest,
    MatchKind,
    PersonLabel,
    SoundLabel,
)
from soundman.audio.patterns import PatternStore
from soundman.audio.dsp.output import last_blend_sample
from soundman.audio.pipeline import process_audio_frame, resolve_transform_settings
from soundman.audio.streaming import frame_to_bytes
from soundman.core.config import settings
from soundman.core.logging import logger


@dataclass
class FrameOutcome:
    """Result of processing one frame through a session."""
    result: DetectionResult
    frame: AudioFrame  # Transformed frame for playback
    event: Optional[DetectionEvent] = None


class DetectionSession:
    """
    Owns the pattern stores, cluster table and detection history of one session.

    Frame processing and every learning/labeling request take the same lock,
    so a frame's mutations (pattern match, cluster growth, counters, history)
    are applied as a unit and arrival order is preserved. Label and person
    records are passed in per call and are not retained.
    """

    def __init__(
        self,
        acoustic_backend: Optional[AcousticBackend] = None,
        cluster_strategy: Optional[str] = None,
        history_size: Optional[int] = None,
        active: bool = True,
        reverse_tone_mode: Optional[str] = None,
    ):
        self.sound_patterns = PatternStore()
        self.voice_patterns = PatternStore()
        self.clusters = ClusterManager(strategy=cluster_strategy)
        self.classifier = SoundClassifier(
            sound_patterns=self.sound_patterns,
            voice_patterns=self.voice_patterns,
            clusters=self.clusters,
            acoustic_backend=acoustic_backend,
        )
        self.history: Deque[DetectionEvent] = deque(
            maxlen=history_size if history_size is not None else settings.history_size
        )
        self.unknown_count = 0
        self.is_detecting = active
        self.live_mic_enabled = False
        self._next_detection_id = 1
        self.reverse_tone_mode = reverse_tone_mode
        self._previous_sample: Optional[int] = None
        self._lock = threading.RLock()

    # Lifecycle

    def start(self) -> None:
        with self._lock:
            self.is_detecting = True
            logger.info("Detection started")

    def stop(self) -> None:
        """Stop detection. Takes the session lock, so it never splits a frame."""
        with self._lock:
            self.is_detecting = False
            self._previous_sample = None
            logger.info("Detection stopped")

    def set_live_mic(self, enabled: bool) -> None:
        with self._lock:
            self.live_mic_enabled = enabled
            logger.info(f"Live mic pass-through {'enabled' if enabled else 'disabled'}")

    def reset(self) -> None:
        """Drop all learned patterns, clusters and history."""
        with self._lock:
            self.sound_patterns.clear()
            self.voice_patterns.clear()
            self.clusters.clear()
            self.history.clear()
            self.unknown_count = 0
            self._previous_sample = None

    # Per-frame path

    def process_frame(
        self,
        frame: AudioFrame,
        labels: Sequence[SoundLabel] = (),
        persons: Sequence[PersonLabel] = (),
    ) -> FrameOutcome:
        """
        Classify one frame, apply its side effects and transform it for playback.

        Side effects by outcome:
        - person match: person detection count + 1
        - label match: label detection count + 1
        - no match: unknown count + 1 (the frame joined a cluster)

        Args:
            frame: Input audio frame
            labels: Current label records (mutated only to bump detection_count)
            persons: Current person records (mutated only to bump detection_count)

        Returns:
            FrameOutcome with the result, the output frame and the history event
        """
        with self._lock:
            if not self.is_detecting or self.live_mic_enabled:
                return FrameOutcome(result=DetectionResult(), frame=frame)

            start_time = time.time()
            result = self.classifier.classify(frame, labels, persons)

            if result.kind == MatchKind.PERSON_MATCH:
                person = next((p for p in persons if p.id == result.person_id), None)
                if person is not None:
                    person.detection_count += 1
            elif result.kind == MatchKind.LABEL_MATCH:
                label = next((l for l in labels if l.name == result.label), None)
                if label is not None:
                    label.detection_count += 1
            elif result.cluster_id is not None:
                self.unknown_count += 1

            output = process_audio_frame(
                frame,
                result,
                labels,
                persons,
                previous_sample=self._previous_sample,
                reverse_tone_mode=self.reverse_tone_mode,
            )
            # Blend reverse tone reads the previous sample after volume scaling
            last_sample = last_blend_sample(
                frame.pcm_data, resolve_transform_settings(result, labels, persons)
            )
            if last_sample is not None:
                self._previous_sample = last_sample

            event = DetectionEvent(
                detection_id=self._next_detection_id,
                timestamp=frame.timestamp,
                confidence=result.confidence,
                audio=frame_to_bytes(frame),
                label=result.label,
                person_id=result.person_id,
                cluster_id=result.cluster_id,
                frequency=result.frequency,
                duration_ms=result.duration_ms,
                is_person=result.is_person,
            )
            self._next_detection_id += 1
            self.history.append(event)

            logger.debug(
                f"Frame {event.detection_id}: {result.kind.value} label={result.label} "
                f"cluster={result.cluster_id} confidence={result.confidence:.2f} "
                f"({(time.time() - start_time) * 1000:.2f}ms)"
            )
            return FrameOutcome(result=result, frame=output, event=event)

    # Learning

    def learn_sound(self, label_name: str, pcm) -> None:
        with self._lock:
            self.classifier.learn_sound(label_name, pcm)

    def learn_person_voice(self, person_id: int, pcm) -> None:
        with self._lock:
            self.classifier.learn_person_voice(person_id, pcm)

    def learn_from_detection(self, key, detection_id: int, voice: bool = False) -> bool:
        """
        Learn a past detection's audio under a label name or, with voice=True, a person id.

        Returns:
            False if the detection is no longer in history
        """
        with self._lock:
            event = self._find_event(detection_id)
            if event is None:
                return False
            if voice:
                self.classifier.learn_person_voice(key, event.audio)
            else:
                self.classifier.learn_sound(key, event.audio)
            return True

    def label_unknown_sound(
        self,
        request: LabelingRequest,
        labels: Sequence[SoundLabel] = (),
    ) -> Optional[SoundLabel]:
        """
        Name an unknown detection and promote its cluster into a label.

        The target is `request.detection_id`, or the most recent unknown
        detection. Its cluster's recent frames are learned under the label,
        the cluster is retired and every history event of that cluster is
        relabeled.

        Args:
            request: Labeling request
            labels: Existing label records (used for `use_existing_label` and name reuse)

        Returns:
            The label the sound was assigned to (a new record when none existed),
            or None if there was nothing to label
        """
        with self._lock:
            event = self._resolve_unknown_event(request.detection_id)
            if event is None:
                logger.info("No unknown detection to label")
                return None

            label = self._resolve_label(request, labels)
            if label is None:
                return None

            cluster_id = event.cluster_id
            cluster_frames = [e.audio for e in self.history if e.cluster_id == cluster_id]
            cluster_frames = cluster_frames[-self.clusters.capacity:]

            migrated = self.clusters.promote(
                cluster_id,
                label.name,
                self.sound_patterns,
                historical_frames=cluster_frames or None,
            )
            if migrated == 0:
                # Cluster already retired: learn from the detection itself
                self.classifier.learn_sound(label.name, event.audio)

            self._relabel_cluster_events(cluster_id, label.name)
            self.unknown_count = sum(1 for e in self.history if e.is_unknown)
            logger.info(f"Labeled cluster {cluster_id} as '{label.name}' ({migrated} patterns migrated)")
            return label

    def label_person(
        self,
        person_id: int,
        person_name: str,
        detection_id: Optional[int] = None,
    ) -> Optional[PersonLabel]:
        """
        Create a person from a detection and learn their voice from its audio.

        Args:
            person_id: Identifier allocated by the record owner
            person_name: Display name
            detection_id: Detection to learn from (defaults to the most recent)

        Returns:
            New PersonLabel, or None if there is no detection
        """
        with self._lock:
            event = self._find_event(detection_id) if detection_id is not None else (
                self.history[-1] if self.history else None
            )
            if event is None:
                logger.info("No detection to label as a person")
                return None

            person = PersonLabel(id=person_id, name=person_name, detection_count=1)
            self.classifier.learn_person_voice(person_id, event.audio)
            self._replace_event(event, replace(
                event, is_person=True, person_id=person_id, label=person_name, cluster_id=None
            ))
            self.unknown_count = sum(1 for e in self.history if e.is_unknown)
            return person

    def record_transcription(self, detection_id: int, person: PersonLabel, text: str) -> None:
        """Attach recognized speech to a person detection and the person's transcript."""
        with self._lock:
            person.append_transcription(text)
            event = self._find_event(detection_id)
            if event is not None:
                self._replace_event(event, replace(event, transcription=text))

    # Queries

    def unknown_clusters(self) -> List[dict]:
        with self._lock:
            return [cluster.to_dict() for cluster in self.clusters.clusters()]

    def recent_events(self, limit: int = 50) -> List[DetectionEvent]:
        with self._lock:
            return list(self.history)[-limit:][::-1]

    def find_event(self, detection_id: int) -> Optional[DetectionEvent]:
        with self._lock:
            return self._find_event(detection_id)

    # Internals (caller holds the lock)

    def _find_event(self, detection_id: int) -> Optional[DetectionEvent]:
        for event in reversed(self.history):
            if event.detection_id == detection_id:
                return event
        return None

    def _resolve_unknown_event(self, detection_id: Optional[int]) -> Optional[DetectionEvent]:
        if detection_id is not None:
            event = self._find_event(detection_id)
            return event if event is not None and event.is_unknown else None
        for event in reversed(self.history):
            if event.is_unknown:
                return event
        return None

    def _resolve_label(self, request: LabelingRequest, labels: Sequence[SoundLabel]) -> Optional[SoundLabel]:
        if request.use_existing_label and request.existing_label_name:
            label = next((l for l in labels if l.name == request.existing_label_name), None)
            if label is None:
                logger.warning(f"Existing label '{request.existing_label_name}' not found")
            return label

        label = next((l for l in labels if l.name == request.label_name), None)
        if label is not None:
            return label
        return SoundLabel(
            name=request.label_name,
            confidence_threshold=settings.default_label_threshold,
            volume_multiplier=1.0,
            detection_count=1,
        )

    def _relabel_cluster_events(self, cluster_id: str, label_name: str) -> None:
        self.history = deque(
            (replace(e, label=label_name, cluster_id=None) if e.cluster_id == cluster_id else e
             for e in self.history),
            maxlen=self.history.maxlen,
        )

    def _replace_event(self, old: DetectionEvent, new: DetectionEvent) -> None:
        self.history = deque(
            (new if e.detection_id == old.detection_id else e for e in self.history),
            maxlen=self.history.maxlen,
        )
