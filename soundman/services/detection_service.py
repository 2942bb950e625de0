"""Async glue between the I/O layer and the detection session."""
import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Set
from soundman.audio.buffers import StreamBufferManager
from soundman.audio.ml.backends import (
    AcousticBackend,
    SpeechBackend,
    UnavailableAcousticBackend,
    UnavailableSpeechBackend,
    load_acoustic_backend,
)
from soundman.audio.models import AudioFrame, LabelingRequest, MatchKind, PersonLabel, SoundLabel
from soundman.services.detection_session import DetectionSession, FrameOutcome
from soundman.services.label_registry import LabelRegistry
from soundman.core.config import settings
from soundman.core.logging import logger


class DetectionService:
    """
    Runs one detection session behind an asyncio-friendly interface.

    Frames and labeling requests are executed on a single worker thread, so
    they reach the session strictly in submission order and never block the
    event loop. Speech recognition runs as a background task and its result
    is attached to the detection later; a frame never waits for it.
    """

    def __init__(
        self,
        session: Optional[DetectionSession] = None,
        registry: Optional[LabelRegistry] = None,
        speech_backend: Optional[SpeechBackend] = None,
    ):
        self.session = session or DetectionSession(active=False)
        self.registry = registry or LabelRegistry()
        self.speech_backend = speech_backend or UnavailableSpeechBackend()
        self.buffers = StreamBufferManager()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="detection")
        self._background_tasks: Set[asyncio.Task] = set()

    def configure_acoustic_backend(self, backend: Optional[AcousticBackend] = None) -> AcousticBackend:
        """Select the acoustic backend once, at startup."""
        if backend is None:
            if settings.enable_acoustic_backend:
                backend = load_acoustic_backend()
            else:
                backend = UnavailableAcousticBackend("disabled")
        self.session.classifier.acoustic_backend = backend
        if backend.available:
            logger.info(f"Acoustic backend ready: {backend.name}")
        else:
            logger.info("Acoustic backend unavailable, using learned patterns only")
        return backend

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def process_frame(self, frame: AudioFrame) -> FrameOutcome:
        labels = await self.registry.list_labels()
        persons = await self.registry.list_persons()
        outcome = await self._run(self.session.process_frame, frame, labels, persons)

        if outcome.result.kind == MatchKind.PERSON_MATCH and outcome.event is not None:
            person = next((p for p in persons if p.id == outcome.result.person_id), None)
            if person is not None and self.speech_backend.available:
                task = asyncio.create_task(self._transcribe(outcome.event.detection_id, outcome.event.audio, person))
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        return outcome

    async def _transcribe(self, detection_id: int, audio: bytes, person: PersonLabel) -> None:
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, self.speech_backend.recognize, audio)
        if text:
            await self._run(self.session.record_transcription, detection_id, person, text)

    async def label_unknown_sound(self, request: LabelingRequest) -> Optional[SoundLabel]:
        labels = await self.registry.list_labels()
        label = await self._run(self.session.label_unknown_sound, request, labels)
        if label is None:
            return None
        return await self.registry.add_label(label)

    async def label_person(self, person_name: str, detection_id: Optional[int] = None) -> Optional[PersonLabel]:
        person_id = await self.registry.allocate_person_id()
        person = await self._run(self.session.label_person, person_id, person_name, detection_id)
        if person is None:
            return None
        return await self.registry.add_person(person)

    async def create_person(self, name: str, **fields) -> PersonLabel:
        person_id = await self.registry.allocate_person_id()
        return await self.registry.add_person(PersonLabel(id=person_id, name=name, **fields))

    async def learn_sound_from_detection(self, label_name: str, detection_id: int) -> bool:
        return await self._run(self.session.learn_from_detection, label_name, detection_id)

    async def learn_voice_from_detection(self, person_id: int, detection_id: int) -> bool:
        return await self._run(self.session.learn_from_detection, person_id, detection_id, True)

    async def start_detection(self) -> None:
        await self._run(self.session.start)

    async def stop_detection(self) -> None:
        await self._run(self.session.stop)

    async def set_live_mic(self, enabled: bool) -> None:
        await self._run(self.session.set_live_mic, enabled)

    async def status(self) -> dict:
        return {
            "is_detecting": self.session.is_detecting,
            "live_mic_enabled": self.session.live_mic_enabled,
            "unknown_count": self.session.unknown_count,
            "cluster_count": len(self.session.clusters),
            "cluster_strategy": self.session.clusters.strategy,
            "active_streams": await self.buffers.get_stream_count(),
            "acoustic_backend": self.session.classifier.acoustic_backend.describe(),
            "speech_backend": self.speech_backend.describe(),
        }

    def shutdown(self) -> None:
        for task in list(self._background_tasks):
            task.cancel()
        self._executor.shutdown(wait=True)
