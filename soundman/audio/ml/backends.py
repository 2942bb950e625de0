"""Optional acoustic classifier and speech-to-text backends.

Both collaborators are negotiated once at startup. The classifier always asks
`backend.available` before use, so a missing model or runtime only changes
capability, never the per-frame contract.
"""
import time
from typing import Callable, List, Optional, Sequence, Tuple
import numpy as np
from soundman.core.config import settings
from soundman.core.logging import logger

BACKEND_SAMPLE_RATE = 16000
BACKEND_WINDOW_SECONDS = 0.96
BACKEND_OVERLAP_SAMPLES = 1600  # 0.1 s kept between classification windows

# Categories the acoustic model reports for human speech; voices are left to person matching
SPEECH_KEYWORDS = (
    "speech", "human", "voice", "speaking", "talk", "conversation",
    "narration", "monologue", "whispering", "babbling",
)


def is_speech_category(category: str) -> bool:
    """True if a classifier category describes human speech."""
    lowered = category.lower()
    return any(keyword in lowered for keyword in SPEECH_KEYWORDS)


def resample_linear(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Linear-interpolation resampling (adequate for coarse event classification)."""
    if source_rate == target_rate or samples.size == 0:
        return samples.astype(np.float32)
    target_length = max(1, int(round(samples.size * target_rate / float(source_rate))))
    source_positions = np.arange(samples.size, dtype=np.float64)
    target_positions = np.linspace(0, samples.size - 1, target_length)
    return np.interp(target_positions, source_positions, samples).astype(np.float32)


class AcousticBackend:
    """Pretrained audio-event classifier capability."""

    name = "unavailable"

    @property
    def available(self) -> bool:
        return False

    def classify(self, samples: np.ndarray, sample_rate: int) -> Optional[Tuple[str, float]]:
        """Return (category, score) for the buffered audio, or None."""
        return None

    def describe(self) -> dict:
        return {"name": self.name, "available": self.available}


class UnavailableAcousticBackend(AcousticBackend):
    """Backend used when no model or runtime is installed."""

    def __init__(self, reason: str = "not configured"):
        self.reason = reason

    def describe(self) -> dict:
        return {"name": self.name, "available": False, "reason": self.reason}


class OnnxAcousticBackend(AcousticBackend):
    """
    ONNX Runtime audio-event classifier.

    Every classified frame is resampled to 16 kHz and accumulated, including
    frames that a learned pattern already matched, so each window is
    contiguous audio. Once ~0.96 s is buffered the window is classified and
    all but a 0.1 s overlap discarded. Until then `classify` returns None, and
    a prediction only applies to the frame that completed its window.
    """

    name = "onnx"

    def __init__(self, session, categories: Sequence[str]):
        self._session = session
        self.categories: List[str] = list(categories)
        self._buffer = np.zeros(0, dtype=np.float32)
        self._window = int(BACKEND_SAMPLE_RATE * BACKEND_WINDOW_SECONDS)

    @property
    def available(self) -> bool:
        return self._session is not None and bool(self.categories)

    def classify(self, samples: np.ndarray, sample_rate: int) -> Optional[Tuple[str, float]]:
        resampled = resample_linear(np.asarray(samples, dtype=np.float32), sample_rate, BACKEND_SAMPLE_RATE)
        self._buffer = np.concatenate([self._buffer, resampled])[-2 * BACKEND_SAMPLE_RATE:]

        if self._buffer.size < self._window:
            return None

        window = self._buffer[:self._window].reshape(1, -1)
        self._buffer = self._buffer[self._window - BACKEND_OVERLAP_SAMPLES:]

        inference_start = time.time()
        model_input = self._session.get_inputs()[0]
        model_output = self._session.get_outputs()[0]
        outputs = self._session.run([model_output.name], {model_input.name: window})
        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)

        inference_time = (time.time() - inference_start) * 1000
        logger.debug(f"Acoustic inference: {inference_time:.2f}ms")

        if scores.size == 0:
            return None
        best = int(np.argmax(scores))
        if best >= len(self.categories):
            logger.warning(f"Model returned class index {best} beyond {len(self.categories)} categories")
            return None
        return self.categories[best], float(scores[best])


def _read_categories(labels_path: str) -> List[str]:
    with open(labels_path, "r", encoding="utf-8") as handle:
        return [line.strip() for line in handle if line.strip()]


def load_acoustic_backend(
    model_path: Optional[str] = None,
    labels_path: Optional[str] = None,
) -> AcousticBackend:
    """
    Load the ONNX acoustic classifier if possible.

    Every failure is reported once here and turned into an Unavailable
    backend; nothing is retried per frame.

    Args:
        model_path: Path to ONNX model file (if None, uses config value)
        labels_path: Path to a newline-separated category list (if None, uses config value)

    Returns:
        OnnxAcousticBackend or UnavailableAcousticBackend
    """
    if model_path is None:
        model_path = settings.acoustic_model_path
    if labels_path is None:
        labels_path = settings.acoustic_labels_path

    if not model_path or not labels_path:
        logger.debug("No acoustic model configured, acoustic backend disabled")
        return UnavailableAcousticBackend("not configured")

    try:
        import onnxruntime as ort

        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_BASIC
        sess_options.execution_mode = ort.ExecutionMode.ORT_SEQUENTIAL
        sess_options.inter_op_num_threads = 1
        sess_options.intra_op_num_threads = 1

        categories = _read_categories(labels_path)
        session = ort.InferenceSession(
            model_path,
            sess_options=sess_options,
            providers=["CPUExecutionProvider"]
        )

        logger.info("Acoustic classifier loaded successfully")
        logger.info(f"  Model path: {model_path}")
        logger.info(f"  Categories: {len(categories)}")
        return OnnxAcousticBackend(session, categories)

    except FileNotFoundError:
        logger.warning(f"Acoustic model or labels not found ({model_path}, {labels_path}), acoustic backend disabled")
        return UnavailableAcousticBackend("model not found")
    except ImportError:
        logger.warning("onnxruntime not installed, acoustic backend disabled. Install with: pip install onnxruntime")
        return UnavailableAcousticBackend("onnxruntime not installed")
    except Exception as e:
        logger.error(f"Error loading acoustic model: {e}", exc_info=True)
        return UnavailableAcousticBackend("load failed")


class SpeechBackend:
    """Speech-to-text capability."""

    name = "unavailable"

    @property
    def available(self) -> bool:
        return False

    def recognize(self, audio: bytes) -> Optional[str]:
        return None

    def describe(self) -> dict:
        return {"name": self.name, "available": self.available}


class UnavailableSpeechBackend(SpeechBackend):
    """No speech recognizer installed; persons are matched without transcription."""


class CallableSpeechBackend(SpeechBackend):
    """
    Wraps an externally provided recognizer.

    `recognizer` takes raw PCM bytes and returns recognized text (or None for
    no result yet). Errors are logged and reported as no text.
    """

    name = "callable"

    def __init__(self, recognizer: Callable[[bytes], Optional[str]]):
        self._recognizer = recognizer

    @property
    def available(self) -> bool:
        return self._recognizer is not None

    def recognize(self, audio: bytes) -> Optional[str]:
        try:
            text = self._recognizer(audio)
        except Exception as e:
            logger.error("Speech recognition failed, continuing without transcription")
            logger.debug(f"Speech recognition error details: {e}", exc_info=True)
            return None
        if text is None or not str(text).strip():
            return None
        return str(text).strip()
