"""Per-label and per-person rolling pattern collections."""
from collections import deque
from typing import Deque, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple
import numpy as np
from soundman.audio.models import FeatureVector
from soundman.audio.ml.similarity import similarity
from soundman.core.config import settings


class PatternStore:
    """
    Bounded FIFO buffers of feature vectors keyed by label name or person id.

    Once a key holds `capacity` vectors every new vector evicts the oldest,
    so matching follows recent acoustic conditions.
    """

    def __init__(self, capacity: Optional[int] = None):
        self.capacity = capacity if capacity is not None else settings.pattern_capacity
        if self.capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._patterns: Dict[Hashable, Deque[FeatureVector]] = {}

    def learn(self, key: Hashable, vector: FeatureVector) -> None:
        """Append a vector to the buffer for `key`, evicting the oldest beyond capacity."""
        buffer = self._patterns.get(key)
        if buffer is None:
            buffer = deque(maxlen=self.capacity)
            self._patterns[key] = buffer
        buffer.append(np.array(vector, dtype=np.float64, copy=True))

    def learn_many(self, key: Hashable, vectors: Iterable[FeatureVector]) -> int:
        """Learn several vectors in order. Returns how many were appended."""
        count = 0
        for vector in vectors:
            self.learn(key, vector)
            count += 1
        return count

    def patterns(self, key: Hashable) -> List[FeatureVector]:
        return list(self._patterns.get(key, ()))

    def keys(self) -> List[Hashable]:
        return list(self._patterns.keys())

    def forget(self, key: Hashable) -> None:
        self._patterns.pop(key, None)

    def clear(self) -> None:
        self._patterns.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._patterns

    def __len__(self) -> int:
        return len(self._patterns)

    def score(self, key: Hashable, vector: FeatureVector) -> float:
        """Similarity of `vector` against the buffer for `key` (0 if unknown)."""
        buffer = self._patterns.get(key)
        if not buffer:
            return 0.0
        return similarity(vector, buffer)

    def match(
        self,
        vector: FeatureVector,
        candidates: Sequence[Tuple[Hashable, float]],
    ) -> Optional[Tuple[Hashable, float]]:
        """
        Find the best candidate whose score exceeds its own threshold.

        Args:
            vector: Query feature vector
            candidates: Ordered (key, threshold) pairs; earlier entries win ties

        Returns:
            (key, score) of the best match, or None
        """
        best: Optional[Tuple[Hashable, float]] = None
        for key, threshold in candidates:
            buffer = self._patterns.get(key)
            if not buffer:
                continue
            score = similarity(vector, buffer)
            if score > threshold and (best is None or score > best[1]):
                best = (key, score)
        return best
