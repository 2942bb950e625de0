"""Online clustering of sounds that match no known label or person."""
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set
import numpy as np
from soundman.audio.models import FeatureVector
from soundman.audio.ml.features import extract_features
from soundman.audio.ml.similarity import similarity
from soundman.audio.patterns import PatternStore
from soundman.core.config import settings
from soundman.core.logging import logger

SIMILARITY_STRATEGY = "similarity"
SUMMARY_STRATEGY = "summary"


@dataclass
class UnknownCluster:
    """A provisional group of acoustically similar unlabeled frames."""
    cluster_id: str
    samples: Deque[FeatureVector]
    frequency: float = 0.0  # Representative frequency (Hz) of the seed frame
    duration_ms: int = 0  # Representative duration of the seed frame
    frame_count: int = 1
    created_at: float = field(default_factory=time.time)

    def add(self, vector: FeatureVector) -> None:
        self.samples.append(vector)
        self.frame_count += 1

    def to_dict(self) -> dict:
        return {
            "cluster_id": self.cluster_id,
            "sample_count": len(self.samples),
            "frame_count": self.frame_count,
            "frequency": round(float(self.frequency), 1),
            "duration_ms": self.duration_ms,
            "created_at": self.created_at,
        }


class ClusterManager:
    """
    Assigns unmatched feature vectors to unknown clusters.

    Two strategies are supported, selected per deployment:

    - "similarity": join the best cluster whose buffered samples score above
      the similarity threshold, else start a new cluster.
    - "summary": join the first cluster whose representative frequency and
      duration are within the relative tolerances, else start a new cluster.

    Both strategies buffer the most recent `capacity` vectors per cluster so a
    cluster can be promoted into a label's pattern collection. Retired cluster
    ids are never issued again.
    """

    def __init__(
        self,
        strategy: Optional[str] = None,
        capacity: Optional[int] = None,
        similarity_threshold: Optional[float] = None,
        frequency_tolerance: Optional[float] = None,
        duration_tolerance: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.strategy = strategy or settings.cluster_strategy
        if self.strategy not in (SIMILARITY_STRATEGY, SUMMARY_STRATEGY):
            raise ValueError(f"Unknown cluster strategy: {self.strategy}")
        self.capacity = capacity if capacity is not None else settings.cluster_capacity
        self.similarity_threshold = (
            similarity_threshold if similarity_threshold is not None
            else settings.cluster_similarity_threshold
        )
        self.frequency_tolerance = (
            frequency_tolerance if frequency_tolerance is not None
            else settings.summary_frequency_tolerance
        )
        self.duration_tolerance = (
            duration_tolerance if duration_tolerance is not None
            else settings.summary_duration_tolerance
        )
        self._clock = clock
        self._clusters: Dict[str, UnknownCluster] = {}
        self._issued_ids: Set[str] = set()
        self._created = 0

    def __len__(self) -> int:
        return len(self._clusters)

    def __contains__(self, cluster_id: str) -> bool:
        return cluster_id in self._clusters

    def get(self, cluster_id: str) -> Optional[UnknownCluster]:
        return self._clusters.get(cluster_id)

    def clusters(self) -> List[UnknownCluster]:
        """Live clusters ordered by representative frequency, then duration."""
        return sorted(self._clusters.values(), key=lambda c: (c.frequency, c.duration_ms))

    def clear(self) -> None:
        self._clusters.clear()

    def assign(
        self,
        vector: FeatureVector,
        frequency: Optional[float] = None,
        duration_ms: Optional[int] = None,
    ) -> str:
        """
        Place a vector in an existing cluster or create a new one.

        Args:
            vector: Feature vector of the unmatched frame
            frequency: Frequency estimate in Hz (required by the summary strategy)
            duration_ms: Duration estimate in ms (required by the summary strategy)

        Returns:
            Cluster id
        """
        vector = np.array(vector, dtype=np.float64, copy=True)
        frequency = float(frequency or 0.0)
        duration_ms = int(duration_ms or 0)

        if self.strategy == SIMILARITY_STRATEGY:
            cluster = self._find_by_similarity(vector)
        else:
            cluster = self._find_by_summary(frequency, duration_ms)

        if cluster is not None:
            cluster.add(vector)
            return cluster.cluster_id

        cluster = UnknownCluster(
            cluster_id=self._new_cluster_id(frequency, duration_ms),
            samples=deque([vector], maxlen=self.capacity),
            frequency=frequency,
            duration_ms=duration_ms,
            created_at=self._clock(),
        )
        self._clusters[cluster.cluster_id] = cluster
        logger.debug(f"Created unknown cluster {cluster.cluster_id}")
        return cluster.cluster_id

    def _find_by_similarity(self, vector: FeatureVector) -> Optional[UnknownCluster]:
        best: Optional[UnknownCluster] = None
        best_score = self.similarity_threshold
        for cluster in self._clusters.values():
            if not cluster.samples:
                continue
            score = similarity(vector, cluster.samples)
            if score > best_score:
                best, best_score = cluster, score
        return best

    def _find_by_summary(self, frequency: float, duration_ms: int) -> Optional[UnknownCluster]:
        for cluster in self._clusters.values():
            frequency_diff = abs(cluster.frequency - frequency) / max(frequency, 1.0)
            duration_diff = abs(cluster.duration_ms - duration_ms) / float(max(duration_ms, 1))
            if frequency_diff < self.frequency_tolerance and duration_diff < self.duration_tolerance:
                return cluster
        return None

    def _new_cluster_id(self, frequency: float, duration_ms: int) -> str:
        self._created += 1
        epoch_ms = int(self._clock() * 1000)
        if self.strategy == SIMILARITY_STRATEGY:
            base = f"cluster_{self._created}_{epoch_ms}"
        else:
            base = f"cluster_{epoch_ms}_{int(frequency)}_{duration_ms}"

        cluster_id = base
        suffix = 1
        while cluster_id in self._issued_ids:
            suffix += 1
            cluster_id = f"{base}_{suffix}"
        self._issued_ids.add(cluster_id)
        return cluster_id

    def promote(
        self,
        cluster_id: str,
        label_name: str,
        pattern_store: PatternStore,
        historical_frames: Optional[Iterable[bytes]] = None,
    ) -> int:
        """
        Merge an unknown cluster into a label's pattern collection and retire it.

        Features of `historical_frames` are learned when given, otherwise the
        cluster's buffered samples are. Promoting an unknown or already
        retired cluster is a no-op.

        Args:
            cluster_id: Cluster to retire
            label_name: Label that receives the patterns
            pattern_store: Store to learn into
            historical_frames: Optional raw PCM frames previously assigned to the cluster

        Returns:
            Number of vectors migrated
        """
        cluster = self._clusters.get(cluster_id)
        if cluster is None:
            logger.debug(f"Cluster {cluster_id} already retired, nothing to promote")
            return 0

        if historical_frames is not None:
            vectors = [extract_features(frame) for frame in historical_frames]
        else:
            vectors = list(cluster.samples)

        migrated = pattern_store.learn_many(label_name, vectors)
        del self._clusters[cluster_id]
        logger.info(f"Promoted cluster {cluster_id} into label '{label_name}' ({migrated} patterns)")
        return migrated
