"""Audio buffering and queue management per stream."""
import asyncio
import time
from typing import Dict, Optional
from soundman.audio.models import AudioFrame, StreamState
from soundman.core.config import settings
from soundman.core.logging import logger


class StreamBuffer:
    """Bounded frame queue between the capture side and the detection worker for one stream."""

    def __init__(self, stream_id: str, max_frames: Optional[int] = None):
        """
        Initialize buffer for a stream.

        Args:
            stream_id: Unique identifier for the stream
            max_frames: Maximum number of queued frames (defaults to config value)
        """
        self.stream_id = stream_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_frames or settings.stream_buffer_frames)
        self.dropped_frames = 0
        self.state = StreamState(
            stream_id=stream_id,
            created_at=time.time(),
            last_frame_time=0.0,
            frame_count=0
        )

    async def add_frame(self, frame: AudioFrame) -> None:
        """Queue a frame, dropping the oldest queued frame when full."""
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(f"Buffer full for stream {self.stream_id}, dropping oldest frame")
            self.dropped_frames += 1
            try:
                self.queue.get_nowait()
                self.queue.put_nowait(frame)
            except (asyncio.QueueEmpty, asyncio.QueueFull):
                logger.debug(f"Could not requeue frame for stream {self.stream_id}")
        self.state.frame_count += 1
        self.state.last_frame_time = frame.timestamp

    async def get_frame(self, timeout: Optional[float] = None) -> Optional[AudioFrame]:
        """Get the next frame from the buffer (None on timeout)."""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None


class StreamBufferManager:
    """Manages buffers for all active streams."""

    def __init__(self):
        """Initialize the buffer manager."""
        self._buffers: Dict[str, StreamBuffer] = {}
        self._lock = asyncio.Lock()

    async def get_or_create_buffer(self, stream_id: str) -> StreamBuffer:
        """Get existing buffer or create a new one for a stream."""
        async with self._lock:
            if stream_id not in self._buffers:
                self._buffers[stream_id] = StreamBuffer(stream_id)
                logger.info(f"Created buffer for stream {stream_id}")
            return self._buffers[stream_id]

    async def remove_buffer(self, stream_id: str) -> None:
        """Remove buffer for a stream (on disconnect)."""
        async with self._lock:
            if stream_id in self._buffers:
                del self._buffers[stream_id]
                logger.info(f"Removed buffer for stream {stream_id}")

    async def get_buffer(self, stream_id: str) -> Optional[StreamBuffer]:
        """Get buffer for a stream if it exists."""
        async with self._lock:
            return self._buffers.get(stream_id)

    async def get_stream_count(self) -> int:
        """Get number of active streams."""
        async with self._lock:
            return len(self._buffers)
