"""WebSocket endpoint for audio ingestion, classification results and transformed audio output."""
import asyncio
import uuid
from fastapi import WebSocket, WebSocketDisconnect
from soundman.audio.buffers import StreamBuffer
from soundman.audio.ingestion import decode_audio_data
from soundman.audio.streaming import frame_to_bytes
from soundman.services.detection_service import DetectionService
from soundman.core.logging import logger


async def receive_frames(stream_id: str, websocket: WebSocket, buffer: StreamBuffer) -> None:
    """
    Read binary PCM frames from the socket into the stream buffer.

    Args:
        stream_id: Unique identifier for this stream
        websocket: WebSocket connection
        buffer: Stream buffer feeding the detection loop
    """
    while True:
        data = await websocket.receive_bytes()
        frame = decode_audio_data(data, stream_id)
        if frame is not None:
            await buffer.add_frame(frame)


async def process_stream(stream_id: str, websocket: WebSocket, service: DetectionService) -> None:
    """
    Process audio stream: queue incoming frames, classify them in order, send results.

    Protocol per processed frame: one JSON message with the classification,
    then the transformed audio as binary (same byte length as the input).

    Args:
        stream_id: Unique identifier for this stream
        websocket: WebSocket connection
        service: Detection service owning the session
    """
    buffer = await service.buffers.get_or_create_buffer(stream_id)
    receiver = asyncio.create_task(receive_frames(stream_id, websocket, buffer))

    try:
        while True:
            frame = await buffer.get_frame(timeout=0.1)
            if frame is None:
                if receiver.done():
                    break
                continue

            outcome = await service.process_frame(frame)
            buffer.state.update_result(outcome.result)

            response = {
                "stream_id": stream_id,
                "timestamp": frame.timestamp,
                "detection_id": outcome.event.detection_id if outcome.event else None,
                **outcome.result.to_dict(),
            }
            try:
                await websocket.send_json(response)
                await websocket.send_bytes(frame_to_bytes(outcome.frame))
            except Exception as e:
                logger.error(f"Error sending response for stream {stream_id}: {e}")
                break

    finally:
        if not receiver.done():
            receiver.cancel()
        try:
            await receiver
        except (asyncio.CancelledError, WebSocketDisconnect):
            logger.info(f"WebSocket disconnected for stream {stream_id}")
        except Exception as e:
            logger.error(f"Error receiving stream {stream_id}: {e}")
        await service.buffers.remove_buffer(stream_id)
        logger.info(f"Cleaned up stream {stream_id}")


async def websocket_audio_endpoint(websocket: WebSocket, service: DetectionService) -> None:
    """
    WebSocket endpoint handler for /ws/audio.

    Accepts binary PCM frames and answers each with a JSON result and the transformed frame.
    """
    await websocket.accept()

    stream_id = f"ws-{uuid.uuid4().hex[:8]}"
    logger.info(f"New WebSocket connection: {stream_id}")

    try:
        await process_stream(stream_id, websocket, service)
    except Exception as e:
        logger.error(f"WebSocket error for {stream_id}: {e}")
    finally:
        try:
            await websocket.close()
        except Exception as e:
            # Already closed by the client
            logger.debug(f"WebSocket {stream_id} already closed: {e}")
