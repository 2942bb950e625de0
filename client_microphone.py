#!/usr/bin/env python3
"""
Microphone client for the SoundMan backend.

Captures audio from the microphone, streams it to the WebSocket endpoint,
prints each classification and plays the transformed audio back in real time.
"""
import asyncio
import websockets
import sounddevice as sd
import numpy as np
import json
import sys
import wave
import logging
from typing import Optional

# Setup basic logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# Audio configuration (must match server settings)
SAMPLE_RATE = 44100  # Hz
CHANNELS = 1  # Mono
CHUNK_SIZE = 1024  # samples per frame

# Server configuration
SERVER_URL = "ws://localhost:8000/ws/audio"

# Global audio queues (initialized in main)
audio_queue: Optional[asyncio.Queue] = None
playback_queue: Optional[asyncio.Queue] = None
event_loop: Optional[asyncio.AbstractEventLoop] = None


def audio_input_callback(indata, frames, time_info, status):
    """Callback for the input stream: convert to int16 and hand off to the event loop."""
    if status:
        print(f"Audio status: {status}", file=sys.stderr)
    if audio_queue is None or event_loop is None:
        return

    audio_int16 = (indata[:, 0] * np.iinfo(np.int16).max).astype(np.int16)
    event_loop.call_soon_threadsafe(_enqueue, audio_queue, audio_int16.tobytes())


def audio_output_callback(outdata, frames, time_info, status):
    """Callback for the output stream: play the next transformed frame or silence."""
    if status:
        print(f"Audio output status: {status}", file=sys.stderr)
    try:
        audio_array = playback_queue.get_nowait() if playback_queue else None
    except asyncio.QueueEmpty:
        audio_array = None

    if audio_array is None:
        outdata.fill(0)
        return

    samples = audio_array[:frames].astype(np.float32) / np.iinfo(np.int16).max
    outdata[:, 0] = np.pad(samples, (0, frames - len(samples)), mode='constant')


def _enqueue(queue: asyncio.Queue, item) -> None:
    try:
        queue.put_nowait(item)
    except asyncio.QueueFull:
        pass  # Drop frame rather than build latency


async def send_audio(websocket):
    """Send microphone frames to the server."""
    while True:
        await websocket.send(await audio_queue.get())


async def receive_messages(websocket, save_path: Optional[str] = None):
    """
    Receive classifications and transformed audio.

    Protocol: for every frame the server sends a JSON result (text) followed
    by the transformed audio (binary) of the same length as the input.
    """
    wav_file = None
    if save_path:
        wav_file = wave.open(save_path, 'wb')
        wav_file.setnchannels(CHANNELS)
        wav_file.setsampwidth(2)  # 16-bit
        wav_file.setframerate(SAMPLE_RATE)
        print(f"Saving transformed audio to: {save_path}")

    frame_count = 0
    try:
        while True:
            message = await websocket.recv()
            if isinstance(message, str):
                data = json.loads(message)
                name = data.get("label") or data.get("cluster_id") or "-"
                print(
                    f"\r{data['kind']:12s} | {name[:32]:32s} | conf={data['confidence']:.2f} "
                    f"| {data.get('frequency') or 0:7.1f} Hz | frames={frame_count}",
                    end="", flush=True,
                )
                continue

            frame_count += 1
            _enqueue(playback_queue, np.frombuffer(message, dtype=np.int16))
            if wav_file:
                wav_file.writeframes(message)
    except websockets.exceptions.ConnectionClosed:
        print("\nConnection closed by server")
    finally:
        if wav_file:
            wav_file.close()
        print(f"\nSummary: received {frame_count} transformed frames")


async def main():
    """Run the microphone client."""
    global audio_queue, playback_queue, event_loop

    event_loop = asyncio.get_running_loop()
    audio_queue = asyncio.Queue(maxsize=100)
    playback_queue = asyncio.Queue(maxsize=200)

    print("=" * 70)
    print("SoundMan Backend - Microphone Client")
    print("=" * 70)
    print(f"Sample Rate: {SAMPLE_RATE} Hz, Frame: {CHUNK_SIZE} samples")
    print(f"Server: {SERVER_URL}")
    print("Start detection first: POST /detection/start")
    print("Press Ctrl+C to stop\n")

    input_stream = sd.InputStream(
        samplerate=SAMPLE_RATE,
        channels=CHANNELS,
        dtype=np.float32,
        blocksize=CHUNK_SIZE,
        callback=audio_input_callback
    )
    output_stream = sd.OutputStream(
        samplerate=SAMPLE_RATE,
        channels=CHANNELS,
        dtype=np.float32,
        blocksize=CHUNK_SIZE,
        callback=audio_output_callback
    )

    try:
        input_stream.start()
        output_stream.start()
        async with websockets.connect(SERVER_URL, ping_interval=None) as websocket:
            print("Connected to server ✓\n")
            send_task = asyncio.create_task(send_audio(websocket))
            receive_task = asyncio.create_task(receive_messages(websocket, save_path="transformed_audio.wav"))
            try:
                await asyncio.gather(send_task, receive_task)
            finally:
                send_task.cancel()
                receive_task.cancel()
                await asyncio.gather(send_task, receive_task, return_exceptions=True)
    finally:
        input_stream.stop()
        input_stream.close()
        output_stream.stop()
        output_stream.close()
        print("\nAudio streams stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n\nExiting...")
