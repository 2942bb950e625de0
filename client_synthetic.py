#!/usr/bin/env python3
"""
Synthetic Test Client - Exercises the detect/label/recognize loop without a microphone.

Generates click frames (a repeated short transient) and sends them to the
WebSocket endpoint. The unknown clicks form a cluster; the client then names
that cluster over REST and sends more clicks, which should now come back as
label matches with the label's playback settings applied.
"""
import asyncio
import websockets
import requests
import numpy as np
import json
import sys
import logging

# Setup basic logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# Audio configuration (must match server settings)
SAMPLE_RATE = 44100  # Hz
CHUNK_SIZE = 1024  # samples per frame

# Server configuration
SERVER_URL = "http://localhost:8000"
WS_URL = "ws://localhost:8000/ws/audio"

# Test parameters
UNKNOWN_FRAMES = 30  # Clicks before labeling
LABELED_FRAMES = 10  # Clicks after labeling
LABEL_NAME = "door_slam"
PAUSE_MS = 25


def generate_click_frame(chunk_size, amplitude=12000, seed=7):
    """Generate a decaying noise burst followed by silence."""
    rng = np.random.default_rng(seed)
    frame = np.zeros(chunk_size, dtype=np.float64)
    burst = min(256, chunk_size)
    envelope = np.exp(-np.arange(burst) / 40.0)
    frame[:burst] = rng.uniform(-1.0, 1.0, burst) * envelope * amplitude
    return frame.astype(np.int16)


async def send_frames(websocket, count, phase):
    """Send `count` click frames and print each classification."""
    results = []
    for i in range(count):
        frame = generate_click_frame(CHUNK_SIZE, amplitude=10000 + 200 * i)
        await websocket.send(frame.tobytes())

        message = await asyncio.wait_for(websocket.recv(), timeout=2.0)
        data = json.loads(message)
        audio = await asyncio.wait_for(websocket.recv(), timeout=2.0)

        results.append(data)
        peak = int(np.abs(np.frombuffer(audio, dtype=np.int16)).max()) if audio else 0
        print(
            f"{phase:8s} #{i + 1:3d} | {data['kind']:12s} | label={str(data['label']):10s} "
            f"| cluster={str(data['cluster_id'])[:28]:28s} | conf={data['confidence']:.2f} | peak={peak}"
        )
        await asyncio.sleep(PAUSE_MS / 1000.0)
    return results


async def run():
    """Main test function."""
    print("=" * 70)
    print("SoundMan Backend - Synthetic Test Client")
    print("=" * 70)
    print(f"Sample Rate: {SAMPLE_RATE} Hz, Frame: {CHUNK_SIZE} samples")
    print(f"Server: {SERVER_URL}")
    print("=" * 70 + "\n")

    try:
        requests.post(f"{SERVER_URL}/detection/start", timeout=5).raise_for_status()
    except requests.exceptions.ConnectionError:
        print(f"✗ Could not connect to server at {SERVER_URL}")
        print("  Make sure the backend is running: python -m uvicorn soundman.main:app")
        return False

    async with websockets.connect(WS_URL, ping_interval=None) as websocket:
        print("✓ Connected to server\n")
        unknown = await send_frames(websocket, UNKNOWN_FRAMES, "unknown")

        clusters = requests.get(f"{SERVER_URL}/clusters", timeout=5).json()
        print(f"\nUnknown count: {clusters['unknown_count']}, clusters: {len(clusters['clusters'])}")

        response = requests.post(
            f"{SERVER_URL}/clusters/label", json={"label_name": LABEL_NAME}, timeout=5
        )
        if response.status_code != 200:
            print(f"✗ Labeling failed: HTTP {response.status_code} {response.text}")
            return False
        print(f"✓ Labeled most recent unknown sound as '{LABEL_NAME}'")

        requests.patch(
            f"{SERVER_URL}/labels/{LABEL_NAME}", json={"volume_multiplier": 0.5}, timeout=5
        ).raise_for_status()
        print("✓ Set volume multiplier to 0.5\n")

        labeled = await send_frames(websocket, LABELED_FRAMES, "labeled")

    matched = sum(1 for r in labeled if r["label"] == LABEL_NAME)
    print("\n" + "=" * 70)
    print(f"Unknown phase: {sum(1 for r in unknown if r['cluster_id'])}/{UNKNOWN_FRAMES} clustered")
    print(f"Labeled phase: {matched}/{LABELED_FRAMES} recognized as '{LABEL_NAME}'")
    print("=" * 70)
    return matched == LABELED_FRAMES


if __name__ == "__main__":
    try:
        success = asyncio.run(run())
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print("\n\nExiting...")
        sys.exit(1)
