"""API tests for the REST and WebSocket endpoints."""
import numpy as np
from fastapi.testclient import TestClient
from soundman.main import app


def make_click(amplitude=12000, seed=7):
    rng = np.random.default_rng(seed)
    frame = np.zeros(1024, dtype=np.float64)
    envelope = np.exp(-np.arange(256) / 40.0)
    frame[:256] = rng.uniform(-1.0, 1.0, 256) * envelope * amplitude
    return frame.astype(np.int16).tobytes()


def stream_frames(client, frames):
    """Send frames over /ws/audio and collect (json, audio) replies."""
    replies = []
    with client.websocket_connect("/ws/audio") as websocket:
        for data in frames:
            websocket.send_bytes(data)
            message = websocket.receive_json()
            audio = websocket.receive_bytes()
            replies.append((message, audio))
    return replies


def test_health():
    with TestClient(app) as client:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": "0.1.0"}


def test_status_reports_capabilities():
    with TestClient(app) as client:
        status = client.get("/status").json()
        assert status["is_detecting"] is False
        assert status["unknown_count"] == 0
        assert status["acoustic_backend"]["available"] is False
        assert status["speech_backend"]["available"] is False


def test_websocket_passes_audio_through_when_stopped():
    with TestClient(app) as client:
        click = make_click()
        [(message, audio)] = stream_frames(client, [click])

        assert message["kind"] == "no_match"
        assert message["detection_id"] is None
        assert audio == click


def test_detect_label_recognize_flow():
    with TestClient(app) as client:
        assert client.post("/detection/start").json() == {"is_detecting": True}

        clicks = [make_click(amplitude=10000 + 200 * i) for i in range(10)]
        replies = stream_frames(client, clicks)
        assert all(message["kind"] == "no_match" for message, _ in replies)
        assert len({message["cluster_id"] for message, _ in replies}) == 1
        assert all(audio == click for (_, audio), click in zip(replies, clicks))

        clusters = client.get("/clusters").json()
        assert clusters["unknown_count"] == 10
        assert len(clusters["clusters"]) == 1

        response = client.post("/clusters/label", json={"label_name": "door_slam"})
        assert response.status_code == 200
        assert response.json()["name"] == "door_slam"
        assert client.get("/clusters").json() == {"unknown_count": 0, "clusters": []}

        response = client.patch("/labels/door_slam", json={"volume_multiplier": 0.5})
        assert response.status_code == 200
        assert response.json()["volume_multiplier"] == 0.5

        click = make_click()
        [(message, audio)] = stream_frames(client, [click])
        assert message["kind"] == "label_match"
        assert message["label"] == "door_slam"
        assert len(audio) == len(click)
        expected = np.trunc(np.frombuffer(click, dtype=np.int16) * 0.5).astype(np.int16)
        assert audio == expected.tobytes()

        labels = client.get("/labels").json()
        assert [l["name"] for l in labels] == ["door_slam"]
        assert labels[0]["detection_count"] == 2

        detections = client.get("/detections", params={"limit": 3}).json()
        assert [d["label"] for d in detections] == ["door_slam"] * 3
        assert detections[0]["detection_id"] == 11


def test_label_without_unknown_detection_is_404():
    with TestClient(app) as client:
        response = client.post("/clusters/label", json={"label_name": "door_slam"})
        assert response.status_code == 404


def test_label_validation():
    with TestClient(app) as client:
        assert client.post("/labels", json={"name": "fan"}).status_code == 201
        assert client.patch("/labels/fan", json={"volume_multiplier": 3.0}).status_code == 422
        assert client.patch("/labels/ghost", json={"is_muted": True}).status_code == 404
        assert client.post("/labels", json={"name": ""}).status_code == 422

        response = client.patch("/labels/fan", json={"reverse_tone_enabled": True, "is_active": False})
        assert response.json()["reverse_tone_enabled"] is True
        assert response.json()["is_active"] is False
        assert client.get("/labels", params={"active_only": True}).json() == []


def test_persons_endpoints():
    with TestClient(app) as client:
        client.post("/detection/start")
        stream_frames(client, [make_click()])

        response = client.post("/persons/label", json={"person_name": "Ana"})
        assert response.status_code == 201
        person_id = response.json()["id"]

        response = client.patch(f"/persons/{person_id}", json={"is_muted": True})
        assert response.json()["is_muted"] is True

        [(message, audio)] = stream_frames(client, [make_click()])
        assert message["kind"] == "person_match"
        assert message["person_id"] == person_id
        assert not any(audio)

        created = client.post("/persons", json={"name": "Ben"})
        assert created.status_code == 201
        assert [p["name"] for p in client.get("/persons").json()] == ["Ana", "Ben"]
        assert client.patch("/persons/99", json={"is_muted": True}).status_code == 404


def test_live_mic_endpoint():
    with TestClient(app) as client:
        client.post("/detection/start")
        assert client.post("/detection/live-mic", json={"enabled": True}).json() == {"live_mic_enabled": True}

        click = make_click()
        [(message, audio)] = stream_frames(client, [click])
        assert message["detection_id"] is None
        assert audio == click
        assert client.get("/status").json()["live_mic_enabled"] is True


def test_missing_detection_is_404():
    with TestClient(app) as client:
        assert client.get("/detections/42").status_code == 404
        assert client.post("/labels", json={"name": "fan", "detection_id": 42}).status_code == 404
