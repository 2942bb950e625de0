#!/usr/bin/env python3
"""
REST client for reviewing unknown sounds and managing labels.

Usage:
    python client_labeling.py                      # show status, clusters and labels
    python client_labeling.py label <name>         # name the most recent unknown sound
    python client_labeling.py person <name>        # name the most recent detection as a person
    python client_labeling.py set <label> key=value [key=value ...]
"""
import requests
import sys
import json

# Configuration
SERVER_URL = "http://localhost:8000"


def _parse_value(raw):
    """Interpret CLI values as JSON when possible (numbers, true/false), else as strings."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def show_overview():
    """Print detection status, unknown clusters and labels."""
    status = requests.get(f"{SERVER_URL}/status", timeout=5).json()
    print(f"Detecting: {status['is_detecting']} | Live mic: {status['live_mic_enabled']}")
    print(f"Unknown detections: {status['unknown_count']} | Clusters: {status['cluster_count']}")
    print(f"Acoustic backend: {status['acoustic_backend']}")

    clusters = requests.get(f"{SERVER_URL}/clusters", timeout=5).json()["clusters"]
    print(f"\nUnknown clusters ({len(clusters)}):")
    for cluster in clusters:
        print(f"  {cluster['cluster_id']:36s} {cluster['frequency']:8.1f} Hz "
              f"{cluster['duration_ms']:5d} ms  frames={cluster['frame_count']}")

    labels = requests.get(f"{SERVER_URL}/labels", timeout=5).json()
    print(f"\nLabels ({len(labels)}):")
    for label in labels:
        flags = []
        if label["is_muted"]:
            flags.append("muted")
        if label["reverse_tone_enabled"]:
            flags.append("reverse")
        if not label["is_active"]:
            flags.append("inactive")
        print(f"  {label['name']:20s} vol={label['volume_multiplier']:.2f} "
              f"threshold={label['confidence_threshold']:.2f} "
              f"detections={label['detection_count']} {' '.join(flags)}")


def label_unknown(name):
    response = requests.post(f"{SERVER_URL}/clusters/label", json={"label_name": name}, timeout=5)
    if response.status_code != 200:
        print(f"✗ HTTP {response.status_code}: {response.json().get('detail')}")
        return False
    print(f"✓ Labeled as '{response.json()['name']}'")
    return True


def label_person(name):
    response = requests.post(f"{SERVER_URL}/persons/label", json={"person_name": name}, timeout=5)
    if response.status_code != 201:
        print(f"✗ HTTP {response.status_code}: {response.json().get('detail')}")
        return False
    person = response.json()
    print(f"✓ Created person '{person['name']}' (id {person['id']})")
    return True


def update_label(name, assignments):
    fields = {}
    for assignment in assignments:
        key, _, value = assignment.partition("=")
        fields[key] = _parse_value(value)
    response = requests.patch(f"{SERVER_URL}/labels/{name}", json=fields, timeout=5)
    if response.status_code != 200:
        print(f"✗ HTTP {response.status_code}: {response.text}")
        return False
    print(f"✓ Updated '{name}': {fields}")
    return True


def main(argv):
    try:
        if len(argv) >= 2 and argv[0] == "label":
            return label_unknown(argv[1])
        if len(argv) >= 2 and argv[0] == "person":
            return label_person(argv[1])
        if len(argv) >= 3 and argv[0] == "set":
            return update_label(argv[1], argv[2:])
        if argv:
            print(__doc__)
            return False
        show_overview()
        return True
    except requests.exceptions.ConnectionError:
        print(f"✗ Could not connect to server at {SERVER_URL}")
        print("  Make sure the backend is running: python -m uvicorn soundman.main:app")
        return False


if __name__ == "__main__":
    sys.exit(0 if main(sys.argv[1:]) else 1)
