"""REST endpoints for health, status and detection history."""
from fastapi import APIRouter, Depends, HTTPException, Request
from datetime import datetime
from soundman.audio.models import DetectionEvent
from soundman.services.detection_service import DetectionService

router = APIRouter()


def get_detection_service(request: Request) -> DetectionService:
    """Resolve the detection service attached to the running app."""
    return request.app.state.detection_service


def _event_to_dict(event: DetectionEvent) -> dict:
    return {
        "detection_id": event.detection_id,
        "timestamp": datetime.fromtimestamp(event.timestamp).isoformat() + "Z",
        "confidence": event.confidence,
        "label": event.label,
        "person_id": event.person_id,
        "cluster_id": event.cluster_id,
        "frequency": event.frequency,
        "duration_ms": event.duration_ms,
        "transcription": event.transcription,
        "is_person": event.is_person,
        "is_unknown": event.is_unknown,
        "audio_bytes": len(event.audio),
    }


@router.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Status and version information
    """
    return {
        "status": "ok",
        "version": "0.1.0"
    }


@router.get("/status")
async def get_status(service: DetectionService = Depends(get_detection_service)):
    """
    Detection state and backend capabilities.

    Returns:
        Detecting and live mic flags, unknown/cluster counts, active streams, backends
    """
    return await service.status()


@router.get("/detections")
async def list_detections(limit: int = 50, service: DetectionService = Depends(get_detection_service)):
    """Most recent detections, newest first (audio omitted)."""
    if limit < 1:
        raise HTTPException(status_code=400, detail="limit must be positive")
    return [_event_to_dict(e) for e in service.session.recent_events(limit)]


@router.get("/detections/{detection_id}")
async def get_detection(detection_id: int, service: DetectionService = Depends(get_detection_service)):
    event = service.session.find_event(detection_id)
    if event is None:
        raise HTTPException(status_code=404, detail=f"Detection {detection_id} not found")
    return _event_to_dict(event)
