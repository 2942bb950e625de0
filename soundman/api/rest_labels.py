"""REST endpoints for labels, persons, unknown clusters and detection control."""
from dataclasses import asdict
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from soundman.api.rest_status import get_detection_service
from soundman.audio.models import LabelingRequest
from soundman.services.detection_service import DetectionService
from soundman.core.logging import logger

router = APIRouter()


class LabelCreate(BaseModel):
    name: str = Field(..., min_length=1)
    confidence_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    volume_multiplier: float = Field(1.0, ge=0.0, le=2.0)
    is_muted: bool = False
    reverse_tone_enabled: bool = False
    detection_id: Optional[int] = None  # Learn the label's first pattern from this detection


class LabelUpdate(BaseModel):
    confidence_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    volume_multiplier: Optional[float] = Field(None, ge=0.0, le=2.0)
    is_muted: Optional[bool] = None
    reverse_tone_enabled: Optional[bool] = None
    is_active: Optional[bool] = None


class PersonCreate(BaseModel):
    name: str = Field(..., min_length=1)
    volume_multiplier: float = Field(1.0, ge=0.0, le=2.0)
    is_muted: bool = False
    detection_id: Optional[int] = None  # Learn the voice from this detection


class PersonUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    volume_multiplier: Optional[float] = Field(None, ge=0.0, le=2.0)
    is_muted: Optional[bool] = None
    is_active: Optional[bool] = None


class ClusterLabelRequest(BaseModel):
    label_name: str = Field(..., min_length=1)
    use_existing_label: bool = False
    existing_label_name: Optional[str] = None
    detection_id: Optional[int] = None


class PersonLabelRequest(BaseModel):
    person_name: str = Field(..., min_length=1)
    detection_id: Optional[int] = None


class LiveMicRequest(BaseModel):
    enabled: bool


# Labels

@router.get("/labels")
async def list_labels(active_only: bool = False, service: DetectionService = Depends(get_detection_service)):
    return [asdict(l) for l in await service.registry.list_labels(active_only=active_only)]


@router.post("/labels", status_code=201)
async def create_label(body: LabelCreate, service: DetectionService = Depends(get_detection_service)):
    """
    Create a label, optionally learning its first pattern from a past detection.

    Returns:
        The stored label (the existing record if the name is already taken)
    """
    fields = body.model_dump(exclude={"name", "detection_id"}, exclude_none=True)
    try:
        label = await service.registry.create_label(body.name, **fields)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if body.detection_id is not None:
        if not await service.learn_sound_from_detection(label.name, body.detection_id):
            raise HTTPException(status_code=404, detail=f"Detection {body.detection_id} not found")
    return asdict(label)


@router.patch("/labels/{name}")
async def update_label(name: str, body: LabelUpdate, service: DetectionService = Depends(get_detection_service)):
    try:
        label = await service.registry.update_label(name, **body.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if label is None:
        raise HTTPException(status_code=404, detail=f"Label '{name}' not found")
    logger.info(f"Updated label '{name}'")
    return asdict(label)


# Persons

@router.get("/persons")
async def list_persons(active_only: bool = False, service: DetectionService = Depends(get_detection_service)):
    return [asdict(p) for p in await service.registry.list_persons(active_only=active_only)]


@router.post("/persons", status_code=201)
async def create_person(body: PersonCreate, service: DetectionService = Depends(get_detection_service)):
    person = await service.create_person(
        body.name,
        volume_multiplier=body.volume_multiplier,
        is_muted=body.is_muted,
    )
    if body.detection_id is not None:
        if not await service.learn_voice_from_detection(person.id, body.detection_id):
            raise HTTPException(status_code=404, detail=f"Detection {body.detection_id} not found")
    return asdict(person)


@router.patch("/persons/{person_id}")
async def update_person(person_id: int, body: PersonUpdate, service: DetectionService = Depends(get_detection_service)):
    try:
        person = await service.registry.update_person(person_id, **body.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if person is None:
        raise HTTPException(status_code=404, detail=f"Person {person_id} not found")
    return asdict(person)


@router.post("/persons/label", status_code=201)
async def label_person(body: PersonLabelRequest, service: DetectionService = Depends(get_detection_service)):
    """Create a person from a detection (the most recent by default) and learn their voice."""
    person = await service.label_person(body.person_name, detection_id=body.detection_id)
    if person is None:
        raise HTTPException(status_code=404, detail="No detection to label")
    return asdict(person)


# Unknown clusters

@router.get("/clusters")
async def list_clusters(service: DetectionService = Depends(get_detection_service)):
    return {
        "unknown_count": service.session.unknown_count,
        "clusters": service.session.unknown_clusters(),
    }


@router.post("/clusters/label")
async def label_cluster(body: ClusterLabelRequest, service: DetectionService = Depends(get_detection_service)):
    """
    Name an unknown sound and promote its cluster into a label.

    Returns:
        The label the sound was assigned to
    """
    request = LabelingRequest(
        label_name=body.label_name,
        use_existing_label=body.use_existing_label,
        existing_label_name=body.existing_label_name,
        detection_id=body.detection_id,
    )
    label = await service.label_unknown_sound(request)
    if label is None:
        raise HTTPException(status_code=404, detail="No unknown detection to label")
    return asdict(label)


# Detection control

@router.post("/detection/start")
async def start_detection(service: DetectionService = Depends(get_detection_service)):
    await service.start_detection()
    return {"is_detecting": True}


@router.post("/detection/stop")
async def stop_detection(service: DetectionService = Depends(get_detection_service)):
    await service.stop_detection()
    return {"is_detecting": False}


@router.post("/detection/live-mic")
async def set_live_mic(body: LiveMicRequest, service: DetectionService = Depends(get_detection_service)):
    await service.set_live_mic(body.enabled)
    return {"live_mic_enabled": body.enabled}
