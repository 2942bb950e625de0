"""Tests for the in-memory label and person registry."""
import asyncio
import pytest
from soundman.audio.models import PersonLabel, SoundLabel
from soundman.services.label_registry import LabelRegistry


def test_labels_are_listed_by_name():
    async def run():
        registry = LabelRegistry()
        await registry.create_label("siren")
        await registry.create_label("alarm")
        await registry.create_label("door", is_active=False)
        return await registry.list_labels(), await registry.list_labels(active_only=True)

    labels, active_labels = asyncio.run(run())
    names = [l.name for l in labels]
    active = [l.name for l in active_labels]

    assert names == ["alarm", "door", "siren"]
    assert active == ["alarm", "siren"]


def test_add_label_keeps_existing_record():
    async def run():
        registry = LabelRegistry()
        first = await registry.add_label(SoundLabel(name="door", volume_multiplier=0.5))
        second = await registry.add_label(SoundLabel(name="door", volume_multiplier=2.0))
        return first, second

    first, second = asyncio.run(run())
    assert second is first
    assert first.id == 1
    assert first.volume_multiplier == 0.5


def test_create_label_uses_default_threshold():
    label = asyncio.run(LabelRegistry().create_label("door"))
    assert label.confidence_threshold == 0.7


def test_update_label_settings():
    async def run():
        registry = LabelRegistry()
        await registry.create_label("door")
        return await registry.update_label("door", volume_multiplier=1.5, is_muted=True, reverse_tone_enabled=None)

    label = asyncio.run(run())
    assert label.volume_multiplier == 1.5
    assert label.is_muted is True
    assert label.reverse_tone_enabled is False


def test_update_label_validation():
    async def run(**fields):
        registry = LabelRegistry()
        await registry.create_label("door")
        return await registry.update_label("door", **fields)

    with pytest.raises(ValueError):
        asyncio.run(run(volume_multiplier=3.0))
    with pytest.raises(ValueError):
        asyncio.run(run(name="other"))


def test_update_label_rejects_without_partial_changes():
    async def run():
        registry = LabelRegistry()
        await registry.create_label("door")
        try:
            await registry.update_label("door", is_muted=True, confidence_threshold=1.5)
        except ValueError:
            pass
        return await registry.get_label("door")

    assert asyncio.run(run()).is_muted is False


def test_update_missing_label():
    assert asyncio.run(LabelRegistry().update_label("ghost", is_muted=True)) is None


def test_persons():
    async def run():
        registry = LabelRegistry()
        person_id = await registry.allocate_person_id()
        await registry.add_person(PersonLabel(id=person_id, name="Ana"))
        updated = await registry.update_person(person_id, volume_multiplier=0.0)
        next_id = await registry.allocate_person_id()
        return updated, next_id

    updated, next_id = asyncio.run(run())
    assert updated.volume_multiplier == 0.0
    assert next_id == 2


def test_update_person_validation():
    async def run(**fields):
        registry = LabelRegistry()
        await registry.add_person(PersonLabel(id=1, name="Ana"))
        return await registry.update_person(1, **fields)

    with pytest.raises(ValueError):
        asyncio.run(run(volume_multiplier=2.5))
    with pytest.raises(ValueError):
        asyncio.run(run(transcription="x"))
