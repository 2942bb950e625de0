"""In-memory label and person records served to the detection session."""
import asyncio
from typing import Dict, List, Optional
from soundman.audio.models import PersonLabel, SoundLabel
from soundman.core.config import settings
from soundman.core.logging import logger

LABEL_SETTING_FIELDS = {
    "confidence_threshold", "volume_multiplier", "is_muted", "reverse_tone_enabled", "is_active",
}
PERSON_SETTING_FIELDS = {"name", "volume_multiplier", "is_muted", "is_active"}


class LabelRegistry:
    """
    Holds label and person records for the running process.

    Stands in for the persistence layer: records live only as long as the
    process. Listings are ordered by name, which is the tie-break order the
    classifier sees.
    """

    def __init__(self):
        """Initialize the registry."""
        self._labels: Dict[str, SoundLabel] = {}
        self._persons: Dict[int, PersonLabel] = {}
        self._next_label_id = 1
        self._next_person_id = 1
        self._lock = asyncio.Lock()

    async def list_labels(self, active_only: bool = False) -> List[SoundLabel]:
        async with self._lock:
            labels = sorted(self._labels.values(), key=lambda l: l.name)
            if active_only:
                labels = [l for l in labels if l.is_active]
            return labels

    async def get_label(self, name: str) -> Optional[SoundLabel]:
        async with self._lock:
            return self._labels.get(name)

    async def add_label(self, label: SoundLabel) -> SoundLabel:
        """
        Store a label, keeping the existing record if the name is taken.

        Args:
            label: Label to add

        Returns:
            The stored record
        """
        async with self._lock:
            existing = self._labels.get(label.name)
            if existing is not None:
                return existing
            if label.id is None:
                label.id = self._next_label_id
                self._next_label_id += 1
            self._labels[label.name] = label
            logger.info(f"Added label '{label.name}'")
            return label

    async def create_label(self, name: str, **fields) -> SoundLabel:
        fields.setdefault("confidence_threshold", settings.default_label_threshold)
        return await self.add_label(SoundLabel(name=name, **fields))

    async def update_label(self, name: str, **fields) -> Optional[SoundLabel]:
        """
        Update a label's settings.

        Args:
            name: Label name
            **fields: Any of the label setting fields; None values are ignored

        Returns:
            Updated record or None if the label does not exist

        Raises:
            ValueError: If a field is unknown or a value is out of range
        """
        unknown = set(fields) - LABEL_SETTING_FIELDS
        if unknown:
            raise ValueError(f"Unknown label settings: {sorted(unknown)}")

        async with self._lock:
            label = self._labels.get(name)
            if label is None:
                return None
            updates = {k: v for k, v in fields.items() if v is not None}
            # Validate through the dataclass before touching the stored record
            SoundLabel(name=label.name, **{**_label_settings(label), **updates})
            for key, value in updates.items():
                setattr(label, key, value)
            return label

    async def list_persons(self, active_only: bool = False) -> List[PersonLabel]:
        async with self._lock:
            persons = sorted(self._persons.values(), key=lambda p: p.name)
            if active_only:
                persons = [p for p in persons if p.is_active]
            return persons

    async def get_person(self, person_id: int) -> Optional[PersonLabel]:
        async with self._lock:
            return self._persons.get(person_id)

    async def allocate_person_id(self) -> int:
        async with self._lock:
            person_id = self._next_person_id
            self._next_person_id += 1
            return person_id

    async def add_person(self, person: PersonLabel) -> PersonLabel:
        async with self._lock:
            self._persons[person.id] = person
            self._next_person_id = max(self._next_person_id, person.id + 1)
            logger.info(f"Added person '{person.name}' ({person.id})")
            return person

    async def update_person(self, person_id: int, **fields) -> Optional[PersonLabel]:
        unknown = set(fields) - PERSON_SETTING_FIELDS
        if unknown:
            raise ValueError(f"Unknown person settings: {sorted(unknown)}")

        async with self._lock:
            person = self._persons.get(person_id)
            if person is None:
                return None
            updates = {k: v for k, v in fields.items() if v is not None}
            if "volume_multiplier" in updates and not 0.0 <= updates["volume_multiplier"] <= 2.0:
                raise ValueError(f"volume_multiplier must be within [0, 2], got {updates['volume_multiplier']}")
            for key, value in updates.items():
                setattr(person, key, value)
            return person


def _label_settings(label: SoundLabel) -> dict:
    return {key: getattr(label, key) for key in LABEL_SETTING_FIELDS}
