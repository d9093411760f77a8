"""Read-only reference catalog of locations and symptoms.

Reference data management lives outside this service; the catalog only
loads a published snapshot (JSON file) and answers lookups used for
validation and the /resources endpoints.
"""
import json
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .models import Location, Symptom

logger = logging.getLogger(__name__)


DEFAULT_LOCATIONS = (
    Location(id="Room-12A", building="Main Building", room="12A", name="Room 12A"),
    Location(id="Room-12B", building="Main Building", room="12B", name="Room 12B"),
    Location(id="Room-14", building="Main Building", room="14", name="Room 14"),
    Location(id="Lab-1", building="Science Block", room="Lab 1", name="Chemistry Lab"),
    Location(id="Lab-2", building="Science Block", room="Lab 2", name="Biology Lab"),
    Location(id="Gym", building="Sports Hall", room="Gym", name="Gymnasium"),
    Location(id="Cafeteria", building="Student Centre", room="Cafeteria", name="Cafeteria"),
    Location(id="Library", building="Student Centre", room="Library", name="Library"),
)

DEFAULT_SYMPTOMS = (
    Symptom(id="fever", name="Fever", category="general", icon="Thermometer"),
    Symptom(id="headache", name="Headache", category="general", icon="Brain"),
    Symptom(id="fatigue", name="Fatigue", category="general", icon="BatteryLow"),
    Symptom(id="rash", name="Rash", category="general", icon="Hand"),
    Symptom(id="cough", name="Cough", category="respiratory", icon="Wind"),
    Symptom(id="sore-throat", name="Sore Throat", category="respiratory", icon="Mic"),
    Symptom(id="runny-nose", name="Runny Nose", category="respiratory", icon="Droplets"),
    Symptom(id="shortness-of-breath", name="Shortness of Breath", category="respiratory", icon="Activity"),
    Symptom(id="nausea", name="Nausea", category="digestive", icon="Frown"),
    Symptom(id="vomiting", name="Vomiting", category="digestive", icon="AlertCircle"),
    Symptom(id="diarrhea", name="Diarrhea", category="digestive", icon="AlertTriangle"),
    Symptom(id="stomach-ache", name="Stomach Ache", category="digestive", icon="CircleDot"),
)


class ReferenceCatalog:
    """Immutable lookup of known locations and symptoms."""

    def __init__(self, locations: Iterable[Location], symptoms: Iterable[Symptom]):
        self._locations: Dict[str, Location] = {loc.id: loc for loc in locations}
        self._symptoms: Dict[str, Symptom] = {sym.id: sym for sym in symptoms}

        logger.info(
            "REFERENCE_CATALOG_LOADED",
            extra={
                "location_count": len(self._locations),
                "symptom_count": len(self._symptoms),
            }
        )

    @classmethod
    def default(cls) -> "ReferenceCatalog":
        """Built-in catalog used in development and tests."""
        return cls(DEFAULT_LOCATIONS, DEFAULT_SYMPTOMS)

    @classmethod
    def from_json_file(cls, path: Path) -> "ReferenceCatalog":
        """Load a catalog snapshot.

        Expected format::

            {"locations": [{"id": "Room-12A", "building": "...", "room": "12A"}],
             "symptoms": [{"id": "fever", "name": "Fever", "category": "general"}]}
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        try:
            locations = [
                Location(
                    id=item["id"],
                    building=item["building"],
                    room=item["room"],
                    name=item.get("name", ""),
                )
                for item in data.get("locations", [])
            ]
            symptoms = [
                Symptom(
                    id=item["id"],
                    name=item["name"],
                    category=item["category"],
                    icon=item.get("icon", "Circle"),
                )
                for item in data.get("symptoms", [])
            ]
        except KeyError as e:
            raise ValueError(f"Catalog entry in {path} is missing field {e}") from e

        return cls(locations, symptoms)

    @classmethod
    def from_env(cls) -> "ReferenceCatalog":
        """Load from ``HEALTHWATCH_CATALOG_PATH`` or fall back to the defaults."""
        path = os.getenv("HEALTHWATCH_CATALOG_PATH")
        if path:
            return cls.from_json_file(Path(path))
        return cls.default()

    def has_location(self, location_id: str) -> bool:
        return location_id in self._locations

    def has_symptom(self, symptom_id: str) -> bool:
        return symptom_id in self._symptoms

    def location(self, location_id: str) -> Optional[Location]:
        return self._locations.get(location_id)

    def symptom(self, symptom_id: str) -> Optional[Symptom]:
        return self._symptoms.get(symptom_id)

    def locations(self) -> List[Location]:
        return sorted(self._locations.values(), key=lambda loc: (loc.building, loc.id))

    def symptoms(self) -> List[Symptom]:
        return sorted(self._symptoms.values(), key=lambda sym: (sym.category, sym.id))

    def location_ids(self) -> List[str]:
        return sorted(self._locations)
