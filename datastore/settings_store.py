from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

from pydantic import ValidationError

from app.schemas import PlantSettings, PlantSettingsUpdate, PlantThreshold
from services.errors import suppress_recoverable
from settings import get_settings

logger = logging.getLogger(__name__)


class SettingsStore:
    """Single persisted settings record with field-level merge on update."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self.persistence_path = persistence_path
        self._record = PlantSettings()
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def load(self) -> PlantSettings:
        """Return the stored record, or an all-empty default if none is readable."""
        with self._lock:
            return self._read()

    def save(self, partial: PlantSettingsUpdate) -> PlantSettings:
        """Merge the fields present in ``partial`` and persist the result."""
        changes = {
            field: value
            for field, value in partial.model_dump(exclude_unset=True).items()
            if value is not None
        }
        with self._lock:
            current = self._read()
            merged = PlantSettings.model_validate({**current.model_dump(), **changes})
            self._write(merged)
            return merged.model_copy(deep=True)

    def set_name(self, sensor_id: str, name: str) -> PlantSettings:
        with self._lock:
            record = self._read()
            record.names[sensor_id] = name
            self._write(record)
            return record.model_copy(deep=True)

    def set_color(self, sensor_id: str, color: str) -> PlantSettings:
        with self._lock:
            record = self._read()
            record.colors[sensor_id] = color
            self._write(record)
            return record.model_copy(deep=True)

    def set_threshold(self, sensor_id: str, threshold: PlantThreshold) -> PlantSettings:
        with self._lock:
            record = self._read()
            record.thresholds[sensor_id] = threshold
            self._write(record)
            return record.model_copy(deep=True)

    def _read(self) -> PlantSettings:
        return self._record.model_copy(deep=True)

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return
        with suppress_recoverable(logger, "Falling back to default plant settings"):
            raw = self.persistence_path.read_text() or "{}"
            self._record = _decode_record(json.loads(raw))

    def _write(self, record: PlantSettings) -> None:
        self._record = record.model_copy(deep=True)
        if not self.persistence_path:
            return
        with suppress_recoverable(logger, "Failed to persist plant settings"):
            self.persistence_path.write_text(
                json.dumps(record.model_dump(mode="json"), indent=2, sort_keys=True)
            )


def _decode_record(raw: Any) -> PlantSettings:
    """Validate a stored record field by field.

    A field that fails validation falls back to its empty default and a bad
    threshold entry is dropped on its own, so one damaged value never costs
    the rest of the record.
    """
    if not isinstance(raw, dict):
        raise ValueError("Plant settings file does not contain an object.")

    fields: Dict[str, Any] = {}
    for name in PlantSettings.model_fields:
        if name not in raw:
            continue
        value = raw[name]
        if name == "thresholds" and isinstance(value, dict):
            value = _valid_thresholds(value)
        try:
            fields[name] = getattr(PlantSettings.model_validate({name: value}), name)
        except ValidationError:
            logger.warning("Ignoring invalid plant settings field", extra={"reason": name})
    return PlantSettings(**fields)


def _valid_thresholds(entries: Dict[str, Any]) -> Dict[str, PlantThreshold]:
    kept: Dict[str, PlantThreshold] = {}
    for sensor_id, entry in entries.items():
        try:
            kept[sensor_id] = PlantThreshold.model_validate(entry)
        except ValidationError:
            logger.warning("Dropping invalid plant threshold", extra={"sensor_id": sensor_id})
    return kept


@lru_cache
def build_default_settings_store(path: Optional[str] = None) -> SettingsStore:
    settings = get_settings()
    store_path = settings.settings_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return SettingsStore(persistence_path=persistence)
