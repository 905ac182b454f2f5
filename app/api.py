"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from app.schemas import (
    ColorUpdate,
    HealthResponse,
    HiddenUpdate,
    HistoryResponse,
    NameUpdate,
    OrderUpdate,
    PlantSettings,
    PlantSettingsUpdate,
    PlantThreshold,
    SensorsResponse,
    ThresholdUpdate,
)
from datastore.settings_store import SettingsStore, build_default_settings_store
from models.periods import Period
from services.history import HistoryResolver, build_default_resolver
from services.poller import LivePoller, build_default_poller

router = APIRouter(prefix="/api")


def get_poller() -> LivePoller:
    return build_default_poller()


def get_resolver() -> HistoryResolver:
    return build_default_resolver()


def get_settings_store() -> SettingsStore:
    return build_default_settings_store()


# Network-bound handlers are plain ``def`` so FastAPI runs them in its threadpool.
@router.get(
    "/sensors",
    response_model=SensorsResponse,
    summary="Current readings for every configured sensor.",
)
def get_sensors(poller: LivePoller = Depends(get_poller)) -> SensorsResponse:
    return poller.fetch_current()


@router.get(
    "/sensors/{sensor_id}/history",
    response_model=HistoryResponse,
    summary="Chart-ready history for one sensor over a fixed period.",
)
def get_sensor_history(
    sensor_id: str,
    period: Period = Query(Period.day, description="Lookback window."),
    anchor: Optional[datetime] = Query(
        None, description="Start of the hour to show for the 1h period; defaults to the last hour."
    ),
    resolver: HistoryResolver = Depends(get_resolver),
) -> HistoryResponse:
    return resolver.resolve(sensor_id, period, anchor=anchor)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(poller: LivePoller = Depends(get_poller)) -> HealthResponse:
    return HealthResponse(
        configured_accounts=len(poller.accounts),
        mock_mode=poller.use_mock_data,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/settings", response_model=PlantSettings, summary="Full plant settings record.")
async def read_settings(store: SettingsStore = Depends(get_settings_store)) -> PlantSettings:
    return store.load()


@router.post(
    "/settings",
    response_model=PlantSettings,
    summary="Merge the supplied fields into the plant settings record.",
)
async def update_settings(
    update: PlantSettingsUpdate,
    store: SettingsStore = Depends(get_settings_store),
) -> PlantSettings:
    return store.save(update)


@router.post("/settings/name", summary="Rename one plant.")
async def update_name(
    update: NameUpdate, store: SettingsStore = Depends(get_settings_store)
) -> Dict[str, Any]:
    record = store.set_name(update.sensor_id, update.name)
    return {"success": True, "names": record.names}


@router.post("/settings/color", summary="Set one plant's accent color.")
async def update_color(
    update: ColorUpdate, store: SettingsStore = Depends(get_settings_store)
) -> Dict[str, Any]:
    record = store.set_color(update.sensor_id, update.color)
    return {"success": True, "colors": record.colors}


@router.post("/settings/order", summary="Replace the display order of plants.")
async def update_order(
    update: OrderUpdate, store: SettingsStore = Depends(get_settings_store)
) -> Dict[str, Any]:
    record = store.save(PlantSettingsUpdate(order=update.order))
    return {"success": True, "order": record.order}


@router.post("/settings/hidden", summary="Replace the set of hidden plants.")
async def update_hidden(
    update: HiddenUpdate, store: SettingsStore = Depends(get_settings_store)
) -> Dict[str, Any]:
    record = store.save(PlantSettingsUpdate(hidden=update.hidden))
    return {"success": True, "hidden": record.hidden}


@router.post("/settings/threshold", summary="Set one plant's moisture thresholds.")
async def update_threshold(
    update: ThresholdUpdate, store: SettingsStore = Depends(get_settings_store)
) -> Dict[str, Any]:
    threshold = PlantThreshold(min=update.min, max=update.max)
    record = store.set_threshold(update.sensor_id, threshold)
    return {
        "success": True,
        "thresholds": {key: value.model_dump() for key, value in record.thresholds.items()},
    }
