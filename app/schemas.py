"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models.periods import Period


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HistorySource(str, Enum):
    """Provenance of a history result, from best to most degraded."""

    live = "live"
    local = "local"
    synthetic = "synthetic"


class SensorReadingOut(_CamelModel):
    """Current value reported by one soil-moisture channel."""

    id: str
    account_id: str = Field(..., alias="accountId")
    sensor_key: str = Field(..., alias="sensorKey")
    moisture: float
    unit: str = "%"
    ad: Optional[int] = Field(default=None, description="Raw signal strength, if reported.")
    timestamp: datetime


class AccountError(_CamelModel):
    account_id: str = Field(..., alias="accountId")
    error: str


class SensorsResponse(_CamelModel):
    """Aggregated read of every configured account's current sensor values."""

    sensors: List[SensorReadingOut] = Field(default_factory=list)
    errors: Optional[List[AccountError]] = None
    last_updated: datetime = Field(..., alias="lastUpdated")
    mock: bool = False


class HistoryPoint(BaseModel):
    timestamp: datetime
    moisture: float
    label: str


class HistoryResponse(_CamelModel):
    sensor_id: str = Field(..., alias="sensorId")
    period: Period
    points: List[HistoryPoint] = Field(default_factory=list)
    source: HistorySource
    error: Optional[str] = Field(
        default=None, description="Advisory message when the result is degraded."
    )


class PlantThreshold(BaseModel):
    min: float = Field(..., ge=0, le=100)
    max: float = Field(..., ge=0, le=100)

    @model_validator(mode="after")
    def _check_bounds(self) -> "PlantThreshold":
        if self.min > self.max:
            raise ValueError("Threshold min must not exceed max.")
        return self


class PlantSettings(BaseModel):
    """Persisted display preferences; absent fields default to empty."""

    names: Dict[str, str] = Field(default_factory=dict)
    colors: Dict[str, str] = Field(default_factory=dict)
    order: List[str] = Field(default_factory=list)
    hidden: List[str] = Field(default_factory=list)
    thresholds: Dict[str, PlantThreshold] = Field(default_factory=dict)


class PlantSettingsUpdate(BaseModel):
    """Partial settings update: only fields that are present are merged."""

    names: Optional[Dict[str, str]] = None
    colors: Optional[Dict[str, str]] = None
    order: Optional[List[str]] = None
    hidden: Optional[List[str]] = None
    thresholds: Optional[Dict[str, PlantThreshold]] = None


class NameUpdate(_CamelModel):
    sensor_id: str = Field(..., alias="sensorId", min_length=1)
    name: str


class ColorUpdate(_CamelModel):
    sensor_id: str = Field(..., alias="sensorId", min_length=1)
    color: str


class OrderUpdate(BaseModel):
    order: List[str]


class HiddenUpdate(BaseModel):
    hidden: List[str]


class ThresholdUpdate(PlantThreshold):
    model_config = ConfigDict(populate_by_name=True)

    sensor_id: str = Field(..., alias="sensorId", min_length=1)


class HealthResponse(_CamelModel):
    status: str = "ok"
    configured_accounts: int = Field(..., alias="configuredAccounts")
    mock_mode: bool = Field(..., alias="mockMode")
    timestamp: datetime
