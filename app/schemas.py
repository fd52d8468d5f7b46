"""Pydantic schemas for the HTTP API layer and the signal store."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CoordinatesModel(BaseModel):
    x: float
    y: float


class SignalCreate(_CamelModel):
    """Summary statistics for one device batch, as accepted by the API."""

    device_id: str = Field(..., alias="deviceId", min_length=1)
    time: datetime
    data_length: int = Field(..., alias="dataLength", ge=0)
    data_volume: int = Field(..., alias="dataVolume", ge=0)
    avg_speed: float = Field(..., alias="avgSpeed")
    min_coordinates: CoordinatesModel = Field(..., alias="minCoordinates")
    max_coordinates: CoordinatesModel = Field(..., alias="maxCoordinates")


class SignalUpdate(_CamelModel):
    """Partial update; only fields present in the request body change."""

    device_id: Optional[str] = Field(default=None, alias="deviceId", min_length=1)
    time: Optional[datetime] = None
    data_length: Optional[int] = Field(default=None, alias="dataLength", ge=0)
    data_volume: Optional[int] = Field(default=None, alias="dataVolume", ge=0)
    avg_speed: Optional[float] = Field(default=None, alias="avgSpeed")
    min_coordinates: Optional[CoordinatesModel] = Field(default=None, alias="minCoordinates")
    max_coordinates: Optional[CoordinatesModel] = Field(default=None, alias="maxCoordinates")


class StoredSignal(SignalCreate):
    """Full record representing a persisted signal."""

    id: str
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")


class SignalFilter(BaseModel):
    device_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    min_data_length: Optional[int] = Field(default=None, ge=0)
    max_data_length: Optional[int] = Field(default=None, ge=0)
    min_data_volume: Optional[int] = Field(default=None, ge=0)
    max_data_volume: Optional[int] = Field(default=None, ge=0)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    sort_by: str = "createdAt"
    sort_order: Literal["asc", "desc"] = "desc"


class PaginatedSignals(_CamelModel):
    data: List[StoredSignal] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total_pages: int = Field(..., alias="totalPages", ge=0)
    has_next: bool = Field(..., alias="hasNext")
    has_previous: bool = Field(..., alias="hasPrevious")


class DeviceStats(_CamelModel):
    """Aggregate statistics over every stored signal of one device."""

    device_id: str = Field(..., alias="deviceId")
    total_signals: int = Field(..., alias="totalSignals", ge=1)
    avg_data_length: float = Field(..., alias="avgDataLength")
    avg_data_volume: float = Field(..., alias="avgDataVolume")
    avg_speed: float = Field(..., alias="avgSpeed")
    min_data_length: int = Field(..., alias="minDataLength")
    max_data_length: int = Field(..., alias="maxDataLength")
    min_data_volume: int = Field(..., alias="minDataVolume")
    max_data_volume: int = Field(..., alias="maxDataVolume")
    first_signal: datetime = Field(..., alias="firstSignal")
    last_signal: datetime = Field(..., alias="lastSignal")


class SendResponse(_CamelModel):
    success: bool
    message: str
    data_size: Optional[int] = Field(default=None, alias="dataSize")


class BatchResponse(BaseModel):
    success: bool
    sent: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
