"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status

from app.schemas import (
    BatchResponse,
    DeviceStats,
    PaginatedSignals,
    SendResponse,
    SignalCreate,
    SignalFilter,
    SignalUpdate,
    StoredSignal,
)
from services.pipeline import Pipeline, build_default_pipeline
from services.producer import ProducerService
from services.signals import SignalService, build_default_signal_service

router = APIRouter()


def get_pipeline() -> Pipeline:
    return build_default_pipeline()


def get_producer(pipeline: Pipeline = Depends(get_pipeline)) -> ProducerService:
    return pipeline.producer


def get_signals() -> SignalService:
    return build_default_signal_service()


def get_signal_filter(
    device_id: Optional[str] = Query(None, alias="deviceId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    min_data_length: Optional[int] = Query(None, alias="minDataLength", ge=0),
    max_data_length: Optional[int] = Query(None, alias="maxDataLength", ge=0),
    min_data_volume: Optional[int] = Query(None, alias="minDataVolume", ge=0),
    max_data_volume: Optional[int] = Query(None, alias="maxDataVolume", ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
) -> SignalFilter:
    return SignalFilter(
        device_id=device_id,
        start_date=start_date,
        end_date=end_date,
        min_data_length=min_data_length,
        max_data_length=max_data_length,
        min_data_volume=min_data_volume,
        max_data_volume=max_data_volume,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.post(
    "/producer/send",
    response_model=SendResponse,
    summary="Publish the sample x-ray message.",
)
def send_sample_data(producer: ProducerService = Depends(get_producer)) -> SendResponse:
    result = producer.send_sample_data()
    return SendResponse(success=result.success, message=result.message, data_size=result.data_size)


@router.post(
    "/producer/send-custom",
    response_model=SendResponse,
    response_model_exclude_none=True,
    summary="Publish a caller-supplied x-ray message.",
)
def send_custom_data(
    data: Any = Body(..., description="X-ray message keyed by device id."),
    producer: ProducerService = Depends(get_producer),
) -> SendResponse:
    result = producer.send_custom_data(data)
    return SendResponse(success=result.success, message=result.message)


@router.post(
    "/producer/send-batch",
    response_model=BatchResponse,
    summary="Publish a series of generated x-ray messages.",
)
def send_batch_data(
    count: int = Query(10, ge=1, le=1000),
    delay_ms: int = Query(1000, alias="delayMs", ge=0),
    producer: ProducerService = Depends(get_producer),
) -> BatchResponse:
    result = producer.send_batch_data(count=count, delay_ms=delay_ms)
    return BatchResponse(success=result.success, sent=result.sent, failed=result.failed)


@router.post(
    "/signals",
    status_code=status.HTTP_201_CREATED,
    response_model=StoredSignal,
    summary="Create a new signal.",
)
async def create_signal(
    payload: SignalCreate,
    signals: SignalService = Depends(get_signals),
) -> StoredSignal:
    return signals.create(payload)


@router.get(
    "/signals",
    response_model=PaginatedSignals,
    summary="List signals with pagination.",
)
async def list_signals(
    filters: SignalFilter = Depends(get_signal_filter),
    signals: SignalService = Depends(get_signals),
) -> PaginatedSignals:
    return _find_all(signals, filters)


@router.get(
    "/signals/filter",
    response_model=PaginatedSignals,
    summary="Advanced filtering for signals.",
)
async def filter_signals(
    filters: SignalFilter = Depends(get_signal_filter),
    signals: SignalService = Depends(get_signals),
) -> PaginatedSignals:
    return _find_all(signals, filters)


@router.get(
    "/signals/stats/{device_id}",
    response_model=DeviceStats,
    summary="Aggregated statistics for one device.",
)
async def get_device_statistics(
    device_id: str,
    signals: SignalService = Depends(get_signals),
) -> DeviceStats:
    try:
        return signals.device_statistics(device_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=exc.args[0],
        ) from exc


@router.get(
    "/signals/{signal_id}",
    response_model=StoredSignal,
    summary="Fetch a signal by id.",
)
async def get_signal(
    signal_id: str,
    signals: SignalService = Depends(get_signals),
) -> StoredSignal:
    try:
        return signals.find_one(signal_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=exc.args[0],
        ) from exc


@router.put(
    "/signals/{signal_id}",
    response_model=StoredSignal,
    summary="Update fields of a signal.",
)
async def update_signal(
    signal_id: str,
    payload: SignalUpdate,
    signals: SignalService = Depends(get_signals),
) -> StoredSignal:
    try:
        return signals.update(signal_id, payload)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=exc.args[0],
        ) from exc


@router.delete(
    "/signals/{signal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete a signal.",
)
async def delete_signal(
    signal_id: str,
    signals: SignalService = Depends(get_signals),
) -> Response:
    try:
        signals.remove(signal_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=exc.args[0],
        ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(pipeline: Pipeline = Depends(get_pipeline)) -> dict[str, str]:
    return {"status": "ok", "broker": pipeline.broker_state.value}


def _find_all(signals: SignalService, filters: SignalFilter) -> PaginatedSignals:
    try:
        return signals.find_all(filters)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
