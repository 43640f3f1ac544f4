"""HTTP route definitions for the service."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.schemas import (
    AdvisoryResult,
    FarmCreate,
    MemberCreate,
    ReadingAccepted,
    ReadingCreate,
    SensorCreate,
)
from models.records import Farm
from services.pipeline import AdvisoryService, StaleRunError, build_default_service

router = APIRouter()


def get_service() -> AdvisoryService:
    return build_default_service()


@router.post(
    "/farms",
    status_code=status.HTTP_201_CREATED,
    response_model=FarmCreate,
    summary="Register or replace a farm.",
)
async def create_farm(
    payload: FarmCreate,
    service: AdvisoryService = Depends(get_service),
) -> FarmCreate:
    service.store.put_farm(
        Farm(
            farm_id=payload.farm_id,
            name=payload.name,
            location=payload.location,
            notes=payload.notes,
        )
    )
    return payload


@router.post(
    "/farms/{farm_id}/members",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Give a user access to a farm.",
)
async def add_farm_member(
    farm_id: str,
    payload: MemberCreate,
    service: AdvisoryService = Depends(get_service),
) -> None:
    try:
        service.store.add_member(farm_id, payload.user_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc.args[0]),
        ) from exc


@router.post(
    "/farms/{farm_id}/sensors",
    status_code=status.HTTP_201_CREATED,
    response_model=SensorCreate,
    summary="Attach a sensor to a farm.",
)
async def create_sensor(
    farm_id: str,
    payload: SensorCreate,
    service: AdvisoryService = Depends(get_service),
) -> SensorCreate:
    try:
        service.store.put_sensor(
            payload.sensor_id,
            farm_id,
            name=payload.name,
            sensor_type=payload.type,
            unit=payload.unit,
        )
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc.args[0]),
        ) from exc
    return payload


@router.post(
    "/sensors/{sensor_id}/readings",
    status_code=status.HTTP_201_CREATED,
    response_model=ReadingAccepted,
    summary="Record a sensor reading.",
)
async def create_reading(
    sensor_id: str,
    payload: ReadingCreate,
    service: AdvisoryService = Depends(get_service),
) -> ReadingAccepted:
    try:
        observed_at = service.store.put_reading(
            sensor_id, payload.value, payload.observed_at
        )
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc.args[0]),
        ) from exc
    return ReadingAccepted(sensor_id=sensor_id, observed_at=observed_at)


@router.post(
    "/users/{user_id}/suggestions/refresh",
    response_model=AdvisoryResult,
    summary="Rebuild the suggestion list for a user from the latest readings.",
)
async def refresh_suggestions(
    user_id: str,
    service: AdvisoryService = Depends(get_service),
) -> AdvisoryResult:
    try:
        return await service.refresh(user_id)
    except StaleRunError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc


@router.get(
    "/users/{user_id}/suggestions",
    response_model=AdvisoryResult,
    summary="Fetch the most recently published suggestions for a user.",
)
async def get_suggestions(
    user_id: str,
    service: AdvisoryService = Depends(get_service),
) -> AdvisoryResult:
    result = service.current_result(user_id)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No suggestions have been generated for user {user_id!r}.",
        )
    return result


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
