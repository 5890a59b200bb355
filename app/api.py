"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.schemas import (
    DataPointsRequest,
    NetworkStatistics,
    VerificationOutcome,
    VerificationRequest,
    VerificationResponse,
)
from models.errors import AggregationUnavailableError, InvalidInputError, LocationUnavailableError
from services.orchestrator import TierResult
from services.pipeline import PipelineService, build_default_pipeline

router = APIRouter()

_TIER_HEADER = "X-Aggregation-Tier"


def get_pipeline() -> PipelineService:
    return build_default_pipeline()


def _statistics_response(result: TierResult, response: Response) -> List[NetworkStatistics]:
    response.headers[_TIER_HEADER] = result.tier
    return result.statistics


@router.get(
    "/statistics",
    response_model=List[NetworkStatistics],
    summary="Per-network statistics over every retrievable archive.",
)
async def get_statistics(
    response: Response,
    pipeline: PipelineService = Depends(get_pipeline),
) -> List[NetworkStatistics]:
    try:
        result = await pipeline.statistics_by_network()
    except AggregationUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return _statistics_response(result, response)


@router.post(
    "/statistics",
    response_model=List[NetworkStatistics],
    summary="Per-network statistics over a submitted batch of measurements.",
)
async def post_statistics(
    request: DataPointsRequest,
    response: Response,
    pipeline: PipelineService = Depends(get_pipeline),
) -> List[NetworkStatistics]:
    try:
        result = await pipeline.statistics_by_network(request.to_records())
    except AggregationUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return _statistics_response(result, response)


@router.post(
    "/verify",
    response_model=VerificationResponse,
    summary="Check a claimed location against the reporter's network address.",
)
async def verify_location(
    request: VerificationRequest,
    pipeline: PipelineService = Depends(get_pipeline),
) -> VerificationResponse:
    try:
        verdict = await pipeline.verify(request.reporter_address, request.lat, request.lon)
    except InvalidInputError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except LocationUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return VerificationResponse.from_verdict(verdict)


@router.post(
    "/verifications",
    response_model=List[VerificationOutcome],
    summary="Verify every measurement in a submitted batch.",
)
async def verify_batch(
    request: DataPointsRequest,
    pipeline: PipelineService = Depends(get_pipeline),
) -> List[VerificationOutcome]:
    items = await pipeline.verify_batch(request.to_records())
    return [
        VerificationOutcome(
            index=item.index,
            verdict=VerificationResponse.from_verdict(item.verdict) if item.verdict else None,
            error=item.error,
        )
        for item in items
    ]


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
