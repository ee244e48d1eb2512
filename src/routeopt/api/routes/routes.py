"""Routing endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from ...schemas.routing import JobSubmissionResponse, RouteRequest, RouteResponse
from ...services.outputs.routing_formatter import aggregated_result_to_response
from ...services.routing.errors import CollaboratorError, DispatchError
from ...services.routing.models import AggregatedResult
from ...services.routing.service import RouteOptimizationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/route", tags=["route"])


def get_route_service(request: Request) -> RouteOptimizationService:
    runtime = getattr(request.app.state, "routing", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Routing service is not running.",
        )
    return runtime.service


def _respond(result: AggregatedResult) -> JSONResponse:
    body = aggregated_result_to_response(result).model_dump(exclude_none=True)
    status_code = status.HTTP_200_OK if result.ok else status.HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=status_code, content=body)


@router.post("/optimize", response_model=RouteResponse, response_model_exclude_none=True)
def optimize(payload: RouteRequest, service: RouteOptimizationService = Depends(get_route_service)):
    try:
        result = service.optimize(payload.start, payload.domain_stops())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except CollaboratorError as exc:
        logger.error(f"Route optimization failed: {exc}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Route optimization failed: {exc}",
        ) from exc
    except DispatchError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return _respond(result)


@router.post("/jobs", response_model=JobSubmissionResponse, status_code=status.HTTP_202_ACCEPTED)
def submit_job(
    payload: RouteRequest, service: RouteOptimizationService = Depends(get_route_service)
) -> JobSubmissionResponse:
    stops = payload.domain_stops()
    try:
        job_id = service.submit(payload.start, stops)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DispatchError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return JobSubmissionResponse(job_id=job_id, total_batches=service.batch_count(len(stops)), stop_count=len(stops))


@router.get("/jobs/{job_id}", response_model=RouteResponse, response_model_exclude_none=True)
def fetch_job(
    job_id: str,
    timeout_seconds: float | None = Query(default=None, gt=0, description="Defaults to the configured job timeout."),
    service: RouteOptimizationService = Depends(get_route_service),
):
    """Wait for a submitted job. The job is forgotten once this returns."""
    return _respond(service.fetch(job_id, timeout_seconds))
