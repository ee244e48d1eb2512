"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request, status

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


def _get_osrm_health_check():
    """Lazy import to avoid startup failures."""
    from ...services.routing.osrm_client import check_health as osrm_health_check
    return osrm_health_check


@router.get("/health/osrm", status_code=status.HTTP_200_OK)
def health_osrm() -> dict:
    """Check OSRM service health."""
    osrm_health_check = _get_osrm_health_check()
    return {"service": "osrm", "healthy": osrm_health_check()}


@router.get("/health/jobs", status_code=status.HTTP_200_OK)
def health_jobs(request: Request) -> dict:
    """Report batch workers and jobs still waiting for results."""
    runtime = getattr(request.app.state, "routing", None)
    if runtime is None:
        return {"workers_running": False, "queued_batches": 0, "pending_jobs": []}
    return {
        "workers_running": runtime.pool.running,
        "queued_batches": runtime.batch_queue.qsize(),
        "pending_jobs": [
            {
                "job_id": job.job_id,
                "expected_batches": job.expected_batches,
                "received_batches": job.received_batches,
                "age_seconds": round(job.age_seconds, 1),
            }
            for job in runtime.job_store.pending_jobs()
        ],
    }
