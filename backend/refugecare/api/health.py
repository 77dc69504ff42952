"""
RefugeCare Triage - System Endpoints

Probes and non-sensitive configuration for load balancers, monitoring,
and operational visibility.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from refugecare.config import Settings

from .routes import get_settings

router = APIRouter(prefix="/api/system", tags=["system"])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/ready")
async def readiness_check() -> dict:
    """
    Readiness probe for container orchestration.

    Returns 200 if the service is ready to accept requests.
    """
    return {
        "ready": True,
        "timestamp": _timestamp(),
    }


@router.get("/live")
async def liveness_check() -> dict:
    """Liveness probe."""
    return {
        "alive": True,
        "timestamp": _timestamp(),
    }


@router.get("/config")
async def config_info(
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    Non-sensitive configuration information.

    Excludes the oracle URL and API key.
    """
    return {
        "environment": settings.app_env,
        "debug": settings.app_debug,
        "production": settings.is_production,
        "log_level": settings.app_log_level,
        "matching": {
            "nearest_facility_limit": settings.nearest_facility_limit,
            "nearby_search_radius_km": settings.nearby_search_radius_km,
        },
        "lifecycle": {
            "enforce_status_transitions": settings.enforce_status_transitions,
        },
        "oracle": {
            "backend": settings.oracle_backend,
            "model": settings.oracle_model if settings.oracle_backend != "none" else None,
            "timeout_seconds": settings.oracle_timeout_seconds,
        },
        "privacy": {
            "anonymize_logs": settings.anonymize_logs,
        },
        "timestamp": _timestamp(),
    }
