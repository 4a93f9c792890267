"""Health check endpoints for claimflow."""

import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from claimflow import __version__
from claimflow.api.dependencies import PreferencesDep, StorageDep
from claimflow.config import get_settings
from claimflow.pipeline import get_all_supported_carriers
from claimflow.preferences import MappingPreferenceStore
from claimflow.utils.storage import UploadStorage

router = APIRouter(tags=["health"])

_started_at = time.monotonic()


class ComponentCheck(BaseModel):
    """Result of checking one component."""

    status: str = Field(..., description="healthy, degraded or unhealthy")
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status != "unhealthy"


class HealthStatus(BaseModel):
    status: str = Field(..., description="Health status: 'healthy'")
    timestamp: datetime
    version: str


class LivenessStatus(BaseModel):
    status: str = Field(..., description="Status: 'alive'")
    uptime_seconds: float = Field(..., description="Seconds since the process started")


class ReadinessStatus(BaseModel):
    """Readiness of the service to accept uploads."""

    status: str = Field(..., description="'ready' or 'not_ready'")
    timestamp: datetime
    checks: dict[str, ComponentCheck]


class DetailedHealthStatus(BaseModel):
    """Component checks plus non-secret configuration."""

    status: str = Field(..., description="'healthy' or 'unhealthy'")
    timestamp: datetime
    version: str
    environment: str
    uptime_seconds: float
    checks: dict[str, ComponentCheck]
    config: dict[str, Any]


def _uptime() -> float:
    return round(time.monotonic() - _started_at, 2)


def check_storage(storage: UploadStorage) -> ComponentCheck:
    """Probe that the uploads directory accepts writes."""
    path = storage.base_path
    probe = path / ".health_check"
    try:
        path.mkdir(parents=True, exist_ok=True)
        probe.write_text("ok")
        probe.unlink()
    except OSError as e:
        return ComponentCheck(status="unhealthy", details={"path": str(path), "error": str(e)})
    return ComponentCheck(
        status="healthy",
        details={"path": str(path), "writable": True, "uploads": len(storage.list_sessions())},
    )


def check_carriers() -> ComponentCheck:
    carriers = get_all_supported_carriers()
    return ComponentCheck(
        status="healthy" if carriers else "unhealthy",
        details={"count": len(carriers), "carriers": carriers},
    )


def check_preferences(store: MappingPreferenceStore) -> ComponentCheck:
    """Saved mappings are optional, so an unreachable store only degrades."""
    stats = store.stats()
    if stats.get("connected", True):
        return ComponentCheck(status="healthy", details=stats)
    return ComponentCheck(
        status="degraded",
        details={**stats, "note": "Saved column mappings unavailable"},
    )


def _all_ok(checks: dict[str, ComponentCheck]) -> bool:
    return all(check.ok for check in checks.values())


@router.get("/health", response_model=HealthStatus, summary="Basic health check")
async def health_check() -> HealthStatus:
    """Answer as long as the process serves requests."""
    return HealthStatus(status="healthy", timestamp=datetime.now(timezone.utc), version=__version__)


@router.get("/health/live", response_model=LivenessStatus, summary="Liveness probe")
async def liveness_check() -> LivenessStatus:
    return LivenessStatus(status="alive", uptime_seconds=_uptime())


@router.get("/health/ready", response_model=ReadinessStatus, summary="Readiness probe")
async def readiness_check(storage: StorageDep) -> ReadinessStatus:
    """Ready once uploads can be stored and carrier formats are loaded."""
    checks = {"storage": check_storage(storage), "carriers": check_carriers()}
    return ReadinessStatus(
        status="ready" if _all_ok(checks) else "not_ready",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/detailed", response_model=DetailedHealthStatus, summary="Detailed health check")
async def detailed_health_check(storage: StorageDep, preferences: PreferencesDep) -> DetailedHealthStatus:
    settings = get_settings()
    checks = {
        "storage": check_storage(storage),
        "carriers": check_carriers(),
        "preferences": check_preferences(preferences),
    }

    return DetailedHealthStatus(
        status="healthy" if _all_ok(checks) else "unhealthy",
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        environment=settings.environment,
        uptime_seconds=_uptime(),
        checks=checks,
        # No secrets: redis_url may carry credentials
        config={
            "uploads_path": str(settings.uploads_path),
            "max_upload_size": settings.max_upload_size,
            "stream_chunk_rows": settings.stream_chunk_rows,
            "preferences_backend": settings.preferences_backend.value,
            "preferences_ttl_days": settings.preferences_ttl_days,
            "log_level": settings.log_level,
        },
    )


@router.get("/", response_model=dict[str, str], summary="API root")
async def root() -> dict[str, str]:
    return {
        "name": "Claimflow API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }
