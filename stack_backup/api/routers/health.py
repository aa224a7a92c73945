"""Health check endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Request
from typing import Dict
import asyncio

from ..models import HealthStatus
from ..dependencies import get_backup_manager, get_redis
from stack_backup.backup import BackupManager
from stack_backup.runtime import ContainerRuntimeError

router = APIRouter(prefix="/health", tags=["health"])


async def check_docker(backup_manager: BackupManager) -> bool:
    """Check the container runtime answers."""
    try:
        await backup_manager.runtime.list_containers()
        return True
    except ContainerRuntimeError:
        return False


async def check_redis(redis_client) -> bool:
    """Check Redis connectivity."""
    if redis_client is None:
        return True  # Jobs are tracked in-process
    return bool(await redis_client.ping())


@router.get("", response_model=HealthStatus)
async def health_check(
    request: Request,
    backup_manager: BackupManager = Depends(get_backup_manager),
    redis_client=Depends(get_redis),
) -> HealthStatus:
    """Health of the runtime, job store and scheduler."""
    docker_health, redis_health = await asyncio.gather(
        check_docker(backup_manager),
        check_redis(redis_client),
        return_exceptions=True
    )

    # Handle exceptions from gather
    docker_ok = docker_health is True
    redis_ok = redis_health is True
    scheduler = getattr(request.app.state, "scheduler", None)
    scheduler_ok = scheduler is None or not scheduler.config.enabled or scheduler.scheduler.running

    if docker_ok and redis_ok and scheduler_ok:
        status = "healthy"
    elif not docker_ok:
        status = "unhealthy"
    else:
        status = "degraded"

    return HealthStatus(
        status=status,
        docker=docker_ok,
        redis=redis_ok,
        scheduler=scheduler_ok,
        backup_running=backup_manager.is_running("backup"),
        restore_running=backup_manager.is_running("restore"),
    )


@router.get("/ready")
async def readiness_probe(
    request: Request,
    backup_manager: BackupManager = Depends(get_backup_manager),
    redis_client=Depends(get_redis),
) -> Dict[str, str]:
    """Readiness probe."""
    health = await health_check(request, backup_manager, redis_client)
    if health.status == "unhealthy":
        raise HTTPException(status_code=503, detail="Service not ready")
    return {"status": "ready"}


@router.get("/live")
async def liveness_probe() -> Dict[str, str]:
    """Liveness probe."""
    return {"status": "alive"}
