"""FastAPI application for stack-backup."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import redis.asyncio as redis
from redis.exceptions import RedisError

from stack_backup.backup import BackupManager, OperationGuard, ProgressBroadcaster
from stack_backup.config import BackupConfig, ScheduleConfig
from stack_backup.credentials import CredentialStore
from stack_backup.runtime import DockerRuntime
from stack_backup.scheduler import BackupScheduler
from .config import settings
from .routers import backup, health, jobs, progress

# Configure stack-backup logger with app-managed pattern
# This ensures INFO logs are visible regardless of uvicorn's logging config
import sys
import os

package_logger = logging.getLogger("stack-backup")
package_logger.setLevel(logging.INFO)

# App-managed pattern: attach our own handler and don't propagate
package_logger.propagate = False

# Clear any existing handlers to avoid duplicates
package_logger.handlers.clear()

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.INFO)

formatter = logging.Formatter(
    '%(asctime)s - [%(name)s] - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
console_handler.setFormatter(formatter)
package_logger.addHandler(console_handler)

# Allow disabling app-managed logging via env var for production
if os.getenv("DISABLE_APP_LOGGING", "false").lower() == "true":
    package_logger.handlers.clear()
    package_logger.propagate = True  # Fall back to server-managed pattern

logger = logging.getLogger(__name__)


def build_backup_manager(config: BackupConfig, broadcaster: ProgressBroadcaster) -> BackupManager:
    """Wire the orchestrator to its default collaborators."""
    return BackupManager(
        runtime=DockerRuntime(docker_bin=config.docker_bin, default_timeout=config.command_timeout),
        credentials=CredentialStore(config.credentials_path),
        config=config,
        broadcaster=broadcaster,
        guard=OperationGuard(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage orchestrator, scheduler and job store lifecycle."""
    logger.info("Initializing backup services...")

    config = BackupConfig.from_env()
    app.state.broadcaster = ProgressBroadcaster(send_timeout=settings.progress_send_timeout)
    app.state.backup_manager = build_backup_manager(config, app.state.broadcaster)
    app.state.job_store = {}
    logger.info(f"Backups stored in {config.backup_dir} (keeping {config.max_backups})")

    # Initialize Redis client for job tracking if Redis URL is configured
    app.state.redis_client = None
    if settings.redis_url:
        try:
            app.state.redis_client = redis.from_url(
                settings.redis_url,
                password=settings.redis_password,
                encoding="utf-8",
                decode_responses=True
            )
            await app.state.redis_client.ping()
            logger.info("Redis client initialized for job tracking")
        except (RedisError, OSError) as e:
            logger.warning(f"Failed to initialize Redis client: {e}")
            app.state.redis_client = None
    else:
        logger.info("Redis not configured - jobs tracked in-process")

    app.state.scheduler = BackupScheduler(app.state.backup_manager, ScheduleConfig.from_env())
    app.state.scheduler.start()

    yield

    # Cleanup
    logger.info("Shutting down backup services...")
    app.state.scheduler.shutdown()
    if app.state.redis_client:
        await app.state.redis_client.close()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(jobs.router, prefix=settings.api_prefix)
    app.include_router(backup.router, prefix=settings.api_prefix)
    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(progress.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "docs": f"{settings.api_prefix}/docs"
        }

    return app


# Create default app instance
app = create_app()
