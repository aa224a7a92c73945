"""Backup and restore API endpoints."""

import uuid
from pathlib import Path
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, File, UploadFile
from fastapi.responses import FileResponse

from ..config import settings
from ..dependencies import get_backup_manager, get_job_store, get_redis
from ..exceptions import BackupNotFoundError, InvalidArchiveError, OperationInProgressError
from ..jobs import JobManager, LocalJobStore
from ..models import JobResponse, JobStatus
from stack_backup._utils import logger
from stack_backup.backup import BackupManager
from stack_backup.backup.exceptions import BackupNotFound
from stack_backup.backup.models import ArchiveInfo, ArchiveManifest
from stack_backup.backup.utils import is_archive_filename

router = APIRouter(prefix="/backup", tags=["backup"])


def get_job_manager(
    redis_client=Depends(get_redis),
    job_store: LocalJobStore = Depends(get_job_store),
) -> JobManager:
    """Dependency to get JobManager instance."""
    return JobManager(redis_client, job_store, settings.job_ttl, settings.max_local_jobs)


async def _create_backup_task(
    backup_manager: BackupManager,
    job_manager: JobManager,
    job_id: str
):
    """Background task to create backup."""
    await job_manager.update_job_status(job_id, JobStatus.PROCESSING)
    try:
        result = await backup_manager.create_backup()
    except Exception as e:
        logger.error(f"Backup job {job_id} failed: {e}")
        await job_manager.update_job_status(job_id, JobStatus.FAILED, str(e))
        return

    await job_manager.update_job_status(job_id, JobStatus.COMPLETED, result=result.to_wire())
    logger.info(f"Backup job {job_id} completed: {result.filename}")


@router.post("", response_model=JobResponse)
async def create_backup(
    background_tasks: BackgroundTasks,
    backup_manager: BackupManager = Depends(get_backup_manager),
    job_manager: JobManager = Depends(get_job_manager),
) -> JobResponse:
    """Start a backup in the background.

    Returns job ID for tracking; live progress is pushed on the progress WebSocket.
    """
    if backup_manager.is_running("backup"):
        raise OperationInProgressError("backup")

    job = await job_manager.create_job(job_type="backup", metadata={"operation": "backup"})
    background_tasks.add_task(_create_backup_task, backup_manager, job_manager, job.job_id)
    return job


@router.get("", response_model=List[ArchiveInfo])
async def list_backups(
    backup_manager: BackupManager = Depends(get_backup_manager)
) -> List[ArchiveInfo]:
    """List all available backups, newest first."""
    return backup_manager.list_backups()


@router.get("/{filename}/manifest", response_model=ArchiveManifest)
async def describe_backup(
    filename: str,
    backup_manager: BackupManager = Depends(get_backup_manager)
) -> ArchiveManifest:
    """Show which components an archive contains."""
    try:
        return backup_manager.catalog.describe(filename)
    except BackupNotFound:
        raise BackupNotFoundError(filename)


@router.get("/{filename}/download")
async def download_backup(
    filename: str,
    backup_manager: BackupManager = Depends(get_backup_manager)
) -> FileResponse:
    """Download a backup archive."""
    backup_path = backup_manager.get_backup_path(filename)

    if filename != Path(filename).name or not backup_path.is_file():
        raise BackupNotFoundError(filename)

    return FileResponse(
        path=backup_path,
        media_type="application/gzip",
        filename=filename,
    )


async def _restore_backup_task(
    backup_manager: BackupManager,
    job_manager: JobManager,
    job_id: str,
    upload_path: Path
):
    """Background task to restore backup."""
    await job_manager.update_job_status(job_id, JobStatus.PROCESSING)
    try:
        result = await backup_manager.restore_backup(str(upload_path))
    except Exception as e:
        logger.error(f"Restore job {job_id} failed: {e}")
        await job_manager.update_job_status(job_id, JobStatus.FAILED, str(e))
        return
    finally:
        # Uploads are staging copies outside the catalog, drop them either way
        upload_path.unlink(missing_ok=True)

    await job_manager.update_job_status(job_id, JobStatus.COMPLETED, result=result.to_wire())
    logger.info(f"Restore job {job_id} completed")


@router.post("/restore", response_model=JobResponse)
async def restore_backup(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    backup_manager: BackupManager = Depends(get_backup_manager),
    job_manager: JobManager = Depends(get_job_manager),
) -> JobResponse:
    """Restore from an uploaded backup archive.

    Upload a .tar.gz file to restore the stack state.
    Returns job ID for tracking restore progress.
    """
    if not file.filename or not is_archive_filename(file.filename):
        raise InvalidArchiveError(file.filename or "")
    if backup_manager.is_running("restore"):
        raise OperationInProgressError("restore")

    upload_dir = Path(backup_manager.config.tmp_root)
    upload_dir.mkdir(parents=True, exist_ok=True)
    upload_path = upload_dir / f"stack-backup-upload-{uuid.uuid4().hex}.tar.gz"

    size = 0
    with open(upload_path, "wb") as f:
        while chunk := await file.read(settings.upload_chunk_size):
            f.write(chunk)
            size += len(chunk)

    logger.info(f"Uploaded backup file: {file.filename} ({size:,} bytes)")

    job = await job_manager.create_job(
        job_type="restore",
        metadata={"operation": "restore", "filename": file.filename, "size": size},
    )
    background_tasks.add_task(_restore_backup_task, backup_manager, job_manager, job.job_id, upload_path)
    return job


@router.delete("/{filename}")
async def delete_backup(
    filename: str,
    backup_manager: BackupManager = Depends(get_backup_manager)
) -> dict:
    """Delete a backup archive."""
    try:
        backup_manager.delete_backup(filename)
    except BackupNotFound:
        raise BackupNotFoundError(filename)

    return {"success": True, "message": f"Backup deleted: {filename}"}
