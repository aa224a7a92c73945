"""Job tracking for background backup and restore runs."""
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as redis

from stack_backup._utils import logger
from stack_backup.api.models import JobResponse, JobStatus

# key -> (monotonic expiry, serialized job)
LocalJobStore = Dict[str, Tuple[float, str]]


class JobManager:
    """Manages job lifecycle and tracking with a Redis backend.

    Without Redis, jobs are kept in a process-local dict so the API still
    reports state for the lifetime of the server. Local entries expire after
    ``job_ttl`` seconds like their Redis counterparts, and at most
    ``max_local_jobs`` are kept.
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        local_store: Optional[LocalJobStore] = None,
        job_ttl: int = 604800,
        max_local_jobs: int = 1000,
    ):
        self.redis = redis_client
        self.local_store = local_store if local_store is not None else {}
        self.job_ttl = job_ttl
        self.max_local_jobs = max_local_jobs

    def _prune_local(self) -> None:
        now = time.monotonic()
        expired = [key for key, (expires_at, _) in self.local_store.items() if expires_at <= now]
        for key in expired:
            del self.local_store[key]

        overflow = len(self.local_store) - self.max_local_jobs
        if overflow > 0:
            # Least recently saved first
            oldest = sorted(self.local_store, key=lambda key: self.local_store[key][0])
            for key in oldest[:overflow]:
                del self.local_store[key]

    async def _save(self, job: JobResponse) -> None:
        key = f"job:{job.job_id}"
        payload = job.model_dump_json()
        if self.redis:
            await self.redis.setex(key, self.job_ttl, payload)
        else:
            self.local_store[key] = (time.monotonic() + self.job_ttl, payload)
            self._prune_local()

    async def _load(self, key: str) -> Optional[str]:
        if self.redis:
            return await self.redis.get(key)
        entry = self.local_store.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if expires_at <= time.monotonic():
            self.local_store.pop(key, None)
            return None
        return payload

    async def create_job(self, job_type: str, metadata: Optional[Dict] = None) -> JobResponse:
        """Create a new pending job."""
        job = JobResponse(
            job_id=str(uuid.uuid4()),
            job_type=job_type,
            status=JobStatus.PENDING,
            created_at=datetime.now(timezone.utc),
            metadata=metadata or {},
        )
        await self._save(job)

        logger.info(f"Created {job_type} job {job.job_id}")
        return job

    async def get_job(self, job_id: str) -> Optional[JobResponse]:
        job_data = await self._load(f"job:{job_id}")
        if job_data:
            return JobResponse.model_validate_json(job_data)
        return None

    async def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
        result: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Update job status."""
        job = await self.get_job(job_id)
        if not job:
            return False

        job.status = status
        if status == JobStatus.COMPLETED:
            job.result = result
            job.completed_at = datetime.now(timezone.utc)
        elif status == JobStatus.FAILED:
            job.error = error
            job.completed_at = datetime.now(timezone.utc)

        await self._save(job)

        logger.info(f"Updated job {job_id} status to {status.value}")
        return True

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        limit: int = 100
    ) -> List[JobResponse]:
        """List jobs, newest first, optionally filtered by status."""
        if self.redis:
            # Use SCAN instead of KEYS to avoid blocking Redis
            cursor = 0
            job_keys = []
            while True:
                cursor, keys = await self.redis.scan(cursor, match="job:*", count=100)
                job_keys.extend(keys)
                if cursor == 0 or len(job_keys) >= limit * 2:
                    break
        else:
            job_keys = list(self.local_store)

        jobs = []
        for key in job_keys:
            job_data = await self._load(key)
            if not job_data:
                continue
            try:
                job = JobResponse.model_validate_json(job_data)
            except ValueError as e:
                logger.warning(f"Failed to parse job data for {key}: {e}")
                continue
            if status is None or job.status == status:
                jobs.append(job)

        jobs.sort(key=lambda x: x.created_at, reverse=True)
        return jobs[:limit]
