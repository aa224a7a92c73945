"""Tests for backup API endpoints."""

import io
import tarfile
import time
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from stack_backup.api.app import create_app
from stack_backup.api.dependencies import get_broadcaster
from stack_backup.api.jobs import JobManager
from stack_backup.api.models import JobStatus
from stack_backup.backup import ProgressBroadcaster
from stack_backup.runtime import RuntimeCommandError


@pytest.fixture
def mock_app(manager):
    """Create test FastAPI app wired to a manager over the fake runtime."""
    app = create_app()

    app.state.backup_manager = manager
    app.state.broadcaster = manager.broadcaster
    app.state.job_store = {}
    app.state.redis_client = None

    return app


@pytest.fixture
def client(mock_app):
    """Create test client."""
    return TestClient(mock_app)


def backup_payload(tmp_path):
    staging = tmp_path / "upload-staging"
    (staging / "configs").mkdir(parents=True)
    (staging / "configs" / "config.json").write_text('{"domain": "restored.example.com"}')
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        tar.add(staging / "configs", arcname="configs")
    return buffer.getvalue()


def test_create_backup_endpoint(client, manager):
    """Test POST /backup runs the backup as a tracked job."""
    response = client.post("/api/backup")

    assert response.status_code == 200
    job = response.json()
    assert job["job_type"] == "backup"
    assert job["status"] == "pending"

    # Background tasks run before TestClient returns
    job_response = client.get(f"/api/jobs/{job['job_id']}")
    assert job_response.status_code == 200
    finished = job_response.json()
    assert finished["status"] == "completed"
    assert finished["result"]["includes"] == {"postgres": True, "evolution": True, "configs": True}
    assert finished["result"]["filename"] == manager.list_backups()[0].filename
    assert "sizeFormatted" in finished["result"]


def test_create_backup_failure_marks_job_failed(client, manager, monkeypatch):
    async def broken_archive(*args, **kwargs):
        raise OSError("No space left on device")

    monkeypatch.setattr("stack_backup.backup.manager.create_archive", broken_archive)

    job = client.post("/api/backup").json()
    finished = client.get(f"/api/jobs/{job['job_id']}").json()

    assert finished["status"] == "failed"
    assert finished["error"] == "Backup failed: No space left on device"


@pytest.mark.asyncio
async def test_create_backup_conflict(client, manager):
    """Test POST /backup while a backup is running."""
    async with manager.guard.hold("backup"):
        response = client.post("/api/backup")

    assert response.status_code == 409
    assert response.json()["detail"] == "Backup already in progress"


def test_list_backups_endpoint(client, stack_paths):
    """Test GET /backup lists archives newest first."""
    backup_dir = stack_paths["backup_dir"]
    backup_dir.mkdir()
    (backup_dir / "backup-2024-05-01T03-00-00.tar.gz").write_bytes(b"x" * 2048)
    (backup_dir / "backup-2024-05-02T03-00-00.tar.gz").write_bytes(b"x" * 10)
    (backup_dir / "readme.txt").write_text("not a backup")

    response = client.get("/api/backup")

    assert response.status_code == 200
    data = response.json()
    assert [b["filename"] for b in data] == [
        "backup-2024-05-02T03-00-00.tar.gz",
        "backup-2024-05-01T03-00-00.tar.gz",
    ]
    assert data[1]["size"] == 2048
    assert data[1]["sizeFormatted"] == "2 KB"
    assert "date" in data[1]


def test_manifest_endpoint(client, manager):
    client.post("/api/backup")
    filename = manager.list_backups()[0].filename

    response = client.get(f"/api/backup/{filename}/manifest")

    assert response.status_code == 200
    assert response.json() == {
        "filename": filename,
        "databases": ["evolution", "n8n"],
        "postgres": True,
        "evolution": True,
        "configs": True,
    }


def test_download_backup_endpoint(client, stack_paths):
    """Test GET /backup/{filename}/download."""
    backup_dir = stack_paths["backup_dir"]
    backup_dir.mkdir()
    (backup_dir / "backup-2024-05-01T03-00-00.tar.gz").write_bytes(b"archive-bytes")

    response = client.get("/api/backup/backup-2024-05-01T03-00-00.tar.gz/download")

    assert response.status_code == 200
    assert response.content == b"archive-bytes"
    assert response.headers["content-type"] == "application/gzip"
    assert "backup-2024-05-01T03-00-00.tar.gz" in response.headers["content-disposition"]


def test_download_missing_backup(client):
    response = client.get("/api/backup/backup-2099-01-01T00-00-00.tar.gz/download")

    assert response.status_code == 404
    assert response.json()["detail"] == "Backup not found: backup-2099-01-01T00-00-00.tar.gz"


def test_delete_backup_endpoint(client, stack_paths):
    """Test DELETE /backup/{filename}."""
    backup_dir = stack_paths["backup_dir"]
    backup_dir.mkdir()
    (backup_dir / "backup-2024-05-01T03-00-00.tar.gz").write_bytes(b"x")

    response = client.delete("/api/backup/backup-2024-05-01T03-00-00.tar.gz")

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Backup deleted: backup-2024-05-01T03-00-00.tar.gz",
    }
    assert client.get("/api/backup").json() == []

    response = client.delete("/api/backup/backup-2024-05-01T03-00-00.tar.gz")
    assert response.status_code == 404


def test_restore_backup_endpoint(client, stack_paths, tmp_path):
    """Test POST /backup/restore with an uploaded archive."""
    response = client.post(
        "/api/backup/restore",
        files={"file": ("my-backup.tar.gz", backup_payload(tmp_path), "application/gzip")},
    )

    assert response.status_code == 200
    job = response.json()
    assert job["job_type"] == "restore"
    assert job["metadata"]["filename"] == "my-backup.tar.gz"

    finished = client.get(f"/api/jobs/{job['job_id']}").json()
    assert finished["status"] == "completed"
    assert finished["result"]["restored"] == {"postgres": False, "evolution": False, "configs": True}
    assert "restored.example.com" in stack_paths["config_path"].read_text()

    # The staged upload is gone
    assert list(stack_paths["tmp_root"].iterdir()) == []


def test_restore_corrupt_upload_fails_job(client, stack_paths):
    response = client.post(
        "/api/backup/restore",
        files={"file": ("broken.tar.gz", b"not gzip at all", "application/gzip")},
    )

    finished = client.get(f"/api/jobs/{response.json()['job_id']}").json()
    assert finished["status"] == "failed"
    assert finished["error"].startswith("Restore failed: ")
    assert list(stack_paths["tmp_root"].iterdir()) == []


def test_restore_unexpected_error_fails_job(client, manager, stack_paths, monkeypatch):
    """Test that errors outside the backup hierarchy still finish the job."""
    monkeypatch.setattr(manager, "restore_backup", AsyncMock(side_effect=OSError("Directory not empty")))

    response = client.post(
        "/api/backup/restore",
        files={"file": ("my-backup.tar.gz", b"payload", "application/gzip")},
    )

    finished = client.get(f"/api/jobs/{response.json()['job_id']}").json()
    assert finished["status"] == "failed"
    assert finished["error"] == "Directory not empty"
    assert list(stack_paths["tmp_root"].iterdir()) == []


def test_restore_rejects_wrong_extension(client):
    """Test POST /backup/restore with a non-archive upload."""
    response = client.post(
        "/api/backup/restore",
        files={"file": ("backup.zip", b"PK", "application/zip")},
    )

    assert response.status_code == 400
    assert "tar.gz" in response.json()["detail"]


@pytest.mark.asyncio
async def test_restore_conflict(client, manager, tmp_path):
    async with manager.guard.hold("restore"):
        response = client.post(
            "/api/backup/restore",
            files={"file": ("b.tar.gz", backup_payload(tmp_path), "application/gzip")},
        )

    assert response.status_code == 409


def test_jobs_endpoint_lists_newest_first(client):
    first = client.post("/api/backup").json()
    second = client.post("/api/backup").json()

    response = client.get("/api/jobs")

    assert response.status_code == 200
    ids = [job["job_id"] for job in response.json()]
    assert ids == [second["job_id"], first["job_id"]]

    completed = client.get("/api/jobs", params={"status": "completed"}).json()
    assert len(completed) == 2


def test_unknown_job(client):
    response = client.get("/api/jobs/does-not-exist")

    assert response.status_code == 404


def test_progress_websocket_receives_events(client, manager):
    """Test that a connected observer sees the backup lifecycle."""
    with client.websocket_connect("/api/ws/progress") as websocket:
        # Subscription happens right after the handshake on the server side
        for _ in range(200):
            if manager.broadcaster.observer_count == 2:
                break
            time.sleep(0.01)

        client.post("/api/backup")

        first = websocket.receive_json()
        assert first["type"] == "backup"
        assert first["status"] == "started"

        events = [first]
        while events[-1].get("status") not in ("completed", "error"):
            events.append(websocket.receive_json())

    steps = [e["step"] for e in events if "step" in e]
    assert steps[0] == "PostgreSQL dump..."
    assert "Compressing..." in steps
    assert events[-1]["status"] == "completed"
    assert events[-1]["includes"]["configs"] is True


def test_progress_websocket_resolves_broadcaster_dependency(mock_app, manager):
    """Test that the socket subscribes to whatever get_broadcaster provides."""
    other = ProgressBroadcaster()
    mock_app.dependency_overrides[get_broadcaster] = lambda: other
    client = TestClient(mock_app)

    with client.websocket_connect("/api/ws/progress"):
        for _ in range(200):
            if other.observer_count == 1:
                break
            time.sleep(0.01)
        assert other.observer_count == 1
        assert manager.broadcaster.observer_count == 1

    for _ in range(200):
        if other.observer_count == 0:
            break
        time.sleep(0.01)
    assert other.observer_count == 0


def test_health_endpoint(client, fake_runtime):
    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["docker"] is True
    assert data["backup_running"] is False


def test_health_unhealthy_when_docker_down(client, fake_runtime):
    fake_runtime.list_containers = AsyncMock(side_effect=RuntimeCommandError(["docker"], 1, "daemon down"))

    assert client.get("/api/health").json()["status"] == "unhealthy"
    assert client.get("/api/health/ready").status_code == 503
    assert client.get("/api/health/live").json() == {"status": "alive"}


@pytest.mark.asyncio
async def test_job_manager_local_store():
    """Test JobManager without Redis keeps jobs in the given dict."""
    store = {}
    jobs = JobManager(local_store=store)

    job = await jobs.create_job("backup")
    assert f"job:{job.job_id}" in store

    assert await jobs.update_job_status(job.job_id, JobStatus.FAILED, error="boom") is True
    loaded = await jobs.get_job(job.job_id)
    assert loaded.status == JobStatus.FAILED
    assert loaded.error == "boom"
    assert loaded.completed_at is not None

    assert await jobs.update_job_status("missing", JobStatus.COMPLETED) is False


@pytest.mark.asyncio
async def test_job_manager_local_store_expires_jobs():
    store = {}
    jobs = JobManager(local_store=store, job_ttl=60)
    stale = await jobs.create_job("backup")

    # Age the entry past its ttl
    store[f"job:{stale.job_id}"] = (time.monotonic() - 1, store[f"job:{stale.job_id}"][1])

    assert await jobs.get_job(stale.job_id) is None
    assert f"job:{stale.job_id}" not in store

    fresh = await jobs.create_job("backup")
    assert [job.job_id for job in await jobs.list_jobs()] == [fresh.job_id]


@pytest.mark.asyncio
async def test_job_manager_local_store_is_bounded():
    store = {}
    jobs = JobManager(local_store=store, max_local_jobs=2)

    first = await jobs.create_job("backup")
    second = await jobs.create_job("backup")
    third = await jobs.create_job("restore")

    assert len(store) == 2
    assert await jobs.get_job(first.job_id) is None
    assert await jobs.get_job(second.job_id) is not None
    assert await jobs.get_job(third.job_id) is not None


@pytest.mark.asyncio
async def test_job_manager_redis_backend():
    redis_client = AsyncMock()
    saved = {}

    async def setex(key, ttl, value):
        saved[key] = value

    async def get(key):
        return saved.get(key)

    redis_client.setex.side_effect = setex
    redis_client.get.side_effect = get
    jobs = JobManager(redis_client, job_ttl=60)

    job = await jobs.create_job("restore", metadata={"filename": "b.tar.gz"})
    redis_client.setex.assert_awaited_with(f"job:{job.job_id}", 60, saved[f"job:{job.job_id}"])

    redis_client.scan.return_value = (0, list(saved))
    listed = await jobs.list_jobs()
    assert [j.job_id for j in listed] == [job.job_id]
