"""Global pytest configuration and fixtures."""

import json
import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from stack_backup.backup import BackupManager, ProgressBroadcaster
from stack_backup.config import BackupConfig
from stack_backup.credentials import CredentialStore
from tests.backup.fakes import FakeRuntime, RecordingObserver


@pytest.fixture
def stack_paths(tmp_path):
    """Live config files plus archive and staging directories."""
    etc = tmp_path / "etc"
    etc.mkdir()
    config_path = etc / "config.json"
    credentials_path = etc / "credentials.json"
    config_path.write_text(json.dumps({"domain": "example.com"}))
    credentials_path.write_text(json.dumps({"postgres": {"password": "s3cret"}}))
    return {
        "backup_dir": tmp_path / "backups",
        "tmp_root": tmp_path / "tmp",
        "config_path": config_path,
        "credentials_path": credentials_path,
    }


@pytest.fixture
def backup_config(stack_paths):
    (stack_paths["tmp_root"]).mkdir()
    return BackupConfig(
        backup_dir=str(stack_paths["backup_dir"]),
        config_path=str(stack_paths["config_path"]),
        credentials_path=str(stack_paths["credentials_path"]),
        tmp_root=str(stack_paths["tmp_root"]),
    )


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def manager(fake_runtime, backup_config, observer):
    broadcaster = ProgressBroadcaster()
    broadcaster.subscribe(observer)
    return BackupManager(
        runtime=fake_runtime,
        credentials=CredentialStore(backup_config.credentials_path),
        config=backup_config,
        broadcaster=broadcaster,
    )
