"""Tests for the archive catalog."""

import os
import tarfile

import pytest

from stack_backup.backup import ArchiveCatalog, BackupNotFound


def make_archive(path, members):
    """Write a tar.gz whose members are the given (name, bytes) pairs."""
    staging = path.parent / f"_staging_{path.name}"
    staging.mkdir()
    for name, data in members.items():
        target = staging / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    with tarfile.open(path, "w:gz") as tar:
        for entry in sorted(staging.iterdir()):
            tar.add(entry, arcname=entry.name)


@pytest.fixture
def catalog(tmp_path):
    return ArchiveCatalog(str(tmp_path / "backups"))


def seed(catalog, *names):
    catalog.ensure_dir()
    for name in names:
        (catalog.backup_dir / name).write_bytes(b"x" * 1536)


def test_list_creates_missing_directory(catalog):
    assert catalog.list() == []
    assert catalog.backup_dir.is_dir()


def test_list_newest_first_and_ignores_other_files(catalog):
    seed(catalog, "backup-2024-05-01T03-00-00.tar.gz", "backup-2024-05-03T03-00-00.tar.gz")
    (catalog.backup_dir / "notes.txt").write_text("ignore me")
    (catalog.backup_dir / "backup-2024-05-04T03-00-00.tar.gz.part").write_bytes(b"partial")
    (catalog.backup_dir / "subdir.tar.gz").mkdir()

    archives = catalog.list()

    assert [a.filename for a in archives] == [
        "backup-2024-05-03T03-00-00.tar.gz",
        "backup-2024-05-01T03-00-00.tar.gz",
    ]
    assert archives[0].size == 1536
    assert archives[0].size_formatted == "1.5 KB"
    assert archives[0].date.endswith("+00:00")


def test_list_wire_format(catalog):
    seed(catalog, "backup-2024-05-01T03-00-00.tar.gz")
    path = catalog.resolve_path("backup-2024-05-01T03-00-00.tar.gz")
    os.utime(path, (1714532400, 1714532400))

    wire = catalog.list()[0].to_wire()

    assert wire == {
        "filename": "backup-2024-05-01T03-00-00.tar.gz",
        "size": 1536,
        "sizeFormatted": "1.5 KB",
        "date": "2024-05-01T03:00:00+00:00",
    }


def test_delete(catalog):
    seed(catalog, "backup-2024-05-01T03-00-00.tar.gz")

    catalog.delete("backup-2024-05-01T03-00-00.tar.gz")

    assert catalog.list() == []


@pytest.mark.parametrize("filename", [
    "backup-2099-01-01T00-00-00.tar.gz",
    "../secrets.tar.gz",
    "nested/backup.tar.gz",
    "..",
    "",
])
def test_delete_unknown_or_unsafe_name(catalog, tmp_path, filename):
    seed(catalog, "backup-2024-05-01T03-00-00.tar.gz")
    (tmp_path / "secrets.tar.gz").write_bytes(b"outside")

    with pytest.raises(BackupNotFound):
        catalog.delete(filename)

    assert (tmp_path / "secrets.tar.gz").exists()
    assert len(catalog.list()) == 1


def test_rotate_keeps_newest(catalog):
    names = [f"backup-2024-05-{day:02d}T03-00-00.tar.gz" for day in range(1, 11)]
    seed(catalog, *names)

    deleted = catalog.rotate(7)

    assert sorted(deleted) == names[:3]
    assert [a.filename for a in catalog.list()] == list(reversed(names[3:]))


def test_rotate_under_limit_is_noop(catalog):
    seed(catalog, "backup-2024-05-01T03-00-00.tar.gz")

    assert catalog.rotate(7) == []
    assert len(catalog.list()) == 1


def test_rotate_continues_past_undeletable_file(catalog, monkeypatch):
    names = [f"backup-2024-05-0{day}T03-00-00.tar.gz" for day in range(1, 5)]
    seed(catalog, *names)
    stuck = catalog.resolve_path(names[0])

    real_unlink = type(stuck).unlink

    def flaky_unlink(self, *args, **kwargs):
        if self == stuck:
            raise PermissionError("read-only")
        return real_unlink(self, *args, **kwargs)

    monkeypatch.setattr(type(stuck), "unlink", flaky_unlink)

    deleted = catalog.rotate(2)

    assert deleted == [names[1]]
    assert stuck.exists()


def test_describe_full_archive(catalog):
    catalog.ensure_dir()
    make_archive(catalog.resolve_path("backup-2024-05-01T03-00-00.tar.gz"), {
        "postgres/n8n.sql": b"a",
        "postgres/evolution.sql": b"b",
        "evolution/instances.tar.gz": b"c",
        "configs/config.json": b"{}",
    })

    manifest = catalog.describe("backup-2024-05-01T03-00-00.tar.gz")

    assert manifest.databases == ["evolution", "n8n"]
    assert manifest.postgres is True
    assert manifest.evolution is True
    assert manifest.configs is True


def test_describe_configs_only(catalog):
    catalog.ensure_dir()
    make_archive(catalog.resolve_path("backup-2024-05-01T03-00-00.tar.gz"), {
        "configs/config.json": b"{}",
    })

    manifest = catalog.describe("backup-2024-05-01T03-00-00.tar.gz")

    assert manifest.databases == []
    assert manifest.postgres is False
    assert manifest.evolution is False
    assert manifest.configs is True


def test_describe_missing(catalog):
    with pytest.raises(BackupNotFound):
        catalog.describe("backup-2024-05-01T03-00-00.tar.gz")
