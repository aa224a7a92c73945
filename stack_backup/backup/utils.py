"""Utility functions for backup/restore operations."""

import asyncio
import os
import shutil
import tarfile
import threading
import uuid
from pathlib import Path
from typing import Callable, List, Optional

from .._utils import logger, utc_timestamp

ARCHIVE_PREFIX = "backup-"
ARCHIVE_SUFFIX = ".tar.gz"
PARTIAL_SUFFIX = ".part"


def generate_archive_filename(timestamp: Optional[str] = None) -> str:
    """Generate archive filename with timestamp.

    Returns:
        Filename in format: backup-YYYY-MM-DDTHH-MM-SS.tar.gz
    """
    return f"{ARCHIVE_PREFIX}{timestamp or utc_timestamp()}{ARCHIVE_SUFFIX}"


def is_archive_filename(filename: str) -> bool:
    return filename.endswith(ARCHIVE_SUFFIX)


def create_working_dir(tmp_root: Path, kind: str) -> Path:
    """Create a uniquely named staging directory for one run.

    The timestamp keeps names readable, the uuid suffix keeps two runs
    started in the same second apart.
    """
    name = f"stack-backup-{kind}-{utc_timestamp()}-{uuid.uuid4().hex[:8]}"
    working_dir = Path(tmp_root) / name
    working_dir.mkdir(parents=True, exist_ok=False)
    logger.debug(f"Created working directory: {working_dir}")
    return working_dir


def remove_working_dir(working_dir: Path) -> None:
    """Delete a staging directory, logging instead of raising on failure.

    Runs on error paths, where an exception here would replace the one
    that is already propagating.
    """
    try:
        shutil.rmtree(working_dir)
    except FileNotFoundError:
        return
    except OSError as e:
        logger.warning(f"Could not remove working directory {working_dir}: {e}")
        return
    logger.debug(f"Removed working directory: {working_dir}")


class ArchiveCancelled(Exception):
    """An archive worker stopped early because it was told to."""


async def _run_archive_worker(func: Callable[..., None], *args, timeout: float) -> None:
    """Run a tar worker in a thread, bounded by ``timeout``.

    The worker receives a ``threading.Event`` as its last argument and checks
    it between members. On timeout or cancellation the event is set and the
    thread is awaited, so it never touches the filesystem after this returns.
    """
    cancel = threading.Event()
    worker = asyncio.ensure_future(asyncio.to_thread(func, *args, cancel))
    try:
        await asyncio.wait_for(asyncio.shield(worker), timeout=timeout)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        cancel.set()
        try:
            await worker
        except Exception as e:
            logger.debug(f"Archive worker stopped: {e!r}")
        raise


def _write_archive(source_dir: Path, partial_path: Path, cancel: threading.Event) -> None:
    def check(member: tarfile.TarInfo) -> tarfile.TarInfo:
        if cancel.is_set():
            raise ArchiveCancelled(f"Stopped writing {partial_path.name}")
        return member

    with tarfile.open(partial_path, "w:gz") as tar:
        for entry in sorted(source_dir.iterdir()):
            tar.add(entry, arcname=entry.name, filter=check)


async def create_archive(source_dir: Path, output_path: Path, timeout: float) -> int:
    """Create tar.gz archive from directory.

    The archive is written next to ``output_path`` with a ``.part`` suffix and
    renamed into place only once complete, so readers never see a truncated
    archive under its final name.

    Args:
        source_dir: Directory to archive; its children become top-level members
        output_path: Final archive path
        timeout: Seconds before the operation is stopped

    Returns:
        Size of created archive in bytes
    """
    logger.info(f"Creating archive: {output_path}")
    partial_path = output_path.with_name(output_path.name + PARTIAL_SUFFIX)

    try:
        await _run_archive_worker(_write_archive, source_dir, partial_path, timeout=timeout)
        os.replace(partial_path, output_path)
    except BaseException:
        partial_path.unlink(missing_ok=True)
        raise

    archive_size = output_path.stat().st_size
    logger.info(f"Archive created: {archive_size:,} bytes")
    return archive_size


def _extract_member(tar: tarfile.TarFile, member: tarfile.TarInfo, output_dir: Path) -> None:
    # Directory modes are left at their defaults so later members can be written into them
    tar.extract(member, output_dir, set_attrs=not member.isdir(), filter="data")


def _read_archive(archive_path: Path, output_dir: Path, cancel: threading.Event) -> None:
    with tarfile.open(archive_path, "r:gz") as tar:
        for member in tar:
            if cancel.is_set():
                raise ArchiveCancelled(f"Stopped extracting {archive_path.name}")
            _extract_member(tar, member, output_dir)


async def extract_archive(archive_path: Path, output_dir: Path, timeout: float) -> None:
    """Extract tar.gz archive to directory.

    Members are extracted one at a time with the ``data`` filter, which
    rejects absolute paths, ``..`` components and links leaving ``output_dir``.

    Args:
        archive_path: Path to archive
        output_dir: Directory to extract to
        timeout: Seconds before the operation is stopped
    """
    logger.info(f"Extracting archive: {archive_path} to {output_dir}")

    output_dir.mkdir(parents=True, exist_ok=True)
    await _run_archive_worker(_read_archive, Path(archive_path), output_dir, timeout=timeout)

    logger.info("Archive extracted successfully")


def list_archive_members(archive_path: Path) -> List[str]:
    """Return normalized member names of an archive (no leading ``./``)."""
    with tarfile.open(archive_path, "r:gz") as tar:
        names = []
        for name in tar.getnames():
            while name.startswith("./"):
                name = name[2:]
            if name and name != ".":
                names.append(name)
        return names
