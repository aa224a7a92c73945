"""API routers."""

from . import backup, health, jobs, progress

__all__ = ["backup", "health", "jobs", "progress"]
