"""Component exporters for backup/restore operations."""

from .postgres_exporter import PostgresExporter
from .volume_exporter import VolumeExporter
from .config_exporter import ConfigExporter

__all__ = ["PostgresExporter", "VolumeExporter", "ConfigExporter"]
