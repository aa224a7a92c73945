"""Data models for backup/restore operations."""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Snake_case attributes, camelCase JSON where the wire format needs it."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ComponentFlags(BaseModel):
    """Which components a backup captured or a restore applied."""

    postgres: bool = False
    evolution: bool = False
    configs: bool = False


class ArchiveInfo(WireModel):
    """Catalog entry for one archive on disk."""

    filename: str
    size: int
    size_formatted: str = Field(..., alias="sizeFormatted")
    date: str = Field(..., description="Modification time, ISO-8601 UTC")


class ArchiveManifest(BaseModel):
    """Components found inside an archive."""

    filename: str
    databases: List[str] = Field(default_factory=list)
    postgres: bool = False
    evolution: bool = False
    configs: bool = False


class BackupResult(WireModel):
    success: bool = True
    filename: str
    size: int
    size_formatted: str = Field(..., alias="sizeFormatted")
    date: str
    includes: ComponentFlags


class RestoreResult(WireModel):
    success: bool = True
    message: str = "Backup restored successfully"
    restored: ComponentFlags


class ProgressEvent(BaseModel):
    """Transient progress message pushed to observers."""

    model_config = ConfigDict(extra="allow")

    type: Literal["backup", "restore"]
    status: Optional[Literal["started", "completed", "error"]] = None
    step: Optional[str] = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)
