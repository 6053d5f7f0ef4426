from typing import Any, Optional

from pydantic import Field

from familytree.schemas.base_schema import CamelModel


# -----------------------------------------------------
# STORED DOCUMENT
# -----------------------------------------------------
class TreeDocument(CamelModel):
    tree_id: str
    data: list[Any] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    last_modified: Optional[str] = None


# -----------------------------------------------------
# REQUEST BODIES
# -----------------------------------------------------
class TreeSaveRequest(CamelModel):
    data: list[Any] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class TreeAutosaveRequest(CamelModel):
    data: list[Any] = Field(default_factory=list)


# -----------------------------------------------------
# RESPONSES
# -----------------------------------------------------
class HealthOut(CamelModel):
    status: str
    message: str
    timestamp: str


class TreeListOut(CamelModel):
    success: bool = True
    trees: list[str]
    count: int


class TreeOut(CamelModel):
    success: bool = True
    tree_id: str
    data: list[Any]
    metadata: dict[str, Any]
    last_modified: Optional[str] = None


class TreeSaveOut(CamelModel):
    success: bool = True
    tree_id: str
    message: str
    metadata: dict[str, Any]
    last_modified: Optional[str] = None
    backup_created: bool


class TreeAutosaveOut(CamelModel):
    success: bool = True
    tree_id: str
    message: str
    last_modified: Optional[str] = None
    backup_created: bool = False


class TreeDeleteOut(CamelModel):
    success: bool = True
    tree_id: str
    message: str
    backup_created: bool


class BackupOut(CamelModel):
    filename: str
    timestamp: str
    human_date: str
    tag: Optional[str] = None      # None | "DELETED" | "PRE_RESTORE"
    size: Optional[int] = None


class BackupListOut(CamelModel):
    success: bool = True
    tree_id: str
    backups: list[BackupOut]
    count: int


class TreeRestoreOut(CamelModel):
    success: bool = True
    tree_id: str
    message: str
    data: list[Any]
    metadata: dict[str, Any]
    last_modified: Optional[str] = None
