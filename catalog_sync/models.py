"""Data classes and enums shared by the catalog sync modules."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

TagId = int

# Catalog category names whose single tag mirrors the SQL Server classification fields
INFORMATION_TYPE_CATEGORY = "Information Type"
SENSITIVITY_CATEGORY = "Sensitivity"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class UpdateMode(str, Enum):
    MERGE = "merge"
    OVERWRITE = "overwrite"


class SyncCapability(str, Enum):
    NATIVE_CLASSIFICATION = "native_classification"
    EXTENDED_PROPERTIES = "extended_properties"
    UNSUPPORTED = "unsupported"


class OperationStatus(str, Enum):
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    TIMEOUT = "Timeout"
    CANCELLED = "Cancelled"


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Tag:
    """A tag within a category. Unique by ``(category_id, name)``."""
    id: TagId
    name: str
    category_id: int


@dataclass(frozen=True)
class TagCategory:
    id: int
    name: str
    is_multi_valued: bool
    tags: tuple = ()

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "TagCategory":
        category_id = payload["id"]
        return cls(
            id=category_id,
            name=payload["name"],
            is_multi_valued=bool(payload.get("isMultiValued", False)),
            tags=tuple(
                Tag(id=t["id"], name=t["name"], category_id=category_id)
                for t in payload.get("tags", [])
            ),
        )


@dataclass(frozen=True)
class FreeTextAttribute:
    id: int
    name: str

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "FreeTextAttribute":
        return cls(id=payload["id"], name=payload["name"])


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------

@dataclass
class ClassifiedColumn:
    """A catalog column with its current tags and derived classification."""
    instance_id: str
    database_name: str
    schema_name: str
    table_name: str
    column_name: str
    column_id: Optional[str] = None
    current_tag_ids: FrozenSet[TagId] = field(default_factory=frozenset)
    # Populated from the "Information Type" / "Sensitivity" tags
    information_type: Optional[str] = None
    sensitivity_label: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.database_name}.{self.schema_name}.{self.table_name}.{self.column_name}"

    @property
    def live_key(self) -> tuple:
        """Identity of the column inside one live database."""
        return (self.schema_name, self.table_name, self.column_name)

    def identifier(self) -> Dict[str, str]:
        """Column identifier payload used by the bulk-classification endpoint."""
        return {
            "schemaName": self.schema_name,
            "tableName": self.table_name,
            "columnName": self.column_name,
            "databaseName": self.database_name,
            "instanceId": self.instance_id,
        }

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "ClassifiedColumn":
        if "tagIds" in payload:
            tag_ids = payload.get("tagIds") or []
        else:
            tag_ids = [t["id"] for t in payload.get("tags") or []]
        return cls(
            instance_id=str(payload.get("instanceId", "")),
            database_name=payload["databaseName"],
            schema_name=payload["schemaName"],
            table_name=payload["tableName"],
            column_name=payload["columnName"],
            column_id=str(payload["id"]) if payload.get("id") is not None else None,
            current_tag_ids=frozenset(tag_ids),
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TagReconciliation:
    """Outcome of reconciling one column's tags. ``changed=False`` means no write is needed."""
    tag_ids: FrozenSet[TagId]
    changed: bool


@dataclass
class TagUpdateSummary:
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "errors": list(self.errors),
        }


@dataclass
class SyncReport:
    """Per-database outcome of a live-database synchronization run."""
    database_name: str
    capability: Optional[SyncCapability] = None
    force: bool = False
    columns_total: int = 0
    columns_written: int = 0
    columns_failed: int = 0
    properties_added: int = 0
    properties_updated: int = 0
    properties_dropped: int = 0
    properties_unchanged: int = 0
    conflicts: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    aborted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "database": self.database_name,
            "capability": self.capability.value if self.capability else None,
            "force": self.force,
            "columns_total": self.columns_total,
            "columns_written": self.columns_written,
            "columns_failed": self.columns_failed,
            "properties_added": self.properties_added,
            "properties_updated": self.properties_updated,
            "properties_dropped": self.properties_dropped,
            "properties_unchanged": self.properties_unchanged,
            "conflicts": list(self.conflicts),
            "errors": list(self.errors),
            "aborted": self.aborted,
        }
