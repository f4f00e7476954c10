#!/usr/bin/env python3
"""Replay catalog classifications into a live SQL Server database.

Two mutually exclusive write paths, chosen once per run from the server
version/edition:

  * NATIVE_CLASSIFICATION – SQL Server 2019+ and Azure SQL:
        ADD SENSITIVITY CLASSIFICATION TO [s].[t].[c] WITH (...)
        DROP SENSITIVITY CLASSIFICATION FROM [s].[t].[c]
    Always a full overwrite per column; ``force`` does not change anything.

  * EXTENDED_PROPERTIES – older servers: four column-level extended
    properties (sys_information_type_id/_name, sys_sensitivity_label_id/_name)
    maintained through sp_addextendedproperty / sp_updateextendedproperty /
    sp_dropextendedproperty.
        incremental – add missing properties; existing values are reported
                      (unchanged or conflicting) and never touched; a
                      conflict on either property of a facet (id + name)
                      leaves the whole facet unwritten
        forced      – update or add every non-empty facet, drop empty ones

Columns are processed in catalog order with autocommit on. A failing column
is logged, recorded in the ``SyncReport`` and skipped; there is no
transaction across columns.

References:
- ADD SENSITIVITY CLASSIFICATION: https://learn.microsoft.com/en-us/sql/t-sql/statements/add-sensitivity-classification-transact-sql
- sp_addextendedproperty:        https://learn.microsoft.com/en-us/sql/relational-databases/system-stored-procedures/sp-addextendedproperty-transact-sql
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from .config import Settings, build_odbc_connection_string
from .errors import CatalogRequestError
from .identifiers import (
    escape_sql_name,
    escape_sql_string,
    information_type_id,
    sensitivity_label_id,
)
from .models import ClassifiedColumn, SyncCapability, SyncReport
from .session import CatalogSession

logger = logging.getLogger("catalog_sync.live_db")

# pyodbc needs the unixODBC runtime; statement building and the sync loop do not
try:
    import pyodbc
    PYODBC_AVAILABLE = True
except ImportError:
    PYODBC_AVAILABLE = False
    logger.warning(
        "pyodbc not available. Live database connections are disabled. "
        "Install with: pip install pyodbc"
    )

ProgressCallback = Callable[[float], None]
ConnectionFactory = Callable[[str], Any]

# SQL Server 2019 introduced ADD/DROP SENSITIVITY CLASSIFICATION
NATIVE_MIN_MAJOR_VERSION = 15
# SERVERPROPERTY('EngineEdition'): 5 = Azure SQL Database, 8 = Managed Instance
MANAGED_ENGINE_EDITIONS = (5, 8)

EXTENDED_PROPERTY_PROCEDURES = (
    "sp_addextendedproperty",
    "sp_updateextendedproperty",
    "sp_dropextendedproperty",
)

PROP_INFORMATION_TYPE_ID = "sys_information_type_id"
PROP_INFORMATION_TYPE_NAME = "sys_information_type_name"
PROP_SENSITIVITY_LABEL_ID = "sys_sensitivity_label_id"
PROP_SENSITIVITY_LABEL_NAME = "sys_sensitivity_label_name"

# ---------------------------------------------------------------------------
# SQL text
# ---------------------------------------------------------------------------

SERVER_PROPERTIES_SQL = """
    SELECT
        CAST(SERVERPROPERTY('ProductVersion') AS nvarchar(128)) AS version,
        CAST(SERVERPROPERTY('Edition') AS nvarchar(128)) AS edition,
        CAST(SERVERPROPERTY('EngineEdition') AS int) AS engine_edition
"""

PROCEDURES_SQL = """
    SELECT COUNT(DISTINCT name)
    FROM sys.all_objects
    WHERE type IN ('P', 'X')
      AND name IN ('sp_addextendedproperty', 'sp_updateextendedproperty', 'sp_dropextendedproperty')
"""

LOOKUP_PROPERTY_SQL = """
    SELECT CAST(ep.value AS nvarchar(4000))
    FROM sys.extended_properties AS ep
    JOIN sys.columns AS c ON ep.major_id = c.object_id AND ep.minor_id = c.column_id
    JOIN sys.objects AS o ON c.object_id = o.object_id
    JOIN sys.schemas AS s ON o.schema_id = s.schema_id
    WHERE ep.class = 1 AND ep.name = ? AND s.name = ? AND o.name = ? AND c.name = ?
"""

ADD_PROPERTY_SQL = (
    "EXEC sys.sp_addextendedproperty @name = ?, @value = ?, "
    "@level0type = N'SCHEMA', @level0name = ?, "
    "@level1type = N'TABLE', @level1name = ?, "
    "@level2type = N'COLUMN', @level2name = ?"
)

UPDATE_PROPERTY_SQL = (
    "EXEC sys.sp_updateextendedproperty @name = ?, @value = ?, "
    "@level0type = N'SCHEMA', @level0name = ?, "
    "@level1type = N'TABLE', @level1name = ?, "
    "@level2type = N'COLUMN', @level2name = ?"
)

DROP_PROPERTY_SQL = (
    "EXEC sys.sp_dropextendedproperty @name = ?, "
    "@level0type = N'SCHEMA', @level0name = ?, "
    "@level1type = N'TABLE', @level1name = ?, "
    "@level2type = N'COLUMN', @level2name = ?"
)


# ---------------------------------------------------------------------------
# Statement helpers
# ---------------------------------------------------------------------------

class BoundStatement:
    """One parameterised statement on one cursor, re-executed with new parameters.

    pyodbc keeps the statement prepared while the same SQL text is executed
    on the same cursor, so only the parameters change between columns.
    """

    def __init__(self, cursor, sql: str):
        self._cursor = cursor
        self.sql = sql

    def execute(self, *params):
        self._cursor.execute(self.sql, params)
        return self._cursor

    def fetch_optional(self, *params) -> Optional[Tuple]:
        return self.execute(*params).fetchone()


class PropertyStatements:
    """Lookup / add / update / drop of column extended properties, bound to one cursor."""

    def __init__(self, cursor):
        self.lookup = BoundStatement(cursor, LOOKUP_PROPERTY_SQL)
        self.add = BoundStatement(cursor, ADD_PROPERTY_SQL)
        self.update = BoundStatement(cursor, UPDATE_PROPERTY_SQL)
        self.drop = BoundStatement(cursor, DROP_PROPERTY_SQL)

    def existing(self, prop: str, key: Tuple[str, str, str]) -> Tuple[bool, Optional[str]]:
        """``(exists, value)`` of ``prop`` on the column at ``(schema, table, column)``."""
        row = self.lookup.fetch_optional(prop, *key)
        if row is None:
            return False, None
        return True, row[0]


def column_path(column: ClassifiedColumn) -> str:
    return ".".join(escape_sql_name(part) for part in column.live_key)


def build_classification_statement(column: ClassifiedColumn) -> str:
    """ADD or DROP SENSITIVITY CLASSIFICATION for one column."""
    target = column_path(column)
    if not column.information_type and not column.sensitivity_label:
        return f"DROP SENSITIVITY CLASSIFICATION FROM {target}"

    options: List[str] = []
    if column.information_type:
        options.append(f"INFORMATION_TYPE='{escape_sql_string(column.information_type)}'")
        type_id = information_type_id(column.information_type)
        if type_id:
            options.append(f"INFORMATION_TYPE_ID='{type_id}'")
    if column.sensitivity_label:
        options.append(f"LABEL='{escape_sql_string(column.sensitivity_label)}'")
        label_id = sensitivity_label_id(column.sensitivity_label)
        if label_id:
            options.append(f"LABEL_ID='{label_id}'")
    return f"ADD SENSITIVITY CLASSIFICATION TO {target} WITH ({', '.join(options)})"


def desired_facets(column: ClassifiedColumn) -> List[List[Tuple[str, Optional[str]]]]:
    """The id / name property pairs of each facet with their catalog values (None = should not exist)."""
    return [
        [
            (PROP_INFORMATION_TYPE_ID, information_type_id(column.information_type)),
            (PROP_INFORMATION_TYPE_NAME, column.information_type or None),
        ],
        [
            (PROP_SENSITIVITY_LABEL_ID, sensitivity_label_id(column.sensitivity_label)),
            (PROP_SENSITIVITY_LABEL_NAME, column.sensitivity_label or None),
        ],
    ]


# ---------------------------------------------------------------------------
# Capability detection
# ---------------------------------------------------------------------------

def parse_major_version(version: Optional[str]) -> int:
    try:
        return int(str(version).split(".")[0])
    except (TypeError, ValueError):
        return 0


def has_extended_property_procedures(cursor) -> bool:
    cursor.execute(PROCEDURES_SQL)
    row = cursor.fetchone()
    return row is not None and int(row[0]) == len(EXTENDED_PROPERTY_PROCEDURES)


def detect_capability(cursor) -> SyncCapability:
    """Decide which write path this server supports."""
    cursor.execute(SERVER_PROPERTIES_SQL)
    row = cursor.fetchone()
    version, edition, engine_edition = (row[0], row[1], row[2]) if row is not None else (None, None, None)
    major = parse_major_version(version)
    edition = (edition or "").lower()
    logger.info("  Server version %s (%s, engine edition %s)", version, edition or "unknown", engine_edition)

    if major >= NATIVE_MIN_MAJOR_VERSION or engine_edition in MANAGED_ENGINE_EDITIONS or "azure" in edition:
        return SyncCapability.NATIVE_CLASSIFICATION
    if has_extended_property_procedures(cursor):
        return SyncCapability.EXTENDED_PROPERTIES
    return SyncCapability.UNSUPPORTED


# ---------------------------------------------------------------------------
# Synchronizer
# ---------------------------------------------------------------------------

class LiveDatabaseSynchronizer:
    """Writes catalog classifications into one open database connection."""

    def __init__(
        self,
        connection,
        database_name: str,
        force: bool = False,
        progress: Optional[ProgressCallback] = None,
    ):
        self.connection = connection
        self.database_name = database_name
        self.force = force
        self._progress = progress

    def run(
        self,
        columns: Sequence[ClassifiedColumn],
        capability: Optional[SyncCapability] = None,
    ) -> SyncReport:
        report = SyncReport(database_name=self.database_name, force=self.force, columns_total=len(columns))
        cursor = self.connection.cursor()
        try:
            report.capability = capability or detect_capability(cursor)
            logger.info("  Database %s: %s", self.database_name, report.capability.value)

            if report.capability is SyncCapability.NATIVE_CLASSIFICATION:
                self._sync_native(cursor, columns, report)
            elif report.capability is SyncCapability.EXTENDED_PROPERTIES:
                if not has_extended_property_procedures(cursor):
                    self._abort(report, "extended property stored procedures are not available")
                else:
                    self._sync_extended_properties(cursor, columns, report)
            else:
                self._abort(report, "server supports neither sensitivity classification nor extended properties")
        finally:
            cursor.close()

        logger.info(
            "  Database %s: %d/%d columns written, %d failed",
            self.database_name, report.columns_written, report.columns_total, report.columns_failed,
        )
        return report

    def _abort(self, report: SyncReport, reason: str) -> None:
        message = f"Skipping database {self.database_name}: {reason}"
        logger.error("  %s", message)
        report.aborted = True
        report.errors.append(message)

    def _report_progress(self, done: int, total: int) -> None:
        if self._progress is None or total == 0:
            return
        try:
            self._progress(done / total)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Progress callback failed: %s", exc)

    # -- native ------------------------------------------------------------

    def _sync_native(self, cursor, columns: Sequence[ClassifiedColumn], report: SyncReport) -> None:
        total = len(columns)
        for done, column in enumerate(columns, start=1):
            statement = build_classification_statement(column)
            try:
                cursor.execute(statement)
            except Exception as exc:  # noqa: BLE001
                report.columns_failed += 1
                report.errors.append(f"{column.display_name}: {exc}")
                logger.error("    %s: %s", column.display_name, exc)
            else:
                report.columns_written += 1
                logger.debug("    %s", statement)
            self._report_progress(done, total)

    # -- extended properties ----------------------------------------------

    def _sync_extended_properties(self, cursor, columns: Sequence[ClassifiedColumn], report: SyncReport) -> None:
        statements = PropertyStatements(cursor)

        total = len(columns)
        for done, column in enumerate(columns, start=1):
            errors_before = len(report.errors)
            wrote = False
            for facet in desired_facets(column):
                if self.force:
                    for prop, value in facet:
                        wrote = self._force_property(statements, column, prop, value, report) or wrote
                else:
                    wrote = self._add_facet(statements, column, facet, report) or wrote

            if len(report.errors) > errors_before:
                report.columns_failed += 1
            elif wrote:
                report.columns_written += 1
            self._report_progress(done, total)

    def _property_failed(self, report: SyncReport, label: str, exc: Exception) -> None:
        report.errors.append(f"{label}: {exc}")
        logger.error("    %s: %s", label, exc)

    def _force_property(
        self,
        statements: PropertyStatements,
        column: ClassifiedColumn,
        prop: str,
        value: Optional[str],
        report: SyncReport,
    ) -> bool:
        """Update / add a non-empty value, drop an empty one. Returns True when something was written."""
        key = column.live_key
        try:
            exists, _ = statements.existing(prop, key)
            if value:
                if exists:
                    statements.update.execute(prop, value, *key)
                    report.properties_updated += 1
                else:
                    statements.add.execute(prop, value, *key)
                    report.properties_added += 1
                return True
            if exists:
                statements.drop.execute(prop, *key)
                report.properties_dropped += 1
                return True
        except Exception as exc:  # noqa: BLE001
            self._property_failed(report, f"{column.display_name} [{prop}]", exc)
        return False

    def _add_facet(
        self,
        statements: PropertyStatements,
        column: ClassifiedColumn,
        facet: List[Tuple[str, Optional[str]]],
        report: SyncReport,
    ) -> bool:
        """Add the facet's missing properties unless any existing one disagrees with the catalog.

        The id and name of a facet are written together or not at all, so a
        conflicting name never ends up next to the catalog's id.
        """
        key = column.live_key
        missing: List[Tuple[str, str]] = []
        conflicts: List[str] = []
        for prop, value in facet:
            if not value:
                continue
            label = f"{column.display_name} [{prop}]"
            try:
                exists, current = statements.existing(prop, key)
            except Exception as exc:  # noqa: BLE001
                self._property_failed(report, label, exc)
                return False
            if not exists:
                missing.append((prop, value))
            elif current == value:
                report.properties_unchanged += 1
            else:
                conflicts.append(f"{label}: has '{current}', catalog has '{value}' (use force to overwrite)")

        if conflicts:
            for message in conflicts:
                report.conflicts.append(message)
                logger.warning("    %s", message)
            return False

        wrote = False
        for prop, value in missing:
            try:
                statements.add.execute(prop, value, *key)
            except Exception as exc:  # noqa: BLE001
                self._property_failed(report, f"{column.display_name} [{prop}]", exc)
            else:
                report.properties_added += 1
                wrote = True
        return wrote


# ---------------------------------------------------------------------------
# Connections & entry points
# ---------------------------------------------------------------------------

def odbc_connection_factory(settings: Settings, server: str) -> ConnectionFactory:
    """Return ``database_name -> pyodbc.Connection`` for one SQL Server instance."""

    def _connect(database_name: str):
        if not PYODBC_AVAILABLE:
            raise RuntimeError("pyodbc is not available")
        logger.info("Connecting to %s/%s", server, database_name)
        return pyodbc.connect(
            build_odbc_connection_string(settings, server, database_name),
            autocommit=True,
        )

    return _connect


def synchronize(
    connection_factory: ConnectionFactory,
    database_name: str,
    columns: Sequence[ClassifiedColumn],
    force: bool = False,
    progress: Optional[ProgressCallback] = None,
    capability: Optional[SyncCapability] = None,
) -> SyncReport:
    """Open a connection, sync ``columns`` into it, and always close it."""
    connection = connection_factory(database_name)
    try:
        synchronizer = LiveDatabaseSynchronizer(connection, database_name, force=force, progress=progress)
        return synchronizer.run(columns, capability=capability)
    finally:
        connection.close()


def synchronize_database(
    session: CatalogSession,
    instance_id: str,
    database_name: str,
    connection_factory: ConnectionFactory,
    force: bool = False,
    progress: Optional[ProgressCallback] = None,
) -> SyncReport:
    """Fetch the catalog's classified columns for one database and replay them."""
    logger.info("=== Synchronizing %s/%s (force=%s) ===", instance_id, database_name, force)
    columns = session.fetch_classified_columns(instance_id, database_name)
    logger.info("  %d catalog columns", len(columns))
    return synchronize(connection_factory, database_name, columns, force=force, progress=progress)


def synchronize_databases(
    session: CatalogSession,
    instance_id: str,
    database_names: Iterable[str],
    connection_factory: ConnectionFactory,
    force: bool = False,
    progress: Optional[ProgressCallback] = None,
) -> List[SyncReport]:
    """Synchronize several databases; a database-level failure does not stop the others."""
    reports: List[SyncReport] = []
    for database_name in database_names:
        try:
            report = synchronize_database(
                session, instance_id, database_name, connection_factory, force=force, progress=progress,
            )
        except CatalogRequestError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Database %s failed: %s", database_name, exc)
            report = SyncReport(database_name=database_name, force=force, aborted=True, errors=[str(exc)])
        reports.append(report)
    return reports
