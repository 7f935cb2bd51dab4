"""
Schema introspection through the INFORMATION_SCHEMA catalog views.

Functions in this module handle:
- Table enumeration for the application schema
- Column, primary key and foreign key discovery for one table
- Validation of caller-supplied table and column names against the catalog

Metadata is never cached: every call re-reads the catalog, so concurrent
callers always see the current schema. The table name is always sent as a
bound parameter, never interpolated into catalog queries.
"""
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from dbexplorer.exceptions import DatabaseError, ValidationError
from dbexplorer.query import execute
from dbexplorer.structure import ColumnMetadata, ForeignKeyMetadata, TableMetadata
from dbexplorer.types import infer_binding

if TYPE_CHECKING:
    from dbexplorer.connection import ConnectionWrapper

logger = logging.getLogger(__name__)

TABLES_SQL = """
SELECT TABLE_NAME AS name
FROM INFORMATION_SCHEMA.TABLES
WHERE TABLE_TYPE = 'BASE TABLE' AND TABLE_SCHEMA = :param0
ORDER BY TABLE_NAME
"""

COLUMNS_SQL = """
SELECT
    c.COLUMN_NAME AS name,
    c.DATA_TYPE AS data_type,
    CASE WHEN c.IS_NULLABLE = 'YES' THEN 1 ELSE 0 END AS is_nullable,
    c.CHARACTER_MAXIMUM_LENGTH AS max_length,
    c.NUMERIC_PRECISION AS [precision],
    c.NUMERIC_SCALE AS [scale],
    COLUMNPROPERTY(OBJECT_ID(QUOTENAME(c.TABLE_SCHEMA) + '.' + QUOTENAME(c.TABLE_NAME)),
                   c.COLUMN_NAME, 'IsIdentity') AS is_identity
FROM INFORMATION_SCHEMA.COLUMNS c
WHERE c.TABLE_SCHEMA = :param0 AND c.TABLE_NAME = :param1
ORDER BY c.ORDINAL_POSITION
"""

PRIMARY_KEYS_SQL = """
SELECT kcu.COLUMN_NAME AS column_name
FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu
    ON tc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
    AND tc.CONSTRAINT_SCHEMA = kcu.CONSTRAINT_SCHEMA
WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
    AND tc.TABLE_SCHEMA = :param0 AND tc.TABLE_NAME = :param1
ORDER BY kcu.ORDINAL_POSITION
"""

FOREIGN_KEYS_SQL = """
SELECT
    tc.CONSTRAINT_NAME AS name,
    kcu.COLUMN_NAME AS column_name,
    ccu.TABLE_NAME AS referenced_table,
    ccu.COLUMN_NAME AS referenced_column
FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu
    ON tc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
    AND tc.CONSTRAINT_SCHEMA = kcu.CONSTRAINT_SCHEMA
JOIN INFORMATION_SCHEMA.REFERENTIAL_CONSTRAINTS rc
    ON tc.CONSTRAINT_NAME = rc.CONSTRAINT_NAME
    AND tc.CONSTRAINT_SCHEMA = rc.CONSTRAINT_SCHEMA
JOIN INFORMATION_SCHEMA.CONSTRAINT_COLUMN_USAGE ccu
    ON rc.UNIQUE_CONSTRAINT_NAME = ccu.CONSTRAINT_NAME
    AND rc.UNIQUE_CONSTRAINT_SCHEMA = ccu.CONSTRAINT_SCHEMA
WHERE tc.CONSTRAINT_TYPE = 'FOREIGN KEY'
    AND tc.TABLE_SCHEMA = :param0 AND tc.TABLE_NAME = :param1
ORDER BY tc.CONSTRAINT_NAME, kcu.ORDINAL_POSITION
"""


def _table_params(cn: 'ConnectionWrapper', table: str) -> list:
    return [infer_binding(cn.schema), infer_binding(table)]


def list_tables(cn: 'ConnectionWrapper') -> list[str]:
    """Return base table names of the application schema, sorted by name.
    """
    rows = execute(cn, TABLES_SQL, [infer_binding(cn.schema)])
    return [row['name'] for row in rows]


def get_columns(cn: 'ConnectionWrapper', table: str) -> list[ColumnMetadata]:
    """Get column metadata for a table in ordinal position order.
    """
    rows = execute(cn, COLUMNS_SQL, _table_params(cn, table))
    return [ColumnMetadata.from_row(row) for row in rows]


def get_primary_keys(cn: 'ConnectionWrapper', table: str) -> list[str]:
    """Get primary key column names for a table.
    """
    rows = execute(cn, PRIMARY_KEYS_SQL, _table_params(cn, table))
    return [row['column_name'] for row in rows]


def get_foreign_keys(cn: 'ConnectionWrapper', table: str) -> list[ForeignKeyMetadata]:
    """Get foreign key edges leaving a table.
    """
    rows = execute(cn, FOREIGN_KEYS_SQL, _table_params(cn, table))
    return [ForeignKeyMetadata.from_row(row) for row in rows]


def get_table_metadata(cn: 'ConnectionWrapper', table: str) -> TableMetadata:
    """Get columns, primary keys and foreign keys of a table.

    The three catalog queries are independent; they run one after the other
    because a pyodbc connection serves a single request at a time. An unknown
    table yields metadata with no columns rather than an error.
    """
    metadata = TableMetadata(
        name=table,
        columns=get_columns(cn, table),
        primary_keys=get_primary_keys(cn, table),
        foreign_keys=get_foreign_keys(cn, table),
        )
    if metadata.is_empty:
        logger.debug(f'No columns found for table {table}')
        return metadata
    metadata.validate()
    logger.debug(f'Identity columns in {table}: {metadata.identity_columns}')
    return metadata


def get_schema(cn: 'ConnectionWrapper') -> list[TableMetadata]:
    """Get metadata for every table of the application schema.

    A table whose metadata cannot be read is logged and skipped.
    """
    tables = []
    for table in list_tables(cn):
        try:
            tables.append(get_table_metadata(cn, table))
        except DatabaseError as err:
            logger.warning(f'Error fetching metadata for table {table}: {err}')
    return tables


def require_table(cn: 'ConnectionWrapper', table: str | None) -> str:
    """Validate a table name against the tables of the application schema.

    Returns the name as spelled by the catalog.
    """
    name = (table or '').strip()
    if not name:
        raise ValidationError('Table name is required')
    tables = list_tables(cn)
    if name in tables:
        return name
    lowered = name.lower()
    for candidate in tables:
        if candidate.lower() == lowered:
            return candidate
    raise ValidationError(f'Unknown table {name!r}')


def require_columns(metadata: TableMetadata, names: Iterable[str]) -> list[str]:
    """Validate column names against a table's columns.

    Returns the names as spelled by the catalog.
    """
    return [metadata.require_column(name).name for name in names]
