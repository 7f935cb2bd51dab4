"""
Table-agnostic record operations.

Reads always produce a `TableData` envelope, even on failure. Writes validate
the table and the payload keys against the catalog, then propagate any error
to the caller.
"""
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from dbexplorer.exceptions import ValidationError
from dbexplorer.query import execute_statement, select_scalar
from dbexplorer.schema import get_table_metadata, require_table
from dbexplorer.sql import DEFAULT_PAGE_SIZE, Condition, PageRequest
from dbexplorer.sql import build_condition, build_count, build_delete
from dbexplorer.sql import build_insert, build_update, describe_condition
from dbexplorer.strategy import fetch_page
from dbexplorer.structure import TableData, TableMetadata
from dbexplorer.types import LARGE_TEXT_THRESHOLD

if TYPE_CHECKING:
    from dbexplorer.connection import ConnectionWrapper

logger = logging.getLogger(__name__)


def _threshold(cn: 'ConnectionWrapper') -> int:
    if cn.options is None:
        return LARGE_TEXT_THRESHOLD
    return cn.options.large_text_threshold


def _page_size(cn: 'ConnectionWrapper') -> int:
    if cn.options is None:
        return DEFAULT_PAGE_SIZE
    return cn.options.page_size


def failed_read(table: str, err: Exception) -> TableData:
    """Error envelope returned by the read path.
    """
    logger.error(f'Error fetching data from table {table}: {err}')
    return TableData(data=[], total=0, error=f'Failed to fetch data: {err}')


def _load_metadata(cn: 'ConnectionWrapper', table: str) -> tuple[str, TableMetadata]:
    name = require_table(cn, table)
    metadata = get_table_metadata(cn, name)
    if metadata.is_empty:
        raise ValidationError(f'Table {name!r} has no columns')
    return name, metadata


def get_table_data(cn: 'ConnectionWrapper', table: str, page: Any = 1,
                   page_size: Any = None, order_by: str | None = '',
                   order_direction: str | None = 'ASC',
                   filter: Condition = '') -> TableData:
    """Read one page of a table together with its unpaginated row count.

    Args:
        cn: Open connection
        table: Table name, validated against the schema's tables
        page: 1-based page number
        page_size: Rows per page; the connection's configured page size when empty
        order_by: Column to order by; rows come back in no particular order when empty
        order_direction: ``ASC`` or ``DESC``
        filter: Mapping of column equality terms, or a raw SQL condition
            appended verbatim to the WHERE clause

    Returns:
        TableData with ``error`` set and no rows when anything fails
    """
    try:
        name, metadata = _load_metadata(cn, table)
        request = PageRequest.create(page, page_size, order_by, order_direction,
                                     default_page_size=_page_size(cn))
        if request.order_by:
            column = metadata.require_column(request.order_by)
            request = PageRequest(request.page, request.page_size, column.name,
                                  request.order_direction)

        condition_sql, bindings = build_condition(filter, metadata,
                                                  large_text_threshold=_threshold(cn))
        count = build_count(name, condition_sql, bindings)
        total = select_scalar(cn, count.sql, count.bindings) or 0
        records = fetch_page(cn, name, request, condition_sql, bindings)
    except Exception as err:
        return failed_read(table, err)

    logger.debug(f'Fetched {len(records)} of {total} rows from {name} (page {request.page})')
    return TableData(data=records, total=int(total))


def insert_record(cn: 'ConnectionWrapper', table: str, data: Mapping[str, Any]) -> bool:
    """Insert one record. Identity columns in the payload are ignored.

    Returns False when no writable column is left after filtering.
    """
    name, metadata = _load_metadata(cn, table)
    statement = build_insert(name, data, metadata, _threshold(cn))
    if statement is None:
        return False
    execute_statement(cn, statement)
    logger.info(f'Inserted record into {name}')
    return True


def update_record(cn: 'ConnectionWrapper', table: str, data: Mapping[str, Any],
                  where: Condition) -> bool:
    """Update the rows matching `where`. Identity columns in the payload are ignored.

    Returns False when no updatable column is left after filtering.
    """
    name, metadata = _load_metadata(cn, table)
    statement = build_update(name, data, where, metadata, _threshold(cn))
    if statement is None:
        return False
    execute_statement(cn, statement)
    logger.info(f'Updated record(s) in {name} where {describe_condition(where)}')
    return True


def delete_record(cn: 'ConnectionWrapper', table: str, where: Condition) -> bool:
    """Delete the rows matching `where`.
    """
    name, metadata = _load_metadata(cn, table)
    statement = build_delete(name, where, metadata)
    execute_statement(cn, statement)
    logger.info(f'Deleted record(s) from {name} where {describe_condition(where)}')
    return True
