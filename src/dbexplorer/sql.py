"""
SQL statement generation for table-agnostic access.

Statements reference their parameters as ``:param0``, ``:param1``, ... in the
order of the `ParamBinding` list they are returned with.

Identifiers are always bracket-quoted. Conditions (filters and where
clauses) come in two forms:

- a mapping ``{column: value}``, compiled into bound equality terms
- a raw SQL fragment, appended verbatim; whoever supplies it owns its safety
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from dbexplorer.exceptions import ValidationError
from dbexplorer.structure import TableMetadata
from dbexplorer.types import LARGE_TEXT_THRESHOLD, ParamBinding, bind_value
from dbexplorer.types import infer_binding

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 50
ORDER_DIRECTIONS = ('ASC', 'DESC')
NEUTRAL_ORDER = '(SELECT NULL)'

Condition = str | Mapping[str, Any] | None


@dataclass(slots=True)
class Statement:
    """SQL text and its positional parameter bindings."""
    sql: str
    bindings: list[ParamBinding] = field(default_factory=list)

    @property
    def params(self) -> dict[str, Any]:
        return {param_name(i): b.value for i, b in enumerate(self.bindings)}


def param_name(index: int) -> str:
    return f'param{index}'


def placeholder(index: int) -> str:
    return f':{param_name(index)}'


def quote_identifier(identifier: str) -> str:
    """Quote a table or column name with square brackets.

    >>> quote_identifier('Orders')
    '[Orders]'
    >>> quote_identifier('odd]name')
    '[odd]]name]'
    """
    if not identifier:
        raise ValidationError('Identifier cannot be empty')
    return f"[{identifier.replace(']', ']]')}]"


def quote_literal(value: Any) -> str:
    """Render a value as a SQL literal with single quotes doubled.

    >>> quote_literal("O'Brien")
    "N'O''Brien'"
    >>> quote_literal(None)
    'NULL'
    >>> quote_literal(5)
    '5'
    """
    if value is None:
        return 'NULL'
    if isinstance(value, bool):
        return '1' if value else '0'
    if isinstance(value, int | float):
        return repr(value)
    text = str(value).replace("'", "''")
    return f"N'{text}'"


def _to_int(value: Any, name: str, default: int) -> int:
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        raise ValidationError(f'{name} must be an integer, got {value!r}')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer, got {value!r}')
    if number < 1:
        raise ValidationError(f'{name} must be positive, got {number}')
    return number


@dataclass(slots=True, frozen=True)
class PageRequest:
    """Validated pagination and ordering input.

    Page numbers are 1-based. A page covers rows
    ``[(page-1)*page_size+1 .. page*page_size]`` under the requested order.
    """
    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE
    order_by: str | None = None
    order_direction: str = 'ASC'

    @classmethod
    def create(cls, page: Any = None, page_size: Any = None,
               order_by: str | None = None,
               order_direction: str | None = None,
               default_page_size: int = DEFAULT_PAGE_SIZE) -> 'PageRequest':
        """Build a request from loosely typed input (query string values).
        """
        direction = (order_direction or 'ASC').strip().upper()
        if direction not in ORDER_DIRECTIONS:
            raise ValidationError(f'order direction must be ASC or DESC, got {order_direction!r}')
        return cls(
            page=_to_int(page, 'page', DEFAULT_PAGE),
            page_size=_to_int(page_size, 'page_size', default_page_size),
            order_by=(order_by or '').strip() or None,
            order_direction=direction,
            )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def first_row(self) -> int:
        return self.offset + 1

    @property
    def last_row(self) -> int:
        return self.page * self.page_size

    def order_clause(self) -> str:
        """ORDER BY clause; a neutral ordering when no column is requested.

        >>> PageRequest(order_by='Name', order_direction='DESC').order_clause()
        'ORDER BY [Name] DESC'
        >>> PageRequest().order_clause()
        'ORDER BY (SELECT NULL)'
        """
        if not self.order_by:
            return f'ORDER BY {NEUTRAL_ORDER}'
        return f'ORDER BY {quote_identifier(self.order_by)} {self.order_direction}'


def _bind_for_column(column: str, value: Any, metadata: TableMetadata | None,
                     large_text_threshold: int) -> ParamBinding:
    if metadata is None:
        return infer_binding(value, large_text_threshold)
    col = metadata.require_column(column)
    return bind_value(value, col.data_type, col.max_length, large_text_threshold)


def build_condition(condition: Condition, metadata: TableMetadata | None = None,
                    start: int = 0,
                    large_text_threshold: int = LARGE_TEXT_THRESHOLD) -> tuple[str, list[ParamBinding]]:
    """Compile a filter or where condition.

    Mappings become ``[col] = :paramN`` terms joined by AND, numbered from
    ``start``; a None value becomes ``[col] IS NULL``. Strings are returned
    stripped and unchanged.

    >>> build_condition({'Id': 3, 'Note': None})[0]
    '[Id] = :param0 AND [Note] IS NULL'
    >>> build_condition('Total > 10')
    ('Total > 10', [])
    """
    if not condition:
        return '', []
    if isinstance(condition, str):
        return condition.strip(), []

    terms: list[str] = []
    bindings: list[ParamBinding] = []
    for column, value in condition.items():
        quoted = quote_identifier(metadata.require_column(column).name if metadata else column)
        if value is None:
            terms.append(f'{quoted} IS NULL')
            continue
        terms.append(f'{quoted} = {placeholder(start + len(bindings))}')
        bindings.append(_bind_for_column(column, value, metadata, large_text_threshold))
    return ' AND '.join(terms), bindings


def describe_condition(condition: Condition) -> str:
    """Render a condition with its values inlined, for log messages only.

    >>> describe_condition({'Id': 3, 'Name': "O'Brien"})
    "[Id] = 3 AND [Name] = N'O''Brien'"
    >>> describe_condition({'Note': None})
    '[Note] IS NULL'
    """
    if not condition:
        return ''
    if isinstance(condition, str):
        return condition.strip()
    return ' AND '.join(
        f'{quote_identifier(column)} IS NULL' if value is None
        else f'{quote_identifier(column)} = {quote_literal(value)}'
        for column, value in condition.items())


def where_clause(condition_sql: str) -> str:
    return f' WHERE {condition_sql}' if condition_sql else ''


def build_count(table: str, condition_sql: str = '',
                bindings: list[ParamBinding] | None = None) -> Statement:
    """COUNT(*) over the table, optionally filtered.

    >>> build_count('Orders', 'Total > 10').sql
    'SELECT COUNT(*) AS total FROM [Orders] WHERE Total > 10'
    """
    sql = f'SELECT COUNT(*) AS total FROM {quote_identifier(table)}{where_clause(condition_sql)}'
    return Statement(sql, list(bindings or []))


def build_select(table: str, page: Any = None, page_size: Any = None,
                 order_by: str | None = None, order_direction: str = 'ASC',
                 filter: Condition = None, strategy: str = 'offset',
                 metadata: TableMetadata | None = None) -> tuple[Statement, Statement]:
    """Build the count query and the data query for one page of a table.

    The data query is formulated by the named pagination strategy
    (``offset`` or ``rownumber``); both share the filter bindings.
    """
    from dbexplorer.strategy import get_strategy

    request = PageRequest.create(page, page_size, order_by, order_direction)
    condition_sql, bindings = build_condition(filter, metadata)
    count = build_count(table, condition_sql, bindings)
    data = get_strategy(strategy).build(table, request, condition_sql, bindings)
    return count, data


def build_insert(table: str, data: Mapping[str, Any], metadata: TableMetadata,
                 large_text_threshold: int = LARGE_TEXT_THRESHOLD) -> Statement | None:
    """INSERT for the writable part of a record.

    A key is left out when it names an identity column, or when its value is
    None and the column does not accept NULL (the engine applies its default
    or constraint instead). Returns None when nothing is left to insert.
    """
    columns: list[str] = []
    bindings: list[ParamBinding] = []
    for key, value in data.items():
        col = metadata.require_column(key)
        if col.is_identity:
            logger.debug(f'Skipping identity column {col.name} for insert into {table}')
            continue
        if value is None and not col.is_nullable:
            logger.debug(f'Skipping null value for required column {col.name}')
            continue
        columns.append(col.name)
        bindings.append(bind_value(value, col.data_type, col.max_length, large_text_threshold))

    if not columns:
        logger.warning(f'No insertable data found for table {table} after filtering identity columns')
        return None

    quoted_cols = ', '.join(quote_identifier(col) for col in columns)
    placeholders = ', '.join(placeholder(i) for i in range(len(columns)))
    sql = f'INSERT INTO {quote_identifier(table)} ({quoted_cols}) VALUES ({placeholders})'
    return Statement(sql, bindings)


def build_update(table: str, data: Mapping[str, Any], where: Condition,
                 metadata: TableMetadata,
                 large_text_threshold: int = LARGE_TEXT_THRESHOLD) -> Statement | None:
    """UPDATE of every non-identity key in the record.

    Explicit None values are kept so a field can be cleared. The where
    condition is required; mapping conditions continue the parameter
    numbering after the SET values. Returns None when no column is left.
    """
    if not where or (isinstance(where, str) and not where.strip()):
        raise ValidationError('Where condition is required for update')

    assignments: list[str] = []
    bindings: list[ParamBinding] = []
    for key, value in data.items():
        col = metadata.require_column(key)
        if col.is_identity:
            logger.debug(f'Skipping identity column {col.name} for update of {table}')
            continue
        assignments.append(f'{quote_identifier(col.name)} = {placeholder(len(bindings))}')
        bindings.append(bind_value(value, col.data_type, col.max_length, large_text_threshold))

    if not assignments:
        logger.warning(f'No updatable columns found for table {table} after filtering identity columns')
        return None

    condition_sql, where_bindings = build_condition(where, metadata, start=len(bindings),
                                                    large_text_threshold=large_text_threshold)
    if not condition_sql:
        raise ValidationError('Where condition is required for update')

    sql = f"UPDATE {quote_identifier(table)} SET {', '.join(assignments)} WHERE {condition_sql}"
    return Statement(sql, bindings + where_bindings)


def build_delete(table: str, where: Condition,
                 metadata: TableMetadata | None = None) -> Statement:
    """DELETE restricted by a required where condition.
    """
    condition_sql, bindings = build_condition(where, metadata)
    if not condition_sql:
        raise ValidationError('Where condition is required for delete')
    return Statement(f'DELETE FROM {quote_identifier(table)} WHERE {condition_sql}', bindings)


def build_key_condition(metadata: TableMetadata, record: Mapping[str, Any]) -> dict[str, Any]:
    """Primary-key equality mapping addressing one row of the table.
    """
    if not metadata.primary_keys:
        raise ValidationError(f'Table {metadata.name!r} has no primary key')
    missing = [pk for pk in metadata.primary_keys if record.get(pk) is None]
    if missing:
        raise ValidationError(f'Missing primary key values for {missing}')
    return {pk: record[pk] for pk in metadata.primary_keys}
