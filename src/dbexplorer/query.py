"""
Statement execution against a live connection.

Every statement goes through `execute`, which:
1. Waits (bounded) for the connection to be ready
2. Binds each ParamBinding as ``paramN`` with its SQLAlchemy type
3. Returns result rows as ordered records keyed by output column name

Engine errors surface as QueryError carrying the driver message and the
statement text truncated for diagnostics.
"""
import logging
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbexplorer.exceptions import ConnectionFailure, QueryError
from dbexplorer.sql import Statement, param_name
from dbexplorer.structure import Record
from dbexplorer.types import ParamBinding, sqlalchemy_type

if TYPE_CHECKING:
    from dbexplorer.connection import ConnectionWrapper

logger = logging.getLogger(__name__)

STATEMENT_PREVIEW = 100


def preview(sql: str, limit: int = STATEMENT_PREVIEW) -> str:
    """Collapse whitespace and truncate a statement for logs and errors.

    >>> preview('SELECT *\\n  FROM [Orders]')
    'SELECT * FROM [Orders]'
    """
    text = ' '.join(sql.split())
    if len(text) > limit:
        return f'{text[:limit]}...'
    return text


def bind_statement(sql: str, bindings: Sequence[ParamBinding] | None = None) -> sa.TextClause:
    """Build a SQLAlchemy text clause with typed positional parameters.
    """
    clause = sa.text(sql)
    if not bindings:
        return clause
    params = [
        sa.bindparam(param_name(i), b.value, type_=sqlalchemy_type(b.binding_type))
        for i, b in enumerate(bindings)
        ]
    return clause.bindparams(*params)


def execute(cn: 'ConnectionWrapper', sql: str,
            bindings: Sequence[ParamBinding] | None = None, *,
            ready_timeout: float | None = None) -> list[Record]:
    """Run a statement and return its rows as records.

    Statements that produce no result set return an empty list.
    """
    cn.wait_until_ready(timeout=ready_timeout)

    statement = bind_statement(sql, bindings)
    logger.debug(f'Executing query: {preview(sql)} ({len(bindings or ())} parameters)')

    start = time.time()
    try:
        result = cn.sa_connection.execute(statement)
        if not result.returns_rows:
            logger.debug(f'Query completed successfully. Row count: {result.rowcount}')
            return []
        columns = list(result.keys())
        records = [Record(dict(zip(columns, row))) for row in result]
    except sa.exc.DBAPIError as err:
        if err.connection_invalidated:
            raise ConnectionFailure(f'Connection lost while executing query: {err.orig}') from err
        logger.error(f'Query error: {err.orig}')
        raise QueryError(str(err.orig), preview(sql)) from err
    except sa.exc.SQLAlchemyError as err:
        logger.error(f'Query error: {err}')
        raise QueryError(str(err), preview(sql)) from err
    finally:
        cn.addcall(time.time() - start)

    logger.debug(f'Query completed successfully. Row count: {len(records)}')
    return records


def execute_statement(cn: 'ConnectionWrapper', statement: Statement, **kwargs: Any) -> list[Record]:
    """Run a built Statement.
    """
    return execute(cn, statement.sql, statement.bindings, **kwargs)


def select_scalar(cn: 'ConnectionWrapper', sql: str,
                  bindings: Sequence[ParamBinding] | None = None) -> Any:
    """Run a query and return the first value of the first row, or None.
    """
    records = execute(cn, sql, bindings)
    if not records:
        return None
    return next(iter(records[0].values()), None)
