"""
SQL Server connection handling with SQLAlchemy.

This module provides:
1. `connect()` for opening one connection per request
2. `connection_scope()`, a context manager that always releases it
3. The `ConnectionWrapper` class, which tracks readiness and query statistics

Connections are never pooled or shared between requests: every engine uses
`NullPool` and is disposed together with its only connection.
"""
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import fields
from enum import Enum
from typing import Any, Self

import sqlalchemy as sa
from dbexplorer.exceptions import ConnectionFailure, DbConnectionError
from dbexplorer.options import DatabaseOptions
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from libb import load_options

__all__ = [
    'ConnectionState',
    'ConnectionWrapper',
    'connect',
    'connection_scope',
    'configure_connection',
    'create_url_from_options',
    'create_engine_for_options',
]

logger = logging.getLogger(__name__)


def create_url_from_options(options: DatabaseOptions,
                            url_creator: Callable[..., sa.URL] = sa.URL.create) -> sa.URL:
    """Convert DatabaseOptions to an `mssql+pyodbc` SQLAlchemy URL.
    """
    query = {
        'driver': options.driver,
        'Encrypt': 'yes' if options.encrypt else 'no',
        'TrustServerCertificate': 'yes' if options.trust_server_certificate else 'no',
        'APP': options.appname,
        }
    return url_creator(
        drivername='mssql+pyodbc',
        username=options.username,
        password=options.password,
        host=options.hostname,
        port=options.port,
        database=options.database,
        query=query,
        )


def create_engine_for_options(options: DatabaseOptions,
                              engine_factory: Callable[..., Engine] = sa.create_engine,
                              **kwargs: Any) -> Engine:
    """Create an unpooled engine for the given options.

    The pyodbc ``timeout`` connect argument bounds the login.
    """
    engine_kwargs: dict[str, Any] = {
        'echo': False,
        'poolclass': NullPool,
        'isolation_level': 'AUTOCOMMIT',
        'connect_args': {'timeout': options.timeout},
        }
    engine_kwargs.update(kwargs)
    return engine_factory(create_url_from_options(options), **engine_kwargs)


class ConnectionState(Enum):
    READY = 'ready'
    PENDING = 'pending'
    FINAL = 'final'


class ConnectionWrapper:
    """Wraps a SQLAlchemy connection to track readiness, calls and execution time

    The state of the wrapped connection is one of:
    - READY: open and usable
    - PENDING: invalidated by a dropped link, reconnects on next use
    - FINAL: closed; it will never become usable again
    """

    def __init__(self, sa_connection: sa.engine.Connection | None = None,
                 options: DatabaseOptions | None = None) -> None:
        self.sa_connection = sa_connection
        self.engine = sa_connection.engine if sa_connection is not None else None
        self.options = options
        self.calls = 0
        self.time = 0.0

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def schema(self) -> str:
        return self.options.schema if self.options else 'dbo'

    @property
    def state(self) -> ConnectionState:
        sa_connection = self.sa_connection
        if sa_connection is None or sa_connection.closed:
            return ConnectionState.FINAL
        if sa_connection.invalidated:
            return ConnectionState.PENDING
        return ConnectionState.READY

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def _revive(self) -> None:
        """Ask SQLAlchemy to procure a new DBAPI connection for an invalidated one.
        """
        try:
            self.sa_connection.rollback()
            self.sa_connection.connection  # revalidates an invalidated connection
            configure_connection(self.sa_connection, self.options)
        except (*DbConnectionError, sa.exc.PendingRollbackError) as err:
            logger.debug(f'Connection not ready yet: {err}')

    def wait_until_ready(self, timeout: float | None = None, interval: float | None = None,
                         sleep_func: Callable[[float], None] = time.sleep,
                         clock: Callable[[], float] = time.monotonic) -> None:
        """Block until the connection is ready, polling with a bounded wait.

        Raises ConnectionFailure when the connection is closed or the wait
        elapses.
        """
        if timeout is None:
            timeout = self.options.ready_timeout if self.options else 15
        if interval is None:
            interval = self.options.ready_poll_interval if self.options else 0.1

        deadline = clock() + timeout
        while True:
            state = self.state
            if state is ConnectionState.READY:
                return
            if state is ConnectionState.FINAL:
                raise ConnectionFailure('Connection closed before reaching ready state')
            if clock() >= deadline:
                raise ConnectionFailure(
                    f'Connection timeout waiting for ready state. Current state: {state.value}')
            logger.debug(f'Waiting for connection state to change from {state.value} to ready')
            self._revive()
            sleep_func(interval)

    def close(self) -> None:
        """Close the connection and dispose its engine.
        """
        if self.sa_connection is not None and not self.sa_connection.closed:
            self.sa_connection.close()
            logger.info(f'Connection closed: {self.calls} queries in {self.time:.2f}s '
                         f'(avg: {self.time/max(1, self.calls):.3f}s per query)')
        if self.engine is not None:
            self.engine.dispose()


def configure_connection(sa_connection: sa.engine.Connection,
                         options: DatabaseOptions | None) -> None:
    """Apply the per-statement timeout to the pyodbc connection.
    """
    if options is None or not options.query_timeout:
        return
    driver_connection = sa_connection.connection.driver_connection
    driver_connection.timeout = options.query_timeout


@load_options(cls=DatabaseOptions)
def connect(options: DatabaseOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> ConnectionWrapper:
    """Open a connection to SQL Server.

    Args:
        options: Can be:
                - DatabaseOptions object
                - String name of a configuration setting
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Raises
        ConnectionFailure: if the server cannot be reached or login fails
    """
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    logger.info(f'Connecting to database {options.database} on {options.hostname}:{options.port} '
                f'(encrypt={options.encrypt})')

    engine = create_engine_for_options(options)
    try:
        sa_connection = engine.connect()
        configure_connection(sa_connection, options)
    except (*DbConnectionError, sa.exc.DBAPIError) as err:
        engine.dispose()
        logger.error(f'Database connection error: {err}')
        raise ConnectionFailure(f'Could not connect to {options.hostname}: {err}') from err

    logger.debug('Connected to database successfully')
    return ConnectionWrapper(sa_connection, options)


@contextmanager
def connection_scope(options: DatabaseOptions | dict[str, Any] | str,
                     config: Any | None = None, **kw: Any) -> Iterator[ConnectionWrapper]:
    """Acquire a connection for one request and release it on every exit path.
    """
    cn = connect(options, config, **kw)
    try:
        yield cn
    finally:
        try:
            cn.close()
        except sa.exc.SQLAlchemyError as err:
            logger.error(f'Error closing connection: {err}')
