"""
Exception classes for the data access layer.
"""
import sqlalchemy as sa


class DatabaseError(Exception):
    """Base class for all dbexplorer errors.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing a connection or waiting for it to become ready.
    """


class ValidationError(DatabaseError):
    """Error in caller input (table name, where condition, pagination).
    """


class SchemaError(DatabaseError):
    """Introspected metadata is inconsistent.
    """


class QueryError(DatabaseError):
    """The engine rejected or failed a statement.

    The offending statement, truncated, is kept on ``statement``.
    """

    def __init__(self, message: str, statement: str | None = None) -> None:
        super().__init__(message)
        self.statement = statement


DbConnectionError = (
    sa.exc.OperationalError,
    sa.exc.InterfaceError,
    sa.exc.DisconnectionError,
    ConnectionFailure,
    )
