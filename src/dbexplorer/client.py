"""
Request-scoped facade over the connection-taking operations.

A `Client` stores only connection options. Every method call opens its own
connection, runs one operation and releases the connection, so a client may
be shared freely between callers.

Testing notes:

Business logic that takes a client can be tested with a stub:

    class FakeClient:
        def list_tables(self):
            return ['Orders']

        def get_table_data(self, table, **kw):
            return TableData(data=[{'Id': 1}], total=1)

    service_under_test(db=FakeClient())
"""
import logging
from collections.abc import Callable
from dataclasses import fields
from functools import wraps
from typing import Any

from dbexplorer import data as _data
from dbexplorer import schema as _schema
from dbexplorer.connection import connection_scope
from dbexplorer.exceptions import DatabaseError
from dbexplorer.options import DatabaseOptions

from libb import load_options

logger = logging.getLogger(__name__)

CLIENT_OPERATIONS = {
    'list_tables': _schema,
    'get_table_metadata': _schema,
    'get_schema': _schema,
    'get_table_data': _data,
    'insert_record': _data,
    'update_record': _data,
    'delete_record': _data,
    }

# Operations that report failures in their result instead of raising
ENVELOPE_OPERATIONS = {'get_table_data'}


def _bind(op_name: str) -> Callable[..., Any]:
    """Create a method that runs an operation on a fresh connection.

    Parameters
        op_name: Name of a function taking a connection as first argument

    Returns
        A method that opens a connection scope and supplies it to the operation
    """
    op = getattr(CLIENT_OPERATIONS[op_name], op_name)

    @wraps(op)
    def _method(self, *args, **kwargs):
        try:
            with connection_scope(self.options) as cn:
                return op(cn, *args, **kwargs)
        except DatabaseError as err:
            if op_name not in ENVELOPE_OPERATIONS:
                raise
            table = kwargs.get('table', args[0] if args else None)
            return _data.failed_read(table, err)

    return _method


class Client:
    """Light-weight facade holding connection options.

    Exposes the schema and record operations as instance methods without a
    connection argument.
    """

    __slots__ = ('options',)

    for _name in CLIENT_OPERATIONS:
        locals()[_name] = _bind(_name)
    del _name

    def __init__(self, options: DatabaseOptions) -> None:
        self.options = options

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self.options!r})'


@load_options(cls=DatabaseOptions)
def client(options: DatabaseOptions | dict[str, Any] | str,
           config: Any | None = None, **kw: Any) -> Client:
    """Return a Client for the given options, dict or named configuration.
    """
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)
    return Client(options)
