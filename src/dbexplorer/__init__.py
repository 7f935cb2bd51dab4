"""
Schema-driven data access for SQL Server.

Tables are discovered at request time from INFORMATION_SCHEMA; records of any
table can then be read page by page, inserted, updated and deleted without
per-table code.

All operations can be called either as:
- Module functions taking a connection: db.get_table_data(cn, 'Orders')
- Client methods opening their own connection: db.client(options).get_table_data('Orders')
"""
__version__ = '0.1.0'

from dbexplorer.client import Client, client
from dbexplorer.connection import ConnectionState, ConnectionWrapper, connect
from dbexplorer.connection import connection_scope
from dbexplorer.data import delete_record, get_table_data, insert_record
from dbexplorer.data import update_record
from dbexplorer.exceptions import ConnectionFailure, DatabaseError
from dbexplorer.exceptions import DbConnectionError, QueryError, SchemaError
from dbexplorer.exceptions import ValidationError
from dbexplorer.options import DatabaseOptions
from dbexplorer.query import execute, execute_statement, select_scalar
from dbexplorer.schema import get_schema, get_table_metadata, list_tables
from dbexplorer.schema import require_columns, require_table
from dbexplorer.sql import PageRequest, Statement, build_delete, build_insert
from dbexplorer.sql import build_key_condition, build_select, build_update
from dbexplorer.sql import describe_condition, quote_identifier, quote_literal
from dbexplorer.strategy import fetch_page, get_strategy
from dbexplorer.structure import ColumnMetadata, ForeignKeyMetadata, Record
from dbexplorer.structure import TableData, TableMetadata
from dbexplorer.types import BindingType, ParamBinding, coerce_value
from dbexplorer.types import resolve_binding_type, sqlalchemy_type

__all__ = [
    # connection
    'connect',
    'connection_scope',
    'client',
    'Client',
    'ConnectionState',
    'ConnectionWrapper',
    'DatabaseOptions',
    # schema
    'list_tables',
    'get_table_metadata',
    'get_schema',
    'require_table',
    'require_columns',
    # records
    'get_table_data',
    'insert_record',
    'update_record',
    'delete_record',
    # statements
    'build_select',
    'build_insert',
    'build_update',
    'build_delete',
    'build_key_condition',
    'describe_condition',
    'quote_identifier',
    'quote_literal',
    'fetch_page',
    'get_strategy',
    'execute',
    'execute_statement',
    'select_scalar',
    # types
    'BindingType',
    'ParamBinding',
    'resolve_binding_type',
    'coerce_value',
    'sqlalchemy_type',
    'ColumnMetadata',
    'ForeignKeyMetadata',
    'TableMetadata',
    'TableData',
    'PageRequest',
    'Statement',
    'Record',
    # exceptions
    'DatabaseError',
    'ConnectionFailure',
    'ValidationError',
    'QueryError',
    'SchemaError',
    'DbConnectionError',
]
