"""
Unit tests for the request-scoped Client facade.
"""
from unittest.mock import MagicMock

import pytest
import sqlalchemy as sa
from dbexplorer.client import Client, client
from dbexplorer.exceptions import ConnectionFailure, ValidationError
from dbexplorer.options import DatabaseOptions
from dbexplorer.structure import TableData
from tests.fixtures.mocks import make_sa_connection


@pytest.fixture
def engines(mocker, orders_db):
    """Every connect() gets a new engine and connection over the same fake database"""
    created = []

    def factory(options):
        engine = MagicMock()
        sa_connection = make_sa_connection(orders_db)
        sa_connection.engine = engine
        engine.connect.return_value = sa_connection
        created.append(engine)
        return engine

    mocker.patch('dbexplorer.connection.create_engine_for_options', side_effect=factory)
    return created


def test_each_call_uses_its_own_connection(engines, db_options):
    db = Client(db_options)

    assert db.list_tables() == ['Customers', 'Orders']
    assert db.get_table_metadata('Orders').primary_keys == ['Id']

    assert len(engines) == 2
    for engine in engines:
        engine.connect.return_value.close.assert_called_once()
        engine.dispose.assert_called_once()


def test_read_and_write_operations(engines, orders_db, db_options):
    db = Client(db_options)

    assert db.get_table_data('Orders', page=1, page_size=50) == TableData(data=[], total=0)
    assert db.insert_record('Orders', {'Id': 1, 'CustomerId': 2, 'Total': 3})
    assert db.update_record('Orders', {'Note': 'x'}, {'Id': 1})
    assert db.delete_record('Orders', {'Id': 1})
    assert [t.name for t in db.get_schema()] == ['Customers', 'Orders']

    assert len(orders_db.statements_containing('INSERT INTO [Orders]')) == 1
    assert len(orders_db.statements_containing('UPDATE [Orders]')) == 1
    assert len(orders_db.statements_containing('DELETE FROM [Orders]')) == 1


def test_connection_released_when_operation_fails(engines, db_options):
    db = Client(db_options)
    with pytest.raises(ValidationError):
        db.delete_record('Orders', '')
    engines[0].dispose.assert_called_once()


@pytest.fixture
def unreachable(mocker):
    """Every connect() fails at login"""
    engine = MagicMock()
    engine.connect.side_effect = sa.exc.OperationalError(
        'connect', {}, Exception('Login timeout expired'))
    mocker.patch('dbexplorer.connection.create_engine_for_options', return_value=engine)
    return engine


def test_read_returns_envelope_when_connect_fails(unreachable, db_options, caplog):
    result = Client(db_options).get_table_data('Orders')

    assert result.data == []
    assert result.total == 0
    assert result.error.startswith('Failed to fetch data: ')
    assert 'Login timeout expired' in result.error
    assert 'Error fetching data from table Orders' in caplog.text
    unreachable.dispose.assert_called_once()


def test_write_propagates_when_connect_fails(unreachable, db_options):
    db = Client(db_options)
    with pytest.raises(ConnectionFailure, match='Login timeout expired'):
        db.delete_record('Orders', {'Id': 1})
    with pytest.raises(ConnectionFailure):
        db.list_tables()


def test_client_from_options(db_options):
    db = client(db_options)
    assert isinstance(db, Client)
    assert db.options is db_options


def test_client_from_dict():
    db = client({'hostname': 'h', 'username': 'u', 'password': 'p', 'database': 'd'})
    assert isinstance(db.options, DatabaseOptions)
    assert db.options.hostname == 'h'


def test_method_metadata():
    assert Client.get_table_data.__name__ == 'get_table_data'
    assert 'TableData' in Client.get_table_data.__doc__
