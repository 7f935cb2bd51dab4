"""
Unit tests for catalog introspection against the fake connection.
"""
import pytest
from dbexplorer.exceptions import QueryError, SchemaError, ValidationError
from dbexplorer.schema import get_schema, get_table_metadata, list_tables
from dbexplorer.schema import require_columns, require_table
from tests.fixtures.mocks import column, programming_error


def test_list_tables_sorted(orders_db, fake_connection):
    assert list_tables(fake_connection) == ['Customers', 'Orders']
    sql, params = orders_db.executed[0]
    assert "TABLE_TYPE = 'BASE TABLE'" in sql
    assert params == {'param0': 'dbo'}


def test_table_metadata(orders_db, fake_connection):
    metadata = get_table_metadata(fake_connection, 'Orders')

    assert metadata.name == 'Orders'
    assert metadata.column_names == ['Id', 'CustomerId', 'Total', 'Note']
    assert metadata.primary_keys == ['Id']
    assert metadata.identity_columns == ['Id']
    assert metadata.column('Note').max_length == 200
    assert metadata.column('Note').is_nullable is True
    assert metadata.column('CustomerId').is_nullable is False

    fk = metadata.foreign_keys[0]
    assert (fk.column_name, fk.referenced_table, fk.referenced_column) == ('CustomerId', 'Customers', 'Id')


def test_table_name_is_bound_not_interpolated(orders_db, fake_connection):
    get_table_metadata(fake_connection, "Orders'; DROP TABLE Orders; --")
    assert len(orders_db.executed) == 3
    for sql, params in orders_db.executed:
        assert 'DROP TABLE' not in sql
        assert params['param1'] == "Orders'; DROP TABLE Orders; --"


def test_columns_follow_ordinal_order(fake_db, fake_connection):
    fake_db.add_table('Wide', columns=[column('Zeta', 'int'), column('Alpha', 'int'), column('Mid', 'bit')])
    assert get_table_metadata(fake_connection, 'Wide').column_names == ['Zeta', 'Alpha', 'Mid']


def test_unknown_table_is_empty(orders_db, fake_connection):
    metadata = get_table_metadata(fake_connection, 'Nope')
    assert metadata.is_empty
    assert metadata.primary_keys == []
    assert metadata.foreign_keys == []


def test_metadata_to_dict(orders_db, fake_connection):
    data = get_table_metadata(fake_connection, 'Customers').to_dict()
    assert data['primaryKeys'] == ['Id']
    assert data['columns'][0] == {
        'name': 'Id',
        'dataType': 'int',
        'isNullable': False,
        'maxLength': None,
        'precision': 10,
        'scale': 0,
        'isIdentity': True,
        }


def test_get_schema_skips_failing_table(orders_db, fake_connection, caplog):
    orders_db.fail_on('FOREIGN KEY', programming_error('permission denied'), table='Orders')

    tables = get_schema(fake_connection)

    assert [t.name for t in tables] == ['Customers']
    assert 'Error fetching metadata for table Orders: permission denied' in caplog.text


@pytest.fixture
def ghost_keys_db(orders_db):
    """Adds tables whose key columns are missing from their column list"""
    orders_db.add_table('GhostPk', columns=[column('Id', 'int')], primary_keys=['Ghost'])
    orders_db.add_table(
        'GhostFk',
        columns=[column('Id', 'int')],
        primary_keys=['Id'],
        foreign_keys=[{
            'name': 'FK_GhostFk_Customers',
            'column_name': 'Ghost',
            'referenced_table': 'Customers',
            'referenced_column': 'Id',
            }],
        )
    return orders_db


@pytest.mark.parametrize(('table', 'message'), [
    ('GhostPk', 'Primary key columns'),
    ('GhostFk', 'Foreign key columns'),
], ids=['primary-key', 'foreign-key'])
def test_key_column_missing_from_columns(ghost_keys_db, fake_connection, table, message):
    with pytest.raises(SchemaError, match=message):
        get_table_metadata(fake_connection, table)


def test_get_schema_skips_inconsistent_table(ghost_keys_db, fake_connection, caplog):
    tables = get_schema(fake_connection)
    assert [t.name for t in tables] == ['Customers', 'Orders']
    assert 'Error fetching metadata for table GhostPk' in caplog.text
    assert 'Error fetching metadata for table GhostFk' in caplog.text


def test_columns_query_quotes_numeric_aliases(orders_db, fake_connection):
    get_table_metadata(fake_connection, 'Orders')
    (sql, _), = orders_db.statements_containing('INFORMATION_SCHEMA.COLUMNS')
    assert 'AS [precision]' in sql
    assert 'AS [scale]' in sql


def test_get_schema_all_tables(orders_db, fake_connection):
    tables = get_schema(fake_connection)
    assert [t.name for t in tables] == ['Customers', 'Orders']


def test_get_schema_catalog_failure_propagates(orders_db, fake_connection):
    orders_db.fail_on('INFORMATION_SCHEMA.TABLES', programming_error('login failed'))
    with pytest.raises(QueryError):
        get_schema(fake_connection)


class TestRequireTable:

    def test_exact_match(self, orders_db, fake_connection):
        assert require_table(fake_connection, 'Orders') == 'Orders'

    def test_case_insensitive_returns_catalog_spelling(self, orders_db, fake_connection):
        assert require_table(fake_connection, ' orders ') == 'Orders'

    @pytest.mark.parametrize('name', [None, '', '   '])
    def test_name_required(self, orders_db, fake_connection, name):
        with pytest.raises(ValidationError, match='Table name is required'):
            require_table(fake_connection, name)
        assert orders_db.executed == []

    def test_unknown_table(self, orders_db, fake_connection):
        with pytest.raises(ValidationError):
            require_table(fake_connection, 'Orders; DROP TABLE Orders')


def test_require_columns(orders_db, fake_connection):
    metadata = get_table_metadata(fake_connection, 'Orders')
    assert require_columns(metadata, ['total', 'Note']) == ['Total', 'Note']
    with pytest.raises(ValidationError):
        require_columns(metadata, ['Total', 'Discount'])
