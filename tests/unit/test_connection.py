"""
Unit tests for engine creation, connection readiness and connection scope.

No server is contacted: engine creation is patched and the SQLAlchemy
connection is a mock.
"""
from unittest.mock import MagicMock, PropertyMock

import config
import pytest
import sqlalchemy as sa
from dbexplorer.connection import ConnectionState, ConnectionWrapper, connect
from dbexplorer.connection import connection_scope, create_engine_for_options
from dbexplorer.connection import create_url_from_options
from dbexplorer.exceptions import ConnectionFailure
from dbexplorer.schema import list_tables
from sqlalchemy.pool import NullPool
from tests.fixtures.mocks import make_sa_connection


class FakeClock:
    """Monotonic clock advanced only by the sleep function"""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def engine(mocker, fake_db):
    engine = MagicMock()
    sa_connection = make_sa_connection(fake_db)
    sa_connection.engine = engine
    engine.connect.return_value = sa_connection
    mocker.patch('dbexplorer.connection.create_engine_for_options', return_value=engine)
    return engine


class TestEngineCreation:

    def test_url(self, db_options):
        url = create_url_from_options(db_options)
        assert url.drivername == 'mssql+pyodbc'
        assert (url.host, url.port, url.database) == ('sqlhost', 1433, 'explorer')
        assert url.username == 'sa'
        assert url.query['driver'] == 'ODBC Driver 18 for SQL Server'
        assert url.query['Encrypt'] == 'yes'
        assert url.query['TrustServerCertificate'] == 'yes'
        assert url.query['APP'] == 'dbexplorer-tests'

    def test_url_without_encryption(self, db_options):
        db_options.encrypt = False
        assert create_url_from_options(db_options).query['Encrypt'] == 'no'

    def test_engine_is_unpooled_with_login_timeout(self, db_options):
        factory = MagicMock()
        create_engine_for_options(db_options, engine_factory=factory)
        url, = factory.call_args.args
        kwargs = factory.call_args.kwargs
        assert url.drivername == 'mssql+pyodbc'
        assert kwargs['poolclass'] is NullPool
        assert kwargs['isolation_level'] == 'AUTOCOMMIT'
        assert kwargs['connect_args'] == {'timeout': 10}


class TestConnect:

    def test_connect_configures_query_timeout(self, engine, db_options):
        cn = connect(db_options)
        assert isinstance(cn, ConnectionWrapper)
        assert cn.state is ConnectionState.READY
        assert cn.sa_connection.connection.driver_connection.timeout == 30
        assert cn.engine is cn.sa_connection.engine

    def test_connect_from_named_config(self, engine):
        cn = connect('mssql', config=config)
        assert cn.options.hostname == 'localhost'
        assert cn.options.database == 'explorer'

    def test_connect_failure(self, engine, db_options):
        engine.connect.side_effect = sa.exc.OperationalError(
            'connect', {}, Exception('Login timeout expired'))
        with pytest.raises(ConnectionFailure, match='Login timeout expired'):
            connect(db_options)
        engine.dispose.assert_called_once()


class TestReadiness:

    def test_ready_connection_returns_immediately(self, fake_connection):
        clock = FakeClock()
        fake_connection.wait_until_ready(sleep_func=clock.sleep, clock=clock)
        assert clock.sleeps == []

    def test_closed_connection_is_final(self, fake_connection):
        fake_connection.sa_connection.closed = True
        assert fake_connection.state is ConnectionState.FINAL
        with pytest.raises(ConnectionFailure, match='closed'):
            fake_connection.wait_until_ready()

    def test_missing_connection_is_final(self):
        assert ConnectionWrapper().state is ConnectionState.FINAL

    def test_pending_connection_times_out(self, fake_connection):
        fake_connection.sa_connection.invalidated = True
        clock = FakeClock()
        with pytest.raises(ConnectionFailure, match='Current state: pending'):
            fake_connection.wait_until_ready(sleep_func=clock.sleep, clock=clock)
        assert clock.now >= 15
        assert set(clock.sleeps) == {0.1}

    def test_pending_connection_recovers(self, fake_connection):
        sa_connection = fake_connection.sa_connection
        sa_connection.invalidated = True

        def reconnect():
            sa_connection.invalidated = False

        sa_connection.rollback.side_effect = reconnect
        clock = FakeClock()
        fake_connection.wait_until_ready(sleep_func=clock.sleep, clock=clock)
        assert fake_connection.state is ConnectionState.READY
        assert len(clock.sleeps) == 1

    def test_pending_connection_revalidated_without_query_timeout(self, fake_connection):
        fake_connection.options.query_timeout = 0
        sa_connection = fake_connection.sa_connection
        sa_connection.invalidated = True

        def revalidate():
            sa_connection.invalidated = False
            return MagicMock()

        type(sa_connection).connection = PropertyMock(side_effect=revalidate)
        clock = FakeClock()
        fake_connection.wait_until_ready(sleep_func=clock.sleep, clock=clock)
        assert fake_connection.state is ConnectionState.READY
        assert len(clock.sleeps) == 1


class TestConnectionScope:

    def test_closes_and_disposes(self, engine, db_options):
        with connection_scope(db_options) as cn:
            sa_connection = cn.sa_connection
            assert cn.state is ConnectionState.READY
        sa_connection.close.assert_called_once()
        engine.dispose.assert_called_once()

    def test_closes_on_error(self, engine, db_options):
        with pytest.raises(RuntimeError), connection_scope(db_options) as cn:
            raise RuntimeError('boom')
        cn.sa_connection.close.assert_called_once()
        engine.dispose.assert_called_once()

    def test_statistics(self, orders_db, fake_connection):
        list_tables(fake_connection)
        list_tables(fake_connection)
        assert fake_connection.calls == 2
        assert fake_connection.time >= 0
