import os
from dataclasses import dataclass

from libb import ConfigOptions, scriptname

__all__ = ['DatabaseOptions']

REQUIRED_OPTIONS = ('hostname', 'username', 'password', 'database')


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options

    Connection settings for a SQL Server database reached through pyodbc.

    Timeouts (seconds):
    - timeout: bound on initial connection establishment (login timeout)
    - ready_timeout: maximum wait for a connection to become ready
    - ready_poll_interval: poll interval while waiting for readiness
    - query_timeout: per-statement timeout set on the driver connection
    """
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 1433
    driver: str = 'ODBC Driver 18 for SQL Server'
    encrypt: bool = True
    trust_server_certificate: bool = True
    schema: str = 'dbo'
    appname: str = None
    timeout: int = 10
    ready_timeout: float = 15
    ready_poll_interval: float = 0.1
    query_timeout: int = 30
    page_size: int = 50
    large_text_threshold: int = 4000

    def __post_init__(self):
        for field in REQUIRED_OPTIONS:
            if not getattr(self, field):
                raise ValueError(f'field {field} cannot be None or empty')
        if self.timeout <= 0 or self.ready_timeout <= 0:
            raise ValueError('timeouts must be positive')
        self.appname = self.appname or scriptname() or 'python_console'

    @classmethod
    def from_env(cls, environ=None, **kw) -> 'DatabaseOptions':
        """Build options from DB_HOST, DB_PORT, DB_USER, DB_PASSWORD and DB_NAME.

        Keyword arguments override values read from the environment.
        """
        environ = os.environ if environ is None else environ
        values = {
            'hostname': environ.get('DB_HOST', ''),
            'port': int(environ.get('DB_PORT') or 1433),
            'username': environ.get('DB_USER', ''),
            'password': environ.get('DB_PASSWORD', ''),
            'database': environ.get('DB_NAME', ''),
            }
        values.update(kw)
        return cls(**values)

    def __repr__(self) -> str:
        return (f'DatabaseOptions(hostname={self.hostname!r}, port={self.port}, '
                f'database={self.database!r}, username={self.username!r})')
