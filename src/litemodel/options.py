from dataclasses import dataclass
from typing import Any, Self

import sqlalchemy as sa

__all__ = [
    'DRIVERNAME',
    'DatabaseOptions',
]

DRIVERNAME = 'mysql+mysqlconnector'


@dataclass
class DatabaseOptions:
    """Options

    The driver family is fixed to MySQL through `mysql-connector-python`;
    `drivername` exists so the URL can be round-tripped, any other value is
    rejected.

    Connection pooling options:
    - use_pool: Whether to use connection pooling (default: False)
    - pool_max_connections: Maximum connections in pool (default: 5)
    - pool_max_idle_time: Maximum seconds a connection can be idle (default: 300)
    - pool_wait_timeout: Maximum seconds to wait for a connection (default: 30)
    """
    drivername: str = DRIVERNAME
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 3306
    charset: str = 'utf8mb4'
    time_zone: str = None
    timeout: int = 0
    # Connection pooling parameters
    use_pool: bool = False
    pool_max_connections: int = 5
    pool_max_idle_time: int = 300
    pool_wait_timeout: int = 30

    def __post_init__(self):
        if self.drivername.split('+')[0] != 'mysql':
            raise ValueError(f'drivername must be {DRIVERNAME!r}, got {self.drivername!r}')
        self.drivername = DRIVERNAME
        if not self.database:
            raise ValueError('database is required')
        if self.port is not None and self.port <= 0:
            raise ValueError(f'port must be positive, got {self.port}')

    @classmethod
    def from_url(cls, url: str | sa.URL, **overrides: Any) -> Self:
        """Build options from a URL such as ``mysql://user:pw@host:3306/app``.

        Query parameters the options know about (``charset``, ``time_zone``,
        ``connect_timeout``) are picked up; the rest are ignored.
        """
        if isinstance(url, str):
            url = sa.make_url(url.strip())
        query = dict(url.query)
        kw: dict[str, Any] = {
            'drivername': url.drivername,
            'hostname': url.host,
            'username': url.username,
            'password': url.password,
            'database': url.database,
            'port': url.port or 3306,
            }
        if 'charset' in query:
            kw['charset'] = query['charset']
        if 'time_zone' in query:
            kw['time_zone'] = query['time_zone']
        if 'connect_timeout' in query:
            kw['timeout'] = int(query['connect_timeout'])
        kw.update(overrides)
        return cls(**kw)

    def to_url(self) -> sa.URL:
        """Convert to a SQLAlchemy URL with the standard connection parameters.
        """
        query = {'charset': self.charset, 'use_unicode': 'true'}
        if self.time_zone:
            query['time_zone'] = self.time_zone
        if self.timeout:
            query['connect_timeout'] = str(self.timeout)
        return sa.URL.create(
            drivername=self.drivername,
            username=self.username,
            password=self.password,
            host=self.hostname,
            port=self.port,
            database=self.database,
            query=query
        )
