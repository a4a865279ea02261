"""
Database connection handling with SQLAlchemy.

This module provides:
1. The `Database` class owning one SQLAlchemy engine for the MySQL driver
2. Liveness checking with a single reconnect attempt
3. A process-default `Database` behind `init_db()`, `check_db()` and `get_db()`

A `Database` is either disconnected (no engine) or connected (an engine that
answered a probe at some point). `initialize()` moves it to connected,
`ensure_live()` probes and reconnects once if the probe fails, `get_engine()`
returns the engine without probing.
"""
import atexit
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from litemodel.exceptions import ConnectionFailure, NotInitializedError
from litemodel.options import DatabaseOptions
from litemodel.registry import ModelRegistry, get_registry

__all__ = [
    'Database',
    'get_database',
    'set_database',
    'init_db',
    'check_db',
    'get_db',
]

logger = logging.getLogger(__name__)

PING_SQL = 'SELECT 1'


def _ping(engine: Engine) -> None:
    with engine.connect() as cn:
        cn.execute(sa.text(PING_SQL))


class Database:
    """One lazily-initialized engine plus the registry its models use.

    `engine_factory` defaults to `sqlalchemy.create_engine`; extra keyword
    arguments are passed through to it.
    """

    def __init__(self, registry: ModelRegistry | None = None,
                 engine_factory: Callable[..., Engine] = sa.create_engine,
                 **engine_kwargs: Any) -> None:
        self.registry = registry or get_registry()
        self.options: DatabaseOptions | None = None
        self.url: sa.URL | None = None
        self.engine: Engine | None = None
        self._engine_factory = engine_factory
        self._engine_kwargs = engine_kwargs
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        url = self.url.render_as_string(hide_password=True) if self.url else None
        return f'<Database url={url!r} connected={self.is_connected}>'

    @property
    def is_connected(self) -> bool:
        return self.engine is not None

    def initialize(self, datasource: str | sa.URL | DatabaseOptions) -> Engine:
        """Store the connection URL and connect once.

        Raises ConnectionFailure if the first probe fails; the database then
        stays disconnected.
        """
        if isinstance(datasource, DatabaseOptions):
            options = datasource
        else:
            options = DatabaseOptions.from_url(datasource)
        with self._lock:
            self.options = options
            self.url = options.to_url()
            return self._connect()

    def ensure_live(self) -> Engine:
        """Probe the engine, reconnecting once if the probe fails.
        """
        with self._lock:
            if self.engine is None:
                raise NotInitializedError('Database not initialized')
            try:
                _ping(self.engine)
                return self.engine
            except sa.exc.DBAPIError as err:
                logger.warning(f'Connection probe failed, reconnecting: {err}')
            try:
                return self._connect()
            except ConnectionFailure as err:
                logger.error(f'Reconnect failed: {err}')
                raise

    def get_engine(self) -> Engine:
        """Return the engine without probing it.
        """
        engine = self.engine
        if engine is None:
            raise NotInitializedError('Database connection pool has not been initialized yet')
        return engine

    def dispose(self) -> None:
        """Dispose the engine and return to the disconnected state."""
        with self._lock:
            if self.engine is not None:
                self.engine.dispose()
                logger.debug('Database engine disposed')
            self.engine = None

    def begin(self) -> Any:
        """Start a caller-owned transaction: ``with db.begin() as tx: ...``.
        """
        return self.get_engine().begin()

    @contextmanager
    def connection(self, tx: sa.engine.Connection | None = None) -> Iterator[sa.engine.Connection]:
        """Yield `tx` unchanged, or a connection in its own committed block.
        """
        if tx is not None:
            yield tx
            return
        with self.get_engine().begin() as cn:
            yield cn

    def _create_engine(self) -> Engine:
        options = self.options
        engine_kwargs: dict[str, Any] = {'echo': False}
        if not options.use_pool:
            engine_kwargs['poolclass'] = NullPool
        else:
            engine_kwargs['pool_size'] = options.pool_max_connections
            engine_kwargs['pool_recycle'] = options.pool_max_idle_time
            engine_kwargs['pool_timeout'] = options.pool_wait_timeout
            engine_kwargs['max_overflow'] = 10
            engine_kwargs['pool_reset_on_return'] = 'rollback'
        engine_kwargs.update(self._engine_kwargs)
        return self._engine_factory(self.url, **engine_kwargs)

    def _connect(self) -> Engine:
        safe_url = self.url.render_as_string(hide_password=True)
        engine = self._create_engine()
        try:
            _ping(engine)
        except sa.exc.DBAPIError as err:
            engine.dispose()
            raise ConnectionFailure(f'Could not connect to {safe_url}: {err}') from err

        previous, self.engine = self.engine, engine
        if previous is not None and previous is not engine:
            previous.dispose()
        logger.debug(f'Connected to {safe_url}')
        return engine


_default_database = Database()
_default_lock = threading.Lock()


def get_database() -> Database:
    """Return the process-default `Database`."""
    return _default_database


def set_database(database: Database) -> Database:
    """Replace the process-default `Database`; returns the previous one."""
    global _default_database
    with _default_lock:
        previous, _default_database = _default_database, database
    return previous


def init_db(datasource: str | sa.URL | DatabaseOptions) -> Engine:
    """Initialize the process-default database."""
    return _default_database.initialize(datasource)


def check_db() -> Engine:
    """Probe the process-default database, reconnecting once if needed."""
    return _default_database.ensure_live()


def get_db() -> Engine:
    """Return the process-default engine without probing it."""
    return _default_database.get_engine()


def _dispose_default() -> None:
    _default_database.dispose()


atexit.register(_dispose_default)
