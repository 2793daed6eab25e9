"""
Relational source connections with SQLAlchemy async.

One ``AsyncEngine`` (and therefore one connection pool) is kept per named
source descriptor. Engines are created lazily on first use, shared by every
job that reads from that source and disposed only on explicit teardown.
"""

import asyncio
import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from core.config import Settings, settings as default_settings
from core.exceptions import ConfigurationError, DatabaseConnectionError, QueryExecutionError
from models.base import SourceKind
from models.job import SourceConfig

logger = logging.getLogger(__name__)


class DriverSpec(NamedTuple):
    """How one source kind is reached"""
    drivername: str
    liveness_query: str
    default_properties: Dict[str, str]


DRIVERS: Dict[SourceKind, DriverSpec] = {
    SourceKind.POSTGRESQL: DriverSpec("postgresql+asyncpg", "SELECT 1", {}),
    SourceKind.MYSQL: DriverSpec("mysql+aiomysql", "SELECT 1", {"charset": "utf8mb4"}),
    SourceKind.SQLSERVER: DriverSpec(
        "mssql+aioodbc",
        "SELECT 1",
        {"driver": "ODBC Driver 18 for SQL Server", "TrustServerCertificate": "yes"},
    ),
}

# Errors that mean "the source is unreachable" rather than "the query is wrong"
_CONNECTION_ERRORS = (
    OperationalError,
    InterfaceError,
    DisconnectionError,
    PoolTimeoutError,
    asyncio.TimeoutError,
    OSError,
)

# Driver values passed through untouched
_PLAIN_TYPES = (str, bool, int, float, Decimal, datetime, date, time, bytes, dict, list)

QueryParams = Optional[Union[Mapping[str, Any], Sequence[Any]]]


def driver_for(kind: SourceKind) -> DriverSpec:
    try:
        return DRIVERS[kind]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported source kind: {kind}",
            context={"source_kind": str(kind)}
        )


def build_url(config: SourceConfig) -> URL:
    """Build the SQLAlchemy URL for a source descriptor."""
    spec = driver_for(config.kind)
    query = dict(spec.default_properties)
    query.update(config.properties or {})

    return URL.create(
        drivername=spec.drivername,
        username=config.username,
        password=config.password,
        host=config.host,
        port=config.port,
        database=config.database,
        query=query,
    )


def normalize_value(value: Any) -> Any:
    """
    Convert a driver value to a plain Python type.

    Dates, times, decimals, bytes and None are kept as Python types so the
    normalizer can format them; driver-specific types are rendered as text.
    """
    if value is None or isinstance(value, _PLAIN_TYPES):
        return value
    if isinstance(value, (memoryview, bytearray)):
        return bytes(value)
    return str(value)


def bind_parameters(query: str, params: QueryParams) -> Tuple[str, Dict[str, Any]]:
    """
    Rewrite positional ``?`` placeholders as named binds.

    Values are bound in order (mapping values in insertion order). Question
    marks inside single-quoted literals are left alone. A query without
    ``?`` placeholders is returned as is, with mapping params bound by name
    to ``:name`` placeholders.
    """
    if isinstance(params, Mapping):
        values = list(params.values())
    else:
        values = list(params or [])

    parts: List[str] = []
    binds: Dict[str, Any] = {}
    in_literal = False
    position = 0

    for char in query:
        if char == "'":
            in_literal = not in_literal
        if char == "?" and not in_literal:
            if position >= len(values):
                raise QueryExecutionError(
                    "Query has more placeholders than parameters",
                    context={"parameters": len(values)}
                )
            position += 1
            name = f"p{position}"
            binds[name] = values[position - 1]
            parts.append(f":{name}")
        else:
            parts.append(char)

    if position == 0:
        return query, dict(params) if isinstance(params, Mapping) else {}
    return "".join(parts), binds


class ConnectionManager:
    """
    Lazily created async engines, one per source name.

    Safe for concurrent use by many job runs: engine creation is serialized
    by an ``asyncio.Lock`` and each query checks out its own pooled connection.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        engine_factory: Callable[..., AsyncEngine] = create_async_engine
    ):
        self.settings = settings or default_settings
        self._engine_factory = engine_factory
        self._engines: Dict[str, AsyncEngine] = {}
        self._lock = asyncio.Lock()

    @property
    def source_names(self) -> List[str]:
        return list(self._engines)

    def _create_engine(self, config: SourceConfig) -> AsyncEngine:
        min_size = max(self.settings.DB_POOL_MIN_SIZE, 1)
        max_size = max(self.settings.DB_POOL_MAX_SIZE, min_size)

        return self._engine_factory(
            build_url(config),
            pool_size=min_size,
            max_overflow=max_size - min_size,
            pool_timeout=self.settings.DB_POOL_TIMEOUT_SECONDS,
            pool_recycle=self.settings.DB_POOL_RECYCLE_SECONDS,
            pool_pre_ping=True,
        )

    async def get_engine(self, config: SourceConfig) -> AsyncEngine:
        """Return the engine for ``config.name``, creating it on first use."""
        engine = self._engines.get(config.name)
        if engine is not None:
            return engine

        async with self._lock:
            engine = self._engines.get(config.name)
            if engine is None:
                logger.info(f"Creating connection pool for source '{config.name}' ({config.kind.value})")
                engine = self._create_engine(config)
                self._engines[config.name] = engine
            return engine

    def _context(self, config: SourceConfig) -> Dict[str, Any]:
        return {
            "source_name": config.name,
            "source_kind": config.kind.value if config.kind else None,
            "host": config.host,
            "database": config.database,
        }

    async def ping(self, config: SourceConfig) -> None:
        """
        Run the liveness query for a source.

        Raises:
            DatabaseConnectionError: If the source cannot be reached
        """
        spec = driver_for(config.kind)
        engine = await self.get_engine(config)
        try:
            async with engine.connect() as conn:
                await conn.execute(text(spec.liveness_query))
        except (*_CONNECTION_ERRORS, DBAPIError) as e:
            raise DatabaseConnectionError(
                f"Cannot connect to source '{config.name}'",
                context=self._context(config),
                original_exception=e
            )

    async def fetch_rows(
        self,
        config: SourceConfig,
        query: str,
        params: QueryParams = None
    ) -> List[Dict[str, Any]]:
        """
        Execute a query and return ordered row mappings.

        Raises:
            DatabaseConnectionError: Connection drop, pool exhaustion, timeout
            QueryExecutionError: The source rejected the query
        """
        sql, binds = bind_parameters(query, params)
        engine = await self.get_engine(config)

        try:
            async with engine.connect() as conn:
                result = await conn.execute(text(sql), binds)
                columns = list(result.keys())
                rows = [
                    {column: normalize_value(value) for column, value in zip(columns, row)}
                    for row in result
                ]
        except _CONNECTION_ERRORS as e:
            raise DatabaseConnectionError(
                f"Connection failure while querying source '{config.name}'",
                context=self._context(config),
                original_exception=e
            )
        except (DBAPIError, SQLAlchemyError) as e:
            context = self._context(config)
            context["query"] = query
            raise QueryExecutionError(
                f"Query failed on source '{config.name}'",
                context=context,
                original_exception=e
            )

        logger.debug(f"Fetched {len(rows)} rows from source '{config.name}'")
        return rows

    async def close(self, name: str) -> bool:
        """Dispose the pool of one source. Returns False if none existed."""
        async with self._lock:
            engine = self._engines.pop(name, None)
        if engine is None:
            return False

        try:
            await engine.dispose()
            logger.info(f"Closed connection pool for source '{name}'")
        except Exception as e:
            logger.warning(f"Error closing connection pool for source '{name}': {e}")
        return True

    async def close_all(self):
        """Dispose every pool; failures are logged, not raised."""
        for name in list(self._engines):
            await self.close(name)
