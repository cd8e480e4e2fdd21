"""
Reporting Database Report Provider

Reads the most recent Broker statistics from the GridServer reporting
database (PostgreSQL, SQL Server or Oracle) and sums them into a grid report.
The reporting database does not record running tasks, so tasks_running is
never populated by this provider.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl
import logging
import re
import time

from sqlalchemy import DateTime, create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from .connection import ConnectionDescriptor
from .provider import BrokerReport, FetchResult, GridReport, ReportProvider, broker_hostname
from ..errors import ConfigurationError, DatabaseError

logger = logging.getLogger(__name__)

QUERY_TEMPLATE = """
    WITH latest AS (
        SELECT
            broker_id,
            MAX(time_stamp) AS max_time_stamp
        FROM {schema}.broker_stats
        GROUP BY broker_id )
    SELECT
        latest.broker_id,
        brokers.broker_url,
        brokers.broker_name,
        broker_stats.num_busy_engines,
        broker_stats.num_total_engines,
        broker_stats.num_drivers,
        broker_stats.uptime_minutes,
        broker_stats.num_jobs_running,
        broker_stats.num_tasks_pending,
        latest.max_time_stamp AS time_stamp
    FROM latest
    INNER JOIN {schema}.broker_stats broker_stats ON broker_stats.broker_id = latest.broker_id
        AND broker_stats.time_stamp = latest.max_time_stamp
    INNER JOIN {schema}.brokers brokers ON brokers.broker_id = latest.broker_id
    """

# GridServer records a report every 30 seconds.
STALE_REPORT_SECONDS = 60

SCHEMA_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_$#]*$')

# scheme -> (SQLAlchemy driver, default schema or None to use the username)
DRIVERS: Dict[str, Any] = {
    'postgres': ('postgresql+psycopg2', 'public'),
    'postgresql': ('postgresql+psycopg2', 'public'),
    'mssql': ('mssql+pymssql', 'dbo'),
    'sqlserver': ('mssql+pymssql', 'dbo'),
    'ora': ('oracle+oracledb', None),
    'oracle': ('oracle+oracledb', None),
}


def build_database_url(descriptor: ConnectionDescriptor) -> URL:
    """
    Translate the connection URI into a SQLAlchemy URL.

    The path is the database name (PostgreSQL), the instance name (SQL
    Server, with ?database= naming the database) or the SID (Oracle).
    """
    if descriptor.scheme not in DRIVERS:
        raise ConfigurationError(f"unsupported scheme: {descriptor.scheme!r}")
    driver, _ = DRIVERS[descriptor.scheme]
    query = dict(parse_qsl(descriptor.query))
    path = descriptor.path.strip('/')
    host = descriptor.host
    database = path or None

    if driver.startswith('mssql'):
        if path:
            host = f"{host}\\{path}"
        database = query.pop('database', None)

    return URL.create(
        driver,
        username=descriptor.username,
        password=descriptor.password,
        host=host,
        port=descriptor.port,
        database=database,
        query=query
    )


def default_schema(descriptor: ConnectionDescriptor) -> str:
    """public on PostgreSQL, dbo on SQL Server, the username on Oracle."""
    _, schema = DRIVERS[descriptor.scheme]
    return schema or descriptor.username


def compact_sql(sql: str) -> str:
    """Collapse whitespace so the query fits on one log line."""
    return ' '.join(sql.split())


class SQLClusterProvider(ReportProvider):
    """Report provider backed by the GridServer reporting database."""

    def __init__(self, descriptor: ConnectionDescriptor, schema: str = "",
                 engine: Optional[Engine] = None):
        """
        Initialize SQLClusterProvider.

        No connection is made until the first fetch.

        Args:
            descriptor: Connection settings for a database scheme
            schema: Schema holding the reporting tables; defaults per database
            engine: Engine to use instead of one built from the descriptor
        """
        self.url = build_database_url(descriptor)
        self.schema = schema or default_schema(descriptor)
        if not SCHEMA_PATTERN.match(self.schema):
            raise ConfigurationError(f"invalid schema: {self.schema!r}")
        self.driver = self.url.drivername
        self.timeout = descriptor.timeout
        self.query = compact_sql(QUERY_TEMPLATE.format(schema=self.schema))

        if engine is None:
            try:
                engine = create_engine(self.url, pool_pre_ping=True)
            except (SQLAlchemyError, ImportError) as e:
                logger.debug(f"Database client creation failed for driver {self.driver}: {e}")
                raise ConfigurationError(f"database client creation failed: {e}") from e
        self.engine = engine

    def close(self) -> None:
        self.engine.dispose()

    def fetch(self) -> FetchResult:
        start = time.monotonic()
        try:
            connection = self.engine.connect()
        except SQLAlchemyError as e:
            logger.debug(f"Database connection failed after {time.monotonic() - start:.3f}s: {e}")
            raise DatabaseError(f"database connection failed: {e}") from e

        with connection:
            start = time.monotonic()
            try:
                rows = connection.execute(text(self.query).columns(time_stamp=DateTime)).all()
            except SQLAlchemyError as e:
                logger.debug(f"SQL query failed after {time.monotonic() - start:.3f}s "
                             f"(sql: {self.query}): {e}")
                raise DatabaseError(f"SQL query failed: {e}") from e
            logger.debug(f"SQL query succeeded after {time.monotonic() - start:.3f}s")

        brokers = []
        for row in rows:
            try:
                broker = BrokerReport(
                    name=row.broker_name,
                    hostname=broker_hostname(row.broker_url or ''),
                    busy_engines=int(row.num_busy_engines),
                    total_engines=int(row.num_total_engines),
                    drivers=int(row.num_drivers),
                    services_running=int(row.num_jobs_running),
                    tasks_pending=int(row.num_tasks_pending),
                    uptime_minutes=float(row.uptime_minutes)
                )
            except (TypeError, ValueError) as e:
                logger.debug(f"Row scan failed for broker {row.broker_id}: {e}")
                raise DatabaseError(f"row scan failed: {e}") from e
            brokers.append(broker)
            self._warn_if_stale(row.time_stamp, broker, row.broker_id)

        grid = GridReport.from_brokers(brokers, activity=('services_running', 'tasks_pending'))
        return grid, brokers

    @staticmethod
    def _warn_if_stale(timestamp: Optional[datetime], broker: BrokerReport, broker_id) -> None:
        """Stale reports are usually transient, e.g. during a Broker reboot."""
        if timestamp is None:
            return
        now = datetime.now(timestamp.tzinfo) if timestamp.tzinfo else datetime.now()
        age = (now - timestamp).total_seconds()
        if age > STALE_REPORT_SECONDS:
            logger.warning(f"Most recent report for Broker {broker.name} "
                           f"(id {broker_id}, host {broker.hostname}) is {age:.0f} seconds old")
