"""
Web Services Report Provider

Collects Broker and grid reports from a GridServer Director through the
SOAP Web Services API.

Each fetch enumerates the Brokers on the Director, then either asks every
Broker for its running services and tasks (the default) or, in Director
only mode, asks the Director once for grid-wide counts. Any failed call
aborts the whole cycle: a grid report built from incomplete Broker data
would undercount silently.
"""

from typing import Optional
import logging
import time

import requests

from .connection import ConnectionDescriptor
from .provider import BrokerReport, FetchResult, GridReport, ReportProvider, broker_hostname
from ..errors import ConfigurationError, SOAPError
from ..soap import operations
from ..soap.operations import CallResult
from ..soap.transport import SOAPTransport

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080
DEFAULT_PATH = "/livecluster/webservices"

ACTIVITY_COUNTERS = ('services_running', 'tasks_running', 'tasks_pending')

COUNT_OPERATIONS = (
    ('services_running', operations.get_running_service_count),
    ('tasks_running', operations.get_running_invocation_count),
    ('tasks_pending', operations.get_pending_invocation_count),
)


def clean_path(path: str) -> str:
    """Normalize the Web Services path, defaulting to /livecluster/webservices."""
    trimmed = path.strip('/')
    if trimmed in ('', 'livecluster'):
        return DEFAULT_PATH
    return path.rstrip('/')


def director_url(descriptor: ConnectionDescriptor) -> str:
    """Base URL of the Director's Web Services, with default port and path applied."""
    host = f"[{descriptor.host}]" if ':' in descriptor.host else descriptor.host
    port = descriptor.port if descriptor.port is not None else DEFAULT_PORT
    return f"{descriptor.scheme}://{host}:{port}{clean_path(descriptor.path)}"


class SOAPClusterProvider(ReportProvider):
    """Report provider backed by the GridServer Web Services API."""

    def __init__(self, descriptor: ConnectionDescriptor,
                 session: Optional[requests.Session] = None):
        """
        Initialize SOAPClusterProvider.

        Args:
            descriptor: Connection settings, scheme http or https
            session: HTTP session to reuse; one is created if omitted
        """
        if descriptor.scheme not in ('http', 'https'):
            raise ConfigurationError(f"unsupported scheme: {descriptor.scheme!r}")
        self.descriptor = descriptor
        self.url = director_url(descriptor)
        self.hostname = descriptor.host
        self.director_only = descriptor.director_only
        self.transport = SOAPTransport(
            username=descriptor.username,
            password=descriptor.password,
            tls_verify=descriptor.tls_verify,
            timeout=descriptor.timeout,
            session=session
        )

    def close(self) -> None:
        self.transport.close()

    def fetch(self) -> FetchResult:
        start = time.monotonic()
        try:
            return self._fetch()
        except SOAPError as e:
            e.elapsed = round(time.monotonic() - start, 3)
            raise

    def _fetch(self) -> FetchResult:
        result = operations.get_all_broker_info(self.transport, self.url)
        self._check(result, hostname=self.hostname, brokers=len(result.value or []))

        brokers = []
        for info in result.value:
            broker = BrokerReport(
                name=info.name,
                hostname=broker_hostname(info.base_url),
                busy_engines=info.busy_engine_count,
                total_engines=info.engine_count,
                drivers=info.driver_count
            )
            if not self.director_only:
                self._collect_broker(broker, f"{info.base_url.rstrip('/')}/webservices/ServiceAdmin")
            brokers.append(broker)

        if self.director_only:
            grid = GridReport.from_brokers(brokers)
            self._collect_grid(grid)
        else:
            grid = GridReport.from_brokers(brokers, activity=ACTIVITY_COUNTERS)

        return grid, brokers

    def _collect_broker(self, broker: BrokerReport, endpoint: str) -> None:
        """Populate a Broker's activity counters from its own ServiceAdmin service."""
        for attr, operation in COUNT_OPERATIONS:
            result = operation(self.transport, endpoint)
            self._check(result, hostname=broker.hostname, name=broker.name, **{attr: result.value})
            setattr(broker, attr, result.value)

    def _collect_grid(self, grid: GridReport) -> None:
        """Populate grid-wide activity counters from the Director's ManagerAdmin service."""
        endpoint = f"{self.url}/ManagerAdmin"
        for attr, operation in COUNT_OPERATIONS:
            result = operation(self.transport, endpoint)
            self._check(result, hostname=self.hostname, **{attr: result.value})
            setattr(grid, attr, result.value)

    @staticmethod
    def _check(result: CallResult, **context) -> None:
        """Log the outcome of a call and raise its error, aborting the cycle."""
        if not result.ok:
            details = ' '.join(f"{k}={v}" for k, v in context.items() if v is not None)
            logger.debug(f"{result.operation} failed after {result.elapsed}s "
                         f"({details}): {result.error}")
            raise result.error
        details = ' '.join(f"{k}={v}" for k, v in context.items())
        logger.debug(f"{result.operation} succeeded after {result.elapsed}s ({details})")
