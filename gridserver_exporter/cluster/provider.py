"""
Grid Report Provider Module

This module defines the normalized reports every data source produces and
the provider interface the metrics exporter consumes. Concrete providers
read from the GridServer Web Services API, the reporting database, or
generate synthetic data.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urlsplit
import logging
import random

logger = logging.getLogger(__name__)


@dataclass
class BrokerReport:
    """
    Snapshot of an individual Broker.

    Activity counters are None when the data source or operating mode does
    not collect them. They must not be exported as zero.
    """
    name: str
    hostname: str
    busy_engines: int = 0
    total_engines: int = 0
    drivers: int = 0
    services_running: Optional[int] = None
    tasks_running: Optional[int] = None
    tasks_pending: Optional[int] = None
    uptime_minutes: Optional[float] = None


@dataclass
class GridReport:
    """Snapshot of the whole grid, summed over all Brokers."""
    busy_engines: int = 0
    total_engines: int = 0
    drivers: int = 0
    services_running: Optional[int] = None
    tasks_running: Optional[int] = None
    tasks_pending: Optional[int] = None

    @classmethod
    def from_brokers(cls, brokers: List[BrokerReport],
                     activity: Tuple[str, ...] = ()) -> 'GridReport':
        """
        Sum the capacity counters of all Brokers.

        Args:
            brokers: Broker reports of one collection cycle
            activity: Names of the activity counters to sum as well. Any
                other activity counter is left as None.
        """
        grid = cls()
        for broker in brokers:
            grid.busy_engines += broker.busy_engines
            grid.total_engines += broker.total_engines
            grid.drivers += broker.drivers
        for name in activity:
            setattr(grid, name, sum(getattr(broker, name) or 0 for broker in brokers))
        return grid


FetchResult = Tuple[GridReport, List[BrokerReport]]


def broker_hostname(base_url: str) -> str:
    """Host part of a Broker URL; empty when the URL cannot be parsed."""
    try:
        return urlsplit(base_url).hostname or ''
    except ValueError:
        logger.debug(f"Invalid Broker URL: {base_url!r}")
        return ''


class ReportProvider(ABC):
    """Abstract base class for GridServer report providers."""

    @abstractmethod
    def fetch(self) -> FetchResult:
        """
        Run one collection cycle.

        Returns:
            The grid report and one report per Broker.

        Raises:
            GridServerError: If the cycle failed. No partial reports are
                returned.
        """
        pass

    def close(self) -> None:
        """Release resources held by the provider."""
        pass


class MockClusterProvider(ReportProvider):
    """Provider that generates random Broker reports for testing with Prometheus."""

    def __init__(self, num_brokers: int = 5, rng: Optional[random.Random] = None):
        self.num_brokers = num_brokers
        self._rng = rng or random.Random()

    def fetch(self) -> FetchResult:
        r = self._rng
        brokers = []
        for i in range(1, self.num_brokers + 1):
            total_engines = 10000 + r.randrange(100)
            brokers.append(BrokerReport(
                name=f"BROKER_NAME_{i}",
                hostname=f"broker{i}.example.com",
                busy_engines=r.randrange(total_engines),
                total_engines=total_engines,
                drivers=r.randrange(10),
                services_running=r.randrange(50),
                tasks_running=0,
                tasks_pending=r.randrange(100000),
                uptime_minutes=float(r.randrange(10000))
            ))

        grid = GridReport.from_brokers(brokers, activity=('services_running', 'tasks_pending'))
        grid.tasks_running = grid.busy_engines
        logger.debug(f"Generated mock reports for {len(brokers)} brokers")
        return grid, brokers
