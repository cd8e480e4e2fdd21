"""
Prometheus Metrics Exporter

This module republishes the reports of one collection cycle as Prometheus
gauges. A cycle runs on every scrape; scrapes are serialized so at most one
cycle is in flight, and a failed cycle only marks the exporter down.
"""

from typing import Callable, Iterator, List, Optional
import logging
import threading
import time

from prometheus_client import CollectorRegistry, Info, ProcessCollector
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric

from .. import __version__
from ..cluster.provider import BrokerReport, FetchResult, GridReport
from ..errors import GridServerError

logger = logging.getLogger(__name__)

NAMESPACE = "gridserver"

GRID_METRICS = {
    'busy_engines': "Number of Engines busy.",
    'total_engines': "Number of Engines logged in.",
    'drivers': "Number of Drivers logged in.",
    'services_running': "Number of Services running.",
    'tasks_running': "Number of tasks running.",
    'tasks_pending': "Number of tasks pending (not yet assigned to Engines).",
}

BROKER_METRICS = dict(GRID_METRICS, uptime_minutes="Time since Broker start in minutes.")

BROKER_LABELS = ['name', 'hostname']


class GridServerCollector:
    """Custom collector that runs one fetch per scrape."""

    def __init__(self, fetch: Callable[[], FetchResult]):
        self.fetch = fetch
        self.total_scrapes = 0
        self.failed_scrapes = 0
        self.last_duration = 0.0
        self._lock = threading.Lock()

    def scrape(self) -> Optional[FetchResult]:
        """
        Run one collection cycle.

        Returns:
            The reports, or None if the cycle failed
        """
        self.total_scrapes += 1
        start = time.monotonic()
        try:
            grid, brokers = self.fetch()
        except GridServerError as e:
            self.failed_scrapes += 1
            self.last_duration = time.monotonic() - start
            operation = getattr(e, 'operation', None)
            prefix = f"{operation}: " if operation else ""
            logger.error(f"Scrape failed after {self.last_duration:.3f}s: {prefix}{e}")
            return None

        self.last_duration = time.monotonic() - start
        logger.info(f"Scrape succeeded after {self.last_duration:.3f}s: brokers={len(brokers)} "
                    f"busy_engines={grid.busy_engines} total_engines={grid.total_engines} "
                    f"drivers={grid.drivers} services_running={grid.services_running} "
                    f"tasks_running={grid.tasks_running} tasks_pending={grid.tasks_pending}")
        return grid, brokers

    def collect(self) -> Iterator[Metric]:
        with self._lock:
            result = self.scrape()

            yield GaugeMetricFamily(f"{NAMESPACE}_up",
                                    "Was the last scrape of GridServer successful.",
                                    value=0 if result is None else 1)
            yield CounterMetricFamily(f"{NAMESPACE}_exporter_total_scrapes",
                                      "Total number of GridServer scrapes.",
                                      value=self.total_scrapes)
            yield CounterMetricFamily(f"{NAMESPACE}_exporter_failed_scrapes",
                                      "Number of failed GridServer scrapes.",
                                      value=self.failed_scrapes)
            yield GaugeMetricFamily(f"{NAMESPACE}_exporter_last_scrape_duration_seconds",
                                    "Duration of the last GridServer scrape in seconds.",
                                    value=self.last_duration)

            if result is not None:
                grid, brokers = result
                yield from grid_metrics(grid)
                yield from broker_metrics(brokers)


def grid_metrics(grid: GridReport) -> Iterator[Metric]:
    """Grid gauges; counters not collected by the source are omitted."""
    for name, documentation in GRID_METRICS.items():
        value = getattr(grid, name)
        if value is not None:
            yield GaugeMetricFamily(f"{NAMESPACE}_grid_{name}", documentation, value=value)


def broker_metrics(brokers: List[BrokerReport]) -> Iterator[Metric]:
    """Per-Broker gauges labelled by name and hostname."""
    for name, documentation in BROKER_METRICS.items():
        family = GaugeMetricFamily(f"{NAMESPACE}_broker_{name}", documentation,
                                   labels=BROKER_LABELS)
        for broker in brokers:
            value = getattr(broker, name)
            if value is not None:
                family.add_metric([broker.name, broker.hostname], value)
        if family.samples:
            yield family
        logger.debug(f"Exported {name} for {len(family.samples)} brokers")


class ManagerProcessCollector(ProcessCollector):
    """Process metrics for the GridServer Manager, found through its PID file."""

    def __init__(self, pid_file: str, registry: CollectorRegistry):
        self.pid_file = pid_file
        super().__init__(namespace=NAMESPACE, pid=self.read_pid, registry=registry)

    def read_pid(self) -> int:
        with open(self.pid_file, 'r', encoding='utf-8') as f:
            return int(f.read().strip())

    def collect(self):
        try:
            return super().collect()
        except (OSError, ValueError) as e:
            logger.warning(f"Can't read Manager PID file {self.pid_file}: {e}")
            return []


def create_registry(collector: GridServerCollector,
                    pid_file: Optional[str] = None) -> CollectorRegistry:
    """
    Create a registry with the GridServer collector and build information.

    Args:
        collector: Collector wrapping the report provider's fetch
        pid_file: Optional path to the Manager PID file. When given, the
            standard process metrics are exported for the Manager process,
            prefixed with gridserver_process_. Requires /proc.
    """
    registry = CollectorRegistry()
    registry.register(collector)
    Info(f"{NAMESPACE}_exporter_build", "GridServer exporter build information.",
         registry=registry).info({'version': __version__})
    if pid_file:
        ManagerProcessCollector(pid_file, registry)
    return registry
