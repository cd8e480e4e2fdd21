"""
GridServer exporter package initialization.
"""

__version__ = "1.0.0"

from .errors import (
    GridServerError,
    ConfigurationError,
    DatabaseError,
    SOAPError,
    SOAPFaultError
)

from .cluster import (
    ConnectionDescriptor,
    BrokerReport,
    GridReport,
    ReportProvider,
    MockClusterProvider,
    SOAPClusterProvider,
    SQLClusterProvider,
    ReportProviderFactory
)

from .metrics import (
    GridServerCollector,
    create_registry
)

__all__ = [
    '__version__',
    'GridServerError',
    'ConfigurationError',
    'DatabaseError',
    'SOAPError',
    'SOAPFaultError',
    'ConnectionDescriptor',
    'BrokerReport',
    'GridReport',
    'ReportProvider',
    'MockClusterProvider',
    'SOAPClusterProvider',
    'SQLClusterProvider',
    'ReportProviderFactory',
    'GridServerCollector',
    'create_registry'
]
