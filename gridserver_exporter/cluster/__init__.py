"""
Cluster module initialization.
"""

from .connection import ConnectionDescriptor

from .provider import (
    BrokerReport,
    GridReport,
    ReportProvider,
    MockClusterProvider
)

from .soap_provider import SOAPClusterProvider
from .sql_provider import SQLClusterProvider
from .factory import ReportProviderFactory

__all__ = [
    'ConnectionDescriptor',
    'BrokerReport',
    'GridReport',
    'ReportProvider',
    'MockClusterProvider',
    'SOAPClusterProvider',
    'SQLClusterProvider',
    'ReportProviderFactory'
]
