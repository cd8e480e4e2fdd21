"""
Metrics module initialization.
"""

from .exporter import (
    GridServerCollector,
    ManagerProcessCollector,
    create_registry
)

__all__ = [
    'GridServerCollector',
    'ManagerProcessCollector',
    'create_registry'
]
