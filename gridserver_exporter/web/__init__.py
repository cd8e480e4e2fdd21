"""
Web module initialization.
"""

from .app import create_app

__all__ = [
    'create_app'
]
