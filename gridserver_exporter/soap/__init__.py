"""
SOAP module initialization.
"""

from .envelope import Envelope, Fault, decode, encode
from .transport import SOAPTransport
from .operations import BrokerInfo, CallResult

__all__ = [
    'Envelope',
    'Fault',
    'decode',
    'encode',
    'SOAPTransport',
    'BrokerInfo',
    'CallResult'
]
