"""
GridServer Web Services Operations

Typed request/response messages for the four admin operations the exporter
uses, and thin bindings that run them over a SOAPTransport.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional
import logging
import time
import xml.etree.ElementTree as ET

from . import envelope
from .envelope import GRIDSERVER_NS, local_name, qname
from .transport import SOAPTransport
from ..errors import SOAPError, SOAPFaultError

logger = logging.getLogger(__name__)


def _children(element: ET.Element) -> dict:
    """Map child local names to their stripped text, skipping xsi:nil elements."""
    values = {}
    for child in element:
        if child.get('{http://www.w3.org/2001/XMLSchema-instance}nil') == 'true':
            continue
        values[local_name(child.tag)] = (child.text or '').strip()
    return values


def _int(values: dict, name: str) -> int:
    text = values.get(name, '')
    if not text:
        return 0
    try:
        return int(text)
    except ValueError:
        raise ValueError(f"invalid integer in <{name}>: {text!r}") from None


def _float(values: dict, name: str) -> float:
    text = values.get(name, '')
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"invalid number in <{name}>: {text!r}") from None


class Request:
    """An admin operation request. These operations take no arguments."""
    name = ""

    @property
    def element(self) -> str:
        return qname(GRIDSERVER_NS, self.name)

    def to_element(self) -> ET.Element:
        return ET.Element(self.element)


class GetAllBrokerInfo(Request):
    name = "getAllBrokerInfo"


class GetRunningServiceCount(Request):
    name = "getRunningServiceCount"


class GetRunningInvocationCount(Request):
    name = "getRunningInvocationCount"


class GetPendingInvocationCount(Request):
    name = "getPendingInvocationCount"


@dataclass
class BrokerInfo:
    """Broker details from getAllBrokerInfo. Routing fields are ignored."""
    base_url: str = ""
    broker_id: int = 0
    busy_engine_count: int = 0
    driver_count: int = 0
    driver_weight: float = 0.0
    engine_count: int = 0
    engine_weight: float = 0.0
    failover: bool = False
    hostname: str = ""
    max_engines: int = 0
    min_engines: int = 0
    min_idle_home_engines: int = 0
    name: str = ""

    @classmethod
    def from_element(cls, element: ET.Element) -> 'BrokerInfo':
        values = _children(element)
        return cls(
            base_url=values.get('baseUrl', ''),
            broker_id=_int(values, 'brokerId'),
            busy_engine_count=_int(values, 'busyEngineCount'),
            driver_count=_int(values, 'driverCount'),
            driver_weight=_float(values, 'driverWeight'),
            engine_count=_int(values, 'engineCount'),
            engine_weight=_float(values, 'engineWeight'),
            failover=values.get('failover', '').lower() == 'true',
            hostname=values.get('hostname', ''),
            max_engines=_int(values, 'maxEngines'),
            min_engines=_int(values, 'minEngines'),
            min_idle_home_engines=_int(values, 'minIdleHomeEngines'),
            name=values.get('name', '')
        )


@dataclass
class GetAllBrokerInfoResponse:
    element = qname(GRIDSERVER_NS, "getAllBrokerInfoResponse")

    broker_infos: List[BrokerInfo] = field(default_factory=list)

    @classmethod
    def from_element(cls, element: ET.Element) -> 'GetAllBrokerInfoResponse':
        return cls(broker_infos=[
            BrokerInfo.from_element(child) for child in element
            if local_name(child.tag) == 'getAllBrokerInfoReturn'
        ])


class CountResponse:
    """Response carrying a single integer in <operationReturn>."""
    operation = ""

    def __init__(self, value: int = 0):
        self.value = value

    @classmethod
    def from_element(cls, element: ET.Element) -> 'CountResponse':
        return cls(_int(_children(element), f"{cls.operation}Return"))


class GetRunningServiceCountResponse(CountResponse):
    operation = "getRunningServiceCount"
    element = qname(GRIDSERVER_NS, "getRunningServiceCountResponse")


class GetRunningInvocationCountResponse(CountResponse):
    operation = "getRunningInvocationCount"
    element = qname(GRIDSERVER_NS, "getRunningInvocationCountResponse")


class GetPendingInvocationCountResponse(CountResponse):
    operation = "getPendingInvocationCount"
    element = qname(GRIDSERVER_NS, "getPendingInvocationCountResponse")


@dataclass
class CallResult:
    """Outcome of one remote operation. ``elapsed`` is set even on failure."""
    value: Any
    elapsed: float
    error: Optional[SOAPError] = None
    operation: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


def operation_name(endpoint: str, request: Request) -> str:
    """Service.operation label, e.g. ServiceAdmin.getRunningServiceCount."""
    service = endpoint.rstrip('/').rpartition('/')[2]
    return f"{service}.{request.name}"


def call(transport: SOAPTransport, endpoint: str, request: Request, response_type):
    """
    Run one operation and return the decoded response message.

    Raises:
        SOAPFaultError: If the server answered with a fault
        SOAPError: For any transport or decode failure
    """
    raw = transport.post(endpoint, envelope.encode(request))
    result = envelope.decode(raw, response_type)
    if result.fault is not None:
        logger.debug(f"Received SOAP fault from {endpoint}: code={result.fault.code} "
                     f"string={result.fault.string!r} detail={result.fault.detail!r}")
        raise SOAPFaultError(result.fault)
    return result.payload


def timed_call(transport: SOAPTransport, endpoint: str, request: Request,
               response_type) -> CallResult:
    """Run ``call`` and measure it, capturing failures in the result."""
    name = operation_name(endpoint, request)
    start = time.monotonic()
    try:
        response = call(transport, endpoint, request, response_type)
    except SOAPError as e:
        elapsed = round(time.monotonic() - start, 3)
        e.operation = name
        e.elapsed = elapsed
        return CallResult(None, elapsed, e, operation=name)
    return CallResult(response, round(time.monotonic() - start, 3), operation=name)


def get_all_broker_info(transport: SOAPTransport, director_url: str) -> CallResult:
    """All Brokers known to the Director, with their engine and driver counts."""
    result = timed_call(transport, f"{director_url}/BrokerAdmin",
                        GetAllBrokerInfo(), GetAllBrokerInfoResponse)
    if result.ok:
        result.value = result.value.broker_infos
    return result


def _count(transport: SOAPTransport, endpoint: str, request: Request,
           response_type) -> CallResult:
    result = timed_call(transport, endpoint, request, response_type)
    if result.ok:
        result.value = result.value.value
    return result


def get_running_service_count(transport: SOAPTransport, endpoint: str) -> CallResult:
    """Number of Services running on a Broker, or grid-wide via ManagerAdmin."""
    return _count(transport, endpoint, GetRunningServiceCount(), GetRunningServiceCountResponse)


def get_running_invocation_count(transport: SOAPTransport, endpoint: str) -> CallResult:
    """Number of tasks currently running."""
    return _count(transport, endpoint, GetRunningInvocationCount(), GetRunningInvocationCountResponse)


def get_pending_invocation_count(transport: SOAPTransport, endpoint: str) -> CallResult:
    """Number of tasks queued but not yet assigned to Engines."""
    return _count(transport, endpoint, GetPendingInvocationCount(), GetPendingInvocationCountResponse)
