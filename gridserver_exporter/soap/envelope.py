"""
SOAP Envelope Codec

Encodes GridServer Web Services requests into SOAP 1.1 envelopes and
decodes response envelopes. The service uses the wrapped-document/literal
convention, so a response body must hold exactly one element: either the
expected response wrapper or a SOAP fault.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union
import xml.etree.ElementTree as ET

from ..errors import EmptyResponseError, MalformedResponseError

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
GRIDSERVER_NS = "http://admin.gridserver.webservices.datasynapse.com"

ET.register_namespace('soapenv', SOAP_ENV_NS)
ET.register_namespace('adm', GRIDSERVER_NS)


def qname(namespace: str, local: str) -> str:
    """ElementTree qualified name, {namespace}local."""
    return f"{{{namespace}}}{local}"


def local_name(tag: str) -> str:
    """Strip the namespace from an ElementTree tag."""
    return tag.rpartition('}')[2]


@dataclass
class Fault:
    """A SOAP 1.1 fault."""
    code: str = ""
    string: str = ""
    actor: str = ""
    detail: str = ""

    @classmethod
    def from_element(cls, element: ET.Element) -> 'Fault':
        # Fault children are unqualified in SOAP 1.1.
        values = {}
        for child in element:
            values[local_name(child.tag)] = ' '.join(
                text.strip() for text in child.itertext() if text.strip())
        return cls(
            code=values.get('faultcode', ''),
            string=values.get('faultstring', ''),
            actor=values.get('faultactor', ''),
            detail=values.get('detail', '')
        )

    def __str__(self) -> str:
        return self.string


@dataclass
class Payload:
    """Body variant holding the single response element."""
    element: ET.Element


@dataclass
class Malformed:
    """Body variant for content that violates wrapped-document/literal."""
    reason: str


BodyContent = Union[Payload, Fault, Malformed]


@dataclass
class Envelope:
    """A decoded response envelope. Exactly one of payload and fault is set."""
    payload: Optional[Any] = None
    fault: Optional[Fault] = None


def encode(request) -> bytes:
    """
    Wrap a request message as the sole content of a SOAP body.

    Args:
        request: Message with an ``element`` qualified name and a
            ``to_element()`` method

    Returns:
        UTF-8 encoded envelope, without a Header section
    """
    envelope = ET.Element(qname(SOAP_ENV_NS, 'Envelope'))
    body = ET.SubElement(envelope, qname(SOAP_ENV_NS, 'Body'))
    body.append(request.to_element())
    return ET.tostring(envelope, encoding='utf-8', xml_declaration=True)


def classify_body(body: ET.Element) -> BodyContent:
    """Inspect the immediate children of a SOAP Body."""
    children = list(body)
    if not children:
        return Malformed("SOAP body is empty")
    if len(children) > 1:
        return Malformed("found multiple elements inside SOAP body; "
                         "not wrapped-document/literal WS-I compliant")
    child = children[0]
    if child.tag == qname(SOAP_ENV_NS, 'Fault'):
        return Fault.from_element(child)
    return Payload(child)


def decode(raw: bytes, response_type) -> Envelope:
    """
    Decode a raw response into a typed payload or a fault.

    A fault is returned, not raised: the caller decides that a populated
    fault means the operation failed.

    Args:
        raw: HTTP response body
        response_type: Message class with an ``element`` qualified name
            and a ``from_element()`` classmethod

    Raises:
        EmptyResponseError: If ``raw`` is empty
        MalformedResponseError: If ``raw`` is not a SOAP envelope holding
            exactly one fault or one ``response_type`` element
    """
    if not raw:
        raise EmptyResponseError("received empty response from server")

    try:
        root = ET.fromstring(raw)
    except ET.ParseError as e:
        raise MalformedResponseError(f"received invalid SOAP response: {e}") from e

    if root.tag != qname(SOAP_ENV_NS, 'Envelope'):
        raise MalformedResponseError(
            f"received invalid SOAP response: expected Envelope, got <{local_name(root.tag)}>")
    body = root.find(qname(SOAP_ENV_NS, 'Body'))
    if body is None:
        raise MalformedResponseError("received invalid SOAP response: missing Body")

    content = classify_body(body)
    if isinstance(content, Malformed):
        raise MalformedResponseError(f"received invalid SOAP response: {content.reason}")
    if isinstance(content, Fault):
        return Envelope(fault=content)

    if content.element.tag != response_type.element:
        raise MalformedResponseError(
            f"received invalid SOAP response: expected <{local_name(response_type.element)}>, "
            f"got <{local_name(content.element.tag)}>")
    try:
        payload = response_type.from_element(content.element)
    except ValueError as e:
        raise MalformedResponseError(f"received invalid SOAP response: {e}") from e
    return Envelope(payload=payload)
