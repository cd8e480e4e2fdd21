import socket
import time
from unittest.mock import MagicMock

import pytest
import requests
from requests.adapters import BaseAdapter

from gridserver_exporter.errors import (
    RequestCreationError,
    ResponseReadError,
    TransportFailureError,
)
from gridserver_exporter.soap import envelope
from gridserver_exporter.soap.operations import GetAllBrokerInfo
from gridserver_exporter.soap.transport import (
    CONNECT_TIMEOUT,
    DNS_TIMEOUT,
    SOAPTransport,
    classify_failure,
)

from conftest import SOAP_FAULT, broker_info_response

ENDPOINT = "http://director:8080/livecluster/webservices/BrokerAdmin"


class BrokenResponse:
    """Response whose body fails while streaming."""
    status_code = 200
    closed = False

    def iter_content(self, chunk_size=1):
        yield b"<soapenv:"
        raise requests.exceptions.ChunkedEncodingError("Connection reset by peer")

    def close(self):
        self.closed = True


class TricklingBody:
    """Raw body that sends one slice per delay."""

    def __init__(self, body, delay):
        self.body = body
        self.delay = delay
        self.closed = False

    def stream(self, amt, decode_content=None):
        for start in range(0, len(self.body), amt):
            time.sleep(self.delay)
            yield self.body[start:start + amt]

    def close(self):
        self.closed = True


class SlowBodyAdapter(BaseAdapter):
    """Answers every request promptly but trickles the body."""

    def __init__(self, body):
        super().__init__()
        self.body = body

    def send(self, request, **kwargs):
        response = requests.Response()
        response.status_code = 200
        response.raw = self.body
        response.url = request.url
        response.request = request
        return response

    def close(self):
        pass


class TestSOAPTransport:
    """Tests for the HTTP exchange of one Web Services call."""

    def test_posts_envelope_with_headers_and_auth(self, director):
        director.respond("director:8080/livecluster/webservices/BrokerAdmin",
                         broker_info_response(1, 2, 3, 4, 5, 6))
        transport = SOAPTransport("admin", "secret", timeout=2.0, session=director.session)
        body = envelope.encode(GetAllBrokerInfo())

        raw = transport.post(ENDPOINT, body)

        assert b"getAllBrokerInfoResponse" in raw
        request = director.requests[0]
        assert request.method == "POST"
        assert request.url == ENDPOINT
        assert request.body == body
        assert request.headers['Content-Type'] == 'text/xml; charset="utf-8"'
        assert request.headers['SOAPAction'] == ''
        assert request.headers['Authorization'].startswith('Basic ')
        assert request.headers['User-Agent'].startswith('gridserver-exporter/')

    def test_timeout_and_tls_settings_are_passed(self, director):
        director.default = broker_info_response(0, 0, 0, 0, 0, 0)
        transport = SOAPTransport("admin", "", tls_verify=False, timeout=3.0,
                                  session=director.session)

        transport.post(ENDPOINT, envelope.encode(GetAllBrokerInfo()))

        kwargs = director.send_kwargs[0]
        assert kwargs['timeout'] == (3.0, 3.01)
        assert kwargs['verify'] is False
        assert kwargs['stream'] is True

    def test_fault_status_is_not_interpreted(self, director):
        director.default = SOAP_FAULT
        transport = SOAPTransport("admin", "secret", session=director.session)
        raw = transport.post(ENDPOINT, envelope.encode(GetAllBrokerInfo()))
        assert b"faultstring" in raw

    def test_connection_failure(self, director):
        director.default = requests.exceptions.ConnectionError("Connection refused")
        transport = SOAPTransport("admin", "secret", session=director.session)

        with pytest.raises(TransportFailureError) as excinfo:
            transport.post(ENDPOINT, envelope.encode(GetAllBrokerInfo()))
        assert "Connection refused" in str(excinfo.value)
        assert excinfo.value.reason is None

    def test_connect_timeout_reason(self, director):
        director.default = requests.exceptions.ConnectTimeout("timed out")
        transport = SOAPTransport("admin", "secret", session=director.session)

        with pytest.raises(TransportFailureError) as excinfo:
            transport.post(ENDPOINT, envelope.encode(GetAllBrokerInfo()))
        assert excinfo.value.reason == CONNECT_TIMEOUT

    def test_invalid_url(self, director):
        transport = SOAPTransport("admin", "secret", session=director.session)
        with pytest.raises(RequestCreationError):
            transport.post("http://", envelope.encode(GetAllBrokerInfo()))

    def test_body_read_failure(self):
        session = MagicMock()
        response = BrokenResponse()
        session.send.return_value = response
        transport = SOAPTransport("admin", "secret", session=session)

        with pytest.raises(ResponseReadError):
            transport.post(ENDPOINT, envelope.encode(GetAllBrokerInfo()))
        assert response.closed

    def test_slow_body_is_bounded_by_timeout(self):
        body = TricklingBody(b"0123456789", delay=0.05)
        session = requests.Session()
        session.mount("http://", SlowBodyAdapter(body))
        transport = SOAPTransport("admin", "secret", timeout=0.2, session=session)

        started = time.monotonic()
        with pytest.raises(ResponseReadError) as excinfo:
            transport.post(ENDPOINT, envelope.encode(GetAllBrokerInfo()))
        elapsed = time.monotonic() - started

        assert "timed out" in str(excinfo.value)
        assert elapsed < 0.4
        assert body.closed

    def test_slow_body_within_timeout_is_read(self):
        body = TricklingBody(b"0123456789", delay=0.01)
        session = requests.Session()
        session.mount("http://", SlowBodyAdapter(body))
        transport = SOAPTransport("admin", "secret", timeout=2.0, session=session)

        assert transport.post(ENDPOINT, envelope.encode(GetAllBrokerInfo())) == b"0123456789"

    def test_close_only_closes_owned_session(self, director):
        shared = SOAPTransport("admin", "secret", session=director.session)
        director.session.close = MagicMock()
        shared.close()
        director.session.close.assert_not_called()

        owned = SOAPTransport("admin", "secret")
        owned.session.close = MagicMock()
        owned.close()
        owned.session.close.assert_called_once()


class TestClassifyFailure:
    """Tests for telling DNS lookup timeouts apart from connection timeouts."""

    def test_dns_lookup_timeout(self):
        cause = socket.gaierror(socket.EAI_AGAIN, "Temporary failure in name resolution")
        wrapper = OSError("Failed to establish a new connection")
        wrapper.__cause__ = cause
        error = requests.exceptions.ConnectionError(wrapper)
        assert classify_failure(error) == DNS_TIMEOUT

    def test_dns_message_without_errno(self):
        error = requests.exceptions.ConnectionError(
            "Failed to resolve 'director' ([Errno -3] Temporary failure in name resolution)")
        assert classify_failure(error) == DNS_TIMEOUT

    def test_connect_timeout(self):
        assert classify_failure(requests.exceptions.ConnectTimeout("timed out")) == CONNECT_TIMEOUT

    def test_other_failures_have_no_reason(self):
        assert classify_failure(requests.exceptions.ConnectionError("refused")) is None
