"""
SOAP Transport Client

Performs the authenticated HTTP exchange for one Web Services call and maps
transport failures to typed errors. A single requests.Session is kept per
transport so connections are reused within and across collection cycles.
"""

from typing import Optional
import logging
import socket
import time

import requests

from .. import __version__
from ..errors import RequestCreationError, ResponseReadError, TransportFailureError

logger = logging.getLogger(__name__)

# Added to the read timeout so a connection timeout is always reported first.
TIMEOUT_GRACE_SECONDS = 0.01

# A read blocks until the whole chunk arrives, so a trickled body is read
# byte by byte to check the call deadline in between.
READ_CHUNK_SIZE = 1

DNS_TIMEOUT = "DNS lookup timed out"
CONNECT_TIMEOUT = "Connection timed out"


def _causes(error: BaseException):
    """Walk an exception together with everything it wraps."""
    seen = set()
    pending = [error]
    while pending:
        current = pending.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        wrapped = list(current.args) + [current.__cause__, current.__context__,
                                        getattr(current, 'reason', None)]
        pending.extend(item for item in wrapped if isinstance(item, BaseException))


def classify_failure(error: BaseException) -> Optional[str]:
    """
    Best-effort reason for a failed HTTP exchange.

    Dropped UDP packets make DNS lookups time out occasionally, which looks
    like a connection timeout unless the underlying cause is inspected.
    """
    for cause in _causes(error):
        if isinstance(cause, socket.gaierror) and cause.errno == socket.EAI_AGAIN:
            return DNS_TIMEOUT
        if 'Temporary failure in name resolution' in str(cause):
            return DNS_TIMEOUT
    if isinstance(error, requests.exceptions.ConnectTimeout):
        return CONNECT_TIMEOUT
    return None


class SOAPTransport:
    """HTTP client for GridServer Web Services."""

    def __init__(self, username: str, password: str, tls_verify: bool = True,
                 timeout: float = 5.0, session: Optional[requests.Session] = None):
        """
        Initialize SOAPTransport.

        Args:
            username: HTTP Basic Authentication username
            password: HTTP Basic Authentication password, may be empty
            tls_verify: Verify server certificates for https endpoints
            timeout: Connection timeout in seconds, also bounds the whole call
            session: Session to use; one is created and owned if omitted
        """
        self.username = username
        self.password = password
        self.tls_verify = tls_verify
        self.timeout = timeout
        self._owns_session = session is None
        self.session = session or requests.Session()

    @property
    def timeouts(self):
        """(connect, read) timeouts passed to requests."""
        return (self.timeout, self.timeout + TIMEOUT_GRACE_SECONDS)

    def post(self, endpoint: str, body: bytes) -> bytes:
        """
        POST a SOAP envelope and return the raw response body.

        The HTTP status is not interpreted: faults arrive with status 500
        and are left to the envelope decoder.

        Raises:
            RequestCreationError: If the request could not be prepared
            TransportFailureError: If the exchange failed
            ResponseReadError: If the response body could not be read
        """
        logger.debug(f"SOAP request prepared for {endpoint}: {body.decode('utf-8', 'replace')}")

        request = requests.Request(
            'POST', endpoint,
            data=body,
            auth=(self.username, self.password),
            headers={
                'Content-Type': 'text/xml; charset="utf-8"',
                'SOAPAction': '',
                'User-Agent': f'gridserver-exporter/{__version__}',
            }
        )
        try:
            prepared = self.session.prepare_request(request)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.debug(f"HTTP request creation failed for {endpoint}: {e}")
            raise RequestCreationError(f"HTTP request creation failed: {e}") from e

        deadline = time.monotonic() + self.timeout + TIMEOUT_GRACE_SECONDS
        try:
            response = self.session.send(prepared, stream=True,
                                         timeout=self.timeouts, verify=self.tls_verify)
        except requests.exceptions.RequestException as e:
            reason = classify_failure(e)
            logger.debug(f"HTTP request failed for {endpoint} (reason: {reason}): {e}")
            raise TransportFailureError(f"HTTP request failed: {e}", reason=reason) from e

        try:
            raw = self._read_body(response, deadline)
        except (requests.exceptions.RequestException, OSError) as e:
            logger.debug(f"HTTP response body read failed for {endpoint}: {e}")
            raise ResponseReadError(f"HTTP response body read failed: {e}") from e
        finally:
            response.close()

        logger.debug(f"SOAP response received from {endpoint} with status "
                     f"{response.status_code}: {raw.decode('utf-8', 'replace')}")
        return raw

    def _read_body(self, response: requests.Response, deadline: float) -> bytes:
        """Read the streamed body, giving up once the call deadline has passed."""
        chunks = []
        for chunk in response.iter_content(chunk_size=READ_CHUNK_SIZE):
            chunks.append(chunk)
            if time.monotonic() > deadline:
                raise ResponseReadError(
                    f"HTTP response body read timed out after {self.timeout}s")
        return b''.join(chunks)

    def close(self) -> None:
        """Close the session if this transport created it."""
        if self._owns_session:
            self.session.close()
