"""
Shared fixtures: SOAP response payloads and a stub Director that answers
HTTP requests through a requests transport adapter.
"""

from urllib.parse import urlsplit
import xml.etree.ElementTree as ET

import pytest
import requests
from requests.adapters import BaseAdapter

# Using the wrong path can get a 404 page.
HTML = "<html><head><title></title><body></body></html>"

INVALID_ENVELOPE = '<Envelope xmlns="http://schemas.xmlsoap.org/soap/envelope/">'

NOT_AN_ENVELOPE = '<html><head><title>Not Found</title></head><body>404</body></html>'

SOAP_FAULT = """<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/" xmlns:xsd="http://www.w3.org/2001/XMLSchema" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
<soapenv:Body>
   <soapenv:Fault>
      <faultcode xmlns:ns1="http://xml.apache.org/axis/">ns1:Server.NoService</faultcode>
      <faultstring>The AXIS engine could not find a target service to invoke!  targetService is InvalidAdmin</faultstring>
      <detail>
         <ns2:hostname xmlns:ns2="http://xml.apache.org/axis/">director</ns2:hostname>
      </detail>
   </soapenv:Fault>
</soapenv:Body>
</soapenv:Envelope>"""

FAULT_STRING = "The AXIS engine could not find a target service to invoke!  targetService is InvalidAdmin"

BROKER_INFO_RESPONSE = """<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/" xmlns:xsd="http://www.w3.org/2001/XMLSchema" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
<soapenv:Body>
   <getAllBrokerInfoResponse xmlns="http://admin.gridserver.webservices.datasynapse.com">
      <getAllBrokerInfoReturn>
         <baseUrl>http://broker:8000/livecluster</baseUrl>
         <brokerId>1825975427</brokerId>
         <busyEngineCount>%d</busyEngineCount>
         <driverCount>%d</driverCount>
         <driverRoutingConditions xsi:nil="true"/>
         <driverWeight>1.0</driverWeight>
         <engineCount>%d</engineCount>
         <engineRoutingConditions xsi:nil="true"/>
         <engineWeight>1.0</engineWeight>
         <failover>false</failover>
         <hostname>http://broker:8000/livecluster</hostname>
         <maxEngines>2500</maxEngines>
         <minEngines>0</minEngines>
         <minIdleHomeEngines>0</minIdleHomeEngines>
         <name>broker</name>
      </getAllBrokerInfoReturn>
      <getAllBrokerInfoReturn>
         <baseUrl>http://broker2:8000/livecluster</baseUrl>
         <brokerId>1179598041</brokerId>
         <busyEngineCount>%d</busyEngineCount>
         <driverCount>%d</driverCount>
         <driverRoutingConditions xsi:nil="true"/>
         <driverWeight>1.0</driverWeight>
         <engineCount>%d</engineCount>
         <engineRoutingConditions xsi:nil="true"/>
         <engineWeight>1.0</engineWeight>
         <failover>false</failover>
         <hostname>http://broker2:8000/livecluster</hostname>
         <maxEngines>2500</maxEngines>
         <minEngines>0</minEngines>
         <minIdleHomeEngines>0</minIdleHomeEngines>
         <name>broker2</name>
      </getAllBrokerInfoReturn>
   </getAllBrokerInfoResponse>
</soapenv:Body>
</soapenv:Envelope>"""

EMPTY_BROKER_INFO_RESPONSE = """<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/">
<soapenv:Body>
   <getAllBrokerInfoResponse xmlns="http://admin.gridserver.webservices.datasynapse.com"/>
</soapenv:Body>
</soapenv:Envelope>"""

COUNT_RESPONSE = """<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/" xmlns:xsd="http://www.w3.org/2001/XMLSchema" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
<soapenv:Body>
   <%(operation)sResponse xmlns="http://admin.gridserver.webservices.datasynapse.com">
      <%(operation)sReturn>%(value)d</%(operation)sReturn>
   </%(operation)sResponse>
</soapenv:Body>
</soapenv:Envelope>"""


def broker_info_response(*counts) -> str:
    """Two Brokers: (busy, drivers, engines) for broker, then for broker2."""
    return BROKER_INFO_RESPONSE % counts


def count_response(operation: str, value: int) -> str:
    return COUNT_RESPONSE % {'operation': operation, 'value': value}


def requested_operation(body: bytes) -> str:
    """Local name of the element inside the SOAP body of a request."""
    root = ET.fromstring(body)
    body_element = root.find('{http://schemas.xmlsoap.org/soap/envelope/}Body')
    return body_element[0].tag.rpartition('}')[2]


class StubDirector(BaseAdapter):
    """
    Transport adapter standing in for a GridServer Director and its Brokers.

    Responses are looked up by (host:port/path, operation), then by
    host:port/path, then fall back to ``default``. A response may be a
    string, bytes, or an exception to raise.
    """

    def __init__(self, default=""):
        super().__init__()
        self.responses = {}
        self.default = default
        self.requests = []
        self.send_kwargs = []

    def respond(self, endpoint: str, body, operation: str = None) -> None:
        self.responses[(endpoint, operation)] = body

    def send(self, request, **kwargs):
        self.requests.append(request)
        self.send_kwargs.append(kwargs)
        parts = urlsplit(request.url)
        endpoint = f"{parts.netloc}{parts.path}"
        operation = requested_operation(request.body)

        body = self.responses.get((endpoint, operation),
                                  self.responses.get((endpoint, None), self.default))
        if isinstance(body, BaseException):
            raise body
        if isinstance(body, str):
            body = body.encode('utf-8')

        response = requests.Response()
        response.status_code = 500 if b':Fault>' in body else 200
        response._content = body
        response._content_consumed = True
        response.encoding = 'utf-8'
        response.url = request.url
        response.request = request
        return response

    def close(self):
        pass

    def operations(self):
        """(endpoint, operation) of every request received, in order."""
        calls = []
        for request in self.requests:
            parts = urlsplit(request.url)
            calls.append((f"{parts.netloc}{parts.path}", requested_operation(request.body)))
        return calls


@pytest.fixture
def director():
    """A StubDirector mounted on a fresh session, available as ``director.session``."""
    stub = StubDirector()
    session = requests.Session()
    session.mount('http://', stub)
    session.mount('https://', stub)
    stub.session = session
    yield stub
    session.close()
