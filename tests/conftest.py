"""
Fixtures emulating a DAV server and DNS for the discovery tests.

None of the tests should initiate any internet communication.  The
``dav_server`` fixture replaces ``requests.Session.request``, the
``fake_dns`` fixture replaces ``dns.resolver.resolve``.
"""
from unittest import mock
from urllib.parse import urlparse

import dns.resolver
import pytest

MULTISTATUS = """<?xml version="1.0" encoding="utf-8"?>
<d:multistatus xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav" xmlns:cr="urn:ietf:params:xml:ns:carddav" xmlns:i="http://apple.com/ns/ical/">
  <d:response>
    <d:href>{href}</d:href>
    <d:propstat>
      <d:prop>{props}</d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
</d:multistatus>
"""

CALDAV_DAV_HEADER = "1, 2, access-control, calendar-access"
CARDDAV_DAV_HEADER = "1, 2, access-control, addressbook"


def principal_prop(href):
    return f"<d:current-user-principal><d:href>{href}</d:href></d:current-user-principal>"


def make_response(status, content=b"", headers=None, reason="OK"):
    resp = mock.MagicMock()
    resp.status_code = status
    resp.reason = reason
    resp.headers = headers or {}
    resp.content = content
    return resp


class FakeDAVServer:
    """
    Answers PROPFIND and OPTIONS for the URLs it has been told about,
    everything else gives 404.  All requests are recorded as
    ``(method, url)`` tuples in ``self.requests``.
    """

    def __init__(self):
        self.resources = {}
        self.redirects = {}
        self.failing = {}
        self.requests = []

    def add(self, url, props="", dav=None, href=None):
        self.resources[url] = {"props": props, "dav": dav, "href": href}

    def redirect(self, url, location, status=301):
        self.redirects[url] = (location, status)

    def fail(self, url, exception):
        self.failing[url] = exception

    def requested(self, method=None):
        return [url for (m, url) in self.requests if method is None or m == method]

    def __call__(self, method, url, **kwargs):
        self.requests.append((method, url))
        if url in self.failing:
            raise self.failing[url]
        if url in self.redirects:
            location, status = self.redirects[url]
            return make_response(status, headers={"Location": location})
        resource = self.resources.get(url)
        if resource is None:
            return make_response(404, reason="Not Found")
        if method == "OPTIONS":
            headers = {"Allow": "OPTIONS, GET, PROPFIND"}
            if resource["dav"]:
                headers["DAV"] = resource["dav"]
            return make_response(200, headers=headers)
        if method == "PROPFIND":
            body = MULTISTATUS.format(
                href=resource["href"] or urlparse(url).path,
                props=resource["props"],
            )
            return make_response(
                207,
                content=body.encode("utf-8"),
                headers={"Content-Type": "application/xml; charset=utf-8"},
                reason="Multi-Status",
            )
        return make_response(405, reason="Method Not Allowed")


@pytest.fixture
def dav_server():
    server = FakeDAVServer()
    with mock.patch(
        "davfinder.davclient.requests.Session.request", side_effect=server
    ) as mocked:
        server.mocked = mocked
        yield server


def srv_record(target, port):
    record = mock.Mock()
    record.target = target
    record.port = port
    record.priority = 0
    record.weight = 1
    return record


def txt_record(*strings):
    record = mock.Mock()
    record.strings = tuple(
        x.encode("utf-8") if isinstance(x, str) else x for x in strings
    )
    return record


class FakeDNS:
    """
    Maps (name, rdtype) to a list of records, or to an exception to
    raise.  Unknown names give NXDOMAIN.
    """

    def __init__(self):
        self.records = {}
        self.queries = []

    def add(self, name, rdtype, *records):
        self.records.setdefault((name, rdtype), []).extend(records)

    def fail(self, name, rdtype, exception):
        self.records[(name, rdtype)] = exception

    def __call__(self, name, rdtype, *args, **kwargs):
        self.queries.append((name, rdtype))
        answer = self.records.get((name, rdtype))
        if answer is None:
            raise dns.resolver.NXDOMAIN()
        if isinstance(answer, Exception):
            raise answer
        return list(answer)


@pytest.fixture
def fake_dns():
    resolver = FakeDNS()
    with mock.patch("davfinder.discovery.dns.resolver.resolve", side_effect=resolver):
        yield resolver
