#!/usr/bin/env python
import logging
import sys
from types import TracebackType
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple
from typing import Union
from urllib.parse import unquote

import requests
from lxml import etree
from lxml.etree import _Element
from requests.auth import AuthBase
from requests.models import Response
from requests.structures import CaseInsensitiveDict

from davfinder import __version__
from davfinder.elements import dav
from davfinder.lib import error
from davfinder.lib.python_utilities import to_normal_str
from davfinder.lib.python_utilities import to_wire
from davfinder.lib.url import URL
from davfinder.requests import HTTPBearerAuth

if sys.version_info < (3, 9):
    from typing import Mapping
else:
    from collections.abc import Mapping

if sys.version_info < (3, 11):
    from typing_extensions import Self
else:
    from typing import Self

"""
Transport for the discovery.  ``DAVClient`` wraps a requests session
and knows how to send the two requests discovery needs, PROPFIND and
OPTIONS, with authentication and redirects taken care of.
``DAVResponse`` wraps what came back, and digs the properties out of
a multistatus body.
"""

log = logging.getLogger("davfinder")

## Redirects are followed by the client itself, requests would
## otherwise turn a PROPFIND into a GET on a 302.
REDIRECT_STATUSES = (301, 302, 303, 307, 308)
MAX_REDIRECTS = 5

XML_CONTENT_TYPES = ("text/xml", "application/xml")
OTHER_CONTENT_TYPES = (
    "text/plain",
    "text/calendar",
    "text/html",
    "application/octet-stream",
)

## Status lines accepted inside a multistatus.  A 404 propstat only
## means that the resource doesn't have the property.
GOOD_STATUSES = ("200", "201", "207", "404")


def _proxy_url(proxy: str) -> str:
    """requests wants scheme and port in the proxy URL; http and 8080 are assumed"""
    if "://" not in proxy:
        proxy = "http://" + proxy
    if len(proxy.split(":")) == 2:
        proxy += ":8080"
    return proxy


class DAVResponse:
    """
    A response from the server, as returned by DAVClient.  The body is
    parsed as XML into ``tree`` whenever that's possible, no matter
    what content type the server claims.
    """

    reason: str = ""
    tree: Optional[_Element] = None
    headers: CaseInsensitiveDict = None
    status: int = 0
    url: Optional[URL] = None
    huge_tree: bool = False

    def __init__(
        self, response: Response, davclient: Optional["DAVClient"] = None
    ) -> None:
        self.headers = CaseInsensitiveDict(response.headers)
        self.status = response.status_code
        ## some servers send no reason phrase at all
        self.reason = getattr(response, "reason", None) or ""
        if davclient:
            self.huge_tree = davclient.huge_tree
        response_url = getattr(response, "url", None)
        if isinstance(response_url, str) and response_url:
            self.url = URL(response_url)
        log.debug("response status: %s %s", self.status, self.reason)
        log.debug("response headers: %s", self.headers)

        self._raw = response.content or b""
        self._parse_body()
        if isinstance(self._raw, bytes):
            self._raw = self._raw.replace(b"\r\n", b"\n")
        else:
            self._raw = self._raw.replace("\r\n", "\n")

    def _parse_body(self) -> None:
        content_type = self.headers.get("Content-Type", "")
        xml_expected = content_type.startswith(XML_CONTENT_TYPES)
        if (
            content_type
            and not xml_expected
            and not content_type.startswith(OTHER_CONTENT_TYPES)
            and self.status < 400
        ):
            error.weirdness(f"Unexpected content type: {content_type}")

        if self.headers.get("Content-Length") == "0" or not self._raw:
            log.debug("No content delivered")
            return

        try:
            self.tree = etree.XML(
                self._raw,
                parser=etree.XMLParser(remove_blank_text=True, huge_tree=self.huge_tree),
            )
        except etree.XMLSyntaxError as e:
            log.debug("Response body is not XML: %r", self._raw, exc_info=True)
            if xml_expected:
                raise error.ResponseError(
                    url=self._url_str(), reason=f"invalid XML in response: {e}"
                ) from e
            return
        if log.isEnabledFor(logging.DEBUG):
            log.debug(etree.tostring(self.tree, pretty_print=True))

    def _url_str(self) -> Optional[str]:
        return str(self.url) if self.url else None

    @property
    def raw(self) -> str:
        return to_normal_str(self._raw)

    @property
    def capabilities(self) -> List[str]:
        """
        The compliance classes and extensions advertised in the DAV
        header of the response, i.e. ``["1", "2", "calendar-access"]``
        """
        header = self.headers.get("DAV") or ""
        return [x.strip() for x in header.split(",") if x.strip()]

    def _responses(self) -> List[_Element]:
        """
        The response elements of a multistatus.  Some servers wrap the
        multistatus in an extra element, some skip the multistatus
        and send a lone response.
        """
        tree = self.tree
        if tree.tag == dav.MultiStatus.tag:
            return list(tree)
        if len(tree) and tree[0].tag == dav.MultiStatus.tag:
            return list(tree[0])
        return [tree]

    def validate_status(self, status: str) -> None:
        """
        status is a status line like "HTTP/1.1 404 Not Found"
        """
        parts = status.split()
        if len(parts) < 2 or parts[1] not in GOOD_STATUSES:
            raise error.ResponseError(url=self._url_str(), reason=status)

    def _parse_response(self, response: _Element) -> Tuple[str, List[_Element]]:
        """
        Returns the href and the propstats of one response element.
        There should be exactly one href, and at most one status.
        """
        hrefs = [x for x in response if x.tag == dav.Href.tag]
        if len(hrefs) != 1 or not hrefs[0].text:
            raise error.ResponseError(
                url=self._url_str(),
                reason=f"expected one href in a response element, found {len(hrefs)}",
            )
        propstats = []
        status_seen = False
        for elem in response:
            if elem.tag == dav.Status.tag:
                error.assert_(not status_seen and elem.text)
                status_seen = True
                self.validate_status(elem.text or "")
            elif elem.tag == dav.PropStat.tag:
                propstats.append(elem)
            elif elem.tag != dav.Href.tag:
                error.weirdness("unexpected element found in response", elem)
        return unquote(hrefs[0].text.strip()), propstats

    def find_objects_and_props(self) -> Dict[str, Dict[str, _Element]]:
        """
        Returns {href: {property tag: property element}} for the
        multistatus in the body.  Properties reported with a 404
        propstat are left out, other bad statuses raise ResponseError.
        """
        if self.tree is None:
            raise error.ResponseError(
                url=self._url_str(),
                reason="expected a multistatus response, got no XML",
            )

        objects: Dict[str, Dict[str, _Element]] = {}
        for response in self._responses():
            if response.tag != dav.Response.tag:
                raise error.ResponseError(
                    url=self._url_str(),
                    reason=f"unexpected element {response.tag} in multistatus",
                )
            href, propstats = self._parse_response(response)
            props = objects.setdefault(href, {})
            ## properties may come in one propstat or spread over several
            for propstat in propstats:
                status = propstat.find(dav.Status.tag)
                if status is None or not status.text:
                    error.weirdness("propstat without status", propstat)
                else:
                    self.validate_status(status.text)
                    if status.text.split()[1] == "404":
                        continue
                for prop in propstat.iterfind(dav.Prop.tag):
                    for element in prop:
                        props[element.tag] = element
        return objects


class DAVClient:
    """
    Minimal WebDAV client on top of a requests session: PROPFIND and
    OPTIONS on absolute URLs, with authentication negotiated on the
    first 401.

    One DAVClient should not be shared between threads; the
    underlying requests session isn't guaranteed to be thread safe.
    """

    proxy: Optional[str] = None
    url: Optional[URL] = None
    huge_tree: bool = False

    def __init__(
        self,
        url: Optional[str] = None,
        proxy: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        auth: Optional[AuthBase] = None,
        auth_type: Optional[str] = None,
        timeout: Optional[int] = None,
        ssl_verify_cert: Union[bool, str] = True,
        ssl_cert: Union[str, Tuple[str, str], None] = None,
        headers: Mapping[str, str] = None,
        huge_tree: bool = False,
    ) -> None:
        """
        Sets up a requests session.

        Args:
          url: Optional base URL, relative URLs given to the request methods are resolved against it.  Credentials in it are used as username/password.
          proxy: A string defining a proxy server: `scheme://hostname:port`. Scheme defaults to http, port defaults to 8080.
          auth: A requests.auth.AuthBase object, may be passed instead of username/password.
          auth_type: ``bearer``, ``digest`` or ``basic``.  If given, the auth object is created up front (preemptive authentication), otherwise it's negotiated on the first 401.
          timeout and ssl_verify_cert are passed to requests.request.
          ssl_verify_cert can be the path of a CA-bundle or False.
          huge_tree: boolean, enable XMLParser huge_tree to handle big responses, beware of security issues, see : https://lxml.de/api/lxml.etree.XMLParser-class.html
        """
        self.session = requests.Session()
        self.huge_tree = huge_tree
        if proxy is not None:
            self.proxy = _proxy_url(proxy)
            log.debug("using proxy %s", self.proxy)

        self.headers = CaseInsensitiveDict(
            {
                "User-Agent": "davfinder/" + __version__,
                "Content-Type": "text/xml; charset=utf-8",
                "Accept": "text/xml, application/xml",
            }
        )
        self.headers.update(headers or {})

        self.url = URL.objectify(url) if url else None
        if self.url is not None and self.url.username is not None:
            username = unquote(self.url.username)
            password = unquote(self.url.password or "")
            self.url = self.url.unauth()
        self.username = username
        ## non-ascii passwords have to be sent as utf-8
        self.password = password.encode("utf-8") if isinstance(password, str) else password

        self.auth = auth
        self.auth_type = auth_type
        if auth and auth_type:
            log.error("both auth object and auth_type given, auth_type is ignored")
        elif auth_type:
            self.build_auth_object()

        self.timeout = timeout
        self.ssl_verify_cert = ssl_verify_cert
        self.ssl_cert = ssl_cert

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: Optional[BaseException] = None,
        exc_value: Optional[BaseException] = None,
        traceback: Optional[TracebackType] = None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def propfind(
        self, url: Optional[str] = None, props: str = "", depth: int = 0
    ) -> DAVResponse:
        """
        Sends a PROPFIND with the request body ``props`` to ``url``
        (defaults to the base URL)
        """
        return self.request(
            url or str(self.url), "PROPFIND", props, {"Depth": str(depth)}
        )

    def options(self, url: Optional[str] = None) -> DAVResponse:
        return self.request(url or str(self.url), "OPTIONS")

    def extract_auth_types(self, header: str) -> set:
        """
        The auth schemes offered in a WWW-Authenticate header, in lower case
        """
        return {x.split()[0].lower() for x in header.split(",") if x.strip()}

    def build_auth_object(self, auth_types: Optional[List[str]] = None) -> None:
        """
        Sets ``self.auth``.  The configured ``auth_type`` is used if
        there is one (and the server accepts it), otherwise the best
        of the ``auth_types`` offered by the server: digest or basic
        when there is a username, bearer when there is only a password.
        """
        auth_type = self.auth_type
        if not auth_type and not auth_types:
            raise error.AuthorizationError(reason="No auth-type given")
        if auth_type and auth_types and auth_type not in auth_types:
            raise error.AuthorizationError(
                reason=f"auth_type {auth_type} configured, but the server only accepts {auth_types}"
            )
        if not auth_type:
            if self.username:
                auth_type = next((x for x in ("digest", "basic") if x in auth_types), None)
            if not auth_type and "bearer" in auth_types:
                if not self.password:
                    raise error.AuthorizationError(
                        reason="The server wants a bearer token, it should be configured as password"
                    )
                auth_type = "bearer"

        if auth_type == "digest":
            self.auth = requests.auth.HTTPDigestAuth(self.username, self.password)
        elif auth_type == "basic":
            self.auth = requests.auth.HTTPBasicAuth(self.username, self.password)
        elif auth_type == "bearer":
            self.auth = HTTPBearerAuth(to_normal_str(self.password))

    def _send(
        self,
        method: str,
        url: URL,
        body: str,
        headers: Mapping[str, str],
        with_auth: bool = True,
    ) -> Response:
        return self.session.request(
            method,
            str(url),
            data=to_wire(body),
            headers=headers,
            proxies={url.scheme: self.proxy} if self.proxy else None,
            auth=self.auth if with_auth else None,
            timeout=self.timeout,
            verify=self.ssl_verify_cert,
            cert=self.ssl_cert,
            allow_redirects=False,
        )

    def request(
        self,
        url: str,
        method: str = "GET",
        body: str = "",
        headers: Mapping[str, str] = None,
        _redirects: int = 0,
        _with_auth: bool = True,
    ) -> DAVResponse:
        """
        Sends the request, following redirects and negotiating
        authentication on the way.

        Credentials are not sent on after a redirect to another host
        or from https to http, the same rule requests applies when it
        follows redirects itself.

        Raises TransportError if there was no HTTP answer at all, and
        AuthorizationError on a 401 or 403 that can't be resolved.
        """
        all_headers = self.headers.copy()
        all_headers.update(headers or {})
        if not body:
            all_headers.pop("Content-Type", None)
        if not _with_auth:
            all_headers.pop("Authorization", None)

        url_obj = URL.objectify(url)
        if self.url is not None and not url_obj.scheme:
            url_obj = self.url.resolve(url_obj)

        log.debug(
            "sending request - method=%s, url=%s, headers=%s\nbody:\n%s",
            method,
            url_obj,
            all_headers,
            to_normal_str(body),
        )
        try:
            r = self._send(method, url_obj, body, all_headers, _with_auth)
        except requests.exceptions.RequestException as e:
            raise error.TransportError(url=str(url_obj), reason=str(e)) from e
        log.debug("server responded with %s %s", r.status_code, r.reason)
        r_headers = CaseInsensitiveDict(r.headers)

        if r.status_code in REDIRECT_STATUSES and "Location" in r_headers:
            if _redirects >= MAX_REDIRECTS:
                raise error.ResponseError(url=str(url_obj), reason="too many redirects")
            target = url_obj.resolve(r_headers["Location"])
            with_auth = _with_auth and not self.session.should_strip_auth(
                str(url_obj), str(target)
            )
            if _with_auth and not with_auth:
                log.warning(
                    "redirected from %s to %s, credentials will not be sent there",
                    url_obj,
                    target,
                )
            log.debug("redirected to %s", target)
            return self.request(
                str(target), method, body, headers, _redirects + 1, with_auth
            )

        if (
            r.status_code == 401
            and "WWW-Authenticate" in r_headers
            and _with_auth
            and not self.auth
            and (self.username or self.password)
        ):
            self.build_auth_object(self.extract_auth_types(r_headers["WWW-Authenticate"]))
            if not self.auth:
                raise error.AuthorizationError(
                    url=str(url_obj),
                    reason="The server does not offer any supported authentication method (basic, digest, bearer)",
                )
            return self.request(str(url_obj), method, body, headers, _redirects)

        if r.status_code in (401, 403):
            raise error.AuthorizationError(url=str(url_obj), reason=r.reason or "None given")

        ## requests doesn't know about the redirects we followed ourselves
        r.url = str(url_obj)
        response = DAVResponse(r, self)
        if error.debug_dump_communication:
            self._dump_communication(method, url_obj, all_headers, body, response)
        return response

    def _dump_communication(self, method, url, headers, body, response) -> None:
        import datetime
        from tempfile import NamedTemporaryFile

        def header_lines(headers):
            return b"\n".join(to_wire(f"{k}: {v}") for k, v in headers.items())

        with NamedTemporaryFile(prefix="davfindercomm", delete=False) as commlog:
            commlog.write(b"=" * 80 + b"\n")
            commlog.write(f"{datetime.datetime.now():%FT%H:%M:%S}\n".encode("utf-8"))
            commlog.write(f"====>\n{method} {url}\n".encode("utf-8"))
            commlog.write(header_lines(headers) + b"\n\n")
            commlog.write(to_wire(body) or b"")
            commlog.write(f"<====\n{response.status} {response.reason}\n".encode("utf-8"))
            commlog.write(header_lines(response.headers) + b"\n\n")
            commlog.write(to_wire(response.raw) or b"")
            commlog.write(b"\n")
