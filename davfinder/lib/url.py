#!/usr/bin/env python
import sys
from typing import Optional
from typing import Union
from urllib.parse import ParseResult
from urllib.parse import quote
from urllib.parse import SplitResult
from urllib.parse import unquote
from urllib.parse import urljoin
from urllib.parse import urlparse
from urllib.parse import urlunparse

from davfinder.lib import error
from davfinder.lib.python_utilities import to_normal_str

if sys.version_info < (3, 11):
    from typing_extensions import Self
else:
    from typing import Self

DEFAULT_PORTS = {"https": 443, "http": 80}


class URL:
    """
    An URL, wrapped into an object.  Attributes of the parsed URL
    (``scheme``, ``hostname``, ``port``, ``path`` ...) are available
    directly on the object.  All methods that accept URLs can be fed
    either with a URL object, a string or a parsed URL.

    URLs found during discovery are always absolute.  Servers may
    hand out references (href elements) that are relative to the
    resource they were found on, ``resolve`` turns those into
    absolute URLs.  URLs used as keys in the discovery result are
    normalized with ``with_trailing_slash``.

    Two URLs are equal if their canonical forms are, so
    ``https://Example.com/dav/`` equals ``https://example.com:443/dav/``.
    """

    def __init__(self, url: Union[str, bytes, ParseResult, SplitResult]) -> None:
        if isinstance(url, (ParseResult, SplitResult)):
            self.url_parsed: Optional[Union[ParseResult, SplitResult]] = url
            self.url_raw = url.geturl()
        else:
            self.url_raw = to_normal_str(url)
            self.url_parsed = None

    @classmethod
    def objectify(
        cls, url: Union[Self, str, bytes, ParseResult, SplitResult, None]
    ) -> Optional["URL"]:
        if url is None or isinstance(url, URL):
            return url
        return cls(url)

    @classmethod
    def from_parts(cls, scheme: str, host: str, port: Optional[int], path: str) -> "URL":
        """
        Builds an URL from its components, leaving out the port if
        it's the default port of the scheme
        """
        netloc = host
        if port and port != DEFAULT_PORTS.get(scheme):
            netloc = "%s:%i" % (host, port)
        if not path.startswith("/"):
            path = "/" + path
        return cls(ParseResult(scheme, netloc, path, "", "", ""))

    def parsed(self) -> Union[ParseResult, SplitResult]:
        if self.url_parsed is None:
            self.url_parsed = urlparse(self.url_raw)
        return self.url_parsed

    def __getattr__(self, attr: str):
        ## only called for attributes not found the normal way
        if attr.startswith("__") or "url_raw" not in vars(self):
            raise AttributeError(attr)
        return getattr(self.parsed(), attr)

    def __str__(self) -> str:
        return self.url_raw

    def __repr__(self) -> str:
        return "URL(%s)" % self.url_raw

    def __bool__(self) -> bool:
        return bool(self.url_raw)

    def __eq__(self, other: object) -> bool:
        if str(self) == str(other):
            return True
        if isinstance(other, (str, ParseResult, SplitResult)):
            other = URL(other)
        if not isinstance(other, URL):
            return NotImplemented
        return str(self.canonical()) == str(other.canonical())

    def __hash__(self) -> int:
        return hash(str(self.canonical()))

    def with_trailing_slash(self) -> "URL":
        """
        Returns the URL with a trailing slash on the path.  Query and
        fragment are kept as they are.
        """
        if self.path.endswith("/"):
            return self
        return URL(self.parsed()._replace(path=self.path + "/"))

    def resolve(self, reference: Union["URL", str]) -> "URL":
        """
        Resolves a (possibly relative) reference with this URL as the
        base, as a browser would do it.  Absolute references are
        returned as they are.

        References come from the server, so a malformed one raises
        ResponseError.
        """
        try:
            return URL(urljoin(self.url_raw, str(reference)))
        except ValueError as e:
            raise error.ResponseError(
                url=self.url_raw, reason=f"invalid reference {reference}: {e}"
            ) from e

    def is_auth(self) -> bool:
        return self.username is not None

    def unauth(self) -> "URL":
        """The URL without username and password, with explicit port"""
        if not self.is_auth():
            return self
        netloc = "%s:%s" % (self.hostname, self.port or DEFAULT_PORTS[self.scheme])
        return URL(self.parsed()._replace(netloc=netloc))

    def canonical(self) -> "URL":
        """
        The URL without credentials, with lower case host name,
        explicit port, no double slashes and a consistently quoted
        path.  Used for comparing URLs.
        """
        parts = list(urlparse(str(self.unauth())))
        parts[0] = parts[0] or "https"
        parts[1] = parts[1].lower()
        if parts[1] and ":" not in parts[1] and parts[0] in DEFAULT_PORTS:
            parts[1] += ":%i" % DEFAULT_PORTS[parts[0]]
        parts[2] = quote(unquote(parts[2].replace("//", "/")))
        return URL(urlunparse(parts))
