#!/usr/bin/env python
import logging
import os
from typing import Optional

from davfinder import __version__

## Environmental variables prepended with "DAVFINDER_" are used both for
## debugging and for connection parameters (see davfinder.config)
debug_dump_communication = os.environ.get("DAVFINDER_COMMDUMP", False)
## one of DEBUG_PDB, DEBUG, DEVELOPMENT, PRODUCTION
debugmode = os.environ.get("DAVFINDER_DEBUGMODE")
if not debugmode:
    if "dev" in __version__ or __version__ == "(unknown)":
        debugmode = "DEVELOPMENT"
    else:
        debugmode = "PRODUCTION"

log = logging.getLogger("davfinder")
if debugmode.startswith("DEBUG"):
    log.setLevel(logging.DEBUG)
else:
    log.setLevel(logging.WARNING)


def errmsg(r) -> str:
    """Utility for formatting a an error response to an error string"""
    return "%s %s\n\n%s" % (r.status, r.reason, r.raw)


def weirdness(*reasons):
    from davfinder.lib.debug import xmlstring

    reason = " : ".join([xmlstring(x) for x in reasons])
    log.warning(f"Deviation from expectations found: {reason}")
    if debugmode == "DEBUG_PDB":
        log.error(f"Dropping into debugger due to {reason}")
        import pdb

        pdb.set_trace()


def assert_(condition: object) -> None:
    try:
        assert condition
    except AssertionError:
        if debugmode == "PRODUCTION":
            log.error(
                "Deviation from expectations found.  %s" % ERR_FRAGMENT, exc_info=True
            )
        elif debugmode == "DEBUG_PDB":
            log.error("Deviation from expectations found.  Dropping into debugger")
            import pdb

            pdb.set_trace()
        else:
            raise


ERR_FRAGMENT: str = "Please consider raising an issue, include this error and the traceback (if any) and tell what server you are using"


class DAVError(Exception):
    url: Optional[str] = None
    reason: str = "no reason"

    def __init__(self, url: Optional[str] = None, reason: Optional[str] = None) -> None:
        if url:
            self.url = url
        if reason:
            self.reason = reason

    def __str__(self) -> str:
        return "%s at '%s', reason %s" % (
            self.__class__.__name__,
            self.url,
            self.reason,
        )


class TransportError(DAVError):
    """
    The request never got a proper HTTP answer - connection refused,
    DNS failure on the HTTP layer, TLS handshake problems, timeouts.
    """

    pass


class AuthorizationError(DAVError):
    """
    The client encountered an HTTP 401 or 403 error.  The url property
    will contain the url in question, the reason property will contain
    the excuse the server sent.
    """

    pass


class NotFoundError(DAVError):
    pass


class ResponseError(DAVError):
    """Malformed or unexpected response from the server"""

    pass


ProtocolError = ResponseError


class PropfindError(DAVError):
    pass


class OptionsError(DAVError):
    pass


class DnsResolutionError(DAVError):
    """A DNS lookup failed for other reasons than the name not existing"""

    pass


class DiscoveryError(DAVError):
    """Raised when the discovery API is used with invalid arguments"""

    pass


exception_by_method = {
    "propfind": PropfindError,
    "options": OptionsError,
}
