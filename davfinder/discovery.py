#!/usr/bin/env python
"""
Finding the CalDAV and CardDAV configuration of a user, starting from
nothing but a URL or an email address.

For each of the two services, the following strategies are tried in
order, until one of them reveals a principal URL:

1. The URL given by the user.  It's probed with PROPFIND, if it's a
   calendar or an address book (or refers to home sets) this is
   recorded, and if it has a current-user-principal (or is a principal
   itself) we're done.
2. The well-known URI (RFC 5785, RFC 6764) on the same host.
3. DNS based service discovery (RFC 6764): SRV and TXT records for
   ``_caldavs._tcp.<domain>`` / ``_carddavs._tcp.<domain>``, where the
   domain is taken from the https URL or from the email address.  For
   every candidate context path (TXT path, well-known path, root) the
   current-user-principal is looked up.

A principal is only accepted if an OPTIONS request on it confirms that
it offers the service (``calendar-access`` / ``addressbook`` in the DAV
header).

SECURITY CONSIDERATIONS:
    Only secure services are discovered (``_caldavs``/``_carddavs``
    SRV records, https URLs).  DNS discovery is never attempted when
    the user gave a plain http URL.

    DNS based discovery is vulnerable to spoofing if DNS is not secured
    with DNSSEC.  For high-security environments manual configuration
    may be preferable to automatic discovery.

No strategy is fatal.  Whatever goes wrong is written to the
diagnostic log of the run, which ends up in ``Configuration.logs``.

See: https://datatracker.ietf.org/doc/html/rfc6764
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from dataclasses import field
from typing import Callable
from typing import List
from typing import Optional
from typing import Union
from urllib.parse import urlparse

import dns.exception
import dns.resolver

from davfinder.davclient import DAVClient
from davfinder.elements import dav
from davfinder.lib import error
from davfinder.lib.error import DAVError
from davfinder.lib.log import StringLogger
from davfinder.lib.url import URL
from davfinder.models import CollectionInfo
from davfinder.models import Configuration
from davfinder.models import Credentials
from davfinder.models import Service
from davfinder.models import ServiceInfo
from davfinder.resource import DAVResource
from davfinder.resource import PropertyName

log = logging.getLogger(__name__)

## What to ask for when probing the URL given by the user
USER_URL_PROPERTIES = {
    Service.CARDDAV: (
        PropertyName.RESOURCE_TYPE,
        PropertyName.DISPLAY_NAME,
        PropertyName.ADDRESSBOOK_DESCRIPTION,
        PropertyName.ADDRESSBOOK_HOME_SET,
        PropertyName.CURRENT_USER_PRINCIPAL,
    ),
    Service.CALDAV: (
        PropertyName.RESOURCE_TYPE,
        PropertyName.DISPLAY_NAME,
        PropertyName.CALENDAR_COLOR,
        PropertyName.CALENDAR_DESCRIPTION,
        PropertyName.CALENDAR_TIMEZONE,
        PropertyName.CURRENT_USER_PRIVILEGE_SET,
        PropertyName.SUPPORTED_CALENDAR_COMPONENT_SET,
        PropertyName.CALENDAR_HOME_SET,
        PropertyName.CURRENT_USER_PRINCIPAL,
    ),
}


def _to_service(service: Union[Service, str]) -> Service:
    if isinstance(service, Service):
        return service
    try:
        return Service(service)
    except ValueError:
        raise error.DiscoveryError(
            reason=f"Invalid service_type: {service}. Must be 'caldav' or 'carddav'"
        )


@dataclass(frozen=True)
class ProbeResult:
    """
    Outcome of one discovery strategy: a principal was found, the
    strategy didn't give any principal, or the strategy failed with an
    error.  Only the first is a success, the two others just mean the
    next strategy should be tried - the error is kept for diagnostics.
    """

    principal: Optional[URL] = None
    error: Optional[DAVError] = None

    @classmethod
    def found(cls, principal: URL) -> "ProbeResult":
        return cls(principal=principal)

    @classmethod
    def absent(cls) -> "ProbeResult":
        return cls()

    @classmethod
    def failed(cls, e: DAVError) -> "ProbeResult":
        return cls(error=e)

    def __bool__(self) -> bool:
        return self.principal is not None


@dataclass
class ServiceLocation:
    """Where to look for a service, as found through DNS"""

    scheme: str
    host: str
    port: int
    paths: List[str] = field(default_factory=list)

    def url_for(self, path: str) -> URL:
        return URL.from_parts(self.scheme, self.host, self.port, path)


def dns_lookup(name: str, rdtype: str, resolver=None) -> list:
    """
    Returns the records of type ``rdtype`` for ``name``, or an empty
    list if there are none.

    Raises DnsResolutionError if the lookup itself fails.
    """
    try:
        answers = (resolver or dns.resolver).resolve(name, rdtype)
    except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
        return []
    except dns.exception.DNSException as e:
        raise error.DnsResolutionError(url=name, reason=str(e)) from e
    return list(answers)


def _select_srv_record(records: list, log: logging.Logger):
    ## RFC 2782 priority/weight selection is not implemented
    if len(records) > 1:
        log.warning("Multiple SRV records not supported yet; using first one")
    return records[0]


def _txt_paths(records: list) -> List[str]:
    paths = []
    for record in records:
        for segment in record.strings:
            if isinstance(segment, bytes):
                segment = segment.decode("utf-8", errors="replace")
            if segment.startswith("path="):
                paths.append(segment[5:])
                break
    return paths


def locate_service(
    domain: str,
    service: Union[Service, str],
    log: logging.Logger = log,
    resolver=None,
) -> ServiceLocation:
    """
    Finds host, port and candidate context paths of a service through
    DNS.  Without SRV records the domain itself is used as host, on
    port 443.  The candidate paths are the ones from the TXT records,
    followed by the well-known path and the root.

    DNS problems are logged, never raised.
    """
    service = _to_service(service)
    query = service.srv_name(domain)
    location = ServiceLocation(scheme="https", host=domain, port=443)

    log.debug("Looking up SRV records for %s", query)
    try:
        records = dns_lookup(query, "SRV", resolver)
    except error.DnsResolutionError as e:
        log.debug("SRV lookup failed for %s: %s", query, e)
        records = []
    if records:
        srv = _select_srv_record(records, log)
        location.host = str(srv.target).rstrip(".")
        location.port = int(srv.port)
        log.info(
            "Found %s service at https://%s:%i", service, location.host, location.port
        )
    else:
        log.info(
            "Didn't find %s service, trying at https://%s:%i",
            service,
            location.host,
            location.port,
        )

    ## TXT records may give the initial context path
    try:
        records = dns_lookup(query, "TXT", resolver)
    except error.DnsResolutionError as e:
        log.debug("TXT lookup failed for %s: %s", query, e)
        records = []
    for path in _txt_paths(records):
        log.info("Found TXT record; initial context path=%s", path)
        location.paths.append(path)

    ## if there's no TXT record, or if it's wrong, try well-known, then the root
    location.paths.append(service.well_known_path)
    location.paths.append("/")
    return location


class DavResourceFinder:
    """
    Finds the initial CalDAV/CardDAV configuration for a set of
    credentials.

    Every finder has its own DAVClient and its own diagnostic log.
    ``find_initial_configuration(parallel=True)`` spawns one finder
    per service, so that nothing is shared between the threads.
    """

    def __init__(
        self,
        credentials: Credentials,
        client_factory: Optional[Callable[[], DAVClient]] = None,
        resolver=None,
        **client_params,
    ) -> None:
        """
        Args:
          credentials: the URI and login given by the user
          client_factory: called to get a DAVClient, defaults to a DAVClient set up with the credentials and client_params
          resolver: a dns.resolver.Resolver, defaults to the dnspython default resolver
          client_params: passed on to DAVClient, i.e. timeout, ssl_verify_cert, proxy
        """
        self.credentials = credentials
        self.client_factory = client_factory
        self.client_params = client_params
        self.resolver = resolver
        self.client = (client_factory or self._create_client)()
        self.log = StringLogger("discovery")

    def _create_client(self) -> DAVClient:
        params = dict(self.client_params)
        if self.credentials.preemptive_auth and self.credentials.user_name:
            params.setdefault("auth_type", "basic")
        return DAVClient(
            username=self.credentials.user_name,
            password=self.credentials.password,
            **params,
        )

    def _spawn(self) -> "DavResourceFinder":
        return DavResourceFinder(
            self.credentials,
            client_factory=self.client_factory,
            resolver=self.resolver,
            **self.client_params,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "DavResourceFinder":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def find_initial_configuration(self, parallel: bool = False) -> Configuration:
        """
        Runs the discovery for CardDAV and CalDAV and puts the results
        together.  This method never raises on network or server
        problems; if nothing was found, both services are None in the
        returned configuration, and the logs tell why.

        With ``parallel`` set, the two services are discovered in two
        threads, each with its own client and log.
        """
        if parallel:
            finders = [self._spawn(), self._spawn()]
            try:
                with ThreadPoolExecutor(max_workers=2) as executor:
                    carddav = executor.submit(
                        finders[0].find_service_configuration, Service.CARDDAV
                    )
                    caldav = executor.submit(
                        finders[1].find_service_configuration, Service.CALDAV
                    )
                    carddav_config = carddav.result()
                    caldav_config = caldav.result()
            finally:
                for finder in finders:
                    finder.close()
            logs = "".join(finder.log.getvalue() for finder in finders)
        else:
            carddav_config = self.find_service_configuration(Service.CARDDAV)
            caldav_config = self.find_service_configuration(Service.CALDAV)
            logs = self.log.getvalue()

        return Configuration(
            user_name=self.credentials.user_name,
            password=self.credentials.password,
            preemptive_auth=self.credentials.preemptive_auth,
            calendar_service=caldav_config,
            contacts_service=carddav_config,
            logs=logs,
        )

    def find_service_configuration(
        self, service: Union[Service, str]
    ) -> Optional[ServiceInfo]:
        """
        Runs the discovery pipeline for one service.  Returns None if
        nothing useful (no principal, no home set, no collection) was
        found.
        """
        service = _to_service(service)
        base_uri = self.credentials.uri
        parsed = urlparse(base_uri)
        scheme = parsed.scheme.lower()

        ## domain for service discovery
        discovery_fqdn = None

        config = ServiceInfo()
        self.log.info("Finding initial %s service configuration", service)

        if scheme in ("http", "https"):
            base_url = URL(base_uri)

            ## only secure service discovery is implemented
            if scheme == "https":
                discovery_fqdn = parsed.hostname

            result = self.check_user_given_url(base_url, service, config)
            config.principal = result.principal

            if config.principal is None:
                result = self.resolve_principal(
                    base_url.resolve(service.well_known_path), service
                )
                if result.error is not None:
                    self.log.debug("Well-known URL detection failed: %s", result.error)
                config.principal = result.principal

        elif scheme == "mailto":
            mailbox = parsed.path
            if "@" in mailbox:
                discovery_fqdn = mailbox.rsplit("@", 1)[1].strip() or None
            else:
                self.log.warning("No domain in %s, can't do service discovery", base_uri)

        else:
            self.log.warning("Unsupported URI scheme in %s", base_uri)

        if config.principal is None and discovery_fqdn:
            self.log.info("No principal found at user-given URL, trying to discover")
            result = self.discover_principal_url(discovery_fqdn, service, config)
            config.principal = result.principal

        if not config.is_useful():
            self.log.info("No %s service found", service)
            return None
        return config

    def check_user_given_url(
        self, base_url: URL, service: Service, config: ServiceInfo
    ) -> ProbeResult:
        self.log.info("Checking user-given URL: %s", base_url)

        try:
            resource = DAVResource(self.client, base_url)
            resource.propfind(0, *USER_URL_PROPERTIES[service])
            self.record_if_collection_or_home_set(resource, service, config)

            principal = None
            href = resource.properties.get(PropertyName.CURRENT_USER_PRINCIPAL)
            if href:
                principal = resource.location.resolve(href)

            ## the resource may be a principal itself
            if principal is None:
                resource_types = resource.properties.get(PropertyName.RESOURCE_TYPE) or ()
                if dav.Principal.tag in resource_types:
                    principal = resource.location

            if principal is None:
                return ProbeResult.absent()
            if not self.provides_service(principal, service):
                self.log.info(
                    "%s doesn't provide required %s service, dismissing", principal, service
                )
                return ProbeResult.absent()
            return ProbeResult.found(principal)

        except DAVError as e:
            self.log.debug("PROPFIND/OPTIONS on user-given URL failed: %s", e)
            return ProbeResult.failed(e)

    def record_if_collection_or_home_set(
        self, resource: DAVResource, service: Service, config: ServiceInfo
    ) -> None:
        resource_types = resource.properties.get(PropertyName.RESOURCE_TYPE) or ()
        if service.collection_type in resource_types:
            resource.location = resource.location.with_trailing_slash()
            self.log.info("Found %s collection at %s", service, resource.location)
            config.collections[resource.location] = CollectionInfo.from_dav_resource(
                resource
            )

        for href in resource.properties.get(service.home_set_property) or ():
            try:
                home_set = resource.location.resolve(href).with_trailing_slash()
            except error.ResponseError as e:
                self.log.warning("Ignoring %s home set: %s", service, e)
                continue
            self.log.info("Found %s home set at %s", service, home_set)
            config.home_sets.add(home_set)

    def provides_service(self, url: Union[URL, str], service: Service) -> bool:
        resource = DAVResource(self.client, url)
        try:
            resource.options()
        except DAVError as e:
            self.log.error("Couldn't detect services on %s: %s", url, e)
            return False
        return service.capability in resource.capabilities

    def discover_principal_url(
        self,
        domain: str,
        service: Union[Service, str],
        config: Optional[ServiceInfo] = None,
    ) -> ProbeResult:
        """
        Tries to find the principal URL by performing service
        discovery on a domain name.  Only secure services (caldavs,
        carddavs) will be discovered.

        If ``config`` is given, collections and home sets found on the
        way are recorded in it.
        """
        service = _to_service(service)
        location = locate_service(domain, service, log=self.log, resolver=self.resolver)

        result = ProbeResult.absent()
        for path in location.paths:
            url = location.url_for(path)
            self.log.info("Trying to determine principal from initial context path=%s", url)
            result = self.resolve_principal(url, service, config)
            if result:
                return result
            if isinstance(result.error, error.NotFoundError):
                self.log.warning("No resource found at %s", url)
            elif result.error is not None:
                self.log.debug(
                    "%s service discovery at %s failed: %s", service, url, result.error
                )
        return result

    def get_current_user_principal(
        self,
        url: Union[URL, str],
        service: Optional[Service] = None,
        config: Optional[ServiceInfo] = None,
    ) -> Optional[URL]:
        """
        Queries a given URL for current-user-principal.

        Args:
          url: URL to query with PROPFIND (Depth: 0)
          service: required service (may be None, in which case no service check is done)
          config: if given (together with service), the properties of the service are
            asked for as well, and collections and home sets found are recorded in config

        Returns:
          current-user-principal URL that provides required service, or None if none

        Raises DAVError if the PROPFIND fails.
        """
        resource = DAVResource(self.client, url)
        if service is not None and config is not None:
            resource.propfind(0, *USER_URL_PROPERTIES[service])
            self.record_if_collection_or_home_set(resource, service, config)
        else:
            resource.propfind(0, PropertyName.CURRENT_USER_PRINCIPAL)
        href = resource.properties.get(PropertyName.CURRENT_USER_PRINCIPAL)
        if not href:
            return None

        principal = resource.location.resolve(href)
        self.log.info("Found current-user-principal: %s", principal)
        if service is not None and not self.provides_service(principal, service):
            self.log.info(
                "%s doesn't provide required %s service, dismissing", principal, service
            )
            return None
        return principal

    def resolve_principal(
        self,
        url: Union[URL, str],
        service: Optional[Service] = None,
        config: Optional[ServiceInfo] = None,
    ) -> ProbeResult:
        """Like get_current_user_principal, but errors are returned rather than raised"""
        try:
            principal = self.get_current_user_principal(url, service, config)
        except DAVError as e:
            return ProbeResult.failed(e)
        if principal is None:
            return ProbeResult.absent()
        return ProbeResult.found(principal)


def discover(
    uri: str,
    username: Optional[str] = None,
    password: Optional[str] = None,
    preemptive_auth: bool = False,
    parallel: bool = False,
    **kwargs,
) -> Configuration:
    """
    Finds the CalDAV and CardDAV configuration for a user.

    Args:
      uri: ``https://...``, ``http://...`` or ``mailto:user@example.com``
      username, password: the login
      preemptive_auth: send basic auth credentials with the first request
      parallel: discover CalDAV and CardDAV in parallel threads
      kwargs: passed on to DavResourceFinder (client_factory, resolver) and DAVClient (timeout, ssl_verify_cert, ...)

    Examples:
        >>> config = discover('mailto:alice@example.com', 'alice', 'secret')
        >>> if config.calendar_service:
        ...     print(config.calendar_service.principal)
    """
    credentials = Credentials(
        uri=uri,
        user_name=username,
        password=password,
        preemptive_auth=preemptive_auth,
    )
    with DavResourceFinder(credentials, **kwargs) as finder:
        return finder.find_initial_configuration(parallel=parallel)
