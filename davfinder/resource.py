#!/usr/bin/env python
"""
A ``DAVResource`` is one remote WebDAV resource as seen during
discovery.  After a ``propfind`` its ``properties`` hold the
requested properties that the server delivered, parsed into python
values and keyed by ``PropertyName``; after an ``options`` call its
``capabilities`` hold the tokens from the DAV header.

Properties that the server did not deliver (or reported with a 404
propstat) are absent from ``properties``.  The value types are:

============================  ==============================
RESOURCE_TYPE                 frozenset of element tags
CURRENT_USER_PRINCIPAL        href (str) or None
CALENDAR_HOME_SET             list of hrefs
ADDRESSBOOK_HOME_SET          list of hrefs
SUPPORTED_CALENDAR_COMPONENT  frozenset of component names
CURRENT_USER_PRIVILEGE_SET    frozenset of privilege names
everything else               str or None
============================  ==============================
"""
from enum import Enum
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from typing import Set
from typing import Union

from lxml import etree
from lxml.etree import _Element

from davfinder.elements import carddav
from davfinder.elements import cdav
from davfinder.elements import dav
from davfinder.elements import ical
from davfinder.lib import error
from davfinder.lib.error import errmsg
from davfinder.lib.url import URL


class PropertyName(Enum):
    RESOURCE_TYPE = dav.ResourceType.tag
    DISPLAY_NAME = dav.DisplayName.tag
    CURRENT_USER_PRINCIPAL = dav.CurrentUserPrincipal.tag
    CURRENT_USER_PRIVILEGE_SET = dav.CurrentUserPrivilegeSet.tag
    CALENDAR_HOME_SET = cdav.CalendarHomeSet.tag
    CALENDAR_DESCRIPTION = cdav.CalendarDescription.tag
    CALENDAR_TIMEZONE = cdav.CalendarTimeZone.tag
    SUPPORTED_CALENDAR_COMPONENT_SET = cdav.SupportedCalendarComponentSet.tag
    CALENDAR_COLOR = ical.CalendarColor.tag
    ADDRESSBOOK_HOME_SET = carddav.AddressbookHomeSet.tag
    ADDRESSBOOK_DESCRIPTION = carddav.AddressbookDescription.tag

    @property
    def element(self):
        return _ELEMENT_CLASSES[self]


_ELEMENT_CLASSES = {
    PropertyName.RESOURCE_TYPE: dav.ResourceType,
    PropertyName.DISPLAY_NAME: dav.DisplayName,
    PropertyName.CURRENT_USER_PRINCIPAL: dav.CurrentUserPrincipal,
    PropertyName.CURRENT_USER_PRIVILEGE_SET: dav.CurrentUserPrivilegeSet,
    PropertyName.CALENDAR_HOME_SET: cdav.CalendarHomeSet,
    PropertyName.CALENDAR_DESCRIPTION: cdav.CalendarDescription,
    PropertyName.CALENDAR_TIMEZONE: cdav.CalendarTimeZone,
    PropertyName.SUPPORTED_CALENDAR_COMPONENT_SET: cdav.SupportedCalendarComponentSet,
    PropertyName.CALENDAR_COLOR: ical.CalendarColor,
    PropertyName.ADDRESSBOOK_HOME_SET: carddav.AddressbookHomeSet,
    PropertyName.ADDRESSBOOK_DESCRIPTION: carddav.AddressbookDescription,
}


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _text(prop: _Element) -> Optional[str]:
    if prop.text is None:
        return None
    return prop.text.strip() or None


def _hrefs(prop: _Element) -> List[str]:
    return [x.text.strip() for x in prop.iterfind(dav.Href.tag) if x.text and x.text.strip()]


def _first_href(prop: _Element) -> Optional[str]:
    ## current-user-principal may contain <unauthenticated/> instead of an href
    hrefs = _hrefs(prop)
    return hrefs[0] if hrefs else None


def _child_tags(prop: _Element) -> frozenset:
    return frozenset(x.tag for x in prop if isinstance(x.tag, str))


def _components(prop: _Element) -> frozenset:
    return frozenset(
        x.get("name").upper() for x in prop.iterfind(cdav.Comp.tag) if x.get("name")
    )


def _privileges(prop: _Element) -> frozenset:
    ret = set()
    for privilege in prop.iterfind(dav.Privilege.tag):
        for x in privilege:
            if isinstance(x.tag, str):
                ret.add(_local_name(x.tag))
    return frozenset(ret)


_PARSERS = {
    PropertyName.RESOURCE_TYPE: _child_tags,
    PropertyName.CURRENT_USER_PRINCIPAL: _first_href,
    PropertyName.CURRENT_USER_PRIVILEGE_SET: _privileges,
    PropertyName.CALENDAR_HOME_SET: _hrefs,
    PropertyName.ADDRESSBOOK_HOME_SET: _hrefs,
    PropertyName.SUPPORTED_CALENDAR_COMPONENT_SET: _components,
}


def parse_property(name: PropertyName, prop: _Element) -> Any:
    return _PARSERS.get(name, _text)(prop)


class DAVResource:
    """
    A remote resource at ``location``, probed through ``client``.

    ``location`` follows redirects, and is adjusted if the server
    reports the resource under a slightly different path (typically
    with a trailing slash added).
    """

    def __init__(self, client, url: Union[str, URL]) -> None:
        self.client = client
        self.location = URL.objectify(url)
        self.properties: Dict[PropertyName, Any] = {}
        self.capabilities: Set[str] = set()

    def __repr__(self) -> str:
        return "DAVResource(%s)" % self.location

    def _check_status(self, response, method: str) -> None:
        if response.status == 404:
            raise error.NotFoundError(url=str(self.location), reason=errmsg(response))
        if response.status >= 400:
            raise error.exception_by_method[method](
                url=str(self.location), reason=errmsg(response)
            )

    def propfind(self, depth: int, *names: PropertyName) -> Dict[PropertyName, Any]:
        """
        Sends a PROPFIND for the given properties and puts the
        values found for this resource into ``self.properties``.
        """
        root = dav.Propfind() + (dav.Prop() + [name.element() for name in names])
        body = etree.tostring(
            root.xmlelement(),
            encoding="utf-8",
            xml_declaration=True,
            pretty_print=bool(error.debug_dump_communication),
        )
        response = self.client.propfind(str(self.location), body, depth)
        if response.url:
            self.location = response.url
        self._check_status(response, "propfind")

        objects = response.find_objects_and_props()
        props = self._props_for_self(objects)
        for name in names:
            if name.value in props:
                self.properties[name] = parse_property(name, props[name.value])
        return self.properties

    def _props_for_self(self, objects: Dict[str, Dict[str, _Element]]) -> Dict[str, _Element]:
        """
        Finds the properties belonging to this resource in the
        multistatus.  The href may be a path or an absolute URL, and
        it may differ from the requested one by a trailing slash.
        """
        exact = self.location.canonical()
        slashed = self.location.with_trailing_slash().canonical()
        for href in objects:
            found = self.location.resolve(href)
            canonical = found.canonical()
            if canonical == exact or found.with_trailing_slash().canonical() == exact:
                return objects[href]
            if canonical == slashed:
                self.location = found
                return objects[href]
        if len(objects) == 1:
            href = list(objects)[0]
            error.weirdness(
                f"requested properties of {self.location}, got properties of {href}"
            )
            return objects[href]
        if not objects:
            raise error.ResponseError(
                url=str(self.location), reason="no response element in multistatus"
            )
        raise error.ResponseError(
            url=str(self.location),
            reason="multistatus doesn't contain the requested resource",
        )

    def options(self) -> Set[str]:
        """
        Sends an OPTIONS request and puts the tokens of the DAV header
        into ``self.capabilities``
        """
        response = self.client.options(str(self.location))
        self._check_status(response, "options")
        self.capabilities = set(response.capabilities)
        return self.capabilities
