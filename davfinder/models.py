#!/usr/bin/env python
"""
Data classes for the result of a discovery run.

A ``Configuration`` holds the echoed credentials, one optional
``ServiceInfo`` for each of CalDAV and CardDAV, and the diagnostic log
of the run.  The ``ServiceInfo`` objects are filled in while the
pipeline for the service runs, and not touched afterwards.
"""
import json
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Any
from typing import Dict
from typing import FrozenSet
from typing import Optional
from typing import Set

from davfinder.elements import carddav
from davfinder.elements import cdav
from davfinder.lib.url import URL
from davfinder.resource import PropertyName


class Service(Enum):
    CALDAV = "caldav"
    CARDDAV = "carddav"

    def __str__(self) -> str:
        return self.value

    @property
    def capability(self) -> str:
        """The token a server puts into the DAV header when it offers the service"""
        return {"caldav": "calendar-access", "carddav": "addressbook"}[self.value]

    @property
    def collection_type(self) -> str:
        return {"caldav": cdav.Calendar.tag, "carddav": carddav.Addressbook.tag}[
            self.value
        ]

    @property
    def home_set_property(self) -> PropertyName:
        if self is Service.CALDAV:
            return PropertyName.CALENDAR_HOME_SET
        return PropertyName.ADDRESSBOOK_HOME_SET

    @property
    def well_known_path(self) -> str:
        return f"/.well-known/{self.value}"

    def srv_name(self, domain: str) -> str:
        ## only secure services are discovered, hence the "s"
        return f"_{self.value}s._tcp.{domain}"


class CollectionType(Enum):
    CALENDAR = "calendar"
    ADDRESS_BOOK = "address-book"


WRITE_PRIVILEGES = frozenset(("write", "write-content", "all"))


@dataclass(frozen=True)
class CollectionInfo:
    """Metadata of one calendar or address book collection"""

    url: URL
    type: Optional[CollectionType] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    timezone: Optional[str] = None
    supports_events: bool = False
    supports_tasks: bool = False
    read_only: bool = False
    privileges: Optional[FrozenSet[str]] = None
    resource_types: FrozenSet[str] = frozenset()

    @classmethod
    def from_dav_resource(cls, resource) -> "CollectionInfo":
        props = resource.properties
        resource_types = props.get(PropertyName.RESOURCE_TYPE) or frozenset()
        if cdav.Calendar.tag in resource_types:
            type_ = CollectionType.CALENDAR
        elif carddav.Addressbook.tag in resource_types:
            type_ = CollectionType.ADDRESS_BOOK
        else:
            type_ = None

        supports_events = supports_tasks = False
        if type_ == CollectionType.CALENDAR:
            ## no supported-calendar-component-set means "all components"
            components = props.get(PropertyName.SUPPORTED_CALENDAR_COMPONENT_SET)
            supports_events = components is None or "VEVENT" in components
            supports_tasks = components is None or "VTODO" in components

        privileges = props.get(PropertyName.CURRENT_USER_PRIVILEGE_SET)
        read_only = privileges is not None and not (privileges & WRITE_PRIVILEGES)

        description = props.get(PropertyName.CALENDAR_DESCRIPTION) or props.get(
            PropertyName.ADDRESSBOOK_DESCRIPTION
        )

        return cls(
            url=resource.location.with_trailing_slash(),
            type=type_,
            display_name=props.get(PropertyName.DISPLAY_NAME),
            description=description,
            color=props.get(PropertyName.CALENDAR_COLOR),
            timezone=props.get(PropertyName.CALENDAR_TIMEZONE),
            supports_events=supports_events,
            supports_tasks=supports_tasks,
            read_only=read_only,
            privileges=privileges,
            resource_types=frozenset(resource_types),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": str(self.url),
            "type": self.type.value if self.type else None,
            "display_name": self.display_name,
            "description": self.description,
            "color": self.color,
            "timezone": self.timezone,
            "supports_events": self.supports_events,
            "supports_tasks": self.supports_tasks,
            "read_only": self.read_only,
            "privileges": sorted(self.privileges) if self.privileges is not None else None,
            "resource_types": sorted(self.resource_types),
        }


@dataclass
class ServiceInfo:
    """What has been found out about one service (CalDAV or CardDAV)"""

    principal: Optional[URL] = None
    home_sets: Set[URL] = field(default_factory=set)
    collections: Dict[URL, CollectionInfo] = field(default_factory=dict)

    def is_useful(self) -> bool:
        return bool(self.principal or self.home_sets or self.collections)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "principal": str(self.principal) if self.principal else None,
            "home_sets": sorted(str(x) for x in self.home_sets),
            "collections": {
                str(url): info.to_dict()
                for url, info in sorted(self.collections.items(), key=lambda x: str(x[0]))
            },
        }


@dataclass(frozen=True)
class Credentials:
    """What the user typed in: a http(s) URL or a mailto URI, and the login"""

    uri: str
    user_name: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    preemptive_auth: bool = False


@dataclass(frozen=True)
class Configuration:
    user_name: Optional[str]
    password: Optional[str] = field(repr=False)
    preemptive_auth: bool
    calendar_service: Optional[ServiceInfo] = None
    contacts_service: Optional[ServiceInfo] = None
    logs: str = field(default="", repr=False)

    def to_dict(self, include_password: bool = False) -> Dict[str, Any]:
        ret = {
            "user_name": self.user_name,
            "preemptive_auth": self.preemptive_auth,
            "calendar_service": self.calendar_service.to_dict()
            if self.calendar_service
            else None,
            "contacts_service": self.contacts_service.to_dict()
            if self.contacts_service
            else None,
            "logs": self.logs,
        }
        if include_password:
            ret["password"] = self.password
        return ret

    def to_json(self, include_password: bool = False, **kwargs) -> str:
        return json.dumps(self.to_dict(include_password=include_password), **kwargs)
