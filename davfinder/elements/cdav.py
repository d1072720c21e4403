#!/usr/bin/env python
from typing import ClassVar

from .base import BaseElement
from davfinder.lib.namespace import ns


# Components / Data
class Comp(BaseElement):
    tag: ClassVar[str] = ns("C", "comp")


# Properties
class CalendarHomeSet(BaseElement):
    tag: ClassVar[str] = ns("C", "calendar-home-set")


# calendar resource type, see rfc4791, sec. 4.2
class Calendar(BaseElement):
    tag: ClassVar[str] = ns("C", "calendar")


class CalendarDescription(BaseElement):
    tag: ClassVar[str] = ns("C", "calendar-description")


class CalendarTimeZone(BaseElement):
    tag: ClassVar[str] = ns("C", "calendar-timezone")


class SupportedCalendarComponentSet(BaseElement):
    tag: ClassVar[str] = ns("C", "supported-calendar-component-set")
