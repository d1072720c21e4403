#!/usr/bin/env python
from typing import ClassVar

from .base import BaseElement
from davfinder.lib.namespace import ns


# Properties
class CalendarColor(BaseElement):
    tag: ClassVar[str] = ns("I", "calendar-color")
