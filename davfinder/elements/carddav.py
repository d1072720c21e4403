#!/usr/bin/env python
from typing import ClassVar

from .base import BaseElement
from davfinder.lib.namespace import ns


# Properties
class AddressbookHomeSet(BaseElement):
    tag: ClassVar[str] = ns("CR", "addressbook-home-set")


# address book resource type, see rfc6352, sec. 5.2
class Addressbook(BaseElement):
    tag: ClassVar[str] = ns("CR", "addressbook")


class AddressbookDescription(BaseElement):
    tag: ClassVar[str] = ns("CR", "addressbook-description")
