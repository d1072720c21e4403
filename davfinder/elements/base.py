#!/usr/bin/env python
import sys
from typing import ClassVar
from typing import List
from typing import Optional
from typing import Union

from lxml import etree
from lxml.etree import _Element

from davfinder.lib.namespace import nsmap

if sys.version_info < (3, 9):
    from typing import Iterable
else:
    from collections.abc import Iterable

if sys.version_info < (3, 11):
    from typing_extensions import Self
else:
    from typing import Self


class BaseElement:
    """
    An XML element in a request body.  Subclasses define ``tag``;
    children are added with ``+``, like in

    >>> dav.Propfind() + (dav.Prop() + [dav.DisplayName(), dav.ResourceType()])

    The tag classes double as constants when parsing responses.
    """

    tag: ClassVar[Optional[str]] = None

    def __init__(self) -> None:
        self.children: List[BaseElement] = []

    def __add__(self, other: Union["BaseElement", Iterable["BaseElement"]]) -> Self:
        if isinstance(other, Iterable):
            self.children.extend(other)
        else:
            self.children.append(other)
        return self

    def __str__(self) -> str:
        return etree.tostring(self.xmlelement(), pretty_print=True).decode("utf-8")

    def xmlelement(self) -> _Element:
        if self.tag is None:
            raise ValueError("Unexpected value None for self.tag")
        root = etree.Element(self.tag, nsmap=nsmap)
        for child in self.children:
            root.append(child.xmlelement())
        return root
