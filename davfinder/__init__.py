#!/usr/bin/env python
import logging

__version__ = "0.3.0"

from .davclient import DAVClient
from .discovery import DavResourceFinder
from .discovery import discover
from .models import Configuration
from .models import Credentials
from .models import Service
from .models import ServiceInfo

# Silence notification of no default logging handler
log = logging.getLogger("davfinder")
log.addHandler(logging.NullHandler())

__all__ = [
    "__version__",
    "DAVClient",
    "DavResourceFinder",
    "discover",
    "Configuration",
    "Credentials",
    "Service",
    "ServiceInfo",
]
