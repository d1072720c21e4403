#!/usr/bin/env python
import io
import logging
import threading

log = logging.getLogger("davfinder")

_counter_lock = threading.Lock()
_counter = 0


class StringLogger(logging.Logger):
    """
    A logger collecting everything logged through it into a string,
    for showing it to the user or attaching it to a bug report.

    The logger is not registered with the logging manager, so every
    discovery run gets its own instance and its own buffer.  Records
    are still propagated to the "davfinder" logger, so the normal
    logging configuration of the application applies as well.
    """

    def __init__(self, name: str = "discovery", verbose: bool = True) -> None:
        global _counter
        with _counter_lock:
            _counter += 1
            serial = _counter
        super(StringLogger, self).__init__(
            "%s.%s.%i" % (log.name, name, serial),
            level=logging.DEBUG if verbose else logging.INFO,
        )
        self.parent = log
        self._buffer = io.StringIO()
        handler = logging.StreamHandler(self._buffer)
        handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        self.addHandler(handler)

    def getvalue(self) -> str:
        return self._buffer.getvalue()

    def __str__(self) -> str:
        return self.getvalue()

    def __repr__(self) -> str:
        return "StringLogger(%s)" % self.name
