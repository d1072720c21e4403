#!/usr/bin/env python
import logging
import threading

from davfinder.lib import error
from davfinder.lib.log import StringLogger
from davfinder.lib.python_utilities import to_normal_str
from davfinder.lib.python_utilities import to_wire


class TestStringLogger:
    def test_buffer(self):
        log = StringLogger()
        log.info("Found %s service at %s", "caldav", "https://example.com/")
        log.debug("details")
        assert log.getvalue() == (
            "INFO Found caldav service at https://example.com/\nDEBUG details\n"
        )
        assert str(log) == log.getvalue()

    def test_not_verbose(self):
        log = StringLogger(verbose=False)
        log.debug("details")
        log.warning("careful")
        assert log.getvalue() == "WARNING careful\n"

    def test_separate_buffers(self):
        first = StringLogger("x")
        second = StringLogger("x")
        assert first.name != second.name
        first.info("one")
        assert second.getvalue() == ""
        assert logging.getLogger(first.name) is not first

    def test_propagates_to_library_logger(self, caplog):
        log = StringLogger()
        with caplog.at_level(logging.INFO):
            log.info("hello")
        assert "hello" in caplog.text
        assert log.parent is logging.getLogger("davfinder")

    def test_threads(self):
        loggers = [StringLogger() for i in range(4)]

        def work(log, n):
            for i in range(50):
                log.info("%i", n)

        threads = [
            threading.Thread(target=work, args=(log, n)) for (n, log) in enumerate(loggers)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        for n, log in enumerate(loggers):
            assert log.getvalue() == f"INFO {n}\n" * 50


class TestError:
    def test_str(self):
        e = error.NotFoundError(url="https://example.com/", reason="404 Not Found")
        assert str(e) == "NotFoundError at 'https://example.com/', reason 404 Not Found"
        assert str(error.DAVError()) == "DAVError at 'None', reason no reason"

    def test_hierarchy(self):
        for cls in (
            error.TransportError,
            error.AuthorizationError,
            error.NotFoundError,
            error.ResponseError,
            error.PropfindError,
            error.OptionsError,
            error.DnsResolutionError,
            error.DiscoveryError,
        ):
            assert issubclass(cls, error.DAVError)
        assert error.ProtocolError is error.ResponseError
        assert error.exception_by_method["propfind"] is error.PropfindError

    def test_weirdness_logs(self, caplog):
        with caplog.at_level(logging.WARNING, logger="davfinder"):
            error.weirdness("unexpected", "thing")
        assert "Deviation from expectations found: unexpected : thing" in caplog.text


class TestPythonUtilities:
    def test_to_wire(self):
        assert to_wire("a\nb") == b"a\r\nb"
        assert to_wire(b"a\r\nb") == b"a\r\nb"
        assert to_wire(None) is None

    def test_to_normal_str(self):
        assert to_normal_str(b"a\r\nb") == "a\nb"
        assert to_normal_str("blåbær") == "blåbær"
        assert to_normal_str(None) is None
