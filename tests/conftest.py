"""Shared fixtures: Qt application, event-loop waiting and a scripted gateway."""

import threading
import time

import pytest
from PySide6.QtCore import QCoreApplication, QEventLoop, QThreadPool, QTimer

from netcheck.gateway import (
    DnsRecord,
    GeoIp,
    JitterResult,
    LanDevice,
    MtuResult,
    NatResult,
    PingResult,
    PortScanResult,
    SystemInfo,
    TcpResult,
    ThroughputResult,
    TraceHop,
)


@pytest.fixture(scope="session")
def qapp():
    """Create QCoreApplication instance for tests."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


@pytest.fixture(autouse=True)
def drain_thread_pool():
    """Let workers started by a test finish before the next one runs."""
    yield
    QThreadPool.globalInstance().waitForDone(5000)
    if QCoreApplication.instance() is not None:
        QCoreApplication.processEvents()


def wait_ms(ms):
    """Wait for specified milliseconds in Qt event loop"""
    loop = QEventLoop()
    QTimer.singleShot(ms, loop.quit)
    loop.exec()


def _wait_until(predicate, timeout_ms=5000, step_ms=10):
    deadline = time.monotonic() + timeout_ms / 1000
    while not predicate():
        if time.monotonic() > deadline:
            return False
        wait_ms(step_ms)
    return True


@pytest.fixture
def wait_until(qapp):
    """Spin the event loop until ``predicate()`` holds or the timeout expires."""
    return _wait_until


@pytest.fixture
def wait(qapp):
    return wait_ms


class ScriptedGateway:
    """Probe gateway whose answers are set per operation by the test.

    A scripted response may be a value, an exception instance (raised) or a
    function called with the probe arguments. Every call is recorded, and the
    peak number of simultaneously running probes is tracked.
    """

    def __init__(self):
        self.responses = {}
        self.delays = {}
        self.calls = []
        self.trace_hops = [
            TraceHop(1, "192.168.1.1", 1.0),
            TraceHop(2, "10.0.0.1", 8.0),
            TraceHop(3, "Request Timed Out", None, "Timeout"),
            TraceHop(4, "8.8.8.8", 14.0),
        ]
        self.trace_delay = 0
        self.trace_emitted = 0
        self.max_active = 0
        self._active = 0
        self._lock = threading.Lock()

    def script(self, op, response, delay=None):
        self.responses[op] = response
        if delay is not None:
            self.delays[op] = delay

    def calls_for(self, op):
        with self._lock:
            return [args for name, args in self.calls if name == op]

    def _call(self, op, args, default):
        with self._lock:
            self.calls.append((op, args))
            self._active += 1
            self.max_active = max(self.max_active, self._active)
        try:
            delay = self.delays.get(op, 0)
            if delay:
                time.sleep(delay)
            response = self.responses.get(op, default)
            if isinstance(response, BaseException):
                raise response
            if callable(response):
                return response(*args)
            return response
        finally:
            with self._lock:
                self._active -= 1

    def ping(self, host):
        return self._call("ping", (host,), PingResult(host, "Success", 10.0))

    def jitter_test(self, host, sample_count):
        return self._call("jitter_test", (host, sample_count), JitterResult(host, 20.0, 5.0, 0.0))

    def tcp_check(self, host, port):
        return self._call("tcp_check", (host, port), TcpResult(host, port, "Open", 12.0))

    def mtu_check(self, host):
        return self._call("mtu_check", (host,), MtuResult(host, 1500, "Pass", "Max: 1500 bytes"))

    def nat_check(self):
        return self._call("nat_check", (), NatResult("Detected", "203.0.113.7:40000"))

    def device_discovery(self, on_device=None):
        devices = [
            LanDevice("192.168.1.1", "00:11:22:33:44:55", "gateway", "Online"),
            LanDevice("192.168.1.20", "66:77:88:99:aa:bb", "Unknown", "Online"),
        ]
        return self._call("device_discovery", (), devices)

    def path_trace(self, host, on_hop=None):
        def run(host):
            for hop in self.trace_hops:
                if self.trace_delay:
                    time.sleep(self.trace_delay)
                if on_hop is not None:
                    on_hop(hop)
                self.trace_emitted += 1
            return list(self.trace_hops)

        response = self.responses.get("path_trace", run)
        with self._lock:
            self.calls.append(("path_trace", (host,)))
        if isinstance(response, BaseException):
            raise response
        return response(host) if callable(response) else response

    def geo_lookup(self, ip):
        return self._call("geo_lookup", (ip,), GeoIp("success", ip, "Mountain View", "United States", "CA", "Google"))

    def system_info(self):
        return self._call("system_info", (), SystemInfo("Linux", "6.1", "test-host", 12.5, 2048, 8192))

    def dns_lookup(self, domain):
        records = [DnsRecord("A", "93.184.216.34"), DnsRecord("AAAA", "2606:2800:220:1::1")]
        return self._call("dns_lookup", (domain,), records)

    def port_scan(self, host, start_port, end_port, on_port=None):
        def scan(host, start_port, end_port):
            found = tuple(p for p in (22, 443) if start_port <= p <= end_port)
            for port in found:
                if on_port is not None:
                    on_port(port)
            return PortScanResult(host, found, end_port - start_port + 1, 5)

        return self._call("port_scan", (host, start_port, end_port), scan)

    def throughput_test(self, host, port, duration_sec):
        result = ThroughputResult(int(5_000_000 * duration_sec), int(duration_sec * 1000), 40.0, "Success")
        return self._call("throughput_test", (host, port, duration_sec), result)


@pytest.fixture
def gateway():
    return ScriptedGateway()
