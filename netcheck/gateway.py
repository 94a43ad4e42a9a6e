"""Probe gateway abstraction: the contract every probe backend implements."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

# Placeholder addresses reported for hops that never answered
TIMEOUT_ADDRESS = "Request Timed Out"
UNKNOWN_ADDRESS = "*"


def is_real_address(ip: str | None) -> bool:
    """Return True if ``ip`` names an actual responder rather than a sentinel."""
    if not ip or not ip.strip():
        return False
    return ip.strip() not in (TIMEOUT_ADDRESS, UNKNOWN_ADDRESS)


class ProbeError(Exception):
    """A single probe could not be carried out."""


@dataclass(frozen=True)
class PingResult:
    host: str
    status: str  # "Success" | "Timeout"
    latency_ms: float | None = None


@dataclass(frozen=True)
class JitterResult:
    host: str
    avg_latency: float
    jitter: float
    packet_loss: float
    details: str = ""


@dataclass(frozen=True)
class TcpResult:
    host: str
    port: int
    status: str  # "Open" | "Closed"
    latency_ms: float | None = None


@dataclass(frozen=True)
class MtuResult:
    host: str
    mtu: int
    status: str  # "Pass" | "Fail"
    details: str = ""


@dataclass(frozen=True)
class NatResult:
    nat_type: str
    public_ip: str
    details: str = ""


@dataclass(frozen=True)
class LanDevice:
    ip: str
    mac: str
    hostname: str
    status: str


@dataclass(frozen=True)
class TraceHop:
    """A hop reported by a path trace, in discovery order."""

    hop: int
    ip: str
    latency_ms: float | None = None
    status: str = "Success"  # "Success" | "Timeout"


@dataclass(frozen=True)
class GeoIp:
    status: str
    query: str
    city: str | None = None
    country: str | None = None
    region_name: str | None = None
    isp: str | None = None


@dataclass(frozen=True)
class SystemInfo:
    os_name: str
    os_version: str
    host_name: str
    cpu_usage: float
    memory_used: int
    memory_total: int


@dataclass(frozen=True)
class DnsRecord:
    record_type: str  # "A" | "AAAA"
    value: str
    ttl: int = 0


@dataclass(frozen=True)
class PortScanResult:
    host: str
    open_ports: tuple[int, ...]
    scanned_count: int
    time_ms: int


@dataclass(frozen=True)
class ThroughputResult:
    """Outcome of a timed TCP upload; ``status`` is "Success" or the connect error."""

    bytes_transferred: int
    duration_ms: int
    mbps: float
    status: str


class ProbeGateway(Protocol):
    """Protocol defining the probe operations the diagnostic core relies on.

    Every method blocks until the probe finishes and may raise; callers run
    them on worker threads and treat any exception as a failed probe.
    """

    def ping(self, host: str) -> PingResult:
        ...

    def jitter_test(self, host: str, sample_count: int) -> JitterResult:
        ...

    def tcp_check(self, host: str, port: int) -> TcpResult:
        ...

    def mtu_check(self, host: str) -> MtuResult:
        ...

    def nat_check(self) -> NatResult:
        ...

    def device_discovery(
        self, on_device: Callable[[LanDevice], None] | None = None
    ) -> list[LanDevice]:
        """Find active devices on the local network.

        ``on_device`` is invoked for each device as soon as it is found.
        """
        ...

    def path_trace(
        self, host: str, on_hop: Callable[[TraceHop], None] | None = None
    ) -> list[TraceHop]:
        """Trace the route to ``host``.

        ``on_hop`` is invoked for each hop as soon as it is discovered.
        """
        ...

    def geo_lookup(self, ip: str) -> GeoIp:
        ...

    def system_info(self) -> SystemInfo:
        ...

    def dns_lookup(self, domain: str) -> list[DnsRecord]:
        ...

    def port_scan(
        self,
        host: str,
        start_port: int,
        end_port: int,
        on_port: Callable[[int], None] | None = None,
    ) -> PortScanResult:
        """Connect-scan an inclusive port range.

        ``on_port`` is invoked with each open port as soon as it is found.
        """
        ...

    def throughput_test(self, host: str, port: int, duration_sec: float) -> ThroughputResult:
        ...
