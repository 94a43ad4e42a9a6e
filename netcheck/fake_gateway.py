"""Simulated probe gateway for netcheck development and demos."""

import random
import statistics
import time
from collections.abc import Callable

from netcheck.gateway import (
    TIMEOUT_ADDRESS,
    DnsRecord,
    GeoIp,
    JitterResult,
    LanDevice,
    MtuResult,
    NatResult,
    PingResult,
    PortScanResult,
    ProbeError,
    SystemInfo,
    TcpResult,
    ThroughputResult,
    TraceHop,
)


class FakeProbeGateway:
    """Generates plausible probe results without touching the network."""

    def __init__(self, seed: int | None = None, step_delay: float = 0.05):
        """Initialize with optional random seed for deterministic behavior.

        Args:
            seed: Seed for the isolated random generator
            step_delay: Seconds to pause between streamed trace/discovery events
        """
        # Isolated random instance; probes run on pool threads
        self._random = random.Random(seed)
        self.step_delay = step_delay

        # Simulation parameters
        self.base_latency = 25.0  # Base latency in ms
        self.latency_variance = 5.0  # Normal variance
        self.spike_probability = 0.05  # 5% chance of latency spike
        self.spike_multiplier = 3.0  # Spike makes latency 3x higher
        self.loss_probability = 0.02  # 2% chance of packet loss
        self.closed_port_probability = 0.1
        self.path_length = 8
        self.silent_hop_probability = 0.15
        self.open_ports = (22, 80, 443, 3478, 8801)
        self.upload_mbps = 40.0

    def _sample_latency(self, base: float | None = None) -> float | None:
        """Return one latency sample, or None if the packet was lost."""
        if self._random.random() < self.loss_probability:
            return None

        base = self.base_latency if base is None else base
        if self._random.random() < self.spike_probability:
            latency = base * self.spike_multiplier + self._random.gauss(0, self.latency_variance)
        else:
            latency = base + self._random.gauss(0, self.latency_variance)

        return round(max(0.1, latency), 2)

    @staticmethod
    def _check_host(host: str) -> None:
        if not host or not host.strip():
            raise ProbeError("Host cannot be empty")

    def ping(self, host: str) -> PingResult:
        self._check_host(host)
        latency = self._sample_latency()
        if latency is None:
            return PingResult(host=host, status="Timeout")
        return PingResult(host=host, status="Success", latency_ms=latency)

    def jitter_test(self, host: str, sample_count: int) -> JitterResult:
        self._check_host(host)
        samples = [self._sample_latency() for _ in range(sample_count)]
        received = [s for s in samples if s is not None]
        if not received:
            return JitterResult(host, 0.0, 0.0, 100.0, "100% Packet Loss")

        loss = (sample_count - len(received)) / sample_count * 100
        jitter = round(statistics.pstdev(received), 2)
        return JitterResult(
            host=host,
            avg_latency=round(statistics.fmean(received), 2),
            jitter=jitter,
            packet_loss=loss,
            details=f"Recv: {len(received)}/{sample_count}, Jitter: {jitter:.2f}ms",
        )

    def tcp_check(self, host: str, port: int) -> TcpResult:
        self._check_host(host)
        if self._random.random() < self.closed_port_probability:
            return TcpResult(host=host, port=port, status="Closed")
        latency = self._sample_latency() or self.base_latency
        return TcpResult(host=host, port=port, status="Open", latency_ms=latency)

    def mtu_check(self, host: str) -> MtuResult:
        self._check_host(host)
        return MtuResult(host=host, mtu=1500, status="Pass", details="Max: 1500 bytes")

    def nat_check(self) -> NatResult:
        public_ip = f"203.0.113.{self._random.randint(1, 254)}"
        return NatResult(
            nat_type="Detected",
            public_ip=f"{public_ip}:{self._random.randint(1024, 65535)}",
            details="Via simulated STUN",
        )

    def device_discovery(
        self, on_device: Callable[[LanDevice], None] | None = None
    ) -> list[LanDevice]:
        devices = [
            LanDevice(ip="192.168.1.1", mac="00:11:22:33:44:55", hostname="gateway", status="Online"),
            LanDevice(ip="192.168.1.20", mac="66:77:88:99:aa:bb", hostname="Unknown", status="Online"),
        ]
        for device in devices:
            time.sleep(self.step_delay)
            if on_device is not None:
                on_device(device)
        return devices

    def path_trace(
        self, host: str, on_hop: Callable[[TraceHop], None] | None = None
    ) -> list[TraceHop]:
        self._check_host(host)
        hops = []
        for number in range(1, self.path_length + 1):
            time.sleep(self.step_delay)
            if number == self.path_length:
                hop = TraceHop(hop=number, ip=host, latency_ms=self._sample_latency())
            elif number > 1 and self._random.random() < self.silent_hop_probability:
                hop = TraceHop(hop=number, ip=TIMEOUT_ADDRESS, status="Timeout")
            else:
                hop = TraceHop(
                    hop=number,
                    ip=f"10.{number}.{self._random.randint(0, 255)}.1",
                    latency_ms=self._sample_latency(base=number * 4.0),
                )
            hops.append(hop)
            if on_hop is not None:
                on_hop(hop)
        return hops

    def geo_lookup(self, ip: str) -> GeoIp:
        return GeoIp(
            status="success",
            query=ip,
            city="Simulated City",
            country="Nowhere",
            region_name="Test Region",
            isp="Example Transit",
        )

    def system_info(self) -> SystemInfo:
        return SystemInfo(
            os_name="Simulated",
            os_version="1.0",
            host_name="localhost",
            cpu_usage=round(self._random.uniform(1.0, 30.0), 1),
            memory_used=4 * 1024**3,
            memory_total=16 * 1024**3,
        )

    def dns_lookup(self, domain: str) -> list[DnsRecord]:
        self._check_host(domain)
        if domain.endswith(".invalid"):
            return []
        return [
            DnsRecord("A", f"198.51.100.{self._random.randint(1, 254)}"),
            DnsRecord("AAAA", f"2001:db8::{self._random.randint(1, 0xFFFF):x}"),
        ]

    def port_scan(
        self,
        host: str,
        start_port: int,
        end_port: int,
        on_port: Callable[[int], None] | None = None,
    ) -> PortScanResult:
        self._check_host(host)
        if not 1 <= start_port <= end_port <= 65535:
            raise ProbeError(f"Invalid port range: {start_port}-{end_port}")

        found = []
        for port in self.open_ports:
            if start_port <= port <= end_port:
                time.sleep(self.step_delay)
                found.append(port)
                if on_port is not None:
                    on_port(port)
        scanned = end_port - start_port + 1
        return PortScanResult(host=host, open_ports=tuple(found), scanned_count=scanned, time_ms=scanned // 10)

    def throughput_test(self, host: str, port: int, duration_sec: float) -> ThroughputResult:
        self._check_host(host)
        mbps = round(max(0.1, self._random.gauss(self.upload_mbps, self.upload_mbps * 0.1)), 2)
        return ThroughputResult(
            bytes_transferred=int(mbps * 1_000_000 / 8 * duration_sec),
            duration_ms=int(duration_sec * 1000),
            mbps=mbps,
            status="Success",
        )
