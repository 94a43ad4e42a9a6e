"""Probe gateway backed by system commands and plain sockets.

Uses the OS ``ping`` and ``traceroute``/``tracert`` commands for ICMP work,
TCP connects for port checks, scans and upload tests, the system resolver
for DNS, a STUN binding request for NAT discovery, ip-api.com for geolocation and psutil for host resource usage.

**Localization Limitation:**
Latency parsing relies on the English keyword "time" in ping output. On
non-English Windows systems parsing fails and samples are reported as lost.
"""

import ipaddress
import logging
import os
import platform
import re
import shutil
import socket
import statistics
import struct
import subprocess
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from math import ceil

import psutil
import requests
from requests.exceptions import RequestException

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

logger = logging.getLogger(__name__)

MAX_TRACE_HOPS = 15
TRACE_WAIT_SECONDS = 2  # per-hop reply wait; one query per hop
PORT_SCAN_TIMEOUT = 0.5
PORT_SCAN_WORKERS = 100
UPLOAD_CHUNK = bytes(8192)
MTU_PAYLOAD_SIZES = (1472, 1400, 1300, 1200, 500)
ICMP_HEADER_OVERHEAD = 28  # IPv4 header + ICMP header
STUN_SERVER = ("stun.l.google.com", 19302)
STUN_MAGIC_COOKIE = 0x2112A442
GEO_URL = "http://ip-api.com/json/{ip}"
GEO_FIELDS = "status,message,country,regionName,city,isp,query"

_LESS_THAN_PATTERN = re.compile(r"time<(\d+)", re.IGNORECASE)
_LATENCY_PATTERN = re.compile(r"time\s*[=<]\s*(\d+(?:\.\d+)?)\s*ms", re.IGNORECASE)
_HOP_LINE_PATTERN = re.compile(r"^\s*(\d+)\s+(.*)$")
_HOP_LATENCY_PATTERN = re.compile(r"(<?)(\d+(?:\.\d+)?)\s*ms", re.IGNORECASE)
_MAC_PATTERN = re.compile(r"([0-9a-f]{1,2}(?:[:-][0-9a-f]{1,2}){5})", re.IGNORECASE)


def parse_ping_latency_ms(output: str) -> float | None:
    """Parse the first latency value from ping output (pure function).

    Handles "time=12.3 ms" (Linux/macOS) and "time=12ms"/"time<1ms"
    (Windows). Windows "time<N" is interpreted as N/2 ms.

    Returns:
        Latency in milliseconds, or None if parsing failed

    Examples:
        >>> parse_ping_latency_ms("time=12.3 ms")
        12.3
        >>> parse_ping_latency_ms("time<1ms")
        0.5
    """
    if not output:
        return None

    match = _LESS_THAN_PATTERN.search(output)
    if match:
        return float(match.group(1)) / 2.0

    match = _LATENCY_PATTERN.search(output)
    if match:
        return float(match.group(1))

    return None


def parse_ping_latencies(output: str) -> list[float]:
    """Parse one latency per reply line of a multi-packet ping run."""
    latencies = []
    for line in (output or "").splitlines():
        latency = parse_ping_latency_ms(line)
        if latency is not None:
            latencies.append(latency)
    return latencies


def summarize_jitter(host: str, latencies: list[float], count: int) -> JitterResult:
    """Reduce raw reply latencies to average, jitter (population stdev) and loss."""
    received = len(latencies)
    if received == 0 or count <= 0:
        return JitterResult(host, 0.0, 0.0, 100.0, "100% Packet Loss")

    jitter = statistics.pstdev(latencies)
    loss = max(0.0, (count - received) / count * 100)
    return JitterResult(
        host=host,
        avg_latency=round(statistics.fmean(latencies), 2),
        jitter=round(jitter, 2),
        packet_loss=loss,
        details=f"Recv: {received}/{count}, Jitter: {jitter:.2f}ms",
    )


def parse_trace_line(line: str) -> TraceHop | None:
    """Parse one line of traceroute/tracert output into a TraceHop.

    Returns None for header and footer lines. Hops with no responding
    address are reported with the timeout sentinel.
    """
    match = _HOP_LINE_PATTERN.match(line or "")
    if not match:
        return None

    number = int(match.group(1))
    rest = match.group(2)

    ip = None
    for token in rest.replace("[", " ").replace("]", " ").replace("(", " ").replace(")", " ").split():
        try:
            ipaddress.ip_address(token)
        except ValueError:
            continue
        ip = token
        break

    if ip is None:
        return TraceHop(hop=number, ip=TIMEOUT_ADDRESS, latency_ms=None, status="Timeout")

    latency = None
    timing = _HOP_LATENCY_PATTERN.search(rest)
    if timing:
        value = float(timing.group(2))
        latency = value / 2.0 if timing.group(1) else value

    return TraceHop(hop=number, ip=ip, latency_ms=latency, status="Success")


def parse_mac_address(output: str) -> str:
    match = _MAC_PATTERN.search(output or "")
    if not match:
        return "Unknown"
    return match.group(1).replace("-", ":").lower()


def build_stun_request(transaction_id: bytes) -> bytes:
    """Build a STUN Binding Request (RFC 5389) with no attributes."""
    return struct.pack("!HHI12s", 0x0001, 0, STUN_MAGIC_COOKIE, transaction_id)


def parse_stun_response(data: bytes, transaction_id: bytes) -> tuple[str, int] | None:
    """Extract the mapped (public) address from a STUN Binding Response."""
    if len(data) < 20:
        return None

    msg_type, length, cookie, txid = struct.unpack("!HHI12s", data[:20])
    if msg_type != 0x0101 or txid != transaction_id:
        return None

    mapped = None
    offset = 20
    end = min(len(data), 20 + length)
    while offset + 4 <= end:
        attr_type, attr_len = struct.unpack("!HH", data[offset:offset + 4])
        value = data[offset + 4:offset + 4 + attr_len]
        if attr_type in (0x0020, 0x0001) and len(value) >= 8 and value[1] == 0x01:
            port = struct.unpack("!H", value[2:4])[0]
            (addr,) = struct.unpack("!I", value[4:8])
            if attr_type == 0x0020:
                port ^= STUN_MAGIC_COOKIE >> 16
                addr ^= STUN_MAGIC_COOKIE
            mapped = (str(ipaddress.IPv4Address(addr)), port)
            if attr_type == 0x0020:
                # XOR-MAPPED-ADDRESS wins over the legacy attribute
                break
        offset += 4 + attr_len + (-attr_len % 4)
    return mapped


class SystemProbeGateway:
    """Gateway that runs real probes against the local network stack."""

    def __init__(self, timeout_ms: int = 1000, tcp_timeout: float = 2.0, http_timeout: float = 5.0):
        """Initialize with probe timeouts.

        Args:
            timeout_ms: Per-reply ping timeout in milliseconds
            tcp_timeout: TCP connect timeout in seconds
            http_timeout: Geolocation request timeout in seconds

        Raises:
            ValueError: If a timeout is not positive
            OSError: If no ping command is available
        """
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if tcp_timeout <= 0 or http_timeout <= 0:
            raise ValueError("timeouts must be positive")

        self.timeout_ms = timeout_ms
        self.timeout_seconds = timeout_ms / 1000.0
        self.tcp_timeout = tcp_timeout
        self.http_timeout = http_timeout
        self.system = platform.system()

        if shutil.which("ping") is None:
            raise OSError("ping command not found")

        self._http = requests.Session()

        logger.debug(
            "SystemProbeGateway initialized: timeout_ms=%d, system=%s",
            timeout_ms,
            self.system,
        )

    # -- command helpers -----------------------------------------------------

    def _ping_command(self, host: str, count: int = 1, payload_size: int | None = None) -> list[str]:
        """Build platform-specific ping command."""
        if self.system == "Windows":
            cmd = ["ping", "-n", str(count), "-w", str(self.timeout_ms)]
            if payload_size is not None:
                cmd += ["-f", "-l", str(payload_size)]
        elif self.system == "Linux":
            timeout_secs = max(1, ceil(self.timeout_seconds))
            cmd = ["ping", "-c", str(count), "-W", str(timeout_secs)]
            if payload_size is not None:
                cmd += ["-M", "do", "-s", str(payload_size)]
        else:
            # macOS/BSD: -W has different semantics, rely on subprocess timeout
            cmd = ["ping", "-c", str(count)]
            if payload_size is not None:
                cmd += ["-D", "-s", str(payload_size)]
        return cmd + [host]

    def _trace_command(self, host: str) -> list[str]:
        if self.system == "Windows":
            return ["tracert", "-h", str(MAX_TRACE_HOPS), "-w", str(TRACE_WAIT_SECONDS * 1000), "-d", host]
        return ["traceroute", "-m", str(MAX_TRACE_HOPS), "-w", str(TRACE_WAIT_SECONDS), "-q", "1", "-n", host]

    def _run(self, cmd: list[str], timeout: float) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                shell=False,
            )
        except OSError as e:
            raise ProbeError(f"{cmd[0]} unavailable: {e}") from e

    @staticmethod
    def _require_host(host: str) -> str:
        if not host or not host.strip():
            raise ProbeError("Host cannot be empty")
        return host.strip()

    # -- probes --------------------------------------------------------------

    def ping(self, host: str) -> PingResult:
        host = self._require_host(host)
        cmd = self._ping_command(host)
        logger.debug("Executing ping: host=%s", host)

        try:
            result = self._run(cmd, timeout=self.timeout_seconds + 0.5)
        except subprocess.TimeoutExpired:
            logger.debug("Ping timeout: host=%s", host)
            return PingResult(host=host, status="Timeout")

        if result.returncode != 0:
            return PingResult(host=host, status="Timeout")

        latency = parse_ping_latency_ms(result.stdout)
        if latency is None:
            logger.debug(
                "Parse failed: host=%s, output_preview=%s",
                host,
                result.stdout[:100] if result.stdout else "(empty)",
            )
            return PingResult(host=host, status="Timeout")
        return PingResult(host=host, status="Success", latency_ms=latency)

    def jitter_test(self, host: str, sample_count: int) -> JitterResult:
        host = self._require_host(host)
        if sample_count <= 0:
            raise ProbeError("sample_count must be positive")

        cmd = self._ping_command(host, count=sample_count)
        timeout = sample_count * (self.timeout_seconds + 1.0) + 5.0
        logger.debug("Executing jitter test: host=%s, samples=%d", host, sample_count)

        try:
            result = self._run(cmd, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            output = e.stdout.decode() if isinstance(e.stdout, bytes) else (e.stdout or "")
            return summarize_jitter(host, parse_ping_latencies(output), sample_count)

        return summarize_jitter(host, parse_ping_latencies(result.stdout), sample_count)

    def tcp_check(self, host: str, port: int) -> TcpResult:
        host = self._require_host(host)
        start = time.perf_counter()
        try:
            with socket.create_connection((host, port), timeout=self.tcp_timeout):
                elapsed = (time.perf_counter() - start) * 1000
        except OSError as e:
            logger.debug("TCP connect failed: %s:%d (%s)", host, port, e)
            return TcpResult(host=host, port=port, status="Closed")
        return TcpResult(host=host, port=port, status="Open", latency_ms=round(elapsed, 2))

    def mtu_check(self, host: str) -> MtuResult:
        """Find the largest unfragmented ping payload from a fixed ladder of sizes."""
        host = self._require_host(host)
        for size in MTU_PAYLOAD_SIZES:
            cmd = self._ping_command(host, payload_size=size)
            try:
                result = self._run(cmd, timeout=self.timeout_seconds + 1.0)
            except subprocess.TimeoutExpired:
                continue

            output = result.stdout + result.stderr
            fragmented = "fragment" in output.lower() or "too large" in output.lower()
            replied = result.returncode == 0 and parse_ping_latency_ms(output) is not None
            if replied and not fragmented:
                mtu = size + ICMP_HEADER_OVERHEAD
                return MtuResult(host=host, mtu=mtu, status="Pass", details=f"Max: {mtu} bytes")

        return MtuResult(host=host, mtu=0, status="Fail", details="Blocked/Unknown")

    def nat_check(self) -> NatResult:
        server = f"{STUN_SERVER[0]}:{STUN_SERVER[1]}"
        transaction_id = os.urandom(12)
        try:
            addrs = socket.getaddrinfo(STUN_SERVER[0], STUN_SERVER[1], socket.AF_INET, socket.SOCK_DGRAM)
        except socket.gaierror as e:
            return NatResult(nat_type="Error", public_ip="DNS Fail", details=str(e))
        if not addrs:
            return NatResult(nat_type="Error", public_ip="DNS Fail", details="No IP for STUN")

        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
                sock.settimeout(3.0)
                sock.sendto(build_stun_request(transaction_id), addrs[0][4])
                data, _ = sock.recvfrom(2048)
        except OSError as e:
            return NatResult(nat_type="Error", public_ip="N/A", details=str(e))

        mapped = parse_stun_response(data, transaction_id)
        if mapped is None:
            return NatResult(nat_type="Unknown", public_ip="N/A", details="Unparseable STUN response")
        return NatResult(nat_type="Detected", public_ip=f"{mapped[0]}:{mapped[1]}", details=f"Via {server}")

    def _local_ipv4(self) -> str:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            # No packet is sent; connect() only selects the outbound interface
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]

    def _probe_device(self, ip: str) -> LanDevice | None:
        try:
            result = self._run(self._ping_command(ip), timeout=self.timeout_seconds + 0.5)
        except (subprocess.TimeoutExpired, ProbeError):
            return None
        if result.returncode != 0:
            return None

        arp_cmd = ["arp", "-a", ip] if self.system == "Windows" else ["arp", "-n", ip]
        try:
            mac = parse_mac_address(self._run(arp_cmd, timeout=2.0).stdout)
        except (subprocess.TimeoutExpired, ProbeError):
            mac = "Unknown"

        try:
            hostname = socket.gethostbyaddr(ip)[0]
        except OSError:
            hostname = "Unknown"

        return LanDevice(ip=ip, mac=mac, hostname=hostname, status="Online")

    def device_discovery(
        self, on_device: Callable[[LanDevice], None] | None = None, max_workers: int = 50
    ) -> list[LanDevice]:
        """Ping-sweep the local /24 and report every host that answers."""
        try:
            local_ip = self._local_ipv4()
        except OSError as e:
            raise ProbeError(f"No local IPv4 address: {e}") from e

        network = ipaddress.ip_network(f"{local_ip}/24", strict=False)
        candidates = [str(ip) for ip in network.hosts() if str(ip) != local_ip]
        logger.info("Scanning %s (%d hosts)", network, len(candidates))

        devices = []
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(self._probe_device, ip) for ip in candidates]
            for future in as_completed(futures):
                device = future.result()
                if device is None:
                    continue
                devices.append(device)
                if on_device is not None:
                    on_device(device)

        devices.sort(key=lambda d: ipaddress.ip_address(d.ip))
        return devices

    def path_trace(
        self, host: str, on_hop: Callable[[TraceHop], None] | None = None
    ) -> list[TraceHop]:
        """Run traceroute and report hops as their lines are printed."""
        host = self._require_host(host)
        cmd = self._trace_command(host)
        logger.debug("Executing trace: %s", " ".join(cmd))

        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL, text=True)
        except OSError as e:
            raise ProbeError(f"{cmd[0]} unavailable: {e}") from e

        hops = []
        with proc:
            try:
                for line in proc.stdout:
                    hop = parse_trace_line(line)
                    if hop is None:
                        continue
                    hops.append(hop)
                    if on_hop is not None:
                        on_hop(hop)
            except BaseException:
                # Callback aborted the trace (e.g. session cancelled)
                proc.kill()
                raise

        if proc.returncode not in (0, None) and not hops:
            raise ProbeError(f"{cmd[0]} exited with status {proc.returncode}")
        return hops

    def dns_lookup(self, domain: str) -> list[DnsRecord]:
        """Resolve A and AAAA records through the system resolver."""
        domain = self._require_host(domain)
        try:
            infos = socket.getaddrinfo(domain, None, proto=socket.IPPROTO_TCP)
        except socket.gaierror as e:
            logger.debug("DNS lookup failed: domain=%s (%s)", domain, e)
            return []

        records = []
        seen = set()
        for family, _, _, _, sockaddr in infos:
            if family == socket.AF_INET:
                record_type = "A"
            elif family == socket.AF_INET6:
                record_type = "AAAA"
            else:
                continue
            address = sockaddr[0]
            if address in seen:
                continue
            seen.add(address)
            records.append(DnsRecord(record_type=record_type, value=address))
        return records

    def _port_open(self, address: str, port: int) -> bool:
        try:
            with socket.create_connection((address, port), timeout=PORT_SCAN_TIMEOUT):
                return True
        except OSError:
            return False

    def port_scan(
        self,
        host: str,
        start_port: int,
        end_port: int,
        on_port: Callable[[int], None] | None = None,
        max_workers: int = PORT_SCAN_WORKERS,
    ) -> PortScanResult:
        """TCP-connect every port in the inclusive range, reporting open ones as found."""
        host = self._require_host(host)
        if not 1 <= start_port <= end_port <= 65535:
            raise ProbeError(f"Invalid port range: {start_port}-{end_port}")

        try:
            address = socket.getaddrinfo(host, None, socket.AF_INET, socket.SOCK_STREAM)[0][4][0]
        except (socket.gaierror, IndexError) as e:
            raise ProbeError(f"Cannot resolve {host}: {e}") from e

        ports = range(start_port, end_port + 1)
        logger.info("Scanning %s (%s) ports %d-%d", host, address, start_port, end_port)

        start = time.perf_counter()
        found = []
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(self._port_open, address, port): port for port in ports}
            try:
                for future in as_completed(futures):
                    if not future.result():
                        continue
                    port = futures[future]
                    found.append(port)
                    if on_port is not None:
                        on_port(port)
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
        elapsed = int((time.perf_counter() - start) * 1000)

        return PortScanResult(host=host, open_ports=tuple(sorted(found)), scanned_count=len(ports), time_ms=elapsed)

    def throughput_test(self, host: str, port: int, duration_sec: float) -> ThroughputResult:
        """Push zero-filled chunks over one TCP connection for ``duration_sec``."""
        host = self._require_host(host)
        if duration_sec <= 0:
            raise ProbeError("duration_sec must be positive")

        try:
            sock = socket.create_connection((host, port), timeout=self.tcp_timeout)
        except OSError as e:
            logger.debug("Throughput connect failed: %s:%d (%s)", host, port, e)
            return ThroughputResult(bytes_transferred=0, duration_ms=0, mbps=0.0, status=f"Connect Failed: {e}")

        sent = 0
        start = time.perf_counter()
        with sock:
            while time.perf_counter() - start < duration_sec:
                try:
                    sock.sendall(UPLOAD_CHUNK)
                except OSError as e:
                    logger.debug("Throughput send stopped: %s:%d (%s)", host, port, e)
                    break
                sent += len(UPLOAD_CHUNK)
        elapsed = time.perf_counter() - start

        mbps = round(sent * 8 / elapsed / 1_000_000, 2) if elapsed > 0 else 0.0
        return ThroughputResult(
            bytes_transferred=sent,
            duration_ms=int(elapsed * 1000),
            mbps=mbps,
            status="Success",
        )

    def geo_lookup(self, ip: str) -> GeoIp:
        try:
            response = self._http.get(
                GEO_URL.format(ip=ip),
                params={"fields": GEO_FIELDS},
                timeout=self.http_timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (RequestException, ValueError) as e:
            raise ProbeError(f"Geolocation failed for {ip}: {e}") from e

        return GeoIp(
            status=data.get("status", "fail"),
            query=data.get("query", ip),
            city=data.get("city"),
            country=data.get("country"),
            region_name=data.get("regionName"),
            isp=data.get("isp"),
        )

    def system_info(self) -> SystemInfo:
        memory = psutil.virtual_memory()
        return SystemInfo(
            os_name=platform.system() or "Unknown",
            os_version=platform.release() or "Unknown",
            host_name=platform.node() or "Unknown",
            cpu_usage=psutil.cpu_percent(interval=0.1),
            memory_used=memory.used,
            memory_total=memory.total,
        )
