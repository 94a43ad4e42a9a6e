"""Pass/fail/warn rules applied to probe results during a diagnostic run."""

from typing import NamedTuple

from netcheck.gateway import (
    DnsRecord,
    JitterResult,
    MtuResult,
    NatResult,
    PortScanResult,
    TcpResult,
    ThroughputResult,
)
from netcheck.models import Status
from netcheck.profiles import MediaQualityThresholds

DEFAULT_JITTER_LIMIT_MS = 50.0
DEFAULT_LOSS_LIMIT_PERCENT = 5.0

# Self plus the gateway; anything beyond that breaks isolation
ISOLATION_DEVICE_ALLOWANCE = 2

FAILED_NAT_TYPES = ("Unknown", "Error")


class Verdict(NamedTuple):
    status: Status
    details: str
    latency_ms: float | None = None


def _fmt(value: float) -> str:
    """Render a number without a trailing '.0' for whole values."""
    return f"{value:g}"


def media_limits(thresholds: MediaQualityThresholds | None) -> tuple[float, float]:
    """Resolve the (jitter, loss) limits for a profile.

    Fields left unset by the profile fall back to the defaults.
    """
    jitter = DEFAULT_JITTER_LIMIT_MS
    loss = DEFAULT_LOSS_LIMIT_PERCENT
    if thresholds is not None:
        if thresholds.jitter_ms is not None:
            jitter = float(thresholds.jitter_ms)
        if thresholds.packet_loss_percent is not None:
            loss = float(thresholds.packet_loss_percent)
    return jitter, loss


def classify_nat(result: NatResult) -> Verdict:
    """FAIL when the NAT type could not be determined, PASS otherwise."""
    nat_type = (result.nat_type or "").strip()
    if not nat_type or nat_type in FAILED_NAT_TYPES:
        status = Status.FAIL
    else:
        status = Status.PASS
    return Verdict(status, f"{result.nat_type}: {result.public_ip}")


def classify_jitter(
    result: JitterResult, thresholds: MediaQualityThresholds | None = None
) -> Verdict:
    """PASS when both loss and jitter stay strictly below their limits."""
    jitter_limit, loss_limit = media_limits(thresholds)
    ok = result.packet_loss < loss_limit and result.jitter < jitter_limit
    details = (
        f"Avg: {_fmt(result.avg_latency)}ms, "
        f"Jitter: {_fmt(result.jitter)}ms, "
        f"Loss: {_fmt(result.packet_loss)}%"
    )
    return Verdict(Status.PASS if ok else Status.FAIL, details, result.avg_latency)


def classify_tcp(result: TcpResult) -> Verdict:
    if result.status == "Open":
        latency = "?" if result.latency_ms is None else _fmt(result.latency_ms)
        return Verdict(Status.PASS, f"Open ({latency}ms)", result.latency_ms)
    return Verdict(Status.FAIL, "Closed", result.latency_ms)


def classify_isolation(devices) -> Verdict:
    count = len(devices)
    if count > ISOLATION_DEVICE_ALLOWANCE:
        return Verdict(Status.WARN, f"Isolation Fail: {count} Active Devices Found")
    return Verdict(Status.PASS, "Isolation Verified (Minimal Traffic)")


def classify_mtu(result: MtuResult) -> Verdict:
    status = Status.PASS if result.status == "Pass" else Status.WARN
    return Verdict(status, result.details)


def classify_dns(records: list[DnsRecord]) -> Verdict:
    if not records:
        return Verdict(Status.FAIL, "No records")
    return Verdict(Status.PASS, ", ".join(f"{r.record_type} {r.value}" for r in records))


def classify_port_scan(result: PortScanResult) -> Verdict:
    """WARN when nothing in the scanned range accepted a connection."""
    if not result.open_ports:
        return Verdict(Status.WARN, f"No open ports ({result.scanned_count} scanned)")
    ports = ", ".join(str(p) for p in result.open_ports)
    return Verdict(Status.PASS, f"Open: {ports} ({result.scanned_count} scanned)")


def classify_throughput(result: ThroughputResult, min_bitrate_kbps: int | None = None) -> Verdict:
    """FAIL when the upload could not start or fell below ``min_bitrate_kbps``."""
    if result.status != "Success":
        return Verdict(Status.FAIL, result.status)

    details = f"{_fmt(result.mbps)} Mbps ({result.bytes_transferred} bytes in {result.duration_ms}ms)"
    if min_bitrate_kbps is not None and result.mbps * 1000 < min_bitrate_kbps:
        return Verdict(Status.FAIL, f"{details}, below {min_bitrate_kbps} kbps")
    return Verdict(Status.PASS, details)
