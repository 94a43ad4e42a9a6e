"""Tests for result classification rules."""

from netcheck.classify import (
    classify_dns,
    classify_isolation,
    classify_jitter,
    classify_mtu,
    classify_nat,
    classify_port_scan,
    classify_tcp,
    classify_throughput,
    media_limits,
)
from netcheck.gateway import (
    DnsRecord,
    JitterResult,
    LanDevice,
    MtuResult,
    NatResult,
    PortScanResult,
    TcpResult,
    ThroughputResult,
)
from netcheck.models import Status
from netcheck.profiles import MediaQualityThresholds


def devices(n):
    return [LanDevice(f"192.168.1.{i}", "Unknown", "Unknown", "Online") for i in range(n)]


class TestClassifyJitter:
    def test_pass_below_defaults(self):
        verdict = classify_jitter(JitterResult("8.8.8.8", 20.5, 3.0, 0.0))
        assert verdict.status == Status.PASS
        assert verdict.details == "Avg: 20.5ms, Jitter: 3ms, Loss: 0%"
        assert verdict.latency_ms == 20.5

    def test_limits_are_strict(self):
        assert classify_jitter(JitterResult("h", 20.0, 50.0, 0.0)).status == Status.FAIL
        assert classify_jitter(JitterResult("h", 20.0, 1.0, 5.0)).status == Status.FAIL
        assert classify_jitter(JitterResult("h", 20.0, 49.9, 4.9)).status == Status.PASS

    def test_total_loss_fails(self):
        verdict = classify_jitter(JitterResult("h", 0.0, 0.0, 100.0))
        assert verdict.status == Status.FAIL

    def test_profile_thresholds_apply(self):
        thresholds = MediaQualityThresholds(jitter_ms=30, packet_loss_percent=1)
        assert classify_jitter(JitterResult("h", 20.0, 35.0, 0.0), thresholds).status == Status.FAIL
        assert classify_jitter(JitterResult("h", 20.0, 10.0, 2.0), thresholds).status == Status.FAIL
        assert classify_jitter(JitterResult("h", 20.0, 10.0, 0.5), thresholds).status == Status.PASS

    def test_partial_thresholds_fall_back(self):
        assert media_limits(MediaQualityThresholds(jitter_ms=20)) == (20.0, 5.0)
        assert media_limits(None) == (50.0, 5.0)


class TestClassifyTcp:
    def test_open(self):
        verdict = classify_tcp(TcpResult("zoom.us", 443, "Open", 12.0))
        assert verdict.status == Status.PASS
        assert verdict.details == "Open (12ms)"

    def test_closed(self):
        verdict = classify_tcp(TcpResult("zoom.us", 8801, "Closed"))
        assert verdict.status == Status.FAIL
        assert verdict.details == "Closed"


class TestClassifyNat:
    def test_detected_passes(self):
        verdict = classify_nat(NatResult("Detected", "203.0.113.7:40000"))
        assert verdict.status == Status.PASS
        assert verdict.details == "Detected: 203.0.113.7:40000"

    def test_unknown_error_and_empty_fail(self):
        for nat_type in ("Unknown", "Error", "", "  "):
            assert classify_nat(NatResult(nat_type, "N/A")).status == Status.FAIL


class TestClassifyIsolation:
    def test_two_devices_pass(self):
        verdict = classify_isolation(devices(2))
        assert verdict.status == Status.PASS
        assert verdict.details == "Isolation Verified (Minimal Traffic)"

    def test_more_devices_warn(self):
        verdict = classify_isolation(devices(5))
        assert verdict.status == Status.WARN
        assert verdict.details == "Isolation Fail: 5 Active Devices Found"


class TestClassifyMtu:
    def test_pass(self):
        verdict = classify_mtu(MtuResult("8.8.8.8", 1500, "Pass", "Max: 1500 bytes"))
        assert verdict.status == Status.PASS
        assert verdict.details == "Max: 1500 bytes"

    def test_fail_warns(self):
        verdict = classify_mtu(MtuResult("8.8.8.8", 0, "Fail", "Blocked/Unknown"))
        assert verdict.status == Status.WARN


class TestClassifyDns:
    def test_records_pass(self):
        verdict = classify_dns([DnsRecord("A", "93.184.216.34"), DnsRecord("AAAA", "2606:2800:220:1::1")])
        assert verdict.status == Status.PASS
        assert verdict.details == "A 93.184.216.34, AAAA 2606:2800:220:1::1"

    def test_no_records_fail(self):
        verdict = classify_dns([])
        assert verdict.status == Status.FAIL
        assert verdict.details == "No records"


class TestClassifyPortScan:
    def test_open_ports_listed(self):
        verdict = classify_port_scan(PortScanResult("nas.local", (22, 443), 1024, 310))
        assert verdict.status == Status.PASS
        assert verdict.details == "Open: 22, 443 (1024 scanned)"

    def test_nothing_open_warns(self):
        verdict = classify_port_scan(PortScanResult("nas.local", (), 10, 5))
        assert verdict.status == Status.WARN


class TestClassifyThroughput:
    def test_pass_without_minimum(self):
        verdict = classify_throughput(ThroughputResult(5_000_000, 1000, 40.0, "Success"))
        assert verdict.status == Status.PASS
        assert verdict.details.startswith("40 Mbps")

    def test_minimum_bitrate(self):
        result = ThroughputResult(750_000, 1000, 6.0, "Success")
        assert classify_throughput(result, 6000).status == Status.PASS
        assert classify_throughput(result, 6001).status == Status.FAIL

    def test_connect_failure(self):
        verdict = classify_throughput(ThroughputResult(0, 0, 0.0, "Connect Failed: refused"))
        assert verdict.status == Status.FAIL
        assert verdict.details == "Connect Failed: refused"
