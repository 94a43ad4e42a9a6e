"""Unit tests for ping and traceroute output parsing (pure functions).

No subprocess calls are made; every case feeds captured command output
straight into the parsers.
"""

import pytest

from netcheck.gateway import TIMEOUT_ADDRESS
from netcheck.gateway_system import (
    parse_mac_address,
    parse_ping_latencies,
    parse_ping_latency_ms,
    parse_trace_line,
    summarize_jitter,
)

LINUX_RUN = """PING 8.8.8.8 (8.8.8.8) 56(84) bytes of data.
64 bytes from 8.8.8.8: icmp_seq=1 ttl=117 time=10.0 ms
64 bytes from 8.8.8.8: icmp_seq=2 ttl=117 time=14.0 ms
64 bytes from 8.8.8.8: icmp_seq=4 ttl=117 time=12.0 ms

--- 8.8.8.8 ping statistics ---
4 packets transmitted, 3 received, 25% packet loss, time 3004ms
rtt min/avg/max/mdev = 10.000/12.000/14.000/1.633 ms
"""

WINDOWS_RUN = """
Pinging 1.1.1.1 with 32 bytes of data:
Reply from 1.1.1.1: bytes=32 time=9ms TTL=57
Request timed out.
Reply from 1.1.1.1: bytes=32 time<1ms TTL=57

Ping statistics for 1.1.1.1:
    Packets: Sent = 3, Received = 2, Lost = 1 (33% loss),
"""


class TestParsePingLatency:
    """Single-reply latency parsing across platforms."""

    def test_linux_standard_format(self):
        output = "64 bytes from example.com: icmp_seq=1 ttl=64 time=12.3 ms"
        assert parse_ping_latency_ms(output) == 12.3

    def test_windows_standard_format(self):
        output = "Reply from 142.250.185.46: bytes=32 time=15ms TTL=117"
        assert parse_ping_latency_ms(output) == 15.0

    def test_windows_less_than(self):
        # Interpreted as midpoint: 10/2 = 5.0
        assert parse_ping_latency_ms("Reply from 192.168.1.1: bytes=32 time<10ms TTL=64") == 5.0
        assert parse_ping_latency_ms("time<1ms") == 0.5

    def test_whitespace_and_case(self):
        assert parse_ping_latency_ms("time = 25 ms") == 25.0
        assert parse_ping_latency_ms("TIME=15.5 MS") == 15.5
        assert parse_ping_latency_ms("time=\t12\tms") == 12.0

    def test_first_match_wins(self):
        assert parse_ping_latency_ms("time=10 ms, time=20 ms") == 10.0

    @pytest.mark.parametrize(
        "output",
        [
            "",
            None,
            "Request timed out.",
            "time=12.3",
            "time=12.3.4 ms",
            "time=-5 ms",
            "The time is 12:30 PM, time elapsed: 5 seconds",
        ],
    )
    def test_unparseable_returns_none(self, output):
        assert parse_ping_latency_ms(output) is None


class TestParsePingLatencies:
    def test_linux_multi_packet(self):
        # The rtt summary line carries no "time=" token
        assert parse_ping_latencies(LINUX_RUN) == [10.0, 14.0, 12.0]

    def test_windows_multi_packet(self):
        assert parse_ping_latencies(WINDOWS_RUN) == [9.0, 0.5]

    def test_empty(self):
        assert parse_ping_latencies("") == []


class TestSummarizeJitter:
    def test_statistics(self):
        result = summarize_jitter("8.8.8.8", [10.0, 14.0, 12.0], 4)

        assert result.avg_latency == 12.0
        assert result.jitter == pytest.approx(1.63, abs=0.01)
        assert result.packet_loss == 25.0
        assert result.details.startswith("Recv: 3/4")

    def test_nothing_received(self):
        result = summarize_jitter("8.8.8.8", [], 20)
        assert result.packet_loss == 100.0
        assert result.details == "100% Packet Loss"

    def test_steady_latency_has_no_jitter(self):
        assert summarize_jitter("h", [7.0] * 5, 5).jitter == 0.0


class TestParseTraceLine:
    def test_linux_hop(self):
        hop = parse_trace_line(" 3  10.20.30.1  4.512 ms  4.498 ms  4.470 ms")
        assert (hop.hop, hop.ip, hop.latency_ms, hop.status) == (3, "10.20.30.1", 4.512, "Success")

    def test_linux_silent_hop(self):
        hop = parse_trace_line(" 5  * * *")
        assert hop.hop == 5
        assert hop.ip == TIMEOUT_ADDRESS
        assert hop.latency_ms is None
        assert hop.status == "Timeout"

    def test_linux_partial_reply(self):
        hop = parse_trace_line(" 6  * 72.14.233.8  11.2 ms *")
        assert hop.ip == "72.14.233.8"
        assert hop.latency_ms == 11.2

    def test_windows_hop(self):
        hop = parse_trace_line("  1    <1 ms    <1 ms    <1 ms  192.168.1.1")
        assert (hop.hop, hop.ip, hop.latency_ms) == (1, "192.168.1.1", 0.5)

    def test_windows_timeout(self):
        hop = parse_trace_line("  2     *        *        *     Request timed out.")
        assert hop.ip == TIMEOUT_ADDRESS

    @pytest.mark.parametrize(
        "line",
        [
            "traceroute to 8.8.8.8 (8.8.8.8), 15 hops max, 60 byte packets",
            "Tracing route to dns.google [8.8.8.8]",
            "over a maximum of 15 hops:",
            "Trace complete.",
            "",
        ],
    )
    def test_non_hop_lines_ignored(self, line):
        assert parse_trace_line(line) is None


class TestParseMacAddress:
    def test_linux_arp(self):
        output = "Address  HWtype  HWaddress           Flags Mask  Iface\n192.168.1.1  ether   00:11:22:AA:BB:CC   C   eth0"
        assert parse_mac_address(output) == "00:11:22:aa:bb:cc"

    def test_windows_arp(self):
        output = "  192.168.1.1          00-11-22-aa-bb-cc     dynamic"
        assert parse_mac_address(output) == "00:11:22:aa:bb:cc"

    def test_no_entry(self):
        assert parse_mac_address("192.168.1.9 -- no entry") == "Unknown"
