"""Vendor profile definitions and the built-in profile catalog."""

from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

DEFAULT_SCHEME_PORTS = {"rtmp": 1935, "rtmps": 443, "http": 80, "https": 443}


class Protocol(str, Enum):
    """Transport a connectivity target is expected to answer on."""

    ICMP = "icmp"
    UDP = "udp"
    TCP = "tcp"


@dataclass(frozen=True)
class ConnectivityTarget:
    """A host the sweep must reach, optionally on specific ports."""

    address: str
    protocol: Protocol | None = None
    ports: tuple[int, ...] = ()
    description: str = ""


@dataclass(frozen=True)
class MediaQualityThresholds:
    """Upper limits a jitter probe must stay below to pass."""

    jitter_ms: float | None = None
    packet_loss_percent: float | None = None


@dataclass(frozen=True)
class UploadStressTest:
    target: str
    duration_sec: int
    min_bitrate_kbps: int


@dataclass(frozen=True)
class VendorProfile:
    """Named bundle of targets, thresholds and enabled checks for one service."""

    id: str
    name: str
    description: str
    connectivity_targets: tuple[ConnectivityTarget, ...] = ()
    media_quality_thresholds: MediaQualityThresholds | None = None
    alg_test_enabled: bool = False
    lan_isolation_check: bool = False
    mtu_check: bool = False
    upload_stress_test: UploadStressTest | None = None
    icon: str | None = None
    test_mode: str = "standard"


PROFILES: tuple[VendorProfile, ...] = (
    VendorProfile(
        id="generic-voip",
        name="General VoIP",
        description="Standard checklist for SIP-based Voice over IP services.",
        icon="Phone",
        connectivity_targets=(
            ConnectivityTarget("8.8.8.8", Protocol.ICMP, description="Public DNS (Connectivity)"),
            ConnectivityTarget("1.1.1.1", Protocol.ICMP, description="Secondary DNS"),
        ),
        alg_test_enabled=True,
        mtu_check=True,
        media_quality_thresholds=MediaQualityThresholds(jitter_ms=30, packet_loss_percent=1),
    ),
    VendorProfile(
        id="zoom",
        name="Zoom",
        description="Zoom Meetings, Webinars, and Zoom Phone (Targeting US Media Blocks).",
        icon="Video",
        connectivity_targets=(
            ConnectivityTarget("zoom.us", Protocol.TCP, (8801, 443), "Signaling / Web"),
            ConnectivityTarget("162.255.37.11", Protocol.UDP, (3478, 8801), "Zoom Media (US West Block)"),
            ConnectivityTarget("64.211.144.11", Protocol.UDP, (3478,), "Zoom Media (US East Block)"),
        ),
        mtu_check=True,
        media_quality_thresholds=MediaQualityThresholds(jitter_ms=30, packet_loss_percent=2),
    ),
    VendorProfile(
        id="ringcentral",
        name="RingCentral",
        description="Unified Communications (Supernet Connectivity).",
        icon="PhoneCall",
        connectivity_targets=(
            ConnectivityTarget("sip.ringcentral.com", Protocol.TCP, (5060, 443), "SIP Signaling"),
            ConnectivityTarget("66.81.240.10", Protocol.UDP, description="Media Supernet (SJC)"),
            ConnectivityTarget("80.81.128.10", Protocol.UDP, description="Media Supernet (IAD)"),
        ),
        alg_test_enabled=True,
        mtu_check=True,
    ),
    VendorProfile(
        id="8x8",
        name="8x8",
        description="Voice, Video, and Contact Center connectivity.",
        icon="PhoneForwarded",
        connectivity_targets=(
            ConnectivityTarget("192.84.16.1", Protocol.TCP, (443, 5060), "Signaling / US Block"),
            ConnectivityTarget("8.28.0.1", Protocol.UDP, description="Global Media Relay"),
        ),
        alg_test_enabled=True,
        mtu_check=True,
    ),
    VendorProfile(
        id="dialpad",
        name="Dialpad",
        description="AI-Powered Customer Intelligence Platform.",
        icon="Mic",
        connectivity_targets=(
            ConnectivityTarget("dialpad.com", Protocol.TCP, (443,), "Web / Signaling"),
            ConnectivityTarget("turn.ubervoip.net", Protocol.UDP, (3478, 443), "TURN / Media Relay"),
            ConnectivityTarget("66.23.129.11", Protocol.UDP, description="Voice Network Block"),
        ),
        alg_test_enabled=True,
        mtu_check=True,
    ),
    VendorProfile(
        id="discord",
        name="Discord",
        description="Voice, Video, and Streaming diagnostics (High UDP Range).",
        icon="Gamepad2",
        connectivity_targets=(
            ConnectivityTarget("gateway.discord.gg", Protocol.TCP, (443,), "Gateway / Text Chat"),
            ConnectivityTarget("162.159.128.233", Protocol.UDP, (50000, 50005), "Voice Region (Sample)"),
        ),
        mtu_check=True,
        media_quality_thresholds=MediaQualityThresholds(jitter_ms=20, packet_loss_percent=0.5),
    ),
    VendorProfile(
        id="twitch",
        name="Twitch Streamer",
        description="Upload stability and ingest server reachability for streamers.",
        icon="Cast",
        connectivity_targets=(
            ConnectivityTarget("live-jfk.twitch.tv", Protocol.TCP, (1935, 443), "Ingest Server (US-East)"),
        ),
        mtu_check=True,
        upload_stress_test=UploadStressTest(
            target="rtmp://live-jfk.twitch.tv/app",
            duration_sec=30,
            min_bitrate_kbps=6000,
        ),
    ),
    VendorProfile(
        id="citrix",
        name="Citrix / VDI",
        description="Remote work connectivity focusing on MTU and reliable transport.",
        icon="Monitor",
        connectivity_targets=(
            ConnectivityTarget("citrix.com", Protocol.TCP, (443, 1494, 2598), "ICA/HDX Control"),
        ),
        mtu_check=True,
    ),
    VendorProfile(
        id="gamer",
        name="Pro Gamer",
        description="Latency stability, packet loss burst analysis, and LAN isolation.",
        icon="Gamepad2",
        connectivity_targets=(
            ConnectivityTarget("1.1.1.1", Protocol.ICMP, description="Public DNS (General Health)"),
            ConnectivityTarget("162.249.72.1", Protocol.ICMP, description="Riot Games (US)"),
            ConnectivityTarget("137.221.106.102", Protocol.ICMP, description="Blizzard (US Central)"),
        ),
        test_mode="continuous_monitoring",
        alg_test_enabled=True,
        lan_isolation_check=True,
        mtu_check=True,
    ),
)


def get_profile(profile_id: str) -> VendorProfile:
    """Look up a built-in profile by id.

    Raises:
        KeyError: If no profile has that id
    """
    for profile in PROFILES:
        if profile.id == profile_id:
            return profile
    raise KeyError(f"Unknown profile: {profile_id}")


def upload_endpoint(stress: UploadStressTest) -> tuple[str, int]:
    """Split an upload target URL such as ``rtmp://host/app`` into (host, port).

    Raises:
        ValueError: If the target has no host or an unknown scheme without a port
    """
    parts = urlsplit(stress.target)
    if not parts.hostname:
        raise ValueError(f"No host in upload target: {stress.target}")
    port = parts.port or DEFAULT_SCHEME_PORTS.get(parts.scheme)
    if port is None:
        raise ValueError(f"No port for upload target: {stress.target}")
    return parts.hostname, port
