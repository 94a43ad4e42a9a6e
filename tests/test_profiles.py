"""Tests for the built-in vendor profile catalog."""

import pytest

from netcheck.profiles import PROFILES, Protocol, UploadStressTest, get_profile, upload_endpoint


class TestProfileCatalog:
    def test_ids_unique(self):
        ids = [p.id for p in PROFILES]
        assert len(ids) == len(set(ids))

    def test_known_profiles_present(self):
        ids = {p.id for p in PROFILES}
        assert {"generic-voip", "zoom", "ringcentral", "8x8", "dialpad", "discord", "twitch", "citrix", "gamer"} <= ids

    def test_get_profile(self):
        assert get_profile("zoom").name == "Zoom"

    def test_get_unknown_profile(self):
        with pytest.raises(KeyError):
            get_profile("nope")

    def test_tcp_targets_have_ports(self):
        for profile in PROFILES:
            for target in profile.connectivity_targets:
                if target.protocol == Protocol.TCP:
                    assert target.ports, f"{profile.id}:{target.address}"

    def test_gamer_profile_checks(self):
        gamer = get_profile("gamer")
        assert gamer.alg_test_enabled
        assert gamer.lan_isolation_check
        assert gamer.mtu_check
        assert gamer.test_mode == "continuous_monitoring"

    def test_twitch_upload_stress_test(self):
        stress = get_profile("twitch").upload_stress_test
        assert stress is not None
        assert stress.min_bitrate_kbps == 6000


class TestUploadEndpoint:
    def test_rtmp_default_port(self):
        stress = get_profile("twitch").upload_stress_test
        assert upload_endpoint(stress) == ("live-jfk.twitch.tv", 1935)

    def test_explicit_port(self):
        assert upload_endpoint(UploadStressTest("rtmps://ingest.example:8443/live", 10, 1000)) == (
            "ingest.example",
            8443,
        )

    @pytest.mark.parametrize("target", ["not a url", "gopher://example.com/app"])
    def test_unusable_target(self, target):
        with pytest.raises(ValueError):
            upload_endpoint(UploadStressTest(target, 10, 1000))
