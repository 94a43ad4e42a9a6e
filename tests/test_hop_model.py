"""Tests for HopTableModel."""

from PySide6.QtCore import Qt

from netcheck.aggregator import HopStatsAggregator
from netcheck.gateway import TIMEOUT_ADDRESS, GeoIp
from netcheck.models import HopStats
from netcheck.ui.hop_model import HopTableModel, format_location


def display(model, row, col):
    return model.data(model.index(row, col), Qt.DisplayRole)


class TestFormatLocation:
    def test_full(self):
        geo = GeoIp("success", "8.8.8.8", "Mountain View", "United States", "CA", "Google")
        assert format_location(geo) == "Mountain View, United States (Google)"

    def test_missing_or_failed(self):
        assert format_location(None) == "--"
        assert format_location(GeoIp("fail", "10.0.0.1")) == "--"

    def test_isp_only(self):
        assert format_location(GeoIp("success", "1.1.1.1", isp="Cloudflare")) == "Cloudflare"


class TestHopTableModel:
    def test_column_headers(self):
        model = HopTableModel()
        headers = [model.headerData(i, Qt.Horizontal, Qt.DisplayRole) for i in range(model.columnCount())]
        assert headers == ["#", "Host/IP", "Location/ISP", "Loss%", "Avg", "Best", "Worst"]

    def test_unprobed_hop_shows_dashes(self):
        model = HopTableModel()
        model.set_hops([HopStats(hop=1, ip="10.0.0.1")])

        assert display(model, 0, 0) == "1"
        assert display(model, 0, 3) == "0.0"
        assert display(model, 0, 4) == "--"
        assert display(model, 0, 5) == "--"

    def test_stats_formatting(self):
        stats = HopStats(hop=2, ip="10.0.0.2")
        stats.record(10.0)
        stats.record(None)
        model = HopTableModel()
        model.set_hops([stats])

        assert display(model, 0, 3) == "50.0"
        assert display(model, 0, 4) == "5.0"
        assert display(model, 0, 5) == "10.0"
        assert display(model, 0, 6) == "10.0"

    def test_best_dash_until_first_reply(self):
        stats = HopStats(hop=2, ip="10.0.0.2")
        stats.record(None)
        model = HopTableModel()
        model.set_hops([stats])
        assert display(model, 0, 5) == "--"

    def test_timeout_hop_tooltip(self):
        model = HopTableModel()
        model.set_hops([HopStats(hop=4, ip=TIMEOUT_ADDRESS)])
        assert model.data(model.index(0, 1), Qt.ToolTipRole) == "No response from this hop"

    def test_set_geo(self):
        model = HopTableModel()
        model.set_hops([HopStats(hop=1, ip="8.8.8.8")])
        changed = []
        model.dataChanged.connect(lambda top, bottom, roles: changed.append(top.row()))

        model.set_geo("8.8.8.8", GeoIp("success", "8.8.8.8", "Mountain View", "United States", isp="Google"))

        assert changed == [0]
        assert display(model, 0, 2) == "Mountain View, United States (Google)"

    def test_follows_aggregator(self, qapp, gateway, wait_until):
        aggregator = HopStatsAggregator(gateway, interval_ms=10)
        model = HopTableModel()
        model.bind(aggregator)

        aggregator.start("8.8.8.8")
        try:
            assert wait_until(lambda: aggregator.tick_count >= 1)
            assert wait_until(lambda: display(model, 3, 2) != "--")
            assert model.rowCount() == 4
            assert display(model, 3, 1) == "8.8.8.8"
            assert display(model, 3, 2) == "Mountain View, United States (Google)"
        finally:
            aggregator.stop()
