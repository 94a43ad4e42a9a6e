"""Qt model for the live hop statistics table."""

from PySide6.QtCore import QAbstractTableModel, QModelIndex, Qt

from netcheck.gateway import GeoIp, is_real_address
from netcheck.models import HopStats


def format_location(geo: GeoIp | None) -> str:
    """Render a geolocation as "City, Country (ISP)", or "--" when unknown."""
    if geo is None or geo.status != "success":
        return "--"
    place = ", ".join(part for part in (geo.city, geo.country) if part)
    if geo.isp:
        return f"{place} ({geo.isp})" if place else geo.isp
    return place or "--"


class HopTableModel(QAbstractTableModel):
    """Table model mirroring a HopStatsAggregator snapshot.

    The aggregator emits a change signal once per tick, so the model is
    simply reset from a fresh snapshot rather than diffed row by row.
    """

    def __init__(self, parent=None):
        super().__init__(parent)
        self._hops: list[HopStats] = []
        self._geo: dict[str, GeoIp] = {}
        self._aggregator = None
        self._columns = ["#", "Host/IP", "Location/ISP", "Loss%", "Avg", "Best", "Worst"]
        self._dash = "--"

    def rowCount(self, parent=QModelIndex()):
        if parent.isValid():
            return 0
        return len(self._hops)

    def columnCount(self, parent=QModelIndex()):
        if parent.isValid():
            return 0
        return len(self._columns)

    def data(self, index, role=Qt.DisplayRole):
        if not index.isValid() or not 0 <= index.row() < len(self._hops):
            return None

        hop = self._hops[index.row()]
        col = index.column()

        if role == Qt.DisplayRole:
            if col == 0:
                return str(hop.hop)
            elif col == 1:
                return hop.ip
            elif col == 2:
                return format_location(self._geo.get(hop.ip))
            elif col == 3:
                return f"{hop.loss_pct:.1f}"
            elif col == 4:
                return f"{hop.avg:.1f}" if hop.sent else self._dash
            elif col == 5:
                # No best latency until the hop has answered at least once
                return self._dash if hop.best is None else f"{hop.best:.1f}"
            elif col == 6:
                return f"{hop.worst:.1f}" if hop.sent else self._dash

        elif role == Qt.TextAlignmentRole:
            if col >= 3:
                return Qt.AlignRight | Qt.AlignVCenter
            return Qt.AlignLeft | Qt.AlignVCenter

        elif role == Qt.ToolTipRole and col == 1 and not is_real_address(hop.ip):
            return "No response from this hop"

        return None

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if role == Qt.DisplayRole and orientation == Qt.Horizontal:
            if 0 <= section < len(self._columns):
                return self._columns[section]
        return None

    def flags(self, index):
        if not index.isValid():
            return Qt.NoItemFlags
        return Qt.ItemIsEnabled | Qt.ItemIsSelectable

    def set_hops(self, hops):
        self.beginResetModel()
        self._hops = list(hops)
        self.endResetModel()

    def set_geo(self, ip: str, geo: GeoIp):
        self._geo[ip] = geo
        for row, hop in enumerate(self._hops):
            if hop.ip == ip:
                cell = self.index(row, 2)
                self.dataChanged.emit(cell, cell, [Qt.DisplayRole])

    def bind(self, aggregator):
        """Follow a HopStatsAggregator session."""
        self._aggregator = aggregator
        aggregator.hops_changed.connect(self.refresh)
        aggregator.geo_resolved.connect(self.set_geo)

    def refresh(self):
        if self._aggregator is None:
            return
        hops = self._aggregator.snapshot()
        if not hops:
            # New session
            self._geo.clear()
        self.set_hops(hops)
