"""Qt model for the diagnostic result log using model/view pattern."""

from PySide6.QtCore import QAbstractTableModel, QModelIndex, Qt
from PySide6.QtGui import QColor

from netcheck.models import Status, TestResultLog

STATUS_COLORS = {
    Status.PASS: QColor("#2e7d32"),
    Status.FAIL: QColor("#c62828"),
    Status.WARN: QColor("#ef6c00"),
}


class ResultLogModel(QAbstractTableModel):
    """Table model for the entries of one diagnostic run.

    Rows are only ever appended while a run is active and the whole table
    is cleared when the next run starts.
    """

    def __init__(self, parent=None):
        super().__init__(parent)
        self._entries: list[TestResultLog] = []
        self._columns = ["Time", "Status", "Target", "Details"]

    def rowCount(self, parent=QModelIndex()):
        if parent.isValid():
            return 0
        return len(self._entries)

    def columnCount(self, parent=QModelIndex()):
        if parent.isValid():
            return 0
        return len(self._columns)

    def data(self, index, role=Qt.DisplayRole):
        if not index.isValid() or not 0 <= index.row() < len(self._entries):
            return None

        entry = self._entries[index.row()]
        col = index.column()

        if role == Qt.DisplayRole:
            if col == 0:  # Time
                return entry.timestamp.strftime("%H:%M:%S")
            elif col == 1:  # Status
                return entry.status.value
            elif col == 2:  # Target
                return entry.target
            elif col == 3:  # Details
                return entry.details

        elif role == Qt.ForegroundRole and col == 1:
            return STATUS_COLORS.get(entry.status)

        elif role == Qt.TextAlignmentRole:
            if col == 1:
                return Qt.AlignCenter
            return Qt.AlignLeft | Qt.AlignVCenter

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

    def append_entry(self, entry: TestResultLog):
        row = len(self._entries)
        self.beginInsertRows(QModelIndex(), row, row)
        self._entries.append(entry)
        self.endInsertRows()

    def clear(self):
        if not self._entries:
            return

        self.beginRemoveRows(QModelIndex(), 0, len(self._entries) - 1)
        self._entries.clear()
        self.endRemoveRows()

    def entries(self):
        return list(self._entries)

    def bind(self, controller):
        """Follow a DiagnosticController's log as it grows."""
        controller.log_reset.connect(self.clear)
        controller.log_appended.connect(self.append_entry)
