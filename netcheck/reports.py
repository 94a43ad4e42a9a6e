"""Saved report assembly and persistence."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from PySide6.QtCore import QSettings

from netcheck.models import ProbeKind, ReportSummary, SavedReport, Status, TestResultLog

logger = logging.getLogger(__name__)

REPORTS_KEY = "net_reports"
ORGANIZATION = "netcheck"
APPLICATION = "netcheck"


def _serialize_entry(entry: TestResultLog) -> dict[str, Any]:
    return {
        "id": entry.id,
        "timestamp": entry.timestamp.isoformat(),
        "target": entry.target,
        "type": entry.kind.value,
        "status": entry.status.value,
        "details": entry.details,
        "latency": entry.latency_ms,
    }


def _deserialize_entry(data: dict[str, Any]) -> TestResultLog:
    return TestResultLog(
        id=data["id"],
        timestamp=datetime.fromisoformat(data["timestamp"]),
        target=data["target"],
        kind=ProbeKind(data["type"]),
        status=Status(data["status"]),
        details=data["details"],
        latency_ms=data.get("latency"),
    )


def serialize_report(report: SavedReport) -> dict[str, Any]:
    """Serialize a SavedReport to a JSON-compatible dictionary."""
    return {
        "id": report.id,
        "timestamp": report.timestamp.isoformat(),
        "profileName": report.profile_name,
        "logs": [_serialize_entry(entry) for entry in report.logs],
        "summary": {
            "pass": report.summary.passed,
            "fail": report.summary.failed,
            "warn": report.summary.warned,
        },
    }


def deserialize_report(data: dict[str, Any]) -> SavedReport:
    summary = data.get("summary", {})
    return SavedReport(
        id=data["id"],
        timestamp=datetime.fromisoformat(data["timestamp"]),
        profile_name=data["profileName"],
        logs=tuple(_deserialize_entry(entry) for entry in data.get("logs", [])),
        summary=ReportSummary(
            passed=summary.get("pass", 0),
            failed=summary.get("fail", 0),
            warned=summary.get("warn", 0),
        ),
    )


class ReportStore:
    """Keeps the report list under one key of a QSettings store.

    The whole list is serialized as JSON text and rewritten on every change.
    """

    def __init__(self, settings: QSettings | None = None, key: str = REPORTS_KEY):
        if settings is None:
            settings = QSettings(QSettings.IniFormat, QSettings.UserScope, ORGANIZATION, APPLICATION)
        self.settings = settings
        self.key = key

    @classmethod
    def at_path(cls, filepath: Path | str) -> "ReportStore":
        """Create a store backed by an explicit INI file."""
        return cls(QSettings(str(filepath), QSettings.IniFormat))

    def load(self) -> list[SavedReport]:
        raw = self.settings.value(self.key, "")
        if not raw:
            return []

        try:
            return [deserialize_report(item) for item in json.loads(raw)]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error("Stored reports unreadable, starting empty: key=%s, error=%s", self.key, e)
            return []

    def write(self, reports: list[SavedReport]) -> None:
        self.settings.setValue(self.key, json.dumps([serialize_report(r) for r in reports]))
        self.settings.sync()

    def remove(self) -> None:
        self.settings.remove(self.key)
        self.settings.sync()


class ReportAssembler:
    """Turns finished run logs into saved reports, most recent first."""

    def __init__(self, store: ReportStore | None = None):
        self.store = store or ReportStore()
        self._reports = self.store.load()
        logger.debug("Loaded %d saved reports", len(self._reports))

    def reports(self) -> tuple[SavedReport, ...]:
        return tuple(self._reports)

    def save(self, log, profile_name: str) -> SavedReport | None:
        """Save a finished log as a new report.

        Args:
            log: Sequence of TestResultLog entries, in run order
            profile_name: Display name of the profile that produced the log

        Returns:
            The new SavedReport, or None if the log was empty
        """
        entries = tuple(log)
        if not entries:
            logger.debug("Save skipped: empty log")
            return None

        report = SavedReport(
            profile_name=profile_name,
            logs=entries,
            summary=ReportSummary.from_log(entries),
        )
        updated = [report, *self._reports]
        self.store.write(updated)
        self._reports = updated

        logger.info(
            "Report saved: profile=%s, pass=%d, fail=%d, warn=%d",
            profile_name,
            report.summary.passed,
            report.summary.failed,
            report.summary.warned,
        )
        return report

    def clear(self) -> None:
        """Discard every saved report."""
        self.store.remove()
        self._reports = []
        logger.info("Saved reports cleared")
