"""Data models for netcheck diagnostic runs, reports and hop statistics."""

import uuid
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

HISTORY_SIZE = 20


class ProbeKind(str, Enum):
    """Kind of probe that produced a log entry."""

    PING = "PING"
    TCP = "TCP"
    JITTER = "JITTER"
    MTU = "MTU"
    NAT = "NAT"
    DNS = "DNS"
    TRACE = "TRACE"
    SCAN = "SCAN"
    SPEED = "SPEED"


class Status(str, Enum):
    """Classification of a single log entry."""

    PASS = "PASS"
    FAIL = "FAIL"
    WARN = "WARN"


def new_id() -> str:
    """Return an identifier that is unique for the lifetime of the process."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class TestResultLog:
    """One classified line of a diagnostic run."""

    __test__ = False  # not a pytest test class

    target: str
    kind: ProbeKind
    status: Status
    details: str
    latency_ms: float | None = None
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ReportSummary:
    """PASS/FAIL/WARN counts of a saved report."""

    passed: int = 0
    failed: int = 0
    warned: int = 0

    @classmethod
    def from_log(cls, log) -> "ReportSummary":
        counts = {Status.PASS: 0, Status.FAIL: 0, Status.WARN: 0}
        for entry in log:
            counts[entry.status] += 1
        return cls(
            passed=counts[Status.PASS],
            failed=counts[Status.FAIL],
            warned=counts[Status.WARN],
        )


@dataclass(frozen=True)
class SavedReport:
    """Immutable snapshot of a finished run."""

    profile_name: str
    logs: tuple[TestResultLog, ...]
    summary: ReportSummary
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class LiveMetrics:
    """Live gauges updated by the connectivity sweep (None until measured)."""

    latency_ms: float | None = None
    jitter_ms: float | None = None
    loss_percent: float | None = None


@dataclass(frozen=True)
class HistorySample:
    """A single point of a hop's latency history."""

    label: str
    latency_ms: float


@dataclass
class HopStats:
    """Running latency/loss statistics for one hop of a traced path.

    A timeout counts as a lost probe and contributes a 0 ms sample to
    ``last``, ``avg`` and the history, but never to ``best``.
    """

    hop: int
    ip: str
    sent: int = 0
    lost: int = 0
    loss_pct: float = 0.0
    last: float = 0.0
    best: float | None = None
    worst: float = 0.0
    avg: float = 0.0
    history: deque = field(default_factory=lambda: deque(maxlen=HISTORY_SIZE))

    def record(self, latency_ms: float | None, label: str | None = None) -> None:
        """Fold one probe result into the statistics.

        Args:
            latency_ms: Measured round trip, or None when the probe timed out
            label: History label (defaults to the current wall-clock time)
        """
        sent_prev = self.sent
        self.sent = sent_prev + 1

        if latency_ms is None:
            self.lost += 1
            measured = 0.0
        else:
            measured = float(latency_ms)
            if self.best is None or measured < self.best:
                self.best = measured

        self.last = measured
        self.loss_pct = self.lost / self.sent * 100
        self.worst = max(self.worst, measured)

        if sent_prev == 0:
            self.avg = measured
        else:
            self.avg = (self.avg * sent_prev + measured) / self.sent

        if label is None:
            label = datetime.now().strftime("%H:%M:%S")
        self.history.append(HistorySample(label=label, latency_ms=measured))

    def copy(self) -> "HopStats":
        """Return a detached copy safe to hand to observers."""
        return replace(self, history=deque(self.history, maxlen=self.history.maxlen))
