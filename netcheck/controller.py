"""Diagnostic controller: walks a vendor profile step by step.

The controller is a small state machine driven by the Qt event loop. Each
step dispatches exactly one probe to the thread pool and advances when the
worker reports back, so probes never overlap and log order always matches
the profile's declaration order.
"""

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from PySide6.QtCore import QObject, QThreadPool, Signal

from netcheck.classify import (
    Verdict,
    classify_isolation,
    classify_jitter,
    classify_mtu,
    classify_nat,
    classify_tcp,
)
from netcheck.gateway import ProbeGateway
from netcheck.models import LiveMetrics, ProbeKind, Status, TestResultLog
from netcheck.profiles import Protocol, VendorProfile
from netcheck.workers import ProbeWorker

logger = logging.getLogger(__name__)

JITTER_SAMPLE_COUNT = 20
FALLBACK_MTU_HOST = "8.8.8.8"
SYSTEM_TARGET = "System"


class ControllerState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    NAT_CHECK = "nat_check"
    CONNECTIVITY_SWEEP = "connectivity_sweep"
    ISOLATION_CHECK = "isolation_check"
    MTU_CHECK = "mtu_check"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class _Step:
    """One probe of the run plan and how to turn its outcome into a log line."""

    state: ControllerState
    kind: ProbeKind
    target: str
    call: Callable[[ProbeGateway], object]
    classify: Callable[[object], Verdict]
    describe_error: Callable[[str], str]
    error_target: str | None = None
    observe: Callable[[object], None] | None = None


class DiagnosticController(QObject):
    """Runs one diagnostic sweep at a time against a vendor profile.

    Observers read progress through the signals below or through the
    snapshot accessors; they never mutate controller state.
    """

    # Signals
    log_appended = Signal(object)  # TestResultLog
    log_reset = Signal()
    metrics_changed = Signal(object)  # LiveMetrics
    state_changed = Signal(object)  # ControllerState
    run_finished = Signal(bool)  # True if the run completed, False on harness error

    def __init__(self, gateway: ProbeGateway, thread_pool: QThreadPool | None = None, parent=None):
        super().__init__(parent)

        self.gateway = gateway
        self.thread_pool = thread_pool or QThreadPool.globalInstance()

        self._log: list[TestResultLog] = []
        self._metrics = LiveMetrics()
        self._state = ControllerState.IDLE
        self._running = False
        self._profile: VendorProfile | None = None

        # Run plan
        self._plan: deque[_Step] = deque()
        self._current: _Step | None = None
        self._current_tag = None
        self._run_id = 0
        self._step_seq = 0

        # Workers are kept referenced until they report completion
        self._workers: dict = {}

    # -- snapshots -----------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def metrics(self) -> LiveMetrics:
        return self._metrics

    @property
    def profile(self) -> VendorProfile | None:
        """Profile of the current or most recent run."""
        return self._profile

    def log(self) -> tuple[TestResultLog, ...]:
        """Return the entries of the current or most recent run, oldest first."""
        return tuple(self._log)

    # -- lifecycle -----------------------------------------------------------

    def start(self, profile: VendorProfile) -> bool:
        """Start a diagnostic run.

        Returns:
            False if a run is already active (the request is ignored)
        """
        if self._running:
            logger.debug("Start ignored: run already active (profile=%s)", self._profile.id)
            return False

        self._running = True
        self._run_id += 1
        self._profile = profile
        logger.info("Diagnostic run started: profile=%s, run_id=%d", profile.id, self._run_id)

        self._set_state(ControllerState.INITIALIZING)
        self._log.clear()
        self.log_reset.emit()
        self._set_metrics(LiveMetrics())
        self._append(SYSTEM_TARGET, ProbeKind.PING, Status.PASS, f"Initializing {profile.name} Protocol...")

        try:
            self._plan = deque(self._build_plan(profile))
            self._advance()
        except Exception as e:
            self._abort(e)
        return True

    def _build_plan(self, profile: VendorProfile) -> list[_Step]:
        """Translate a profile into the ordered list of probes to run."""
        steps = []

        if profile.alg_test_enabled:
            steps.append(
                _Step(
                    state=ControllerState.NAT_CHECK,
                    kind=ProbeKind.NAT,
                    target="STUN Check",
                    call=lambda g: g.nat_check(),
                    classify=classify_nat,
                    describe_error=lambda err: f"STUN Failed: {err}",
                    error_target="STUN",
                )
            )

        thresholds = profile.media_quality_thresholds
        for target in profile.connectivity_targets:
            if target.protocol in (None, Protocol.ICMP, Protocol.UDP):
                steps.append(
                    _Step(
                        state=ControllerState.CONNECTIVITY_SWEEP,
                        kind=ProbeKind.JITTER,
                        target=target.address,
                        call=lambda g, host=target.address: g.jitter_test(host, JITTER_SAMPLE_COUNT),
                        classify=lambda res: classify_jitter(res, thresholds),
                        describe_error=lambda err: f"Error: {err}",
                        observe=self._update_gauges,
                    )
                )
            elif target.protocol == Protocol.TCP:
                for port in target.ports:
                    steps.append(
                        _Step(
                            state=ControllerState.CONNECTIVITY_SWEEP,
                            kind=ProbeKind.TCP,
                            target=f"{target.address}:{port}",
                            call=lambda g, host=target.address, port=port: g.tcp_check(host, port),
                            classify=classify_tcp,
                            describe_error=lambda err: f"Error: {err}",
                        )
                    )
            else:
                raise ValueError(f"Unsupported protocol for {target.address}: {target.protocol!r}")

        if profile.lan_isolation_check:
            steps.append(
                _Step(
                    state=ControllerState.ISOLATION_CHECK,
                    kind=ProbeKind.SCAN,
                    target="LAN",
                    call=lambda g: g.device_discovery(),
                    classify=classify_isolation,
                    describe_error=lambda err: f"Isolation Check Error: {err}",
                )
            )

        if profile.mtu_check:
            targets = profile.connectivity_targets
            mtu_host = targets[0].address if targets else FALLBACK_MTU_HOST
            steps.append(
                _Step(
                    state=ControllerState.MTU_CHECK,
                    kind=ProbeKind.MTU,
                    target=mtu_host,
                    call=lambda g: g.mtu_check(mtu_host),
                    classify=classify_mtu,
                    describe_error=lambda err: f"MTU Error: {err}",
                )
            )

        logger.debug("Run plan built: profile=%s, steps=%d", profile.id, len(steps))
        return steps

    # -- step sequencing -----------------------------------------------------

    def _advance(self):
        """Dispatch the next planned probe, or complete the run."""
        if not self._plan:
            self._complete()
            return

        step = self._plan.popleft()
        self._current = step
        self._step_seq += 1
        tag = (self._run_id, self._step_seq)
        self._current_tag = tag
        self._set_state(step.state)

        worker = ProbeWorker(lambda: step.call(self.gateway), tag)
        worker.signals.result.connect(self._on_step_result)
        worker.signals.error.connect(self._on_step_error)
        worker.signals.finished.connect(self._on_worker_finished)
        self._workers[tag] = worker

        logger.debug("Dispatching %s probe: target=%s, tag=%s", step.kind.value, step.target, tag)
        self.thread_pool.start(worker)

    def _on_step_result(self, value, tag):
        """Classify a probe result and move on to the next step."""
        if tag != self._current_tag or not self._running:
            logger.debug("Ignoring stale step result: tag=%s", tag)
            return

        step = self._current
        try:
            try:
                if step.observe is not None:
                    step.observe(value)
                verdict = step.classify(value)
                target = step.target
            except Exception as e:
                logger.warning("Could not classify %s result for %s: %s", step.kind.value, step.target, e)
                verdict = Verdict(Status.FAIL, step.describe_error(str(e)))
                target = step.error_target or step.target

            self._append(target, step.kind, verdict.status, verdict.details, verdict.latency_ms)
            self._advance()
        except Exception as e:
            self._abort(e)

    def _on_step_error(self, message, tag):
        """Record a failed probe and continue with the next step."""
        if tag != self._current_tag or not self._running:
            logger.debug("Ignoring stale step error: tag=%s", tag)
            return

        step = self._current
        try:
            logger.warning("%s probe failed: target=%s, error=%s", step.kind.value, step.target, message)
            self._append(
                step.error_target or step.target,
                step.kind,
                Status.FAIL,
                step.describe_error(message),
            )
            self._advance()
        except Exception as e:
            self._abort(e)

    def _on_worker_finished(self, tag):
        self._workers.pop(tag, None)

    def _complete(self):
        self._current = None
        self._current_tag = None
        self._set_state(ControllerState.COMPLETED)
        self._append(SYSTEM_TARGET, ProbeKind.PING, Status.PASS, "Diagnostic Cycle Complete.")
        self._finish(True)

    def _abort(self, exc: Exception):
        """Handle an error that escaped step isolation: log once and stop."""
        logger.error("Critical harness error: profile=%s, error=%s", self._profile.id, exc, exc_info=exc)
        self._plan.clear()
        self._current = None
        self._current_tag = None
        self._set_state(ControllerState.FAILED)
        self._append(SYSTEM_TARGET, ProbeKind.PING, Status.FAIL, f"Critical Harness Error: {exc}")
        self._finish(False)

    def _finish(self, completed: bool):
        self._running = False
        self._set_state(ControllerState.IDLE)
        logger.info(
            "Diagnostic run finished: profile=%s, completed=%s, entries=%d",
            self._profile.id,
            completed,
            len(self._log),
        )
        self.run_finished.emit(completed)

    # -- observable state ----------------------------------------------------

    def _append(self, target, kind, status, details, latency_ms=None):
        entry = TestResultLog(
            target=target,
            kind=kind,
            status=status,
            details=details,
            latency_ms=latency_ms,
        )
        self._log.append(entry)
        logger.debug("Log entry: [%s] %s %s: %s", status.value, kind.value, target, details)
        self.log_appended.emit(entry)

    def _update_gauges(self, result):
        self._set_metrics(
            LiveMetrics(
                latency_ms=result.avg_latency,
                jitter_ms=result.jitter,
                loss_percent=result.packet_loss,
            )
        )

    def _set_metrics(self, metrics: LiveMetrics):
        self._metrics = metrics
        self.metrics_changed.emit(metrics)

    def _set_state(self, state: ControllerState):
        if state != self._state:
            logger.debug("Controller state: %s -> %s", self._state.value, state.value)
            self._state = state
            self.state_changed.emit(state)
