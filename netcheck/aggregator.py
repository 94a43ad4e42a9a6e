"""Per-hop latency/loss aggregation for a live path-discovery session."""

import logging
from collections import deque

from PySide6.QtCore import QObject, QThreadPool, QTimer, Signal

from netcheck.gateway import GeoIp, ProbeGateway, TraceHop, is_real_address
from netcheck.models import HISTORY_SIZE, HopStats
from netcheck.workers import ProbeWorker

logger = logging.getLogger(__name__)


class HopStatsAggregator(QObject):
    """Maintains a continuously refreshed hop table for one traced path.

    Key features:
    - Consumes the path-trace event stream, one record per hop number
    - Geolocates each real hop address once per session
    - Re-probes every real hop once per tick after discovery completes
    - Ticks never overlap: the next one is scheduled only after every probe
      of the current tick has reported back

    All state is owned by the Qt main thread; probes run on the thread pool
    and report back through queued signals. A generation id invalidates
    results from workers dispatched before the last start/stop.
    """

    # Signals
    hop_added = Signal(object)  # HopStats copy
    hops_changed = Signal()  # hop table refreshed (tick or new hop)
    geo_resolved = Signal(str, object)  # (ip, GeoIp)
    error = Signal(str)  # session-level error message
    session_finished = Signal()

    def __init__(
        self,
        gateway: ProbeGateway,
        interval_ms: int = 1000,
        history_size: int = HISTORY_SIZE,
        thread_pool: QThreadPool | None = None,
        parent=None,
    ):
        """Initialize hop statistics aggregator.

        Args:
            gateway: Probe gateway used for tracing, pinging and geolocation
            interval_ms: Delay between the end of one tick and the next
            history_size: Number of latency samples kept per hop
            thread_pool: Pool to run probes on (defaults to the global pool)
            parent: Qt parent object
        """
        super().__init__(parent)

        self.gateway = gateway
        self.interval_ms = interval_ms
        self.history_size = history_size
        self.thread_pool = thread_pool or QThreadPool.globalInstance()

        self._host: str | None = None
        self._hops: list[HopStats] = []
        self._by_number: dict[int, HopStats] = {}
        self._geo: dict[str, GeoIp] = {}
        self._geo_pending: set[str] = set()

        self._running = False
        self._discovering = False
        self._generation_id = 0
        self._pending_probes = 0
        self._ticks = 0

        self._trace_worker: ProbeWorker | None = None
        self._workers: dict = {}

        # Single-shot timer: re-armed only once a tick has fully completed
        self.timer = QTimer(self)
        self.timer.setSingleShot(True)
        self.timer.timeout.connect(self._run_tick)

    # -- snapshots -----------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_discovering(self) -> bool:
        return self._discovering

    @property
    def host(self) -> str | None:
        return self._host

    @property
    def tick_count(self) -> int:
        """Number of refresh ticks completed in the current session."""
        return self._ticks

    def snapshot(self) -> list[HopStats]:
        """Return copies of all hop records, ascending by hop number."""
        return [hop.copy() for hop in self._hops]

    def geo_info(self) -> dict[str, GeoIp]:
        return dict(self._geo)

    # -- lifecycle -----------------------------------------------------------

    def start(self, host: str) -> bool:
        """Start a new session tracing ``host``.

        Returns:
            False if a session is already running (the request is ignored)
        """
        host = host.strip()
        if not host:
            raise ValueError("Host cannot be empty")
        if self._running:
            logger.debug("Start ignored: session already running for %s", self._host)
            return False

        self._generation_id += 1
        self._host = host
        self._hops.clear()
        self._by_number.clear()
        self._geo.clear()
        self._geo_pending.clear()
        self._pending_probes = 0
        self._ticks = 0
        self._running = True
        self._discovering = True
        self.hops_changed.emit()

        tag = ("trace", self._generation_id)
        worker = ProbeWorker(lambda on_hop: self.gateway.path_trace(host, on_hop), tag, streaming=True)
        worker.signals.progress.connect(self._on_discovery_event)
        worker.signals.result.connect(self._on_trace_complete)
        worker.signals.error.connect(self._on_trace_error)
        worker.signals.finished.connect(self._on_worker_finished)
        self._trace_worker = worker
        self._workers[tag] = worker
        self.thread_pool.start(worker)

        logger.info("Trace session started: host=%s, generation_id=%d", host, self._generation_id)
        return True

    def stop(self):
        """Stop the session; in-flight probes finish but are ignored."""
        if not self._running:
            return

        self._running = False
        self._generation_id += 1  # Invalidate in-flight workers
        self.timer.stop()
        self._unsubscribe()
        self._pending_probes = 0
        logger.info("Trace session stopped: host=%s (generation_id=%d)", self._host, self._generation_id)
        self.session_finished.emit()

    def _unsubscribe(self):
        """Detach from the discovery stream of the current trace."""
        self._discovering = False
        worker = self._trace_worker
        if worker is None:
            return
        self._trace_worker = None
        worker.cancel()
        try:
            worker.signals.progress.disconnect(self._on_discovery_event)
        except (RuntimeError, TypeError):
            # Already disconnected
            pass

    # -- discovery stream ----------------------------------------------------

    def _is_current(self, tag) -> bool:
        return self._running and tag[1] == self._generation_id

    def _on_discovery_event(self, event: TraceHop, tag):
        if not self._is_current(tag):
            return
        if self._insert_hop(event.hop, event.ip):
            self.hops_changed.emit()

    def _insert_hop(self, number: int, ip: str) -> bool:
        """Add a hop record unless one already exists for ``number``."""
        if number in self._by_number:
            return False

        stats = HopStats(hop=number, ip=ip, history=deque(maxlen=self.history_size))
        self._by_number[number] = stats
        self._hops.append(stats)
        self._hops.sort(key=lambda h: h.hop)
        logger.debug("Hop discovered: hop=%d, ip=%s", number, ip)

        self._lookup_geo(ip)
        self.hop_added.emit(stats.copy())
        return True

    def _lookup_geo(self, ip: str):
        if not is_real_address(ip) or ip in self._geo or ip in self._geo_pending:
            return

        self._geo_pending.add(ip)
        tag = ("geo", self._generation_id, ip)
        worker = ProbeWorker(lambda: self.gateway.geo_lookup(ip), tag)
        worker.signals.result.connect(self._on_geo_result)
        worker.signals.error.connect(self._on_geo_error)
        worker.signals.finished.connect(self._on_worker_finished)
        self._workers[tag] = worker
        self.thread_pool.start(worker)

    def _on_geo_result(self, geo: GeoIp, tag):
        if not self._is_current(tag):
            return
        ip = tag[2]
        self._geo_pending.discard(ip)
        self._geo[ip] = geo
        self.geo_resolved.emit(ip, geo)

    def _on_geo_error(self, message: str, tag):
        if not self._is_current(tag):
            return
        self._geo_pending.discard(tag[2])
        logger.warning("Geolocation failed: ip=%s, error=%s", tag[2], message)

    def _on_trace_complete(self, hops, tag):
        if not self._is_current(tag):
            return

        added = False
        for hop in hops or ():
            added = self._insert_hop(hop.hop, hop.ip) or added
        if added:
            self.hops_changed.emit()

        self._unsubscribe()
        logger.info("Path discovery complete: host=%s, hops=%d", self._host, len(self._hops))
        self._schedule_tick()

    def _on_trace_error(self, message: str, tag):
        if not self._is_current(tag):
            return
        logger.error("Path discovery failed: host=%s, error=%s", self._host, message)
        self.error.emit(message)
        self.stop()

    # -- refresh loop --------------------------------------------------------

    def _schedule_tick(self):
        if self._running and self._hops:
            self.timer.start(self.interval_ms)

    def _run_tick(self):
        """Probe every real hop once; the batch is joined before rescheduling."""
        if not self._running:
            return

        targets = [hop for hop in self._hops if is_real_address(hop.ip)]
        if not targets:
            self._schedule_tick()
            return

        self._pending_probes = len(targets)
        for hop in targets:
            tag = ("ping", self._generation_id, hop.hop)
            worker = ProbeWorker(lambda ip=hop.ip: self.gateway.ping(ip), tag)
            worker.signals.result.connect(self._on_ping_result)
            worker.signals.error.connect(self._on_ping_error)
            worker.signals.finished.connect(self._on_ping_finished)
            self._workers[tag] = worker
            self.thread_pool.start(worker)

        logger.debug("Tick dispatched: probes=%d", len(targets))

    def _on_ping_result(self, result, tag):
        if not self._is_current(tag):
            return
        stats = self._by_number.get(tag[2])
        if stats is None:
            return
        stats.record(result.latency_ms)

    def _on_ping_error(self, message: str, tag):
        if not self._is_current(tag):
            return
        # Not counted as a loss: no response was classified
        logger.warning("Hop probe failed: hop=%d, error=%s", tag[2], message)

    def _on_ping_finished(self, tag):
        self._workers.pop(tag, None)
        if not self._is_current(tag):
            return

        self._pending_probes -= 1
        if self._pending_probes > 0:
            return

        self._ticks += 1
        self.hops_changed.emit()
        self._schedule_tick()

    def _on_worker_finished(self, tag):
        self._workers.pop(tag, None)
