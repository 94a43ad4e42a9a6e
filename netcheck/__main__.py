"""Entry point for the netcheck command-line tool."""

import argparse
import logging
import sys

from PySide6.QtCore import QCoreApplication, Qt, QTimer

from netcheck.aggregator import HopStatsAggregator
from netcheck.classify import classify_dns, classify_port_scan, classify_throughput
from netcheck.controller import DiagnosticController
from netcheck.fake_gateway import FakeProbeGateway
from netcheck.gateway import ProbeError
from netcheck.logging_config import configure_logging
from netcheck.models import ProbeKind, Status, TestResultLog
from netcheck.profiles import PROFILES, get_profile, upload_endpoint
from netcheck.reports import ReportAssembler, ReportStore
from netcheck.settings import Settings
from netcheck.ui.hop_model import HopTableModel
from netcheck.ui.log_model import ResultLogModel

logger = logging.getLogger(__name__)


def create_gateway(settings: Settings):
    """Select the probe gateway, falling back to simulated probes.

    Returns:
        Tuple of (gateway, fallback message or None)
    """
    if settings.gateway == "fake":
        logger.info("Fake gateway explicitly requested via environment variable")
        return FakeProbeGateway(), None

    # Separate import from instantiation
    SystemProbeGateway = None
    try:
        from netcheck.gateway_system import SystemProbeGateway

        logger.info("SystemProbeGateway module imported successfully")
    except ImportError as e:
        logger.warning("SystemProbeGateway unavailable: %s", e)
        return FakeProbeGateway(), "Using simulated probes (real probes unavailable)"

    try:
        gateway = SystemProbeGateway(timeout_ms=settings.probe_timeout_ms)
    except ValueError as e:
        logger.error("SystemProbeGateway configuration invalid: %s", e)
        return FakeProbeGateway(), "Using simulated probes (configuration error)"
    except PermissionError as e:
        logger.warning("Insufficient permissions for probes: %s", e)
        return FakeProbeGateway(), "Using simulated probes (permission denied)"
    except OSError as e:
        logger.warning("Ping command unavailable: %s", e)
        return FakeProbeGateway(), "Using simulated probes (ping command not available)"

    logger.info("SystemProbeGateway initialized successfully")
    return gateway, None


def create_report_assembler(settings: Settings) -> ReportAssembler:
    if settings.reports_file:
        return ReportAssembler(ReportStore.at_path(settings.reports_file))
    return ReportAssembler()


def print_table(model):
    """Print a Qt table model as aligned plain text."""
    headers = [model.headerData(c, Qt.Horizontal) for c in range(model.columnCount())]
    rows = [
        [model.data(model.index(r, c)) or "" for c in range(model.columnCount())]
        for r in range(model.rowCount())
    ]
    widths = [max(len(str(cell)) for cell in column) for column in zip(headers, *rows)]
    for line in [headers, *rows]:
        print("  ".join(str(cell).ljust(width) for cell, width in zip(line, widths)).rstrip())


def cmd_profiles(args, settings, app) -> int:
    for profile in PROFILES:
        print(f"{profile.id:<14} {profile.name:<24} {profile.description}")
    return 0


def cmd_run(args, settings, app) -> int:
    try:
        profile = get_profile(args.profile)
    except KeyError:
        print(f"Unknown profile: {args.profile}", file=sys.stderr)
        return 2

    gateway, notice = create_gateway(settings)
    if notice:
        print(notice, file=sys.stderr)

    controller = DiagnosticController(gateway)
    model = ResultLogModel()
    model.bind(controller)
    outcome = {}

    def on_finished(completed):
        outcome["completed"] = completed
        app.quit()

    controller.run_finished.connect(on_finished)
    controller.start(profile)
    if controller.is_running:
        app.exec()
    print_table(model)

    if args.save:
        report = create_report_assembler(settings).save(controller.log(), profile.name)
        if report is not None:
            summary = report.summary
            print(f"Saved report {report.id}: {summary.passed} pass, {summary.failed} fail, {summary.warned} warn")

    return 0 if outcome.get("completed") else 1


def cmd_trace(args, settings, app) -> int:
    gateway, notice = create_gateway(settings)
    if notice:
        print(notice, file=sys.stderr)

    aggregator = HopStatsAggregator(gateway, interval_ms=settings.refresh_interval_ms)
    model = HopTableModel()
    model.bind(aggregator)
    errors = []

    aggregator.error.connect(errors.append)
    aggregator.session_finished.connect(app.quit)

    try:
        aggregator.start(args.host)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    QTimer.singleShot(int(args.duration * 1000), aggregator.stop)
    app.exec()

    model.set_hops(aggregator.snapshot())
    print_table(model)
    print(f"\n{aggregator.tick_count} refresh cycles")

    if errors:
        print(f"Trace failed: {errors[0]}", file=sys.stderr)
        return 1
    return 0


def print_tool_result(target: str, kind: ProbeKind, verdict) -> int:
    """Show one classified tool result in the log table and map it to an exit code."""
    model = ResultLogModel()
    model.append_entry(
        TestResultLog(
            target=target,
            kind=kind,
            status=verdict.status,
            details=verdict.details,
            latency_ms=verdict.latency_ms,
        )
    )
    print_table(model)
    return 1 if verdict.status is Status.FAIL else 0


def cmd_dns(args, settings, app) -> int:
    gateway, notice = create_gateway(settings)
    if notice:
        print(notice, file=sys.stderr)

    try:
        records = gateway.dns_lookup(args.domain)
    except ProbeError as e:
        print(f"DNS lookup failed: {e}", file=sys.stderr)
        return 2
    return print_tool_result(args.domain, ProbeKind.DNS, classify_dns(records))


def cmd_portscan(args, settings, app) -> int:
    gateway, notice = create_gateway(settings)
    if notice:
        print(notice, file=sys.stderr)

    try:
        result = gateway.port_scan(
            args.host, args.start, args.end, on_port=lambda port: print(f"Open port {port}")
        )
    except ProbeError as e:
        print(f"Port scan failed: {e}", file=sys.stderr)
        return 2
    print(f"Scanned {result.scanned_count} ports in {result.time_ms}ms\n")
    return print_tool_result(f"{args.host}:{args.start}-{args.end}", ProbeKind.SCAN, classify_port_scan(result))


def cmd_speed(args, settings, app) -> int:
    host, port, duration, min_kbps = args.target, args.port, args.duration, None
    try:
        profile = get_profile(args.target)
    except KeyError:
        profile = None

    if profile is not None:
        stress = profile.upload_stress_test
        if stress is None:
            print(f"Profile {profile.id} defines no upload test", file=sys.stderr)
            return 2
        try:
            host, port = upload_endpoint(stress)
        except ValueError as e:
            print(str(e), file=sys.stderr)
            return 2
        min_kbps = stress.min_bitrate_kbps
        if args.duration is None:
            duration = stress.duration_sec
    if duration is None:
        duration = 10.0

    gateway, notice = create_gateway(settings)
    if notice:
        print(notice, file=sys.stderr)

    print(f"Uploading to {host}:{port} for {duration:g}s...")
    try:
        result = gateway.throughput_test(host, port, duration)
    except ProbeError as e:
        print(f"Throughput test failed: {e}", file=sys.stderr)
        return 2
    return print_tool_result(f"{host}:{port}", ProbeKind.SPEED, classify_throughput(result, min_kbps))


def cmd_reports(args, settings, app) -> int:
    assembler = create_report_assembler(settings)
    if args.clear:
        assembler.clear()
        print("Saved reports cleared")
        return 0

    reports = assembler.reports()
    if not reports:
        print("No saved reports")
    for report in reports:
        summary = report.summary
        print(
            f"{report.timestamp:%Y-%m-%d %H:%M:%S}  {report.profile_name:<24} "
            f"pass={summary.passed} fail={summary.failed} warn={summary.warned}  ({report.id})"
        )
    return 0


def cmd_sysinfo(args, settings, app) -> int:
    gateway, notice = create_gateway(settings)
    if notice:
        print(notice, file=sys.stderr)

    info = gateway.system_info()
    gib = 1024**3
    print(f"Host:   {info.host_name}")
    print(f"OS:     {info.os_name} {info.os_version}")
    print(f"CPU:    {info.cpu_usage:.1f}%")
    print(f"Memory: {info.memory_used / gib:.1f} / {info.memory_total / gib:.1f} GiB")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="netcheck", description="Network readiness diagnostics")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("profiles", help="List built-in vendor profiles").set_defaults(func=cmd_profiles)

    run = subparsers.add_parser("run", help="Run a diagnostic sweep for a profile")
    run.add_argument("profile", help="Profile id (see 'profiles')")
    run.add_argument("--save", action="store_true", help="Save the finished run as a report")
    run.set_defaults(func=cmd_run)

    trace = subparsers.add_parser("trace", help="Trace a path and monitor every hop")
    trace.add_argument("host")
    trace.add_argument("--duration", type=float, default=10.0, help="Seconds to monitor (default: 10)")
    trace.set_defaults(func=cmd_trace)

    dns = subparsers.add_parser("dns", help="Resolve A/AAAA records for a domain")
    dns.add_argument("domain")
    dns.set_defaults(func=cmd_dns)

    portscan = subparsers.add_parser("portscan", help="TCP-connect scan a port range")
    portscan.add_argument("host")
    portscan.add_argument("--start", type=int, default=1, help="First port (default: 1)")
    portscan.add_argument("--end", type=int, default=1024, help="Last port (default: 1024)")
    portscan.set_defaults(func=cmd_portscan)

    speed = subparsers.add_parser("speed", help="Measure TCP upload throughput")
    speed.add_argument("target", help="Profile id with an upload test, or a host")
    speed.add_argument("--port", type=int, default=443, help="Port when target is a host (default: 443)")
    speed.add_argument("--duration", type=float, default=None, help="Seconds to upload (default: profile or 10)")
    speed.set_defaults(func=cmd_speed)

    reports = subparsers.add_parser("reports", help="List saved reports")
    reports.add_argument("--clear", action="store_true", help="Delete all saved reports")
    reports.set_defaults(func=cmd_reports)

    subparsers.add_parser("sysinfo", help="Show host system information").set_defaults(func=cmd_sysinfo)
    return parser


def main(argv=None) -> int:
    """Main entry point for the netcheck tool."""
    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    configure_logging(settings.log_level)
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    return args.func(args, settings, app)


if __name__ == "__main__":
    sys.exit(main())
