from __future__ import annotations
from PySide6 import QtCore
import argparse
import signal
import sys
import time

from .config import load_config
from .models import AnalysisResult, SecurityAlert, INTRUSION
from .session import Session


def format_report(r: AnalysisResult, limit: int = 10) -> str:
    lines = [
        f"Report {r.id}  {time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(r.ts / 1000))}",
        f"  {r.baseline_source} -> {r.test_source}",
        f"  status={r.status} risk={r.risk_level} "
        f"aggregate={r.aggregate_deviation:.1f}% peak={r.peak_deviation:.1f}%",
        "",
        f"  {'syscall':<16}{'baseline':>10}{'test':>10}{'deviation':>12}",
    ]
    for s in r.syscalls[:limit]:
        lines.append(f"  {s.name:<16}{s.baseline:>10}{s.test:>10}{s.deviation:>11.1f}%")
    lines += ["", r.narrative]
    return "\n".join(lines)


class Controller(QtCore.QObject):
    """
    Headless controller:
    - batch mode: one analysis on the worker pool, print, quit
    - live mode: stream ingestion, surfaced alerts printed, optional
      periodic snapshots
    """
    def __init__(self, session: Session, app: QtCore.QCoreApplication, batch: bool):
        super().__init__()
        self.session = session
        self.app = app
        self.batch = batch

        session.alert_surfaced.connect(self.on_alert)
        session.result_ready.connect(self.on_result)
        session.analysis_failed.connect(self.on_failed)

        self.snapshot_timer = QtCore.QTimer(self)
        self.snapshot_timer.timeout.connect(self.on_snapshot_tick)

    def start_snapshots(self, seconds: int) -> None:
        self.snapshot_timer.setInterval(seconds * 1000)
        self.snapshot_timer.start()

    # ── Signal handlers ───────────────────────
    @QtCore.Slot()
    def on_snapshot_tick(self):
        agg = self.session.aggregator
        print(f"[Controller] {agg.total_invocations} invocations from {agg.endpoint_count} processes")
        self.session.capture_snapshot()

    @QtCore.Slot(object)
    def on_alert(self, alert: SecurityAlert):
        print(f"[ALERT][{alert.severity}] {alert.title}: {alert.message}")

    @QtCore.Slot(object)
    def on_result(self, result: AnalysisResult):
        print(format_report(result))
        self.session.save_to_history()
        if self.batch:
            self.app.exit(1 if result.status == INTRUSION else 0)

    @QtCore.Slot(str)
    def on_failed(self, message: str):
        if self.batch:
            self.app.exit(2)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="sysguard", description="Syscall behavioural drift detector")
    p.add_argument("--baseline", help="baseline capture (name,count lines)")
    p.add_argument("--test", help="test capture to audit against the baseline")
    p.add_argument("--threshold", type=int, help="sensitivity threshold, 1-100")
    p.add_argument("--url", help="sensor WebSocket URL (live mode)")
    p.add_argument("--snapshot-every", type=int, default=0, metavar="SECONDS",
                   help="live mode: analyze the running aggregate periodically")
    return p


def main(argv=None):
    args = build_parser().parse_args(argv)
    if args.snapshot_every > 0 and not args.baseline:
        # Without a baseline the snapshot would be compared against itself.
        print("[Controller] --snapshot-every needs --baseline")
        return 2
    cfg = load_config()

    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication(sys.argv[:1])
    # Command-line overrides apply to this run only.
    if args.threshold is not None:
        cfg.sensitivity_threshold = args.threshold
    if args.url:
        cfg.ws_url = args.url
    session = Session(cfg)

    batch = bool(args.test)
    controller = Controller(session, app, batch)

    if batch:
        if not args.baseline:
            print("[Controller] --test needs --baseline")
            return 2
        try:
            session.load_baseline(args.baseline)
            session.load_test(args.test)
        except (OSError, UnicodeDecodeError) as e:
            print(f"[Controller] Cannot read capture: {e}")
            return 2
        session.run_analysis()
    else:
        if args.baseline:
            session.load_baseline(args.baseline)
        session.start_stream()
        if args.snapshot_every > 0:
            controller.start_snapshots(args.snapshot_every)
        print(f"[Controller] Live mode on {session.cfg.ws_url} - Ctrl+C to stop")

    # Let Python see SIGINT while the Qt loop runs.
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    wake = QtCore.QTimer()
    wake.timeout.connect(lambda: None)
    wake.start(250)

    code = app.exec()

    # Cleanup
    session.close()
    return code


if __name__ == "__main__":
    sys.exit(main())
