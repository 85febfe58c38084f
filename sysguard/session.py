from __future__ import annotations
from collections import deque
from dataclasses import replace
from typing import Callable, Deque, List, Mapping, Optional, Tuple
from PySide6 import QtCore
import uuid

from .config import AppConfig, save_config
from .models import (
    AnalysisResult, FrequencyMap, LiveEvent, SecurityAlert, INTRUSION, now_ms,
)
from .parser import load_capture
from .analyzer import classify
from .aggregator import LiveAggregator
from .throttle import AlertThrottler, analysis_alert
from .narrative import NarrativeClient, FALLBACK_NARRATIVE
from .stream import ConnectionManager
from .workers import AnalysisRunnable

ALERTS_MAX  = 100
HISTORY_MAX = 50

DEFAULT_BASELINE_SOURCE = "internal_baseline"
DEFAULT_TEST_SOURCE     = "sensor_snapshot"
LIVE_BASELINE_SOURCE    = "live_aggregate"


def new_result_id() -> str:
    return uuid.uuid4().hex[:9]


class Session(QtCore.QObject):
    """
    One operator session: owns every piece of mutable state.

    - live aggregate + throttle state, fed by on_event()
    - alert log (newest first, capped)
    - loaded baseline/test captures and the current result
    - saved history (newest first, capped, unique ids)

    Lives on the event-loop thread. Live events and analysis results are
    both delivered there, so no locking is needed.
    """

    alert_logged     = QtCore.Signal(object)   # SecurityAlert, every alert
    alert_surfaced   = QtCore.Signal(object)   # SecurityAlert, interruptive ones
    result_ready     = QtCore.Signal(object)   # AnalysisResult
    analysis_failed  = QtCore.Signal(str)
    status_changed   = QtCore.Signal(str)      # stream status passthrough

    def __init__(self, cfg: AppConfig,
                 narrative: Optional[NarrativeClient] = None,
                 timeline_factory: Optional[Callable[[bool], tuple]] = None,
                 persist_config: bool = True,
                 parent: Optional[QtCore.QObject] = None):
        super().__init__(parent)
        self.cfg = cfg.normalized()
        self.narrative = narrative or NarrativeClient(self.cfg.narrative_url, self.cfg.narrative_timeout_s)
        self._timeline_factory = timeline_factory
        self._persist_config = persist_config

        self.aggregator = LiveAggregator()
        self.throttler = AlertThrottler(self.cfg)
        self.alerts: Deque[SecurityAlert] = deque(maxlen=ALERTS_MAX)
        self.history: List[AnalysisResult] = []
        self.result: Optional[AnalysisResult] = None

        self.baseline: Optional[FrequencyMap] = None
        self.test: Optional[FrequencyMap] = None
        self.baseline_source: Optional[str] = None
        self.test_source: Optional[str] = None

        self.connection: Optional[ConnectionManager] = None
        self._pool = QtCore.QThreadPool.globalInstance()
        self._in_flight = []   # keeps worker signal objects alive
        self._pending = 0

    # ══════════════════════════════════════════
    # Live stream
    # ══════════════════════════════════════════

    def start_stream(self, connection: Optional[ConnectionManager] = None) -> ConnectionManager:
        if self.connection is not None:
            self.connection.shutdown()
        self.connection = connection or ConnectionManager(self.cfg.ws_url, parent=self)
        self.connection.event_received.connect(self.on_event)
        self.connection.status_changed.connect(self.status_changed)
        self.connection.connect_stream()
        return self.connection

    @QtCore.Slot(object)
    def on_event(self, event: LiveEvent, now: Optional[int] = None) -> None:
        self.aggregator.ingest(event)
        decision = self.throttler.evaluate(event, now)
        if decision is None:
            return
        self._log_alert(decision.alert)
        if decision.surfaced:
            self.alert_surfaced.emit(decision.alert)

    def clear_terminal(self) -> None:
        self.aggregator.reset()

    # ══════════════════════════════════════════
    # Captures
    # ══════════════════════════════════════════

    def set_baseline(self, counts: Mapping[str, int], source: Optional[str] = None) -> None:
        self.baseline, self.baseline_source = dict(counts), source

    def set_test(self, counts: Mapping[str, int], source: Optional[str] = None) -> None:
        self.test, self.test_source = dict(counts), source

    def load_baseline(self, path: str) -> None:
        name, counts = load_capture(path)
        self.set_baseline(counts, name)

    def load_test(self, path: str) -> None:
        name, counts = load_capture(path)
        self.set_test(counts, name)

    def reset_analysis(self) -> None:
        self.result = None
        self.baseline = self.test = None
        self.baseline_source = self.test_source = None

    # ══════════════════════════════════════════
    # Analysis
    # ══════════════════════════════════════════

    def _resolve_inputs(self, test: Optional[Mapping[str, int]], use_live_baseline: bool
                        ) -> Optional[Tuple[Mapping[str, int], Mapping[str, int], str, str]]:
        if self.baseline is not None:
            baseline, b_src = self.baseline, self.baseline_source or DEFAULT_BASELINE_SOURCE
        elif use_live_baseline and not self.aggregator.is_empty():
            baseline, b_src = self.aggregator.snapshot(), LIVE_BASELINE_SOURCE
        else:
            return None

        if test is not None:
            t_src = DEFAULT_TEST_SOURCE
        elif self.test is not None:
            test, t_src = self.test, self.test_source or DEFAULT_TEST_SOURCE
        else:
            return None
        return dict(baseline), dict(test), b_src, t_src

    def analyze(self, test: Optional[Mapping[str, int]] = None,
                use_live_baseline: bool = False) -> Optional[AnalysisResult]:
        """
        Build a result synchronously. `test` overrides the loaded test
        capture (snapshot analysis). Returns None when either side is
        missing.
        """
        inputs = self._resolve_inputs(test, use_live_baseline)
        if inputs is None:
            print("[Session] Analysis skipped: baseline or test capture missing")
            return None
        return self._build_result(*inputs, threshold=self.cfg.sensitivity_threshold)

    def _build_result(self, baseline, test, baseline_source, test_source, threshold) -> AnalysisResult:
        c = classify(baseline, test, threshold)
        try:
            narrative = self.narrative.explain(c)
        except Exception as e:
            print(f"[Session] Narrative service failed: {e}")
            narrative = FALLBACK_NARRATIVE
        timeline = tuple(self._timeline_factory(c.status == INTRUSION)) if self._timeline_factory else ()
        return AnalysisResult(
            id=new_result_id(),
            status=c.status,
            aggregate_deviation=c.aggregate_deviation,
            risk_level=c.risk_level,
            syscalls=c.syscalls,
            ts=now_ms(),
            narrative=narrative,
            baseline_source=baseline_source,
            test_source=test_source,
            timeline=timeline,
        )

    def run_analysis(self, test: Optional[Mapping[str, int]] = None,
                     use_live_baseline: bool = False) -> bool:
        """Queue an analysis on the worker pool. False if it was rejected."""
        inputs = self._resolve_inputs(test, use_live_baseline)
        if inputs is None:
            print("[Session] Analysis skipped: baseline or test capture missing")
            return False

        threshold = self.cfg.sensitivity_threshold
        job = AnalysisRunnable(lambda: self._build_result(*inputs, threshold=threshold),
                               delay_ms=self.cfg.analysis_delay_ms)
        job.signals.finished.connect(self.on_result)
        job.signals.failed.connect(self._on_failed)
        self._in_flight.append(job.signals)
        self._pending += 1
        self._pool.start(job)
        return True

    def capture_snapshot(self, use_live_baseline: bool = False) -> bool:
        """Analyze the live aggregate as the test side. No-op when nothing was seen."""
        if self.aggregator.is_empty():
            return False
        return self.run_analysis(self.aggregator.snapshot(), use_live_baseline)

    @property
    def is_analyzing(self) -> bool:
        return self._pending > 0

    @QtCore.Slot(object)
    def on_result(self, result: AnalysisResult) -> None:
        self._forget_sender()
        self.result = result
        self.result_ready.emit(result)
        alert = analysis_alert(result)
        if alert is not None:
            self._log_alert(alert)
            self.alert_surfaced.emit(alert)

    @QtCore.Slot(str)
    def _on_failed(self, message: str) -> None:
        self._forget_sender()
        self.analysis_failed.emit(message)

    def _forget_sender(self) -> None:
        self._pending = max(0, self._pending - 1)
        sender = self.sender()
        if sender in self._in_flight:
            self._in_flight.remove(sender)

    # ══════════════════════════════════════════
    # Alerts & history
    # ══════════════════════════════════════════

    def _log_alert(self, alert: SecurityAlert) -> None:
        self.alerts.appendleft(alert)
        self.alert_logged.emit(alert)

    @property
    def unread_count(self) -> int:
        return sum(1 for a in self.alerts if not a.read)

    def mark_alert_read(self, alert_id: str) -> bool:
        for i, a in enumerate(self.alerts):
            if a.id == alert_id:
                if not a.read:
                    self.alerts[i] = replace(a, read=True)
                return True
        return False

    def save_to_history(self) -> bool:
        if self.result is None or self.is_saved():
            return False
        self.history.insert(0, self.result)
        del self.history[HISTORY_MAX:]
        return True

    def is_saved(self) -> bool:
        return self.result is not None and any(h.id == self.result.id for h in self.history)

    def result_for_alert(self, alert_id: str) -> Optional[AnalysisResult]:
        """Open the archived result behind an alert and mark the alert read."""
        alert = next((a for a in self.alerts if a.id == alert_id), None)
        if alert is None:
            return None
        found = next((h for h in self.history if h.id == alert.analysis_id), None)
        if found is not None:
            self.result = found
            self.mark_alert_read(alert_id)
        return found

    # ══════════════════════════════════════════
    # Settings & teardown
    # ══════════════════════════════════════════

    def update_config(self, **changes) -> AppConfig:
        unknown = set(changes) - set(AppConfig.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

        new = replace(self.cfg, **changes).normalized()
        # Mutate in place: the throttler holds the same object.
        for name in AppConfig.__dataclass_fields__:
            setattr(self.cfg, name, getattr(new, name))

        if "narrative_url" in changes or "narrative_timeout_s" in changes:
            self.narrative.url = self.cfg.narrative_url
            self.narrative.timeout = self.cfg.narrative_timeout_s
        if "ws_url" in changes and self.connection is not None:
            self.connection.set_url(self.cfg.ws_url)
        if self._persist_config:
            save_config(self.cfg)
        return self.cfg

    def close(self) -> None:
        if self.connection is not None:
            self.connection.shutdown()
            self.connection = None
        self.aggregator.reset()
        self.throttler.reset()
