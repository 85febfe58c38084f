from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import uuid

from .config import AppConfig
from .models import (
    AnalysisResult, LiveEvent, SecurityAlert, ThrottleState,
    INTRUSION, HIGH, MEDIUM, LIVE_STREAM_ID, now_ms,
)

# ──────────────────────────────────────────────
# Syscalls that always raise an alert
# ──────────────────────────────────────────────
HAZARDOUS_SYSCALLS = frozenset({
    "execve", "ptrace", "mprotect", "socket", "connect",
    "bind", "kill", "clone", "prctl",
})

BURST_WINDOW_MS = 10_000
BURST_DIVISOR   = 3
MAX_COOLDOWN_SCALE = 5.0

HAZARD_TITLE    = "Hazardous Event Injected"
ANOMALY_TITLE   = "Anomalous Activity"
ANALYSIS_TITLE  = "Neural Engine Alert"
ANALYSIS_FALLBACK_MESSAGE = "Anomalous system call sequences detected."


def new_alert_id() -> str:
    return uuid.uuid4().hex[:12]


def is_hazardous(syscall: str) -> bool:
    return syscall.lower() in HAZARDOUS_SYSCALLS


def is_alert_worthy(event: LiveEvent) -> bool:
    return event.alert or is_hazardous(event.syscall)


@dataclass(frozen=True)
class ThrottleDecision:
    alert: SecurityAlert
    surfaced: bool
    cooldown_s: float


class AlertThrottler:
    """
    Decides which live alerts interrupt the operator.

    Every alert-worthy event produces a SecurityAlert for the log; only
    some of them are surfaced. A burst of alerts inside a 10 s window
    stretches the cooldown (up to 5x) when dynamic cooldown is enabled.
    Settings are read from `cfg` on every call so runtime changes apply
    to the next event.
    """
    def __init__(self, cfg: AppConfig, state: Optional[ThrottleState] = None):
        self.cfg = cfg
        self.state = state or ThrottleState()

    def effective_cooldown(self) -> float:
        cooldown = float(self.cfg.alert_cooldown_seconds)
        if self.cfg.dynamic_cooldown:
            scale = min(MAX_COOLDOWN_SCALE, max(1.0, self.state.burst_count / BURST_DIVISOR))
            cooldown *= scale
        return cooldown

    def _track_burst(self, now: int) -> None:
        s = self.state
        if now - s.burst_window_start_ms > BURST_WINDOW_MS:
            s.burst_count = 0
            s.burst_window_start_ms = now
        s.burst_count += 1

    def evaluate(self, event: LiveEvent, now: Optional[int] = None) -> Optional[ThrottleDecision]:
        """None for ordinary events, otherwise the alert and whether to surface it."""
        if not is_alert_worthy(event):
            return None
        now = now_ms() if now is None else now

        alert = live_alert(event, now)
        self._track_burst(now)
        cooldown = self.effective_cooldown()

        surfaced = (not self.cfg.mute_live_popups
                    and now - self.state.last_surfaced_ms > cooldown * 1000)
        if surfaced:
            self.state.last_surfaced_ms = now
        return ThrottleDecision(alert=alert, surfaced=surfaced, cooldown_s=cooldown)

    def reset(self) -> None:
        self.state = ThrottleState()


def live_alert(event: LiveEvent, now: int) -> SecurityAlert:
    hazardous = is_hazardous(event.syscall)
    return SecurityAlert(
        id=new_alert_id(),
        severity=HIGH if hazardous else MEDIUM,
        title=HAZARD_TITLE if hazardous else ANOMALY_TITLE,
        message=f"Suspicious activity from PID {event.pid}: {event.syscall}() call detected.",
        ts=now,
        analysis_id=LIVE_STREAM_ID,
    )


def analysis_alert(result: AnalysisResult) -> Optional[SecurityAlert]:
    """
    Alert for a finished analysis. Only intrusions produce one, and it is
    always surfaced: there is exactly one per analysis run.
    """
    if result.status != INTRUSION:
        return None
    return SecurityAlert(
        id=new_alert_id(),
        severity=result.risk_level,
        title=ANALYSIS_TITLE,
        message=result.narrative or ANALYSIS_FALLBACK_MESSAGE,
        ts=now_ms(),
        analysis_id=result.id,
    )
