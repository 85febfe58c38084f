from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple
import json
import time

# status
NORMAL    = "NORMAL"
INTRUSION = "INTRUSION"

# risk / severity
LOW      = "LOW"
MEDIUM   = "MEDIUM"
HIGH     = "HIGH"
CRITICAL = "CRITICAL"

# stream connection
DISCONNECTED = "DISCONNECTED"
CONNECTING   = "CONNECTING"
CONNECTED    = "CONNECTED"

LIVE_STREAM_ID = "LIVE_STREAM"

FrequencyMap = Dict[str, int]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class SyscallDeviation:
    name: str
    baseline: int
    test: int
    deviation: float

@dataclass(frozen=True)
class Classification:
    syscalls: Tuple[SyscallDeviation, ...]
    aggregate_deviation: float
    peak_deviation: float
    status: str         # NORMAL|INTRUSION
    risk_level: str     # LOW|MEDIUM|HIGH|CRITICAL

@dataclass(frozen=True)
class AnalysisResult:
    id: str
    status: str
    aggregate_deviation: float
    risk_level: str
    syscalls: Tuple[SyscallDeviation, ...]
    ts: int
    narrative: str
    baseline_source: str
    test_source: str
    timeline: Tuple[Any, ...] = ()

    @property
    def peak_deviation(self) -> float:
        return max((s.deviation for s in self.syscalls), default=0.0)

@dataclass(frozen=True)
class LiveEvent:
    ts: float
    pid: int
    syscall: str
    alert: bool = False

    @classmethod
    def from_json(cls, payload: str) -> "LiveEvent":
        """
        Parse one stream message.
        Raises ValueError / KeyError / TypeError on anything that is not a
        usable event; callers drop those.
        """
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise TypeError("event payload is not an object")

        syscall = data.get("syscall", data.get("syscallName"))
        if not isinstance(syscall, str) or not syscall.strip():
            raise ValueError("event has no syscall name")

        pid = _as_pid(data["pid"] if "pid" in data else data["processId"])

        ts = data.get("timestamp")
        if not isinstance(ts, (int, float)) or isinstance(ts, bool):
            ts = now_ms()

        return cls(
            ts=float(ts),
            pid=pid,
            syscall=syscall.strip(),
            alert=bool(data.get("alert", data.get("alertFlag", False))),
        )

@dataclass(frozen=True)
class SecurityAlert:
    id: str
    severity: str
    title: str
    message: str
    ts: int
    analysis_id: str = LIVE_STREAM_ID
    read: bool = False

@dataclass
class ThrottleState:
    last_surfaced_ms: int = 0
    burst_count: int = 0
    burst_window_start_ms: int = field(default_factory=now_ms)

@dataclass
class ConnectionState:
    status: str = DISCONNECTED
    retry_count: int = 0
    last_error: Optional[str] = None


def _as_pid(value: Any) -> int:
    """Whole, finite, non-negative numbers only; "12", 3.7, NaN, Infinity are rejected."""
    if isinstance(value, bool):
        raise TypeError("pid must be an integer")
    if isinstance(value, float):
        if not value.is_integer():     # also false for inf / nan
            raise ValueError(f"pid is not a whole number: {value!r}")
        value = int(value)
    if not isinstance(value, int):
        raise TypeError("pid must be an integer")
    if value < 0:
        raise ValueError("pid must be non-negative")
    return value
