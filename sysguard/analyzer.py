from __future__ import annotations
from typing import List, Mapping

from .config import THRESHOLD_RANGE
from .models import (
    Classification, SyscallDeviation,
    NORMAL, INTRUSION, LOW, MEDIUM, HIGH, CRITICAL,
)

# Deviation assigned to a syscall the baseline never saw.
NEW_SYSCALL_PENALTY = 500.0

CRITICAL_PEAK = 400.0
HIGH_PEAK     = 150.0
PEAK_FACTOR   = 4


def syscall_deviation(baseline: int, test: int) -> float:
    if baseline == 0 and test > 0:
        return NEW_SYSCALL_PENALTY
    if baseline > 0:
        return abs(test - baseline) / baseline * 100.0
    return 0.0


def compute_deviations(baseline: Mapping[str, int], test: Mapping[str, int]) -> List[SyscallDeviation]:
    """Per-syscall deviations over the key union, highest first (ties by name)."""
    rows = []
    for name in set(baseline) | set(test):
        b = int(baseline.get(name, 0))
        t = int(test.get(name, 0))
        rows.append(SyscallDeviation(name=name, baseline=b, test=t,
                                     deviation=syscall_deviation(b, t)))
    rows.sort(key=lambda r: (-r.deviation, r.name))
    return rows


def risk_level(intrusion: bool, peak: float) -> str:
    if not intrusion:
        return LOW
    if peak > CRITICAL_PEAK:
        return CRITICAL
    if peak > HIGH_PEAK:
        return HIGH
    return MEDIUM


def classify(baseline: Mapping[str, int], test: Mapping[str, int], threshold: float = 25) -> Classification:
    """
    Compare a test capture against a baseline.

    Intrusion when the mean deviation exceeds `threshold` or any single
    syscall deviates by more than four times it. Risk level is then taken
    from the peak deviation.
    """
    lo, hi = THRESHOLD_RANGE
    threshold = max(lo, min(hi, threshold))

    rows = compute_deviations(baseline, test)
    aggregate = sum(r.deviation for r in rows) / len(rows) if rows else 0.0
    peak = max((r.deviation for r in rows), default=0.0)

    intrusion = aggregate > threshold or peak > threshold * PEAK_FACTOR
    return Classification(
        syscalls=tuple(rows),
        aggregate_deviation=aggregate,
        peak_deviation=peak,
        status=INTRUSION if intrusion else NORMAL,
        risk_level=risk_level(intrusion, peak),
    )
