from __future__ import annotations

import math

import pytest

from sysguard.analyzer import classify, compute_deviations, syscall_deviation
from sysguard.models import CRITICAL, HIGH, INTRUSION, LOW, MEDIUM, NORMAL


BASELINE = {"read": 450, "write": 380, "mprotect": 40}
TEST = {"read": 850, "write": 900, "mprotect": 850, "execve": 15}


def by_name(rows):
    return {r.name: r for r in rows}


def test_new_syscall_gets_fixed_penalty():
    rows = by_name(compute_deviations({"read": 10}, {"read": 10, "ptrace": 1}))
    assert rows["ptrace"].deviation == 500
    assert rows["ptrace"].baseline == 0


def test_relative_deviation():
    assert syscall_deviation(40, 850) == pytest.approx(2025.0)
    assert syscall_deviation(200, 100) == pytest.approx(50.0)
    assert syscall_deviation(0, 0) == 0


def test_syscall_missing_from_test_is_full_drop():
    rows = by_name(compute_deviations({"read": 10, "close": 4}, {"read": 10}))
    assert rows["close"].deviation == pytest.approx(100.0)
    assert rows["close"].test == 0


def test_sorted_descending_with_name_tiebreak():
    rows = compute_deviations({"a": 1, "b": 1}, {"a": 1, "b": 1, "z": 3, "y": 2})
    assert [r.name for r in rows] == ["y", "z", "a", "b"]


def test_aggregate_is_mean_over_key_union():
    c = classify(BASELINE, TEST, 25)
    expected = [
        (850 - 450) / 450 * 100,
        (900 - 380) / 380 * 100,
        2025.0,
        500.0,
    ]
    assert math.isclose(c.aggregate_deviation, sum(expected) / 4)
    assert c.peak_deviation == pytest.approx(2025.0)


def test_empty_inputs():
    c = classify({}, {}, 25)
    assert c.syscalls == ()
    assert c.aggregate_deviation == 0
    assert c.peak_deviation == 0
    assert c.status == NORMAL
    assert c.risk_level == LOW


def test_intrusion_scenario_is_critical():
    c = classify(BASELINE, TEST, 25)
    rows = by_name(c.syscalls)
    assert rows["execve"].deviation == 500
    assert rows["mprotect"].deviation == pytest.approx(2025.0)
    assert c.syscalls[0].name == "mprotect"
    assert c.status == INTRUSION
    assert c.risk_level == CRITICAL


def test_identical_captures_are_normal():
    c = classify(BASELINE, dict(BASELINE), 25)
    assert all(r.deviation == 0 for r in c.syscalls)
    assert c.aggregate_deviation == 0
    assert c.status == NORMAL
    assert c.risk_level == LOW


def test_peak_rule_alone_triggers_intrusion():
    # one of ten syscalls at +110%: mean 11 < 25, peak 110 > 100
    baseline = {f"s{i}": 100 for i in range(10)}
    test = dict(baseline, s0=210)
    c = classify(baseline, test, 25)
    assert c.aggregate_deviation < 25
    assert c.status == INTRUSION
    assert c.risk_level == MEDIUM


def test_high_risk_band():
    c = classify({"read": 100}, {"read": 300}, 25)
    assert c.peak_deviation == pytest.approx(200.0)
    assert c.risk_level == HIGH


def test_mean_rule_alone_triggers_intrusion():
    c = classify({"read": 100, "write": 100}, {"read": 130, "write": 130}, 25)
    assert c.peak_deviation == pytest.approx(30.0)
    assert c.status == INTRUSION
    assert c.risk_level == MEDIUM


@pytest.mark.parametrize("baseline,test", [
    (BASELINE, TEST),
    ({"read": 100, "write": 100}, {"read": 130, "write": 160}),
    ({"a": 10, "b": 20, "c": 30}, {"a": 12, "b": 20, "c": 45}),
])
def test_raising_threshold_never_creates_intrusion(baseline, test):
    statuses = [classify(baseline, test, t).status for t in range(1, 101)]
    first_normal = next((i for i, s in enumerate(statuses) if s == NORMAL), len(statuses))
    assert all(s == NORMAL for s in statuses[first_normal:])


def test_threshold_is_clamped():
    assert classify({"r": 100}, {"r": 150}, 0).status == classify({"r": 100}, {"r": 150}, 1).status
    assert classify({"r": 100}, {"r": 150}, 1000).status == classify({"r": 100}, {"r": 150}, 100).status
