"""Client for the external narrative (plain-language explanation) service."""

from __future__ import annotations

import requests

from .models import Classification

FALLBACK_NARRATIVE = (
    "Automated explanation unavailable. The verdict above is based on "
    "syscall frequency deviation from the baseline."
)

# Only the worst offenders are sent; the service does not need the long tail.
MAX_SYSCALLS_SENT = 15


class NarrativeClient:
    """Posts a classification summary and returns the service's prose."""

    def __init__(self, url: str = "", timeout: float = 15.0):
        self.url = url
        self.timeout = timeout

    @staticmethod
    def payload(c: Classification) -> dict:
        return {
            "status": c.status,
            "riskLevel": c.risk_level,
            "aggregateDeviation": round(c.aggregate_deviation, 2),
            "syscalls": [
                {"name": s.name, "baseline": s.baseline, "test": s.test,
                 "deviation": round(s.deviation, 2)}
                for s in c.syscalls[:MAX_SYSCALLS_SENT]
            ],
        }

    def explain(self, c: Classification) -> str:
        if not self.url:
            return FALLBACK_NARRATIVE

        try:
            response = requests.post(self.url, json=self.payload(c), timeout=self.timeout)
            if response.status_code != 200:
                print(f"[NarrativeClient] Service returned status {response.status_code}")
                return FALLBACK_NARRATIVE
            return _extract_text(response) or FALLBACK_NARRATIVE
        except requests.exceptions.Timeout:
            print(f"[NarrativeClient] Timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            print(f"[NarrativeClient] Request failed: {e}")
        return FALLBACK_NARRATIVE


def _extract_text(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text.strip()

    if isinstance(data, str):
        return data.strip()
    if isinstance(data, dict):
        for key in ("text", "explanation", "narrative"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return ""
