from __future__ import annotations
from dataclasses import dataclass, replace
from pathlib import Path
import json
import math

APP_DIR = Path.home() / ".sysguard"
CFG_PATH = APP_DIR / "config.json"

THRESHOLD_RANGE = (1, 100)
COOLDOWN_RANGE = (5, 300)

@dataclass
class AppConfig:
    # Classification
    sensitivity_threshold: int = 25

    # Alert throttling
    alert_cooldown_seconds: int = 45
    dynamic_cooldown: bool = False
    mute_live_popups: bool = True

    # Live stream
    ws_url: str = "ws://localhost:8000/ws"

    # Narrative service ("" → always use the fallback text)
    narrative_url: str = ""
    narrative_timeout_s: float = 15.0

    # Simulated processing time of an analysis run (pool thread only)
    analysis_delay_ms: int = 1800

    def normalized(self) -> "AppConfig":
        """Copy with numeric settings clamped to their allowed ranges."""
        return replace(
            self,
            sensitivity_threshold=_clamp(int(self.sensitivity_threshold), *THRESHOLD_RANGE),
            alert_cooldown_seconds=_clamp(int(self.alert_cooldown_seconds), *COOLDOWN_RANGE),
            narrative_timeout_s=max(0.1, float(self.narrative_timeout_s)),
            analysis_delay_ms=max(0, int(self.analysis_delay_ms)),
        )

def _clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, value))

def ensure_dirs() -> None:
    APP_DIR.mkdir(parents=True, exist_ok=True)

def _settings_from(data: dict) -> AppConfig:
    """
    Build a config from saved JSON, one setting at a time. A setting of the
    wrong type falls back to its default; numbers outside their range are
    clamped. Unknown keys (older versions) are ignored.
    """
    defaults = AppConfig()
    values = {}
    for name in AppConfig.__dataclass_fields__:
        if name not in data:
            continue
        default, raw = getattr(defaults, name), data[name]
        if isinstance(default, bool):
            ok = isinstance(raw, bool)
        elif isinstance(default, (int, float)):
            ok = (isinstance(raw, (int, float)) and not isinstance(raw, bool)
                  and math.isfinite(raw))
        else:
            ok = isinstance(raw, type(default))
        if ok:
            values[name] = raw
        else:
            print(f"[Config] Ignoring {name}={raw!r}, using default {default!r}")

    cfg = AppConfig(**values)
    fixed = cfg.normalized()
    for name in ("sensitivity_threshold", "alert_cooldown_seconds"):
        if getattr(fixed, name) != getattr(cfg, name):
            print(f"[Config] {name}={getattr(cfg, name)} out of range, using {getattr(fixed, name)}")
    return fixed

def load_config() -> AppConfig:
    ensure_dirs()
    if not CFG_PATH.exists():
        cfg = AppConfig()
        save_config(cfg)
        return cfg
    try:
        data = json.loads(CFG_PATH.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"[Config] Unreadable config at {CFG_PATH}, restoring defaults: {e}")
        data = None
    if not isinstance(data, dict):
        cfg = AppConfig()
        save_config(cfg)
        return cfg
    return _settings_from(data)

def save_config(cfg: AppConfig) -> None:
    ensure_dirs()
    CFG_PATH.write_text(json.dumps(cfg.__dict__, indent=2), encoding="utf-8")
