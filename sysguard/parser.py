from __future__ import annotations
from pathlib import Path
from typing import Tuple

from .models import FrequencyMap

_SAMPLES = {
    "normal": "read,450\nwrite,380\nopenat,120\nclose,115\nmmap,90\nmprotect,40\nioctl,25",
    "intrusion": (
        "read,850\nwrite,900\nopenat,450\nclose,430\nmmap,120\n"
        "mprotect,850\nexecve,15\nsocket,22\nconnect,18"
    ),
}


def parse_capture(content: str) -> FrequencyMap:
    """
    Turn capture text into a syscall -> count map.

    Lines are either "name,count" or a bare syscall name (one occurrence,
    lower-cased). Lines that do not parse are skipped.
    """
    counts: FrequencyMap = {}
    for raw in content.splitlines():
        line = raw.strip()
        if not line:
            continue

        if "," in line:
            name, _, count_str = line.partition(",")
            name = name.strip()
            try:
                count = int(count_str.strip(), 10)
            except ValueError:
                continue
            if not name or count < 0:
                continue
        else:
            name, count = line.lower(), 1

        counts[name] = counts.get(name, 0) + count
    return counts


def load_capture(path: str) -> Tuple[str, FrequencyMap]:
    """Read a UTF-8 capture file. Returns (file name, frequency map)."""
    p = Path(path)
    return p.name, parse_capture(p.read_text(encoding="utf-8"))


def sample_capture(kind: str) -> str:
    """Built-in demo captures: "normal" or "intrusion"."""
    return _SAMPLES["intrusion" if kind == "intrusion" else "normal"]
