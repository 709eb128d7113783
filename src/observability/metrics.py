from __future__ import annotations
from collections import defaultdict
from typing import Dict

# name -> label -> count; label "" is the unlabelled total
_COUNTERS: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))


def inc(name: str, value: int = 1, label: str = ""):
    _COUNTERS[name][""] += value
    if label:
        _COUNTERS[name][label] += value


def count(name: str, label: str = "") -> int:
    return _COUNTERS.get(name, {}).get(label, 0)


def snapshot():
    return {name: dict(labels) for name, labels in _COUNTERS.items()}


def reset():
    _COUNTERS.clear()
