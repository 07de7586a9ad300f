"""In-process counters for commit outcomes, mirrored to the log."""

from __future__ import annotations

from collections import Counter
from threading import Lock

from swipescore.util.logger import get_logger

_metrics_logger = get_logger("metrics")
_counters: Counter[tuple[str, tuple[tuple[str, str], ...]]] = Counter()
_lock = Lock()


def _key(name: str, labels: dict | None) -> tuple[str, tuple[tuple[str, str], ...]]:
    return name, tuple(sorted((str(k), str(v)) for k, v in (labels or {}).items()))


def emit_counter(name: str, value: int = 1, labels: dict | None = None) -> None:
    with _lock:
        _counters[_key(name, labels)] += value
    _metrics_logger.debug("metric counter name=%s value=%s labels=%s", name, value, labels or {})


def counter_value(name: str, labels: dict | None = None) -> int:
    with _lock:
        return _counters[_key(name, labels)]


def reset_counters() -> None:
    with _lock:
        _counters.clear()
