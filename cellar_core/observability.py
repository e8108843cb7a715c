from __future__ import annotations

import json
import logging
import threading
import time
from collections import Counter, defaultdict, deque
from contextlib import contextmanager
from typing import Any

from cellar_core.config import settings

MAX_SAMPLES = 2000


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {"event": record.getMessage(), "level": record.levelname.lower()}
        payload.update(getattr(record, "fields", {}))
        return json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str)


logger = logging.getLogger("cellar_core")

if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
logger.setLevel(settings.log_level.upper())


def _percentile(ordered: list[float], q: float) -> float:
    idx = max(0, int(q * len(ordered)) - 1)
    return ordered[idx]


class Metrics:
    def __init__(self, max_samples: int = MAX_SAMPLES):
        self._lock = threading.Lock()
        self._counters: Counter[str] = Counter()
        self._timings: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=max_samples))

    def increment(self, name: str, value: int = 1) -> None:
        with self._lock:
            self._counters[name] += value

    def observe(self, name: str, value_ms: float) -> None:
        with self._lock:
            self._timings[name].append(float(value_ms))

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            timings = {}
            for name, samples in self._timings.items():
                ordered = sorted(samples)
                if not ordered:
                    timings[name] = {"count": 0, "p50": 0.0, "p95": 0.0, "max": 0.0}
                    continue
                timings[name] = {
                    "count": len(ordered),
                    "p50": _percentile(ordered, 0.50),
                    "p95": _percentile(ordered, 0.95),
                    "max": ordered[-1],
                }
            return {"counters": dict(self._counters), "timings_ms": timings}

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()


metrics = Metrics()


def log_event(event: str, level: int = logging.INFO, **fields: Any) -> None:
    logger.log(level, event, extra={"fields": fields})


def increment(name: str, value: int = 1) -> None:
    metrics.increment(name, value)


def observe_ms(name: str, value: float) -> None:
    metrics.observe(name, value)


def record_error(code: str, **fields: Any) -> None:
    metrics.increment(f"errors.{code}")
    if fields:
        log_event("storage.error", level=logging.WARNING, code=code, **fields)


@contextmanager
def timed(name: str):
    t0 = time.perf_counter()
    try:
        yield
    finally:
        observe_ms(name, (time.perf_counter() - t0) * 1000.0)


def snapshot() -> dict[str, Any]:
    return metrics.snapshot()


def reset() -> None:
    metrics.reset()
