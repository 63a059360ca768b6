from __future__ import annotations

"""
cds_extractor/run_metrics.py

Métricas agregadas de la exportación (thread-safe).

El worker de exportación escribe, el hilo interactivo solo lee `snapshot()`
para imprimir el resumen final.

Uso:
    from cds_extractor.run_metrics import METRICS

    METRICS.incr("cds.browse.calls")
    METRICS.observe_ms("cds.browse.latency_ms", elapsed_ms)
    METRICS.add_error("cds", "browse", endpoint=control_url, detail="HTTP 500")

    summary = METRICS.snapshot()
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    ts: float
    subsystem: str   # "cds" | "export" | "chapter"
    action: str      # "browse" | "parse" | "write" | ...
    endpoint: str | None
    detail: str


class RunMetrics:
    """
    Contadores + tiempos + errores acotados (se descartan los más antiguos).
    """

    def __init__(self, *, max_error_events: int = 500) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, int] = {}
        self._timings: dict[str, dict[str, float]] = {}
        self._errors: deque[ErrorEvent] = deque(maxlen=max(0, int(max_error_events)))

    def incr(self, key: str, n: int = 1) -> None:
        if not key:
            return
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + int(n)

    def get(self, key: str, default: int = 0) -> int:
        with self._lock:
            return self._counters.get(key, default)

    def observe_ms(self, key: str, ms: float) -> None:
        if not key:
            return
        v = float(ms)
        with self._lock:
            t = self._timings.get(key)
            if t is None:
                self._timings[key] = {"count": 1.0, "sum": v, "min": v, "max": v}
                return
            t["count"] += 1.0
            t["sum"] += v
            t["min"] = min(t["min"], v)
            t["max"] = max(t["max"], v)

    def add_error(self, subsystem: str, action: str, *, endpoint: str | None, detail: str) -> None:
        if self._errors.maxlen == 0:
            return
        ev = ErrorEvent(
            ts=time.time(),
            subsystem=str(subsystem),
            action=str(action),
            endpoint=endpoint,
            detail=str(detail)[:800],
        )
        with self._lock:
            self._errors.append(ev)

    def reset(self) -> None:
        """Vacía todo (se llama al inicio de cada exportación)."""
        with self._lock:
            self._counters.clear()
            self._timings.clear()
            self._errors.clear()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            counters = dict(self._counters)
            timings = {k: dict(v) for k, v in self._timings.items()}
            errors = list(self._errors)

        by_subsystem: dict[str, int] = {}
        for e in errors:
            by_subsystem[e.subsystem] = by_subsystem.get(e.subsystem, 0) + 1

        for t in timings.values():
            t["avg"] = t["sum"] / max(1.0, t["count"])

        derived = {"errors.total": len(errors), "errors.by_subsystem": by_subsystem}
        return {"counters": counters, "timings_ms": timings, "errors": errors, "derived": derived}


# Singleton del proceso
METRICS = RunMetrics()
