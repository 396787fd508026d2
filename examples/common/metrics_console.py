# SPDX-License-Identifier: Apache-2.0
"""
A console MetricsSink for examples and local debugging.

Implements the shape `vectorgate.MetricsSink` expects:
  - observe(component, op, ms, ok, code="OK", extra=None)
  - counter(component, name, value=1, extra=None)

Each call prints one ``[OBS]`` / ``[CTR]`` line followed by compact JSON, so
the output stays machine-parseable.
"""

from __future__ import annotations

import json
import sys
import threading
from typing import Any, Dict, Mapping, Optional, TextIO

__all__ = ["ConsoleMetrics"]

_LOCK = threading.Lock()


class ConsoleMetrics:
    """
    Example metrics sink that prints structured lines.

    Args:
        output_file: File-like object to write to (default: stdout).
        max_extra_fields: Maximum number of extra fields to include.
    """

    def __init__(self, *, output_file: Optional[TextIO] = None, max_extra_fields: int = 10) -> None:
        self.output_file = output_file or sys.stdout
        self.max_extra_fields = max_extra_fields

    def observe(
        self,
        *,
        component: str,
        op: str,
        ms: float,
        ok: bool,
        code: str = "OK",
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        payload: Dict[str, Any] = {
            "component": component,
            "op": op,
            "ms": round(max(0.0, float(ms)), 3),
            "ok": bool(ok),
            "code": str(code or "OK"),
        }
        safe_extra = self._safe_extra(extra)
        if safe_extra:
            payload["extra"] = safe_extra
        self._write("OBS", payload)

    def counter(
        self,
        *,
        component: str,
        name: str,
        value: int = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        payload: Dict[str, Any] = {"component": component, "name": name, "value": int(value)}
        safe_extra = self._safe_extra(extra)
        if safe_extra:
            payload["extra"] = safe_extra
        self._write("CTR", payload)

    def _write(self, kind: str, payload: Mapping[str, Any]) -> None:
        line = f"[{kind}] {json.dumps(payload, separators=(',', ':'), ensure_ascii=False)}"
        with _LOCK:
            print(line, file=self.output_file, flush=True)

    def _safe_extra(self, extra: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        """Keep only short scalar values (low cardinality)."""
        if not extra:
            return None
        safe: Dict[str, Any] = {}
        for i, (k, v) in enumerate(sorted(extra.items())):
            if i >= self.max_extra_fields:
                break
            if v is None or isinstance(v, (str, int, float, bool)):
                if len(str(v)) <= 200:
                    safe[k] = v
        return safe or None
