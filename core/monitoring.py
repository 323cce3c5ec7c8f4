"""
core/monitoring.py -- Timing hooks injected into CPU-heavy components.

Components that need to report a duration accept a plain callable
`(operation: str, duration_ms: float) -> None`. SlowOperationLogger is the
production implementation: it logs a warning when an operation crosses a
threshold and otherwise stays silent. Tests pass their own callable (or a
list.append-style recorder) to observe timings.
"""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger("authsvc.monitoring")

TimingHook = Callable[[str, float], None]


class SlowOperationLogger:
    """Log operations slower than threshold_ms at WARNING level."""

    def __init__(self, threshold_ms: float) -> None:
        self.threshold_ms = threshold_ms

    def __call__(self, operation: str, duration_ms: float) -> None:
        if duration_ms > self.threshold_ms:
            logger.warning(
                "Slow operation detected: %s took %.1fms (threshold %.0fms)",
                operation,
                duration_ms,
                self.threshold_ms,
            )
