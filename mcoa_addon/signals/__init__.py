"""Signal composers building the per-signal sections of the values bundle.

Each signal registers a `Signal` with the well known key of its section. A new
signal adds one entry to `SIGNALS`.
"""

from .context import Composer, Signal, SignalContext
from .logging import LOGGING
from .metrics import METRICS
from .tracing import TRACING
from .ui import UI

SIGNALS: tuple[Signal, ...] = (METRICS, LOGGING, TRACING, UI)

__all__ = [
    "Composer",
    "Signal",
    "SignalContext",
    "SIGNALS",
]
