"""Values of the observability UI plugins."""

from typing import Any

from .context import Signal, SignalContext

SIGNAL = "ui"

INCIDENT_DETECTION_DASHBOARDS = ["acm-incidents-overview"]
METRICS_DASHBOARDS = [
    "acm-clusters-overview",
    "acm-optimization-overview",
    "cluster-resource-use",
    "node-resource-use",
]


def compose(ctx: SignalContext) -> dict[str, Any] | None:
    """Build the UI plugin values, None when no plugin is enabled.

    The hub gets the dashboards and the spokes get the operator installed.
    """
    options = ctx.options
    incident_detection = options.platform.incident_detection
    metrics = (
        options.metrics_ui_enabled
        and not options.metrics_disabled
        and options.platform.metrics.collection_enabled
    )
    if not incident_detection and not metrics:
        return None

    values: dict[str, Any] = {
        "enabled": True,
        "installOperator": not ctx.is_hub,
        "incidentDetection": {"enabled": incident_detection},
        "metrics": {"enabled": metrics},
    }
    if ctx.is_hub:
        dashboards = []
        if incident_detection:
            dashboards.extend(INCIDENT_DETECTION_DASHBOARDS)
        if metrics:
            dashboards.extend(METRICS_DASHBOARDS)
        values["dashboards"] = dashboards
    return values


UI = Signal(name=SIGNAL, compose=compose)
