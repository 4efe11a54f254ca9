"""Values of the trace collection pipeline."""

import logging
from typing import Any

from mcoa_addon.manifest import (
    ANNOTATION_TARGET_OUTPUT_NAME,
    CONFIG_MAP_KIND,
    INSTRUMENTATION_KIND,
    OPENTELEMETRY_COLLECTOR_KIND,
)

from .context import Signal, SignalContext, object_value

_LOGGER = logging.getLogger(__name__)

SIGNAL = "tracing"


def compose(ctx: SignalContext) -> dict[str, Any] | None:
    """Build the tracing values, None on the hub or when nothing is enabled."""
    if ctx.is_hub:
        _LOGGER.debug("Tracing is not deployed on the hub")
        return None
    traces = ctx.options.user_workloads.traces
    if not traces.collection_enabled and not traces.instrumentation_enabled:
        _LOGGER.debug("Traces collection disabled for cluster %s", ctx.cluster.name)
        return None

    values: dict[str, Any] = {"enabled": True}
    if traces.collection_enabled:
        values["otelCols"] = [
            object_value(doc) for doc in ctx.objects(OPENTELEMETRY_COLLECTOR_KIND)
        ]
        # ConfigMaps marked with a target only apply to that exporter
        values["configMaps"] = [
            {
                "name": doc["metadata"]["name"],
                "namespace": doc["metadata"].get("namespace", ""),
                "target": annotations[ANNOTATION_TARGET_OUTPUT_NAME],
                "data": doc.get("data") or {},
            }
            for doc in ctx.objects(CONFIG_MAP_KIND)
            if ANNOTATION_TARGET_OUTPUT_NAME
            in (annotations := doc["metadata"].get("annotations") or {})
        ]
        values["secrets"] = ctx.secrets(SIGNAL)
    if traces.instrumentation_enabled:
        values["instrumentations"] = [
            object_value(doc) for doc in ctx.objects(INSTRUMENTATION_KIND)
        ]
    return values


TRACING = Signal(
    name=SIGNAL,
    compose=compose,
    disabled=lambda options: options.tracing_disabled,
    auth_kinds=(OPENTELEMETRY_COLLECTOR_KIND,),
    common_name="mcoa-tracing-collector",
)
