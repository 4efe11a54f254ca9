"""Values of the log forwarding pipeline."""

import logging
from typing import Any

from mcoa_addon.manifest import (
    ANNOTATION_TARGET_OUTPUT_NAME,
    CLUSTER_LOG_FORWARDER_KIND,
    CONFIG_MAP_KIND,
)

from .context import Signal, SignalContext, object_value

_LOGGER = logging.getLogger(__name__)

SIGNAL = "logging"

DEFAULT_SUBSCRIPTION_CHANNEL = "stable-6.2"
SERVICE_ACCOUNT_NAME = "mcoa-logcollector"


def _forwarder(doc: dict[str, Any]) -> dict[str, Any]:
    value = object_value(doc)
    value["spec"] = {**value["spec"], "serviceAccount": {"name": SERVICE_ACCOUNT_NAME}}
    return value


def compose(ctx: SignalContext) -> dict[str, Any] | None:
    """Build the logging values, None when no collection is enabled."""
    platform = ctx.options.platform.logs.collection_enabled
    user_workloads = ctx.options.user_workloads.logs.collection_enabled
    if not platform and not user_workloads:
        _LOGGER.debug("Logs collection disabled for cluster %s", ctx.cluster.name)
        return None
    return {
        "enabled": True,
        "subscriptionChannel": (
            ctx.options.logging_subscription_channel or DEFAULT_SUBSCRIPTION_CHANNEL
        ),
        "platform": {"enabled": platform},
        "userWorkloads": {"enabled": user_workloads},
        "clfs": [_forwarder(doc) for doc in ctx.objects(CLUSTER_LOG_FORWARDER_KIND)],
        "configMaps": [
            {
                "name": doc["metadata"]["name"],
                "namespace": doc["metadata"].get("namespace", ""),
                "data": doc.get("data") or {},
            }
            for doc in ctx.objects(CONFIG_MAP_KIND)
            if ANNOTATION_TARGET_OUTPUT_NAME not in (doc["metadata"].get("annotations") or {})
        ],
        "secrets": ctx.secrets(SIGNAL),
    }


LOGGING = Signal(
    name=SIGNAL,
    compose=compose,
    disabled=lambda options: options.logging_disabled,
    auth_kinds=(CLUSTER_LOG_FORWARDER_KIND,),
    common_name="mcoa-logging-collector",
)
