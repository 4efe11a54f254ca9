"""Values of the metrics collection pipeline."""

import logging
from typing import Any

from mcoa_addon.exceptions import ConfigurationError
from mcoa_addon.manifest import (
    PROMETHEUS_AGENT_KIND,
    PROMETHEUS_RULE_KIND,
    SCRAPE_CONFIG_KIND,
)

from .context import Signal, SignalContext, object_value

_LOGGER = logging.getLogger(__name__)

SIGNAL = "metrics"

# The label selecting the agent of each collection scope
LABEL_SCOPE = "mcoa.openshift.io/metrics-scope"
SCOPE_PLATFORM = "platform"
SCOPE_USER_WORKLOADS = "user-workloads"


def _agent(ctx: SignalContext, scope: str) -> dict[str, Any] | None:
    for doc in ctx.objects(PROMETHEUS_AGENT_KIND):
        labels = doc.get("metadata", {}).get("labels") or {}
        if labels.get(LABEL_SCOPE, SCOPE_PLATFORM) == scope:
            return object_value(doc)
    return None


def compose(ctx: SignalContext) -> dict[str, Any] | None:
    """Build the metrics values, None when no collection is enabled."""
    platform = ctx.options.platform.metrics.collection_enabled
    user_workloads = ctx.options.user_workloads.metrics.collection_enabled
    if not platform and not user_workloads:
        _LOGGER.debug("Metrics collection disabled for cluster %s", ctx.cluster.name)
        return None
    if not ctx.options.hub_endpoint:
        raise ConfigurationError(
            "platformSignalsHubEndpoint is required when platformMetricsCollection "
            "or userWorkloadsMetricsCollection is set"
        )

    values: dict[str, Any] = {
        "clusterID": ctx.cluster.cluster_id,
        "hubEndpoint": ctx.options.hub_endpoint,
        "platform": {"enabled": platform},
        "userWorkloads": {"enabled": user_workloads},
        "scrapeConfigs": [object_value(doc) for doc in ctx.objects(SCRAPE_CONFIG_KIND)],
        "rules": [object_value(doc) for doc in ctx.objects(PROMETHEUS_RULE_KIND)],
        "secrets": ctx.secrets(SIGNAL),
    }
    if platform and (agent := _agent(ctx, SCOPE_PLATFORM)):
        values["platform"]["agent"] = agent
    if user_workloads and (agent := _agent(ctx, SCOPE_USER_WORKLOADS)):
        values["userWorkloads"]["agent"] = agent
    return values


METRICS = Signal(
    name=SIGNAL,
    compose=compose,
    disabled=lambda options: options.metrics_disabled,
    auth_kinds=(PROMETHEUS_AGENT_KIND,),
    common_name="mcoa-metrics-collector",
)
