"""Typed options parsed from the customized variables of an AddOnDeploymentConfig.

Recognised variables and their effect:

  - `metricsDisabled`, `loggingDisabled`, `tracingDisabled`: booleans gating the
    composition of each signal.
  - `platformMetricsCollection`, `userWorkloadsMetricsCollection`,
    `platformLogsCollection`, `userWorkloadsLogsCollection`,
    `userWorkloadsTracesCollection`: collector kind selectors, honoured only
    when the value names the supported collector resource.
  - `userWorkloadsInstrumentation`: instrumentation kind selector.
  - `platformIncidentDetection`, `observabilityUIMetrics`: UI plugin toggles.
  - `platformSignalsHubEndpoint`: URL of the hub the collectors send to.
  - `openshiftLoggingChannel`: subscription channel of the logging operator.

Unknown variables are ignored.
"""

from dataclasses import dataclass, field
import logging
from urllib.parse import urlsplit

from mashumaro import DataClassDictMixin

from .exceptions import ConfigurationError
from .manifest import AddOnDeploymentConfig

__all__ = [
    "Options",
    "build_options",
]

_LOGGER = logging.getLogger(__name__)


KEY_METRICS_DISABLED = "metricsDisabled"
KEY_LOGGING_DISABLED = "loggingDisabled"
KEY_TRACING_DISABLED = "tracingDisabled"
KEY_PLATFORM_METRICS_COLLECTION = "platformMetricsCollection"
KEY_PLATFORM_LOGS_COLLECTION = "platformLogsCollection"
KEY_PLATFORM_INCIDENT_DETECTION = "platformIncidentDetection"
KEY_PLATFORM_SIGNALS_HUB_ENDPOINT = "platformSignalsHubEndpoint"
KEY_USER_WORKLOADS_METRICS_COLLECTION = "userWorkloadsMetricsCollection"
KEY_USER_WORKLOADS_LOGS_COLLECTION = "userWorkloadsLogsCollection"
KEY_USER_WORKLOADS_TRACES_COLLECTION = "userWorkloadsTracesCollection"
KEY_USER_WORKLOADS_INSTRUMENTATION = "userWorkloadsInstrumentation"
KEY_OBSERVABILITY_UI_METRICS = "observabilityUIMetrics"
KEY_OPENSHIFT_LOGGING_CHANNEL = "openshiftLoggingChannel"

PROMETHEUS_AGENT_V1ALPHA1 = "prometheusagents.v1alpha1.monitoring.coreos.com"
CLUSTER_LOG_FORWARDER_V1 = "clusterlogforwarders.v1.observability.openshift.io"
OPENTELEMETRY_COLLECTOR_V1BETA1 = "opentelemetrycollectors.v1beta1.opentelemetry.io"
INSTRUMENTATION_V1ALPHA1 = "instrumentations.v1alpha1.opentelemetry.io"
UI_PLUGIN_V1ALPHA1 = "uiplugins.v1alpha1.observability.openshift.io"

_TRUE_VALUES = {"1", "t", "true"}
_FALSE_VALUES = {"0", "f", "false"}


@dataclass(frozen=True)
class MetricsOptions(DataClassDictMixin):
    """Options for the collection of metrics."""

    collection_enabled: bool = False


@dataclass(frozen=True)
class LogsOptions(DataClassDictMixin):
    """Options for the collection of logs."""

    collection_enabled: bool = False


@dataclass(frozen=True)
class TracesOptions(DataClassDictMixin):
    """Options for the collection of traces."""

    collection_enabled: bool = False
    instrumentation_enabled: bool = False


@dataclass(frozen=True)
class PlatformOptions(DataClassDictMixin):
    """Options for the signals of the platform components."""

    metrics: MetricsOptions = field(default_factory=MetricsOptions)
    logs: LogsOptions = field(default_factory=LogsOptions)
    incident_detection: bool = False

    @property
    def enabled(self) -> bool:
        return (
            self.metrics.collection_enabled
            or self.logs.collection_enabled
            or self.incident_detection
        )


@dataclass(frozen=True)
class UserWorkloadOptions(DataClassDictMixin):
    """Options for the signals of user workloads."""

    metrics: MetricsOptions = field(default_factory=MetricsOptions)
    logs: LogsOptions = field(default_factory=LogsOptions)
    traces: TracesOptions = field(default_factory=TracesOptions)

    @property
    def enabled(self) -> bool:
        return (
            self.metrics.collection_enabled
            or self.logs.collection_enabled
            or self.traces.collection_enabled
            or self.traces.instrumentation_enabled
        )


@dataclass(frozen=True)
class Toleration(DataClassDictMixin):
    """A toleration applied to the workloads deployed on the cluster."""

    key: str | None = None
    operator: str | None = None
    value: str | None = None
    effect: str | None = None
    toleration_seconds: int | None = None


@dataclass(frozen=True)
class ProxyOptions(DataClassDictMixin):
    """Proxy settings propagated to the collectors."""

    http_proxy: str = ""
    https_proxy: str = ""
    no_proxy: str = ""


@dataclass(frozen=True)
class Options(DataClassDictMixin):
    """A typed, hashable view of an AddOnDeploymentConfig."""

    metrics_disabled: bool = False
    logging_disabled: bool = False
    tracing_disabled: bool = False

    platform: PlatformOptions = field(default_factory=PlatformOptions)
    user_workloads: UserWorkloadOptions = field(default_factory=UserWorkloadOptions)

    metrics_ui_enabled: bool = False
    """Install the UI plugin exposing the metrics of the fleet."""

    hub_endpoint: str | None = None
    """URL of the hub the collectors send their signals to."""

    logging_subscription_channel: str = ""

    install_namespace: str | None = None
    node_selector: tuple[tuple[str, str], ...] = ()
    """Sorted (key, value) pairs of the node selector."""

    tolerations: tuple[Toleration, ...] = ()
    proxy: ProxyOptions = field(default_factory=ProxyOptions)


def _parse_bool(name: str, value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean value for variable '{name}': '{value}'")


def _parse_endpoint(name: str, value: str) -> str:
    endpoint = value.strip()
    if not endpoint.startswith("http"):
        endpoint = f"https://{endpoint}"
    try:
        url = urlsplit(endpoint)
    except ValueError as err:
        raise ConfigurationError(f"Invalid URL for variable '{name}': {err}") from err
    if not url.netloc.strip() or url.netloc.startswith(":"):
        raise ConfigurationError(
            f"Invalid URL for variable '{name}': invalid hostname format '{url.netloc}'"
        )
    return url.geturl()


def _selector(value: str, expected: str) -> bool:
    if value == expected:
        return True
    _LOGGER.debug("Ignoring unsupported collector kind '%s'", value)
    return False


def build_options(config: AddOnDeploymentConfig | None) -> Options:
    """Parse the options of an AddOnDeploymentConfig.

    Performs no I/O. Malformed values raise a ConfigurationError.
    """
    if config is None:
        return Options()

    toggles: dict[str, bool] = {}
    selectors: dict[str, bool] = {}
    hub_endpoint = None
    channel = ""
    for var in config.customized_variables:
        if var.name in (KEY_METRICS_DISABLED, KEY_LOGGING_DISABLED, KEY_TRACING_DISABLED):
            toggles[var.name] = _parse_bool(var.name, var.value)
        elif var.name in (
            KEY_PLATFORM_METRICS_COLLECTION,
            KEY_USER_WORKLOADS_METRICS_COLLECTION,
        ):
            selectors[var.name] = _selector(var.value, PROMETHEUS_AGENT_V1ALPHA1)
        elif var.name in (KEY_PLATFORM_LOGS_COLLECTION, KEY_USER_WORKLOADS_LOGS_COLLECTION):
            selectors[var.name] = _selector(var.value, CLUSTER_LOG_FORWARDER_V1)
        elif var.name == KEY_USER_WORKLOADS_TRACES_COLLECTION:
            selectors[var.name] = _selector(var.value, OPENTELEMETRY_COLLECTOR_V1BETA1)
        elif var.name == KEY_USER_WORKLOADS_INSTRUMENTATION:
            selectors[var.name] = _selector(var.value, INSTRUMENTATION_V1ALPHA1)
        elif var.name in (KEY_PLATFORM_INCIDENT_DETECTION, KEY_OBSERVABILITY_UI_METRICS):
            selectors[var.name] = _selector(var.value, UI_PLUGIN_V1ALPHA1)
        elif var.name == KEY_PLATFORM_SIGNALS_HUB_ENDPOINT:
            hub_endpoint = _parse_endpoint(var.name, var.value)
        elif var.name == KEY_OPENSHIFT_LOGGING_CHANNEL:
            channel = var.value
        else:
            _LOGGER.debug("Ignoring unknown variable '%s'", var.name)

    return Options(
        metrics_disabled=toggles.get(KEY_METRICS_DISABLED, False),
        logging_disabled=toggles.get(KEY_LOGGING_DISABLED, False),
        tracing_disabled=toggles.get(KEY_TRACING_DISABLED, False),
        platform=PlatformOptions(
            metrics=MetricsOptions(
                collection_enabled=selectors.get(KEY_PLATFORM_METRICS_COLLECTION, False)
            ),
            logs=LogsOptions(
                collection_enabled=selectors.get(KEY_PLATFORM_LOGS_COLLECTION, False)
            ),
            incident_detection=selectors.get(KEY_PLATFORM_INCIDENT_DETECTION, False),
        ),
        user_workloads=UserWorkloadOptions(
            metrics=MetricsOptions(
                collection_enabled=selectors.get(
                    KEY_USER_WORKLOADS_METRICS_COLLECTION, False
                )
            ),
            logs=LogsOptions(
                collection_enabled=selectors.get(KEY_USER_WORKLOADS_LOGS_COLLECTION, False)
            ),
            traces=TracesOptions(
                collection_enabled=selectors.get(
                    KEY_USER_WORKLOADS_TRACES_COLLECTION, False
                ),
                instrumentation_enabled=selectors.get(
                    KEY_USER_WORKLOADS_INSTRUMENTATION, False
                ),
            ),
        ),
        metrics_ui_enabled=selectors.get(KEY_OBSERVABILITY_UI_METRICS, False),
        hub_endpoint=hub_endpoint,
        logging_subscription_channel=channel,
        install_namespace=config.agent_install_namespace,
        node_selector=tuple(sorted(config.node_selector.items())),
        tolerations=tuple(
            Toleration(
                key=tol.get("key"),
                operator=tol.get("operator"),
                value=tol.get("value"),
                effect=tol.get("effect"),
                toleration_seconds=tol.get("tolerationSeconds"),
            )
            for tol in config.tolerations
        ),
        proxy=ProxyOptions(
            http_proxy=config.proxy_config.get("httpProxy", ""),
            https_proxy=config.proxy_config.get("httpsProxy", ""),
            no_proxy=config.proxy_config.get("noProxy", ""),
        ),
    )
